import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class ProcessingRecord:
    id: str
    processed_at: float
    success: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, record_id: str, metadata: Optional[dict] = None, success: bool = True) -> "ProcessingRecord":
        return cls(id=record_id, processed_at=time.time(), success=success, metadata=dict(metadata or {}))

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "ProcessingRecord":
        data = json.loads(raw)
        return cls(
            id=str(data["id"]),
            processed_at=float(data.get("processed_at") or 0),
            success=bool(data.get("success", True)),
            metadata=data.get("metadata") or {},
        )
