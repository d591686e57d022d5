from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationEntry:
    role: Role
    content: str
    timestamp: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationEntry":
        return cls(role=Role(data["role"]), content=data.get("content") or "", timestamp=data.get("timestamp"))


ConversationWindow = list[ConversationEntry]


@dataclass
class ConversationStats:
    total_messages: int
    user_messages: int
    assistant_messages: int
    last_activity: Optional[float] = None
