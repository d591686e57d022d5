from dataclasses import dataclass
from typing import Any, Optional

TEXT_MESSAGE = "text"


@dataclass(frozen=True)
class InboxMessage:
    msg_id: str
    external_user_id: str
    content: str
    send_time: int
    msg_type: str

    @property
    def is_text(self) -> bool:
        return self.msg_type == TEXT_MESSAGE

    @classmethod
    def from_remote(cls, raw: dict[str, Any]) -> "InboxMessage":
        """Build from one ``msg_list`` entry of the kf sync_msg response."""
        text = raw.get("text") or {}
        try:
            send_time = int(raw.get("send_time") or 0)
        except (TypeError, ValueError):
            send_time = 0
        return cls(
            msg_id=raw.get("msgid") or "",
            external_user_id=raw.get("external_userid") or "",
            content=(text.get("content") or "") if isinstance(text, dict) else "",
            send_time=send_time,
            msg_type=raw.get("msgtype") or "",
        )


@dataclass(frozen=True)
class SyncPage:
    messages: list[InboxMessage]
    next_cursor: Optional[str] = None
