from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class BusinessCode(IntEnum):
    SUCCESS = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    INTERNAL_ERROR = 500

    WECHAT_CONFIG_ERROR = 1001
    WECHAT_CRYPTO_ERROR = 1002
    WECHAT_API_ERROR = 1003

    OPENAI_CONFIG_ERROR = 2001
    OPENAI_API_ERROR = 2002

    KV_CONFIG_ERROR = 3001
    KV_OPERATION_ERROR = 3002

    MESSAGE_DUPLICATE = 4001
    MESSAGE_INVALID = 4002


class ApiResponse(BaseModel):
    """Envelope shared by every admin endpoint."""

    success: bool
    code: int
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Any = None
    details: Optional[dict[str, Any]] = None


class ClearConversationRequest(BaseModel):
    user_id: str

    @field_validator("user_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("user_id must not be empty")
        return value


class ClearMessageRecordsRequest(BaseModel):
    msg_ids: list[str] = Field(min_length=1)
