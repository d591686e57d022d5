from kf_relay.schemas.admin import (
    ApiResponse,
    BusinessCode,
    ClearConversationRequest,
    ClearMessageRecordsRequest,
)

__all__ = ["ApiResponse", "BusinessCode", "ClearConversationRequest", "ClearMessageRecordsRequest"]
