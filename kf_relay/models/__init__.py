from kf_relay.models.conversation import ConversationEntry, ConversationStats, ConversationWindow, Role
from kf_relay.models.envelope import DecryptedPayload, InboundEnvelope
from kf_relay.models.message import InboxMessage, SyncPage
from kf_relay.models.processing_record import ProcessingRecord

__all__ = [
    "ConversationEntry",
    "ConversationStats",
    "ConversationWindow",
    "DecryptedPayload",
    "InboundEnvelope",
    "InboxMessage",
    "ProcessingRecord",
    "Role",
    "SyncPage",
]
