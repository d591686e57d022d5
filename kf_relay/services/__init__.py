from kf_relay.services.callback_service import CallbackOrchestrator, CallbackOutcome
from kf_relay.services.conversation_service import ConversationStore
from kf_relay.services.dispatch_service import ReplyDispatcher
from kf_relay.services.inbox_service import InboxSynchronizer
from kf_relay.services.ledger import DedupLedger
from kf_relay.services.state_machine import CallbackState, InvalidTransitionError, transition

__all__ = [
    "CallbackOrchestrator",
    "CallbackOutcome",
    "CallbackState",
    "ConversationStore",
    "DedupLedger",
    "InboxSynchronizer",
    "InvalidTransitionError",
    "ReplyDispatcher",
    "transition",
]
