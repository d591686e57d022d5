from enum import Enum


class CallbackState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    SYNCED = "synced"
    DEDUPLICATED = "deduplicated"
    RESPONDED = "responded"
    RECORDED = "recorded"
    SKIPPED = "skipped"
    FAILED = "failed"


_EXITS = [CallbackState.SKIPPED, CallbackState.FAILED]

VALID_TRANSITIONS = {
    CallbackState.RECEIVED: [CallbackState.VERIFIED, *_EXITS],
    CallbackState.VERIFIED: [CallbackState.SYNCED, *_EXITS],
    CallbackState.SYNCED: [CallbackState.DEDUPLICATED, *_EXITS],
    CallbackState.DEDUPLICATED: [CallbackState.RESPONDED, *_EXITS],
    CallbackState.RESPONDED: [CallbackState.RECORDED, *_EXITS],
    CallbackState.RECORDED: [],
    CallbackState.SKIPPED: [],
    CallbackState.FAILED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: CallbackState, to_state: CallbackState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: CallbackState, to_state: CallbackState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: CallbackState, to_state: CallbackState) -> CallbackState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state

