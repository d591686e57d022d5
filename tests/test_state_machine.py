import pytest

from kf_relay.services.state_machine import (
    VALID_TRANSITIONS,
    CallbackState,
    InvalidTransitionError,
    can_transition,
    transition,
)

PIPELINE = [
    CallbackState.RECEIVED,
    CallbackState.VERIFIED,
    CallbackState.SYNCED,
    CallbackState.DEDUPLICATED,
    CallbackState.RESPONDED,
    CallbackState.RECORDED,
]


class TestValidTransitions:
    def test_happy_path(self):
        state = PIPELINE[0]
        for target in PIPELINE[1:]:
            state = transition(state, target)
        assert state == CallbackState.RECORDED

    @pytest.mark.parametrize("state", PIPELINE[:-1])
    def test_any_active_state_can_exit(self, state):
        assert can_transition(state, CallbackState.SKIPPED)
        assert can_transition(state, CallbackState.FAILED)


class TestInvalidTransitions:
    def test_cannot_skip_a_step(self):
        with pytest.raises(InvalidTransitionError):
            transition(CallbackState.RECEIVED, CallbackState.SYNCED)

    def test_cannot_go_backwards(self):
        with pytest.raises(InvalidTransitionError):
            transition(CallbackState.SYNCED, CallbackState.VERIFIED)

    @pytest.mark.parametrize("state", [CallbackState.RECORDED, CallbackState.SKIPPED, CallbackState.FAILED])
    def test_terminal_states_have_no_exits(self, state):
        assert VALID_TRANSITIONS[state] == []
        with pytest.raises(InvalidTransitionError):
            transition(state, CallbackState.FAILED)

    def test_error_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(CallbackState.RECORDED, CallbackState.RECEIVED)
        assert "recorded -> received" in str(exc_info.value)
