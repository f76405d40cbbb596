import pytest

from tiaen.services.pipeline_state import (
    InvalidTransitionError,
    PipelineState,
    can_transition,
    is_terminal,
    transition,
)


class TestValidTransitions:
    def test_happy_path_is_a_chain(self):
        path = [
            PipelineState.RECEIVED,
            PipelineState.NORMALIZED,
            PipelineState.IDENTIFIED,
            PipelineState.CONVERSATION_RESOLVED,
            PipelineState.MESSAGE_PERSISTED,
            PipelineState.AUTOMATION_EVALUATED,
            PipelineState.RETRIEVING,
            PipelineState.RESPONDING,
            PipelineState.DISPATCHED,
            PipelineState.DONE,
        ]
        state = path[0]
        for nxt in path[1:]:
            state = transition(state, nxt)
        assert state == PipelineState.DONE

    def test_received_can_be_dropped(self):
        assert transition(PipelineState.RECEIVED, PipelineState.DROPPED) == PipelineState.DROPPED

    def test_claimed_automation_ends_at_done(self):
        assert can_transition(PipelineState.AUTOMATION_EVALUATED, PipelineState.DONE)

    def test_any_running_state_can_end_at_done(self):
        for state in PipelineState:
            if not is_terminal(state):
                assert can_transition(state, PipelineState.DONE)


class TestInvalidTransitions:
    def test_cannot_skip_persistence(self):
        with pytest.raises(InvalidTransitionError):
            transition(PipelineState.CONVERSATION_RESOLVED, PipelineState.AUTOMATION_EVALUATED)

    def test_only_received_can_be_dropped(self):
        with pytest.raises(InvalidTransitionError):
            transition(PipelineState.MESSAGE_PERSISTED, PipelineState.DROPPED)

    def test_terminal_states_have_no_exit(self):
        with pytest.raises(InvalidTransitionError):
            transition(PipelineState.DONE, PipelineState.RECEIVED)
        with pytest.raises(InvalidTransitionError):
            transition(PipelineState.DROPPED, PipelineState.NORMALIZED)

    def test_error_message(self):
        with pytest.raises(InvalidTransitionError, match="done -> received"):
            transition(PipelineState.DONE, PipelineState.RECEIVED)
