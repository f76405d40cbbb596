from enum import Enum


class PipelineState(str, Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    IDENTIFIED = "identified"
    CONVERSATION_RESOLVED = "conversation_resolved"
    MESSAGE_PERSISTED = "message_persisted"
    AUTOMATION_EVALUATED = "automation_evaluated"
    RETRIEVING = "retrieving"
    RESPONDING = "responding"
    DISPATCHED = "dispatched"
    DONE = "done"
    DROPPED = "dropped"


TERMINAL_STATES = frozenset({PipelineState.DONE, PipelineState.DROPPED})

# Every non-terminal state may also end the run at DONE with a recorded error.
VALID_TRANSITIONS = {
    PipelineState.RECEIVED: [PipelineState.NORMALIZED, PipelineState.DROPPED, PipelineState.DONE],
    PipelineState.NORMALIZED: [PipelineState.IDENTIFIED, PipelineState.DONE],
    PipelineState.IDENTIFIED: [PipelineState.CONVERSATION_RESOLVED, PipelineState.DONE],
    PipelineState.CONVERSATION_RESOLVED: [PipelineState.MESSAGE_PERSISTED, PipelineState.DONE],
    PipelineState.MESSAGE_PERSISTED: [PipelineState.AUTOMATION_EVALUATED, PipelineState.DONE],
    PipelineState.AUTOMATION_EVALUATED: [PipelineState.RETRIEVING, PipelineState.DONE],
    PipelineState.RETRIEVING: [PipelineState.RESPONDING, PipelineState.DONE],
    PipelineState.RESPONDING: [PipelineState.DISPATCHED, PipelineState.DONE],
    PipelineState.DISPATCHED: [PipelineState.DONE],
    PipelineState.DONE: [],
    PipelineState.DROPPED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: PipelineState, to_state: PipelineState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: PipelineState, to_state: PipelineState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: PipelineState, to_state: PipelineState) -> PipelineState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def is_terminal(state: PipelineState) -> bool:
    return state in TERMINAL_STATES
