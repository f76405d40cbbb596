from tiaen.services.event_normalizer import IgnoredEvent, InboundEvent, normalize
from tiaen.services.pipeline import PipelineCoordinator, PipelineOutcome
from tiaen.services.pipeline_state import InvalidTransitionError, PipelineState
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import SqlStore, Store, StoreError

__all__ = [
    "ErrorKind",
    "IgnoredEvent",
    "InboundEvent",
    "InvalidTransitionError",
    "PipelineCoordinator",
    "PipelineOutcome",
    "PipelineState",
    "Result",
    "SqlStore",
    "Store",
    "StoreError",
    "normalize",
]
