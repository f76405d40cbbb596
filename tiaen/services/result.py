from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    MALFORMED_EVENT = "malformed_event"
    TRANSIENT_STORE_ERROR = "transient_store_error"
    AUTOMATION_EXECUTION_ERROR = "automation_execution_error"
    RETRIEVAL_FAILED = "retrieval_failed"
    DISPATCH_FAILED = "dispatch_failed"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: Union[ErrorKind, str] = "unknown") -> "Result[T]":
        if isinstance(code, ErrorKind):
            code = code.value
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def failed_with(self, kind: ErrorKind) -> bool:
        return not self.ok and self.error_code == kind.value
