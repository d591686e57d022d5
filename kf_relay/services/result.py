from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from kf_relay.services.errors import RelayError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of a check whose failure is an answer for the caller, not an error."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @staticmethod
    def from_error(error: RelayError, code: str) -> "Result[T]":
        return Result.failure(error.message, code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

