"""Tri-state results returned by every remote-facing operation.

``Result`` is a tagged union of ``Success``, ``Error`` and
``UserRecoverableError``. The last one means the user can fix the problem
(usually by re-authorizing) and must stay distinguishable from a plain
failure all the way up to the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar, Union

from .base import AuthRecoverableError

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Error:
    exception: Exception

    @property
    def message(self) -> str:
        return str(self.exception)

    def unwrap(self):
        raise self.exception


@dataclass(frozen=True)
class UserRecoverableError:
    exception: Exception

    @property
    def message(self) -> str:
        return str(self.exception)

    def unwrap(self):
        raise self.exception


Result = Union[Success[T], Error, UserRecoverableError]
Failure = Union[Error, UserRecoverableError]


def failure(exc: Exception) -> Failure:
    """Wrap an exception in the matching failure variant."""
    if isinstance(exc, AuthRecoverableError):
        return UserRecoverableError(exc)
    return Error(exc)


def match_result(
    result: "Result[T]",
    on_success: Callable[[T], R],
    on_error: Callable[[Exception], R],
    on_recoverable: Callable[[Exception], R],
) -> R:
    """Dispatch on a result; every variant must be handled."""
    if isinstance(result, Success):
        return on_success(result.value)
    if isinstance(result, UserRecoverableError):
        return on_recoverable(result.exception)
    if isinstance(result, Error):
        return on_error(result.exception)
    raise TypeError(f"Not a result: {result!r}")


class OperationState(Enum):
    """Lifecycle of a single repository operation."""
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SUCCESS = "success"
    ERROR = "error"
    USER_RECOVERABLE_ERROR = "user_recoverable_error"

    @classmethod
    def of(cls, result: "Result") -> "OperationState":
        """Terminal state for a finished result."""
        return match_result(
            result,
            on_success=lambda _: cls.SUCCESS,
            on_error=lambda _: cls.ERROR,
            on_recoverable=lambda _: cls.USER_RECOVERABLE_ERROR,
        )
