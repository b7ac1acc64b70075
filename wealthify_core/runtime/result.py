"""
Tagged result returned by pipeline operations.

Callers either match on the variant:

    match await pipeline.get("/accounts"):
        case Ok(value=body):
            ...
        case Err(error=Unauthorized()):
            ...

or call unwrap() to turn an Err back into a raised ApiError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import ApiError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying the response body."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the normalized error."""

    error: ApiError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]
