"""Success/failure result type returned at the pipeline's public boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")


class ErrorKind(Enum):
    """Failure categories a caller can present differently."""
    TRANSPORT = "transport"
    UPSTREAM = "upstream"
    TIMEOUT = "timeout"
    DECODE = "decode"
    COMMIT = "commit"
    VALIDATION = "validation"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def is_success(self) -> bool:
        return True

    @property
    def is_failure(self) -> bool:
        return False

    def get_or_none(self) -> Optional[T]:
        return self.value

    def get_or_raise(self) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        return Success(fn(self.value))

    def on_success(self, fn: Callable[[T], Any]) -> "Result[T]":
        fn(self.value)
        return self

    def on_failure(self, fn: Callable[[Exception], Any]) -> "Result[T]":
        return self


@dataclass(frozen=True)
class Failure:
    error: Exception

    @property
    def is_success(self) -> bool:
        return False

    @property
    def is_failure(self) -> bool:
        return True

    @property
    def kind(self) -> Optional[ErrorKind]:
        """Error category, or None for errors outside the pipeline taxonomy."""
        return getattr(self.error, "kind", None)

    @property
    def message(self) -> str:
        return str(self.error)

    def get_or_none(self) -> None:
        return None

    def get_or_raise(self):
        raise self.error

    def map(self, fn: Callable[[Any], Any]) -> "Failure":
        return self

    def on_success(self, fn: Callable[[Any], Any]) -> "Failure":
        return self

    def on_failure(self, fn: Callable[[Exception], Any]) -> "Failure":
        fn(self.error)
        return self


Result = Union[Success[T], Failure]
