from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from inbox_pipeline.application.exceptions import AppError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of a public pipeline call: a value or a typed error, never both."""

    value: T | None = None
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> Result[T]:
        return cls(error=error)
