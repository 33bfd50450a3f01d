"""Typed results returned across the engine boundary."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar
from uuid import UUID

from src.core.exceptions import SubscriptionEngineError


T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Either a value or an engine error, never both."""

    value: Optional[T] = None
    error: Optional[SubscriptionEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: SubscriptionEngineError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class RenewalScanResult:
    opened: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)


@dataclass
class BulkApprovalResult:
    approved: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
