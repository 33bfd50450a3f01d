"""
Error taxonomy for the subscription engine.

Every engine error carries a machine-readable ``error_code``, the HTTP status
the API layer should answer with, and optional ``context`` describing the
records involved. The engine facade catches these and hands them back inside a
:class:`~src.services.results.Result`; they never reach the caller as raised
exceptions.
"""
from __future__ import annotations

from typing import Any


class SubscriptionEngineError(Exception):
    """Base class for all engine errors."""

    error_code = "ENGINE_ERROR"
    status_code = 400

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to an API response body."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class IllegalTransition(SubscriptionEngineError):
    """The requested event is not valid from the subscription's current status."""

    error_code = "ILLEGAL_TRANSITION"
    status_code = 409


class InvalidState(SubscriptionEngineError):
    """A cycle operation was attempted on a subscription in the wrong shape."""

    error_code = "INVALID_STATE"
    status_code = 409


class DuplicateCycle(SubscriptionEngineError):
    """A payment cycle already covers the computed start date."""

    error_code = "DUPLICATE_CYCLE"
    status_code = 409


class AlreadyFinalized(SubscriptionEngineError):
    """The payment cycle is already cancelled or paid."""

    error_code = "ALREADY_FINALIZED"
    status_code = 409


class AuditWriteFailed(SubscriptionEngineError):
    """The audit insert failed; the enclosing transaction was rolled back."""

    error_code = "AUDIT_WRITE_FAILED"
    status_code = 500


class PersistenceUnavailable(SubscriptionEngineError):
    """The backing store could not be reached. Safe to retry."""

    error_code = "PERSISTENCE_UNAVAILABLE"
    status_code = 503


class InvalidActor(SubscriptionEngineError):
    """No actor id was supplied for a mutating operation."""

    error_code = "INVALID_ACTOR"
    status_code = 400


class SubscriptionNotFound(SubscriptionEngineError):
    error_code = "SUBSCRIPTION_NOT_FOUND"
    status_code = 404


class PaymentCycleNotFound(SubscriptionEngineError):
    error_code = "PAYMENT_CYCLE_NOT_FOUND"
    status_code = 404


class InvalidRequest(SubscriptionEngineError):
    """The caller supplied values the engine cannot store."""

    error_code = "INVALID_REQUEST"
    status_code = 400
