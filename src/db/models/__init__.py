"""Database models package exports."""

from src.db.models.audit_log import AuditLogEntry
from src.db.models.payment_cycle import PaymentCycle
from src.db.models.subscription import Subscription

__all__ = [
    "AuditLogEntry",
    "PaymentCycle",
    "Subscription",
]
