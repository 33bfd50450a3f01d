"""Repository layer package."""

from src.repositories.audit_repo import AuditRepo
from src.repositories.payment_cycle_repo import PaymentCycleRepo
from src.repositories.subscription_repo import SubscriptionRepo

__all__ = [
    "AuditRepo",
    "PaymentCycleRepo",
    "SubscriptionRepo",
]
