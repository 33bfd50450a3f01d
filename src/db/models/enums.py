"""Closed enumerations shared by the models, services and schemas."""
from __future__ import annotations

from enum import Enum


class SubscriptionStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        SubscriptionStatus.REJECTED,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.CANCELLED,
    }
)


class BillingFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    USAGE_BASED = "USAGE_BASED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PAID = "PAID"
    DECLINED = "DECLINED"


class AccountingStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"


class RequestType(str, Enum):
    INVOICE = "INVOICE"
    QUOTATION = "QUOTATION"


class SubscriptionEvent(str, Enum):
    """Events accepted by the subscription state machine."""

    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    EXPIRE = "expire"
    RENEWAL_REJECT = "renewal_reject"


class AuditAction(str, Enum):
    SUBSCRIPTION_CREATE = "subscription.create"
    SUBSCRIPTION_APPROVE = "subscription.approve"
    SUBSCRIPTION_REJECT = "subscription.reject"
    SUBSCRIPTION_CANCEL = "subscription.cancel"
    SUBSCRIPTION_EXPIRE = "subscription.expire"
    SUBSCRIPTION_DELETE = "subscription.delete"
    SUBSCRIPTION_PAYMENT_UPDATE = "subscription.payment.update"
    SUBSCRIPTION_ACCOUNTING_UPDATE = "subscription.accounting.update"
    BULK_SUBSCRIPTION_APPROVE = "bulk.subscription.approve"
    PAYMENT_CYCLE_CREATE = "payment_cycle.create"
    PAYMENT_RECORD = "payment_cycle.payment.record"
    PAYMENT_CYCLE_CANCEL = "payment_cycle.cancel"
    RENEWAL_APPROVE = "payment_cycle.renewal.approve"
    RENEWAL_REJECT = "payment_cycle.renewal.reject"


class AuditEntityType(str, Enum):
    SUBSCRIPTION = "subscription"
    PAYMENT_CYCLE = "payment_cycle"
    SYSTEM = "system"
