"""Subscription model owned by a requesting department."""
from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Date, DateTime, Enum, Integer, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base
from src.db.models.enums import (
    AccountingStatus,
    BillingFrequency,
    PaymentStatus,
    RequestType,
    SubscriptionStatus,
)


def _enum_column(enum_cls: type, name: str) -> Enum:
    # VARCHAR-backed, no native database enum type
    return Enum(enum_cls, name=name, native_enum=False, length=32)


class Subscription(Base):
    """A department's request for a recurring tool or service."""

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_type: Mapped[RequestType] = mapped_column(
        _enum_column(RequestType, "request_type"), nullable=False, index=True
    )
    tool_name: Mapped[str] = mapped_column(String, nullable=False)
    vendor_name: Mapped[str] = mapped_column(String, nullable=False)
    department_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    billing_frequency: Mapped[BillingFrequency] = mapped_column(
        _enum_column(BillingFrequency, "billing_frequency"), nullable=False
    )

    status: Mapped[SubscriptionStatus] = mapped_column(
        _enum_column(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.PENDING,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.IN_PROGRESS,
    )
    accounting_status: Mapped[AccountingStatus] = mapped_column(
        _enum_column(AccountingStatus, "accounting_status"),
        nullable=False,
        default=AccountingStatus.PENDING,
    )

    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)

    created_by: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    deleted_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    cycles: Mapped[List["PaymentCycle"]] = relationship(
        "PaymentCycle",
        back_populates="subscription",
        order_by="PaymentCycle.cycle_start_date",
        lazy="raise",
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Subscription {self.id} status={self.status.value}>"
