"""Payment cycle model: one billable window of an active subscription."""
from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base


class PaymentCycle(Base):
    """A ``[cycle_start_date, cycle_end_date]`` window, end inclusive."""

    __tablename__ = "payment_cycles"
    __table_args__ = (
        UniqueConstraint("subscription_id", "cycle_number", name="uq_payment_cycles_number"),
        UniqueConstraint(
            "subscription_id", "cycle_start_date", name="uq_payment_cycles_start"
        ),
        CheckConstraint("cycle_end_date >= cycle_start_date", name="ck_payment_cycles_dates"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id"), nullable=False, index=True
    )
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False)
    cycle_start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    cycle_end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    invoice_deadline: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    payment_recorded_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_recorded_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cancelled_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    renewal_approved_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    renewal_approved_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    subscription: Mapped["Subscription"] = relationship(
        "Subscription", back_populates="cycles", lazy="raise"
    )

    @property
    def is_paid(self) -> bool:
        return self.payment_recorded_at is not None

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def is_renewal_approved(self) -> bool:
        return self.renewal_approved_at is not None

    @property
    def is_open(self) -> bool:
        return not (self.is_paid or self.is_cancelled)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"<PaymentCycle {self.id} #{self.cycle_number} "
            f"{self.cycle_start_date}..{self.cycle_end_date}>"
        )
