"""
Payment cycle manager.

The only component that creates or mutates :class:`PaymentCycle` rows. It
never writes audit entries itself; the operation that calls it owns the single
audit entry for the unit of work.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import AlreadyFinalized, DuplicateCycle, InvalidState
from src.db.models.enums import SubscriptionStatus
from src.db.models.payment_cycle import PaymentCycle
from src.db.models.subscription import Subscription
from src.repositories.payment_cycle_repo import PaymentCycleRepo
from src.services import cycle_calculator


logger = logging.getLogger(__name__)


class PaymentCycleManager:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repo = PaymentCycleRepo(session)

    async def list_cycles(self, subscription_id: UUID) -> list[PaymentCycle]:
        return await self.repo.list_for_subscription(subscription_id)

    async def latest_cycle(self, subscription_id: UUID) -> Optional[PaymentCycle]:
        return await self.repo.latest(subscription_id)

    async def open_cycles(self, subscription_id: UUID) -> list[PaymentCycle]:
        """Cycles that are neither paid nor cancelled."""
        cycles = await self.repo.list_for_subscription(subscription_id)
        return [cycle for cycle in cycles if cycle.is_open]

    async def pending_renewal_cycle(self, subscription_id: UUID) -> Optional[PaymentCycle]:
        latest = await self.repo.latest(subscription_id)
        if latest is None or latest.cycle_number <= 1 or not latest.is_open:
            return None
        # an approved renewal is settled and can no longer be rejected
        if latest.is_renewal_approved:
            return None
        return latest

    async def open_first_cycle(self, subscription: Subscription) -> PaymentCycle:
        """Create cycle #1 starting on the subscription's start date."""
        if await self.repo.count_for_subscription(subscription.id) > 0:
            raise InvalidState(
                "Subscription already has payment cycles",
                context={"subscription_id": str(subscription.id)},
            )

        window = cycle_calculator.first_cycle(
            subscription.start_date, subscription.billing_frequency
        )
        cycle = await self._insert(subscription, 1, window)
        logger.info(
            f"Opened first cycle {window.start}..{window.end} for subscription {subscription.id}"
        )
        return cycle

    async def open_renewal_cycle(
        self,
        subscription: Subscription,
        after_cycle: PaymentCycle,
    ) -> PaymentCycle:
        """Create the cycle that follows ``after_cycle``.

        Safe to call repeatedly: a second call for the same start date fails
        with :class:`DuplicateCycle` and leaves the store unchanged.
        """
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidState(
                f"Cannot open a renewal cycle for a {subscription.status.value} subscription",
                context={"subscription_id": str(subscription.id)},
            )

        window = cycle_calculator.next_cycle(
            after_cycle.cycle_end_date, subscription.billing_frequency
        )
        existing = await self.repo.covering(subscription.id, window.start)
        if existing is not None:
            raise DuplicateCycle(
                f"A payment cycle already covers {window.start}",
                context={
                    "subscription_id": str(subscription.id),
                    "cycle_id": str(existing.id),
                },
            )

        cycle = await self._insert(subscription, after_cycle.cycle_number + 1, window)
        logger.info(
            f"Opened renewal cycle #{cycle.cycle_number} {window.start}..{window.end} "
            f"for subscription {subscription.id}"
        )
        return cycle

    async def record_payment(
        self,
        cycle: PaymentCycle,
        timestamp: dt.datetime,
        recorded_by: Optional[str] = None,
    ) -> PaymentCycle:
        if cycle.is_cancelled:
            raise AlreadyFinalized(
                "Cannot record payment for a cancelled cycle",
                context={"cycle_id": str(cycle.id)},
            )
        if cycle.is_paid:
            raise AlreadyFinalized(
                "Payment already recorded for this cycle",
                context={"cycle_id": str(cycle.id)},
            )
        cycle.payment_recorded_at = timestamp
        cycle.payment_recorded_by = recorded_by
        return await self.repo.save(cycle)

    async def approve_renewal(
        self,
        cycle: PaymentCycle,
        approved_by: str,
        timestamp: Optional[dt.datetime] = None,
    ) -> PaymentCycle:
        """Confirm that a renewal cycle opened by the scan should be billed."""
        if cycle.cycle_number <= 1:
            raise InvalidState(
                "Only renewal cycles can be approved",
                context={"cycle_id": str(cycle.id)},
            )
        if cycle.is_cancelled or cycle.is_paid or cycle.is_renewal_approved:
            raise AlreadyFinalized(
                "Renewal cycle is already approved, cancelled or paid",
                context={"cycle_id": str(cycle.id)},
            )
        cycle.renewal_approved_at = timestamp or dt.datetime.now(dt.timezone.utc)
        cycle.renewal_approved_by = approved_by
        return await self.repo.save(cycle)

    async def cancel_cycle(
        self,
        cycle: PaymentCycle,
        reason: Optional[str] = None,
        timestamp: Optional[dt.datetime] = None,
    ) -> PaymentCycle:
        if cycle.is_cancelled:
            raise AlreadyFinalized(
                "Payment cycle is already cancelled",
                context={"cycle_id": str(cycle.id)},
            )
        cycle.cancelled_at = timestamp or dt.datetime.now(dt.timezone.utc)
        cycle.cancellation_reason = reason
        return await self.repo.save(cycle)

    async def _insert(
        self,
        subscription: Subscription,
        cycle_number: int,
        window: cycle_calculator.CycleWindow,
    ) -> PaymentCycle:
        cycle = PaymentCycle(
            subscription_id=subscription.id,
            cycle_number=cycle_number,
            cycle_start_date=window.start,
            cycle_end_date=window.end,
            invoice_deadline=window.invoice_deadline,
        )
        try:
            return await self.repo.insert(cycle)
        except IntegrityError as exc:
            # a concurrent writer inserted the same cycle first
            raise DuplicateCycle(
                f"A payment cycle already covers {window.start}",
                context={"subscription_id": str(subscription.id)},
            ) from exc
