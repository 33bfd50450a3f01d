"""Repository utilities for payment cycles."""
from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.payment_cycle import PaymentCycle


class PaymentCycleRepo:
    """Data-access helpers for :class:`PaymentCycle`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, cycle_id: UUID) -> PaymentCycle | None:
        result = await self.session.execute(
            select(PaymentCycle)
            .where(PaymentCycle.id == cycle_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_subscription(self, subscription_id: UUID) -> list[PaymentCycle]:
        result = await self.session.execute(
            select(PaymentCycle)
            .where(PaymentCycle.subscription_id == subscription_id)
            .order_by(PaymentCycle.cycle_start_date)
        )
        return list(result.scalars().all())

    async def latest(self, subscription_id: UUID) -> PaymentCycle | None:
        result = await self.session.execute(
            select(PaymentCycle)
            .where(PaymentCycle.subscription_id == subscription_id)
            .order_by(PaymentCycle.cycle_start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_for_subscription(self, subscription_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(PaymentCycle)
            .where(PaymentCycle.subscription_id == subscription_id)
        )
        return int(result.scalar_one())

    async def covering(self, subscription_id: UUID, day: dt.date) -> PaymentCycle | None:
        """Return the cycle whose window contains ``day``, if any."""
        result = await self.session.execute(
            select(PaymentCycle).where(
                PaymentCycle.subscription_id == subscription_id,
                PaymentCycle.cycle_start_date <= day,
                PaymentCycle.cycle_end_date >= day,
            )
        )
        return result.scalars().first()

    async def insert(self, cycle: PaymentCycle) -> PaymentCycle:
        self.session.add(cycle)
        await self.session.flush()
        await self.session.refresh(cycle)
        return cycle

    async def save(self, cycle: PaymentCycle) -> PaymentCycle:
        self.session.add(cycle)
        await self.session.flush()
        return cycle
