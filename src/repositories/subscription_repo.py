"""Repository utilities for subscriptions."""
from __future__ import annotations

import datetime as dt
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.enums import RequestType, SubscriptionStatus
from src.db.models.subscription import Subscription


class SubscriptionRepo:
    """Data-access helpers for :class:`Subscription`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, subscription_id: UUID, lock: bool = False) -> Subscription | None:
        query = (
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, **values: Any) -> Subscription:
        subscription = Subscription(**values)
        self.session.add(subscription)
        await self.session.flush()
        await self.session.refresh(subscription)
        return subscription

    async def list(
        self,
        status: SubscriptionStatus | None = None,
        department_id: UUID | None = None,
        request_type: RequestType | None = None,
        include_deleted: bool = False,
        limit: int = 100,
    ) -> list[Subscription]:
        query = select(Subscription).order_by(Subscription.created_at.desc())
        if status is not None:
            query = query.where(Subscription.status == status)
        if department_id is not None:
            query = query.where(Subscription.department_id == department_id)
        if request_type is not None:
            query = query.where(Subscription.request_type == request_type)
        if not include_deleted:
            query = query.where(Subscription.deleted_at.is_(None))
        result = await self.session.execute(query.limit(limit))
        return list(result.scalars().all())

    async def active_ids(self) -> list[UUID]:
        result = await self.session.execute(
            select(Subscription.id).where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def compare_and_set_status(
        self,
        subscription_id: UUID,
        expected: SubscriptionStatus,
        new: SubscriptionStatus,
    ) -> bool:
        """Move ``expected`` to ``new`` atomically.

        Returns ``False`` when another writer changed the status first.
        """
        result = await self.session.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == expected,
            )
            .values(status=new, version=Subscription.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_fields(self, subscription: Subscription, **values: Any) -> Subscription:
        for field, value in values.items():
            setattr(subscription, field, value)
        subscription.version = subscription.version + 1
        self.session.add(subscription)
        await self.session.flush()
        await self.session.refresh(subscription)
        return subscription

    async def soft_delete(self, subscription: Subscription, when: dt.datetime) -> Subscription:
        return await self.update_fields(subscription, deleted_at=when)
