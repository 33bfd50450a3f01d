"""
Engine facade exposed to the action layer.

Every public coroutine runs one unit of work (one database transaction) and
returns a :class:`Result`; engine errors are handed back, never raised. The
renewal scan is the one autonomous entry point and is intended to be driven by
the scheduled Celery task in :mod:`src.worker.tasks`.
"""
from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import settings
from src.core.exceptions import (
    AuditWriteFailed,
    IllegalTransition,
    InvalidRequest,
    InvalidState,
    PaymentCycleNotFound,
    PersistenceUnavailable,
    SubscriptionEngineError,
)
from src.db.models.audit_log import AuditLogEntry
from src.db.models.enums import (
    AccountingStatus,
    AuditAction,
    AuditEntityType,
    PaymentStatus,
    RequestType,
    SubscriptionEvent,
    SubscriptionStatus,
)
from src.db.models.payment_cycle import PaymentCycle
from src.db.models.subscription import Subscription
from src.repositories.audit_repo import AuditRepo
from src.repositories.payment_cycle_repo import PaymentCycleRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.services import cycle_calculator
from src.services.audit import AuditRecorder
from src.services.clock import Clock, SystemClock
from src.services.payment_cycles import PaymentCycleManager
from src.services.results import BulkApprovalResult, RenewalScanResult, Result
from src.services.state_machine import SubscriptionStateMachine, require_actor


logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubscriptionEngine:
    """Subscription lifecycle and billing-cycle engine."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except (OperationalError, InterfaceError, DisconnectionError, OSError) as exc:
            raise PersistenceUnavailable(
                "Subscription store is unavailable", context={"reason": str(exc)}
            ) from exc

    async def _run(
        self, name: str, operation: Callable[[AsyncSession], Awaitable[T]]
    ) -> Result[T]:
        try:
            async with self._unit_of_work() as session:
                value = await operation(session)
        except SubscriptionEngineError as exc:
            if isinstance(exc, (AuditWriteFailed, PersistenceUnavailable)):
                logger.error(f"{name} failed: {exc.error_code} {exc.message}")
            else:
                logger.info(f"{name} rejected: {exc.error_code} {exc.message}")
            return Result.failure(exc)
        except (ValueError, TypeError, IntegrityError) as exc:
            # malformed caller input
            logger.info(f"{name} rejected: invalid request: {exc}")
            return Result.failure(
                InvalidRequest(f"Invalid request for {name}", context={"reason": str(exc)})
            )
        return Result.success(value)

    def _state_machine(self, session: AsyncSession) -> SubscriptionStateMachine:
        return SubscriptionStateMachine(session, self.clock.now())

    # Subscriptions

    async def create_subscription(
        self, values: dict[str, Any], actor_id: Optional[str]
    ) -> Result[Subscription]:
        """Register a new subscription request in ``PENDING``."""

        async def operation(session: AsyncSession) -> Subscription:
            actor = require_actor(actor_id)
            subscription = await SubscriptionRepo(session).create(
                **values,
                status=SubscriptionStatus.PENDING,
                created_by=actor,
            )
            await self._audit(
                session,
                actor,
                AuditAction.SUBSCRIPTION_CREATE,
                AuditEntityType.SUBSCRIPTION,
                subscription.id,
                values,
            )
            return subscription

        return await self._run("create_subscription", operation)

    async def get_subscription(self, subscription_id: UUID) -> Result[Subscription]:
        async def operation(session: AsyncSession) -> Subscription:
            return await self._state_machine(session).load(subscription_id)

        return await self._run("get_subscription", operation)

    async def list_subscriptions(
        self,
        status: Optional[SubscriptionStatus] = None,
        department_id: Optional[UUID] = None,
        request_type: Optional[RequestType] = None,
        limit: int = 100,
    ) -> Result[list[Subscription]]:
        async def operation(session: AsyncSession) -> list[Subscription]:
            return await SubscriptionRepo(session).list(
                status=status,
                department_id=department_id,
                request_type=request_type,
                limit=limit,
            )

        return await self._run("list_subscriptions", operation)

    async def transition(
        self,
        subscription_id: UUID,
        event: SubscriptionEvent | str,
        actor_id: Optional[str],
        payload: Optional[dict[str, Any]] = None,
    ) -> Result[Subscription]:
        async def operation(session: AsyncSession) -> Subscription:
            return await self._state_machine(session).apply(
                subscription_id, event, actor_id, payload
            )

        return await self._run(f"transition[{event}]", operation)

    async def bulk_approve(
        self,
        subscription_ids: list[UUID],
        actor_id: Optional[str],
        comments: Optional[str] = None,
    ) -> Result[BulkApprovalResult]:
        async def operation(session: AsyncSession) -> BulkApprovalResult:
            payload = {"comments": comments} if comments else None
            approved, skipped = await self._state_machine(session).apply_bulk(
                subscription_ids,
                SubscriptionEvent.APPROVE,
                actor_id,
                AuditAction.BULK_SUBSCRIPTION_APPROVE,
                payload,
            )
            return BulkApprovalResult(approved=approved, skipped=skipped)

        return await self._run("bulk_approve", operation)

    async def update_payment_status(
        self,
        subscription_id: UUID,
        payment_status: PaymentStatus | str,
        actor_id: Optional[str],
    ) -> Result[Subscription]:
        return await self._update_secondary_status(
            subscription_id,
            actor_id,
            AuditAction.SUBSCRIPTION_PAYMENT_UPDATE,
            "payment_status",
            PaymentStatus,
            payment_status,
        )

    async def update_accounting_status(
        self,
        subscription_id: UUID,
        accounting_status: AccountingStatus | str,
        actor_id: Optional[str],
    ) -> Result[Subscription]:
        return await self._update_secondary_status(
            subscription_id,
            actor_id,
            AuditAction.SUBSCRIPTION_ACCOUNTING_UPDATE,
            "accounting_status",
            AccountingStatus,
            accounting_status,
        )

    async def _update_secondary_status(
        self,
        subscription_id: UUID,
        actor_id: Optional[str],
        action: AuditAction,
        field: str,
        enum_cls: type[Enum],
        raw_value: Any,
    ) -> Result[Subscription]:
        # payment and accounting status are not gated by the state machine
        async def operation(session: AsyncSession) -> Subscription:
            actor = require_actor(actor_id)
            value = enum_cls(raw_value)
            subscription = await self._state_machine(session).load(subscription_id, lock=True)
            subscription = await SubscriptionRepo(session).update_fields(
                subscription, **{field: value}
            )
            await self._audit(
                session,
                actor,
                action,
                AuditEntityType.SUBSCRIPTION,
                subscription.id,
                {field: value.value},
            )
            return subscription

        return await self._run(action.value, operation)

    async def soft_delete(
        self, subscription_id: UUID, actor_id: Optional[str]
    ) -> Result[Subscription]:
        """Hide a subscription that has reached a terminal status."""

        async def operation(session: AsyncSession) -> Subscription:
            actor = require_actor(actor_id)
            subscription = await self._state_machine(session).load(subscription_id, lock=True)
            if not subscription.status.is_terminal:
                raise IllegalTransition(
                    f"Cannot delete a subscription in status {subscription.status.value}",
                    context={"subscription_id": str(subscription_id)},
                )
            subscription = await SubscriptionRepo(session).soft_delete(
                subscription, self.clock.now()
            )
            await self._audit(
                session,
                actor,
                AuditAction.SUBSCRIPTION_DELETE,
                AuditEntityType.SUBSCRIPTION,
                subscription.id,
                {"status": subscription.status.value, "tool_name": subscription.tool_name},
            )
            return subscription

        return await self._run("soft_delete", operation)

    # Payment cycles

    async def list_cycles(self, subscription_id: UUID) -> Result[list[PaymentCycle]]:
        """Cycles of one subscription ordered by start date."""

        async def operation(session: AsyncSession) -> list[PaymentCycle]:
            await self._state_machine(session).load(subscription_id)
            return await PaymentCycleManager(session).list_cycles(subscription_id)

        return await self._run("list_cycles", operation)

    async def record_payment(
        self,
        cycle_id: UUID,
        actor_id: Optional[str],
        paid_at: Optional[dt.datetime] = None,
    ) -> Result[PaymentCycle]:
        async def operation(session: AsyncSession) -> PaymentCycle:
            actor = require_actor(actor_id)
            manager = PaymentCycleManager(session)
            cycle = await self._load_cycle(session, cycle_id)
            timestamp = paid_at or self.clock.now()
            cycle = await manager.record_payment(cycle, timestamp, recorded_by=actor)
            await self._audit(
                session,
                actor,
                AuditAction.PAYMENT_RECORD,
                AuditEntityType.PAYMENT_CYCLE,
                cycle.id,
                {
                    "subscription_id": cycle.subscription_id,
                    "cycle_number": cycle.cycle_number,
                    "payment_recorded_at": timestamp,
                },
            )
            return cycle

        return await self._run("record_payment", operation)

    async def cancel_cycle(
        self,
        cycle_id: UUID,
        actor_id: Optional[str],
        reason: Optional[str] = None,
    ) -> Result[PaymentCycle]:
        async def operation(session: AsyncSession) -> PaymentCycle:
            actor = require_actor(actor_id)
            manager = PaymentCycleManager(session)
            cycle = await self._load_cycle(session, cycle_id)
            cycle = await manager.cancel_cycle(cycle, reason, self.clock.now())
            await self._audit(
                session,
                actor,
                AuditAction.PAYMENT_CYCLE_CANCEL,
                AuditEntityType.PAYMENT_CYCLE,
                cycle.id,
                {
                    "subscription_id": cycle.subscription_id,
                    "cycle_number": cycle.cycle_number,
                    "reason": reason,
                },
            )
            return cycle

        return await self._run("cancel_cycle", operation)

    async def approve_renewal(
        self, cycle_id: UUID, actor_id: Optional[str]
    ) -> Result[PaymentCycle]:
        """Approve a renewal cycle opened by the scan.

        An approved renewal stays billable and can no longer be rejected with
        ``renewal_reject``; cancelling the subscription still cancels it.
        """

        async def operation(session: AsyncSession) -> PaymentCycle:
            actor = require_actor(actor_id)
            cycle = await self._load_cycle(session, cycle_id)
            subscription = await self._state_machine(session).load(
                cycle.subscription_id, lock=True
            )
            # re-read under the subscription lock
            cycle = await self._load_cycle(session, cycle_id)
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise InvalidState(
                    f"Cannot approve a renewal for a {subscription.status.value} subscription",
                    context={"cycle_id": str(cycle_id)},
                )
            cycle = await PaymentCycleManager(session).approve_renewal(
                cycle, actor, self.clock.now()
            )
            await self._audit(
                session,
                actor,
                AuditAction.RENEWAL_APPROVE,
                AuditEntityType.PAYMENT_CYCLE,
                cycle.id,
                {
                    "subscription_id": cycle.subscription_id,
                    "cycle_number": cycle.cycle_number,
                    "renewal_approved_at": cycle.renewal_approved_at,
                },
            )
            return cycle

        return await self._run("approve_renewal", operation)

    async def run_renewal_scan(
        self, now: Optional[dt.datetime | dt.date] = None
    ) -> Result[RenewalScanResult]:
        """Open renewal cycles for every ACTIVE subscription inside its window.

        Each subscription is handled in its own transaction, so one failure
        does not block the rest. Re-running the scan on the same day opens
        nothing new.
        """
        today = cycle_calculator.to_date(now or self.clock.now())

        async def active_ids(session: AsyncSession) -> list[UUID]:
            return await SubscriptionRepo(session).active_ids()

        listed = await self._run("renewal_scan", active_ids)
        if not listed.ok:
            return Result.failure(listed.error)

        scan = RenewalScanResult()
        for subscription_id in listed.value or []:
            outcome = await self._run(
                f"renewal_scan[{subscription_id}]",
                lambda session, sid=subscription_id: self._renew_one(session, sid, today),
            )
            if outcome.ok and outcome.value is not None:
                scan.opened.append(outcome.value)
            else:
                scan.skipped.append(subscription_id)

        logger.info(
            f"Renewal scan for {today}: {len(scan.opened)} opened, {len(scan.skipped)} skipped"
        )
        return Result.success(scan)

    async def _renew_one(
        self, session: AsyncSession, subscription_id: UUID, today: dt.date
    ) -> Optional[UUID]:
        subscription = await SubscriptionRepo(session).get(subscription_id, lock=True)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            return None

        manager = PaymentCycleManager(session)
        latest = await manager.latest_cycle(subscription_id)
        if latest is None:
            logger.debug(f"Subscription {subscription_id} has no payment cycles, skipping")
            return None
        if not cycle_calculator.should_create_next_cycle(
            latest.cycle_end_date, subscription.billing_frequency, today
        ):
            return None

        cycle = await manager.open_renewal_cycle(subscription, latest)
        await self._audit(
            session,
            settings.SYSTEM_ACTOR_ID,
            AuditAction.PAYMENT_CYCLE_CREATE,
            AuditEntityType.PAYMENT_CYCLE,
            cycle.id,
            {
                "subscription_id": subscription_id,
                "cycle_number": cycle.cycle_number,
                "cycle_start_date": cycle.cycle_start_date,
                "cycle_end_date": cycle.cycle_end_date,
            },
        )
        return cycle.id

    # Audit trail

    async def list_audit_entries(
        self,
        entity_type: Optional[AuditEntityType] = None,
        entity_id: Optional[UUID] = None,
        action: Optional[AuditAction] = None,
        limit: int = 100,
    ) -> Result[list[AuditLogEntry]]:
        async def operation(session: AsyncSession) -> list[AuditLogEntry]:
            return await AuditRepo(session).list(
                entity_type=entity_type.value if entity_type else None,
                entity_id=entity_id,
                action=action.value if action else None,
                limit=limit,
            )

        return await self._run("list_audit_entries", operation)

    # Helpers

    async def _load_cycle(self, session: AsyncSession, cycle_id: UUID) -> PaymentCycle:
        cycle = await PaymentCycleRepo(session).get(cycle_id)
        if cycle is None:
            raise PaymentCycleNotFound(
                "Payment cycle not found", context={"cycle_id": str(cycle_id)}
            )
        return cycle

    async def _audit(
        self,
        session: AsyncSession,
        actor_id: str,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: Optional[UUID],
        changes: Optional[dict[str, Any]],
    ) -> UUID:
        entry_id = await AuditRecorder(session).record(
            actor_id, action, entity_type, entity_id, changes
        )
        if entry_id is None:
            raise AuditWriteFailed(
                f"Audit entry for {action.value} could not be written; operation rolled back"
            )
        return entry_id
