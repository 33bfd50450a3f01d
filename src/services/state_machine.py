"""
Subscription state machine.

``TRANSITIONS`` is the single source of truth for which events are legal from
which status, where they lead, which payment-cycle side effects they trigger
and which audit action records them. Any (status, event) pair missing from the
table is an :class:`IllegalTransition`.

Each transition runs inside the caller's transaction:

1. lock and read the subscription,
2. look the pair up in ``TRANSITIONS``,
3. compare-and-set the persisted status (a concurrent writer makes this fail),
4. run the side effects through :class:`PaymentCycleManager`,
5. write exactly one audit entry through :class:`AuditRecorder`.

A failed audit write raises :class:`AuditWriteFailed`, which rolls the whole
transaction back together with the status change and any cycle writes.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import (
    AuditWriteFailed,
    IllegalTransition,
    InvalidActor,
    InvalidState,
    SubscriptionNotFound,
)
from src.db.models.enums import (
    AuditAction,
    AuditEntityType,
    SubscriptionEvent,
    SubscriptionStatus,
)
from src.db.models.subscription import Subscription
from src.repositories.subscription_repo import SubscriptionRepo
from src.services.audit import AuditRecorder
from src.services.payment_cycles import PaymentCycleManager


logger = logging.getLogger(__name__)


class SideEffect(str, Enum):
    OPEN_FIRST_CYCLE = "open_first_cycle"
    CANCEL_OPEN_CYCLES = "cancel_open_cycles"
    CANCEL_RENEWAL_CYCLE = "cancel_renewal_cycle"


@dataclass(frozen=True)
class TransitionRule:
    target: SubscriptionStatus
    audit_action: AuditAction
    side_effects: tuple[SideEffect, ...] = ()
    # audited as the system actor rather than the caller
    system_triggered: bool = False


TRANSITIONS: dict[tuple[SubscriptionStatus, SubscriptionEvent], TransitionRule] = {
    (SubscriptionStatus.PENDING, SubscriptionEvent.APPROVE): TransitionRule(
        target=SubscriptionStatus.ACTIVE,
        audit_action=AuditAction.SUBSCRIPTION_APPROVE,
        side_effects=(SideEffect.OPEN_FIRST_CYCLE,),
    ),
    (SubscriptionStatus.PENDING, SubscriptionEvent.REJECT): TransitionRule(
        target=SubscriptionStatus.REJECTED,
        audit_action=AuditAction.SUBSCRIPTION_REJECT,
    ),
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.CANCEL): TransitionRule(
        target=SubscriptionStatus.CANCELLED,
        audit_action=AuditAction.SUBSCRIPTION_CANCEL,
        side_effects=(SideEffect.CANCEL_OPEN_CYCLES,),
    ),
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.EXPIRE): TransitionRule(
        target=SubscriptionStatus.EXPIRED,
        audit_action=AuditAction.SUBSCRIPTION_EXPIRE,
        system_triggered=True,
    ),
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.RENEWAL_REJECT): TransitionRule(
        target=SubscriptionStatus.CANCELLED,
        audit_action=AuditAction.RENEWAL_REJECT,
        side_effects=(SideEffect.CANCEL_RENEWAL_CYCLE,),
    ),
}


def require_actor(actor_id: Optional[str]) -> str:
    """Every mutation must be attributable to someone."""
    if actor_id is None or not str(actor_id).strip():
        raise InvalidActor("An actor id is required for this operation")
    return str(actor_id).strip()


def resolve_rule(status: SubscriptionStatus, event: SubscriptionEvent | str) -> TransitionRule:
    try:
        event = SubscriptionEvent(event)
    except ValueError as exc:
        raise IllegalTransition(
            f"Unknown event '{event}'", context={"status": status.value}
        ) from exc

    rule = TRANSITIONS.get((status, event))
    if rule is None:
        raise IllegalTransition(
            f"Cannot {event.value} a subscription in status {status.value}",
            context={"status": status.value, "event": event.value},
        )
    return rule


@dataclass
class _EffectOutcome:
    changes: dict[str, Any]
    entity_type: AuditEntityType = AuditEntityType.SUBSCRIPTION
    entity_id: Optional[UUID] = None


class SubscriptionStateMachine:
    """Owns the authoritative ``status`` field of a subscription."""

    def __init__(self, session: AsyncSession, now: dt.datetime) -> None:
        self.session = session
        self.now = now
        self.subscriptions = SubscriptionRepo(session)
        self.cycles = PaymentCycleManager(session)
        self.audit = AuditRecorder(session)
        self._effects: dict[
            SideEffect, Callable[[Subscription, dict[str, Any]], Awaitable[_EffectOutcome]]
        ] = {
            SideEffect.OPEN_FIRST_CYCLE: self._open_first_cycle,
            SideEffect.CANCEL_OPEN_CYCLES: self._cancel_open_cycles,
            SideEffect.CANCEL_RENEWAL_CYCLE: self._cancel_renewal_cycle,
        }

    async def load(self, subscription_id: UUID, lock: bool = False) -> Subscription:
        subscription = await self.subscriptions.get(subscription_id, lock=lock)
        if subscription is None or subscription.deleted_at is not None:
            raise SubscriptionNotFound(
                "Subscription not found",
                context={"subscription_id": str(subscription_id)},
            )
        return subscription

    async def apply(
        self,
        subscription_id: UUID,
        event: SubscriptionEvent | str,
        actor_id: Optional[str],
        payload: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        actor = require_actor(actor_id)
        payload = dict(payload or {})

        subscription = await self.load(subscription_id, lock=True)
        rule = resolve_rule(subscription.status, event)
        subscription, outcome = await self._move(subscription, rule, payload)

        audit_actor = actor
        if rule.system_triggered:
            audit_actor = settings.SYSTEM_ACTOR_ID
            outcome.changes["triggered_by"] = actor

        entry_id = await self.audit.record(
            audit_actor,
            rule.audit_action,
            outcome.entity_type,
            outcome.entity_id or subscription.id,
            outcome.changes,
        )
        if entry_id is None:
            raise AuditWriteFailed(
                "Audit entry could not be written; transition rolled back",
                context={"subscription_id": str(subscription_id)},
            )

        logger.info(
            f"Subscription {subscription_id} {outcome.changes['previous_status']} -> "
            f"{rule.target.value} by {actor}"
        )
        return subscription

    async def apply_bulk(
        self,
        subscription_ids: list[UUID],
        event: SubscriptionEvent,
        actor_id: Optional[str],
        audit_action: AuditAction,
        payload: Optional[dict[str, Any]] = None,
    ) -> tuple[list[UUID], list[UUID]]:
        """Apply ``event`` to many subscriptions under one audit entry.

        Subscriptions that are missing or not eligible for ``event`` are
        skipped. Any failure after a status write aborts the whole batch.
        """
        actor = require_actor(actor_id)
        payload = dict(payload or {})
        moved: list[UUID] = []
        skipped: list[UUID] = []

        for subscription_id in dict.fromkeys(subscription_ids):
            try:
                subscription = await self.load(subscription_id, lock=True)
                rule = resolve_rule(subscription.status, event)
            except (SubscriptionNotFound, IllegalTransition):
                skipped.append(subscription_id)
                continue
            await self._move(subscription, rule, payload)
            moved.append(subscription_id)

        if moved:
            entry_id = await self.audit.record_bulk(
                actor,
                audit_action,
                AuditEntityType.SUBSCRIPTION,
                moved,
                {**payload, "event": SubscriptionEvent(event).value},
            )
            if entry_id is None:
                raise AuditWriteFailed("Audit entry could not be written; batch rolled back")

        logger.info(
            f"Bulk {SubscriptionEvent(event).value} by {actor}: "
            f"{len(moved)} moved, {len(skipped)} skipped"
        )
        return moved, skipped

    async def _move(
        self,
        subscription: Subscription,
        rule: TransitionRule,
        payload: dict[str, Any],
    ) -> tuple[Subscription, _EffectOutcome]:
        previous = subscription.status
        subscription_id = subscription.id

        swapped = await self.subscriptions.compare_and_set_status(
            subscription_id, expected=previous, new=rule.target
        )
        if not swapped:
            raise IllegalTransition(
                "Subscription status changed concurrently",
                context={"subscription_id": str(subscription_id)},
            )
        subscription = await self.load(subscription_id)

        # computed keys win over caller-supplied ones
        changes: dict[str, Any] = {
            **payload,
            "previous_status": previous.value,
            "status": rule.target.value,
        }
        result = _EffectOutcome(changes=changes)
        for effect in rule.side_effects:
            outcome = await self._effects[effect](subscription, payload)
            changes.update(outcome.changes)
            if outcome.entity_id is not None:
                result.entity_type = outcome.entity_type
                result.entity_id = outcome.entity_id
        return subscription, result

    async def _open_first_cycle(
        self, subscription: Subscription, payload: dict[str, Any]
    ) -> _EffectOutcome:
        cycle = await self.cycles.open_first_cycle(subscription)
        return _EffectOutcome(
            changes={
                "cycle_id": cycle.id,
                "cycle_start_date": cycle.cycle_start_date,
                "cycle_end_date": cycle.cycle_end_date,
            }
        )

    async def _cancel_open_cycles(
        self, subscription: Subscription, payload: dict[str, Any]
    ) -> _EffectOutcome:
        cancelled = []
        for cycle in await self.cycles.open_cycles(subscription.id):
            await self.cycles.cancel_cycle(cycle, payload.get("reason"), self.now)
            cancelled.append(cycle.id)
        return _EffectOutcome(changes={"cancelled_cycle_ids": cancelled})

    async def _cancel_renewal_cycle(
        self, subscription: Subscription, payload: dict[str, Any]
    ) -> _EffectOutcome:
        cycle = await self.cycles.pending_renewal_cycle(subscription.id)
        if cycle is None:
            raise InvalidState(
                "Subscription has no pending renewal cycle",
                context={"subscription_id": str(subscription.id)},
            )
        await self.cycles.cancel_cycle(
            cycle, payload.get("reason", "Renewal rejected"), self.now
        )
        return _EffectOutcome(
            changes={"subscription_id": subscription.id, "cycle_number": cycle.cycle_number},
            entity_type=AuditEntityType.PAYMENT_CYCLE,
            entity_id=cycle.id,
        )
