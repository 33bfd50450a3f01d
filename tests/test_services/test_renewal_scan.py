from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from src.core.config import settings
from src.core.exceptions import AlreadyFinalized, InvalidState
from src.db.models.enums import (
    AuditAction,
    AuditEntityType,
    BillingFrequency,
    SubscriptionStatus,
)
from src.services.engine import SubscriptionEngine
from src.services.clock import FixedClock
from tests.conftest import ACTOR_ID


def _at(day: dt.date) -> dt.datetime:
    return dt.datetime.combine(day, dt.time(2, 0), tzinfo=dt.timezone.utc)


@pytest.mark.asyncio
async def test_scan_opens_renewal_inside_window(engine, make_active_subscription, clock):
    subscription = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    clock.instant = _at(dt.date(2024, 1, 21))

    scan = (await engine.run_renewal_scan()).unwrap()

    assert len(scan.opened) == 1
    assert scan.skipped == []
    cycles = (await engine.list_cycles(subscription.id)).unwrap()
    assert [(c.cycle_number, c.cycle_start_date) for c in cycles] == [
        (1, dt.date(2024, 1, 1)),
        (2, dt.date(2024, 1, 31)),
    ]

    [entry] = (
        await engine.list_audit_entries(action=AuditAction.PAYMENT_CYCLE_CREATE)
    ).unwrap()
    assert entry.actor_id == settings.SYSTEM_ACTOR_ID
    assert entry.entity_type == AuditEntityType.PAYMENT_CYCLE.value
    assert entry.entity_id == scan.opened[0]


@pytest.mark.asyncio
async def test_scan_outside_window_opens_nothing(engine, make_active_subscription, clock):
    subscription = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    clock.instant = _at(dt.date(2024, 1, 20))

    scan = (await engine.run_renewal_scan()).unwrap()

    assert scan.opened == []
    assert scan.skipped == [subscription.id]
    assert len((await engine.list_cycles(subscription.id)).unwrap()) == 1


@pytest.mark.asyncio
async def test_scan_is_idempotent_within_a_day(engine, make_active_subscription, clock):
    subscription = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    clock.instant = _at(dt.date(2024, 1, 25))

    first = (await engine.run_renewal_scan()).unwrap()
    clock.advance(hours=6)
    second = (await engine.run_renewal_scan()).unwrap()

    assert len(first.opened) == 1
    assert second.opened == []
    assert len((await engine.list_cycles(subscription.id)).unwrap()) == 2


@pytest.mark.asyncio
async def test_scan_ignores_pending_and_terminal_subscriptions(
    engine, make_subscription, make_active_subscription, clock
):
    await make_subscription(start_date=dt.date(2024, 1, 1))
    cancelled = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    (await engine.transition(cancelled.id, "cancel", ACTOR_ID)).unwrap()
    clock.instant = _at(dt.date(2024, 1, 25))

    scan = (await engine.run_renewal_scan()).unwrap()

    assert scan.opened == []
    assert scan.skipped == []


@pytest.mark.asyncio
async def test_scan_accepts_explicit_date(session_factory, make_active_subscription):
    subscription = await make_active_subscription(
        start_date=dt.date(2024, 1, 1), billing_frequency=BillingFrequency.QUARTERLY
    )
    engine = SubscriptionEngine(session_factory, clock=FixedClock(_at(dt.date(2024, 1, 1))))

    scan = (await engine.run_renewal_scan(now=dt.date(2024, 3, 25))).unwrap()

    assert len(scan.opened) == 1
    cycles = (await engine.list_cycles(subscription.id)).unwrap()
    assert cycles[-1].cycle_start_date == dt.date(2024, 3, 31)


@pytest.mark.asyncio
async def test_concurrent_scans_open_one_renewal(engine, make_active_subscription, clock):
    subscription = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    clock.instant = _at(dt.date(2024, 1, 25))

    first, second = await asyncio.gather(
        engine.run_renewal_scan(), engine.run_renewal_scan()
    )

    opened = first.unwrap().opened + second.unwrap().opened
    assert len(opened) == 1
    cycles = (await engine.list_cycles(subscription.id)).unwrap()
    assert [c.cycle_number for c in cycles] == [1, 2]
    entries = (
        await engine.list_audit_entries(action=AuditAction.PAYMENT_CYCLE_CREATE)
    ).unwrap()
    assert len(entries) == 1


async def _open_renewal(engine, make_active_subscription, clock):
    subscription = await make_active_subscription(start_date=dt.date(2024, 1, 1))
    clock.instant = _at(dt.date(2024, 1, 25))
    [renewal_id] = (await engine.run_renewal_scan()).unwrap().opened
    return subscription, renewal_id


@pytest.mark.asyncio
async def test_approve_renewal_is_audited(engine, make_active_subscription, clock):
    subscription, renewal_id = await _open_renewal(engine, make_active_subscription, clock)

    approved = (await engine.approve_renewal(renewal_id, ACTOR_ID)).unwrap()

    assert approved.renewal_approved_by == ACTOR_ID
    assert approved.renewal_approved_at is not None
    assert approved.is_renewal_approved
    [entry] = (await engine.list_audit_entries(action=AuditAction.RENEWAL_APPROVE)).unwrap()
    assert entry.actor_id == ACTOR_ID
    assert entry.entity_type == AuditEntityType.PAYMENT_CYCLE.value
    assert entry.entity_id == renewal_id
    assert entry.changes["cycle_number"] == 2
    assert entry.changes["subscription_id"] == str(subscription.id)


@pytest.mark.asyncio
async def test_approve_renewal_twice_is_already_finalized(
    engine, make_active_subscription, clock
):
    subscription, renewal_id = await _open_renewal(engine, make_active_subscription, clock)
    (await engine.approve_renewal(renewal_id, ACTOR_ID)).unwrap()

    again = await engine.approve_renewal(renewal_id, "second.approver@example.com")

    assert isinstance(again.error, AlreadyFinalized)
    renewal = (await engine.list_cycles(subscription.id)).unwrap()[-1]
    assert renewal.renewal_approved_by == ACTOR_ID
    entries = (
        await engine.list_audit_entries(action=AuditAction.RENEWAL_APPROVE)
    ).unwrap()
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_approved_renewal_can_no_longer_be_rejected(
    engine, make_active_subscription, clock
):
    subscription, renewal_id = await _open_renewal(engine, make_active_subscription, clock)
    (await engine.approve_renewal(renewal_id, ACTOR_ID)).unwrap()

    result = await engine.transition(subscription.id, "renewal_reject", ACTOR_ID)

    assert isinstance(result.error, InvalidState)
    current = (await engine.get_subscription(subscription.id)).unwrap()
    assert current.status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_cancel_still_cancels_approved_unpaid_renewal(
    engine, make_active_subscription, clock
):
    subscription, renewal_id = await _open_renewal(engine, make_active_subscription, clock)
    (await engine.approve_renewal(renewal_id, ACTOR_ID)).unwrap()

    (await engine.transition(subscription.id, "cancel", ACTOR_ID)).unwrap()

    renewal = (await engine.list_cycles(subscription.id)).unwrap()[-1]
    assert renewal.id == renewal_id
    assert renewal.cancelled_at is not None


@pytest.mark.asyncio
async def test_first_cycle_cannot_be_approved_as_renewal(engine, make_active_subscription):
    subscription = await make_active_subscription()
    [first] = (await engine.list_cycles(subscription.id)).unwrap()

    result = await engine.approve_renewal(first.id, ACTOR_ID)

    assert isinstance(result.error, InvalidState)


@pytest.mark.asyncio
async def test_approve_renewal_requires_active_subscription(
    engine, make_active_subscription, clock
):
    subscription, renewal_id = await _open_renewal(engine, make_active_subscription, clock)
    (await engine.transition(subscription.id, "expire", ACTOR_ID)).unwrap()

    result = await engine.approve_renewal(renewal_id, ACTOR_ID)

    assert isinstance(result.error, InvalidState)
    assert (
        await engine.list_audit_entries(action=AuditAction.RENEWAL_APPROVE)
    ).unwrap() == []
