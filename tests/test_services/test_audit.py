from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from src.core.exceptions import (
    AuditWriteFailed,
    IllegalTransition,
    InvalidRequest,
    PersistenceUnavailable,
)
from src.db.models.enums import (
    AccountingStatus,
    AuditAction,
    AuditEntityType,
    PaymentStatus,
    SubscriptionStatus,
)
from src.services.audit import AuditRecorder
from tests.conftest import ACTOR_ID, subscription_values


@pytest.mark.asyncio
async def test_record_returns_none_when_insert_fails(session_factory, monkeypatch):
    async def _broken_insert(self, *args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("src.repositories.audit_repo.AuditRepo.insert", _broken_insert)

    async with session_factory() as session:
        entry_id = await AuditRecorder(session).record(
            ACTOR_ID, AuditAction.SUBSCRIPTION_CREATE, AuditEntityType.SUBSCRIPTION, uuid4()
        )

    assert entry_id is None


@pytest.mark.asyncio
async def test_create_is_audited(engine, make_subscription):
    subscription = await make_subscription(tool_name="Notion")

    [entry] = (
        await engine.list_audit_entries(
            entity_type=AuditEntityType.SUBSCRIPTION, entity_id=subscription.id
        )
    ).unwrap()
    assert entry.action == AuditAction.SUBSCRIPTION_CREATE.value
    assert entry.actor_id == ACTOR_ID
    assert entry.changes["tool_name"] == "Notion"
    assert subscription.created_by == ACTOR_ID
    assert subscription.status == SubscriptionStatus.PENDING


@pytest.mark.asyncio
async def test_bulk_approve_writes_one_entry(engine, make_subscription):
    first = await make_subscription()
    second = await make_subscription()
    rejected = await make_subscription()
    (await engine.transition(rejected.id, "reject", ACTOR_ID)).unwrap()
    missing = uuid4()

    result = await engine.bulk_approve(
        [first.id, second.id, rejected.id, missing, first.id], ACTOR_ID, "Q1 batch"
    )

    outcome = result.unwrap()
    assert outcome.approved == [first.id, second.id]
    assert outcome.skipped == [rejected.id, missing]

    [entry] = (
        await engine.list_audit_entries(action=AuditAction.BULK_SUBSCRIPTION_APPROVE)
    ).unwrap()
    assert entry.entity_id is None
    assert entry.changes["count"] == 2
    assert entry.changes["affected_ids"] == [str(first.id), str(second.id)]
    assert entry.changes["comments"] == "Q1 batch"

    for subscription in (first, second):
        assert len((await engine.list_cycles(subscription.id)).unwrap()) == 1


@pytest.mark.asyncio
async def test_bulk_approve_rolls_back_on_audit_failure(engine, make_subscription, monkeypatch):
    subscription = await make_subscription()

    async def _broken_insert(self, *args, **kwargs):
        raise RuntimeError("audit table unavailable")

    monkeypatch.setattr("src.repositories.audit_repo.AuditRepo.insert", _broken_insert)
    result = await engine.bulk_approve([subscription.id], ACTOR_ID)
    monkeypatch.undo()

    assert isinstance(result.error, AuditWriteFailed)
    current = (await engine.get_subscription(subscription.id)).unwrap()
    assert current.status == SubscriptionStatus.PENDING


@pytest.mark.asyncio
async def test_secondary_status_updates_are_audited(engine, make_active_subscription):
    subscription = await make_active_subscription()

    paid = (
        await engine.update_payment_status(subscription.id, PaymentStatus.PAID, ACTOR_ID)
    ).unwrap()
    booked = (
        await engine.update_accounting_status(subscription.id, AccountingStatus.DONE, ACTOR_ID)
    ).unwrap()

    assert paid.payment_status == PaymentStatus.PAID
    assert booked.accounting_status == AccountingStatus.DONE
    assert booked.status == SubscriptionStatus.ACTIVE

    [payment_entry] = (
        await engine.list_audit_entries(action=AuditAction.SUBSCRIPTION_PAYMENT_UPDATE)
    ).unwrap()
    assert payment_entry.changes == {"payment_status": "PAID"}
    [accounting_entry] = (
        await engine.list_audit_entries(action=AuditAction.SUBSCRIPTION_ACCOUNTING_UPDATE)
    ).unwrap()
    assert accounting_entry.changes == {"accounting_status": "DONE"}


@pytest.mark.asyncio
async def test_soft_delete_only_for_terminal_subscriptions(engine, make_subscription):
    subscription = await make_subscription()

    early = await engine.soft_delete(subscription.id, ACTOR_ID)
    assert isinstance(early.error, IllegalTransition)

    (await engine.transition(subscription.id, "reject", ACTOR_ID)).unwrap()
    deleted = (await engine.soft_delete(subscription.id, ACTOR_ID)).unwrap()
    assert deleted.deleted_at is not None

    assert (await engine.get_subscription(subscription.id)).error is not None
    listed = (await engine.list_subscriptions()).unwrap()
    assert subscription.id not in [item.id for item in listed]

    [entry] = (
        await engine.list_audit_entries(action=AuditAction.SUBSCRIPTION_DELETE)
    ).unwrap()
    assert entry.entity_id == subscription.id


async def _lost_connection(self, *args, **kwargs):
    raise OperationalError("INSERT INTO audit_log", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_record_propagates_lost_connection(session_factory, monkeypatch):
    monkeypatch.setattr("src.repositories.audit_repo.AuditRepo.insert", _lost_connection)

    async with session_factory() as session:
        with pytest.raises(OperationalError):
            await AuditRecorder(session).record(
                ACTOR_ID, AuditAction.SUBSCRIPTION_CREATE, AuditEntityType.SUBSCRIPTION, uuid4()
            )


@pytest.mark.asyncio
async def test_lost_connection_during_audit_is_persistence_unavailable(
    engine, make_subscription, monkeypatch
):
    subscription = await make_subscription()

    monkeypatch.setattr("src.repositories.audit_repo.AuditRepo.insert", _lost_connection)
    result = await engine.transition(subscription.id, "approve", ACTOR_ID)
    monkeypatch.undo()

    assert isinstance(result.error, PersistenceUnavailable)
    assert result.error.status_code == 503
    current = (await engine.get_subscription(subscription.id)).unwrap()
    assert current.status == SubscriptionStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "update",
    ["update_payment_status", "update_accounting_status"],
)
async def test_unknown_secondary_status_is_invalid_request(
    engine, make_active_subscription, update
):
    subscription = await make_active_subscription()

    result = await getattr(engine, update)(subscription.id, "BOGUS", ACTOR_ID)

    assert isinstance(result.error, InvalidRequest)
    assert result.error.status_code == 400
    current = (await engine.get_subscription(subscription.id)).unwrap()
    assert current.payment_status == subscription.payment_status
    assert current.accounting_status == subscription.accounting_status
    assert (
        await engine.list_audit_entries(action=AuditAction.SUBSCRIPTION_PAYMENT_UPDATE)
    ).unwrap() == []


@pytest.mark.asyncio
async def test_create_with_unknown_field_is_invalid_request(engine):
    result = await engine.create_subscription(
        subscription_values(colour="blue"), ACTOR_ID
    )

    assert isinstance(result.error, InvalidRequest)
    assert (await engine.list_subscriptions()).unwrap() == []


@pytest.mark.asyncio
async def test_create_without_required_field_is_invalid_request(engine):
    values = subscription_values()
    values.pop("tool_name")

    result = await engine.create_subscription(values, ACTOR_ID)

    assert isinstance(result.error, InvalidRequest)
    assert result.error.to_dict()["error_code"] == "INVALID_REQUEST"
    assert (await engine.list_audit_entries()).unwrap() == []
