"""Endpoints for the subscription lifecycle."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status

from src.api.deps import get_subscription_engine
from src.auth.jwt import require_auth
from src.db.models.enums import RequestType, SubscriptionStatus
from src.schemas.subscription import (
    AccountingStatusUpdate,
    BulkApproveRead,
    BulkApproveRequest,
    PaymentCycleRead,
    PaymentStatusUpdate,
    SubscriptionCreate,
    SubscriptionRead,
    TransitionRequest,
)
from src.services.engine import SubscriptionEngine
from src.services.limits import (
    check_rate_limit,
    claim_idempotency_key,
    release_idempotency_key,
)


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    body: SubscriptionCreate,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.create_subscription(body.model_dump(), actor_id)
    return result.unwrap()


@router.get("", response_model=List[SubscriptionRead])
async def list_subscriptions(
    status_filter: Optional[SubscriptionStatus] = Query(default=None, alias="status"),
    department_id: Optional[UUID] = None,
    request_type: Optional[RequestType] = None,
    limit: int = Query(default=100, ge=1, le=500),
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    result = await engine.list_subscriptions(
        status=status_filter,
        department_id=department_id,
        request_type=request_type,
        limit=limit,
    )
    return result.unwrap()


@router.post("/bulk-approve", response_model=BulkApproveRead)
async def bulk_approve(
    body: BulkApproveRequest,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.bulk_approve(body.subscription_ids, actor_id, body.comments)
    outcome = result.unwrap()
    return {"approved": outcome.approved, "skipped": outcome.skipped}


@router.get("/{subscription_id}", response_model=SubscriptionRead)
async def get_subscription(
    subscription_id: UUID,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    result = await engine.get_subscription(subscription_id)
    return result.unwrap()


@router.post("/{subscription_id}/transitions", response_model=SubscriptionRead)
async def transition_subscription(
    subscription_id: UUID,
    body: TransitionRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)
    claimed = await claim_idempotency_key(actor_id, idempotency_key)

    result = await engine.transition(
        subscription_id, body.event, actor_id, body.payload()
    )
    if not result.ok and claimed:
        # nothing was committed, so the same key may be retried
        await release_idempotency_key(actor_id, idempotency_key)
    return result.unwrap()


@router.patch("/{subscription_id}/payment-status", response_model=SubscriptionRead)
async def update_payment_status(
    subscription_id: UUID,
    body: PaymentStatusUpdate,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.update_payment_status(
        subscription_id, body.payment_status, actor_id
    )
    return result.unwrap()


@router.patch("/{subscription_id}/accounting-status", response_model=SubscriptionRead)
async def update_accounting_status(
    subscription_id: UUID,
    body: AccountingStatusUpdate,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.update_accounting_status(
        subscription_id, body.accounting_status, actor_id
    )
    return result.unwrap()


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subscription(
    subscription_id: UUID,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.soft_delete(subscription_id, actor_id)
    result.unwrap()


@router.get("/{subscription_id}/cycles", response_model=List[PaymentCycleRead])
async def list_cycles(
    subscription_id: UUID,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    result = await engine.list_cycles(subscription_id)
    return result.unwrap()
