"""Endpoints for payment cycles and the renewal scan."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends

from src.api.deps import get_subscription_engine
from src.auth.jwt import require_auth
from src.schemas.subscription import (
    CancelCycleRequest,
    PaymentCycleRead,
    RecordPaymentRequest,
    RenewalScanRead,
)
from src.services.engine import SubscriptionEngine
from src.services.limits import check_rate_limit


router = APIRouter(prefix="/payment-cycles", tags=["payment-cycles"])


@router.post("/renewal-scan", response_model=RenewalScanRead)
async def run_renewal_scan(
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    """Run the renewal scan now instead of waiting for the scheduled task."""
    await check_rate_limit(auth["actor_id"])

    result = await engine.run_renewal_scan()
    scan = result.unwrap()
    return {"opened": scan.opened, "skipped": scan.skipped}


@router.post("/{cycle_id}/payment", response_model=PaymentCycleRead)
async def record_payment(
    cycle_id: UUID,
    body: Optional[RecordPaymentRequest] = Body(default=None),
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    paid_at = body.paid_at if body else None
    result = await engine.record_payment(cycle_id, actor_id, paid_at)
    return result.unwrap()


@router.post("/{cycle_id}/cancel", response_model=PaymentCycleRead)
async def cancel_cycle(
    cycle_id: UUID,
    body: Optional[CancelCycleRequest] = Body(default=None),
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.cancel_cycle(cycle_id, actor_id, body.reason if body else None)
    return result.unwrap()


@router.post("/{cycle_id}/approve", response_model=PaymentCycleRead)
async def approve_renewal(
    cycle_id: UUID,
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    actor_id = auth["actor_id"]
    await check_rate_limit(actor_id)

    result = await engine.approve_renewal(cycle_id, actor_id)
    return result.unwrap()
