"""Scheduled tasks that drive the engine without a human actor."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.core.exceptions import PersistenceUnavailable
from src.db.session import build_engine, build_session_factory
from src.services.engine import SubscriptionEngine
from src.worker.celery_app import celery_app


logger = logging.getLogger(__name__)


async def _run_renewal_scan() -> dict[str, Any]:
    # asyncio.run gets a fresh loop per task, so the pool cannot be shared
    db_engine = build_engine()
    try:
        engine = SubscriptionEngine(build_session_factory(db_engine))
        result = await engine.run_renewal_scan()
    finally:
        await db_engine.dispose()

    if not result.ok:
        raise result.error
    return {
        "opened": [str(cycle_id) for cycle_id in result.value.opened],
        "skipped": [str(subscription_id) for subscription_id in result.value.skipped],
    }


@celery_app.task(
    name="payment_cycles.renewal_scan",
    autoretry_for=(PersistenceUnavailable,),
    retry_backoff=True,
    max_retries=3,
)
def renewal_scan() -> dict[str, Any]:
    """Open renewal cycles for subscriptions approaching the end of their cycle."""
    logger.info("Starting renewal scan")
    summary = asyncio.run(_run_renewal_scan())
    logger.info(
        f"Renewal scan finished: {len(summary['opened'])} opened, "
        f"{len(summary['skipped'])} skipped"
    )
    return summary
