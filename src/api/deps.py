"""Shared FastAPI dependencies."""
from __future__ import annotations

from src.db.session import async_session_factory
from src.services.clock import SystemClock
from src.services.engine import SubscriptionEngine


def get_subscription_engine() -> SubscriptionEngine:
    """Return an engine bound to the application's session factory."""
    return SubscriptionEngine(async_session_factory, clock=SystemClock())
