"""Version 1 API router."""
from fastapi import APIRouter

from src.api.v1.endpoints import audit, payment_cycles, subscriptions


api_router = APIRouter()
api_router.include_router(subscriptions.router)
api_router.include_router(payment_cycles.router)
api_router.include_router(audit.router)
