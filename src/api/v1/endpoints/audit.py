"""Read-only access to the audit trail."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_subscription_engine
from src.auth.jwt import require_auth
from src.db.models.enums import AuditAction, AuditEntityType
from src.schemas.subscription import AuditLogRead
from src.services.engine import SubscriptionEngine


router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=List[AuditLogRead])
async def list_audit_logs(
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[UUID] = None,
    action: Optional[AuditAction] = None,
    limit: int = Query(default=100, ge=1, le=500),
    auth=Depends(require_auth),
    engine: SubscriptionEngine = Depends(get_subscription_engine),
):
    result = await engine.list_audit_entries(
        entity_type=entity_type, entity_id=entity_id, action=action, limit=limit
    )
    return result.unwrap()
