"""Audit recorder: append-only "who did what to what" entries."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.enums import AuditAction, AuditEntityType
from src.repositories.audit_repo import AuditRepo


logger = logging.getLogger(__name__)


class AuditRecorder:
    """Writes audit entries inside the caller's transaction.

    A rejected insert is logged and reported by returning ``None``; callers
    that must not proceed without an audit trail turn that into
    :class:`~src.core.exceptions.AuditWriteFailed`. A lost connection is not
    an audit problem and propagates so the unit of work reports the store as
    unavailable.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.repo = AuditRepo(session)

    async def record(
        self,
        actor_id: str,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: Optional[UUID] = None,
        changes: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[UUID]:
        try:
            entry_id = await self.repo.insert(
                actor_id=actor_id,
                action=AuditAction(action).value,
                entity_type=AuditEntityType(entity_type).value,
                entity_id=entity_id,
                changes=jsonable_encoder(changes) if changes is not None else None,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except (OperationalError, InterfaceError, DisconnectionError):
            raise
        except Exception as exc:
            logger.error(
                f"Failed to write audit entry {action} for {entity_type}:{entity_id}: {exc}"
            )
            return None

        logger.debug(f"Audit {action} by {actor_id} on {entity_type}:{entity_id}")
        return entry_id

    async def record_bulk(
        self,
        actor_id: str,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_ids: Iterable[UUID],
        changes: Optional[dict[str, Any]] = None,
    ) -> Optional[UUID]:
        """Record one entry for a whole bulk operation."""
        affected = [str(entity_id) for entity_id in entity_ids]
        payload = dict(changes or {})
        payload["affected_ids"] = affected
        payload["count"] = len(affected)
        return await self.record(actor_id, action, entity_type, None, payload)
