"""Repository for the append-only audit log."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.audit_log import AuditLogEntry


class AuditRepo:
    """Insert and query helpers for :class:`AuditLogEntry`.

    Entries are never updated or deleted.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(
        self,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: UUID | None,
        changes: dict[str, Any] | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UUID:
        entry = AuditLogEntry(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry.id

    async def list(
        self,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        query = select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc())
        if entity_type is not None:
            query = query.where(AuditLogEntry.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLogEntry.entity_id == entity_id)
        if action is not None:
            query = query.where(AuditLogEntry.action == action)
        result = await self.session.execute(query.limit(limit))
        return list(result.scalars().all())
