"""Audit recorder — persists redacted AuditEntry rows to the audit_logs table.

This is the system's immutable audit trail. Writes happen in a session of
their own, after the business transaction has committed, so a failed
audit write can never roll back a ticket change.

`record` never raises — failures are logged but never propagate to the
caller. The query helpers do propagate database errors.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.config import settings
from ticketdesk.models.audit import AuditLog
from ticketdesk.models.base import utcnow
from ticketdesk.schemas.audit import AuditAction, AuditEntity, AuditEntry, AuditFilter

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Lower-cased substrings; any detail key containing one is redacted
SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "password",
    "passwordhash",
    "token",
    "secret",
    "authorization",
    "creditcard",
    "cvv",
    "apikey",
    "api_key",
)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(str(k)) else _redact(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def sanitize(details: dict[str, Any] | None) -> dict[str, Any]:
    """Return a JSON-safe copy of `details` with sensitive keys redacted.

    Redaction recurses through nested dicts and lists. UUIDs, datetimes and
    enums are converted to their JSON representation first.
    """
    if not details:
        return {}
    return _redact(to_jsonable_python(details))


def _to_row(entry: AuditEntry) -> AuditLog:
    context = entry.context
    return AuditLog(
        action=entry.action.value,
        entity_type=entry.entity_type.value if entry.entity_type else None,
        entity_id=entry.entity_id,
        actor_id=entry.actor_id,
        actor_label=context.actor_label if context else None,
        ip_address=context.ip_address if context else None,
        user_agent=context.user_agent if context else None,
        details=sanitize(entry.details),
    )


class AuditRecorder:
    """Writes and queries the audit trail through its own sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Writing ──────────────────────────────────────────────────────

    async def record(self, entry: AuditEntry) -> AuditLog | None:
        """Persist one entry; returns None (after logging) if the write fails."""
        try:
            async with self._session_factory() as db:
                row = _to_row(entry)
                db.add(row)
                await db.commit()
                return row
        except Exception:
            logger.exception(
                "Failed to persist audit entry: %s (entity=%s:%s)",
                entry.action.value,
                entry.entity_type.value if entry.entity_type else None,
                entry.entity_id,
            )
            return None

    async def record_batch(self, entries: Iterable[AuditEntry]) -> int:
        """Persist several entries in one transaction; returns how many were written."""
        rows = [_to_row(entry) for entry in entries]
        if not rows:
            return 0
        try:
            async with self._session_factory() as db:
                db.add_all(rows)
                await db.commit()
        except Exception:
            logger.exception("Failed to persist batch of %d audit entries", len(rows))
            return 0
        return len(rows)

    # ── Querying ─────────────────────────────────────────────────────

    def _cap(self, limit: int) -> int:
        return max(1, min(limit, settings.tickets.audit_query_cap))

    @staticmethod
    def _filtered(stmt: Select[Any], filters: AuditFilter) -> Select[Any]:
        if filters.action is not None:
            stmt = stmt.where(AuditLog.action == filters.action.value)
        if filters.entity_type is not None:
            stmt = stmt.where(AuditLog.entity_type == filters.entity_type.value)
        if filters.entity_id is not None:
            stmt = stmt.where(AuditLog.entity_id == filters.entity_id)
        if filters.actor_id is not None:
            stmt = stmt.where(AuditLog.actor_id == filters.actor_id)
        if filters.start_date is not None:
            stmt = stmt.where(AuditLog.created_at >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(AuditLog.created_at <= filters.end_date)
        return stmt

    async def get_logs(self, filters: AuditFilter | None = None) -> list[AuditLog]:
        """Audit rows matching `filters`, newest first, at most audit_query_cap rows."""
        filters = filters or AuditFilter()
        stmt = (
            self._filtered(select(AuditLog), filters)
            .order_by(AuditLog.created_at.desc())
            .limit(self._cap(filters.limit))
            .offset(max(0, filters.offset))
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def get_entity_logs(self, entity_type: AuditEntity, entity_id: Any, limit: int = 50) -> list[AuditLog]:
        return await self.get_logs(AuditFilter(entity_type=entity_type, entity_id=entity_id, limit=limit))

    async def get_user_logs(self, actor_id: Any, limit: int = 50) -> list[AuditLog]:
        return await self.get_logs(AuditFilter(actor_id=actor_id, limit=limit))

    async def get_action_logs(self, action: AuditAction, limit: int = 50) -> list[AuditLog]:
        return await self.get_logs(AuditFilter(action=action, limit=limit))

    async def count(self, filters: AuditFilter | None = None) -> int:
        stmt = self._filtered(select(func.count()).select_from(AuditLog), filters or AuditFilter())
        async with self._session_factory() as db:
            return (await db.scalar(stmt)) or 0

    # ── Maintenance ──────────────────────────────────────────────────

    async def cleanup_old_logs(self, retention_days: int | None = None, actor_id: Any = None) -> int:
        """Delete rows older than the retention window and audit the purge itself."""
        days = retention_days if retention_days is not None else settings.tickets.audit_retention_days
        cutoff = utcnow() - timedelta(days=days)

        async with self._session_factory() as db, db.begin():
            result = await db.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
            deleted = result.rowcount or 0

        logger.info("Audit cleanup removed %d rows older than %d days", deleted, days)
        await self.record(AuditEntry(
            action=AuditAction.AUDIT_CLEANUP,
            entity_type=AuditEntity.SYSTEM,
            actor_id=actor_id or "system",
            details={"deleted": deleted, "retention_days": days, "cutoff": cutoff},
        ))
        return deleted
