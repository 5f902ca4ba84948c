"""AuditLog model — system-wide, append-only audit trail.

Covers ticket mutations as well as non-ticket actions (logins, role
changes, maintenance). Details are redacted before they reach this table.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ticketdesk.models.base import Base, IndexedDocument, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_created_at", "created_at"),
    )

    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Context (all nullable — system actions have no entity or actor)
    entity_type: Mapped[str | None] = mapped_column(String(50))
    entity_id: Mapped[str | None] = mapped_column(String(100))
    actor_id: Mapped[str | None] = mapped_column(String(100), index=True, comment="User ID or 'system'")
    actor_label: Mapped[str | None] = mapped_column(String(255), comment="Denormalized email or name")
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))

    details: Mapped[dict[str, Any] | None] = mapped_column(IndexedDocument)

    def __repr__(self) -> str:
        return f"<AuditLog action={self.action} entity={self.entity_type}:{self.entity_id}>"
