"""Ticket aggregate tables — tickets, their history, and their comments.

Every status or field change to a ticket is committed together with a
TicketHistory row. Adding a comment only touches `updated_at` and writes
no history row. The `version` column is SQLAlchemy's optimistic-concurrency
counter: an UPDATE from a stale snapshot matches zero rows and the flush
raises StaleDataError.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketdesk.models.base import Base, OrderedDocument, TimestampMixin, utcnow
from ticketdesk.models.creator import Creator
from ticketdesk.models.enums import TicketPriority, TicketStatus
from ticketdesk.models.user import User


class Ticket(TimestampMixin, Base):
    """A work request raised on behalf of a creator."""

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_type_status", "type", "status"),
        Index("ix_tickets_deadline", "deadline"),
    )

    ticket_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.DRAFT.value, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=TicketPriority.MEDIUM.value)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    ticket_data: Mapped[dict[str, Any]] = mapped_column(OrderedDocument, nullable=False, default=dict)
    response_data: Mapped[dict[str, Any] | None] = mapped_column(OrderedDocument)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Lifecycle timestamps, each set by one specific transition
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Ownership
    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("creators.id"), nullable=False, index=True)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), index=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    creator: Mapped[Creator] = relationship("Creator", lazy="selectin")
    created_by: Mapped[User] = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
    assigned_to: Mapped[User | None] = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Ticket number={self.ticket_number} status={self.status}>"


class TicketHistory(Base):
    """Immutable record of one ticket mutation. Append-only."""

    __tablename__ = "ticket_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # None only on the row written when the ticket is created
    previous_status: Mapped[str | None] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_data: Mapped[dict[str, Any] | None] = mapped_column(OrderedDocument)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(OrderedDocument)

    changed_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    changed_by: Mapped[User] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<TicketHistory ticket={self.ticket_id} {self.previous_status}->{self.new_status}>"


class TicketComment(TimestampMixin, Base):
    """Collaborative comment on a ticket; internal comments are staff-only."""

    __tablename__ = "ticket_comments"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    author: Mapped[User] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<TicketComment ticket={self.ticket_id} internal={self.is_internal}>"
