"""SQLAlchemy ORM models for ticketdesk.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from ticketdesk.models.audit import AuditLog
from ticketdesk.models.base import Base
from ticketdesk.models.creator import Creator, UserCreatorAssignment
from ticketdesk.models.enums import (
    NotificationType,
    TicketPriority,
    TicketStatus,
    TicketType,
    UserRole,
)
from ticketdesk.models.notification import Notification
from ticketdesk.models.sequence import TicketSequence
from ticketdesk.models.ticket import Ticket, TicketComment, TicketHistory
from ticketdesk.models.user import User

__all__ = [
    # Base
    "Base",
    # Models
    "User",
    "Creator",
    "UserCreatorAssignment",
    "Ticket",
    "TicketHistory",
    "TicketComment",
    "TicketSequence",
    "AuditLog",
    "Notification",
    # Enums
    "TicketType",
    "TicketStatus",
    "TicketPriority",
    "UserRole",
    "NotificationType",
]
