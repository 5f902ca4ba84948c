"""Audit trail schemas — action/entity vocabularies and the entry shapes
passed to the AuditRecorder.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AuditAction(str, Enum):
    """Every action written to the audit log."""

    # Authentication
    USER_LOGIN = "user.login"
    USER_LOGOUT = "user.logout"
    USER_LOGIN_FAILED = "user.login_failed"
    USER_PASSWORD_CHANGE = "user.password_change"
    USER_PASSWORD_RESET = "user.password_reset"

    # User management
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DEACTIVATE = "user.deactivate"
    USER_ACTIVATE = "user.activate"
    USER_ROLE_CHANGE = "user.role_change"

    # Creator management
    CREATOR_CREATE = "creator.create"
    CREATOR_UPDATE = "creator.update"
    CREATOR_ASSIGN_USER = "creator.assign_user"
    CREATOR_UNASSIGN_USER = "creator.unassign_user"

    # Tickets
    TICKET_CREATE = "ticket.create"
    TICKET_UPDATE = "ticket.update"
    TICKET_DELETE = "ticket.delete"
    TICKET_STATUS_CHANGE = "ticket.status_change"
    TICKET_ASSIGN = "ticket.assign"
    TICKET_UNASSIGN = "ticket.unassign"
    TICKET_COMMENT_ADD = "ticket.comment_add"
    TICKET_COMMENT_UPDATE = "ticket.comment_update"
    TICKET_COMMENT_DELETE = "ticket.comment_delete"

    # Notifications
    NOTIFICATION_SEND = "notification.send"
    NOTIFICATION_READ = "notification.read"

    # System
    AUDIT_CLEANUP = "audit.cleanup"
    SYSTEM_ERROR = "system.error"


class AuditEntity(str, Enum):
    """Entity types an audit entry can refer to."""

    USER = "User"
    CREATOR = "Creator"
    TICKET = "Ticket"
    NOTIFICATION = "Notification"
    COMMENT = "TicketComment"
    SYSTEM = "System"


class ActorContext(BaseModel):
    """Request metadata supplied by the caller and copied onto audit rows."""

    ip_address: str | None = None
    user_agent: str | None = None
    actor_label: str | None = Field(default=None, description="Email or display name of the actor")

    model_config = {"frozen": True}


class AuditEntry(BaseModel):
    """One audit record before redaction and persistence."""

    action: AuditAction
    entity_type: AuditEntity | None = None
    entity_id: str | None = None
    actor_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    context: ActorContext | None = None

    model_config = {"frozen": True}

    @field_validator("entity_id", "actor_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> str | None:
        return None if v is None else str(v)


class AuditFilter(BaseModel):
    """Query criteria for the audit log; limit is capped by the recorder."""

    action: AuditAction | None = None
    entity_type: AuditEntity | None = None
    entity_id: str | None = None
    actor_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = 100
    offset: int = 0

    @field_validator("entity_id", "actor_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> str | None:
        return None if v is None else str(v)
