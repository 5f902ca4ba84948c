"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use the str mixin so values serialize to JSON unchanged and are
stored as plain strings.
"""

from __future__ import annotations

from enum import Enum


class TicketType(str, Enum):
    """Category of work request; drives the ticket number prefix."""

    CUSTOM_VIDEO = "custom_video"
    VIDEO_CALL = "video_call"
    CONTENT_REQUEST = "content_request"
    GENERAL_INQUIRY = "general_inquiry"
    URGENT_ALERT = "urgent_alert"


class TicketStatus(str, Enum):
    """Lifecycle states of a ticket (see tickets.lifecycle for legal edges)."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING_REVIEW = "pending_review"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TicketPriority(str, Enum):
    """Urgency of a ticket, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(str, Enum):
    """Agency staff roles, highest privilege first."""

    SUPER_ADMIN = "super_admin"
    MANAGER = "manager"
    SCHEDULER = "scheduler"
    CHATTER = "chatter"
    CREATOR = "creator"


class NotificationType(str, Enum):
    """In-app notification categories."""

    TICKET_CREATED = "ticket_created"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_STATUS_CHANGED = "ticket_status_changed"
    TICKET_COMMENTED = "ticket_commented"
    DEADLINE_APPROACHING = "deadline_approaching"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
