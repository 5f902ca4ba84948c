"""Typed failures raised by the ticket engine.

Every failure below propagates to the caller. Audit and notification
errors never appear here: they are caught and logged after commit.
"""

from __future__ import annotations

from typing import Any

from ticketdesk.models.enums import TicketStatus


class TicketDeskError(RuntimeError):
    """Base error for ticket engine issues."""


# ── Not found ────────────────────────────────────────────────────────


class NotFoundError(TicketDeskError):
    """Raised when an operation targets a missing entity."""

    entity = "Entity"

    def __init__(self, entity_id: Any) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class TicketNotFoundError(NotFoundError):
    entity = "Ticket"


class UserNotFoundError(NotFoundError):
    entity = "User"


class CreatorNotFoundError(NotFoundError):
    entity = "Creator"


class CommentNotFoundError(NotFoundError):
    entity = "Comment"


class NotificationNotFoundError(NotFoundError):
    entity = "Notification"


# ── Workflow ─────────────────────────────────────────────────────────


class IllegalTransitionError(TicketDeskError):
    """Requested status is not reachable from the current one."""

    def __init__(self, current: TicketStatus, requested: TicketStatus) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid status transition from {current.value} to {requested.value}")


class PreconditionFailedError(TicketDeskError):
    """A business rule on top of graph legality was not met."""


class ConflictError(TicketDeskError):
    """A concurrent writer changed the entity first."""


class TicketConflictError(ConflictError):
    def __init__(self, ticket_id: Any, detail: str = "ticket was modified concurrently") -> None:
        self.ticket_id = ticket_id
        super().__init__(f"Ticket {ticket_id}: {detail}")


class PersistenceFailureError(TicketDeskError):
    """The store was unavailable or aborted the transaction."""
