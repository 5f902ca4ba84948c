"""Transition engine — validated, atomic status changes.

A transition loads the ticket under a row lock, checks the requested edge
against the status graph and the business preconditions, then writes the
new status and one history row in the same transaction. The version
column catches writers that slipped past the lock (backends without
SELECT ... FOR UPDATE). Audit and notification run after commit.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.models.base import utcnow
from ticketdesk.models.enums import TicketStatus
from ticketdesk.models.ticket import Ticket
from ticketdesk.schemas.audit import ActorContext, AuditAction, AuditEntity, AuditEntry
from ticketdesk.tickets import lifecycle
from ticketdesk.tickets.errors import PreconditionFailedError, TicketConflictError
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.store import history_row, lock_ticket, ticket_transaction

logger = logging.getLogger(__name__)

# Canned reasons used by the convenience wrappers
SUBMIT_REASON = "Ticket submitted for review"
REVIEW_REASON = "Ticket under review"
ACCEPT_REASON = "Ticket accepted"
START_REASON = "Work started on ticket"
COMPLETE_REASON = "Ticket completed"
CANCEL_REASON = "Ticket cancelled"


class TransitionEngine:
    """Applies status changes to tickets."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], hooks: PostCommitHooks) -> None:
        self._session_factory = session_factory
        self._hooks = hooks

    async def transition(
        self,
        ticket_id: uuid.UUID,
        requested_status: TicketStatus,
        actor_id: uuid.UUID,
        reason: str | None = None,
        *,
        expected_status: TicketStatus | None = None,
        context: ActorContext | None = None,
    ) -> Ticket:
        """Move a ticket to `requested_status`.

        Args:
            ticket_id: Ticket to change.
            requested_status: Target status; must be a legal edge from the current one.
            actor_id: User performing the change, recorded on the history row.
            reason: Free-text reason; required (non-blank) for a rejection.
            expected_status: If given, the change only applies while the stored
                status still equals it; otherwise TicketConflictError is raised.
            context: Request metadata copied onto the audit entry.

        Raises:
            TicketNotFoundError, TicketConflictError, IllegalTransitionError,
            PreconditionFailedError, PersistenceFailureError.
        """
        requested_status = TicketStatus(requested_status)
        reason = reason.strip() if reason is not None else None

        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket = await lock_ticket(db, ticket_id)
            current = TicketStatus(ticket.status)

            if expected_status is not None and current != expected_status:
                raise TicketConflictError(
                    ticket_id,
                    f"status is {current.value}, expected {TicketStatus(expected_status).value}",
                )
            lifecycle.assert_legal(current, requested_status)
            if requested_status is TicketStatus.REJECTED and not reason:
                msg = "A reason is required to reject a ticket"
                raise PreconditionFailedError(msg)

            now = utcnow()
            ticket.status = requested_status.value
            if requested_status is TicketStatus.SUBMITTED and ticket.submitted_at is None:
                ticket.submitted_at = now
            elif requested_status is TicketStatus.COMPLETED:
                ticket.completed_at = now
            elif requested_status is TicketStatus.REJECTED:
                ticket.rejection_reason = reason

            db.add(history_row(
                ticket,
                previous_status=current.value,
                actor_id=actor_id,
                reason=reason or f"Status changed to {requested_status.value}",
            ))

        logger.info(
            "Ticket %s: %s -> %s (actor=%s)",
            ticket.ticket_number,
            current.value,
            requested_status.value,
            actor_id,
        )
        await self._hooks.after_commit(
            AuditEntry(
                action=AuditAction.TICKET_STATUS_CHANGE,
                entity_type=AuditEntity.TICKET,
                entity_id=ticket.id,
                actor_id=actor_id,
                details={
                    "ticket_number": ticket.ticket_number,
                    "previous_status": current.value,
                    "new_status": requested_status.value,
                    "reason": reason,
                },
                context=context,
            ),
            notify=lambda dispatcher: dispatcher.on_status_changed(ticket, current, actor_id),
        )
        return ticket

    # ── Convenience wrappers ─────────────────────────────────────────

    async def submit(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.SUBMITTED, actor_id, SUBMIT_REASON, **kwargs)

    async def mark_pending_review(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.PENDING_REVIEW, actor_id, REVIEW_REASON, **kwargs)

    async def accept(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.ACCEPTED, actor_id, ACCEPT_REASON, **kwargs)

    async def reject(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, reason: str | None, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.REJECTED, actor_id, reason, **kwargs)

    async def start_progress(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.IN_PROGRESS, actor_id, START_REASON, **kwargs)

    async def complete(self, ticket_id: uuid.UUID, actor_id: uuid.UUID, **kwargs) -> Ticket:
        return await self.transition(ticket_id, TicketStatus.COMPLETED, actor_id, COMPLETE_REASON, **kwargs)

    async def cancel(
        self, ticket_id: uuid.UUID, actor_id: uuid.UUID, reason: str | None = None, **kwargs
    ) -> Ticket:
        return await self.transition(
            ticket_id, TicketStatus.CANCELLED, actor_id, (reason or "").strip() or CANCEL_REASON, **kwargs
        )
