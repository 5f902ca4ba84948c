"""Ticket ownership — assign and unassign.

Each change writes the new assignee and one history row (status unchanged
on both sides) in one transaction.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.models.ticket import Ticket
from ticketdesk.models.user import User
from ticketdesk.schemas.audit import ActorContext, AuditAction, AuditEntity, AuditEntry
from ticketdesk.tickets.errors import PreconditionFailedError, UserNotFoundError
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.store import history_row, lock_ticket, ticket_transaction

logger = logging.getLogger(__name__)


class AssignmentService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], hooks: PostCommitHooks) -> None:
        self._session_factory = session_factory
        self._hooks = hooks

    async def assign(
        self,
        ticket_id: uuid.UUID,
        assignee_id: uuid.UUID,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> Ticket:
        """Make `assignee_id` the owner of the ticket; the assignee must be active."""
        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket = await lock_ticket(db, ticket_id)
            assignee = await db.get(User, assignee_id)
            if assignee is None:
                raise UserNotFoundError(assignee_id)
            if not assignee.is_active:
                msg = f"Cannot assign ticket {ticket.ticket_number} to inactive user {assignee.name}"
                raise PreconditionFailedError(msg)

            previous_assignee_id = ticket.assigned_to_id
            ticket.assigned_to = assignee
            db.add(history_row(
                ticket,
                previous_status=ticket.status,
                actor_id=actor_id,
                reason=f"Assigned to {assignee.name}",
            ))

        logger.info("Ticket %s assigned to %s (actor=%s)", ticket.ticket_number, assignee_id, actor_id)
        await self._hooks.after_commit(
            AuditEntry(
                action=AuditAction.TICKET_ASSIGN,
                entity_type=AuditEntity.TICKET,
                entity_id=ticket.id,
                actor_id=actor_id,
                details={
                    "ticket_number": ticket.ticket_number,
                    "assigned_to_id": assignee_id,
                    "assigned_to_name": assignee.name,
                    "previous_assignee_id": previous_assignee_id,
                },
                context=context,
            ),
            notify=lambda dispatcher: dispatcher.on_assigned(ticket, assignee_id, actor_id),
        )
        return ticket

    async def unassign(
        self,
        ticket_id: uuid.UUID,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> Ticket:
        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket = await lock_ticket(db, ticket_id)
            previous = ticket.assigned_to
            if previous is None:
                msg = f"Ticket {ticket.ticket_number} is not assigned"
                raise PreconditionFailedError(msg)

            ticket.assigned_to = None
            db.add(history_row(
                ticket,
                previous_status=ticket.status,
                actor_id=actor_id,
                reason=f"Unassigned from {previous.name}",
            ))

        logger.info("Ticket %s unassigned from %s (actor=%s)", ticket.ticket_number, previous.id, actor_id)
        await self._hooks.after_commit(AuditEntry(
            action=AuditAction.TICKET_UNASSIGN,
            entity_type=AuditEntity.TICKET,
            entity_id=ticket.id,
            actor_id=actor_id,
            details={
                "ticket_number": ticket.ticket_number,
                "previous_assignee_id": previous.id,
                "previous_assignee_name": previous.name,
            },
            context=context,
        ))
        return ticket
