"""Notification dispatcher boundary.

Ticket services call a dispatcher only after their transaction has
committed, through tickets.hooks. A dispatcher may fail; the failure is
logged there and never reaches the caller of the ticket operation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.models.creator import Creator, UserCreatorAssignment
from ticketdesk.models.enums import NotificationType, TicketStatus, UserRole
from ticketdesk.models.ticket import Ticket
from ticketdesk.models.user import User
from ticketdesk.notifications.service import NotificationDraft, NotificationService, ticket_link_data

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Receives ticket lifecycle events after commit."""

    async def on_ticket_created(self, ticket: Ticket, creator: Creator) -> None: ...

    async def on_status_changed(self, ticket: Ticket, previous_status: TicketStatus, actor_id: uuid.UUID) -> None: ...

    async def on_assigned(self, ticket: Ticket, assignee_id: uuid.UUID, actor_id: uuid.UUID) -> None: ...

    async def on_comment_added(self, ticket_id: uuid.UUID, author_id: uuid.UUID, is_internal: bool) -> None: ...


class NullNotificationDispatcher:
    """Dispatcher that drops every event."""

    async def on_ticket_created(self, ticket: Ticket, creator: Creator) -> None:
        return None

    async def on_status_changed(self, ticket: Ticket, previous_status: TicketStatus, actor_id: uuid.UUID) -> None:
        return None

    async def on_assigned(self, ticket: Ticket, assignee_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        return None

    async def on_comment_added(self, ticket_id: uuid.UUID, author_id: uuid.UUID, is_internal: bool) -> None:
        return None


def _label(value: str) -> str:
    return value.replace("_", " ").lower()


class DatabaseNotificationDispatcher:
    """Turns ticket events into in-app Notification rows.

    Recipients:
    - created: staff assigned to the ticket's creator
    - status changed: submitter and assignee, minus the actor
    - assigned: the assignee, unless they assigned themselves
    - comment: submitter and assignee, minus the author; internal comments
      skip users with the creator role
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifications: NotificationService | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifications = notifications or NotificationService(session_factory)

    async def _user(self, user_id: uuid.UUID) -> User | None:
        async with self._session_factory() as db:
            return await db.get(User, user_id)

    async def on_ticket_created(self, ticket: Ticket, creator: Creator) -> None:
        async with self._session_factory() as db:
            staff_ids = (
                await db.scalars(
                    select(UserCreatorAssignment.user_id).where(UserCreatorAssignment.creator_id == creator.id)
                )
            ).all()
        if not staff_ids:
            return

        message = f"New {_label(ticket.type)} ticket {ticket.ticket_number} created for {creator.stage_name}"
        await self._notifications.create_many(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.TICKET_CREATED,
                title="New Ticket Created",
                message=message,
                data=ticket_link_data(ticket),
            )
            for user_id in staff_ids
        )

    async def on_status_changed(self, ticket: Ticket, previous_status: TicketStatus, actor_id: uuid.UUID) -> None:
        recipients = [
            user_id
            for user_id in dict.fromkeys([ticket.created_by_id, ticket.assigned_to_id])
            if user_id is not None and user_id != actor_id
        ]
        if not recipients:
            return

        actor = await self._user(actor_id)
        actor_name = actor.name if actor else "system"
        data = ticket_link_data(
            ticket,
            previous_status=TicketStatus(previous_status).value,
            new_status=ticket.status,
            user_id=str(actor_id),
            user_name=actor_name,
        )
        await self._notifications.create_many(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.TICKET_STATUS_CHANGED,
                title="Ticket Status Updated",
                message=f"Ticket {ticket.ticket_number} status changed to {_label(ticket.status)} by {actor_name}",
                data=data,
            )
            for user_id in recipients
        )

    async def on_assigned(self, ticket: Ticket, assignee_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        if assignee_id == actor_id:
            return

        actor = await self._user(actor_id)
        actor_name = actor.name if actor else "system"
        stage_name = ticket.creator.stage_name if ticket.creator else "a creator"
        await self._notifications.create(
            assignee_id,
            NotificationType.TICKET_ASSIGNED,
            "Ticket Assigned to You",
            f"{actor_name} assigned you ticket {ticket.ticket_number} for {stage_name}",
            ticket_link_data(ticket, user_id=str(actor_id), user_name=actor_name),
        )

    async def on_comment_added(self, ticket_id: uuid.UUID, author_id: uuid.UUID, is_internal: bool) -> None:
        async with self._session_factory() as db:
            ticket = await db.get(Ticket, ticket_id)
            author = await db.get(User, author_id)
            if ticket is None or author is None:
                logger.warning("Comment notification skipped: ticket=%s author=%s", ticket_id, author_id)
                return

            candidates = [
                ticket.created_by,
                ticket.assigned_to,
            ]
            recipients: list[uuid.UUID] = []
            for user in candidates:
                if user is None or user.id == author_id or user.id in recipients:
                    continue
                if is_internal and user.role == UserRole.CREATOR.value:
                    continue
                recipients.append(user.id)

        if not recipients:
            return

        data = ticket_link_data(ticket, is_internal=is_internal, user_id=str(author_id), user_name=author.name)
        await self._notifications.create_many(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.TICKET_COMMENTED,
                title="New Comment on Ticket",
                message=f"{author.name} commented on ticket {ticket.ticket_number}",
                data=data,
            )
            for user_id in recipients
        )
