"""Ticket comments — add, list, edit and delete.

Visibility of internal comments is left to readers and to the
notification dispatcher; this service stores the flag as given.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.models.base import utcnow
from ticketdesk.models.ticket import Ticket, TicketComment
from ticketdesk.models.user import User
from ticketdesk.schemas.audit import ActorContext, AuditAction, AuditEntity, AuditEntry
from ticketdesk.tickets.errors import (
    CommentNotFoundError,
    PreconditionFailedError,
    TicketNotFoundError,
    UserNotFoundError,
)
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.store import ticket_transaction

logger = logging.getLogger(__name__)


def _clean(content: str) -> str:
    stripped = content.strip()
    if not stripped:
        msg = "Comment cannot be empty"
        raise PreconditionFailedError(msg)
    return stripped


class CommentService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], hooks: PostCommitHooks) -> None:
        self._session_factory = session_factory
        self._hooks = hooks

    async def add_comment(
        self,
        ticket_id: uuid.UUID,
        author_id: uuid.UUID,
        content: str,
        is_internal: bool = False,
        context: ActorContext | None = None,
    ) -> TicketComment:
        """Append a comment and touch the ticket's updated_at in one transaction."""
        content = _clean(content)

        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket_number = await db.scalar(select(Ticket.ticket_number).where(Ticket.id == ticket_id))
            if ticket_number is None:
                raise TicketNotFoundError(ticket_id)
            author = await db.get(User, author_id)
            if author is None:
                raise UserNotFoundError(author_id)

            comment = TicketComment(
                ticket_id=ticket_id,
                author=author,
                content=content,
                is_internal=is_internal,
            )
            db.add(comment)
            # Plain UPDATE: a comment does not bump the ticket's version
            await db.execute(
                update(Ticket)
                .where(Ticket.id == ticket_id)
                .values(updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        logger.info("Comment added to %s by %s (internal=%s)", ticket_number, author_id, is_internal)
        await self._hooks.after_commit(
            AuditEntry(
                action=AuditAction.TICKET_COMMENT_ADD,
                entity_type=AuditEntity.COMMENT,
                entity_id=comment.id,
                actor_id=author_id,
                details={
                    "ticket_id": ticket_id,
                    "ticket_number": ticket_number,
                    "is_internal": is_internal,
                },
                context=context,
            ),
            notify=lambda dispatcher: dispatcher.on_comment_added(ticket_id, author_id, is_internal),
        )
        return comment

    async def get_comments(self, ticket_id: uuid.UUID, include_internal: bool = True) -> list[TicketComment]:
        """Comments on a ticket, oldest first."""
        stmt = select(TicketComment).where(TicketComment.ticket_id == ticket_id)
        if not include_internal:
            stmt = stmt.where(TicketComment.is_internal.is_(False))
        async with self._session_factory() as db:
            result = await db.execute(stmt.order_by(TicketComment.created_at.asc()))
            return list(result.scalars().all())

    async def update_comment(
        self,
        comment_id: uuid.UUID,
        content: str,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> TicketComment:
        """Replace a comment's content; only its author may do so."""
        content = _clean(content)

        async with ticket_transaction(self._session_factory) as db:
            comment = await db.get(TicketComment, comment_id)
            if comment is None:
                raise CommentNotFoundError(comment_id)
            if comment.author_id != actor_id:
                msg = "Only the comment author can update it"
                raise PreconditionFailedError(msg)
            comment.content = content

        await self._hooks.after_commit(AuditEntry(
            action=AuditAction.TICKET_COMMENT_UPDATE,
            entity_type=AuditEntity.COMMENT,
            entity_id=comment_id,
            actor_id=actor_id,
            details={"ticket_id": comment.ticket_id},
            context=context,
        ))
        return comment

    async def delete_comment(
        self,
        comment_id: uuid.UUID,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> None:
        """Remove a comment. Whether the actor may do so is the caller's decision."""
        async with ticket_transaction(self._session_factory) as db:
            comment = await db.get(TicketComment, comment_id)
            if comment is None:
                raise CommentNotFoundError(comment_id)
            ticket_id = comment.ticket_id
            await db.delete(comment)

        logger.info("Comment %s deleted by %s", comment_id, actor_id)
        await self._hooks.after_commit(AuditEntry(
            action=AuditAction.TICKET_COMMENT_DELETE,
            entity_type=AuditEntity.COMMENT,
            entity_id=comment_id,
            actor_id=actor_id,
            details={"ticket_id": ticket_id},
            context=context,
        ))
