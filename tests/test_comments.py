"""Tests for CommentService."""

from __future__ import annotations

import uuid

import pytest

from ticketdesk.schemas.audit import AuditAction
from ticketdesk.tickets.errors import (
    CommentNotFoundError,
    PreconditionFailedError,
    TicketNotFoundError,
    UserNotFoundError,
)


class TestAddComment:
    @pytest.mark.asyncio()
    async def test_add_comment(self, new_ticket, comments, store, seed):
        ticket = await new_ticket()

        comment = await comments.add_comment(ticket.id, seed.manager.id, "  Needs a longer intro  ")

        assert comment.content == "Needs a longer intro"
        assert comment.is_internal is False
        assert comment.author_id == seed.manager.id
        # Comments are not lifecycle events
        assert len(await store.get_history(ticket.id)) == 1
        reloaded = await store.require(ticket.id)
        assert reloaded.version == ticket.version

    @pytest.mark.asyncio()
    async def test_add_comment_touches_updated_at(self, new_ticket, comments, store, seed):
        ticket = await new_ticket()
        before = (await store.require(ticket.id)).updated_at

        await comments.add_comment(ticket.id, seed.manager.id, "ping")

        assert (await store.require(ticket.id)).updated_at > before

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_empty_comment_rejected(self, content, new_ticket, comments, seed):
        ticket = await new_ticket()
        with pytest.raises(PreconditionFailedError, match="empty"):
            await comments.add_comment(ticket.id, seed.manager.id, content)
        assert await comments.get_comments(ticket.id) == []

    @pytest.mark.asyncio()
    async def test_missing_ticket_or_author(self, new_ticket, comments, seed):
        with pytest.raises(TicketNotFoundError):
            await comments.add_comment(uuid.uuid4(), seed.manager.id, "hello")

        ticket = await new_ticket()
        with pytest.raises(UserNotFoundError):
            await comments.add_comment(ticket.id, uuid.uuid4(), "hello")

    @pytest.mark.asyncio()
    async def test_side_effects(self, new_ticket, comments, audit, dispatcher, seed):
        ticket = await new_ticket()
        comment = await comments.add_comment(ticket.id, seed.manager.id, "internal note", is_internal=True)

        assert dispatcher.named("on_comment_added") == [(ticket.id, seed.manager.id, True)]
        logs = await audit.get_action_logs(AuditAction.TICKET_COMMENT_ADD)
        assert len(logs) == 1
        assert logs[0].entity_type == "TicketComment"
        assert logs[0].entity_id == str(comment.id)
        assert logs[0].details["ticket_number"] == ticket.ticket_number


class TestReadAndEdit:
    @pytest.mark.asyncio()
    async def test_internal_comments_filtered(self, new_ticket, comments, seed):
        ticket = await new_ticket()
        await comments.add_comment(ticket.id, seed.manager.id, "public one")
        await comments.add_comment(ticket.id, seed.manager.id, "staff only", is_internal=True)
        await comments.add_comment(ticket.id, seed.chatter.id, "public two")

        everything = await comments.get_comments(ticket.id)
        assert [c.content for c in everything] == ["public one", "staff only", "public two"]

        public = await comments.get_comments(ticket.id, include_internal=False)
        assert [c.content for c in public] == ["public one", "public two"]

    @pytest.mark.asyncio()
    async def test_only_author_can_update(self, new_ticket, comments, audit, seed):
        ticket = await new_ticket()
        comment = await comments.add_comment(ticket.id, seed.manager.id, "draft wording")

        with pytest.raises(PreconditionFailedError, match="author"):
            await comments.update_comment(comment.id, "hijacked", seed.chatter.id)

        updated = await comments.update_comment(comment.id, " final wording ", seed.manager.id)
        assert updated.content == "final wording"
        assert len(await audit.get_action_logs(AuditAction.TICKET_COMMENT_UPDATE)) == 1

    @pytest.mark.asyncio()
    async def test_delete_comment(self, new_ticket, comments, audit, seed):
        ticket = await new_ticket()
        comment = await comments.add_comment(ticket.id, seed.manager.id, "obsolete")

        await comments.delete_comment(comment.id, seed.admin.id)

        assert await comments.get_comments(ticket.id) == []
        assert await audit.get_action_logs(AuditAction.TICKET_COMMENT_DELETE)
        with pytest.raises(CommentNotFoundError):
            await comments.delete_comment(comment.id, seed.admin.id)
