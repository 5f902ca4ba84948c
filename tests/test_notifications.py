"""Tests for the notification store, the database dispatcher, and the deadline sweep."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from ticketdesk.models.base import utcnow
from ticketdesk.models.enums import NotificationType, TicketStatus, TicketType
from ticketdesk.models.notification import Notification
from ticketdesk.notifications.dispatcher import DatabaseNotificationDispatcher, NotificationDispatcher
from ticketdesk.notifications.service import NotificationDraft, NotificationService, ticket_link_data
from ticketdesk.schemas.tickets import TicketCreate
from ticketdesk.tickets.assignment import AssignmentService
from ticketdesk.tickets.comments import CommentService
from ticketdesk.tickets.engine import TransitionEngine
from ticketdesk.tickets.errors import NotificationNotFoundError, PreconditionFailedError
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.store import TicketStore


@pytest.fixture
def notifications(session_factory) -> NotificationService:
    return NotificationService(session_factory)


@pytest.fixture
def wired(session_factory, audit, notifications):
    """Ticket services whose hooks write real notifications."""
    hooks = PostCommitHooks(audit, DatabaseNotificationDispatcher(session_factory, notifications))
    return (
        TicketStore(session_factory, hooks),
        TransitionEngine(session_factory, hooks),
        AssignmentService(session_factory, hooks),
        CommentService(session_factory, hooks),
    )


async def _open(store: TicketStore, seed, created_by=None, **fields):
    fields.setdefault("title", "Birthday shout-out")
    data = TicketCreate(type=TicketType.CUSTOM_VIDEO, creator_id=seed.creator.id, **fields)
    return await store.create(data, created_by or seed.chatter.id)


async def _inbox(notifications: NotificationService, user_id) -> list[Notification]:
    return (await notifications.get_for_user(user_id, limit=100)).items


# ── store ────────────────────────────────────────────────────────────


class TestNotificationService:
    @pytest.mark.asyncio()
    async def test_list_counts_and_read_state(self, notifications, seed):
        user = seed.manager.id
        first = await notifications.create(user, NotificationType.TICKET_ASSIGNED, "A", "first")
        await notifications.create(user, NotificationType.TICKET_COMMENTED, "B", "second")
        await notifications.create(user, NotificationType.TICKET_COMMENTED, "C", "third")

        listing = await notifications.get_for_user(user)
        assert [n.message for n in listing.items] == ["third", "second", "first"]
        assert listing.total == 3
        assert listing.unread_count == 3

        read = await notifications.mark_as_read(first.id, user)
        assert read.is_read and read.read_at is not None
        assert await notifications.get_unread_count(user) == 2

        unread = await notifications.get_for_user(user, unread_only=True)
        assert unread.total == 2
        commented = await notifications.get_for_user(user, type=NotificationType.TICKET_COMMENTED)
        assert commented.total == 2
        assert await notifications.get_counts_by_type(user) == {
            NotificationType.TICKET_ASSIGNED: 1,
            NotificationType.TICKET_COMMENTED: 2,
        }

        assert await notifications.mark_all_as_read(user) == 2
        assert await notifications.delete_read(user) == 3
        assert (await notifications.get_for_user(user)).total == 0

    @pytest.mark.asyncio()
    async def test_owner_checks(self, notifications, seed):
        note = await notifications.create(seed.manager.id, NotificationType.TICKET_CREATED, "T", "m")

        with pytest.raises(PreconditionFailedError, match="does not own"):
            await notifications.mark_as_read(note.id, seed.chatter.id)
        with pytest.raises(PreconditionFailedError):
            await notifications.delete(note.id, seed.chatter.id)
        with pytest.raises(NotificationNotFoundError):
            await notifications.mark_as_read(uuid.uuid4(), seed.manager.id)

        await notifications.delete(note.id, seed.manager.id)
        assert await notifications.get_by_id(note.id) is None

    @pytest.mark.asyncio()
    async def test_create_many_and_announcement(self, notifications, seed):
        assert await notifications.create_many([]) == 0
        written = await notifications.create_many([
            NotificationDraft(user_id=seed.admin.id, type=NotificationType.TICKET_CREATED, title="t", message="m"),
        ])
        assert written == 1

        # Four active users in the seed; the inactive one is skipped
        assert await notifications.send_system_announcement("Maintenance", "Down at 2am") == 4
        assert await notifications.get_unread_count(seed.inactive.id) == 0

    @pytest.mark.asyncio()
    async def test_ticket_link_data(self, new_ticket):
        ticket = await new_ticket()

        data = ticket_link_data(ticket, hours_left=3)

        assert data["ticket_id"] == str(ticket.id)
        assert data["creator_name"] == "Luna Star"
        assert data["link"] == f"/tickets/{ticket.id}"
        assert data["extra"] == {"hours_left": 3}


# ── dispatcher ───────────────────────────────────────────────────────


class TestDatabaseDispatcher:
    def test_satisfies_protocol(self, session_factory):
        assert isinstance(DatabaseNotificationDispatcher(session_factory), NotificationDispatcher)

    @pytest.mark.asyncio()
    async def test_created_notifies_creator_staff(self, wired, notifications, seed):
        store, *_ = wired
        ticket = await _open(store, seed)

        inbox = await _inbox(notifications, seed.manager.id)
        assert len(inbox) == 1
        assert inbox[0].type == NotificationType.TICKET_CREATED.value
        assert inbox[0].message == f"New custom video ticket {ticket.ticket_number} created for Luna Star"
        assert await _inbox(notifications, seed.chatter.id) == []

    @pytest.mark.asyncio()
    async def test_status_change_skips_actor(self, wired, notifications, seed):
        store, engine, assignments, _ = wired
        ticket = await _open(store, seed)
        await assignments.assign(ticket.id, seed.manager.id, seed.manager.id)

        await engine.submit(ticket.id, seed.manager.id)

        chatter_inbox = await _inbox(notifications, seed.chatter.id)
        assert [n.message for n in chatter_inbox] == [
            f"Ticket {ticket.ticket_number} status changed to submitted by Max Manager"
        ]
        assert chatter_inbox[0].data["extra"]["previous_status"] == TicketStatus.DRAFT.value
        manager_types = {n.type for n in await _inbox(notifications, seed.manager.id)}
        assert NotificationType.TICKET_STATUS_CHANGED.value not in manager_types

    @pytest.mark.asyncio()
    async def test_assignment_notifies_assignee_unless_self(self, wired, notifications, seed):
        store, _, assignments, _ = wired
        ticket = await _open(store, seed)

        await assignments.assign(ticket.id, seed.chatter.id, seed.chatter.id)
        assert await _inbox(notifications, seed.chatter.id) == []

        await assignments.assign(ticket.id, seed.admin.id, seed.manager.id)
        inbox = await _inbox(notifications, seed.admin.id)
        assert [n.message for n in inbox] == [
            f"Max Manager assigned you ticket {ticket.ticket_number} for Luna Star"
        ]

    @pytest.mark.asyncio()
    async def test_internal_comment_hidden_from_creator_role(self, wired, notifications, seed):
        store, _, assignments, comments = wired
        ticket = await _open(store, seed, created_by=seed.creator_user.id)
        await assignments.assign(ticket.id, seed.chatter.id, seed.admin.id)

        await comments.add_comment(ticket.id, seed.manager.id, "staff note", is_internal=True)

        assert await _inbox(notifications, seed.creator_user.id) == []
        chatter_types = [n.type for n in await _inbox(notifications, seed.chatter.id)]
        assert chatter_types.count(NotificationType.TICKET_COMMENTED.value) == 1

        await comments.add_comment(ticket.id, seed.manager.id, "public note")
        creator_inbox = await _inbox(notifications, seed.creator_user.id)
        assert [n.message for n in creator_inbox] == [f"Max Manager commented on ticket {ticket.ticket_number}"]

    @pytest.mark.asyncio()
    async def test_comment_author_not_notified(self, wired, notifications, seed):
        store, _, _, comments = wired
        ticket = await _open(store, seed)

        await comments.add_comment(ticket.id, seed.chatter.id, "my own note")

        assert await _inbox(notifications, seed.chatter.id) == []


# ── deadline sweep ───────────────────────────────────────────────────


class TestDeadlineSweep:
    @pytest.mark.asyncio()
    async def test_warns_submitter_and_assignee_once(self, new_ticket, assignments, transitions, notifications, seed):
        now = utcnow()
        due = await new_ticket(title="due soon", deadline=now + timedelta(hours=5))
        await assignments.assign(due.id, seed.manager.id, seed.admin.id)
        await new_ticket(title="far away", deadline=now + timedelta(days=5))
        await new_ticket(title="already late", deadline=now - timedelta(hours=1))
        closed = await new_ticket(title="cancelled", deadline=now + timedelta(hours=2))
        await transitions.cancel(closed.id, seed.chatter.id)

        assert await notifications.send_deadline_notifications(hours_before=24) == 2

        inbox = await _inbox(notifications, seed.chatter.id)
        assert [n.message for n in inbox] == [f"Ticket {due.ticket_number} is due in 5 hours"]
        assert inbox[0].type == NotificationType.DEADLINE_APPROACHING.value
        assert len(await _inbox(notifications, seed.manager.id)) == 1

        # Second sweep inside the dedup window sends nothing
        assert await notifications.send_deadline_notifications(hours_before=24) == 0

    @pytest.mark.asyncio()
    async def test_submitter_who_is_assignee_warned_once(self, new_ticket, assignments, notifications, seed):
        due = await new_ticket(deadline=utcnow() + timedelta(hours=3))
        await assignments.assign(due.id, seed.chatter.id, seed.admin.id)

        assert await notifications.send_deadline_notifications(hours_before=12) == 1
