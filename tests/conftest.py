"""Shared fixtures: in-memory SQLite database, seeded users/creator, wired services."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ticketdesk.db.engine import create_session_factory
from ticketdesk.models import Base, Creator, Ticket, TicketType, User, UserCreatorAssignment, UserRole
from ticketdesk.models.enums import TicketStatus
from ticketdesk.schemas.tickets import TicketCreate
from ticketdesk.security.audit import AuditRecorder
from ticketdesk.tickets.assignment import AssignmentService
from ticketdesk.tickets.comments import CommentService
from ticketdesk.tickets.engine import TransitionEngine
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.store import TicketStore


# ── Dispatcher doubles ───────────────────────────────────────────────


@dataclass
class RecordingDispatcher:
    """Remembers every dispatcher call as (method, args)."""

    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    async def on_ticket_created(self, ticket, creator) -> None:
        self.calls.append(("on_ticket_created", (ticket.id, creator.id)))

    async def on_status_changed(self, ticket, previous_status, actor_id) -> None:
        self.calls.append(("on_status_changed", (ticket.id, TicketStatus(previous_status), actor_id)))

    async def on_assigned(self, ticket, assignee_id, actor_id) -> None:
        self.calls.append(("on_assigned", (ticket.id, assignee_id, actor_id)))

    async def on_comment_added(self, ticket_id, author_id, is_internal) -> None:
        self.calls.append(("on_comment_added", (ticket_id, author_id, is_internal)))

    def named(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]


class FailingDispatcher:
    """Dispatcher whose every call blows up."""

    async def on_ticket_created(self, ticket, creator) -> None:
        raise ConnectionError("notification sink down")

    async def on_status_changed(self, ticket, previous_status, actor_id) -> None:
        raise ConnectionError("notification sink down")

    async def on_assigned(self, ticket, assignee_id, actor_id) -> None:
        raise ConnectionError("notification sink down")

    async def on_comment_added(self, ticket_id, author_id, is_internal) -> None:
        raise ConnectionError("notification sink down")


# ── Database ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@dataclass
class Seed:
    admin: User
    manager: User
    chatter: User
    creator_user: User
    inactive: User
    creator: Creator


@pytest_asyncio.fixture
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seed:
    """Five users (one inactive) and one creator followed by the manager."""
    async with session_factory() as db, db.begin():
        admin = User(email="admin@agency.test", name="Ada Admin", role=UserRole.SUPER_ADMIN.value)
        manager = User(email="manager@agency.test", name="Max Manager", role=UserRole.MANAGER.value)
        chatter = User(email="chatter@agency.test", name="Cleo Chatter", role=UserRole.CHATTER.value)
        creator_user = User(email="luna@creators.test", name="Luna", role=UserRole.CREATOR.value)
        inactive = User(
            email="gone@agency.test", name="Ivy Inactive", role=UserRole.CHATTER.value, is_active=False
        )
        db.add_all([admin, manager, chatter, creator_user, inactive])
        await db.flush()

        creator = Creator(user_id=creator_user.id, stage_name="Luna Star", user=creator_user)
        db.add(creator)
        await db.flush()
        db.add(UserCreatorAssignment(user_id=manager.id, creator_id=creator.id, is_primary=True))

    return Seed(
        admin=admin,
        manager=manager,
        chatter=chatter,
        creator_user=creator_user,
        inactive=inactive,
        creator=creator,
    )


# ── Services ─────────────────────────────────────────────────────────


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher() -> FailingDispatcher:
    return FailingDispatcher()


@pytest.fixture
def audit(session_factory: async_sessionmaker[AsyncSession]) -> AuditRecorder:
    return AuditRecorder(session_factory)


@pytest.fixture
def hooks(audit: AuditRecorder, dispatcher: RecordingDispatcher) -> PostCommitHooks:
    return PostCommitHooks(audit, dispatcher)


@pytest.fixture
def store(session_factory, hooks) -> TicketStore:
    return TicketStore(session_factory, hooks)


@pytest.fixture
def transitions(session_factory, hooks) -> TransitionEngine:
    return TransitionEngine(session_factory, hooks)


@pytest.fixture
def assignments(session_factory, hooks) -> AssignmentService:
    return AssignmentService(session_factory, hooks)


@pytest.fixture
def comments(session_factory, hooks) -> CommentService:
    return CommentService(session_factory, hooks)


NewTicket = Callable[..., Awaitable[Ticket]]


@pytest.fixture
def new_ticket(store: TicketStore, seed: Seed) -> NewTicket:
    """Factory creating a ticket for the seeded creator, opened by the chatter."""

    async def _create(
        type: TicketType = TicketType.CUSTOM_VIDEO,
        *,
        created_by: uuid.UUID | None = None,
        **fields: Any,
    ) -> Ticket:
        fields.setdefault("title", "Birthday shout-out")
        fields.setdefault("ticket_data", {"videoType": "shoutout", "duration": 60})
        data = TicketCreate(type=type, creator_id=seed.creator.id, **fields)
        return await store.create(data, created_by or seed.chatter.id)

    return _create
