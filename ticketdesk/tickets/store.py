"""Ticket aggregate store — creation, lookup, field edits, draft deletion,
and listing.

Every mutation runs in one transaction that also inserts exactly one
TicketHistory row; audit and notification side effects run after commit
through PostCommitHooks. The transaction helpers at the top of this module
are shared by the transition engine and the assignment/comment services.
"""

from __future__ import annotations

import contextlib
import logging
import math
import uuid
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, case, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ticketdesk.config import settings
from ticketdesk.models.base import utcnow
from ticketdesk.models.creator import Creator
from ticketdesk.models.enums import TicketPriority, TicketStatus, TicketType
from ticketdesk.models.ticket import Ticket, TicketComment, TicketHistory
from ticketdesk.models.user import User
from ticketdesk.schemas.audit import ActorContext, AuditAction, AuditEntity, AuditEntry
from ticketdesk.schemas.tickets import TicketCreate, TicketFilter, TicketPage, TicketUpdate
from ticketdesk.tickets import lifecycle
from ticketdesk.tickets.errors import (
    CreatorNotFoundError,
    PersistenceFailureError,
    PreconditionFailedError,
    TicketConflictError,
    TicketNotFoundError,
    UserNotFoundError,
)
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.numbering import allocate_ticket_number
from ticketdesk.tickets.payloads import PayloadModels, check_payload

logger = logging.getLogger(__name__)

PRIORITY_RANK: dict[str, int] = {priority.value: rank for rank, priority in enumerate(TicketPriority)}
STATUS_RANK: dict[str, int] = {status.value: rank for rank, status in enumerate(lifecycle.STATUS_ORDER)}

_TERMINAL_VALUES = [status.value for status in lifecycle.TERMINAL_STATUSES]


# ── Shared transaction helpers ───────────────────────────────────────


@contextlib.asynccontextmanager
async def ticket_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    ticket_id: Any = None,
) -> AsyncIterator[AsyncSession]:
    """Open a session and a transaction that commits on clean exit.

    A version-check failure becomes TicketConflictError; any other
    database error becomes PersistenceFailureError. Domain errors raised
    in the block roll back and propagate unchanged.
    """
    try:
        async with session_factory() as db, db.begin():
            yield db
    except StaleDataError as exc:
        raise TicketConflictError(ticket_id) from exc
    except SQLAlchemyError as exc:
        logger.error("Ticket transaction failed (ticket=%s): %s", ticket_id, exc)
        raise PersistenceFailureError(str(exc)) from exc


async def lock_ticket(db: AsyncSession, ticket_id: uuid.UUID) -> Ticket:
    """Load a ticket with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Ticket)
        .where(Ticket.id == ticket_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise TicketNotFoundError(ticket_id)
    return ticket


def history_row(
    ticket: Ticket,
    *,
    previous_status: str | None,
    actor_id: uuid.UUID,
    reason: str | None,
    previous_data: dict[str, Any] | None = None,
) -> TicketHistory:
    """History row for the ticket's current state; previous_data defaults to the current payload."""
    return TicketHistory(
        ticket_id=ticket.id,
        previous_status=previous_status,
        new_status=ticket.status,
        previous_data=previous_data if previous_data is not None else ticket.ticket_data,
        new_data=ticket.ticket_data,
        changed_by_id=actor_id,
        change_reason=reason,
    )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; they were written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _normalize(field: str, value: Any) -> Any:
    if isinstance(value, TicketPriority):
        return value.value
    if field == "description" and isinstance(value, str):
        return value.strip() or None
    if field == "deadline":
        return _as_utc(value)
    return value


def _differs(field: str, old: Any, new: Any) -> bool:
    if field == "deadline":
        return _as_utc(old) != new
    if isinstance(old, dict) and isinstance(new, dict):
        # Documents are order-preserving; a reordering counts as a change
        return list(old.items()) != list(new.items())
    return old != new


# ── Store ────────────────────────────────────────────────────────────


class TicketStore:
    """Owns ticket identity and non-status field edits."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hooks: PostCommitHooks,
        *,
        payload_models: PayloadModels | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._hooks = hooks
        self._payload_models = payload_models

    # ── Create ───────────────────────────────────────────────────────

    async def create(
        self,
        data: TicketCreate,
        created_by_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> Ticket:
        """Open a ticket in draft (or submitted, when submit_immediately is set)."""
        ticket_data = check_payload(self._payload_models, data.type, dict(data.ticket_data))
        status = lifecycle.initial_status(data.submit_immediately)

        async with ticket_transaction(self._session_factory) as db:
            creator = await db.get(Creator, data.creator_id)
            if creator is None:
                raise CreatorNotFoundError(data.creator_id)
            author = await db.get(User, created_by_id)
            if author is None:
                raise UserNotFoundError(created_by_id)

            now = utcnow()
            ticket = Ticket(
                id=uuid.uuid4(),
                ticket_number=await allocate_ticket_number(db, data.type, now=now),
                type=data.type.value,
                status=status.value,
                priority=data.priority.value,
                title=data.title,
                description=data.description or None,
                ticket_data=ticket_data,
                deadline=data.deadline,
                submitted_at=now if status is TicketStatus.SUBMITTED else None,
                creator=creator,
                created_by=author,
                assigned_to=None,
            )
            db.add(ticket)
            db.add(TicketHistory(
                ticket_id=ticket.id,
                previous_status=None,
                new_status=ticket.status,
                previous_data=None,
                new_data=ticket_data,
                changed_by_id=created_by_id,
                change_reason="Ticket created",
            ))

        logger.info("Ticket created: %s (%s, status=%s)", ticket.ticket_number, ticket.type, ticket.status)
        await self._hooks.after_commit(
            AuditEntry(
                action=AuditAction.TICKET_CREATE,
                entity_type=AuditEntity.TICKET,
                entity_id=ticket.id,
                actor_id=created_by_id,
                details={
                    "ticket_number": ticket.ticket_number,
                    "type": ticket.type,
                    "status": ticket.status,
                    "creator_id": ticket.creator_id,
                },
                context=context,
            ),
            notify=lambda dispatcher: dispatcher.on_ticket_created(ticket, creator),
        )
        return ticket

    # ── Lookup ───────────────────────────────────────────────────────

    async def get_by_id(self, ticket_id: uuid.UUID) -> Ticket | None:
        async with self._session_factory() as db:
            return await db.get(Ticket, ticket_id)

    async def get_by_number(self, ticket_number: str) -> Ticket | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Ticket).where(Ticket.ticket_number == ticket_number))
            return result.scalar_one_or_none()

    async def require(self, ticket_id: uuid.UUID) -> Ticket:
        ticket = await self.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    async def exists(self, ticket_id: uuid.UUID) -> bool:
        async with self._session_factory() as db:
            found = await db.scalar(select(Ticket.id).where(Ticket.id == ticket_id))
        return found is not None

    async def is_terminal(self, ticket_id: uuid.UUID) -> bool:
        async with self._session_factory() as db:
            status = await db.scalar(select(Ticket.status).where(Ticket.id == ticket_id))
        if status is None:
            raise TicketNotFoundError(ticket_id)
        return lifecycle.is_terminal(TicketStatus(status))

    async def get_history(self, ticket_id: uuid.UUID) -> list[TicketHistory]:
        """History rows for a ticket, newest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(TicketHistory)
                .where(TicketHistory.ticket_id == ticket_id)
                .order_by(TicketHistory.created_at.desc())
            )
            return list(result.scalars().all())

    # ── Update ───────────────────────────────────────────────────────

    async def update(
        self,
        ticket_id: uuid.UUID,
        data: TicketUpdate,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> Ticket:
        """Edit title/description/priority/deadline/ticket_data/response_data.

        Values equal to the stored ones are ignored. When nothing differs
        the current ticket is returned and nothing is written.
        """
        requested = {field: _normalize(field, value) for field, value in data.changes().items()}

        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket = await lock_ticket(db, ticket_id)
            changes = {
                field: {"old": getattr(ticket, field), "new": value}
                for field, value in requested.items()
                if _differs(field, getattr(ticket, field), value)
            }
            if not changes:
                logger.debug("Update of %s is a no-op", ticket.ticket_number)
                return ticket

            if "ticket_data" in changes:
                check_payload(self._payload_models, TicketType(ticket.type), changes["ticket_data"]["new"])
            previous_data = ticket.ticket_data
            for field, change in changes.items():
                setattr(ticket, field, change["new"])
            db.add(history_row(
                ticket,
                previous_status=ticket.status,
                actor_id=actor_id,
                reason=f"Updated fields: {', '.join(changes)}",
                previous_data=previous_data,
            ))

        logger.info("Ticket %s updated: %s", ticket.ticket_number, ", ".join(changes))
        await self._hooks.after_commit(AuditEntry(
            action=AuditAction.TICKET_UPDATE,
            entity_type=AuditEntity.TICKET,
            entity_id=ticket.id,
            actor_id=actor_id,
            details={"ticket_number": ticket.ticket_number, "changes": changes},
            context=context,
        ))
        return ticket

    # ── Delete ───────────────────────────────────────────────────────

    async def delete(
        self,
        ticket_id: uuid.UUID,
        actor_id: uuid.UUID,
        context: ActorContext | None = None,
    ) -> None:
        """Hard-delete a draft ticket along with its history and comments."""
        async with ticket_transaction(self._session_factory, ticket_id) as db:
            ticket = await lock_ticket(db, ticket_id)
            if ticket.status != TicketStatus.DRAFT.value:
                msg = (
                    f"Ticket {ticket.ticket_number} is {ticket.status}; "
                    "only draft tickets can be deleted, use cancel instead"
                )
                raise PreconditionFailedError(msg)

            ticket_number = ticket.ticket_number
            await db.execute(
                delete(TicketHistory)
                .where(TicketHistory.ticket_id == ticket_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(TicketComment)
                .where(TicketComment.ticket_id == ticket_id)
                .execution_options(synchronize_session=False)
            )
            await db.delete(ticket)

        logger.info("Draft ticket deleted: %s", ticket_number)
        await self._hooks.after_commit(AuditEntry(
            action=AuditAction.TICKET_DELETE,
            entity_type=AuditEntity.TICKET,
            entity_id=ticket_id,
            actor_id=actor_id,
            details={"ticket_number": ticket_number},
            context=context,
        ))

    # ── Listing ──────────────────────────────────────────────────────

    @staticmethod
    def _conditions(filters: TicketFilter) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if filters.types:
            conditions.append(Ticket.type.in_([t.value for t in filters.types]))
        if filters.statuses:
            conditions.append(Ticket.status.in_([s.value for s in filters.statuses]))
        if filters.priorities:
            conditions.append(Ticket.priority.in_([p.value for p in filters.priorities]))
        if filters.creator_id is not None:
            conditions.append(Ticket.creator_id == filters.creator_id)
        if filters.assigned_to_id is not None:
            conditions.append(Ticket.assigned_to_id == filters.assigned_to_id)
        if filters.created_by_id is not None:
            conditions.append(Ticket.created_by_id == filters.created_by_id)
        if filters.search:
            conditions.append(or_(
                Ticket.title.icontains(filters.search, autoescape=True),
                Ticket.description.icontains(filters.search, autoescape=True),
                Ticket.ticket_number.icontains(filters.search, autoescape=True),
            ))
        if filters.created_after is not None:
            conditions.append(Ticket.created_at >= filters.created_after)
        if filters.created_before is not None:
            conditions.append(Ticket.created_at <= filters.created_before)
        if filters.deadline_before is not None:
            conditions.append(Ticket.deadline <= filters.deadline_before)
        if filters.overdue_only:
            conditions.append(Ticket.deadline < utcnow())
            conditions.append(Ticket.status.not_in(_TERMINAL_VALUES))
        return conditions

    @staticmethod
    def _ordering(filters: TicketFilter) -> list[Any]:
        if filters.sort_by == "priority":
            key: Any = case(PRIORITY_RANK, value=Ticket.priority, else_=-1)
        elif filters.sort_by == "status":
            key = case(STATUS_RANK, value=Ticket.status, else_=-1)
        else:
            key = getattr(Ticket, filters.sort_by)
        primary = key.asc() if filters.sort_order == "asc" else key.desc()
        return [primary, Ticket.created_at.desc(), Ticket.id]

    def _page_size(self, requested: int | None) -> int:
        size = requested if requested is not None else settings.tickets.default_page_size
        return max(1, min(size, settings.tickets.max_page_size))

    async def list(self, filters: TicketFilter | None = None) -> TicketPage:
        """Filtered, sorted, 1-based page of tickets."""
        filters = filters or TicketFilter()
        page = max(1, filters.page)
        page_size = self._page_size(filters.page_size)
        conditions = self._conditions(filters)

        async with self._session_factory() as db:
            result = await db.execute(
                select(Ticket)
                .where(*conditions)
                .order_by(*self._ordering(filters))
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            items = result.scalars().all()
            total = await db.scalar(select(func.count()).select_from(Ticket).where(*conditions)) or 0

        return TicketPage(
            items=list(items),
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    async def for_creator(self, creator_id: uuid.UUID, filters: TicketFilter | None = None) -> TicketPage:
        return await self.list((filters or TicketFilter()).model_copy(update={"creator_id": creator_id}))

    async def assigned_to(self, user_id: uuid.UUID, filters: TicketFilter | None = None) -> TicketPage:
        return await self.list((filters or TicketFilter()).model_copy(update={"assigned_to_id": user_id}))

    async def created_by(self, user_id: uuid.UUID, filters: TicketFilter | None = None) -> TicketPage:
        return await self.list((filters or TicketFilter()).model_copy(update={"created_by_id": user_id}))

    # ── Dashboard queries ────────────────────────────────────────────

    async def status_counts(
        self,
        creator_id: uuid.UUID | None = None,
        assigned_to_id: uuid.UUID | None = None,
    ) -> dict[TicketStatus, int]:
        """Ticket count per status, zero-filled for all statuses."""
        stmt = select(Ticket.status, func.count()).group_by(Ticket.status)
        if creator_id is not None:
            stmt = stmt.where(Ticket.creator_id == creator_id)
        if assigned_to_id is not None:
            stmt = stmt.where(Ticket.assigned_to_id == assigned_to_id)

        counts = dict.fromkeys(TicketStatus, 0)
        async with self._session_factory() as db:
            for status, count in (await db.execute(stmt)).all():
                counts[TicketStatus(status)] = count
        return counts

    async def _fetch(self, stmt: Any) -> list[Ticket]:
        async with self._session_factory() as db:
            return list((await db.scalars(stmt)).all())

    async def recent(self, limit: int = 10) -> list[Ticket]:
        return await self._fetch(select(Ticket).order_by(Ticket.created_at.desc()).limit(limit))

    async def overdue(self, limit: int = 20) -> list[Ticket]:
        """Open tickets past their deadline, most overdue first."""
        return await self._fetch(
            select(Ticket)
            .where(Ticket.deadline < utcnow(), Ticket.status.not_in(_TERMINAL_VALUES))
            .order_by(Ticket.deadline.asc())
            .limit(limit)
        )

    async def unassigned(self, limit: int = 20) -> list[Ticket]:
        """Submitted, still-open tickets nobody owns, most urgent first."""
        waiting = Ticket.status.not_in([*_TERMINAL_VALUES, TicketStatus.DRAFT.value])
        return await self._fetch(
            select(Ticket)
            .where(Ticket.assigned_to_id.is_(None), waiting)
            .order_by(case(PRIORITY_RANK, value=Ticket.priority, else_=-1).desc(), Ticket.created_at.asc())
            .limit(limit)
        )
