"""In-app notification store — create, list, read-mark and purge alerts.

Each public method opens its own session from the injected factory. The
deadline sweep is meant to be driven by an external scheduler; nothing
here starts background work.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.config import settings
from ticketdesk.models.base import utcnow
from ticketdesk.models.enums import NotificationType
from ticketdesk.models.notification import Notification
from ticketdesk.models.ticket import Ticket
from ticketdesk.models.user import User
from ticketdesk.tickets.errors import NotificationNotFoundError, PreconditionFailedError
from ticketdesk.tickets.lifecycle import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

# Deadline alerts for one ticket are sent at most once per window
DEADLINE_DEDUP_WINDOW = timedelta(hours=24)


class NotificationDraft(BaseModel):
    """A notification about to be written."""

    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None

    model_config = {"frozen": True}


class NotificationList(BaseModel):
    """A page of a user's notifications with totals."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[Notification]
    total: int
    unread_count: int


def ticket_link_data(ticket: Ticket, **extra: Any) -> dict[str, Any]:
    """Common payload attached to ticket notifications."""
    data: dict[str, Any] = {
        "ticket_id": str(ticket.id),
        "ticket_number": ticket.ticket_number,
        "creator_id": str(ticket.creator_id),
        "creator_name": ticket.creator.stage_name if ticket.creator else None,
        "link": f"/tickets/{ticket.id}",
    }
    if extra:
        data["extra"] = extra
    return data


class NotificationService:
    """Persistence operations for the notifications table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Writing ──────────────────────────────────────────────────────

    async def create(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        async with self._session_factory() as db, db.begin():
            notification = Notification(
                user_id=user_id,
                type=type.value,
                title=title,
                message=message,
                data=data,
                is_read=False,
            )
            db.add(notification)
        return notification

    async def create_many(self, drafts: Iterable[NotificationDraft]) -> int:
        """Write several notifications in one transaction; returns how many."""
        rows = [
            Notification(
                user_id=draft.user_id,
                type=draft.type.value,
                title=draft.title,
                message=draft.message,
                data=draft.data,
                is_read=False,
            )
            for draft in drafts
        ]
        if not rows:
            return 0
        async with self._session_factory() as db, db.begin():
            db.add_all(rows)
        logger.debug("Created %d notifications", len(rows))
        return len(rows)

    async def send_system_announcement(self, title: str, message: str, data: dict[str, Any] | None = None) -> int:
        """Notify every active user."""
        async with self._session_factory() as db:
            user_ids = (await db.scalars(select(User.id).where(User.is_active.is_(True)))).all()
        return await self.create_many(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title=title,
                message=message,
                data=data,
            )
            for user_id in user_ids
        )

    # ── Reading ──────────────────────────────────────────────────────

    async def get_by_id(self, notification_id: uuid.UUID) -> Notification | None:
        async with self._session_factory() as db:
            return await db.get(Notification, notification_id)

    async def get_for_user(
        self,
        user_id: uuid.UUID,
        *,
        unread_only: bool = False,
        type: NotificationType | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> NotificationList:
        """Newest first, with the filtered total and the user's overall unread count."""
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))
        if type is not None:
            conditions.append(Notification.type == type.value)

        async with self._session_factory() as db:
            result = await db.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc())
                .limit(max(1, limit))
                .offset(max(0, offset))
            )
            items = list(result.scalars().all())
            total = await db.scalar(select(func.count()).select_from(Notification).where(*conditions))
            unread = await db.scalar(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            )
        return NotificationList(items=items, total=total or 0, unread_count=unread or 0)

    async def get_unread_count(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as db:
            count = await db.scalar(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            )
        return count or 0

    async def get_counts_by_type(self, user_id: uuid.UUID) -> dict[NotificationType, int]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Notification.type, func.count())
                .where(Notification.user_id == user_id)
                .group_by(Notification.type)
            )
            return {NotificationType(type_): count for type_, count in result.all()}

    # ── Read state ───────────────────────────────────────────────────

    async def _require_owned(self, db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        if notification.user_id != user_id:
            msg = "User does not own this notification"
            raise PreconditionFailedError(msg)
        return notification

    async def mark_as_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        async with self._session_factory() as db, db.begin():
            notification = await self._require_owned(db, notification_id, user_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
        return notification

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True, read_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount or 0

    # ── Deleting ─────────────────────────────────────────────────────

    async def delete(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> None:
        async with self._session_factory() as db, db.begin():
            notification = await self._require_owned(db, notification_id, user_id)
            await db.delete(notification)

    async def delete_read(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                delete(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(True))
                .execution_options(synchronize_session=False)
            )
        return result.rowcount or 0

    # ── Deadline sweep ───────────────────────────────────────────────

    async def send_deadline_notifications(self, hours_before: int | None = None) -> int:
        """Warn submitter and assignee of open tickets due within `hours_before` hours.

        A ticket already warned about in the last 24 hours is skipped.
        Returns the number of notifications written.
        """
        hours = hours_before if hours_before is not None else settings.tickets.deadline_warning_hours
        now = utcnow()
        horizon = now + timedelta(hours=hours)
        terminal = [status.value for status in TERMINAL_STATUSES]

        async with self._session_factory() as db:
            tickets: Sequence[Ticket] = (
                await db.scalars(
                    select(Ticket).where(
                        Ticket.deadline >= now,
                        Ticket.deadline <= horizon,
                        Ticket.status.not_in(terminal),
                    )
                )
            ).all()
            recent = (
                await db.scalars(
                    select(Notification.data).where(
                        Notification.type == NotificationType.DEADLINE_APPROACHING.value,
                        Notification.created_at >= now - DEADLINE_DEDUP_WINDOW,
                    )
                )
            ).all()

        already_warned = {data.get("ticket_id") for data in recent if data}
        drafts: list[NotificationDraft] = []
        for ticket in tickets:
            if str(ticket.id) in already_warned:
                continue
            recipients = [ticket.assigned_to_id] if ticket.assigned_to_id else []
            if ticket.created_by_id not in recipients:
                recipients.append(ticket.created_by_id)

            deadline = ticket.deadline
            if deadline is not None and deadline.tzinfo is None:
                deadline = deadline.replace(tzinfo=now.tzinfo)
            hours_left = round((deadline - now).total_seconds() / 3600) if deadline else hours
            data = ticket_link_data(ticket, hours_left=hours_left, deadline=deadline.isoformat() if deadline else None)
            drafts.extend(
                NotificationDraft(
                    user_id=user_id,
                    type=NotificationType.DEADLINE_APPROACHING,
                    title="Ticket Deadline Approaching",
                    message=f"Ticket {ticket.ticket_number} is due in {hours_left} hours",
                    data=data,
                )
                for user_id in recipients
            )

        sent = await self.create_many(drafts)
        logger.info("Deadline sweep: %d tickets due within %dh, %d notifications sent", len(tickets), hours, sent)
        return sent
