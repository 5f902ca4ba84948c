"""Human-readable ticket numbers: ``{PREFIX}-{YYYY}-{00000}``.

The sequence part comes from a per-type counter row (ticket_sequences)
advanced with one atomic UPDATE ... RETURNING inside the creation
transaction. The row lock taken by that UPDATE serializes concurrent
creators of the same type until their transaction ends; other types use
other rows and never wait.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ticketdesk.models.base import utcnow
from ticketdesk.models.enums import TicketType
from ticketdesk.models.sequence import TicketSequence
from ticketdesk.models.ticket import Ticket

logger = logging.getLogger(__name__)

TICKET_TYPE_PREFIXES: dict[TicketType, str] = {
    TicketType.CUSTOM_VIDEO: "CVR",
    TicketType.VIDEO_CALL: "VCL",
    TicketType.CONTENT_REQUEST: "CTR",
    TicketType.GENERAL_INQUIRY: "GEN",
    TicketType.URGENT_ALERT: "URG",
}

SEQUENCE_WIDTH = 5

# Dialects with an INSERT ... ON CONFLICT DO NOTHING construct
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def format_ticket_number(ticket_type: TicketType, sequence: int, *, year: int | None = None) -> str:
    """Render a ticket number, e.g. ``format_ticket_number(TicketType.VIDEO_CALL, 42) -> "VCL-2026-00042"``."""
    if sequence < 1:
        msg = f"Ticket sequence must be positive, got {sequence}"
        raise ValueError(msg)
    prefix = TICKET_TYPE_PREFIXES[ticket_type]
    year = year if year is not None else utcnow().year
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


async def allocate_ticket_number(
    db: AsyncSession,
    ticket_type: TicketType,
    *,
    now: datetime | None = None,
) -> str:
    """Reserve the next number for `ticket_type` within the caller's transaction.

    The first allocation for a type seeds the counter from the number of
    tickets of that type already stored, so the sequence continues from
    existing data.
    """
    value = await _increment(db, ticket_type)
    if value is None:
        await _seed(db, ticket_type)
        value = await _increment(db, ticket_type)
    if value is None:
        msg = f"Ticket sequence row missing for {ticket_type.value}"
        raise RuntimeError(msg)

    number = format_ticket_number(ticket_type, value, year=(now or utcnow()).year)
    logger.debug("Allocated ticket number %s", number)
    return number


async def _increment(db: AsyncSession, ticket_type: TicketType) -> int | None:
    stmt = (
        update(TicketSequence)
        .where(TicketSequence.ticket_type == ticket_type.value)
        .values(last_value=TicketSequence.last_value + 1)
        .returning(TicketSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _seed(db: AsyncSession, ticket_type: TicketType) -> None:
    existing = await db.scalar(
        select(func.count()).select_from(Ticket).where(Ticket.type == ticket_type.value)
    )
    dialect = db.get_bind().dialect.name
    insert_fn = _UPSERT_INSERTS.get(dialect)
    if insert_fn is None:
        msg = f"Ticket sequences are not supported on dialect {dialect!r}"
        raise RuntimeError(msg)

    # Concurrent first creators race here; the loser's insert is a no-op
    stmt = (
        insert_fn(TicketSequence)
        .values(ticket_type=ticket_type.value, last_value=existing or 0)
        .on_conflict_do_nothing(index_elements=[TicketSequence.ticket_type])
    )
    await db.execute(stmt)
    logger.info("Seeded ticket sequence for %s at %d", ticket_type.value, existing or 0)
