"""TicketSequence model — per-type counter backing ticket numbers.

Incremented with a single UPDATE ... RETURNING inside the ticket creation
transaction, so the row lock serializes concurrent creators of one type.
"""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ticketdesk.models.base import Base


class TicketSequence(Base):
    """Last ticket sequence number handed out for a ticket type."""

    __tablename__ = "ticket_sequences"

    ticket_type: Mapped[str] = mapped_column(String(30), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<TicketSequence type={self.ticket_type} last={self.last_value}>"
