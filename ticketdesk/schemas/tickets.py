"""Pydantic schemas for ticket inputs and query results."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketdesk.models.enums import TicketPriority, TicketStatus, TicketType

# Columns a ticket list may be ordered by
TicketSortField = Literal["created_at", "updated_at", "deadline", "priority", "status", "ticket_number"]
SortOrder = Literal["asc", "desc"]

_REQUIRED_FIELDS = ("title", "priority", "ticket_data")


class TicketCreate(BaseModel):
    """Input for opening a new ticket."""

    type: TicketType
    creator_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: TicketPriority = TicketPriority.MEDIUM
    ticket_data: dict[str, Any] = Field(default_factory=dict)
    deadline: datetime | None = None
    submit_immediately: bool = False

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "Title must not be blank"
            raise ValueError(msg)
        return stripped

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None


class TicketUpdate(BaseModel):
    """Partial update of a ticket's editable fields.

    Only fields explicitly set are considered, so passing
    ``description=None`` clears the description while omitting it leaves
    the stored value alone.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: TicketPriority | None = None
    deadline: datetime | None = None
    ticket_data: dict[str, Any] | None = None
    response_data: dict[str, Any] | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return None
        stripped = v.strip()
        if not stripped:
            msg = "Title must not be blank"
            raise ValueError(msg)
        return stripped

    def changes(self) -> dict[str, Any]:
        """Explicitly set fields; None is ignored for the non-nullable ones."""
        values = self.model_dump(exclude_unset=True)
        for name in _REQUIRED_FIELDS:
            if name in values and values[name] is None:
                del values[name]
        return values


class TicketFilter(BaseModel):
    """Criteria, paging, and ordering for a ticket listing."""

    types: list[TicketType] | None = None
    statuses: list[TicketStatus] | None = None
    priorities: list[TicketPriority] | None = None
    creator_id: uuid.UUID | None = None
    assigned_to_id: uuid.UUID | None = None
    created_by_id: uuid.UUID | None = None
    search: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    deadline_before: datetime | None = None
    overdue_only: bool = False

    # Paging (1-based); page_size is clamped by the store
    page: int = 1
    page_size: int | None = None
    sort_by: TicketSortField = "created_at"
    sort_order: SortOrder = "desc"

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class TicketPage(BaseModel):
    """One page of tickets plus paging totals."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[Any]
    total: int
    page: int
    page_size: int
    total_pages: int
