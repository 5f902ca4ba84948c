"""Ticket status graph — the fixed table of legal transitions.

Pure functions over a static map; nothing here touches the database.
Business rules layered on top (a rejection needs a reason) belong to the
transition engine, not to the graph.
"""

from __future__ import annotations

from ticketdesk.models.enums import TicketStatus
from ticketdesk.tickets.errors import IllegalTransitionError

# Transition map: {current_status: allowed target statuses}
TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.DRAFT: frozenset({
        TicketStatus.SUBMITTED,
        TicketStatus.CANCELLED,
    }),
    TicketStatus.SUBMITTED: frozenset({
        TicketStatus.PENDING_REVIEW,
        TicketStatus.REJECTED,
        TicketStatus.CANCELLED,
    }),
    TicketStatus.PENDING_REVIEW: frozenset({
        TicketStatus.ACCEPTED,
        TicketStatus.REJECTED,
        TicketStatus.CANCELLED,
    }),
    TicketStatus.ACCEPTED: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.REJECTED,
        TicketStatus.CANCELLED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.COMPLETED,
        TicketStatus.PENDING_REVIEW,
        TicketStatus.CANCELLED,
    }),
    TicketStatus.COMPLETED: frozenset(),
    TicketStatus.REJECTED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Display/sort order along the happy path
STATUS_ORDER: tuple[TicketStatus, ...] = tuple(TicketStatus)


def is_legal(current: TicketStatus, target: TicketStatus) -> bool:
    """Return True if `target` is directly reachable from `current`."""
    return target in TRANSITIONS.get(current, frozenset())


def assert_legal(current: TicketStatus, target: TicketStatus) -> None:
    """Raise IllegalTransitionError naming both endpoints if the edge is missing."""
    if not is_legal(current, target):
        raise IllegalTransitionError(current, target)


def available_transitions(current: TicketStatus) -> list[TicketStatus]:
    """Legal targets from `current`, in lifecycle order."""
    targets = TRANSITIONS.get(current, frozenset())
    return [status for status in STATUS_ORDER if status in targets]


def is_terminal(status: TicketStatus) -> bool:
    return status in TERMINAL_STATUSES


def initial_status(submit_immediately: bool = False) -> TicketStatus:
    """Status a new ticket starts in."""
    return TicketStatus.SUBMITTED if submit_immediately else TicketStatus.DRAFT
