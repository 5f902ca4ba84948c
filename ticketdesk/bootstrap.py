"""Wiring — logging setup and construction of the ticket services.

Usage:
    async with ticketdesk_lifespan() as services:
        ticket = await services.store.create(...)
        await services.engine.submit(ticket.id, actor_id)

    # One maintenance pass (deadline alerts + audit retention), e.g. from cron:
    python -m ticketdesk.bootstrap
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.config import settings
from ticketdesk.notifications.dispatcher import DatabaseNotificationDispatcher, NotificationDispatcher
from ticketdesk.notifications.service import NotificationService
from ticketdesk.security.audit import AuditRecorder
from ticketdesk.tickets.assignment import AssignmentService
from ticketdesk.tickets.comments import CommentService
from ticketdesk.tickets.engine import TransitionEngine
from ticketdesk.tickets.hooks import PostCommitHooks
from ticketdesk.tickets.payloads import PayloadModels
from ticketdesk.tickets.store import TicketStore

logger = logging.getLogger(__name__)

_logging_configured = False


# ── Logging setup ────────────────────────────────────────────────────


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog once per process."""
    global _logging_configured
    if _logging_configured:
        return

    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    _logging_configured = True


# ── Service graph ────────────────────────────────────────────────────


@dataclass(frozen=True)
class TicketDeskServices:
    """Every ticket service, sharing one session factory and one hook boundary."""

    store: TicketStore
    engine: TransitionEngine
    assignments: AssignmentService
    comments: CommentService
    audit: AuditRecorder
    notifications: NotificationService
    dispatcher: NotificationDispatcher


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    dispatcher: NotificationDispatcher | None = None,
    payload_models: PayloadModels | None = None,
) -> TicketDeskServices:
    """Wire the services; the dispatcher defaults to in-app notifications."""
    audit = AuditRecorder(session_factory)
    notifications = NotificationService(session_factory)
    dispatcher = dispatcher or DatabaseNotificationDispatcher(session_factory, notifications)
    hooks = PostCommitHooks(audit, dispatcher)
    return TicketDeskServices(
        store=TicketStore(session_factory, hooks, payload_models=payload_models),
        engine=TransitionEngine(session_factory, hooks),
        assignments=AssignmentService(session_factory, hooks),
        comments=CommentService(session_factory, hooks),
        audit=audit,
        notifications=notifications,
        dispatcher=dispatcher,
    )


@asynccontextmanager
async def ticketdesk_lifespan() -> AsyncGenerator[TicketDeskServices, None]:
    """Configure logging, open the database, and yield the wired services."""
    from ticketdesk.db.engine import async_session_factory, db_lifespan

    configure_logging()
    logger.info("Starting ticketdesk (env=%s)", settings.environment)
    async with db_lifespan():
        logger.info("Database initialized")
        yield build_services(async_session_factory)
        logger.info("Shutting down ticketdesk...")
    logger.info("ticketdesk shutdown complete")


async def run_maintenance() -> None:
    """Send due deadline alerts and purge audit rows past retention."""
    async with ticketdesk_lifespan() as services:
        sent = await services.notifications.send_deadline_notifications()
        purged = await services.audit.cleanup_old_logs()
        logger.info("Maintenance done: %d deadline notifications, %d audit rows purged", sent, purged)


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    asyncio.run(run_maintenance())
