"""Post-commit side effects — audit entries and dispatcher calls.

Runs only after a ticket transaction has committed. Each side effect is
isolated: a failure is logged with the action and entity id and then
dropped, so the committed change is still reported as a success.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ticketdesk.notifications.dispatcher import NotificationDispatcher, NullNotificationDispatcher
from ticketdesk.schemas.audit import AuditEntry
from ticketdesk.security.audit import AuditRecorder

logger = logging.getLogger(__name__)

Notify = Callable[[NotificationDispatcher], Awaitable[None]]


class PostCommitHooks:
    """Fans a committed change out to the audit recorder and the dispatcher."""

    def __init__(self, audit: AuditRecorder | None, dispatcher: NotificationDispatcher | None = None) -> None:
        self.audit = audit
        self.dispatcher: NotificationDispatcher = dispatcher or NullNotificationDispatcher()

    async def after_commit(self, entry: AuditEntry, notify: Notify | None = None) -> None:
        """Record `entry`, then call `notify(dispatcher)`; never raises."""
        audit = self.audit
        if audit is not None:
            await self._safe_call("audit", entry, lambda: audit.record(entry))
        if notify is not None:
            await self._safe_call("notify", entry, lambda: notify(self.dispatcher))

    async def _safe_call(self, stage: str, entry: AuditEntry, call: Callable[[], Awaitable[object]]) -> None:
        """Run a side effect with error isolation."""
        try:
            await call()
        except Exception:
            logger.exception(
                "Post-commit %s failed for %s (entity=%s)",
                stage,
                entry.action.value,
                entry.entity_id,
            )
