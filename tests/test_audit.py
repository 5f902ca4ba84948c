"""Tests for the audit recorder — redaction, persistence, queries, retention."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from enum import Enum
from unittest.mock import MagicMock

import pytest

from ticketdesk.config import settings
from ticketdesk.models.audit import AuditLog
from ticketdesk.models.base import utcnow
from ticketdesk.schemas.audit import ActorContext, AuditAction, AuditEntity, AuditEntry, AuditFilter
from ticketdesk.security.audit import REDACTED, AuditRecorder, sanitize


class _Colour(str, Enum):
    RED = "red"


# ── sanitize ─────────────────────────────────────────────────────────


class TestSanitize:
    def test_empty(self):
        assert sanitize(None) == {}
        assert sanitize({}) == {}

    def test_redacts_sensitive_keys_case_insensitively(self):
        details = {
            "password": "hunter2",
            "newPasswordHash": "abc",
            "accessToken": "t",
            "clientSecret": "s",
            "Authorization": "Bearer x",
            "creditCard": "4111",
            "cvv": "123",
            "apiKey": "k",
            "title": "kept",
        }

        cleaned = sanitize(details)

        assert cleaned["title"] == "kept"
        assert all(value == REDACTED for key, value in cleaned.items() if key != "title")

    def test_recurses_into_dicts_and_lists(self):
        details = {
            "user": {"name": "Ada", "password": "p", "tokens": ["a", "b"]},
            "attempts": [{"secret": 1, "ok": True}, "plain"],
        }

        assert sanitize(details) == {
            "user": {"name": "Ada", "password": REDACTED, "tokens": REDACTED},
            "attempts": [{"secret": REDACTED, "ok": True}, "plain"],
        }

    def test_json_safe_conversion(self):
        ticket_id = uuid.uuid4()
        cleaned = sanitize({"id": ticket_id, "colour": _Colour.RED, "at": utcnow()})

        assert cleaned["id"] == str(ticket_id)
        assert cleaned["colour"] == "red"
        assert isinstance(cleaned["at"], str)

    def test_input_not_mutated(self):
        details = {"password": "p"}
        sanitize(details)
        assert details == {"password": "p"}


# ── record ───────────────────────────────────────────────────────────


class TestRecord:
    @pytest.mark.asyncio()
    async def test_record_persists_context(self, audit):
        actor = uuid.uuid4()
        row = await audit.record(AuditEntry(
            action=AuditAction.USER_LOGIN,
            entity_type=AuditEntity.USER,
            entity_id=actor,
            actor_id=actor,
            details={"password": "nope", "method": "email"},
            context=ActorContext(ip_address="10.0.0.1", user_agent="pytest", actor_label="ada@agency.test"),
        ))

        assert row is not None
        logs = await audit.get_user_logs(actor)
        assert len(logs) == 1
        log = logs[0]
        assert log.action == "user.login"
        assert log.entity_id == str(actor)
        assert log.ip_address == "10.0.0.1"
        assert log.actor_label == "ada@agency.test"
        assert log.details == {"password": REDACTED, "method": "email"}

    @pytest.mark.asyncio()
    async def test_record_never_raises(self, caplog):
        broken_factory = MagicMock(side_effect=ConnectionError("db down"))
        recorder = AuditRecorder(broken_factory)

        with caplog.at_level(logging.ERROR, logger="ticketdesk.security.audit"):
            result = await recorder.record(AuditEntry(action=AuditAction.SYSTEM_ERROR, actor_id="system"))

        assert result is None
        assert "system.error" in caplog.text

    @pytest.mark.asyncio()
    async def test_record_batch(self, audit):
        written = await audit.record_batch(
            AuditEntry(action=AuditAction.NOTIFICATION_SEND, actor_id="system", details={"n": i})
            for i in range(3)
        )

        assert written == 3
        assert await audit.count(AuditFilter(action=AuditAction.NOTIFICATION_SEND)) == 3
        assert await audit.record_batch([]) == 0


# ── queries ──────────────────────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio()
    async def test_filters_and_newest_first(self, audit):
        ticket_id = uuid.uuid4()
        for action in (AuditAction.TICKET_CREATE, AuditAction.TICKET_UPDATE, AuditAction.TICKET_STATUS_CHANGE):
            await audit.record(AuditEntry(
                action=action, entity_type=AuditEntity.TICKET, entity_id=ticket_id, actor_id="u1",
            ))
        await audit.record(AuditEntry(action=AuditAction.USER_LOGOUT, actor_id="u2"))

        entity_logs = await audit.get_entity_logs(AuditEntity.TICKET, ticket_id)
        assert [log.action for log in entity_logs] == [
            "ticket.status_change",
            "ticket.update",
            "ticket.create",
        ]
        assert len(await audit.get_user_logs("u2")) == 1
        assert await audit.count() == 4
        assert await audit.count(AuditFilter(actor_id="u1")) == 3

        page = await audit.get_logs(AuditFilter(limit=2, offset=1))
        assert [log.action for log in page] == ["ticket.status_change", "ticket.update"]

    @pytest.mark.asyncio()
    async def test_results_capped(self, audit, monkeypatch):
        monkeypatch.setattr(settings.tickets, "audit_query_cap", 2)
        await audit.record_batch(AuditEntry(action=AuditAction.USER_UPDATE, actor_id="x") for _ in range(5))

        assert len(await audit.get_logs(AuditFilter(limit=10_000))) == 2

    @pytest.mark.asyncio()
    async def test_date_range(self, audit, session_factory):
        async with session_factory() as db, db.begin():
            db.add(AuditLog(action="user.login", actor_id="old", created_at=utcnow() - timedelta(days=10)))
        await audit.record(AuditEntry(action=AuditAction.USER_LOGIN, actor_id="new"))

        recent = await audit.get_logs(AuditFilter(start_date=utcnow() - timedelta(days=1)))
        assert [log.actor_id for log in recent] == ["new"]
        older = await audit.get_logs(AuditFilter(end_date=utcnow() - timedelta(days=1)))
        assert [log.actor_id for log in older] == ["old"]


# ── retention ────────────────────────────────────────────────────────


class TestCleanup:
    @pytest.mark.asyncio()
    async def test_cleanup_removes_old_rows_and_audits_itself(self, audit, session_factory):
        async with session_factory() as db, db.begin():
            for days in (200, 120):
                db.add(AuditLog(action="user.login", actor_id="old", created_at=utcnow() - timedelta(days=days)))
        await audit.record(AuditEntry(action=AuditAction.USER_LOGIN, actor_id="fresh"))

        deleted = await audit.cleanup_old_logs(retention_days=90, actor_id="admin-1")

        assert deleted == 2
        remaining = await audit.get_logs()
        assert {log.actor_id for log in remaining} == {"fresh", "admin-1"}
        cleanup = await audit.get_action_logs(AuditAction.AUDIT_CLEANUP)
        assert cleanup[0].entity_type == "System"
        assert cleanup[0].details["deleted"] == 2
        assert cleanup[0].details["retention_days"] == 90

    @pytest.mark.asyncio()
    async def test_cleanup_defaults(self, audit):
        assert await audit.cleanup_old_logs() == 0
        cleanup = await audit.get_action_logs(AuditAction.AUDIT_CLEANUP)
        assert cleanup[0].actor_id == "system"
        assert cleanup[0].details["retention_days"] == settings.tickets.audit_retention_days
