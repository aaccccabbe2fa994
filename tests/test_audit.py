"""
Tests for the audit log.
"""

from datetime import datetime, timedelta, timezone

import pytest

from leaveguard.audit import AuditLog, AuditStatus


@pytest.fixture
def audit_log(db_path):
    log = AuditLog(db_path)
    yield log
    log.shutdown()


class TestAuditLog:
    """Test recording, filtering and clearing."""

    def test_record_is_queued(self, audit_log):
        future = audit_log.record("user-1", "LOGIN", AuditStatus.SUCCESS, {"step": "password"}, ip="10.0.0.1")
        entry = future.result()

        assert entry.user == "user-1"
        page = audit_log.query()
        assert page.total == 1
        assert page.logs[0].details == {"step": "password"}
        assert page.logs[0].ip == "10.0.0.1"

    def test_filters(self, audit_log):
        audit_log.record("user-1", "LOGIN", "SUCCESS")
        audit_log.record("user-1", "VIEW_LEAVE", "DENIED", {"reason": "MAC"})
        audit_log.record("user-2", "LOGIN", "FAILED")
        audit_log.flush()

        assert audit_log.query(user="user-1").total == 2
        assert audit_log.query(action="LOGIN").total == 2
        denied = audit_log.query(status="DENIED")
        assert denied.total == 1
        assert denied.logs[0].details["reason"] == "MAC"

    def test_date_range(self, audit_log):
        audit_log.record(None, "LOGIN", "FAILED")
        audit_log.flush()

        now = datetime.now(timezone.utc)
        assert audit_log.query(start=now - timedelta(minutes=1), end=now + timedelta(minutes=1)).total == 1
        assert audit_log.query(start=now + timedelta(minutes=1), end=now + timedelta(minutes=2)).total == 0

    def test_pagination(self, audit_log):
        for i in range(5):
            audit_log.record("user-1", f"ACTION_{i}", "SUCCESS")
        audit_log.flush()

        page = audit_log.query(page=2, limit=2)
        assert page.total == 5
        assert page.pages == 3
        assert page.page == 2
        assert len(page.logs) == 2

    def test_clear(self, audit_log):
        audit_log.record("user-1", "LOGIN", "SUCCESS")
        audit_log.flush()

        assert audit_log.clear() == 1
        assert audit_log.query().total == 0

    def test_non_json_context_is_stringified(self, audit_log):
        future = audit_log.record("user-1", "LOGIN", "SUCCESS", {"when": datetime(2025, 1, 1)})
        assert future.result() is not None
        assert audit_log.query().logs[0].details == {"when": "2025-01-01 00:00:00"}

    def test_invalid_status(self, audit_log):
        with pytest.raises(ValueError):
            audit_log.record("user-1", "LOGIN", "MAYBE")
