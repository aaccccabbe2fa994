"""
Tests for the leave request store.
"""

import uuid
from datetime import date

import pytest

from leaveguard.access import Classification
from leaveguard.errors import MalformedIdentifier, ResourceNotFound
from leaveguard.leaves import LeaveStatus, LeaveType


def create(leaves, employee="emp-1", start=date(2025, 3, 10), end=date(2025, 3, 12), **kwargs):
    return leaves.create(
        employee=employee,
        start_date=start,
        end_date=end,
        leave_type=kwargs.pop("leave_type", LeaveType.ANNUAL),
        reason=kwargs.pop("reason", "Family trip"),
        **kwargs,
    )


class TestLeaveStore:
    """Test leave persistence."""

    def test_create_defaults(self, leaves):
        leave = create(leaves)
        stored = leaves.get(leave.id)

        assert stored.status == LeaveStatus.PENDING
        assert stored.sensitivity == Classification.INTERNAL
        assert stored.allowed_users == []
        assert stored.days == 3
        assert stored.span_days == 2

    def test_rejects_reversed_dates(self, leaves):
        with pytest.raises(ValueError):
            create(leaves, start=date(2025, 3, 12), end=date(2025, 3, 10))

    def test_get_missing(self, leaves):
        with pytest.raises(ResourceNotFound) as exc:
            leaves.get(str(uuid.uuid4()))
        assert exc.value.kind == "leave"

    def test_get_malformed(self, leaves):
        with pytest.raises(MalformedIdentifier):
            leaves.get("not-a-uuid")

    def test_list_for_owner_only(self, leaves):
        create(leaves, employee="emp-1")
        create(leaves, employee="emp-1", reason="Dentist")
        create(leaves, employee="emp-2")

        assert len(leaves.list_for("emp-1")) == 2
        assert leaves.list_for("emp-3") == []

    def test_set_status(self, leaves):
        leave = create(leaves)
        approved = leaves.set_status(leave.id, LeaveStatus.APPROVED, "hr-1")

        assert approved.status == LeaveStatus.APPROVED
        assert approved.approved_by == "hr-1"
        assert leaves.get(leave.id).approved_at is not None

    def test_update(self, leaves):
        leave = create(leaves)
        leave.reason = "Changed plans"
        leave.type = LeaveType.SICK
        leaves.update(leave)

        stored = leaves.get(leave.id)
        assert stored.reason == "Changed plans"
        assert stored.type == LeaveType.SICK

    def test_share_is_idempotent(self, leaves):
        leave = create(leaves)
        leaves.share(leave.id, "friend-1")
        leaves.share(leave.id, "friend-1")
        assert leaves.get(leave.id).allowed_users == ["friend-1"]


class TestResourceSnapshot:
    """Test the snapshot handed to access checks."""

    def test_snapshot_fields(self, leaves):
        leave = create(leaves, sensitivity=Classification.CONFIDENTIAL)
        leaves.share(leave.id, "friend-1")

        snapshot = leaves.get_resource_snapshot(leave.id, department="Engineering")

        assert snapshot.id == leave.id
        assert snapshot.owner == "emp-1"
        assert snapshot.classification == Classification.CONFIDENTIAL
        assert snapshot.delegated_access == ("friend-1",)
        assert snapshot.department == "Engineering"

    def test_snapshot_lookup_errors(self, leaves):
        with pytest.raises(MalformedIdentifier):
            leaves.get_resource_snapshot("123")
        with pytest.raises(ResourceNotFound):
            leaves.get_resource_snapshot(str(uuid.uuid4()))
