"""
Tests for the six access checks.
"""

import itertools

import pytest

from conftest import local_time, make_actor, make_snapshot
from leaveguard.access import (
    AccessModel,
    AttributeCheck,
    AttributePolicy,
    Classification,
    ClassificationCheck,
    Decision,
    LocationCheck,
    OwnershipCheck,
    PolicyConfiguration,
    Role,
    RoleCheck,
    TimeWindow,
    WorkingHoursCheck,
)
from leaveguard.errors import InvalidResourceSnapshot
from leaveguard.leaves import ResourceSnapshot


class TestDecision:
    def test_truthiness(self):
        assert Decision.allowed()
        assert not Decision.denied(AccessModel.MAC, "x")
        assert Decision.denied(AccessModel.DAC).reason == AccessModel.DAC


class TestRoleCheck:
    """Test RBAC."""

    def test_allows_listed_role(self):
        check = RoleCheck([Role.HR, Role.ADMIN])
        assert check(make_actor(Role.HR))
        assert check(make_actor(Role.ADMIN))

    def test_denies_unlisted_role(self):
        decision = RoleCheck([Role.HR, Role.ADMIN])(make_actor(Role.MANAGER))
        assert not decision.allow
        assert decision.reason == AccessModel.RBAC

    def test_empty_list_is_wildcard(self):
        assert RoleCheck([])(make_actor(Role.EMPLOYEE))

    def test_accepts_role_names(self):
        assert RoleCheck(["Manager"])(make_actor(Role.MANAGER))


class TestClassificationCheck:
    """Test MAC."""

    @pytest.mark.parametrize("role,classification", list(itertools.product(Role, Classification)))
    def test_matches_policy_for_every_pair(self, config, role, classification):
        decision = ClassificationCheck()(make_actor(role), make_snapshot(classification), config)
        assert decision.allow == (role in config.allowed_roles(classification))

    @pytest.mark.parametrize("role", list(Role))
    def test_unconfigured_classification_denies_everyone(self, role):
        config = PolicyConfiguration(classification_policy={Classification.PUBLIC: tuple(Role)})
        decision = ClassificationCheck()(make_actor(role), make_snapshot(Classification.CONFIDENTIAL), config)
        assert not decision.allow
        assert decision.reason == AccessModel.MAC

    def test_employee_denied_confidential(self, config):
        """Employee reading a Confidential resource is denied by MAC."""
        decision = ClassificationCheck()(
            make_actor(Role.EMPLOYEE), make_snapshot(Classification.CONFIDENTIAL), config
        )
        assert not decision.allow
        assert decision.reason == AccessModel.MAC

    def test_expected_level_mismatch(self, config):
        check = ClassificationCheck(expected=Classification.CONFIDENTIAL)
        decision = check(make_actor(Role.ADMIN), make_snapshot(Classification.INTERNAL), config)
        assert not decision.allow
        assert "does not match" in decision.detail


class TestOwnershipCheck:
    """Test DAC."""

    def test_owner_allowed(self):
        assert OwnershipCheck()(make_actor(actor_id="u1"), make_snapshot(owner="u1"))

    def test_delegate_allowed(self):
        assert OwnershipCheck()(make_actor(actor_id="u2"), make_snapshot(owner="u1", delegated=["u2"]))

    def test_stranger_denied(self):
        decision = OwnershipCheck()(make_actor(actor_id="u3"), make_snapshot(owner="u1", delegated=["u2"]))
        assert not decision.allow
        assert decision.reason == AccessModel.DAC

    def test_empty_delegation_denies_non_owner(self):
        assert not OwnershipCheck()(make_actor(actor_id="u2"), make_snapshot(owner="u1"))

    def test_owner_only_ignores_delegates(self):
        check = OwnershipCheck(include_delegates=False)
        assert not check(make_actor(actor_id="u2"), make_snapshot(owner="u1", delegated=["u2"]))
        assert check(make_actor(actor_id="u1"), make_snapshot(owner="u1", delegated=["u2"]))

    def test_role_does_not_matter(self):
        decision = OwnershipCheck()(make_actor(Role.ADMIN, actor_id="admin"), make_snapshot(owner="u1"))
        assert not decision.allow

    def test_missing_owner_is_contract_violation(self):
        snapshot = ResourceSnapshot(id="r1", classification=Classification.INTERNAL, owner=None)
        with pytest.raises(InvalidResourceSnapshot):
            OwnershipCheck()(make_actor(), snapshot)


class TestWorkingHoursCheck:
    """Test RuBAC time-of-day."""

    @pytest.mark.parametrize("hhmm,allowed", [
        ("08:59", False),
        ("09:00", True),
        ("12:30", True),
        ("18:00", True),
        ("18:01", False),
    ])
    def test_boundaries(self, config, hhmm, allowed):
        check = WorkingHoursCheck(clock=local_time(hhmm))
        decision = check(make_actor(Role.EMPLOYEE), None, config)
        assert decision.allow == allowed
        if not allowed:
            assert decision.reason == AccessModel.RUBAC_TIME

    def test_admin_exempt(self, config):
        check = WorkingHoursCheck(clock=local_time("23:30"))
        assert check(make_actor(Role.ADMIN), None, config)

    def test_explicit_window_overrides_config(self, config):
        check = WorkingHoursCheck(window=TimeWindow(start="06:00", end="08:00"), clock=local_time("07:00"))
        assert check(make_actor(Role.EMPLOYEE), None, config)

    def test_custom_exemptions(self, config):
        check = WorkingHoursCheck(exempt_roles=[Role.HR], clock=local_time("03:00"))
        assert check(make_actor(Role.HR), None, config)
        assert not check(make_actor(Role.ADMIN), None, config)


class TestLocationCheck:
    """Test RuBAC location."""

    def test_listed_location(self):
        assert LocationCheck(["HQ", "Remote"])(make_actor(location="Remote"))

    def test_unlisted_location(self):
        decision = LocationCheck(["HQ"])(make_actor(location="Branch"))
        assert not decision.allow
        assert decision.reason == AccessModel.RUBAC_LOCATION

    def test_empty_list_is_wildcard(self):
        assert LocationCheck([])(make_actor(location=None))


class TestAttributeCheck:
    """Test ABAC."""

    def test_manager_bundle_at_window_start(self, config):
        """Manager bundle allows at 09:00 and denies at 08:59."""
        bundle = AttributePolicy(role=Role.MANAGER, time_window=TimeWindow(start="09:00", end="18:00"))
        manager = make_actor(Role.MANAGER)

        early = AttributeCheck(bundle, clock=local_time("08:59"))(manager, None, config)
        assert not early.allow
        assert early.reason == AccessModel.ABAC

        assert AttributeCheck(bundle, clock=local_time("09:00"))(manager, None, config)

    def test_named_bundle_from_config(self, config):
        check = AttributeCheck("finance_manager_approve")
        assert check(make_actor(Role.MANAGER, department="Finance"), None, config)
        decision = check(make_actor(Role.MANAGER, department="Sales"), None, config)
        assert decision.detail == "department mismatch"

    @pytest.mark.parametrize("bundle,actor,detail", [
        (AttributePolicy(role=Role.HR), make_actor(Role.MANAGER), "role mismatch"),
        (AttributePolicy(location="HQ"), make_actor(location="Remote"), "location mismatch"),
        (
            AttributePolicy(employment_status="Full-Time"),
            make_actor(employment_status="Contract"),
            "employment status mismatch",
        ),
    ])
    def test_each_predicate(self, config, bundle, actor, detail):
        decision = AttributeCheck(bundle)(actor, None, config)
        assert not decision.allow
        assert decision.detail == detail

    def test_empty_bundle_allows(self, config):
        assert AttributeCheck(AttributePolicy())(make_actor(), None, config)

    def test_unknown_bundle_name_raises(self, config):
        with pytest.raises(KeyError):
            AttributeCheck("missing")(make_actor(), None, config)
