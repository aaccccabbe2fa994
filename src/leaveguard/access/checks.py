"""
Access control checks for leaveguard.

Six independent, stateless checks, one per access model:

- RoleCheck:          RBAC, role membership
- ClassificationCheck: MAC, resource classification vs. configured roles
- OwnershipCheck:     DAC, resource owner or delegated access
- WorkingHoursCheck:  RuBAC, time-of-day window
- LocationCheck:      RuBAC, actor location
- AttributeCheck:     ABAC, conjunction of attribute predicates

Each check is called as ``check(actor, resource, config)`` and returns a
``Decision``. Checks never raise for a policy denial.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple, Union

from loguru import logger

from ..errors import ConfigurationMissing, InvalidResourceSnapshot
from .policies import AttributePolicy, Classification, PolicyConfiguration, Role, TimeWindow


Clock = Callable[[], datetime]


class AccessModel(str, Enum):
    """Tag naming the access model behind a denial."""
    RBAC = "RBAC"
    MAC = "MAC"
    DAC = "DAC"
    RUBAC_TIME = "RuBAC-Time"
    RUBAC_LOCATION = "RuBAC-Location"
    ABAC = "ABAC"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of one check or of a whole chain.

    Attributes:
        allow: Whether access is granted
        reason: Model that denied (None when allowed)
        detail: Human-readable explanation of a denial
    """
    allow: bool
    reason: Optional[AccessModel] = None
    detail: str = ""

    @classmethod
    def allowed(cls) -> "Decision":
        return cls(allow=True)

    @classmethod
    def denied(cls, reason: AccessModel, detail: str = "") -> "Decision":
        return cls(allow=False, reason=reason, detail=detail)

    def __bool__(self) -> bool:
        return self.allow


def _value(role) -> str:
    return role.value if isinstance(role, Enum) else str(role)


def _roles(roles: Iterable) -> Tuple[str, ...]:
    return tuple(_value(r) for r in roles)


def time_of_day(clock: Clock) -> str:
    """Current local time as zero-padded "HH:MM"."""
    return clock().strftime("%H:%M")


class RoleCheck:
    """
    RBAC: allow iff the actor's role is in ``allowed_roles``.

    An empty ``allowed_roles`` is an explicit wildcard.
    """

    model = AccessModel.RBAC

    def __init__(self, allowed_roles: Iterable[Union[Role, str]] = ()):
        self.allowed_roles = _roles(allowed_roles)

    def __call__(self, actor, resource=None, config: Optional[PolicyConfiguration] = None) -> Decision:
        if not self.allowed_roles:
            return Decision.allowed()
        if _value(actor.role) in self.allowed_roles:
            return Decision.allowed()
        return Decision.denied(self.model, "insufficient role")

    def __repr__(self) -> str:
        return f"RoleCheck({list(self.allowed_roles)})"


class ClassificationCheck:
    """
    MAC: allow iff the actor's role is configured for the resource classification.

    A classification with no configured entry denies every actor.

    Args:
        expected: If given, the resource must carry exactly this classification;
            a mismatch denies before the role lookup
    """

    model = AccessModel.MAC

    def __init__(self, expected: Optional[Union[Classification, str]] = None):
        self.expected = Classification(expected) if expected is not None else None

    def __call__(self, actor, resource, config: PolicyConfiguration) -> Decision:
        classification = resource.classification
        level = _value(classification) if classification is not None else None

        if self.expected is not None and level != self.expected.value:
            return Decision.denied(
                self.model,
                "resource sensitivity does not match required level",
            )

        try:
            allowed = _roles(config.allowed_roles(classification))
        except ConfigurationMissing as e:
            logger.warning(f"MAC fail-closed: {e}")
            allowed = ()

        if _value(actor.role) in allowed:
            return Decision.allowed()
        return Decision.denied(self.model, f"classification {level}")

    def __repr__(self) -> str:
        return f"ClassificationCheck(expected={self.expected})"


class OwnershipCheck:
    """
    DAC: allow iff the actor owns the resource or appears in its delegated access.

    Args:
        include_delegates: If False only the owner is allowed
    """

    model = AccessModel.DAC

    def __init__(self, include_delegates: bool = True):
        self.include_delegates = include_delegates

    def __call__(self, actor, resource, config: Optional[PolicyConfiguration] = None) -> Decision:
        owner = getattr(resource, "owner", None)
        if owner is None:
            raise InvalidResourceSnapshot(
                f"Resource {getattr(resource, 'id', '?')} has no owner; cannot evaluate DAC"
            )

        if str(owner) == str(actor.id):
            return Decision.allowed()

        if self.include_delegates:
            delegated = {str(d) for d in (resource.delegated_access or ())}
            if str(actor.id) in delegated:
                return Decision.allowed()
            return Decision.denied(self.model, "not owner or allowed")

        return Decision.denied(self.model, "not owner")

    def __repr__(self) -> str:
        return f"OwnershipCheck(include_delegates={self.include_delegates})"


class WorkingHoursCheck:
    """
    RuBAC: allow iff the actor is exempt or now lies inside the window.

    The window is inclusive at both ends. Without an explicit window the
    configuration's ``working_hours`` applies.
    """

    model = AccessModel.RUBAC_TIME

    def __init__(
        self,
        window: Optional[TimeWindow] = None,
        exempt_roles: Iterable[Union[Role, str]] = (Role.ADMIN,),
        clock: Clock = datetime.now,
    ):
        self.window = window
        self.exempt_roles = _roles(exempt_roles)
        self.clock = clock

    def __call__(self, actor, resource=None, config: Optional[PolicyConfiguration] = None) -> Decision:
        if _value(actor.role) in self.exempt_roles:
            return Decision.allowed()

        window = self.window if self.window is not None else config.working_hours
        now = time_of_day(self.clock)
        if window.contains(now):
            return Decision.allowed()

        logger.debug(f"Outside working hours: {now} not in [{window.start}, {window.end}]")
        return Decision.denied(self.model, "outside working hours")

    def __repr__(self) -> str:
        return f"WorkingHoursCheck(window={self.window}, exempt={list(self.exempt_roles)})"


class LocationCheck:
    """
    RuBAC: allow iff the actor's location is listed.

    An empty list is an explicit wildcard.
    """

    model = AccessModel.RUBAC_LOCATION

    def __init__(self, allowed_locations: Iterable[str] = ()):
        self.allowed_locations = tuple(allowed_locations)

    def __call__(self, actor, resource=None, config: Optional[PolicyConfiguration] = None) -> Decision:
        if not self.allowed_locations or actor.location in self.allowed_locations:
            return Decision.allowed()
        return Decision.denied(self.model, "location not allowed")

    def __repr__(self) -> str:
        return f"LocationCheck({list(self.allowed_locations)})"


class AttributeCheck:
    """
    ABAC: allow iff every predicate set in the bundle holds.

    Args:
        policy: An AttributePolicy, or the id of one in the configuration
        clock: Time source for the optional time-window predicate
    """

    model = AccessModel.ABAC

    def __init__(self, policy: Union[AttributePolicy, str, None] = None, clock: Clock = datetime.now):
        self.policy = policy if policy is not None else AttributePolicy()
        self.clock = clock

    def _resolve(self, config: Optional[PolicyConfiguration]) -> AttributePolicy:
        if isinstance(self.policy, AttributePolicy):
            return self.policy
        # Named bundle; an unknown name is a wiring error, not a denial
        return config.attribute_policy(self.policy)

    def __call__(self, actor, resource=None, config: Optional[PolicyConfiguration] = None) -> Decision:
        policy = self._resolve(config)

        if policy.role is not None and _value(actor.role) != policy.role.value:
            return Decision.denied(self.model, "role mismatch")

        if policy.department is not None and actor.department != policy.department:
            return Decision.denied(self.model, "department mismatch")

        if policy.location is not None and actor.location != policy.location:
            return Decision.denied(self.model, "location mismatch")

        if policy.employment_status is not None and actor.employment_status != policy.employment_status:
            return Decision.denied(self.model, "employment status mismatch")

        if policy.time_window is not None:
            if not policy.time_window.contains(time_of_day(self.clock)):
                return Decision.denied(self.model, "outside allowed time window")

        return Decision.allowed()

    def __repr__(self) -> str:
        name = self.policy if isinstance(self.policy, str) else self.policy.id
        return f"AttributeCheck({name!r})"
