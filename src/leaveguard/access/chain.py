"""
Ordered composition of access checks.

A route declares its check sequence with the ``AccessChain`` builder; the
chain evaluates left to right and stops at the first denial. There is no
"any of" combinator: a route that wants a bypass branches before building
its chain.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Union

from loguru import logger

from ..errors import AccessDenied
from .checks import (
    AttributeCheck,
    ClassificationCheck,
    Clock,
    Decision,
    LocationCheck,
    OwnershipCheck,
    RoleCheck,
    WorkingHoursCheck,
)
from .policies import AttributePolicy, Classification, PolicyConfiguration, Role, TimeWindow


class AccessChain:
    """
    Builder and evaluator for a caller-ordered conjunction of checks.

    Example:
        >>> chain = AccessChain().require_classification().require_ownership()
        >>> chain.evaluate(actor, snapshot, config)
        Decision(allow=True, reason=None, detail='')
    """

    def __init__(self, checks: Iterable = (), clock: Clock = datetime.now):
        """
        Initialize chain.

        Args:
            checks: Initial checks, evaluated in order
            clock: Time source handed to time-based checks added by the builder
        """
        self.checks: List = list(checks)
        self.clock = clock

    def add(self, check) -> "AccessChain":
        self.checks.append(check)
        return self

    # ------------------------------------------------------------------
    # Builder steps, one per model
    # ------------------------------------------------------------------

    def require_role(self, allowed_roles: Iterable[Union[Role, str]]) -> "AccessChain":
        return self.add(RoleCheck(allowed_roles))

    def require_classification(
        self, expected: Optional[Union[Classification, str]] = None
    ) -> "AccessChain":
        return self.add(ClassificationCheck(expected))

    def require_ownership(self, include_delegates: bool = True) -> "AccessChain":
        return self.add(OwnershipCheck(include_delegates))

    def require_working_hours(
        self,
        window: Optional[TimeWindow] = None,
        exempt_roles: Iterable[Union[Role, str]] = (Role.ADMIN,),
    ) -> "AccessChain":
        return self.add(WorkingHoursCheck(window, exempt_roles, clock=self.clock))

    def require_location(self, allowed_locations: Iterable[str]) -> "AccessChain":
        return self.add(LocationCheck(allowed_locations))

    def require_attributes(self, policy: Union[AttributePolicy, str]) -> "AccessChain":
        return self.add(AttributeCheck(policy, clock=self.clock))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, actor, resource, config: PolicyConfiguration) -> Decision:
        """
        Run the checks in order.

        Args:
            actor: The requesting Actor
            resource: Resource snapshot, or None for resource-free chains
            config: Policy configuration

        Returns:
            The first denying Decision, or an allowing one if every check passes

        Raises:
            InvalidResourceSnapshot: If a check needs a field the snapshot lacks
        """
        for check in self.checks:
            decision = check(actor, resource, config)
            if not decision.allow:
                logger.warning(
                    f"Access denied for {actor.id} ({getattr(actor.role, 'value', actor.role)}) "
                    f"by {check!r}: {decision.detail}"
                )
                return decision
        return Decision.allowed()

    def enforce(self, actor, resource, config: PolicyConfiguration) -> Decision:
        """
        Like ``evaluate`` but raise on denial.

        Raises:
            AccessDenied: Carrying the denying Decision
        """
        decision = self.evaluate(actor, resource, config)
        if not decision.allow:
            raise AccessDenied(decision)
        return decision

    def __len__(self) -> int:
        return len(self.checks)

    def __repr__(self) -> str:
        return f"AccessChain({self.checks!r})"
