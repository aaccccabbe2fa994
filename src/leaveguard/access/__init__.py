"""
Access decision engine for leaveguard.

Provides the six access checks (RBAC, MAC, DAC, RuBAC time and location,
ABAC), the ordered chain that composes them and the static policy they read.
"""

from .policies import (
    AttributePolicy,
    Classification,
    PolicyConfiguration,
    Role,
    TimeWindow,
    minute_of_day,
)
from .checks import (
    AccessModel,
    AttributeCheck,
    ClassificationCheck,
    Decision,
    LocationCheck,
    OwnershipCheck,
    RoleCheck,
    WorkingHoursCheck,
)
from .chain import AccessChain

__all__ = [
    # Policy configuration
    "AttributePolicy",
    "Classification",
    "PolicyConfiguration",
    "Role",
    "TimeWindow",
    "minute_of_day",
    # Checks
    "AccessModel",
    "Decision",
    "RoleCheck",
    "ClassificationCheck",
    "OwnershipCheck",
    "WorkingHoursCheck",
    "LocationCheck",
    "AttributeCheck",
    # Composition
    "AccessChain",
]
