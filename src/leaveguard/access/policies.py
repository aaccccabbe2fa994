"""
Static policy configuration.

Defines the role and classification vocabularies and the read-only policy
structure loaded once at startup: the classification -> roles map (MAC), the
global working-hours window (RuBAC) and the named attribute bundles (ABAC).
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ConfigurationMissing


class Role(str, Enum):
    """Actor roles, lowest to highest privilege."""
    EMPLOYEE = "Employee"
    MANAGER = "Manager"
    HR = "HR"
    ADMIN = "Admin"


class Classification(str, Enum):
    """Sensitivity label carried by a protected resource."""
    PUBLIC = "Public"
    INTERNAL = "Internal"
    CONFIDENTIAL = "Confidential"


def minute_of_day(hhmm: str) -> int:
    """
    Convert a zero-padded "HH:MM" string to minutes since midnight.

    Raises:
        ValueError: If the string is not a valid zero-padded time
    """
    if len(hhmm) != 5 or hhmm[2] != ":" or not (hhmm[:2] + hhmm[3:]).isdigit():
        raise ValueError(f"Expected zero-padded HH:MM, got {hhmm!r}")
    hours, minutes = int(hhmm[:2]), int(hhmm[3:])
    if hours > 23 or minutes > 59:
        raise ValueError(f"Time out of range: {hhmm!r}")
    return hours * 60 + minutes


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class TimeWindow(_Frozen):
    """
    Inclusive time-of-day window.

    Overnight windows are not supported; ``start`` must not be after ``end``.
    """
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def check_zero_padded(cls, value: str) -> str:
        minute_of_day(value)
        return value

    @model_validator(mode="after")
    def check_ordered(self) -> "TimeWindow":
        if minute_of_day(self.start) > minute_of_day(self.end):
            raise ValueError(
                f"Window start {self.start} is after end {self.end}; overnight windows are not supported"
            )
        return self

    def contains(self, hhmm: str) -> bool:
        return minute_of_day(self.start) <= minute_of_day(hhmm) <= minute_of_day(self.end)


class AttributePolicy(_Frozen):
    """
    Attribute bundle for ABAC.

    Every recognised predicate is a field; ``None`` means the predicate is
    unset and trivially satisfied.
    """
    id: Optional[str] = None
    role: Optional[Role] = None
    department: Optional[str] = None
    location: Optional[str] = None
    employment_status: Optional[str] = None
    time_window: Optional[TimeWindow] = None
    actions: Tuple[str, ...] = Field(default_factory=tuple, alias="allow")


DEFAULT_CLASSIFICATION_POLICY: Dict[Classification, List[Role]] = {
    Classification.CONFIDENTIAL: [Role.HR, Role.ADMIN],
    Classification.INTERNAL: [Role.MANAGER, Role.HR, Role.ADMIN],
    Classification.PUBLIC: [Role.EMPLOYEE, Role.MANAGER, Role.HR, Role.ADMIN],
}


class PolicyConfiguration(_Frozen):
    """
    Process-wide, read-only access policy.

    Attributes:
        classification_policy: Classification -> roles allowed to read it
        working_hours: Global working-hours window
        attribute_policies: Named ABAC bundles
    """
    classification_policy: Dict[Classification, Tuple[Role, ...]] = Field(
        default_factory=lambda: {c: tuple(r) for c, r in DEFAULT_CLASSIFICATION_POLICY.items()}
    )
    working_hours: TimeWindow = TimeWindow(start="09:00", end="18:00")
    attribute_policies: Tuple[AttributePolicy, ...] = (
        AttributePolicy(
            id="finance_manager_approve",
            role=Role.MANAGER,
            department="Finance",
            actions=("approve_leave",),
        ),
        AttributePolicy(
            id="manager_approve",
            role=Role.MANAGER,
            time_window=TimeWindow(start="09:00", end="18:00"),
            actions=("approve_leave",),
        ),
    )

    def allowed_roles(self, classification) -> Tuple[Role, ...]:
        """
        Roles allowed for a classification.

        Raises:
            ConfigurationMissing: If the classification has no entry
        """
        try:
            key = Classification(classification)
        except ValueError:
            raise ConfigurationMissing(str(classification)) from None
        roles = self.classification_policy.get(key)
        if roles is None:
            raise ConfigurationMissing(key.value)
        return roles

    def attribute_policy(self, policy_id: str) -> AttributePolicy:
        """
        Look up a named attribute bundle.

        Raises:
            KeyError: If no bundle has this id
        """
        for policy in self.attribute_policies:
            if policy.id == policy_id:
                return policy
        raise KeyError(policy_id)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "PolicyConfiguration":
        """
        Load configuration from a JSON file, or return the built-in defaults.

        Args:
            path: JSON file; camelCase or snake_case keys are accepted

        Returns:
            Frozen PolicyConfiguration
        """
        if path is None:
            logger.info("No policy file configured, using built-in policy defaults")
            return cls()

        path = Path(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        config = cls.model_validate(data)
        logger.info(
            f"Policy configuration loaded from {path}: "
            f"{len(config.classification_policy)} classifications, "
            f"{len(config.attribute_policies)} attribute policies"
        )
        return config
