"""
Exception taxonomy for leaveguard.

Authentication errors, lookup errors and infrastructure errors are kept in
separate branches so the HTTP layer can map each to its own status code.
Policy denials are normally returned as ``Decision`` values; ``AccessDenied``
only wraps one when a caller asks a chain to enforce.
"""

from typing import Optional


class LeaveGuardError(Exception):
    """Base class for all leaveguard errors."""


# ============================================================================
# Authentication
# ============================================================================

class AuthenticationFailure(LeaveGuardError):
    """Unknown identifier or wrong password (never distinguished)."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AccountLocked(LeaveGuardError):
    """Credential is locked out until an administrator unlocks it."""

    def __init__(self, message: str = "Account locked. Contact admin."):
        super().__init__(message)


class InvalidOrExpiredOtp(LeaveGuardError):
    """One-time code missing, wrong, already used or expired."""

    def __init__(self, message: str = "Invalid or expired OTP"):
        super().__init__(message)


class IdentifierTaken(LeaveGuardError):
    """Registration with an identifier that already exists."""


# ============================================================================
# Lookups
# ============================================================================

class LookupFailure(LeaveGuardError):
    """A resource or identity could not be resolved."""


class ResourceNotFound(LookupFailure):
    """
    Raised when a resource does not exist.

    Attributes:
        kind: Resource kind (e.g. "leave", "user")
        resource_id: The identifier that was looked up
    """

    def __init__(self, kind: str, resource_id: str):
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"{kind} not found: {resource_id}")


class UserNotFound(ResourceNotFound):
    def __init__(self, user_id: str):
        super().__init__("user", user_id)


class MalformedIdentifier(LookupFailure):
    """Identifier is not in the expected format."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Malformed identifier: {value!r}")


class InvalidResourceSnapshot(LeaveGuardError, ValueError):
    """A snapshot handed to a check lacks a field the check requires."""


# ============================================================================
# Policy
# ============================================================================

class ConfigurationMissing(LeaveGuardError):
    """
    No policy entry exists for a classification.

    Never escapes a check: the classification check turns it into a denial.
    """

    def __init__(self, classification: str):
        self.classification = classification
        super().__init__(f"No classification policy for {classification!r}")


class AccessDenied(LeaveGuardError):
    """
    Raised by ``AccessChain.enforce`` when a check denies.

    Attributes:
        decision: The denying Decision
        model: Tag of the access model that denied
    """

    def __init__(self, decision):
        self.decision = decision
        self.model = decision.reason
        message = f"Access denied by {self.model.value}" if self.model else "Access denied"
        if decision.detail:
            message += f": {decision.detail}"
        super().__init__(message)


class BusinessRuleViolation(LeaveGuardError):
    """A route-level business constraint rejected an otherwise allowed request."""


# ============================================================================
# Infrastructure
# ============================================================================

class StoreError(LeaveGuardError):
    """
    Backing store failure.

    Distinct from policy denial; callers may retry.
    """

    retryable = True

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Store operation failed: {operation}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)
