"""
Authentication data models.

Data classes for actors, credential records, pending verifications and
issued sessions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..access.policies import Role


@dataclass(frozen=True)
class Actor:
    """
    Authenticated principal, built once per request.

    Attributes:
        id: User UUID
        role: Role used by RBAC, MAC and ABAC checks
        department: Department name (ABAC, manager approval)
        location: Office location (RuBAC, ABAC)
        employment_status: e.g. "Full-Time" (ABAC)
    """
    id: str
    role: Role
    department: Optional[str] = None
    location: Optional[str] = None
    employment_status: str = "Full-Time"


@dataclass
class CredentialRecord:
    """
    Per-actor credential state.

    Only the Authenticator mutates a record, and always persists it through
    ``UserDatabase.save_credential`` before answering.

    Attributes:
        actor_id: User UUID
        identifier: Login identifier; also the one-time-code contact (email)
        password_hash: Bcrypt hashed password
        role: Role claim placed in the session token
        failed_attempt_count: Consecutive wrong passwords
        lockout_flag: Set on reaching the lockout threshold
        otp_code: Pending one-time code, None when none is pending
        otp_expiry: Expiry of the pending code (UTC)
        is_active: Disabled accounts cannot log in
    """
    actor_id: str
    identifier: str
    password_hash: str
    role: Role = Role.EMPLOYEE
    failed_attempt_count: int = 0
    lockout_flag: bool = False
    otp_code: Optional[str] = None
    otp_expiry: Optional[datetime] = None
    is_active: bool = True


@dataclass
class UserAccount:
    """
    User profile as shown to administrators (no secrets).

    Attributes:
        user_id: User UUID
        name: Display name
        email: Login identifier
        role: Role
        department: Department
        location: Location
        employment_status: Employment status
        is_active: Whether the account may log in
        is_locked: Lockout flag
        created_at: Creation timestamp
    """
    user_id: str
    name: str
    email: str
    role: Role
    department: Optional[str]
    location: Optional[str]
    employment_status: str
    is_active: bool
    is_locked: bool
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "department": self.department,
            "location": self.location,
            "employment_status": self.employment_status,
            "is_active": self.is_active,
            "is_locked": self.is_locked,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class PendingVerification:
    """
    Result of a successful password step; no session yet.

    Attributes:
        identifier: Identifier the code was sent for
        expires_at: When the code stops being accepted
    """
    identifier: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionGrant:
    """
    Issued session token.

    Attributes:
        token: Signed JWT
        actor_id: Subject of the token
        role: Role claim
        expires_in: Lifetime in seconds
        token_type: Always "bearer"
    """
    token: str
    actor_id: str
    role: Role
    expires_in: int
    token_type: str = field(default="bearer")
