"""
Authentication pipeline.

Combines the credential store, one-time codes and session tokens:

    authenticate(identifier, password) -> PendingVerification   (code sent)
    verify_otp(identifier, code)       -> SessionGrant          (token issued)

Per credential the lockout state is {Active, LockedOut}. Only wrong
passwords count towards the lockout; only ``unlock`` leaves LockedOut.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from loguru import logger

from ..access.policies import Role
from ..errors import (
    AccountLocked,
    AuthenticationFailure,
    InvalidOrExpiredOtp,
    UserNotFound,
)
from .database import UserDatabase
from .jwt_handler import JWTHandler
from .models import Actor, PendingVerification, SessionGrant, UserAccount
from .otp import Notifier, generate_otp, otp_message


LOCKOUT_THRESHOLD = 5
OTP_TTL = timedelta(minutes=3)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Authenticator:
    """
    User authentication manager.

    Provides:
    - Password check with progressive lockout
    - One-time code issue and verification
    - Session token issue and actor resolution
    - Administrative unlock
    """

    def __init__(
        self,
        db: UserDatabase,
        tokens: JWTHandler,
        notifier: Notifier,
        lockout_threshold: int = LOCKOUT_THRESHOLD,
        otp_ttl: timedelta = OTP_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize authenticator.

        Args:
            db: Credential store
            tokens: Session token handler
            notifier: One-time code delivery
            lockout_threshold: Consecutive wrong passwords before lockout
            otp_ttl: One-time code lifetime
            clock: UTC time source
        """
        self.db = db
        self.tokens = tokens
        self.notifier = notifier
        self.lockout_threshold = lockout_threshold
        self.otp_ttl = otp_ttl
        self.clock = clock

    def register(
        self,
        name: str,
        email: str,
        password: str,
        department: Optional[str] = None,
        location: Optional[str] = None,
        role: Role = Role.EMPLOYEE,
        employment_status: str = "Full-Time",
    ) -> UserAccount:
        """
        Register a new user.

        Raises:
            IdentifierTaken: If the email is already registered
        """
        return self.db.create_user(
            name=name,
            email=email,
            password=password,
            role=role,
            department=department,
            location=location,
            employment_status=employment_status,
        )

    def authenticate(self, identifier: str, password: str) -> PendingVerification:
        """
        Check the password and send a one-time code.

        Args:
            identifier: Login identifier (email)
            password: Plain text password

        Returns:
            PendingVerification; no session is issued until verify_otp

        Raises:
            AuthenticationFailure: Unknown identifier, inactive account or wrong password
            AccountLocked: Credential is locked, or this attempt locked it
            StoreError: The updated record could not be persisted
        """
        record = self.db.get_credential_by_identifier(identifier)
        if record is None or not record.is_active:
            logger.warning(f"[LOGIN] Unknown or inactive identifier: {identifier}")
            raise AuthenticationFailure()

        if record.lockout_flag:
            logger.warning(f"[LOGIN] Locked account: {identifier}")
            raise AccountLocked()

        if not self.db.verify_password(record, password):
            record.failed_attempt_count += 1
            if record.failed_attempt_count >= self.lockout_threshold:
                record.lockout_flag = True
                # A locked credential cannot redeem a code issued before the lock
                record.otp_code = None
                record.otp_expiry = None
            self.db.save_credential(record)

            if record.lockout_flag:
                logger.warning(
                    f"[LOGIN] {identifier} locked after {record.failed_attempt_count} failed attempts"
                )
                raise AccountLocked()

            logger.warning(
                f"[LOGIN] Wrong password for {identifier} "
                f"({record.failed_attempt_count}/{self.lockout_threshold})"
            )
            raise AuthenticationFailure()

        code = generate_otp()
        expires_at = self.clock() + self.otp_ttl
        record.failed_attempt_count = 0
        record.otp_code = code
        record.otp_expiry = expires_at
        self.db.save_credential(record)

        # The caller is answered whether or not delivery succeeds
        self.notifier.deliver(
            record.identifier,
            otp_message(code, int(self.otp_ttl.total_seconds() // 60)),
        )

        logger.info(f"[LOGIN] Password accepted for {identifier}, OTP pending until {expires_at.isoformat()}")
        return PendingVerification(identifier=record.identifier, expires_at=expires_at)

    def verify_otp(self, identifier: str, code: str) -> SessionGrant:
        """
        Redeem a one-time code for a session token.

        Args:
            identifier: Login identifier (email)
            code: The six-digit code

        Returns:
            SessionGrant carrying the signed token

        Raises:
            InvalidOrExpiredOtp: Unknown, inactive or locked account, no pending
                code, wrong or expired code
        """
        record = self.db.get_credential_by_identifier(identifier)
        if record is None or record.otp_code is None or record.otp_expiry is None:
            logger.warning(f"[OTP] No pending code for {identifier}")
            raise InvalidOrExpiredOtp()

        if record.lockout_flag or not record.is_active:
            logger.warning(f"[OTP] Locked or inactive account: {identifier}")
            raise InvalidOrExpiredOtp()

        if not hmac.compare_digest(record.otp_code.encode("utf-8"), str(code).encode("utf-8")):
            logger.warning(f"[OTP] Wrong code for {identifier}")
            raise InvalidOrExpiredOtp()

        if self.clock() > record.otp_expiry:
            logger.warning(f"[OTP] Expired code for {identifier}")
            raise InvalidOrExpiredOtp()

        record.otp_code = None
        record.otp_expiry = None
        self.db.save_credential(record)

        token = self.tokens.create_session_token(record.actor_id, record.role)
        logger.success(f"[OTP] User logged in: {identifier}")
        return SessionGrant(
            token=token,
            actor_id=record.actor_id,
            role=record.role,
            expires_in=self.tokens.ttl_seconds,
        )

    def unlock(self, actor_id: str) -> None:
        """
        Clear the lockout flag and reset the failure counter (idempotent).

        Raises:
            UserNotFound: If no such user exists
        """
        record = self.db.get_credential_by_id(actor_id)
        if record is None:
            raise UserNotFound(actor_id)

        record.lockout_flag = False
        record.failed_attempt_count = 0
        self.db.save_credential(record)
        logger.info(f"[UNLOCK] Account unlocked: {record.identifier}")

    def resolve_actor(self, token: str) -> Actor:
        """
        Verify a session token and load the actor it names.

        Args:
            token: JWT session token

        Returns:
            Actor for this request

        Raises:
            AuthenticationFailure: Invalid or expired token, or the user is gone
        """
        payload = self.tokens.verify_token(token)
        if payload is None:
            raise AuthenticationFailure("Authentication failed")

        actor = self.db.get_actor(payload.actor_id)
        if actor is None:
            logger.warning(f"Token subject no longer exists: {payload.actor_id}")
            raise AuthenticationFailure("Invalid token")
        return actor
