"""
Session token generation and validation.

Session tokens are HS256 JWTs carrying the actor id and role. They are not
recorded server side; a token stays valid until it expires.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from loguru import logger

from ..access.policies import Role


ALGORITHM = "HS256"
SESSION_TOKEN_TTL = timedelta(hours=1)
TOKEN_TYPE = "session"


@dataclass
class TokenPayload:
    """
    Decoded session token.

    Attributes:
        actor_id: User UUID (sub claim)
        role: Role claim
        exp: Expiration timestamp
        iat: Issued at timestamp
        jti: Token ID
    """
    actor_id: str
    role: Role
    exp: datetime
    iat: datetime
    jti: str


class JWTHandler:
    """
    Session token handler.

    Creates and validates signed session tokens.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        ttl: timedelta = SESSION_TOKEN_TTL,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize handler.

        Args:
            secret_key: Secret key for signing tokens
            algorithm: JWT algorithm (default: HS256)
            ttl: Token lifetime
            clock: UTC time source
        """
        if len(secret_key) < 32:
            logger.warning("JWT secret is shorter than 32 characters - use a stronger secret!")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.ttl = ttl
        self.clock = clock

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def create_session_token(self, actor_id: str, role: Role) -> str:
        """
        Create a session token.

        Args:
            actor_id: User UUID
            role: User role

        Returns:
            JWT token string
        """
        now = self.clock()
        payload = {
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
            "sub": actor_id,
            "role": Role(role).value,
            "jti": secrets.token_urlsafe(16),
            "type": TOKEN_TYPE,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Session token created for {actor_id}")
        return token

    def verify_token(self, token: str) -> Optional[TokenPayload]:
        """
        Verify and decode a session token.

        Args:
            token: JWT token string

        Returns:
            TokenPayload if valid, None if invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        if payload.get("type") != TOKEN_TYPE:
            logger.warning("Token is not a session token")
            return None

        # Expiry checked against the injected clock rather than PyJWT's wall clock
        exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        if self.clock() >= exp:
            logger.warning("Token has expired")
            return None

        try:
            role = Role(payload.get("role"))
        except ValueError:
            logger.warning(f"Token carries unknown role: {payload.get('role')!r}")
            return None

        return TokenPayload(
            actor_id=payload["sub"],
            role=role,
            exp=exp,
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload.get("jti", ""),
        )
