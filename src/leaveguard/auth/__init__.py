"""
Authentication module for leaveguard.

Password + one-time-code login with progressive lockout, issuing
JWT session tokens.
"""

from .models import Actor, CredentialRecord, PendingVerification, SessionGrant, UserAccount
from .database import UserDatabase, hash_password
from .jwt_handler import JWTHandler, TokenPayload
from .otp import LogNotifier, Notifier, SmtpNotifier, generate_otp
from .authenticator import LOCKOUT_THRESHOLD, OTP_TTL, Authenticator

__all__ = [
    # Models and store
    "Actor",
    "CredentialRecord",
    "PendingVerification",
    "SessionGrant",
    "UserAccount",
    "UserDatabase",
    "hash_password",
    # Tokens
    "JWTHandler",
    "TokenPayload",
    # One-time codes
    "Notifier",
    "LogNotifier",
    "SmtpNotifier",
    "generate_otp",
    # Pipeline
    "Authenticator",
    "LOCKOUT_THRESHOLD",
    "OTP_TTL",
]
