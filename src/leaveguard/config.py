"""
Service configuration and logging setup.
"""

import secrets
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


class Settings(BaseSettings):
    """
    Settings read from ``LEAVEGUARD_*`` environment variables.

    Use ``Settings.from_env()`` rather than the constructor so the session
    secret is resolved.
    """

    model_config = SettingsConfigDict(env_prefix="LEAVEGUARD_", extra="ignore")

    db_path: Path = Path("data/leaveguard.db")
    jwt_secret: Optional[str] = None
    jwt_secret_file: Optional[Path] = None
    policy_file: Optional[Path] = None

    host: str = "0.0.0.0"
    port: int = Field(default=8080, gt=0, lt=65536)
    log_level: str = "INFO"
    client_origin: str = "http://localhost:5173"

    lockout_threshold: int = Field(default=5, gt=0)
    otp_ttl_seconds: int = Field(default=180, gt=0)
    token_ttl_seconds: int = Field(default=3600, gt=0)

    # SMTP; codes are only logged when smtp_host is unset
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender: str = "no-reply@leaveguard.local"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from the environment and resolve the session secret.

        The secret comes from ``LEAVEGUARD_JWT_SECRET``, else from the file
        named by ``LEAVEGUARD_JWT_SECRET_FILE``, else a random one is
        generated (sessions then do not survive a restart).

        Raises:
            OSError: If the secret file cannot be read
        """
        settings = cls(**overrides)
        if settings.jwt_secret:
            return settings

        if settings.jwt_secret_file:
            secret = settings.jwt_secret_file.read_text(encoding="utf-8").strip()
            logger.info(f"Loaded session secret from {settings.jwt_secret_file}")
        else:
            secret = secrets.token_urlsafe(32)
            logger.warning("No LEAVEGUARD_JWT_SECRET set, generated a random one; sessions end on restart")
        return settings.model_copy(update={"jwt_secret": secret})


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
