"""
Application state shared by the request handlers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from aiohttp import web

from ..access import PolicyConfiguration
from ..audit import AuditLog
from ..auth import Authenticator, UserDatabase
from ..leaves import LeaveStore


@dataclass
class Services:
    """
    Everything a handler needs, built once at startup.

    Attributes:
        db: User and credential store
        leaves: Leave request store
        audit: Audit log
        authenticator: Login pipeline
        policy: Frozen access policy
        clock: Local time source for working-hours and ABAC time checks
    """
    db: UserDatabase
    leaves: LeaveStore
    audit: AuditLog
    authenticator: Authenticator
    policy: PolicyConfiguration = field(default_factory=PolicyConfiguration)
    clock: Callable[[], datetime] = datetime.now

    def shutdown(self) -> None:
        self.audit.shutdown()
        self.authenticator.notifier.shutdown()


SERVICES = web.AppKey("services", Services)
CLIENT_ORIGIN = web.AppKey("client_origin", str)
COOKIE_SECURE = web.AppKey("cookie_secure", bool)
