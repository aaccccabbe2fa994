"""
aiohttp application factory and runner.
"""

from datetime import timedelta

from aiohttp import web
from loguru import logger

from .. import __version__
from ..access import PolicyConfiguration
from ..audit import AuditLog
from ..auth import Authenticator, JWTHandler, LogNotifier, SmtpNotifier, UserDatabase
from ..config import Settings
from ..leaves import LeaveStore
from . import admin_routes, auth_routes, leave_routes
from .middleware import cors_middleware, error_middleware
from .state import CLIENT_ORIGIN, COOKIE_SECURE, SERVICES, Services


def build_services(settings: Settings) -> Services:
    """
    Open the stores and wire the login pipeline from settings.

    Args:
        settings: Resolved settings (see ``Settings.from_env``)

    Returns:
        Services ready to hand to ``create_app``
    """
    if settings.smtp_host:
        notifier = SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_user,
            password=settings.smtp_password,
        )
        logger.info(f"One-time codes sent via SMTP {settings.smtp_host}:{settings.smtp_port}")
    else:
        notifier = LogNotifier()
        logger.warning("No SMTP host configured, one-time codes are only written to the log")

    db = UserDatabase(settings.db_path)
    tokens = JWTHandler(settings.jwt_secret, ttl=timedelta(seconds=settings.token_ttl_seconds))
    authenticator = Authenticator(
        db,
        tokens,
        notifier,
        lockout_threshold=settings.lockout_threshold,
        otp_ttl=timedelta(seconds=settings.otp_ttl_seconds),
    )
    return Services(
        db=db,
        leaves=LeaveStore(settings.db_path),
        audit=AuditLog(settings.db_path),
        authenticator=authenticator,
        policy=PolicyConfiguration.load(settings.policy_file),
    )


async def handle_health(request):
    """Health check endpoint."""
    return web.json_response({
        "status": "healthy",
        "service": "leaveguard",
        "version": __version__,
    })


def create_app(services: Services, client_origin: str = "*", cookie_secure: bool = False) -> web.Application:
    """
    Build the HTTP application.

    Args:
        services: Stores, pipeline and policy
        client_origin: Value of Access-Control-Allow-Origin
        cookie_secure: Mark the session cookie Secure (HTTPS deployments)
    """
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[SERVICES] = services
    app[CLIENT_ORIGIN] = client_origin
    app[COOKIE_SECURE] = cookie_secure

    app.router.add_get("/api/health", handle_health)
    app.router.add_routes(auth_routes.routes)
    app.router.add_routes(leave_routes.routes)
    app.router.add_routes(admin_routes.routes)

    async def on_cleanup(app):
        app[SERVICES].shutdown()
        logger.info("Background workers stopped")

    app.on_cleanup.append(on_cleanup)
    return app


def run(settings: Settings) -> None:
    """Serve until interrupted."""
    services = build_services(settings)
    app = create_app(
        services,
        client_origin=settings.client_origin,
        cookie_secure=settings.client_origin.startswith("https://"),
    )
    logger.info(f"Starting leaveguard {__version__} on {settings.host}:{settings.port}")
    web.run_app(app, host=settings.host, port=settings.port, print=None)
    logger.info("Server stopped")
