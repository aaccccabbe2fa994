"""
Request middleware and handler helpers.

``error_middleware`` is the single place where leaveguard exceptions become
HTTP responses. Handlers raise; they never build error responses themselves.
"""

import asyncio
import functools
import json
from typing import Optional

from aiohttp import web
from loguru import logger

from ..access import AccessChain, Decision
from ..audit import AuditStatus
from ..auth import Actor
from ..errors import (
    AccessDenied,
    AccountLocked,
    AuthenticationFailure,
    BusinessRuleViolation,
    IdentifierTaken,
    InvalidOrExpiredOtp,
    LeaveGuardError,
    MalformedIdentifier,
    ResourceNotFound,
    StoreError,
)
from .state import CLIENT_ORIGIN, SERVICES


TOKEN_COOKIE = "token"


def _error(status: int, message: str, **extra) -> web.Response:
    body = {"success": False, "message": message}
    body.update(extra)
    return web.json_response(body, status=status)


@web.middleware
async def error_middleware(request, handler):
    """Map leaveguard exceptions to JSON error responses."""
    try:
        return await handler(request)
    except (AuthenticationFailure, InvalidOrExpiredOtp) as e:
        return _error(401, str(e))
    except AccountLocked as e:
        return _error(423, str(e))
    except AccessDenied as e:
        reason = e.model.value if e.model else None
        return _error(403, e.decision.detail or "Access denied", reason=reason)
    except BusinessRuleViolation as e:
        return _error(403, str(e))
    except MalformedIdentifier as e:
        return _error(400, str(e))
    except ResourceNotFound as e:
        return _error(404, f"{e.kind.capitalize()} not found")
    except IdentifierTaken as e:
        return _error(409, str(e))
    except StoreError as e:
        logger.error(f"[HTTP] {request.method} {request.path}: {e}")
        return _error(503, "Service temporarily unavailable", retryable=e.retryable)
    except LeaveGuardError as e:
        logger.exception(f"[HTTP] Unhandled error on {request.method} {request.path}: {e}")
        return _error(500, "Internal server error")


@web.middleware
async def cors_middleware(request, handler):
    """Add CORS headers to all responses."""
    if request.method == "OPTIONS":
        # Preflight request
        response = web.Response()
    else:
        response = await handler(request)

    response.headers["Access-Control-Allow-Origin"] = request.app[CLIENT_ORIGIN]
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return response


# ============================================================================
# Handler helpers
# ============================================================================

async def run_blocking(func, *args, **kwargs):
    """Run a store or bcrypt call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


def request_token(request) -> Optional[str]:
    """Session token from the Authorization header or the ``token`` cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(TOKEN_COOKIE)


async def require_actor(request) -> Actor:
    """
    Resolve the request's actor once and cache it on the request.

    Raises:
        AuthenticationFailure: No token, or the token is invalid or expired
    """
    actor = request.get("actor")
    if actor is not None:
        return actor

    token = request_token(request)
    if not token:
        raise AuthenticationFailure("Not authorized, no token")

    services = request.app[SERVICES]
    actor = await run_blocking(services.authenticator.resolve_actor, token)
    request["actor"] = actor
    return actor


def audit(request, action: str, status: AuditStatus, actor_id: Optional[str] = None, **details):
    """Queue an audit entry for this request."""
    actor = request.get("actor")
    if actor_id is None and actor is not None:
        actor_id = actor.id
    request.app[SERVICES].audit.record(actor_id, action, status, details, ip=request.remote)


def authorize(request, action: str, chain: AccessChain, actor: Actor, resource=None) -> Decision:
    """
    Evaluate a chain, auditing and raising on denial.

    Raises:
        AccessDenied: Carrying the denying Decision
    """
    services = request.app[SERVICES]
    decision = chain.evaluate(actor, resource, services.policy)
    if not decision.allow:
        details = {"reason": decision.reason.value, "detail": decision.detail}
        if resource is not None:
            details["resource"] = resource.id
        audit(request, action, AuditStatus.DENIED, **details)
        raise AccessDenied(decision)
    return decision


async def read_json(request, *required: str) -> dict:
    """
    Parse a JSON object body and check required fields are present.

    Raises:
        web.HTTPBadRequest: Body is not a JSON object or a field is missing
    """
    try:
        data = await request.json()
    except ValueError:
        raise bad_request("Request body must be JSON") from None
    if not isinstance(data, dict):
        raise bad_request("Request body must be a JSON object")

    missing = [name for name in required if data.get(name) in (None, "")]
    if missing:
        raise bad_request(f"Missing required fields: {', '.join(missing)}")
    return data


def bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"success": False, "message": message}),
        content_type="application/json",
    )
