"""
Authentication endpoints.

    POST /api/auth/register    {"name", "email", "password", "department"?, "location"?,
                                "employment_status"?}
    POST /api/auth/login       {"email", "password"}  -> one-time code sent
    POST /api/auth/verify-otp  {"email", "otp"}       -> session token + cookie
    POST /api/auth/logout
"""

from aiohttp import web
from loguru import logger

from ..audit import AuditStatus
from ..errors import AccountLocked, AuthenticationFailure, IdentifierTaken, InvalidOrExpiredOtp
from .middleware import TOKEN_COOKIE, audit, read_json, run_blocking
from .state import COOKIE_SECURE, SERVICES


routes = web.RouteTableDef()


@routes.post("/api/auth/register")
async def handle_register(request):
    data = await read_json(request, "name", "email", "password")
    services = request.app[SERVICES]

    try:
        account = await run_blocking(
            services.authenticator.register,
            name=str(data["name"]).strip(),
            email=str(data["email"]).strip().lower(),
            password=str(data["password"]),
            department=data.get("department"),
            location=data.get("location"),
            employment_status=str(data.get("employment_status") or data.get("employmentStatus") or "Full-Time"),
        )
    except IdentifierTaken:
        audit(request, "REGISTER", AuditStatus.FAILED, email=data["email"], error="duplicate")
        raise

    audit(request, "REGISTER", AuditStatus.SUCCESS, actor_id=account.user_id)
    return web.json_response(
        {"success": True, "message": "Registration Successful", "user": account.to_dict()},
        status=201,
    )


@routes.post("/api/auth/login")
async def handle_login(request):
    """
    Password step.

    Returns 200 once the code is queued; no token is issued here.
    """
    data = await read_json(request, "email", "password")
    email = str(data["email"]).strip().lower()
    services = request.app[SERVICES]

    try:
        pending = await run_blocking(services.authenticator.authenticate, email, str(data["password"]))
    except AccountLocked:
        audit(request, "LOGIN", AuditStatus.DENIED, email=email, error="locked")
        raise
    except AuthenticationFailure:
        audit(request, "LOGIN", AuditStatus.FAILED, email=email)
        raise

    audit(request, "LOGIN", AuditStatus.SUCCESS, email=email, step="password")
    return web.json_response({
        "success": True,
        "message": "OTP sent to email",
        "email": pending.identifier,
        "expires_at": pending.expires_at.isoformat(),
    })


@routes.post("/api/auth/verify-otp")
async def handle_verify_otp(request):
    data = await read_json(request, "email", "otp")
    email = str(data["email"]).strip().lower()
    services = request.app[SERVICES]

    try:
        grant = await run_blocking(services.authenticator.verify_otp, email, str(data["otp"]))
    except InvalidOrExpiredOtp:
        audit(request, "VERIFY_OTP", AuditStatus.FAILED, email=email)
        raise

    audit(request, "VERIFY_OTP", AuditStatus.SUCCESS, actor_id=grant.actor_id)
    response = web.json_response({
        "success": True,
        "message": "Login successful",
        "token": grant.token,
        "token_type": grant.token_type,
        "expires_in": grant.expires_in,
        "role": grant.role.value,
    })
    response.set_cookie(
        TOKEN_COOKIE,
        grant.token,
        max_age=grant.expires_in,
        httponly=True,
        secure=request.app[COOKIE_SECURE],
        samesite="Lax",
    )
    return response


@routes.post("/api/auth/logout")
async def handle_logout(request):
    """Clear the session cookie. Issued tokens stay valid until they expire."""
    response = web.json_response({"success": True, "message": "Logged out"})
    response.del_cookie(TOKEN_COOKIE)
    logger.debug("Session cookie cleared")
    return response
