"""
Administration endpoints: user management and the audit log.

Every handler here requires the Admin role.
"""

from datetime import datetime, timezone

from aiohttp import web

from ..access import AccessChain, Role
from ..audit import AuditStatus
from ..auth import Actor
from ..errors import UserNotFound
from .middleware import audit, authorize, bad_request, read_json, require_actor, run_blocking
from .state import SERVICES


routes = web.RouteTableDef()


async def _require_admin(request, action: str) -> Actor:
    actor = await require_actor(request)
    chain = AccessChain(clock=request.app[SERVICES].clock).require_role([Role.ADMIN])
    authorize(request, action, chain, actor)
    return actor


async def _load_user(request):
    user_id = request.match_info["user_id"]
    user = await run_blocking(request.app[SERVICES].db.get_user, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


# ============================================================================
# Users
# ============================================================================

@routes.get("/api/admin/users")
async def handle_list_users(request):
    await _require_admin(request, "LIST_USERS")
    users = await run_blocking(request.app[SERVICES].db.list_users)
    return web.json_response([user.to_dict() for user in users])


@routes.get("/api/admin/users/{user_id}")
async def handle_get_user(request):
    await _require_admin(request, "GET_USER")
    user = await _load_user(request)
    return web.json_response(user.to_dict())


@routes.put("/api/admin/users/{user_id}/role")
async def handle_update_role(request):
    await _require_admin(request, "UPDATE_USER_ROLE")
    data = await read_json(request, "role")
    try:
        role = Role(data["role"])
    except ValueError:
        raise bad_request(f"Unknown role: {data['role']}") from None

    user = await run_blocking(request.app[SERVICES].db.update_role, request.match_info["user_id"], role)
    audit(request, "UPDATE_USER_ROLE", AuditStatus.SUCCESS, user_id=user.user_id, new_role=role.value)
    return web.json_response({"message": "Role updated successfully", "user": user.to_dict()})


@routes.put("/api/admin/users/{user_id}/department")
async def handle_update_department(request):
    await _require_admin(request, "UPDATE_USER_DEPARTMENT")
    data = await read_json(request, "department")
    department = str(data["department"])

    user = await run_blocking(
        request.app[SERVICES].db.update_department, request.match_info["user_id"], department
    )
    audit(request, "UPDATE_USER_DEPARTMENT", AuditStatus.SUCCESS, user_id=user.user_id, new_department=department)
    return web.json_response({"message": "Department updated", "user": user.to_dict()})


@routes.put("/api/admin/users/{user_id}/employment-status")
async def handle_update_employment_status(request):
    await _require_admin(request, "UPDATE_USER_EMPLOYMENT_STATUS")
    data = await read_json(request, "employment_status")
    employment_status = str(data["employment_status"]).strip()
    if not employment_status:
        raise bad_request("employment_status must not be empty")

    user = await run_blocking(
        request.app[SERVICES].db.update_employment_status, request.match_info["user_id"], employment_status
    )
    audit(
        request, "UPDATE_USER_EMPLOYMENT_STATUS", AuditStatus.SUCCESS,
        user_id=user.user_id, new_employment_status=employment_status,
    )
    return web.json_response({"message": "Employment status updated", "user": user.to_dict()})


@routes.put("/api/admin/users/{user_id}/toggle-active")
async def handle_toggle_active(request):
    await _require_admin(request, "TOGGLE_USER_ACTIVE")
    user = await _load_user(request)

    user = await run_blocking(request.app[SERVICES].db.set_active, user.user_id, not user.is_active)
    state = "activated" if user.is_active else "deactivated"
    audit(request, "TOGGLE_USER_ACTIVE", AuditStatus.SUCCESS, user_id=user.user_id, is_active=user.is_active)
    return web.json_response({"message": f"User {state} successfully", "user": user.to_dict()})


@routes.put("/api/admin/users/{user_id}/unlock")
async def handle_unlock(request):
    await _require_admin(request, "UNLOCK_USER")
    services = request.app[SERVICES]
    user_id = request.match_info["user_id"]

    await run_blocking(services.authenticator.unlock, user_id)
    user = await run_blocking(services.db.get_user, user_id)
    audit(request, "UNLOCK_USER", AuditStatus.SUCCESS, user_id=user_id)
    return web.json_response({"message": "Account unlocked successfully", "user": user.to_dict()})


@routes.delete("/api/admin/users/{user_id}")
async def handle_delete_user(request):
    await _require_admin(request, "DELETE_USER")
    user_id = request.match_info["user_id"]

    if not await run_blocking(request.app[SERVICES].db.delete_user, user_id):
        raise UserNotFound(user_id)
    audit(request, "DELETE_USER", AuditStatus.SUCCESS, user_id=user_id)
    return web.json_response({"message": "User deleted successfully"})


# ============================================================================
# Audit log
# ============================================================================

def _parse_timestamp(value: str, name: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise bad_request(f"{name} must be an ISO timestamp") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@routes.get("/api/logs")
async def handle_get_logs(request):
    """
    Filtered, paginated audit entries.

    Query: user, action, status, startDate, endDate, page (1), limit (20)
    """
    await _require_admin(request, "VIEW_LOGS")
    query = request.query

    try:
        page = int(query.get("page", 1))
        limit = int(query.get("limit", 20))
    except ValueError:
        raise bad_request("page and limit must be integers") from None

    status = query.get("status")
    if status and status not in {s.value for s in AuditStatus}:
        raise bad_request(f"Unknown status: {status}")

    start = query.get("startDate")
    end = query.get("endDate")
    result = await run_blocking(
        request.app[SERVICES].audit.query,
        user=query.get("user"),
        action=query.get("action"),
        status=status,
        start=_parse_timestamp(start, "startDate") if start else None,
        end=_parse_timestamp(end, "endDate") if end else None,
        page=page,
        limit=limit,
    )
    return web.json_response(result.to_dict())


@routes.delete("/api/logs")
async def handle_clear_logs(request):
    await _require_admin(request, "CLEAR_LOGS")
    deleted = await run_blocking(request.app[SERVICES].audit.clear)
    return web.json_response({"message": "All logs removed", "deleted": deleted})
