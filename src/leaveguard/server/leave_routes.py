"""
Leave request endpoints.

Each handler picks its own ordered access chain; HR and Admin readers
short-circuit ownership explicitly rather than through an "any of" rule.
"""

from datetime import date

from aiohttp import web
from loguru import logger

from ..access import AccessChain, AccessModel, Classification, Decision, Role
from ..audit import AuditStatus
from ..errors import BusinessRuleViolation, UserNotFound
from ..leaves import LeaveStatus, LeaveType
from .middleware import audit, authorize, bad_request, read_json, require_actor, run_blocking
from .state import SERVICES


routes = web.RouteTableDef()

MANAGER_MAX_SPAN_DAYS = 10
REVIEWER_ROLES = (Role.HR, Role.ADMIN)


def _field(data: dict, name: str, alias: str):
    value = data.get(name)
    return data.get(alias) if value is None else value


def _parse_date(value, name: str) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise bad_request(f"{name} must be an ISO date (YYYY-MM-DD)") from None


def _parse_type(value) -> LeaveType:
    try:
        return LeaveType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in LeaveType)
        raise bad_request(f"type must be one of: {allowed}") from None


def same_department(actor, resource, config=None) -> Decision:
    """ABAC: the actor works in the resource owner's department."""
    if actor.department and actor.department == resource.department:
        return Decision.allowed()
    return Decision.denied(AccessModel.ABAC, "department mismatch")


def _chain(request) -> AccessChain:
    return AccessChain(clock=request.app[SERVICES].clock)


# ============================================================================
# Employee
# ============================================================================

@routes.post("/api/leave")
async def handle_create_leave(request):
    """Create a leave request; outside working hours only Admin may do so."""
    actor = await require_actor(request)
    authorize(request, "CREATE_LEAVE", _chain(request).require_working_hours(), actor)

    data = await read_json(request, "type", "reason")
    start = _parse_date(_field(data, "start_date", "startDate"), "start_date")
    end = _parse_date(_field(data, "end_date", "endDate"), "end_date")
    if end < start:
        raise bad_request("end_date must not be before start_date")

    sensitivity = Classification.INTERNAL
    if actor.role in REVIEWER_ROLES and data.get("sensitivity"):
        try:
            sensitivity = Classification(data["sensitivity"])
        except ValueError:
            raise bad_request("Unknown sensitivity") from None

    services = request.app[SERVICES]
    leave = await run_blocking(
        services.leaves.create,
        employee=actor.id,
        start_date=start,
        end_date=end,
        leave_type=_parse_type(data["type"]),
        reason=str(data["reason"]),
        sensitivity=sensitivity,
    )
    audit(request, "CREATE_LEAVE", AuditStatus.SUCCESS, leave_id=leave.id)
    return web.json_response(leave.to_dict(), status=201)


@routes.get("/api/leave/mine")
async def handle_my_leaves(request):
    actor = await require_actor(request)
    leaves = await run_blocking(request.app[SERVICES].leaves.list_for, actor.id)
    return web.json_response([leave.to_dict() for leave in leaves])


@routes.get("/api/leave/{leave_id}")
async def handle_get_leave(request):
    """
    Read one request.

    HR and Admin are checked against the classification only; everyone else
    must also own the request or hold delegated access.
    """
    actor = await require_actor(request)
    services = request.app[SERVICES]
    snapshot = await run_blocking(services.leaves.get_resource_snapshot, request.match_info["leave_id"])

    chain = _chain(request).require_classification()
    if actor.role not in REVIEWER_ROLES:
        chain.require_ownership()
    authorize(request, "VIEW_LEAVE", chain, actor, snapshot)

    leave = await run_blocking(services.leaves.get, snapshot.id)
    return web.json_response(leave.to_dict())


@routes.put("/api/leave/{leave_id}")
async def handle_update_leave(request):
    actor = await require_actor(request)
    services = request.app[SERVICES]
    snapshot = await run_blocking(services.leaves.get_resource_snapshot, request.match_info["leave_id"])
    authorize(request, "UPDATE_LEAVE", _chain(request).require_ownership(include_delegates=False), actor, snapshot)

    data = await read_json(request)
    leave = await run_blocking(services.leaves.get, snapshot.id)
    if leave.status != LeaveStatus.PENDING:
        raise BusinessRuleViolation("Cannot update leave after approval")

    start = _field(data, "start_date", "startDate")
    end = _field(data, "end_date", "endDate")
    if start is not None:
        leave.start_date = _parse_date(start, "start_date")
    if end is not None:
        leave.end_date = _parse_date(end, "end_date")
    if leave.end_date < leave.start_date:
        raise bad_request("end_date must not be before start_date")
    if data.get("type") is not None:
        leave.type = _parse_type(data["type"])
    if data.get("reason") is not None:
        leave.reason = str(data["reason"])

    await run_blocking(services.leaves.update, leave)
    audit(request, "UPDATE_LEAVE", AuditStatus.SUCCESS, leave_id=leave.id)
    return web.json_response({"message": "Leave updated successfully", "leave": leave.to_dict()})


@routes.post("/api/leave/{leave_id}/share")
async def handle_share_leave(request):
    """Owner grants another user read access (delegated access)."""
    actor = await require_actor(request)
    services = request.app[SERVICES]
    snapshot = await run_blocking(services.leaves.get_resource_snapshot, request.match_info["leave_id"])
    authorize(request, "SHARE_LEAVE", _chain(request).require_ownership(include_delegates=False), actor, snapshot)

    data = await read_json(request, "user_id")
    user_id = str(data["user_id"])
    if await run_blocking(services.db.get_user, user_id) is None:
        raise UserNotFound(user_id)

    leave = await run_blocking(services.leaves.share, snapshot.id, user_id)
    audit(request, "SHARE_LEAVE", AuditStatus.SUCCESS, leave_id=leave.id, shared_with=user_id)
    return web.json_response({"message": "Leave shared", "leave": leave.to_dict()})


# ============================================================================
# Review
# ============================================================================

async def _decide(request, action: str, roles, status: LeaveStatus, message: str):
    actor = await require_actor(request)
    authorize(request, action, _chain(request).require_role(roles), actor)

    leave = await run_blocking(
        request.app[SERVICES].leaves.set_status, request.match_info["leave_id"], status, actor.id
    )
    audit(request, action, AuditStatus.SUCCESS, leave_id=leave.id)
    return web.json_response({"message": message, "leave": leave.to_dict()})


@routes.post("/api/leave/{leave_id}/approve")
async def handle_approve_leave(request):
    return await _decide(request, "APPROVE_LEAVE", REVIEWER_ROLES, LeaveStatus.APPROVED, "Leave approved successfully")


@routes.post("/api/leave/{leave_id}/reject")
async def handle_reject_leave(request):
    return await _decide(
        request, "REJECT_LEAVE", (Role.MANAGER, Role.HR, Role.ADMIN), LeaveStatus.REJECTED, "Leave rejected"
    )


@routes.post("/api/leave/{leave_id}/manager-approve")
async def handle_manager_approve(request):
    """
    Department manager approval.

    The manager must match the ``manager_approve`` attribute bundle and work
    in the requester's department; long leaves are left to HR.
    """
    actor = await require_actor(request)
    services = request.app[SERVICES]
    authorize(request, "MANAGER_APPROVE_LEAVE", _chain(request).require_attributes("manager_approve"), actor)

    leave = await run_blocking(services.leaves.get, request.match_info["leave_id"])
    owner = await run_blocking(services.db.get_user, leave.employee)
    snapshot = await run_blocking(
        services.leaves.get_resource_snapshot, leave.id, owner.department if owner else None
    )
    authorize(request, "MANAGER_APPROVE_LEAVE", _chain(request).add(same_department), actor, snapshot)

    if leave.span_days > MANAGER_MAX_SPAN_DAYS:
        audit(request, "MANAGER_APPROVE_LEAVE", AuditStatus.DENIED, leave_id=leave.id, error="too long")
        raise BusinessRuleViolation(f"Long leaves (>{MANAGER_MAX_SPAN_DAYS} days) require HR approval")

    leave = await run_blocking(services.leaves.set_status, leave.id, LeaveStatus.APPROVED, actor.id)
    logger.info(f"Leave {leave.id} approved by department manager {actor.id}")
    audit(request, "MANAGER_APPROVE_LEAVE", AuditStatus.SUCCESS, leave_id=leave.id)
    return web.json_response({"message": "Manager Approved", "leave": leave.to_dict()})
