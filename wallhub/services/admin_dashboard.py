"""Admin dashboard: headline stats and premium membership management.

Premium requests queued by ``premium-request`` are approved or rejected
here; approval upgrades the requester's profile for ``duration_months``.
Admins may also grant or revoke premium by hand, or set a plan directly.
Grants and revocations are written to the admin audit trail; a failing
audit write is logged and does not undo the profile change.
"""

import calendar
from datetime import timedelta

from wallhub.core.baas_client import BaasError, eq
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import is_premium_active, iso_utc, parse_timestamp
from wallhub.services import admin_actions


ERROR_CODE = "ADMIN_DASHBOARD_FAILED"
STATS_WINDOW_DAYS = 30
REQUEST_STATUSES = ("approved", "rejected", "pending")

MANAGE_USERS = "manage_users"
MANAGE_PREMIUM_REQUESTS = "manage_premium_requests"
MANAGE_ADMINS = "manage_admins"


def add_months(moment, months):
    """Shift ``moment`` by whole months, clamping to the target month's last day."""
    index = moment.month - 1 + int(months)
    year, month = moment.year + index // 12, index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _require(caller, permission, what):
    if not caller.has_permission(permission):
        raise ServiceError(ERROR_CODE, f"Insufficient permissions to manage {what}", 403)


def _missing(message):
    return ServiceError(ERROR_CODE, message, 400)


def _first_row(rows):
    return rows[0] if rows else None


def _role_details(ctx, role):
    try:
        return ctx.client.first("admin_roles", [("role_name", eq(role)), ("select", "*")])
    except BaasError as exc:
        ctx.log_exception("admin_dashboard/role", exc)
        return None


def _after(value, cutoff):
    parsed = parse_timestamp(value)
    return parsed is not None and parsed > cutoff


def dashboard_stats(ctx, caller):
    """User, revenue and download totals plus what the caller may do."""
    now = ctx.now()
    users = ctx.client.select("profiles", [("select", "id,plan_type,premium_expires_at,premium_purchase_date,created_at")])
    requests = ctx.client.select("premium_membership_requests", [("select", "id,status,amount_paid,created_at")])
    downloads = ctx.client.select("downloads", [("select", "id,created_at")])
    cutoff = now - timedelta(days=STATS_WINDOW_DAYS)

    revenue = 0.0
    for request in requests:
        if request.get("status") != "approved" or not request.get("amount_paid"):
            continue
        try:
            revenue += float(request["amount_paid"])
        except (TypeError, ValueError):
            continue

    role = caller.admin_role or "admin"
    details = _role_details(ctx, role)
    return {
        "totalUsers": len(users),
        "premiumUsers": sum(1 for user in users if is_premium_active(user, now)),
        "pendingRequests": sum(1 for request in requests if request.get("status") == "pending"),
        "totalRevenue": round(revenue, 2),
        "newUsersLast30Days": sum(1 for user in users if _after(user.get("created_at"), cutoff)),
        "downloadsLast30Days": sum(1 for download in downloads if _after(download.get("created_at"), cutoff)),
        "totalDownloads": len(downloads),
        "unreadMessages": 0,
        "adminInfo": {
            "role": role,
            "roleDetails": details,
            "permissions": caller.profile.get("admin_permissions") or {},
            "canManageAdmins": caller.has_permission(MANAGE_ADMINS),
            "canDeleteAdmins": caller.is_super_admin or bool(details and details.get("can_delete_admins")),
            "isSuperAdmin": caller.is_super_admin,
        },
    }


def list_premium_requests(ctx):
    return ctx.client.select("premium_membership_requests", [("order", "created_at.desc")])


def _audit(ctx, caller, client, action_type, user_id, **details):
    try:
        admin_actions.log_action(
            ctx,
            caller,
            {"action_type": action_type, "user_id": user_id, **details},
            client.get("ip"),
            client.get("user_agent"),
        )
    except BaasError as exc:
        ctx.log_exception(f"admin_dashboard/audit/{action_type}", exc)


def process_premium_request(ctx, caller, payload, client):
    """Approve or reject one request; approval upgrades the requester."""
    _require(caller, MANAGE_PREMIUM_REQUESTS, "premium requests")
    request_id, status = payload.get("id"), payload.get("status")
    if not request_id:
        raise _missing("id is required")
    if status not in REQUEST_STATUSES:
        raise _missing("status must be approved, rejected or pending")

    now = ctx.now()
    updated = _first_row(ctx.client.update(
        "premium_membership_requests",
        [("id", eq(request_id))],
        {
            "status": status,
            "admin_notes": payload.get("admin_notes") or None,
            "processed_at": iso_utc(now),
            "processed_by": caller.user_id,
            "updated_at": iso_utc(now),
        },
    ))
    if status == "approved":
        request = ctx.client.first(
            "premium_membership_requests", [("id", eq(request_id)), ("select", "user_id,duration_months")]
        )
        if request:
            months = int(request.get("duration_months") or 1)
            ctx.client.update(
                "profiles",
                [("user_id", eq(request["user_id"]))],
                {
                    "plan_type": "premium",
                    "premium_expires_at": iso_utc(add_months(now, months)),
                    "premium_purchase_date": iso_utc(now),
                    "updated_at": iso_utc(now),
                },
                returning=False,
            )
            _audit(
                ctx, caller, client, "grant_premium", request["user_id"],
                action_details={"premium_request_id": request_id, "duration_months": months},
                notes=f"Approved premium request #{request_id}",
            )
    ctx.log_action("premium-request-processed", command=f"id={request_id} status={status} by={caller.email}")
    return updated, f"Premium request {status} successfully"


def update_user_premium(ctx, caller, payload, client):
    """Set a user's plan directly: ``status`` premium or anything else for free."""
    _require(caller, MANAGE_USERS, "users")
    user_id = payload.get("id")
    if not user_id:
        raise _missing("id is required")
    now_text = iso_utc(ctx.now())
    premium = payload.get("status") == "premium"
    changes = {
        "plan_type": "premium" if premium else "free",
        "premium_expires_at": payload.get("premium_expires_at") or None,
        "updated_at": now_text,
    }
    if premium and payload.get("premium_expires_at"):
        changes["premium_purchase_date"] = now_text
    updated = _first_row(ctx.client.update("profiles", [("user_id", eq(user_id))], changes))
    ctx.log_action("user-premium-update", command=f"user={user_id} plan={changes['plan_type']} by={caller.email}")
    return updated, "User premium status updated successfully"


def grant_manual_premium(ctx, caller, payload, client):
    _require(caller, MANAGE_USERS, "users")
    user_id = payload.get("user_id")
    try:
        days = int(payload.get("duration_days") or 0)
    except (TypeError, ValueError):
        days = 0
    if not user_id or days <= 0:
        raise _missing("user_id and duration_days are required")
    now = ctx.now()
    updated = _first_row(ctx.client.update(
        "profiles",
        [("user_id", eq(user_id))],
        {
            "plan_type": "premium",
            "premium_expires_at": iso_utc(now + timedelta(days=days)),
            "premium_purchase_date": iso_utc(now),
            "manual_premium_granted_by": caller.user_id,
            "manual_premium_granted_at": iso_utc(now),
            "updated_at": iso_utc(now),
        },
    ))
    _audit(ctx, caller, client, "grant_premium", user_id, duration_days=days, notes=payload.get("notes"))
    return updated, f"Manual premium access granted for {days} days"


def revoke_manual_premium(ctx, caller, payload, client):
    _require(caller, MANAGE_USERS, "users")
    user_id = payload.get("user_id")
    if not user_id:
        raise _missing("user_id is required")
    now_text = iso_utc(ctx.now())
    updated = _first_row(ctx.client.update(
        "profiles",
        [("user_id", eq(user_id))],
        {
            "plan_type": "free",
            "premium_expires_at": None,
            "premium_purchase_date": None,
            "manual_premium_revoked_by": caller.user_id,
            "manual_premium_revoked_at": now_text,
            "updated_at": now_text,
        },
    ))
    _audit(ctx, caller, client, "revoke_premium", user_id, notes=payload.get("notes"))
    return updated, "Manual premium access revoked successfully"


UPDATE_ACTIONS = {
    "process-premium-request": process_premium_request,
    "update-user-premium": update_user_premium,
    "grant-manual-premium": grant_manual_premium,
    "revoke-manual-premium": revoke_manual_premium,
}


def run_update(ctx, caller, payload, client):
    """Dispatch a PUT body by ``action``; returns ``(row, message)``."""
    payload = payload or {}
    handler = UPDATE_ACTIONS.get(payload.get("action"))
    if handler is None:
        raise ServiceError(ERROR_CODE, "Invalid request", 400)
    return handler(ctx, caller, payload, client)
