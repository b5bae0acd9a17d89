"""Audit trail of admin actions: listing, stats, CSV export, logging and deletion."""

import csv
from datetime import timedelta
import io
import json
import math

from wallhub.core.baas_client import BaasError, eq, gte, lte
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import iso_utc, parse_timestamp


ERROR_CODE = "ADMIN_ACTIONS_LOG_ERROR"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500
EXPORT_LIMIT = 10000
CSV_HEADERS = ["ID", "Admin Email", "User Email", "Action Type", "Duration (Days)", "Notes", "Timestamp", "Action Details"]


def build_action_filters(filters):
    """REST filter pairs for the admin_email/user_email/action_type/date filters."""
    query = []
    if filters.get("admin_email"):
        query.append(("admin_email", f"ilike.%{filters['admin_email']}%"))
    if filters.get("user_email"):
        query.append(("user_email", f"ilike.%{filters['user_email']}%"))
    action_type = filters.get("action_type")
    if action_type and action_type != "all":
        query.append(("action_type", eq(action_type)))
    if filters.get("start_date"):
        query.append(("timestamp", gte(f"{filters['start_date']}T00:00:00Z")))
    if filters.get("end_date"):
        query.append(("timestamp", lte(f"{filters['end_date']}T23:59:59Z")))
    return query


def list_actions(ctx, filters, page=1, limit=DEFAULT_PAGE_SIZE):
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    query = build_action_filters(filters)
    rows, total = ctx.client.select(
        "admin_actions_log",
        [
            ("select", "*"),
            *query,
            ("order", "timestamp.desc"),
            ("limit", str(limit)),
            ("offset", str((page - 1) * limit)),
        ],
        count=True,
    )
    return {
        "data": rows,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


def action_stats(ctx):
    """Totals per action type and how many happened in the last 30 days."""
    rows = ctx.client.select("admin_actions_log", [("select", "action_type,timestamp")])
    cutoff = ctx.now() - timedelta(days=30)
    by_action = {}
    recent = 0
    for row in rows:
        by_action[row.get("action_type")] = by_action.get(row.get("action_type"), 0) + 1
        stamp = parse_timestamp(row.get("timestamp"))
        if stamp and stamp > cutoff:
            recent += 1
    return {"total": len(rows), "by_action": by_action, "recent_30_days": recent}


def export_actions_csv(ctx, admin, filters):
    """Render matching log rows as CSV; super admins only."""
    if not admin.is_super_admin:
        raise ServiceError(ERROR_CODE, "Method not allowed", 405)
    rows = ctx.client.select(
        "admin_actions_log",
        [("select", "*"), *build_action_filters(filters), ("order", "timestamp.desc"), ("limit", str(EXPORT_LIMIT))],
    )
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        stamp = parse_timestamp(row.get("timestamp"))
        writer.writerow([
            row.get("id"),
            row.get("admin_email") or "",
            row.get("user_email") or "",
            row.get("action_type"),
            row.get("duration_days") or "",
            row.get("notes") or "",
            iso_utc(stamp) if stamp else "",
            json.dumps(row.get("action_details") or {}),
        ])
    filename = f"admin-actions-log-{ctx.now().date().isoformat()}.csv"
    return buffer.getvalue(), filename


def log_action(ctx, admin, payload, client_ip, user_agent):
    """Record one admin action through the ``log_admin_action`` RPC."""
    payload = payload or {}
    if not payload.get("action_type"):
        raise ServiceError(ERROR_CODE, "action_type is required", 400)
    log_id = ctx.client.rpc(
        "log_admin_action",
        {
            "p_admin_id": admin.user_id,
            "p_admin_email": admin.email,
            "p_user_id": payload.get("user_id"),
            "p_user_email": payload.get("user_email"),
            "p_action_type": payload["action_type"],
            "p_action_details": payload.get("action_details") or {},
            "p_duration_days": payload.get("duration_days"),
            "p_notes": payload.get("notes"),
            "p_ip_address": client_ip or "unknown",
            "p_user_agent": user_agent or "unknown",
        },
    )
    ctx.log_action("admin-action", command=f"{payload['action_type']} by {admin.email}")
    return log_id


def delete_action(ctx, admin, log_id, client_ip, user_agent):
    if not admin.is_super_admin:
        raise ServiceError(ERROR_CODE, "Method not allowed", 405)
    if not log_id:
        raise ServiceError(ERROR_CODE, "Log ID is required", 400)
    ctx.client.delete("admin_actions_log", [("id", eq(log_id))])
    try:
        log_action(
            ctx,
            admin,
            {
                "action_type": "log_entry_deleted",
                "action_details": {"deleted_log_id": log_id},
                "notes": f"Deleted admin action log entry #{log_id}",
            },
            client_ip,
            user_agent,
        )
    except BaasError as exc:
        ctx.log_exception("delete_action/audit", exc)
    return {"success": True, "message": "Admin action log entry deleted successfully"}
