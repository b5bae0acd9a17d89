"""Backend health probe used by uptime checks and the admin dashboard."""

from datetime import timedelta
import time

from wallhub.core.baas_client import BaasError, eq, gte
from wallhub.core.security import iso_utc


HEALTHY = "healthy"
DEGRADED = "degraded"
CRITICAL = "critical"

HTTP_STATUS_BY_HEALTH = {HEALTHY: 200, DEGRADED: 207, CRITICAL: 503}


def _ok(status):
    return 200 <= status < 300


def check_database(ctx):
    status, elapsed_ms = ctx.client.probe("/rest/v1/wallpapers?select=id&limit=1")
    if not _ok(status):
        return CRITICAL
    if elapsed_ms > 5000:
        return CRITICAL
    if elapsed_ms > 2000:
        return DEGRADED
    return HEALTHY


def _check_service(status, elapsed_ms):
    """Storage/auth rule: transport failure degrades, a hard error is critical."""
    if status == 0:
        return DEGRADED
    if not _ok(status) and status != 404:
        return CRITICAL
    if elapsed_ms > 3000:
        return DEGRADED
    return HEALTHY


def check_storage(ctx):
    return _check_service(*ctx.client.probe("/storage/v1/bucket"))


def check_auth(ctx):
    return _check_service(*ctx.client.probe("/auth/v1/settings", headers={"apikey": ctx.settings.anon_key}))


def error_rate_24h(ctx):
    since = iso_utc(ctx.now() - timedelta(hours=24))
    try:
        total = ctx.client.count("performance_logs", [("created_at", gte(since))])
        errors = ctx.client.count("error_logs", [("created_at", gte(since))])
    except BaasError as exc:
        ctx.log_exception("health/error_rate", exc)
        return 0
    return errors / total if total > 0 else 0


def active_users_1h(ctx):
    since = iso_utc(ctx.now() - timedelta(hours=1))
    try:
        events = ctx.client.select(
            "business_analytics",
            [("event_type", eq("page_view")), ("created_at", gte(since)), ("select", "user_id")],
        )
    except BaasError as exc:
        ctx.log_exception("health/active_users", exc)
        return 0
    return len({event["user_id"] for event in events if event.get("user_id")})


def active_alerts(ctx):
    try:
        alerts = ctx.client.select("performance_alerts", [("resolved_at", "is.null"), ("select", "severity")])
    except BaasError as exc:
        ctx.log_exception("health/alerts", exc)
        return {"count": 0, "critical_count": 0}
    return {"count": len(alerts), "critical_count": sum(1 for a in alerts if a.get("severity") == "critical")}


def overall_status(database, storage, auth, error_rate, response_ms, alerts):
    if CRITICAL in (database, auth) or alerts["critical_count"] > 0:
        return CRITICAL
    if (
        DEGRADED in (database, storage, auth)
        or error_rate > 0.05
        or response_ms > 3000
        or alerts["count"] > 5
    ):
        return DEGRADED
    return HEALTHY


def system_health(ctx):
    """Return ``(health_payload, http_status)``."""
    started = time.monotonic()
    database = check_database(ctx)
    storage = check_storage(ctx)
    auth = check_auth(ctx)
    error_rate = error_rate_24h(ctx)
    active_users = active_users_1h(ctx)
    alerts = active_alerts(ctx)
    response_ms = int((time.monotonic() - started) * 1000)

    status = overall_status(database, storage, auth, error_rate, response_ms, alerts)
    payload = {
        "status": status,
        "timestamp": iso_utc(ctx.now()),
        "services": {
            "database": database,
            "storage": storage,
            "edge_functions": HEALTHY,
            "auth": auth,
        },
        "metrics": {
            "response_time_ms": response_ms,
            "error_rate_24h": error_rate,
            "active_users_1h": active_users,
            "storage_usage_mb": 0,
        },
        "alerts": alerts,
    }
    if status != HEALTHY:
        ctx.log_system("health-check", f"status={status} database={database} storage={storage} auth={auth}")
    return payload, HTTP_STATUS_BY_HEALTH[status]


def failed_health(ctx, started):
    """Payload reported when the health check itself raised."""
    return {
        "status": CRITICAL,
        "timestamp": iso_utc(ctx.now()),
        "services": {"database": CRITICAL, "storage": CRITICAL, "edge_functions": CRITICAL, "auth": CRITICAL},
        "metrics": {
            "response_time_ms": int((time.monotonic() - started) * 1000),
            "error_rate_24h": 1.0,
            "active_users_1h": 0,
            "storage_usage_mb": 0,
        },
        "alerts": {"count": 1, "critical_count": 1},
    }
