"""CDN cache invalidation records and cache health summary for admins."""

from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import iso_utc


ERROR_CODE = "CACHE_MANAGEMENT_FAILED"
WARM_PATHS = ("/", "/categories", "/collections", "/premium")
FULL_PURGE_PATH = "/*"
RECENT_INVALIDATIONS = 10

DEFAULT_AVG_RESPONSE_MS = 200
DEFAULT_CACHE_HIT_RATE = 0.85
DEFAULT_ERROR_RATE = 0.02


def _performance_block(ctx, logs):
    avg_response = DEFAULT_AVG_RESPONSE_MS
    hit_rate = DEFAULT_CACHE_HIT_RATE
    error_rate = DEFAULT_ERROR_RATE
    if logs:
        times = [log["response_time"] for log in logs if (log.get("response_time") or 0) > 0]
        if times:
            avg_response = round(sum(times) / len(times))
        messages = [str(log.get("log_message") or "").lower() for log in logs]
        hits = sum(1 for message in messages if "cache hit" in message)
        misses = sum(1 for message in messages if "cache miss" in message)
        if hits + misses:
            hit_rate = hits / (hits + misses)
        errors = sum(1 for log in logs if str(log.get("log_level") or "").lower() == "error")
        error_rate = errors / len(logs)
    return {
        "totalLogs": len(logs),
        "avgResponseTime": avg_response,
        "errorRate": round(error_rate * 100, 2),
        "cacheHitRate": round(hit_rate, 2),
        "lastUpdate": iso_utc(ctx.now()),
    }


def get_cache_stats(ctx):
    """Counts of recent invalidations plus a performance summary."""
    invalidations = ctx.client.select(
        "cache_invalidations", [("select", "*"), ("order", "created_at.desc"), ("limit", "50")]
    )
    logs = ctx.client.select("performance_logs", [("select", "*"), ("order", "created_at.desc"), ("limit", "100")])
    processed = sum(1 for item in invalidations if item.get("processed"))
    return {
        "pending": len(invalidations) - processed,
        "processed": processed,
        "total": len(invalidations),
        "recent": [
            {
                "path": item.get("path") or "",
                "invalidation_type": item.get("invalidation_type") or "",
                "processed": bool(item.get("processed")),
                "created_at": item.get("created_at") or "",
            }
            for item in invalidations[:RECENT_INVALIDATIONS]
        ],
        "performance": _performance_block(ctx, logs),
    }


def _record(ctx, admin_email, path, invalidation_type):
    ctx.client.insert(
        "cache_invalidations",
        {
            "path": path,
            "invalidation_type": invalidation_type,
            "processed": True,
            "processed_at": iso_utc(ctx.now()),
            "admin_email": admin_email,
        },
        returning=False,
    )
    ctx.log_action("cache-invalidation", command=f"{invalidation_type} {path} by {admin_email}")


def warm_cache(ctx, admin_email):
    for path in WARM_PATHS:
        _record(ctx, admin_email, path, "warm_cache")
    return {"message": f"Cache warmed for {len(WARM_PATHS)} paths", "paths": list(WARM_PATHS)}


def purge_path(ctx, admin_email, path):
    _record(ctx, admin_email, path, "manual_purge_path")
    return {"message": f"Cache purged for path: {path}"}


def full_purge(ctx, admin_email):
    _record(ctx, admin_email, FULL_PURGE_PATH, "manual_full_purge")
    return {"message": "Full cache purge completed"}


def run_action(ctx, admin_email, action, path=None):
    """Dispatch a POSTed cache action."""
    if action == "warm_cache":
        return warm_cache(ctx, admin_email)
    if action == "purge_path" and path:
        return purge_path(ctx, admin_email, path)
    if action == "full_purge":
        return full_purge(ctx, admin_email)
    raise ServiceError(ERROR_CODE, "Invalid action specified", 500)
