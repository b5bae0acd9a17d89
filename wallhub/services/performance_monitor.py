"""Summary of recent performance logs and cache invalidations."""

from wallhub.core.baas_client import BaasError


SAMPLE_SIZE = 10
ASSUMED_CACHE_HIT_RATE = 0.85


def _recent(ctx, table):
    try:
        return ctx.client.select(table, [("select", "*"), ("order", "created_at.desc"), ("limit", str(SAMPLE_SIZE))])
    except BaasError as exc:
        ctx.log_exception(f"performance_monitor/{table}", exc)
        return []


def performance_summary(ctx):
    logs = _recent(ctx, "performance_logs")
    invalidations = _recent(ctx, "cache_invalidations")

    total = len(logs)
    avg_response = sum(log.get("execution_time_ms") or 0 for log in logs) / total if total else 0
    errors = sum(1 for log in logs if log.get("rating") == "error")
    return {
        "totalLogs": total,
        "avgResponseTime": avg_response,
        "errorRate": errors / total if total else 0,
        "cacheHitRate": ASSUMED_CACHE_HIT_RATE,
        "pendingInvalidations": sum(1 for inv in invalidations if not inv.get("processed")),
        "totalInvalidations": len(invalidations),
        "recentLogs": [
            {
                "id": log.get("id"),
                "endpoint": log.get("query_type") or log.get("url") or "Unknown",
                "response_time": log.get("execution_time_ms") or 0,
                "status_code": 200,
                "error_message": "Error occurred" if log.get("rating") == "error" else None,
                "created_at": log.get("created_at"),
            }
            for log in logs
        ],
        "recentInvalidations": [
            {
                "id": str(inv.get("id")),
                "cache_key": inv.get("path"),
                "reason": inv.get("invalidation_type"),
                "status": "processed" if inv.get("processed") else "pending",
                "created_at": inv.get("created_at"),
            }
            for inv in invalidations
        ],
    }
