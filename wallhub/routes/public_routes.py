"""Public catalog, monitoring and health routes."""
import time

from flask import request

from wallhub.core.baas_client import BaasError
from wallhub.core.response_helpers import (
    ServiceError,
    data_response,
    error_response,
    json_response,
    method_not_allowed_response,
    service_error_response,
)
from wallhub.services import catalog, health, performance_monitor
from wallhub.services.request_bindings import json_body


ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def register_public_routes(app, ctx):
    """Register browse, detail, taxonomy, monitoring and health routes."""

    # Route: /functions/v1/wallpapers-api
    @app.route("/functions/v1/wallpapers-api", methods=ALL_METHODS)
    def wallpapers_api():
        """Filtered, sorted and paginated wallpaper listing."""
        if request.method != "POST":
            return method_not_allowed_response()
        try:
            data = catalog.list_wallpapers(ctx, json_body())
        except ServiceError as exc:
            return json_response({"success": False, **exc.to_payload()}, status=exc.status)
        return data_response(data, success=True)

    # Route: /functions/v1/wallpaper-detail
    @app.route("/functions/v1/wallpaper-detail", methods=["POST"])
    def wallpaper_detail():
        """Single wallpaper by slug with related wallpapers."""
        try:
            data = catalog.get_wallpaper_detail(ctx, json_body().get("slug"))
        except ServiceError as exc:
            return service_error_response(exc)
        if "redirect" in data:
            return json_response(data, status=301)
        return data_response(data)

    # Route: /functions/v1/categories-api
    @app.route("/functions/v1/categories-api", methods=["GET"])
    def categories_api():
        try:
            data = catalog.list_categories(ctx)
        except ServiceError as exc:
            return service_error_response(exc)
        return data_response(data, cache_control=catalog.CATEGORIES_CACHE_CONTROL)

    # Route: /functions/v1/collections-api
    @app.route("/functions/v1/collections-api", methods=["GET"])
    def collections_api():
        try:
            data = catalog.list_collections(ctx)
        except ServiceError as exc:
            return service_error_response(exc)
        return data_response(data, cache_control=catalog.COLLECTIONS_CACHE_CONTROL)

    # Route: /functions/v1/performance-monitor
    @app.route("/functions/v1/performance-monitor", methods=ALL_METHODS)
    def performance_monitor_api():
        """Recent performance logs and cache invalidations summary."""
        if request.method != "GET":
            return method_not_allowed_response("Only GET method is supported")
        try:
            summary = performance_monitor.performance_summary(ctx)
        except BaasError as exc:
            ctx.log_exception("route/performance-monitor", exc)
            return error_response("PERFORMANCE_MONITOR_ERROR", "An unexpected error occurred", 500)
        return json_response(summary)

    # Route: /functions/v1/health-check
    @app.route("/functions/v1/health-check", methods=["GET"])
    def health_check():
        """Probe database, storage and auth; 200 healthy, 207 degraded, 503 critical."""
        started = time.monotonic()
        if not ctx.settings.is_configured():
            return data_response(
                health.failed_health(ctx, started),
                status=503,
                error={"code": "HEALTH_CHECK_FAILED", "message": "Backend configuration missing"},
            )
        try:
            payload, status = health.system_health(ctx)
        except Exception as exc:
            ctx.log_exception("route/health-check", exc)
            return data_response(
                health.failed_health(ctx, started),
                status=503,
                error={"code": "HEALTH_CHECK_FAILED", "message": "System health check failed"},
            )
        return data_response(payload, status=status)
