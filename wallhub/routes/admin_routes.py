"""Admin-only routes: dashboard, categories, user manager, cache management and the actions log."""

from flask import make_response, request

from wallhub.core.baas_client import BaasError
from wallhub.core.response_helpers import (
    ServiceError,
    apply_cors,
    data_response,
    error_response,
    json_response,
    service_error_response,
)
from wallhub.core.security import bearer_token
from wallhub.services import admin_actions, admin_categories, admin_dashboard, admin_users, cache_management
from wallhub.services.request_bindings import client_info, current_admin, json_body, query_int


AUTH_MANAGER_ACTIONS = {
    "list-users": lambda ctx: admin_users.list_users(ctx, query_int("page", 1), query_int("limit", admin_users.DEFAULT_USERS_PER_PAGE)),
    "download-analytics": lambda ctx: admin_users.download_analytics(ctx, query_int("days", admin_users.DEFAULT_DAYS)),
    "download-trends": lambda ctx: admin_users.download_trends(ctx, query_int("days", admin_users.DEFAULT_DAYS)),
    "top-downloads": lambda ctx: admin_users.top_downloads(
        ctx, query_int("days", admin_users.DEFAULT_DAYS), query_int("limit", admin_users.DEFAULT_TOP_LIMIT)
    ),
}

ACTION_LOG_FILTERS = ("admin_email", "user_email", "action_type", "start_date", "end_date")


def _admin_or_error(ctx, code):
    """Return the admin caller; auth failures keep their status under ``code``."""
    try:
        return current_admin(ctx)
    except ServiceError as exc:
        raise ServiceError(code, exc.message, exc.status) from exc


def register_admin_routes(app, ctx):
    """Register admin dashboard API routes."""

    # Route: /functions/v1/admin-auth-manager
    @app.route("/functions/v1/admin-auth-manager", methods=["GET"])
    def admin_auth_manager():
        """User listing and download analytics selected by ``?action=``."""
        token = bearer_token(request.headers)
        if not token:
            return json_response({"error": "No authorization header"}, status=401)
        try:
            user = ctx.client.get_user(token)
            if user is None:
                return json_response({"error": "Invalid token"}, status=401)
            if not admin_users.is_admin_profile(ctx, user["id"]):
                ctx.log_action("admin-auth-manager", rejection_message=f"non-admin {user.get('email') or user['id']}")
                return json_response({"error": "Unauthorized: Admin access required"}, status=403)
            handler = AUTH_MANAGER_ACTIONS.get(request.args.get("action") or "")
            if handler is None:
                return json_response({"error": "Invalid action"}, status=400)
            data = handler(ctx)
        except BaasError as exc:
            ctx.log_exception("route/admin-auth-manager", exc)
            return error_response("ADMIN_OPERATION_FAILED", f"{exc.operation} failed", 500)
        return data_response(data)

    # Route: /functions/v1/admin-cache-management
    @app.route("/functions/v1/admin-cache-management", methods=["GET", "POST"])
    def admin_cache_management():
        """GET cache stats; POST warm_cache, purge_path or full_purge."""
        try:
            admin = _admin_or_error(ctx, cache_management.ERROR_CODE)
            if request.method == "GET":
                return data_response(cache_management.get_cache_stats(ctx))
            payload = json_body()
            admin_email = admin.profile.get("email") or admin.email
            result = cache_management.run_action(ctx, admin_email, payload.get("action"), payload.get("path"))
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/admin-cache-management", exc)
            return error_response(cache_management.ERROR_CODE, f"{exc.operation} failed", 500)
        return json_response(result)

    # Route: /functions/v1/admin-actions-log
    @app.route("/functions/v1/admin-actions-log", methods=["GET", "POST", "DELETE", "PUT", "PATCH"])
    def admin_actions_log():
        """List, export, summarize, record and delete admin audit entries."""
        try:
            admin = _admin_or_error(ctx, admin_actions.ERROR_CODE)
            if request.method == "GET":
                action = request.args.get("action") or "list"
                filters = {name: request.args.get(name) for name in ACTION_LOG_FILTERS}
                if action == "list":
                    listing = admin_actions.list_actions(
                        ctx,
                        filters,
                        query_int("page", 1),
                        query_int("limit", admin_actions.DEFAULT_PAGE_SIZE, maximum=admin_actions.MAX_PAGE_SIZE),
                    )
                    return json_response(listing)
                if action == "stats":
                    return data_response(admin_actions.action_stats(ctx))
                if action == "export":
                    content, filename = admin_actions.export_actions_csv(ctx, admin, filters)
                    response = make_response(content, 200)
                    response.headers["Content-Type"] = "text/csv"
                    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
                    return apply_cors(response)
                return error_response(admin_actions.ERROR_CODE, "Method not allowed", 405)

            info = client_info()
            if request.method == "POST":
                log_id = admin_actions.log_action(ctx, admin, json_body(), info["ip"], info["user_agent"])
                return json_response({"success": True, "log_id": log_id})
            if request.method == "DELETE":
                result = admin_actions.delete_action(ctx, admin, request.args.get("id"), info["ip"], info["user_agent"])
                return json_response(result)
            return error_response(admin_actions.ERROR_CODE, "Method not allowed", 405)
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/admin-actions-log", exc)
            return error_response(admin_actions.ERROR_CODE, f"{exc.operation} failed", 500)

    # Route: /functions/v1/admin-categories
    @app.route("/functions/v1/admin-categories", methods=["GET", "POST", "PUT", "DELETE"])
    def admin_categories_api():
        """Category CRUD; ``?id=`` selects one category for GET, PUT and DELETE."""
        category_id = request.args.get("id")
        try:
            _admin_or_error(ctx, admin_categories.ERROR_CODE)
            if request.method == "GET":
                if not category_id:
                    return data_response(admin_categories.list_categories(ctx))
                category = admin_categories.get_category(ctx, category_id)
                if category is None:
                    return error_response(admin_categories.ERROR_CODE, "Category not found", 404)
                return data_response(category)
            if request.method == "POST":
                return data_response(admin_categories.create_category(ctx, json_body()))
            if request.method == "PUT":
                return data_response(admin_categories.update_category(ctx, category_id, json_body()))
            return data_response(admin_categories.delete_category(ctx, category_id))
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/admin-categories", exc)
            return error_response(admin_categories.ERROR_CODE, f"{exc.operation} failed", 500)

    # Route: /functions/v1/admin-dashboard
    @app.route("/functions/v1/admin-dashboard", methods=["GET", "PUT"])
    def admin_dashboard_api():
        """GET ``?action=stats|premium-requests``; PUT premium request and plan actions."""
        try:
            admin = _admin_or_error(ctx, admin_dashboard.ERROR_CODE)
            if request.method == "PUT":
                row, message = admin_dashboard.run_update(ctx, admin, json_body(), client_info())
                return data_response(row, message=message)
            action = request.args.get("action")
            if action == "stats":
                return data_response(admin_dashboard.dashboard_stats(ctx, admin))
            if action == "premium-requests":
                return data_response(admin_dashboard.list_premium_requests(ctx))
            return error_response(admin_dashboard.ERROR_CODE, "Invalid request", 400)
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/admin-dashboard", exc)
            return error_response(admin_dashboard.ERROR_CODE, f"{exc.operation} failed", 500)
