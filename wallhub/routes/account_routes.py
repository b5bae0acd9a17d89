"""Signed-in user routes: favorites, profile, premium requests and ad settings."""

from flask import request

from wallhub.core.response_helpers import (
    ServiceError,
    data_response,
    json_response,
    method_not_allowed_response,
    service_error_response,
)
from wallhub.services import ad_settings, favorites, profiles
from wallhub.services.request_bindings import current_admin, current_user, json_body


def _as_code(exc, code):
    """Re-label an auth failure with the endpoint's error code, keeping its status."""
    return ServiceError(code, exc.message, exc.status, **exc.extra)


def _admin_as(ctx, code):
    try:
        return current_admin(ctx)
    except ServiceError as exc:
        raise _as_code(exc, code) from exc


def _favorites_failure(exc):
    return json_response(
        {"success": False, "error": {"code": favorites.ERROR_CODE, "message": exc.message}},
        status=500,
    )


def register_account_routes(app, ctx):
    """Register routes that act on the calling user's own records."""

    # Route: /functions/v1/manage-favorites
    @app.route("/functions/v1/manage-favorites", methods=["GET", "POST"])
    def manage_favorites():
        """POST add/remove/check one favorite; GET lists the caller's favorites."""
        try:
            caller = current_user(ctx)
            if request.method == "GET":
                return json_response({"success": True, "data": favorites.list_favorites(ctx, caller)})
            payload = json_body()
            message, data = favorites.manage_favorite(ctx, caller, payload.get("action"), payload.get("wallpaper_id"))
        except ServiceError as exc:
            return _favorites_failure(exc)
        return json_response({"success": True, "message": message, "data": data})

    # Route: /functions/v1/user-profile
    @app.route("/functions/v1/user-profile", methods=["GET", "PATCH", "PUT"])
    def user_profile():
        try:
            try:
                caller = current_user(ctx)
            except ServiceError as exc:
                raise _as_code(exc, "PROFILE_ERROR")
            if request.method == "GET":
                data = profiles.get_profile(ctx, caller.user)
            else:
                data = profiles.update_profile(ctx, caller.user, json_body().get("full_name"))
        except ServiceError as exc:
            return service_error_response(exc)
        return data_response(data)

    # Route: /functions/v1/premium-request
    @app.route("/functions/v1/premium-request", methods=["GET", "POST"])
    def premium_request():
        """Submit or list premium membership requests."""
        try:
            try:
                caller = current_user(ctx)
            except ServiceError as exc:
                raise _as_code(exc, "PREMIUM_REQUEST_FAILED")
            if request.method == "GET":
                return data_response(profiles.list_premium_requests(ctx, caller.user))
            record = profiles.create_premium_request(ctx, caller.user, json_body())
        except ServiceError as exc:
            return service_error_response(exc)
        return data_response(record, message=profiles.PREMIUM_REQUEST_MESSAGE)

    # Route: /functions/v1/ad-settings
    @app.route("/functions/v1/ad-settings", methods=["GET", "POST"])
    def ad_settings_api():
        """Read ad screen settings; updates need an admin."""
        if request.method != "POST":
            return method_not_allowed_response("Method not allowed")
        try:
            data = ad_settings.handle_action(ctx, lambda: _admin_as(ctx, ad_settings.ERROR_CODE), json_body())
        except ServiceError as exc:
            return service_error_response(exc)
        return data_response(data)
