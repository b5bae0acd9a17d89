"""Flask lifecycle hook and startup runner composition helpers."""
from flask import has_request_context, request
from werkzeug.exceptions import HTTPException

from wallhub.core.response_helpers import (
    apply_cors,
    error_response,
    internal_error_response,
    method_not_allowed_response,
    preflight_response,
)
from wallhub.services import bootstrap


HEALTH_CHECK_PATH = "/functions/v1/health-check"


def install_flask_hooks(app, *, settings, log_action, log_exception):
    """Install CORS, preflight, configuration and error hooks on ``app``."""

    @app.before_request
    def _answer_preflight():
        if request.method == "OPTIONS":
            return preflight_response()
        # Health check reports its own 503 when unconfigured.
        if not settings.is_configured() and request.path != HEALTH_CHECK_PATH:
            log_action("reject", command=request.path, rejection_message="backend not configured")
            return error_response("CONFIGURATION_ERROR", "Supabase configuration missing", 500)
        return None

    @app.after_request
    def _add_cors_headers(response):
        return apply_cors(response)

    @app.errorhandler(HTTPException)
    def _http_exception_handler(exc):
        if exc.code == 404:
            return error_response("NOT_FOUND", "Function not found", 404)
        if exc.code == 405:
            log_action("reject", command=f"{request.method} {request.path}", rejection_message="method not allowed")
            return method_not_allowed_response("Method not allowed")
        return error_response("REQUEST_FAILED", exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def _unhandled_exception_handler(exc):
        path = request.path if has_request_context() else "unknown-path"
        log_exception(f"unhandled_exception path={path}", exc)
        return internal_error_response()


def build_run_server(*, app, settings, log_system, log_exception, boot_steps=None):
    """Return a no-argument runner that boots and serves ``app``."""
    steps = boot_steps if boot_steps is not None else bootstrap.default_boot_steps(settings, log_system)

    def run_server():
        bootstrap.serve(app, settings, log_system, log_exception, steps)

    return run_server
