"""Shared Flask response helpers for the edge-function JSON envelope."""

from flask import jsonify, make_response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, range",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE, PATCH",
    "Access-Control-Max-Age": "86400",
    "Access-Control-Allow-Credentials": "false",
}

NO_STORE = "no-cache, no-store, must-revalidate"


class ServiceError(Exception):
    """Expected handler failure carrying the error envelope fields."""

    def __init__(self, code, message, status=500, **extra):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.extra = extra

    def to_payload(self):
        """Return the ``{"error": {...}}`` envelope."""
        body = {"code": self.code, "message": self.message}
        body.update(self.extra)
        return {"error": body}


def apply_cors(response):
    """Add CORS headers to a response in place."""
    for key, value in CORS_HEADERS.items():
        response.headers.setdefault(key, value)
    return response


def preflight_response():
    """Return the empty 200 answer for ``OPTIONS`` requests."""
    response = make_response("", 200)
    return apply_cors(response)


def data_response(data, status=200, cache_control=None, **extra):
    """Return ``{"data": ...}`` plus any extra top-level keys."""
    payload = {"data": data}
    payload.update(extra)
    return json_response(payload, status=status, cache_control=cache_control)


def json_response(payload, status=200, cache_control=None):
    """Return a JSON payload with CORS and optional cache headers."""
    response = make_response(jsonify(payload), status)
    if cache_control:
        response.headers["Cache-Control"] = cache_control
    return apply_cors(response)


def error_response(code, message, status=500, **extra):
    """Return the standard error envelope."""
    return service_error_response(ServiceError(code, message, status, **extra))


def service_error_response(exc):
    """Render a ``ServiceError`` as a JSON response."""
    return json_response(exc.to_payload(), status=exc.status)


def method_not_allowed_response(message=None):
    """Return the 405 envelope used by single-method functions."""
    if message is None:
        return json_response({"error": "method_not_allowed"}, status=405)
    return error_response("METHOD_NOT_ALLOWED", message, 405)


def internal_error_response():
    """Return generic internal-error response payload."""
    return error_response("INTERNAL_ERROR", "Internal server error.", 500)
