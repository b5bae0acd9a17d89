"""Request-scoped helpers shared by the edge-function routes."""

from flask import request

from wallhub.core.action_logging import get_client_ip
from wallhub.core.security import require_admin, require_user, resolve_caller


def json_body():
    """Return the request JSON object, or an empty dict when absent or invalid."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def client_info():
    """IP and user agent recorded on download sessions and audit rows."""
    return {
        "ip": get_client_ip(),
        "user_agent": request.headers.get("User-Agent") or "unknown",
    }


def query_int(name, default, minimum=1, maximum=None):
    raw = request.args.get(name)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if value < minimum:
        return default
    if maximum is not None and value > maximum:
        return maximum
    return value


def current_caller(ctx, *, strict=False):
    return resolve_caller(ctx, request.headers, strict=strict)


def current_user(ctx):
    return require_user(ctx, request.headers)


def current_admin(ctx):
    return require_admin(ctx, request.headers)
