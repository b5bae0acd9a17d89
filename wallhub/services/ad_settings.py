"""Ad countdown configuration for the generic, guest and logged-in ad screens."""

from wallhub.core.baas_client import BaasError, eq
from wallhub.core.media import AD_HTML_MAX_LENGTH, sanitize_ad_html
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import iso_utc
from wallhub.services.timer_settings import invalidate_timer_settings


ERROR_CODE = "AD_SETTINGS_FAILED"
CONTENT_TYPES = ("image_upload", "external_url", "html_adsense")
TIER_TIMER_RANGE = (3, 60)
COUNTDOWN_RANGE = (1, 30)

READ_ACTIONS = ("get", "get_guest", "get_logged_in")
UPDATE_ACTIONS = ("update", "update_guest", "update_logged_in")

# action suffix -> (table, column prefix, default timer)
TIER_TABLES = {
    "guest": ("guest_ad_settings", "guest", 8),
    "logged_in": ("logged_in_ad_settings", "logged_in", 5),
}


def _invalid(message):
    raise ServiceError(ERROR_CODE, message, 400)


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _newest(ctx, table, select="*"):
    return ctx.client.first(table, [("select", select), ("order", "created_at.desc"), ("limit", "1")])


def _default_generic(now_text):
    return {
        "id": 0,
        "countdown_duration": 8,
        "ad_title": "Support Us",
        "ad_description": "Please wait while we prepare your download...",
        "ad_image_url": None,
        "is_active": True,
        "created_at": now_text,
        "updated_at": now_text,
    }


def _default_tier(prefix, timer, now_text):
    return {
        "id": 0,
        f"{prefix}_ad_active": True,
        f"{prefix}_timer_duration": timer,
        f"{prefix}_ad_content_type": "image_upload",
        f"{prefix}_ad_image_url": None,
        f"{prefix}_ad_external_url": None,
        f"{prefix}_ad_html_content": None,
        f"{prefix}_ad_click_url": None,
        "created_at": now_text,
        "updated_at": now_text,
    }


def get_settings(ctx, action):
    """Newest settings row for ``get``/``get_guest``/``get_logged_in`` or defaults."""
    now_text = iso_utc(ctx.now())
    if action == "get":
        return _newest(ctx, "ad_settings") or _default_generic(now_text)
    table, prefix, timer = TIER_TABLES[action[len("get_"):]]
    return _newest(ctx, table) or _default_tier(prefix, timer, now_text)


def validate_tier_update(prefix, data):
    """Return the row to store for a guest/logged-in update."""
    timer = _as_int(data.get(f"{prefix}_timer_duration"))
    low, high = TIER_TIMER_RANGE
    if timer is None or timer < low or timer > high:
        _invalid(f"Timer duration must be between {low} and {high} seconds")
    content_type = data.get(f"{prefix}_ad_content_type")
    if content_type not in CONTENT_TYPES:
        _invalid("Invalid content type")

    html = data.get(f"{prefix}_ad_html_content")
    if content_type == "html_adsense" and html:
        html = sanitize_ad_html(html)
        if len(html) > AD_HTML_MAX_LENGTH:
            _invalid("HTML content too large (maximum 10KB)")

    return {
        f"{prefix}_ad_active": bool(data.get(f"{prefix}_ad_active")),
        f"{prefix}_timer_duration": timer,
        f"{prefix}_ad_content_type": content_type,
        f"{prefix}_ad_image_url": data.get(f"{prefix}_ad_image_url") or None,
        f"{prefix}_ad_external_url": data.get(f"{prefix}_ad_external_url") or None,
        f"{prefix}_ad_html_content": html or None,
        f"{prefix}_ad_click_url": data.get(f"{prefix}_ad_click_url") or None,
    }


def validate_generic_update(data):
    countdown = _as_int(data.get("countdown_duration"))
    low, high = COUNTDOWN_RANGE
    if countdown is None or countdown < low or countdown > high:
        _invalid(f"Countdown duration must be between {low} and {high} seconds")
    title = str(data.get("ad_title") or "").strip()
    if not title:
        _invalid("Ad title is required")
    description = str(data.get("ad_description") or "").strip()
    if not description:
        _invalid("Ad description is required")
    return {
        "countdown_duration": countdown,
        "ad_title": title,
        "ad_description": description,
        "ad_image_url": data.get("ad_image_url") or None,
        "is_active": bool(data.get("is_active")),
    }


def _upsert_newest(ctx, table, row):
    """Patch the newest row of ``table`` or insert the first one."""
    now_text = iso_utc(ctx.now())
    row = dict(row, updated_at=now_text)
    existing = _newest(ctx, table, "id")
    if existing:
        rows = ctx.client.update(table, [("id", eq(existing["id"]))], row)
    else:
        rows = ctx.client.insert(table, dict(row, created_at=now_text))
    return rows[0] if rows else row


def update_settings(ctx, caller, action, data):
    if action == "update":
        table, row = "ad_settings", validate_generic_update(data)
    else:
        table, prefix, _ = TIER_TABLES[action[len("update_"):]]
        row = validate_tier_update(prefix, data)
    try:
        saved = _upsert_newest(ctx, table, row)
    except BaasError as exc:
        raise ServiceError(ERROR_CODE, f"Failed to update {table.replace('_', ' ')}", 500) from exc
    invalidate_timer_settings(ctx)
    ctx.log_action("ad-settings", command=f"{action} by {caller.email or caller.user_id}")
    return saved


def handle_action(ctx, caller_resolver, payload):
    """Dispatch one ``ad-settings`` request body.

    ``caller_resolver`` is only invoked for updates, which need an admin.
    """
    payload = dict(payload or {})
    action = payload.pop("action", None)
    if action in READ_ACTIONS:
        try:
            return get_settings(ctx, action)
        except BaasError as exc:
            raise ServiceError(ERROR_CODE, "Failed to fetch ad settings", 500) from exc
    if action in UPDATE_ACTIONS:
        caller = caller_resolver()
        return update_settings(ctx, caller, action, payload)
    _invalid("Invalid action")
