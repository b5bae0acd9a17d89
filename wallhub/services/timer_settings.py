"""Ad-timer duration lookup with a short-lived process cache."""
import time

from wallhub.core.baas_client import BaasError


def default_timer_settings(ctx):
    return {
        "guest_timer_duration": ctx.settings.default_guest_timer_seconds,
        "logged_in_timer_duration": ctx.settings.default_logged_in_timer_seconds,
    }


def _newest_value(ctx, table, column):
    row = ctx.client.first(table, [("select", column), ("order", "created_at.desc"), ("limit", "1")])
    if not row:
        return None
    try:
        value = int(row.get(column))
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def get_timer_settings(ctx):
    """Return guest/logged-in countdown seconds, cached for the configured TTL."""
    cache = ctx.timer_cache
    ttl = ctx.settings.timer_cache_ttl_seconds
    now = time.time()
    with cache.lock:
        if cache.value is not None and ttl > 0 and (now - cache.fetched_at) < ttl:
            return dict(cache.value)

    settings = default_timer_settings(ctx)
    try:
        guest = _newest_value(ctx, "guest_ad_settings", "guest_timer_duration")
        logged_in = _newest_value(ctx, "logged_in_ad_settings", "logged_in_timer_duration")
    except BaasError as exc:
        ctx.log_exception("get_timer_settings", exc)
        # Serve defaults without caching so the next request retries.
        return settings
    if guest is not None:
        settings["guest_timer_duration"] = guest
    if logged_in is not None:
        settings["logged_in_timer_duration"] = logged_in

    with cache.lock:
        cache.value = dict(settings)
        cache.fetched_at = now
    return settings


def get_timer_duration(ctx, user_type):
    """Countdown seconds for ``guest`` / ``free``; premium users wait 0."""
    if user_type == "premium":
        return 0
    settings = get_timer_settings(ctx)
    if user_type == "guest":
        return settings["guest_timer_duration"]
    return settings["logged_in_timer_duration"]


def invalidate_timer_settings(ctx):
    """Drop cached durations so admin changes apply on the next request."""
    with ctx.timer_cache.lock:
        ctx.timer_cache.value = None
        ctx.timer_cache.fetched_at = 0.0
