"""Admin user listing and download analytics."""

from collections import Counter
from datetime import timedelta
import math

from wallhub.core.baas_client import eq, gte, in_list
from wallhub.core.security import iso_utc, parse_timestamp


AUTH_PAGE_SIZE = 1000
AUTH_MAX_PAGES = 10
DEFAULT_USERS_PER_PAGE = 50
DEFAULT_DAYS = 30
DEFAULT_TOP_LIMIT = 10


def _all_auth_users(ctx):
    users = []
    for page in range(1, AUTH_MAX_PAGES + 1):
        batch = ctx.client.list_auth_users(page, AUTH_PAGE_SIZE)
        users.extend(batch)
        if len(batch) < AUTH_PAGE_SIZE:
            break
    return users


def _default_profile(auth_user):
    return {
        "user_id": auth_user["id"],
        "email": auth_user.get("email"),
        "full_name": (auth_user.get("user_metadata") or {}).get("full_name") or "",
        "is_admin": False,
        "plan_type": "free",
        "premium_expires_at": None,
        "created_at": auth_user.get("created_at"),
        "has_video_download": False,
    }


def _created_sort_key(user):
    parsed = parse_timestamp(user.get("created_at"))
    return parsed.timestamp() if parsed else 0.0


def list_users(ctx, page=1, limit=DEFAULT_USERS_PER_PAGE):
    """Auth users joined with their profile, newest first, one page at a time."""
    auth_users = _all_auth_users(ctx)
    profiles = {p["user_id"]: p for p in ctx.client.select("profiles", [("select", "*")])}
    combined = []
    for auth_user in auth_users:
        combined.append({
            "id": auth_user["id"],
            "user_id": auth_user["id"],
            "email": auth_user.get("email"),
            "email_confirmed_at": auth_user.get("email_confirmed_at"),
            "created_at": auth_user.get("created_at"),
            "updated_at": auth_user.get("updated_at"),
            "last_sign_in_at": auth_user.get("last_sign_in_at"),
            "raw_user_meta_data": auth_user.get("raw_user_meta_data"),
            "profile": profiles.get(auth_user["id"]) or _default_profile(auth_user),
        })
    combined.sort(key=_created_sort_key, reverse=True)

    total = len(combined)
    offset = (page - 1) * limit
    return {
        "users": combined[offset:offset + limit],
        "totalCount": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def _since(ctx, days):
    return iso_utc(ctx.now() - timedelta(days=days))


def _plan_types(ctx, downloads):
    user_ids = sorted({d["user_id"] for d in downloads if d.get("user_id")})
    if not user_ids:
        return {}
    rows = ctx.client.select("profiles", [("select", "user_id,plan_type"), ("user_id", in_list(user_ids))])
    return {row["user_id"]: row.get("plan_type") for row in rows}


def _tier_of(download, plans):
    if not download.get("user_id"):
        return "guest"
    return "premium" if plans.get(download["user_id"]) == "premium" else "free"


def download_analytics(ctx, days=DEFAULT_DAYS):
    """Count downloads in the window by guest/free/premium tier."""
    downloads = ctx.client.select(
        "downloads", [("select", "id,user_id,created_at,wallpaper_id"), ("created_at", gte(_since(ctx, days)))]
    )
    plans = _plan_types(ctx, downloads)
    tiers = Counter(_tier_of(d, plans) for d in downloads)
    return {"guest": tiers["guest"], "free": tiers["free"], "premium": tiers["premium"], "total": len(downloads)}


def download_trends(ctx, days=DEFAULT_DAYS):
    downloads = ctx.client.select(
        "downloads",
        [("select", "created_at,user_id"), ("created_at", gte(_since(ctx, days))), ("order", "created_at.asc")],
    )
    plans = _plan_types(ctx, downloads)
    daily = {}
    for download in downloads:
        date = str(download.get("created_at") or "").split("T")[0]
        stats = daily.setdefault(date, {"guest": 0, "free": 0, "premium": 0, "total": 0})
        stats["total"] += 1
        stats[_tier_of(download, plans)] += 1
    return [{"date": date, **stats} for date, stats in sorted(daily.items())]


def top_downloads(ctx, days=DEFAULT_DAYS, limit=DEFAULT_TOP_LIMIT):
    """Most downloaded wallpapers in the window with their title and image."""
    downloads = ctx.client.select("downloads", [("select", "wallpaper_id"), ("created_at", gte(_since(ctx, days)))])
    counts = Counter(d["wallpaper_id"] for d in downloads)
    top_ids = [wallpaper_id for wallpaper_id, _ in counts.most_common(limit)]
    if not top_ids:
        return []
    wallpapers = ctx.client.select("wallpapers", [("select", "id,title,image_url"), ("id", in_list(top_ids))])
    result = [{"wallpaper_id": w["id"], "count": counts.get(w["id"], 0), "wallpapers": w} for w in wallpapers]
    result.sort(key=lambda item: item["count"], reverse=True)
    return result


def is_admin_profile(ctx, user_id):
    profile = ctx.client.first("profiles", [("user_id", eq(user_id)), ("select", "is_admin")])
    return bool(profile and profile.get("is_admin"))
