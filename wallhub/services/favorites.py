"""Per-user favorite wallpapers."""

from wallhub.core.baas_client import BaasError, eq, in_list
from wallhub.core.response_helpers import ServiceError


FAVORITE_ACTIONS = ("add", "remove", "check")
ERROR_CODE = "FAVORITES_OPERATION_FAILED"


def _fail(message, exc=None):
    error = ServiceError(ERROR_CODE, message, 500)
    if exc is not None:
        raise error from exc
    raise error


def parse_wallpaper_id(value):
    """Return ``value`` as an int or raise the favorites error."""
    if isinstance(value, bool):
        _fail("Invalid wallpaper_id. Must be a number")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        _fail("Invalid wallpaper_id. Must be a number")


def manage_favorite(ctx, caller, action, wallpaper_id):
    """Run ``add``, ``remove`` or ``check`` and return ``(message, data)``."""
    if not action or wallpaper_id in (None, ""):
        _fail("Missing required parameters: action and wallpaper_id")
    if action not in FAVORITE_ACTIONS:
        _fail('Invalid action. Must be "add", "remove", or "check"')
    wallpaper_id = parse_wallpaper_id(wallpaper_id)
    user_filter = [("user_id", eq(caller.user_id)), ("wallpaper_id", eq(wallpaper_id))]

    if action == "add":
        try:
            inserted = ctx.client.insert(
                "favorites", {"user_id": caller.user_id, "wallpaper_id": wallpaper_id}, upsert=True
            )
        except BaasError as exc:
            if exc.is_conflict:
                return "Already in favorites", {"already_exists": True}
            _fail(f"Failed to add favorite: {exc.body}", exc)
        ctx.log_action("favorite-add", command=f"wallpaper={wallpaper_id}")
        return "Added to favorites successfully", inserted

    if action == "remove":
        try:
            removed = ctx.client.delete("favorites", user_filter, returning=True)
        except BaasError as exc:
            _fail(f"Failed to remove favorite: {exc.body}", exc)
        ctx.log_action("favorite-remove", command=f"wallpaper={wallpaper_id}")
        return "Removed from favorites successfully", {"removed_count": len(removed or [])}

    try:
        mine = ctx.client.select("favorites", [*user_filter, ("select", "id")])
        like_count = ctx.client.count("favorites", [("wallpaper_id", eq(wallpaper_id))])
    except BaasError as exc:
        _fail("Failed to check favorite status", exc)
    return "Favorite status checked successfully", {"is_favorite": bool(mine), "like_count": like_count}


def list_favorites(ctx, caller):
    """The caller's favorited wallpapers, most recently added first."""
    try:
        rows = ctx.client.select(
            "favorites",
            [("user_id", eq(caller.user_id)), ("select", "wallpaper_id,created_at"), ("order", "created_at.desc")],
        )
        ids = [row["wallpaper_id"] for row in rows]
        if not ids:
            return []
        wallpapers = ctx.client.select(
            "wallpapers",
            [
                ("id", in_list(ids)),
                ("select", "id,title,slug,image_url,thumbnail_url,is_premium,download_count"),
            ],
        )
    except BaasError as exc:
        _fail("Failed to load favorites", exc)
    by_id = {wallpaper["id"]: wallpaper for wallpaper in wallpapers}
    return [dict(by_id[row["wallpaper_id"]], favorited_at=row.get("created_at")) for row in rows if row["wallpaper_id"] in by_id]
