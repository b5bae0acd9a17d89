"""Public wallpaper browsing: listing, search, detail pages, categories and collections."""

import math

from wallhub.core.baas_client import BaasError, eq, in_list, neq
from wallhub.core.media import sanitize_search_term
from wallhub.core.response_helpers import ServiceError


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RELATED_LIMIT = 6
AI_TAGS = "{ai,ai-generated}"

CATEGORIES_CACHE_CONTROL = "public, s-maxage=600, stale-while-revalidate=1800"
COLLECTIONS_CACHE_CONTROL = "public, s-maxage=1800, stale-while-revalidate=3600"

LIST_SELECT = (
    "id,title,description,image_url,thumbnail_url,slug,is_premium,download_count,created_at,"
    "tags,aspect_ratio,device_type,width,height,live_video_url,live_poster_url,live_enabled"
)
DETAIL_SELECT = (
    "id,title,description,slug,image_url,thumbnail_url,download_url,resolution_1080p,resolution_4k,"
    "resolution_8k,asset_4k_url,asset_8k_url,show_4k,show_8k,live_video_url,live_poster_url,"
    "live_enabled,width,height,download_count,is_premium,is_mobile,device_type,tags,created_at,"
    "category_id,categories(id,name,slug)"
)
RELATED_SELECT = "id,title,slug,thumbnail_url,image_url,download_count,is_premium"

SORT_ORDERS = {
    "popular": "download_count.desc",
    "downloaded": "download_count.desc",
    "newest": "created_at.desc",
    "oldest": "created_at.asc",
    "title_asc": "title.asc",
    "title_desc": "title.desc",
    "random": "created_at.desc",
}

_PUBLISHED = [("is_published", eq(True)), ("is_active", eq(True))]


def _positive_int(value, default, maximum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if maximum is not None:
        number = min(number, maximum)
    return number


def _flag(value):
    """Boolean for JSON booleans and "true"/"false" style strings, else None."""
    if isinstance(value, bool) or value is None:
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return None


def _category_wallpaper_ids(ctx, slug):
    """Wallpaper ids linked to an active category; empty when unknown."""
    category = ctx.client.first("categories", [("select", "id"), ("slug", eq(slug)), ("is_active", eq(True))])
    if not category:
        return []
    links = ctx.client.select("wallpapers_categories", [("select", "wallpaper_id"), ("category_id", eq(category["id"]))])
    return [link["wallpaper_id"] for link in links]


def build_wallpaper_filters(ctx, params):
    """Translate listing params into REST filter pairs."""
    filters = list(_PUBLISHED)
    category = params.get("category")
    if category:
        try:
            ids = _category_wallpaper_ids(ctx, category)
        except BaasError as exc:
            ctx.log_exception("list_wallpapers/category", exc)
            ids = []
        filters.append(("id", in_list(ids)))
    if params.get("device_type"):
        filters.append(("device_type", eq(params["device_type"])))
    is_premium = _flag(params.get("is_premium"))
    if is_premium is not None:
        filters.append(("is_premium", eq(is_premium)))
    if params.get("onlyFree") is True:
        filters.append(("is_premium", eq(False)))
    if params.get("is_ai") is True:
        filters.append(("tags", f"cs.{AI_TAGS}"))
    elif params.get("is_ai") is False:
        filters.append(("tags", f"not.cs.{AI_TAGS}"))
    if params.get("video_only") is True:
        filters.append(("or", "(live_video_url.not.is.null,live_enabled.eq.true)"))
    term = sanitize_search_term(params.get("search"))
    if term:
        filters.append(("or", f"(title.ilike.*{term}*,description.ilike.*{term}*,tags.cs.{{{term}}})"))
    return filters


def list_wallpapers(ctx, params):
    """Return one page of published wallpapers with paging metadata."""
    params = params or {}
    limit = _positive_int(params.get("limit"), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    page = _positive_int(params.get("page"), 1)
    order = SORT_ORDERS.get(params.get("sort") or "popular", "created_at.desc")

    query = build_wallpaper_filters(ctx, params)
    query.extend([
        ("order", order),
        ("limit", str(limit)),
        ("offset", str((page - 1) * limit)),
        ("select", LIST_SELECT),
    ])
    try:
        wallpapers, total = ctx.client.select("wallpapers", query, count=True)
    except BaasError as exc:
        ctx.log_exception("list_wallpapers", exc)
        raise ServiceError("WALLPAPERS_FETCH_FAILED", "Failed to fetch wallpapers", 500) from exc

    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "wallpapers": wallpapers,
        "totalCount": total,
        "totalPages": total_pages,
        "currentPage": page,
        "hasMore": page < total_pages,
    }


def search_wallpapers(ctx, query, page=1, limit=DEFAULT_PAGE_SIZE):
    return list_wallpapers(ctx, {"search": query, "page": page, "limit": limit, "sort": "popular"})


def _detail_payload(wallpaper):
    category = wallpaper.get("categories")
    return {
        "id": wallpaper["id"],
        "title": wallpaper.get("title"),
        "description": wallpaper.get("description"),
        "slug": wallpaper.get("slug"),
        "image_url": wallpaper.get("image_url"),
        "thumbnail_url": wallpaper.get("thumbnail_url"),
        "download_url": wallpaper.get("download_url"),
        "resolution_1080p": wallpaper.get("resolution_1080p"),
        "resolution_4k": wallpaper.get("resolution_4k"),
        "resolution_8k": wallpaper.get("resolution_8k"),
        "asset_4k_url": wallpaper.get("asset_4k_url"),
        "asset_8k_url": wallpaper.get("asset_8k_url"),
        "show_4k": bool(wallpaper.get("show_4k")),
        "show_8k": bool(wallpaper.get("show_8k")),
        "live_video_url": wallpaper.get("live_video_url"),
        "live_poster_url": wallpaper.get("live_poster_url"),
        "live_enabled": bool(wallpaper.get("live_enabled")),
        "width": wallpaper.get("width"),
        "height": wallpaper.get("height"),
        "download_count": wallpaper.get("download_count"),
        "is_premium": wallpaper.get("is_premium"),
        "is_mobile": wallpaper.get("is_mobile"),
        "device_type": wallpaper.get("device_type"),
        "tags": wallpaper.get("tags") or [],
        "created_at": wallpaper.get("created_at"),
        "category": {"id": category.get("id"), "name": category.get("name"), "slug": category.get("slug")} if category else None,
    }


def get_wallpaper_detail(ctx, slug):
    """Return the detail payload for ``slug``.

    A renamed slug yields ``{"redirect": {"new_slug", "type"}}`` instead,
    which the route answers with 301.
    """
    if not slug:
        raise ServiceError("INVALID_REQUEST", "Wallpaper slug is required", 400)

    try:
        redirect = ctx.client.first("slug_redirects", [("old_slug", eq(slug)), ("select", "new_slug,redirect_type")])
    except BaasError as exc:
        ctx.log_exception("get_wallpaper_detail/redirect", exc)
        redirect = None
    if redirect:
        return {"redirect": {"new_slug": redirect["new_slug"], "type": redirect.get("redirect_type") or "301"}}

    try:
        wallpaper = ctx.client.first("wallpapers", [("select", DETAIL_SELECT), ("slug", eq(slug)), *_PUBLISHED])
    except BaasError as exc:
        raise ServiceError("FUNCTION_ERROR", "Failed to fetch wallpaper", 500) from exc
    if wallpaper is None:
        raise ServiceError("WALLPAPER_NOT_FOUND", "Wallpaper not found", 404)

    related = []
    if wallpaper.get("category_id"):
        try:
            related = ctx.client.select(
                "wallpapers",
                [
                    ("select", RELATED_SELECT),
                    ("category_id", eq(wallpaper["category_id"])),
                    ("id", neq(wallpaper["id"])),
                    *_PUBLISHED,
                    ("order", "download_count.desc,created_at.desc"),
                    ("limit", str(RELATED_LIMIT)),
                ],
            )
        except BaasError as exc:
            ctx.log_exception("get_wallpaper_detail/related", exc)

    return {
        "wallpaper": _detail_payload(wallpaper),
        "relatedWallpapers": [{key: item.get(key) for key in RELATED_SELECT.split(",")} for item in related],
    }


def _preview_images(ctx, categories):
    ids = [c["preview_wallpaper_id"] for c in categories if c.get("preview_wallpaper_id")]
    if not ids:
        return {}
    try:
        rows = ctx.client.select("wallpapers", [("select", "id,image_url"), ("id", in_list(ids))])
    except BaasError as exc:
        ctx.log_exception("list_categories/previews", exc)
        return {}
    return {row["id"]: row.get("image_url") for row in rows}


def _manual_category_counts(ctx):
    categories = ctx.client.select(
        "categories", [("select", "*"), ("is_active", eq(True)), ("order", "sort_order.asc,name.asc")]
    )
    visible = [*_PUBLISHED, ("visibility", eq("public"))]
    for category in categories:
        direct = ctx.client.count("wallpapers", [("category_id", eq(category["id"])), *visible])
        links = ctx.client.select("wallpapers_categories", [("select", "wallpaper_id"), ("category_id", eq(category["id"]))])
        linked = 0
        if links:
            ids = [link["wallpaper_id"] for link in links]
            linked = ctx.client.count("wallpapers", [("id", in_list(ids)), *visible])
        category["wallpaper_count"] = max(direct, linked)
    return categories


def list_categories(ctx):
    """Active categories with wallpaper counts and a preview image URL."""
    try:
        categories = ctx.client.rpc("get_categories_with_counts")
    except BaasError as exc:
        ctx.log_system("categories", f"rpc unavailable, counting manually: {exc.status}")
        try:
            categories = _manual_category_counts(ctx)
        except BaasError as fallback_exc:
            raise ServiceError("CATEGORIES_FETCH_ERROR", "Failed to fetch categories", 500) from fallback_exc
    categories = list(categories or [])
    previews = _preview_images(ctx, categories)
    for category in categories:
        category["preview_wallpaper_image_url"] = previews.get(category.get("preview_wallpaper_id"))
    return categories


def list_collections(ctx):
    try:
        return ctx.client.rpc("get_collections_with_stats") or []
    except BaasError as exc:
        raise ServiceError("COLLECTIONS_FETCH_ERROR", "Failed to fetch collections", 500) from exc
