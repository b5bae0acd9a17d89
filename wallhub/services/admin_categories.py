"""Category CRUD for the admin panel."""

import re

from wallhub.core.baas_client import eq
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import iso_utc


ERROR_CODE = "ADMIN_CATEGORIES_FAILED"
LIST_SELECT = "*,wallpapers(count)"
LIST_ORDER = "sort_order.asc,name.asc"

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def slugify(name):
    """``"Sci-Fi & Space"`` -> ``"sci-fi-space"``."""
    slug = _NON_SLUG_CHARS.sub("", str(name or "").lower())
    slug = _HYPHEN_RUNS.sub("-", _WHITESPACE.sub("-", slug.strip()))
    return slug.strip("-")


def _require_id(category_id, verb):
    if not category_id:
        raise ServiceError(ERROR_CODE, f"Category ID required for {verb}", 400)


def list_categories(ctx):
    """Every category, active or not, with its wallpaper count."""
    return ctx.client.select("categories", [("select", LIST_SELECT), ("order", LIST_ORDER)])


def get_category(ctx, category_id):
    return ctx.client.first("categories", [("id", eq(category_id))])


def create_category(ctx, payload):
    payload = payload or {}
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ServiceError(ERROR_CODE, "Category name is required", 400)
    description = payload.get("description") or None
    row = {
        "name": name,
        "slug": slugify(name),
        "description": description,
        "sort_order": payload.get("sort_order") or 1,
        "is_active": payload.get("is_active") is not False,
        "name_en": payload.get("name_en") or name,
        "description_en": payload.get("description_en") or description,
        "parent_id": payload.get("parent_id") or None,
        "level": payload.get("level") or 0,
        "is_premium": bool(payload.get("is_premium")),
    }
    rows = ctx.client.insert("categories", row)
    ctx.log_action("category-create", command=f"slug={row['slug']}")
    return rows[0] if rows else row


def update_category(ctx, category_id, payload):
    """Patch a category; a new ``name`` also regenerates the slug."""
    _require_id(category_id, "update")
    changes = dict(payload or {})
    changes.pop("id", None)
    changes["updated_at"] = iso_utc(ctx.now())
    if changes.get("name"):
        changes["slug"] = slugify(changes["name"])
    rows = ctx.client.update("categories", [("id", eq(category_id))], changes)
    ctx.log_action("category-update", command=f"id={category_id} fields={','.join(sorted(changes))}")
    return rows[0] if rows else None


def delete_category(ctx, category_id):
    """Delete an empty category; one with wallpapers assigned is refused."""
    _require_id(category_id, "delete")
    assigned = ctx.client.select("wallpapers", [("category_id", eq(category_id)), ("select", "id")])
    if assigned:
        raise ServiceError(
            ERROR_CODE,
            f"Cannot delete category: {len(assigned)} wallpapers are assigned to this category",
            409,
        )
    ctx.client.delete("categories", [("id", eq(category_id))])
    ctx.log_action("category-delete", command=f"id={category_id}")
    return {"success": True}
