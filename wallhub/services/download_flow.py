"""Download session issue and redemption.

A download is two requests. The first (anonymous token or prepared
download) validates the wallpaper and stores a short-lived row in
``download_sessions``. The second redeems the token: it enforces the ad
countdown for non-premium sessions, records the download, deletes the
session and hands the file back.
"""

from datetime import timedelta
import math
import uuid

from wallhub.core.action_logging import log_structured, mask_user_id
from wallhub.core.baas_client import BaasError, eq
from wallhub.core.media import (
    download_filename,
    extension_for,
    is_storage_url,
    storage_object_path,
    url_host,
    validate_video_url,
)
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import USER_TYPE_FREE, USER_TYPE_GUEST, USER_TYPE_PREMIUM, iso_utc, parse_timestamp
from wallhub.services import timer_settings


DEFAULT_RESOLUTION = "1080p"
SIGNED_URL_TTL_SECONDS = 300
STORAGE_BUCKET = "wallpapers"

_PREPARE_SELECT = (
    "id,title,slug,is_premium,is_published,is_active,download_count,image_url,download_url,"
    "width,height,asset_4k_url,asset_8k_url,show_4k,show_8k,live_video_url,live_poster_url,live_enabled"
)


def _new_session_row(ctx, wallpaper, *, user_id, resolution, download_url, is_premium_user, client, is_external):
    now = ctx.now()
    token = str(uuid.uuid4())
    expires_at = now + timedelta(seconds=ctx.settings.download_session_ttl_seconds)
    return {
        "token": token,
        "wallpaper_id": wallpaper["id"],
        "user_id": user_id,
        "resolution": resolution,
        "download_url": download_url,
        "expires_at": iso_utc(expires_at),
        "is_premium_user": bool(is_premium_user),
        "ip_address": client.get("ip") or "unknown",
        "user_agent": client.get("user_agent") or "unknown",
        "created_at": iso_utc(now),
        "is_external_url": bool(is_external),
        "target_url": download_url if is_external else None,
    }


def _fetch_wallpaper(ctx, wallpaper_id, select):
    return ctx.client.first("wallpapers", [("id", eq(wallpaper_id)), ("select", select)])


def generate_anonymous_token(ctx, wallpaper_id, client):
    """Create a guest download session for a published wallpaper."""
    if not wallpaper_id:
        raise ServiceError("TOKEN_GENERATION_FAILED", "Wallpaper ID is required", 400)
    wallpaper = _fetch_wallpaper(ctx, wallpaper_id, "id,is_premium,is_published,is_active,download_url,image_url")
    if wallpaper is None:
        raise ServiceError("TOKEN_GENERATION_FAILED", "Wallpaper not found", 404)
    if not wallpaper.get("is_published") or not wallpaper.get("is_active"):
        raise ServiceError("TOKEN_GENERATION_FAILED", "Wallpaper is not available", 500)

    row = _new_session_row(
        ctx,
        wallpaper,
        user_id=None,
        resolution=DEFAULT_RESOLUTION,
        download_url=wallpaper.get("download_url") or wallpaper.get("image_url"),
        is_premium_user=False,
        client=client,
        is_external=False,
    )
    try:
        ctx.client.insert("download_sessions", row)
    except BaasError as exc:
        ctx.log_exception("generate_anonymous_token/session", exc)
        raise ServiceError("TOKEN_GENERATION_FAILED", "Failed to create download session", 500) from exc

    ctx.log_action("anonymous-token", command=f"wallpaper={wallpaper_id}")
    return {
        "token": row["token"],
        "wallpaperId": wallpaper_id,
        "expiresAt": row["expires_at"],
        "isAnonymous": True,
    }


def resolve_target_url(wallpaper, resolution):
    """Return ``(url, is_external)`` for the requested resolution.

    Raises ServiceError when a live video is requested with a bad URL.
    """
    url = wallpaper.get("download_url") or wallpaper.get("image_url")
    if resolution == "video" and wallpaper.get("live_video_url") and wallpaper.get("live_enabled"):
        valid, _, message = validate_video_url(wallpaper["live_video_url"])
        if not valid:
            raise ServiceError("INVALID_VIDEO_URL", message or "Invalid video URL", 400)
        return wallpaper["live_video_url"], True
    if resolution == "4k" and wallpaper.get("asset_4k_url") and wallpaper.get("show_4k"):
        return wallpaper["asset_4k_url"], True
    if resolution == "8k" and wallpaper.get("asset_8k_url") and wallpaper.get("show_8k"):
        return wallpaper["asset_8k_url"], True
    return url, False


def _quota_info(ctx, user_id):
    today = ctx.now().date().isoformat()
    try:
        used = ctx.client.select(
            "daily_quotas",
            [("user_id", eq(user_id)), ("download_date", eq(today)), ("select", "id")],
        )
    except BaasError as exc:
        ctx.log_exception("prepare_download/quota", exc)
        return None
    limit = ctx.settings.free_daily_premium_limit
    return {"remaining": limit - len(used), "daily_limit": limit, "used_today": len(used)}


def prepare_download(ctx, caller, wallpaper_id, resolution, client):
    """Create a download session for any caller and describe the countdown."""
    if not wallpaper_id:
        raise ServiceError("INVALID_REQUEST", "Wallpaper ID is required", 400)
    resolution = resolution or DEFAULT_RESOLUTION

    wallpaper = _fetch_wallpaper(ctx, wallpaper_id, _PREPARE_SELECT)
    if wallpaper is None:
        raise ServiceError("WALLPAPER_NOT_FOUND", "Wallpaper not found", 404)
    if not wallpaper.get("is_published") or not wallpaper.get("is_active"):
        raise ServiceError("WALLPAPER_UNAVAILABLE", "Wallpaper is not available", 403)

    target_url, is_external = resolve_target_url(wallpaper, resolution)
    row = _new_session_row(
        ctx,
        wallpaper,
        user_id=caller.user_id,
        resolution=resolution,
        download_url=target_url,
        is_premium_user=caller.is_premium,
        client=client,
        is_external=is_external,
    )
    try:
        ctx.client.insert("download_sessions", row)
    except BaasError as exc:
        ctx.log_exception("prepare_download/session", exc)
        raise ServiceError("DOWNLOAD_PREPARATION_FAILED", "Failed to create download session", 500) from exc

    quota = None
    if caller.user_type == USER_TYPE_FREE and wallpaper.get("is_premium"):
        quota = _quota_info(ctx, caller.user_id)

    result = {
        "token": row["token"],
        "download_token": row["token"],
        "wallpaper_id": wallpaper["id"],
        "wallpaper_title": wallpaper.get("title"),
        "resolution": resolution,
        "expires_at": row["expires_at"],
        "user_type": caller.user_type,
        "is_premium_wallpaper": bool(wallpaper.get("is_premium")),
        "download_url": f"{ctx.settings.public_base_url}/functions/v1/download-file?token={row['token']}",
    }
    if caller.user_type == USER_TYPE_PREMIUM:
        result["instant_download"] = True
        result["ad_required"] = False
    else:
        result["instant_download"] = False
        result["ad_required"] = True
        result["countdown_duration"] = timer_settings.get_timer_duration(ctx, caller.user_type)
    if quota:
        result["quota"] = quota

    ctx.log_action(
        "prepare-download",
        command=f"wallpaper={wallpaper['id']} resolution={resolution} user_type={caller.user_type}",
    )
    return result


def _load_session(ctx, token):
    try:
        return ctx.client.first("download_sessions", [("token", eq(token)), ("select", "*")])
    except BaasError as exc:
        raise ServiceError("DOWNLOAD_ERROR", "Failed to verify download session", 500) from exc


def check_countdown(ctx, session, now):
    """Raise TIMER_NOT_COMPLETED while a non-premium session is still waiting."""
    if session.get("is_premium_user"):
        return
    user_type = USER_TYPE_FREE if session.get("user_id") else USER_TYPE_GUEST
    required = timer_settings.get_timer_duration(ctx, user_type)
    created_at = parse_timestamp(session.get("created_at"))
    if created_at is None:
        expires_at = parse_timestamp(session.get("expires_at"))
        created_at = expires_at - timedelta(seconds=ctx.settings.download_session_ttl_seconds) if expires_at else now
    elapsed = (now - created_at).total_seconds()
    if elapsed < required:
        remaining = math.ceil(required - elapsed)
        raise ServiceError(
            "TIMER_NOT_COMPLETED",
            f"Please wait {remaining} more seconds before downloading",
            429,
            remaining_time=remaining,
            required_time=required,
            elapsed_time=max(0, math.floor(elapsed)),
        )


def record_download(ctx, session, wallpaper, token):
    """Write the download log, quota row and counter; never raises."""
    role = "premium" if session.get("is_premium_user") else "free"
    now_text = iso_utc(ctx.now())
    log_row = {
        "user_id": session.get("user_id"),
        "wallpaper_id": session["wallpaper_id"],
        "resolution": session.get("resolution"),
        "download_type": role,
        "user_type": role,
        "ip_address": session.get("ip_address"),
        "user_agent": session.get("user_agent"),
        "download_token": token,
        "created_at": now_text,
    }
    insert_ok = True
    try:
        ctx.client.insert("downloads", log_row, returning=False)
    except BaasError as exc:
        insert_ok = False
        ctx.log_exception("record_download/insert", exc)

    if session.get("user_id") and not session.get("is_premium_user") and wallpaper.get("is_premium"):
        try:
            ctx.client.insert(
                "daily_quotas",
                {
                    "user_id": session["user_id"],
                    "wallpaper_id": session["wallpaper_id"],
                    "download_date": ctx.now().date().isoformat(),
                    "user_type": "free",
                    "created_at": now_text,
                },
                returning=False,
            )
        except BaasError as exc:
            ctx.log_exception("record_download/quota", exc)

    new_count = int(wallpaper.get("download_count") or 0) + 1
    increment_ok = True
    try:
        ctx.client.update("wallpapers", [("id", eq(session["wallpaper_id"]))], {"download_count": new_count}, returning=False)
    except BaasError as exc:
        increment_ok = False
        ctx.log_exception("record_download/increment", exc)

    log_structured(
        ctx.log_action,
        "download-tracking",
        {
            "type": "video" if session.get("resolution") == "video" else "image",
            "wallpaper_id": session["wallpaper_id"],
            "role": role,
            "is_guest": not session.get("user_id"),
            "target_url_host": url_host(session.get("target_url")),
            "resolution": session.get("resolution"),
            "user_id_hash": mask_user_id(session.get("user_id")),
            "insert_ok": insert_ok,
            "increment_ok": increment_ok,
            "final_count": new_count,
        },
    )
    return insert_ok, increment_ok


def _fallback(session, wallpaper, url, flag):
    filename = download_filename(wallpaper.get("title"), session.get("resolution"), extension_for(None, session.get("resolution")))
    data = {
        "url": url,
        "download_url": url,
        "filename": filename,
        "wallpaper_title": wallpaper.get("title"),
        "resolution": session.get("resolution"),
        "expires_in": SIGNED_URL_TTL_SECONDS,
        "content_disposition": f'attachment; filename="{filename}"',
        "mobile_optimized": True,
        flag: True,
    }
    return {"kind": "json", "data": data}


def _stream(ctx, session, wallpaper, url, range_header):
    upstream_headers = {"Range": range_header} if range_header else None
    upstream = ctx.client.open_stream(url, upstream_headers)
    content_type = upstream.headers.get("Content-Type") or "application/octet-stream"
    filename = download_filename(wallpaper.get("title"), session.get("resolution"), extension_for(content_type, session.get("resolution")))
    headers = {
        "Content-Type": content_type,
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Accept-Ranges": "bytes",
    }
    for name in ("Content-Length", "Content-Range"):
        value = upstream.headers.get(name)
        if value:
            headers[name] = value
    return {"kind": "stream", "upstream": upstream, "status": upstream.status_code, "headers": headers, "filename": filename}


def _signed_storage_url(ctx, session, wallpaper):
    if not is_storage_url(session.get("download_url")):
        return None
    image_url = wallpaper.get("image_url")
    if not image_url:
        return None
    try:
        return ctx.client.sign_storage_url(STORAGE_BUCKET, storage_object_path(image_url, STORAGE_BUCKET), SIGNED_URL_TTL_SECONDS)
    except BaasError as exc:
        ctx.log_exception("redeem_download/sign", exc)
        return None


def redeem_download(ctx, token, range_header=None):
    """Validate a download token and return how to deliver the file.

    Returns ``{"kind": "stream", ...}`` with an open upstream response, or
    ``{"kind": "json", "data": ...}`` when the file cannot be proxied.
    """
    if not token:
        raise ServiceError("INVALID_REQUEST", "Download token is required", 400)
    session = _load_session(ctx, token)
    if session is None:
        raise ServiceError("INVALID_TOKEN", "Invalid or expired download token", 404)

    now = ctx.now()
    expires_at = parse_timestamp(session.get("expires_at"))
    if expires_at is None or now > expires_at:
        raise ServiceError("TOKEN_EXPIRED", "Download token has expired", 410)
    check_countdown(ctx, session, now)

    try:
        wallpaper = _fetch_wallpaper(ctx, session["wallpaper_id"], "id,title,download_count,image_url,is_premium")
    except BaasError as exc:
        raise ServiceError("DOWNLOAD_ERROR", "Failed to load wallpaper", 500) from exc
    if wallpaper is None:
        raise ServiceError("WALLPAPER_NOT_FOUND", "Wallpaper not found", 404)

    record_download(ctx, session, wallpaper, token)
    try:
        ctx.client.delete("download_sessions", [("token", eq(token))])
    except BaasError as exc:
        ctx.log_exception("redeem_download/delete_session", exc)

    if session.get("is_external_url") and (session.get("target_url") or session.get("download_url")):
        target = session.get("target_url") or session.get("download_url")
        try:
            return _stream(ctx, session, wallpaper, target, range_header)
        except BaasError as exc:
            ctx.log_exception("redeem_download/external", exc)
            return _fallback(session, wallpaper, target, "external_fallback")

    final_url = _signed_storage_url(ctx, session, wallpaper) or session.get("download_url")
    try:
        return _stream(ctx, session, wallpaper, final_url, range_header)
    except BaasError as exc:
        ctx.log_exception("redeem_download/file", exc)
        return _fallback(session, wallpaper, final_url, "fallback_mode")
