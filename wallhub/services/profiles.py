"""Account profile and premium membership requests."""

from wallhub.core.baas_client import BaasError, eq
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import is_premium_active, iso_utc, role_display


PREMIUM_REQUEST_MESSAGE = "Premium request submitted successfully. You will be notified once processed."


def _profile_error(message, exc=None):
    error = ServiceError("PROFILE_ERROR", message, 500)
    if exc is not None:
        raise error from exc
    raise error


def _request_error(message, exc=None):
    error = ServiceError("PREMIUM_REQUEST_FAILED", message, 500)
    if exc is not None:
        raise error from exc
    raise error


def _create_profile(ctx, user):
    metadata = user.get("user_metadata") or {}
    rows = ctx.client.insert(
        "profiles",
        {
            "user_id": user["id"],
            "email": user.get("email"),
            "full_name": metadata.get("full_name") or "",
            "plan_type": "free",
            "is_admin": False,
        },
    )
    ctx.log_action("profile-create", command=f"user={user['id']}")
    return rows[0] if rows else {}


def get_profile(ctx, user):
    """Return the caller's profile, creating a free one on first access."""
    try:
        profile = ctx.client.first("profiles", [("user_id", eq(user["id"]))])
        if profile is None:
            profile = _create_profile(ctx, user)
    except BaasError as exc:
        _profile_error("Failed to get user profile", exc)

    premium_active = is_premium_active(profile, ctx.now())
    return {
        **profile,
        "email": user.get("email"),
        "is_premium_active": premium_active,
        "role_display": role_display(profile, premium_active),
        "is_admin_user": profile.get("is_admin"),
        "admin_level": profile.get("admin_role") or ("admin" if profile.get("is_admin") else None),
    }


def update_profile(ctx, user, full_name):
    try:
        rows = ctx.client.update(
            "profiles",
            [("user_id", eq(user["id"]))],
            {"full_name": full_name, "updated_at": iso_utc(ctx.now())},
        )
    except BaasError as exc:
        _profile_error("Failed to update profile", exc)
    profile = rows[0] if rows else {}
    return {**profile, "email": user.get("email")}


def create_premium_request(ctx, user, payload):
    """Queue a premium membership request for admin review."""
    payload = payload or {}
    now_text = iso_utc(ctx.now())
    row = {
        "user_id": user["id"],
        "email": payload.get("email") or "",
        "full_name": payload.get("full_name") or "",
        "plan_type": payload.get("plan_type") or "premium",
        "duration_months": payload.get("duration_months") or 1,
        "payment_method": payload.get("payment_method") or "",
        "amount_paid": payload.get("amount_paid") or 0,
        "payment_proof_url": payload.get("payment_proof_url") or None,
        "status": "pending",
        "created_at": now_text,
        "updated_at": now_text,
    }
    try:
        rows = ctx.client.insert("premium_membership_requests", row)
    except BaasError as exc:
        _request_error(f"Failed to create premium request: {exc.body}", exc)
    ctx.log_action("premium-request", command=f"user={user['id']} plan={row['plan_type']} months={row['duration_months']}")
    return rows[0] if rows else row


def list_premium_requests(ctx, user):
    try:
        return ctx.client.select(
            "premium_membership_requests", [("user_id", eq(user["id"])), ("order", "created_at.desc")]
        )
    except BaasError as exc:
        _request_error("Failed to fetch premium requests", exc)
