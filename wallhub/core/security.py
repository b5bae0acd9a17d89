"""Caller identity, premium status and admin checks."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from wallhub.core.baas_client import BaasError, eq
from wallhub.core.response_helpers import ServiceError


USER_TYPE_GUEST = "guest"
USER_TYPE_FREE = "free"
USER_TYPE_PREMIUM = "premium"


@dataclass
class Caller:
    """Resolved identity of the request's bearer token."""
    user_id: Any = None
    email: str = ""
    user_type: str = USER_TYPE_GUEST
    is_premium: bool = False
    is_admin: bool = False
    admin_role: str = ""
    user: dict = field(default_factory=dict)
    profile: dict = field(default_factory=dict)

    @property
    def is_guest(self):
        return self.user_id is None

    @property
    def is_super_admin(self):
        return self.is_admin and self.admin_role == "super_admin"

    def has_permission(self, name):
        """Super admins hold every permission; others need it in ``admin_permissions``."""
        if self.is_super_admin:
            return True
        if not self.is_admin:
            return False
        granted = self.profile.get("admin_permissions") or {}
        if isinstance(granted, dict):
            return granted.get(name) is True
        return name in granted


def bearer_token(headers):
    """Return the token after ``Bearer `` or an empty string."""
    raw = (headers.get("Authorization") or "").strip()
    if not raw:
        return ""
    if raw.lower().startswith("bearer "):
        return raw[7:].strip()
    return raw


def parse_timestamp(value):
    """Parse an ISO-8601 timestamp into an aware datetime, or None."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def iso_utc(moment):
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def is_premium_active(profile, now=None):
    """Return True when the profile carries an unexpired premium plan."""
    if not profile:
        return False
    now = now or datetime.now(tz=timezone.utc)
    if profile.get("subscription_tier") == "premium" and profile.get("subscription_status") == "active":
        return True
    if profile.get("plan_type") != "premium":
        return False
    expires_at = parse_timestamp(profile.get("premium_expires_at"))
    return expires_at is None or expires_at > now


def role_display(profile, premium_active):
    """Human readable role label shown on the account page."""
    if profile.get("is_admin"):
        label = "Super Admin" if profile.get("admin_role") == "super_admin" else "Admin"
        if premium_active:
            label += "/Premium"
        return label
    return "Premium" if premium_active else "Free"


def _load_profile(ctx, user_id):
    return ctx.client.first(
        "profiles",
        [
            ("user_id", eq(user_id)),
            ("select", "user_id,email,plan_type,premium_expires_at,subscription_tier,subscription_status,is_admin,admin_role,admin_permissions"),
        ],
    ) or {}


def resolve_caller(ctx, headers, *, strict=False):
    """Resolve the caller behind the Authorization header.

    Missing or rejected tokens resolve to a guest unless ``strict`` is set,
    in which case a rejected token raises.
    """
    token = bearer_token(headers)
    if not token or token == ctx.settings.anon_key:
        return Caller()
    try:
        user = ctx.client.get_user(token)
    except BaasError as exc:
        if strict:
            raise
        ctx.log_exception("resolve_caller", exc)
        return Caller()
    if user is None:
        if strict:
            raise ServiceError("UNAUTHORIZED", "Invalid authentication token", 401)
        return Caller()

    caller = Caller(user_id=user["id"], email=user.get("email") or "", user_type=USER_TYPE_FREE, user=user)
    try:
        profile = _load_profile(ctx, caller.user_id)
    except BaasError as exc:
        if strict:
            raise
        ctx.log_exception("resolve_caller/profile", exc)
        profile = {}
    caller.profile = profile
    caller.is_premium = is_premium_active(profile)
    caller.is_admin = profile.get("is_admin") is True
    caller.admin_role = profile.get("admin_role") or ("admin" if caller.is_admin else "")
    if caller.is_premium or caller.is_admin:
        caller.user_type = USER_TYPE_PREMIUM
    return caller


def require_user(ctx, headers):
    """Return the authenticated caller.

    Raises ServiceError: 401 without a usable token, 500 when the auth or
    profile lookup itself fails.
    """
    if not bearer_token(headers):
        raise ServiceError("UNAUTHORIZED", "Authentication required", 401)
    try:
        caller = resolve_caller(ctx, headers, strict=True)
    except BaasError as exc:
        ctx.log_exception("require_user", exc)
        raise ServiceError("AUTH_FAILED", "Authentication failed", 500) from exc
    if caller.is_guest:
        raise ServiceError("UNAUTHORIZED", "Authentication required", 401)
    return caller


def require_admin(ctx, headers):
    """Return the caller when it is an admin, else raise 401/403."""
    caller = require_user(ctx, headers)
    if not caller.is_admin:
        raise ServiceError("FORBIDDEN", "Admin access required", 403)
    return caller
