import unittest
from datetime import datetime, timedelta, timezone

from wallhub.core.baas_client import BaasError
from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import (
    USER_TYPE_FREE,
    USER_TYPE_PREMIUM,
    bearer_token,
    is_premium_active,
    iso_utc,
    require_admin,
    require_user,
    resolve_caller,
    role_display,
)

from fakes import FakeClient, make_ctx


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class PremiumStatusTests(unittest.TestCase):
    def test_plan_with_future_expiry_is_active(self):
        profile = {"plan_type": "premium", "premium_expires_at": iso_utc(NOW + timedelta(days=3))}
        self.assertTrue(is_premium_active(profile, NOW))

    def test_expired_plan_is_not_active(self):
        profile = {"plan_type": "premium", "premium_expires_at": "2025-12-31T00:00:00Z"}
        self.assertFalse(is_premium_active(profile, NOW))

    def test_active_subscription_counts_as_premium(self):
        self.assertTrue(is_premium_active({"subscription_tier": "premium", "subscription_status": "active"}, NOW))
        self.assertFalse(is_premium_active({}, NOW))

    def test_role_display(self):
        self.assertEqual(role_display({"is_admin": True, "admin_role": "super_admin"}, True), "Super Admin/Premium")
        self.assertEqual(role_display({"is_admin": True}, False), "Admin")
        self.assertEqual(role_display({}, True), "Premium")
        self.assertEqual(role_display({}, False), "Free")

    def test_iso_utc_has_millisecond_precision(self):
        moment = datetime(2026, 1, 15, 12, 0, 5, 123456, tzinfo=timezone.utc)
        self.assertEqual(iso_utc(moment), "2026-01-15T12:00:05.123Z")


class CallerResolutionTests(unittest.TestCase):
    def _ctx(self, profile=None):
        client = FakeClient(
            tables={"profiles": [profile] if profile else []},
            users={"user-token": {"id": "u1", "email": "a@example.com"}},
        )
        return make_ctx(client)

    def test_bearer_token(self):
        self.assertEqual(bearer_token({"Authorization": "Bearer abc"}), "abc")
        self.assertEqual(bearer_token({}), "")

    def test_missing_or_anon_token_is_guest(self):
        ctx = self._ctx()
        self.assertTrue(resolve_caller(ctx, {}).is_guest)
        self.assertTrue(resolve_caller(ctx, {"Authorization": "Bearer anon-key"}).is_guest)
        self.assertEqual(ctx.client.calls, [])

    def test_rejected_token_is_guest_unless_strict(self):
        ctx = self._ctx()
        headers = {"Authorization": "Bearer stale-token"}
        self.assertTrue(resolve_caller(ctx, headers).is_guest)
        with self.assertRaises(ServiceError) as caught:
            resolve_caller(ctx, headers, strict=True)
        self.assertEqual(caught.exception.status, 401)

    def test_backend_failure_falls_back_to_guest(self):
        ctx = self._ctx()
        ctx.client.fail("auth", "user")
        self.assertTrue(resolve_caller(ctx, {"Authorization": "Bearer user-token"}).is_guest)
        ctx.log_exception.assert_called_once()
        with self.assertRaises(BaasError):
            resolve_caller(ctx, {"Authorization": "Bearer user-token"}, strict=True)
        with self.assertRaises(ServiceError) as caught:
            require_user(ctx, {"Authorization": "Bearer user-token"})
        self.assertEqual((caught.exception.code, caught.exception.status), ("AUTH_FAILED", 500))

    def test_free_and_admin_callers(self):
        free = resolve_caller(self._ctx({"user_id": "u1", "plan_type": "free"}), {"Authorization": "Bearer user-token"})
        self.assertEqual(free.user_type, USER_TYPE_FREE)
        self.assertFalse(free.is_admin)

        ctx = self._ctx({"user_id": "u1", "is_admin": True, "admin_role": "super_admin"})
        admin = resolve_caller(ctx, {"Authorization": "Bearer user-token"})
        self.assertEqual(admin.user_type, USER_TYPE_PREMIUM)
        self.assertTrue(admin.is_super_admin)

    def test_require_user_and_admin(self):
        ctx = self._ctx({"user_id": "u1", "plan_type": "free"})
        with self.assertRaises(ServiceError) as missing:
            require_user(ctx, {})
        self.assertEqual(missing.exception.status, 401)
        self.assertEqual(require_user(ctx, {"Authorization": "Bearer user-token"}).user_id, "u1")
        with self.assertRaises(ServiceError) as forbidden:
            require_admin(ctx, {"Authorization": "Bearer user-token"})
        self.assertEqual(forbidden.exception.status, 403)
        self.assertEqual(forbidden.exception.code, "FORBIDDEN")


if __name__ == "__main__":
    unittest.main()
