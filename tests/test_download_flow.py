import unittest
from datetime import timedelta

from wallhub.core.response_helpers import ServiceError
from wallhub.core.security import Caller, iso_utc
from wallhub.services import download_flow

from fakes import FIXED_NOW, FakeClient, FakeUpstream, make_ctx


CLIENT_INFO = {"ip": "203.0.113.9", "user_agent": "pytest"}


def _wallpaper(**overrides):
    wallpaper = {
        "id": 7,
        "title": "Blue Sky!",
        "slug": "blue-sky",
        "is_premium": False,
        "is_published": True,
        "is_active": True,
        "download_count": 3,
        "image_url": "https://cdn.test/blue-sky.jpg",
        "download_url": "https://cdn.test/blue-sky.jpg",
    }
    wallpaper.update(overrides)
    return wallpaper


def _session(created_ago=20, **overrides):
    created = FIXED_NOW - timedelta(seconds=created_ago)
    session = {
        "token": "tok-1",
        "wallpaper_id": 7,
        "user_id": None,
        "resolution": "1080p",
        "download_url": "https://cdn.test/blue-sky.jpg",
        "expires_at": iso_utc(created + timedelta(seconds=300)),
        "created_at": iso_utc(created),
        "is_premium_user": False,
        "is_external_url": False,
        "target_url": None,
        "ip_address": "203.0.113.9",
        "user_agent": "pytest",
    }
    session.update(overrides)
    return session


class AnonymousTokenTests(unittest.TestCase):
    def test_issues_session_for_published_wallpaper(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper()]})
        ctx = make_ctx(client)
        data = download_flow.generate_anonymous_token(ctx, 7, CLIENT_INFO)
        self.assertTrue(data["isAnonymous"])
        self.assertEqual(data["wallpaperId"], 7)
        self.assertEqual(data["expiresAt"], "2026-01-15T12:05:00.000Z")
        table, row = client.inserted[0]
        self.assertEqual(table, "download_sessions")
        self.assertEqual(row["token"], data["token"])
        self.assertIsNone(row["user_id"])
        self.assertFalse(row["is_premium_user"])
        self.assertEqual(row["ip_address"], "203.0.113.9")

    def test_rejects_missing_unknown_and_unpublished(self):
        ctx = make_ctx(FakeClient())
        with self.assertRaises(ServiceError) as missing:
            download_flow.generate_anonymous_token(ctx, None, CLIENT_INFO)
        self.assertEqual(missing.exception.status, 400)
        with self.assertRaises(ServiceError) as unknown:
            download_flow.generate_anonymous_token(ctx, 99, CLIENT_INFO)
        self.assertEqual(unknown.exception.status, 404)

        ctx = make_ctx(FakeClient(tables={"wallpapers": [_wallpaper(is_published=False)]}))
        with self.assertRaises(ServiceError) as hidden:
            download_flow.generate_anonymous_token(ctx, 7, CLIENT_INFO)
        self.assertEqual(hidden.exception.code, "TOKEN_GENERATION_FAILED")
        self.assertEqual(hidden.exception.status, 500)

    def test_session_insert_failure(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper()]})
        client.fail("insert", "download_sessions")
        with self.assertRaises(ServiceError) as caught:
            download_flow.generate_anonymous_token(make_ctx(client), 7, CLIENT_INFO)
        self.assertEqual(caught.exception.message, "Failed to create download session")


class PrepareDownloadTests(unittest.TestCase):
    def test_guest_gets_countdown(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper()]})
        data = download_flow.prepare_download(make_ctx(client), Caller(), 7, "1080p", CLIENT_INFO)
        self.assertEqual(data["user_type"], "guest")
        self.assertTrue(data["ad_required"])
        self.assertEqual(data["countdown_duration"], 15)
        self.assertEqual(data["download_url"], f"https://backend.test/functions/v1/download-file?token={data['token']}")

    def test_premium_downloads_instantly(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper(is_premium=True)]})
        caller = Caller(user_id="u1", user_type="premium", is_premium=True)
        data = download_flow.prepare_download(make_ctx(client), caller, 7, "1080p", CLIENT_INFO)
        self.assertTrue(data["instant_download"])
        self.assertNotIn("countdown_duration", data)
        self.assertTrue(client.inserted[0][1]["is_premium_user"])

    def test_free_user_sees_premium_quota(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper(is_premium=True)], "daily_quotas": [{"id": 1}]})
        caller = Caller(user_id="u1", user_type="free")
        data = download_flow.prepare_download(make_ctx(client), caller, 7, None, CLIENT_INFO)
        self.assertEqual(data["resolution"], "1080p")
        self.assertEqual(data["countdown_duration"], 6)
        self.assertEqual(data["quota"], {"remaining": 2, "daily_limit": 3, "used_today": 1})

    def test_unavailable_wallpaper(self):
        client = FakeClient(tables={"wallpapers": [_wallpaper(is_active=False)]})
        with self.assertRaises(ServiceError) as caught:
            download_flow.prepare_download(make_ctx(client), Caller(), 7, "1080p", CLIENT_INFO)
        self.assertEqual((caught.exception.code, caught.exception.status), ("WALLPAPER_UNAVAILABLE", 403))

    def test_target_url_by_resolution(self):
        wallpaper = _wallpaper(
            asset_4k_url="https://cdn.test/4k.jpg",
            show_4k=True,
            asset_8k_url="https://cdn.test/8k.jpg",
            show_8k=False,
            live_video_url="not a url",
            live_enabled=True,
        )
        self.assertEqual(download_flow.resolve_target_url(wallpaper, "4k"), ("https://cdn.test/4k.jpg", True))
        self.assertEqual(download_flow.resolve_target_url(wallpaper, "8k"), ("https://cdn.test/blue-sky.jpg", False))
        with self.assertRaises(ServiceError) as caught:
            download_flow.resolve_target_url(wallpaper, "video")
        self.assertEqual(caught.exception.code, "INVALID_VIDEO_URL")


class RedeemDownloadTests(unittest.TestCase):
    def _ctx(self, session, wallpaper=None):
        client = FakeClient(tables={"download_sessions": [session], "wallpapers": [wallpaper or _wallpaper()]})
        return make_ctx(client), client

    def test_token_errors(self):
        ctx, _ = self._ctx(_session())
        with self.assertRaises(ServiceError) as empty:
            download_flow.redeem_download(ctx, "")
        self.assertEqual(empty.exception.status, 400)

        ctx = make_ctx(FakeClient())
        with self.assertRaises(ServiceError) as unknown:
            download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(unknown.exception.code, "INVALID_TOKEN")

        ctx, _ = self._ctx(_session(created_ago=400))
        with self.assertRaises(ServiceError) as expired:
            download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(expired.exception.status, 410)

    def test_countdown_not_finished(self):
        ctx, client = self._ctx(_session(created_ago=5))
        with self.assertRaises(ServiceError) as caught:
            download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(caught.exception.status, 429)
        self.assertEqual(caught.exception.extra, {"remaining_time": 10, "required_time": 15, "elapsed_time": 5})
        self.assertEqual(client.deleted, [])

    def test_premium_session_skips_countdown(self):
        ctx, _ = self._ctx(_session(created_ago=1, user_id="u1", is_premium_user=True))
        result = download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(result["kind"], "stream")

    def test_streams_file_and_records_download(self):
        ctx, client = self._ctx(_session())
        result = download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(result["kind"], "stream")
        self.assertEqual(result["headers"]["Content-Disposition"], 'attachment; filename="Blue_Sky-1080p.jpg"')
        self.assertEqual(client.opened, [("https://cdn.test/blue-sky.jpg", None)])
        self.assertEqual([table for table, _ in client.inserted], ["downloads"])
        self.assertEqual(client.updated[0][2], {"download_count": 4})
        self.assertEqual(client.deleted, [("download_sessions", [("token", "eq.tok-1")])])

    def test_free_premium_download_writes_quota_row(self):
        ctx, client = self._ctx(_session(user_id="u1"), _wallpaper(is_premium=True))
        download_flow.redeem_download(ctx, "tok-1")
        tables = [table for table, _ in client.inserted]
        self.assertEqual(tables, ["downloads", "daily_quotas"])
        self.assertEqual(client.inserted[1][1]["download_date"], "2026-01-15")

    def test_storage_url_is_signed(self):
        storage_url = "https://backend.test/storage/v1/object/public/wallpapers/2026/a.jpg"
        ctx, client = self._ctx(_session(download_url=storage_url), _wallpaper(image_url=storage_url))
        client.signed_url = "https://backend.test/storage/v1/object/sign/wallpapers/2026/a.jpg?token=x"
        download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(client.signed, [("wallpapers", "2026/a.jpg", 300)])
        self.assertEqual(client.opened[0][0], client.signed_url)

    def test_range_request_is_forwarded(self):
        ctx, client = self._ctx(_session())
        client.streams["https://cdn.test/blue-sky.jpg"] = FakeUpstream(
            b"0123456789",
            status_code=206,
            headers={"Content-Type": "image/png", "Content-Range": "bytes 0-9/100", "Content-Length": "10"},
        )
        result = download_flow.redeem_download(ctx, "tok-1", "bytes=0-9")
        self.assertEqual(result["status"], 206)
        self.assertEqual(result["headers"]["Content-Range"], "bytes 0-9/100")
        self.assertEqual(result["filename"], "Blue_Sky-1080p.png")
        self.assertEqual(client.opened[0][1], {"Range": "bytes=0-9"})

    def test_proxy_failure_returns_fallback_json(self):
        ctx, client = self._ctx(_session())
        client.fail("stream", "https://cdn.test/blue-sky.jpg")
        result = download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(result["kind"], "json")
        self.assertTrue(result["data"]["fallback_mode"])
        self.assertEqual(result["data"]["download_url"], "https://cdn.test/blue-sky.jpg")

    def test_external_target_failure_returns_external_fallback(self):
        session = _session(is_external_url=True, target_url="https://assets.test/4k.jpg", resolution="4k")
        ctx, client = self._ctx(session)
        client.fail("stream", "https://assets.test/4k.jpg")
        result = download_flow.redeem_download(ctx, "tok-1")
        self.assertTrue(result["data"]["external_fallback"])
        self.assertEqual(result["data"]["filename"], "Blue_Sky-4k.jpg")

    def test_tracking_failures_do_not_block_download(self):
        ctx, client = self._ctx(_session())
        client.fail("insert", "downloads")
        client.fail("update", "wallpapers")
        result = download_flow.redeem_download(ctx, "tok-1")
        self.assertEqual(result["kind"], "stream")
        self.assertEqual(ctx.log_exception.call_count, 2)


if __name__ == "__main__":
    unittest.main()
