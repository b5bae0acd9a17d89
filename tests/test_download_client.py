import os
import tempfile
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from requests.exceptions import ConnectionError as RequestsConnectionError

from wallhub.services.download_client import DownloadError, UnifiedDownloader, get_user_type

from fakes import FakeResponse


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _downloader(responses, **kwargs):
    session = MagicMock()
    session.request.side_effect = responses
    sleeps = []
    downloader = UnifiedDownloader("https://backend.test/", "anon-key", session=session, sleep=sleeps.append, **kwargs)
    return downloader, session, sleeps


class UserTypeTests(unittest.TestCase):
    def test_user_types(self):
        self.assertEqual(get_user_type(None), "guest")
        self.assertEqual(get_user_type({"id": "u1"}), "free")
        premium = {"plan_type": "premium", "premium_expires_at": "2026-02-01T00:00:00Z"}
        self.assertEqual(get_user_type({"id": "u1"}, premium, NOW), "premium")
        lapsed = {"plan_type": "premium", "premium_expires_at": "2025-12-01T00:00:00Z"}
        self.assertEqual(get_user_type({"id": "u1"}, lapsed, NOW), "free")


class AnonymousTokenTests(unittest.TestCase):
    def test_retries_with_linear_backoff(self):
        downloader, session, sleeps = _downloader([
            FakeResponse(500, {"error": {"code": "TOKEN_GENERATION_FAILED", "message": "busy"}}),
            RequestsConnectionError("reset"),
            FakeResponse(200, {"data": {"token": "t1"}}),
        ])
        self.assertEqual(downloader.request_anonymous_token(7), "t1")
        self.assertEqual(sleeps, [1.0, 2.0])
        headers = session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer anon-key")

    def test_permanent_error_is_not_retried(self):
        downloader, _, sleeps = _downloader([
            FakeResponse(404, {"error": {"code": "TOKEN_GENERATION_FAILED", "message": "Wallpaper not found"}}),
        ])
        with self.assertRaises(DownloadError) as caught:
            downloader.request_anonymous_token(7)
        self.assertEqual(caught.exception.status, 404)
        self.assertEqual(caught.exception.message, "Wallpaper not found")
        self.assertEqual(sleeps, [])

    def test_gives_up_after_three_attempts(self):
        failure = {"error": {"code": "TOKEN_GENERATION_FAILED", "message": "busy"}}
        downloader, _, sleeps = _downloader([FakeResponse(500, failure) for _ in range(3)])
        with self.assertRaises(DownloadError) as caught:
            downloader.request_anonymous_token(7)
        self.assertTrue(caught.exception.message.startswith("Failed to generate download token after 3 attempts"))
        self.assertEqual(sleeps, [1.0, 2.0])

    def test_unavailable_wallpaper_is_not_retried(self):
        downloader, session, sleeps = _downloader([
            FakeResponse(500, {"error": {"code": "TOKEN_GENERATION_FAILED", "message": "Wallpaper is not available"}}),
        ])
        with self.assertRaises(DownloadError) as caught:
            downloader.request_anonymous_token(7)
        self.assertEqual(caught.exception.message, "Wallpaper is not available")
        self.assertEqual(session.request.call_count, 1)
        self.assertEqual(sleeps, [])


class OpenDownloadTests(unittest.TestCase):
    def test_guest_gates(self):
        downloader, session, _ = _downloader([])
        plan = downloader.open({"id": 1, "is_premium": True})
        self.assertEqual(plan.status, "auth_required")
        plan = downloader.open({"id": 2, "live_enabled": True}, resolution="video")
        self.assertEqual(plan.status, "registration_required")
        self.assertFalse(plan.ready)
        session.request.assert_not_called()

    def test_signed_in_user_prepares_session(self):
        downloader, session, _ = _downloader(
            [FakeResponse(200, {"data": {"token": "t2", "countdown_duration": 6, "download_url": "https://x/dl"}})],
            access_token="user-token",
            user={"id": "u1"},
        )
        plan = downloader.open({"id": 3}, resolution="4k")
        self.assertTrue(plan.ready)
        self.assertEqual((plan.token, plan.countdown_duration), ("t2", 6))
        kwargs = session.request.call_args.kwargs
        self.assertEqual(kwargs["json"], {"wallpaper_id": 3, "resolution": "4k"})
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer user-token")


class DownloadTests(unittest.TestCase):
    def test_guest_download_waits_then_writes_file(self):
        downloader, _, sleeps = _downloader([
            FakeResponse(200, {"data": {"token": "t1"}}),
            FakeResponse(200, {"data": {"guest_timer_duration": 10}}),
            FakeResponse(200, {"data": {"logged_in_timer_duration": 4}}),
            FakeResponse(
                200,
                body=b"jpeg-bytes",
                headers={"Content-Type": "image/jpeg", "Content-Disposition": 'attachment; filename="Blue_Sky-1080p.jpg"'},
            ),
        ])
        with tempfile.TemporaryDirectory() as tmp:
            path = downloader.download({"id": 7, "title": "Blue Sky"}, dest_dir=tmp)
            self.assertEqual(path, os.path.join(tmp, "Blue_Sky-1080p.jpg"))
            with open(path, "rb") as handle:
                self.assertEqual(handle.read(), b"jpeg-bytes")
        self.assertEqual(sleeps, [10])

    def test_retries_once_when_countdown_rejected(self):
        downloader, _, sleeps = _downloader(
            [
                FakeResponse(200, {"data": {"token": "t2", "countdown_duration": 6}}),
                FakeResponse(429, {"error": {"code": "TIMER_NOT_COMPLETED", "message": "wait", "remaining_time": 2}}),
                FakeResponse(200, body=b"png", headers={"Content-Type": "image/png"}),
            ],
            access_token="user-token",
            user={"id": "u1"},
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = downloader.download({"id": 7, "title": "Night"}, dest_dir=tmp)
            self.assertEqual(os.path.basename(path), "Night-1080p.png")
        self.assertEqual(sleeps, [6, 2])

    def test_expired_token_raises(self):
        downloader, _, _ = _downloader(
            [
                FakeResponse(200, {"data": {"token": "t2", "countdown_duration": 0}}),
                FakeResponse(410, {"error": {"code": "TOKEN_EXPIRED", "message": "Download token has expired"}}),
            ],
            access_token="user-token",
            user={"id": "u1"},
            profile={"plan_type": "premium"},
        )
        with self.assertRaises(DownloadError) as caught:
            downloader.download({"id": 7, "title": "Night"})
        self.assertEqual(caught.exception.code, "TOKEN_EXPIRED")
        self.assertEqual(caught.exception.status, 410)

    def test_fallback_filename_stays_in_destination(self):
        downloader, session, _ = _downloader(
            [
                FakeResponse(200, {"data": {"token": "t3", "countdown_duration": 0}}),
                FakeResponse(200, {"data": {"download_url": "https://cdn.test/a.jpg", "filename": "../../etc/evil.jpg"}}),
            ],
            access_token="user-token",
            user={"id": "u1"},
            profile={"plan_type": "premium"},
        )
        session.get.return_value = FakeResponse(200, body=b"direct", headers={"Content-Type": "image/jpeg"})
        with tempfile.TemporaryDirectory() as tmp:
            path = downloader.download({"id": 7, "title": "Night"}, dest_dir=tmp)
            self.assertEqual(path, os.path.join(tmp, "evil.jpg"))
            with open(path, "rb") as handle:
                self.assertEqual(handle.read(), b"direct")
        session.get.assert_called_once()


if __name__ == "__main__":
    unittest.main()
