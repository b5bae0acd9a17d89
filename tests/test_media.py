import unittest

from wallhub.core.media import (
    download_filename,
    extension_for,
    is_storage_url,
    sanitize_ad_html,
    sanitize_search_term,
    storage_object_path,
    url_host,
    validate_video_url,
)


class MediaHelperTests(unittest.TestCase):
    def test_download_filename(self):
        self.assertEqual(download_filename("Blue Sky! (Night)", "4k", ".png"), "Blue_Sky_Night-4k.png")
        self.assertEqual(download_filename(None, "1080p"), "wallpaper-1080p.jpg")

    def test_extension_for(self):
        self.assertEqual(extension_for("image/png", "1080p"), ".png")
        self.assertEqual(extension_for("image/webp", "4k"), ".webp")
        self.assertEqual(extension_for("video/webm", "video"), ".webm")
        self.assertEqual(extension_for(None, "video"), ".mp4")
        self.assertEqual(extension_for("application/octet-stream", "1080p"), ".jpg")

    def test_validate_video_url(self):
        self.assertEqual(validate_video_url("https://cdn.test/live/clip.webm?x=1")[:2], (True, "webm"))
        self.assertEqual(validate_video_url("https://cdn.test/live/clip")[:2], (True, "unknown"))
        self.assertFalse(validate_video_url("not a url")[0])
        self.assertFalse(validate_video_url("")[0])

    def test_storage_paths(self):
        url = "https://backend.test/storage/v1/object/public/wallpapers/2026/a.jpg"
        self.assertTrue(is_storage_url(url))
        self.assertEqual(storage_object_path(url), "2026/a.jpg")
        self.assertEqual(storage_object_path("https://cdn.test/a.jpg"), "https://cdn.test/a.jpg")
        self.assertFalse(is_storage_url("https://cdn.test/a.jpg"))
        self.assertEqual(url_host("https://cdn.test/a.jpg"), "cdn.test")
        self.assertEqual(url_host(None), "internal")

    def test_sanitizers(self):
        html = '<div onclick="x()">ad</div><script>alert(1)</script><a href="javascript:go()">x</a>'
        cleaned = sanitize_ad_html(html)
        self.assertNotIn("<script", cleaned)
        self.assertNotIn("onclick", cleaned)
        self.assertNotIn("javascript:", cleaned)
        self.assertEqual(sanitize_search_term("  sky (night)*, ocean "), "sky night  ocean")
        self.assertEqual(len(sanitize_search_term("a" * 250)), 100)


if __name__ == "__main__":
    unittest.main()
