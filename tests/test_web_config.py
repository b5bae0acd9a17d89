import tempfile
import unittest
from pathlib import Path

from wallhub.core.config import load_settings, resolve_secret_key
from wallhub.core.web_config import WebConfig


class WebConfigTests(unittest.TestCase):
    def test_reads_basic_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "wallhub.env"
            conf.write_text(
                "\n".join(
                    [
                        "# backend",
                        "SUPABASE_URL=https://example.supabase.co/",
                        "WEB_PORT=8080",
                        "REQUEST_TIMEOUT_SECONDS=7.5",
                        "LOG_DIR=./var/logs",
                        "SUPABASE_ANON_KEY='quoted-key'",
                    ]
                ),
                encoding="utf-8",
            )
            cfg = WebConfig(conf, root, environ={})
            self.assertEqual(cfg.get_str("SUPABASE_URL", "x"), "https://example.supabase.co/")
            self.assertEqual(cfg.get_int("WEB_PORT", 0), 8080)
            self.assertEqual(cfg.get_float("REQUEST_TIMEOUT_SECONDS", 0.0), 7.5)
            self.assertEqual(cfg.get_path("LOG_DIR", root / "none"), root / "var" / "logs")
            self.assertEqual(cfg.get_str("SUPABASE_ANON_KEY", ""), "quoted-key")

    def test_export_prefix_and_inline_comments(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "wallhub.env"
            conf.write_text(
                'export WEB_HOST=127.0.0.1\nWEB_PORT=9000 # local\nAD_NOTE="keep # this"\n=orphan\n',
                encoding="utf-8",
            )
            cfg = WebConfig(conf, root, environ={})
            self.assertEqual(cfg.get_str("WEB_HOST", ""), "127.0.0.1")
            self.assertEqual(cfg.get_int("WEB_PORT", 0), 9000)
            self.assertEqual(cfg.get_str("AD_NOTE", ""), "keep # this")
            self.assertNotIn("", cfg.values)

    def test_environment_overrides_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "wallhub.env"
            conf.write_text("WEB_PORT=8080\nDEBUG=yes\n", encoding="utf-8")
            cfg = WebConfig(conf, root, environ={"WEB_PORT": "9090"})
            self.assertEqual(cfg.get_int("WEB_PORT", 0), 9090)
            self.assertTrue(cfg.get_bool("DEBUG", False))

    def test_missing_file_uses_defaults_and_clamps(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            cfg = WebConfig(root / "missing.env", root, environ={"DOWNLOAD_SESSION_TTL_SECONDS": "5", "WEB_PORT": "abc"})
            self.assertEqual(cfg.values, {})
            self.assertEqual(cfg.get_int("DOWNLOAD_SESSION_TTL_SECONDS", 300, minimum=30), 30)
            self.assertEqual(cfg.get_int("WEB_PORT", 8080), 8080)


class SettingsTests(unittest.TestCase):
    def test_load_settings_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            cfg = WebConfig(root / "missing.env", root, environ={"SUPABASE_URL": "https://example.supabase.co/"})
            settings = load_settings(cfg)
            self.assertEqual(settings.supabase_url, "https://example.supabase.co")
            self.assertEqual(settings.public_base_url, "https://example.supabase.co")
            self.assertEqual(settings.default_guest_timer_seconds, 15)
            self.assertEqual(settings.default_logged_in_timer_seconds, 6)
            self.assertEqual(settings.download_session_ttl_seconds, 300)
            self.assertEqual(settings.log_dir, root / "logs")
            self.assertFalse(settings.is_configured())

    def test_secret_key_falls_back_to_random(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            configured = WebConfig(root / "missing.env", root, environ={"WALLHUB_SECRET_KEY": "s3cret"})
            self.assertEqual(resolve_secret_key(configured), "s3cret")
            blank = WebConfig(root / "missing.env", root, environ={})
            self.assertEqual(len(resolve_secret_key(blank)), 64)


if __name__ == "__main__":
    unittest.main()
