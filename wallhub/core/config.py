"""Runtime configuration for the wallhub edge functions."""

from dataclasses import dataclass
from pathlib import Path
import secrets


@dataclass
class Settings:
    """Resolved settings shared by every handler."""
    supabase_url: str
    service_role_key: str
    anon_key: str
    public_base_url: str
    request_timeout_seconds: float
    download_session_ttl_seconds: int
    timer_cache_ttl_seconds: float
    default_guest_timer_seconds: int
    default_logged_in_timer_seconds: int
    free_daily_premium_limit: int
    log_dir: Path
    web_host: str
    web_port: int

    def is_configured(self):
        """Return True when the hosted backend can be reached."""
        return bool(self.supabase_url and self.service_role_key)


def load_settings(cfg):
    """Build ``Settings`` from a ``WebConfig``."""
    supabase_url = cfg.get_str("SUPABASE_URL", "").rstrip("/")
    return Settings(
        supabase_url=supabase_url,
        service_role_key=cfg.get_str("SUPABASE_SERVICE_ROLE_KEY", ""),
        anon_key=cfg.get_str("SUPABASE_ANON_KEY", ""),
        public_base_url=cfg.get_str("PUBLIC_BASE_URL", supabase_url).rstrip("/"),
        request_timeout_seconds=cfg.get_float("REQUEST_TIMEOUT_SECONDS", 15.0, minimum=1.0),
        download_session_ttl_seconds=cfg.get_int("DOWNLOAD_SESSION_TTL_SECONDS", 300, minimum=30),
        timer_cache_ttl_seconds=cfg.get_float("TIMER_CACHE_TTL_SECONDS", 30.0, minimum=0.0),
        default_guest_timer_seconds=cfg.get_int("DEFAULT_GUEST_TIMER_SECONDS", 15, minimum=0),
        default_logged_in_timer_seconds=cfg.get_int("DEFAULT_LOGGED_IN_TIMER_SECONDS", 6, minimum=0),
        free_daily_premium_limit=cfg.get_int("FREE_DAILY_PREMIUM_LIMIT", 3, minimum=0),
        log_dir=cfg.get_path("LOG_DIR", cfg.base_dir / "logs"),
        web_host=cfg.get_str("WEB_HOST", "0.0.0.0"),
        web_port=cfg.get_int("WEB_PORT", 8080, minimum=1),
    )


def resolve_secret_key(cfg):
    """Resolve the Flask secret key with a random fallback."""
    configured = (cfg.get_str("WALLHUB_SECRET_KEY", "") or "").strip()
    if configured:
        return configured
    return secrets.token_hex(32)


def apply_default_flask_config(app, cfg):
    """Apply baseline Flask runtime config values."""
    app.config["SECRET_KEY"] = resolve_secret_key(cfg)
    app.json.sort_keys = False
    app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024
