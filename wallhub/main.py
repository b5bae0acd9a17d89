"""HTTP server for the wallhub edge functions.

Serves the ``/functions/v1/<name>`` endpoints used by the wallpaper site:
- catalog browsing, search and detail pages
- ad-timer gated download tokens and file delivery
- favorites, profiles and premium requests
- admin user, cache, audit and health endpoints

All persistence goes through the hosted REST/auth/storage backend.
"""

from pathlib import Path

from wallhub.application_factory import build_app
from wallhub.core.baas_client import BaasClient
from wallhub.core.config import load_settings
from wallhub.core.logging_setup import build_loggers
from wallhub.core.web_config import WebConfig
from wallhub.services.app_lifecycle import build_run_server
from wallhub.state import EdgeContext

APP_DIR = Path(__file__).resolve().parent.parent
WEB_CONF_PATH = APP_DIR / "wallhub.env"
_WEB_CFG = WebConfig(WEB_CONF_PATH, APP_DIR)
SETTINGS = load_settings(_WEB_CFG)

log_action, log_system, log_exception = build_loggers(SETTINGS.log_dir)

CTX = EdgeContext(
    settings=SETTINGS,
    client=BaasClient(SETTINGS),
    log_action=log_action,
    log_system=log_system,
    log_exception=log_exception,
)
app = build_app(CTX, _WEB_CFG)

run_server = build_run_server(app=app, settings=SETTINGS, log_system=log_system, log_exception=log_exception)


if __name__ == "__main__":
    run_server()
