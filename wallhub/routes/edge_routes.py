"""Flask route registration for the wallhub edge functions."""

from wallhub.routes.account_routes import register_account_routes
from wallhub.routes.admin_routes import register_admin_routes
from wallhub.routes.download_routes import register_download_routes
from wallhub.routes.public_routes import register_public_routes


def register_routes(app, ctx):
    """Register every ``/functions/v1/<name>`` route on ``app``."""
    register_public_routes(app, ctx)
    register_download_routes(app, ctx)
    register_account_routes(app, ctx)
    register_admin_routes(app, ctx)
