"""App factory and runtime wiring entrypoint."""
from flask import Flask

from wallhub.core.config import apply_default_flask_config
from wallhub.routes.edge_routes import register_routes
from wallhub.services.app_lifecycle import install_flask_hooks


def build_app(ctx, cfg):
    """Return a Flask app serving the edge functions for ``ctx``."""
    app = Flask(__name__)
    apply_default_flask_config(app, cfg)
    install_flask_hooks(app, settings=ctx.settings, log_action=ctx.log_action, log_exception=ctx.log_exception)
    register_routes(app, ctx)
    return app


def create_app():
    """Return the Flask app instance used by WSGI/ASGI entrypoints."""
    from wallhub.main import app

    return app
