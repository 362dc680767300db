"""
HTTP API server — Flask app factory.

Creates the Flask application that exposes the runtime managers as a
JSON API under ``/api``.  Long operations (install, update) run in
background threads; clients poll ``GET /api/runtimes/<kind>`` or follow
``GET /api/events``.
"""

from __future__ import annotations

import logging

from flask import Flask

from runtimectl.core.services.runtime.errors import NoRuntimeAvailable
from runtimectl.core.services.runtime.registry import RuntimeRegistry

logger = logging.getLogger(__name__)


def create_app(registry: RuntimeRegistry, *, initialize: bool = True) -> Flask:
    """Create and configure the Flask application.

    Args:
        registry: Runtime managers to serve.
        initialize: Run each manager's start-up sequence (bootstrap,
            catalog refresh, reconciliation) before serving.

    Returns:
        Configured Flask application.

    Raises:
        NoRuntimeAvailable: A required kind could not be bootstrapped.
    """
    app = Flask(__name__)

    app.config["RUNTIME_REGISTRY"] = registry
    app.config["DATA_DIR"] = str(registry.paths.data_dir)

    from runtimectl.ui.web.routes_events import events_bp
    from runtimectl.ui.web.routes_runtimes import runtimes_bp

    app.register_blueprint(runtimes_bp, url_prefix="/api")
    app.register_blueprint(events_bp, url_prefix="/api")

    if initialize:
        for manager in registry:
            try:
                manager.initialize()
            except NoRuntimeAvailable:
                logger.critical("Cannot start: %s has no usable installation", manager.label)
                raise

    logger.info("HTTP API app created (data_dir=%s)", registry.paths.data_dir)
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting HTTP API on %s:%d", host, port)
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
