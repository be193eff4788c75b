"""
Status server: Flask app exposing the mirror health report.

GET /status returns a plain-text report, 200 when every job is healthy and
fresh, 500 otherwise.
"""

import logging

from flask import Flask, Response, abort, redirect

from .config import DaemonSettings
from .constants import APP_NAME
from .supervisor import Supervisor

logger = logging.getLogger(APP_NAME)


def create_app(supervisor: Supervisor, settings: DaemonSettings) -> Flask:
    """Create the Flask application."""
    app = Flask(APP_NAME)

    @app.route("/")
    def index():
        if not settings.home_url:
            abort(404)
        return redirect(settings.home_url, code=307)

    @app.route("/status")
    def status():
        code, body = supervisor.report()
        if code != 200:
            logger.debug(f"Status check unhealthy ({code})")
        return Response(body, status=code, mimetype="text/plain")

    return app
