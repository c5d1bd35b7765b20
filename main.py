"""
Trip day planner – main application entry point

* Flask app + Socket.IO serving the day allocation / selection core to the
  destination rail, calendar strip, map and timeline views.
* Every view of one browser joins the same Socket.IO room, so a single
  mutation reaches all of them with the same day array and selection.
* The Socket.IO namespace is `/travel/ws`.
"""

import os
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from dotenv import load_dotenv

# --------------------------------------------------------------------------- #
# Environment & logging
# --------------------------------------------------------------------------- #
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from dayplan_travel.api.config import (  # noqa: E402
    get_flask_secret_key,
    get_port,
    get_websocket_config,
    validate_reconcile_config,
)
from dayplan_travel.api.services.session_manager import get_session_manager  # noqa: E402
from dayplan_travel.routes import create_travel_blueprint, register_websocket_handlers  # noqa: E402


def create_app(manager=None):
    """Build the Flask app and its Socket.IO server.

    Args:
        manager: Optional TripSessionManager; the process-wide one by default

    Returns:
        (app, socketio)
    """
    validate_reconcile_config()
    manager = manager or get_session_manager()

    app = Flask(__name__)

    flask_secret_key = get_flask_secret_key() or os.urandom(32).hex()
    if get_flask_secret_key() is None:
        logger.warning("No FLASK_SECRET_KEY found. Generated a temporary key.")
    app.secret_key = flask_secret_key

    app.config.update(
        SESSION_COOKIE_SECURE=False,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=86400,
    )
    app.extensions["trip_sessions"] = manager

    # CORS for local dev / cross‑origin front‑end requests
    CORS(app, origins="*", supports_credentials=True)

    ws_config = get_websocket_config()
    socketio = SocketIO(
        app,
        cors_allowed_origins=ws_config["cors_allowed_origins"],
        async_mode="threading",
        ping_interval=ws_config["ping_interval"],
        ping_timeout=ws_config["ping_timeout"],
        logger=False,
        engineio_logger=False,
    )
    logger.info("Socket.IO initialised (async_mode=threading)")

    # ----------------------------------------------------------------------- #
    # Blueprints & WebSocket handlers
    # ----------------------------------------------------------------------- #
    app.register_blueprint(create_travel_blueprint(manager, socketio))
    register_websocket_handlers(socketio, manager)

    @app.route("/debug")
    def debug():
        """Simple JSON health endpoint."""
        return {
            "status": "ok",
            "socketio_initialized": True,
            "endpoints": {
                "trip": "/travel/api/trip",
                "websocket_namespace": "/travel/ws",
            },
            "sessions": manager.get_stats(),
        }

    return app, socketio


app, socketio = create_app()

# --------------------------------------------------------------------------- #
# Local development runner ( `python main.py` )
# --------------------------------------------------------------------------- #
if __name__ == "__main__":
    port = get_port()
    logger.info("Starting trip planner on http://localhost:%d", port)
    socketio.run(app, host="0.0.0.0", port=port, debug=False, allow_unsafe_werkzeug=True)

__all__ = ["app", "socketio", "create_app"]
