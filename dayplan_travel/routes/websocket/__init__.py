# dayplan_travel/routes/websocket/__init__.py
"""Socket.IO handlers for the trip views."""

import logging

from .base import NAMESPACE
from .connection import ConnectionHandler
from .trip import TripHandler

logger = logging.getLogger(__name__)

HANDLERS = (ConnectionHandler, TripHandler)


def register_websocket_handlers(socketio, manager):
    """Register the connection and trip handlers on ``NAMESPACE``.

    Args:
        socketio: Flask-SocketIO instance
        manager: TripSessionManager shared with the HTTP routes
    """
    for handler_class in HANDLERS:
        logger.info(f"Registering {handler_class.__name__} for namespace: {NAMESPACE}")
        handler_class(socketio, manager, NAMESPACE).register_handlers()

    logger.info("✅ WebSocket handlers registered successfully")


__all__ = ['register_websocket_handlers', 'NAMESPACE']
