# dayplan_travel/routes/websocket/connection.py
"""WebSocket connection and disconnection handlers."""

import time
import logging
from flask_socketio import disconnect, join_room

from dayplan_travel.api.services.trip_service import TripService
from .base import BaseWebSocketHandler

logger = logging.getLogger(__name__)


class ConnectionHandler(BaseWebSocketHandler):
    """Handles WebSocket connection lifecycle events."""

    def register_handlers(self):
        """Register connection-related event handlers."""

        @self.socketio.on('connect', namespace=self.namespace)
        def handle_connect(auth=None):
            """Attach the view to its browser's room and send the current state."""
            self.log_event('connect')

            try:
                room = TripService.ensure_flask_session_id(self.room)
                join_room(room)

                trip_session = self.current_trip_session()
                self.emit_to_client('connected', {
                    'status': 'connected',
                    'flask_session_id': room,
                    'has_trip': trip_session is not None,
                })

                if trip_session is not None:
                    self.send_state(trip_session)
                    logger.info(f"🔗 View attached to session {trip_session.session_id}")

            except Exception as e:
                self.handle_error(e, 'connect')
                disconnect()

        @self.socketio.on('disconnect', namespace=self.namespace)
        def handle_disconnect(*args):
            """The trip session outlives its sockets; expiry is the manager's job."""
            self.log_event('disconnect')

        @self.socketio.on('ping', namespace=self.namespace)
        def handle_ping():
            self.emit_to_client('pong', {'timestamp': time.time()})
