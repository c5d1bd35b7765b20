# dayplan_travel/routes/websocket/base.py
"""Shared plumbing for the trip Socket.IO handlers."""

import logging
from flask import request, session
from flask_socketio import emit

from dayplan_travel.api.services.trip_service import TripService
from .callback_helpers import wire_controller_callbacks

logger = logging.getLogger(__name__)

# Every view of a trip (rail, calendar strip, map, timeline) connects here
NAMESPACE = "/travel/ws"


class BaseWebSocketHandler:
    """Binds a socket to its browser's trip session and room."""

    def __init__(self, socketio, manager, namespace=NAMESPACE):
        self.socketio = socketio
        self.manager = manager
        self.namespace = namespace

    @property
    def room(self):
        """Room shared by all views of the current browser session."""
        return session.get('_id') or f'anon_{request.sid}'

    def current_trip_session(self, wire=True):
        """The browser's TripSession, wired to its room; None if no trip is loaded."""
        trip_session = TripService.get_current(self.manager)
        if trip_session is not None and wire:
            wire_controller_callbacks(self.socketio, trip_session, self.namespace)
        return trip_session

    def emit_to_client(self, event, data):
        """Reply to the socket that sent the current event."""
        try:
            emit(event, data, namespace=self.namespace)
        except Exception as e:
            logger.error(f"Failed to emit {event} to {request.sid}: {e}")

    def send_state(self, trip_session):
        self.emit_to_client('trip_state', TripService.state_payload(trip_session))

    def log_event(self, event_name, data=None):
        if data:
            logger.info(f"[WS] {event_name} - sid={request.sid} room={self.room} data={data}")
        else:
            logger.info(f"[WS] {event_name} - sid={request.sid} room={self.room}")

    def handle_error(self, error, event_name=""):
        """Log a handler failure and report it to the sending view only."""
        logger.error(f"[WS] {event_name} failed - sid={request.sid} room={self.room}: {error}")
        self.emit_to_client('error', {'message': str(error), 'event': event_name})
