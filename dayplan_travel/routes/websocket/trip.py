# dayplan_travel/routes/websocket/trip.py
"""WebSocket handlers for trip mutations and selection."""

import logging
import time

from dayplan_travel.api.services.trip_service import OPERATIONS, TripService
from .base import BaseWebSocketHandler

logger = logging.getLogger(__name__)


class TripHandler(BaseWebSocketHandler):
    """Routes view events to the browser's ReconciliationController.

    State changes are not returned here: they reach every view of the
    browser through the room events wired in callback_helpers. The sender
    only gets an ``operation_result`` acknowledgement.
    """

    def register_handlers(self):
        """Register trip-related event handlers."""

        for name in OPERATIONS:
            self._register_operation(name)

        @self.socketio.on("load_trip", namespace=self.namespace)
        def handle_load_trip(data):
            """Load a trip sent by the browser (persisted JSON shape)."""
            try:
                TripService.load_trip(self.manager, data or {})
            except (ValueError, RuntimeError) as exc:
                self.handle_error(exc, "load_trip")
                return
            self.send_state(self.current_trip_session())

        @self.socketio.on("get_state", namespace=self.namespace)
        def handle_get_state(data=None):
            """Send the full trip state to the requesting view."""
            trip_session = self.current_trip_session()
            if trip_session is None:
                self.emit_to_client("error", {"message": "No trip loaded", "event": "get_state"})
                return
            self.send_state(trip_session)

        @self.socketio.on("get_stats", namespace=self.namespace)
        def handle_get_stats(data=None):
            """Get session statistics for debugging."""
            trip_session = self.current_trip_session(wire=False)
            if trip_session is None:
                self.emit_to_client("stats", {"error": "No session"})
                return

            stats = {
                "session_id": trip_session.session_id,
                "created_at": trip_session.created_at.isoformat(),
                "last_activity": trip_session.last_activity.isoformat(),
                "mutation_count": trip_session.mutation_count,
                "rejected_count": trip_session.rejected_count,
                "allocation_passes": trip_session.controller.allocation_passes,
                "selection_version": trip_session.controller.selection.version,
            }
            self.emit_to_client("stats", stats)

    def _register_operation(self, name):
        @self.socketio.on(name, namespace=self.namespace)
        def handle_operation(data=None):
            self._handle_operation(name, data)

    def _handle_operation(self, name, data):
        trip_session = self.current_trip_session()
        if trip_session is None:
            self.emit_to_client("error", {"message": "No trip loaded", "event": name})
            return

        try:
            result = TripService.dispatch(self.manager, trip_session, name, data or {})
        except ValueError as exc:
            self.handle_error(exc, name)
            return

        self.emit_to_client("operation_result", {
            "operation": name,
            "result": result.to_dict(),
            "timestamp": time.time(),
        })
        logger.debug(f"[WS] {name} committed={result.committed}")
