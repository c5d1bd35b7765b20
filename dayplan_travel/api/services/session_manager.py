# dayplan_travel/api/services/session_manager.py
"""Lifecycle management for per-browser trip sessions.

Each browser session gets one ReconciliationController. Views of that
session (HTTP calls and Socket.IO events) must take ``TripSession.lock``
around controller calls so mutations are applied one at a time.
"""

import time
import threading
import logging
from typing import Dict, Optional, Any
from datetime import datetime, timedelta
import secrets

from dayplan_travel.api.config import get_trip_session_config
from dayplan_travel.api.core.reconciler import ReconciliationController
from dayplan_travel.api.models import Trip

logger = logging.getLogger(__name__)


class TripSession:
    """A loaded trip plus the controller and selection for one browser."""

    def __init__(self, session_id: str, flask_session_id: str, controller: ReconciliationController):
        self.session_id = session_id
        self.flask_session_id = flask_session_id
        self.controller = controller

        # Timestamps
        self.created_at = datetime.now()
        self.last_activity = datetime.now()

        # Serializes mutations coming from different views
        self.lock = threading.RLock()
        self.callbacks_wired: bool = False

        # Background geocoding of newly added destinations
        self.locate_thread: Optional[threading.Thread] = None

        # Stats
        self.mutation_count = 0
        self.rejected_count = 0

    @property
    def trip(self) -> Trip:
        return self.controller.trip


class TripSessionManager:
    """Manages the trip sessions of all connected browsers."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, start_cleanup: bool = True):
        self.config = config or get_trip_session_config()
        self.sessions: Dict[str, TripSession] = {}

        # Thread safety
        self.lock = threading.RLock()

        if start_cleanup:
            self.cleanup_thread = threading.Thread(
                target=self._cleanup_loop,
                daemon=True
            )
            self.cleanup_thread.start()

        logger.info("TripSessionManager initialized")

    def create_session(self, flask_session_id: str, trip: Trip, **controller_options) -> Optional[TripSession]:
        """Load a trip for a browser session.

        An existing session for the same browser is reused: the new trip is
        loaded into its controller, which resets the selection.

        Args:
            flask_session_id: Flask session ID of the browser
            trip: Trip to load
            **controller_options: Passed to ReconciliationController

        Returns:
            TripSession object or None if the manager is at capacity
        """
        with self.lock:
            existing_session = self.get_session_by_flask_id(flask_session_id)
            if existing_session:
                with existing_session.lock:
                    existing_session.controller.load_trip(trip)
                existing_session.last_activity = datetime.now()
                logger.info(f"Loaded trip {trip.id} into existing session {existing_session.session_id}")
                return existing_session

            if len(self.sessions) >= self.config["max_sessions"]:
                logger.warning("Maximum trip sessions reached")
                return None

            session_id = f"trip_{secrets.token_urlsafe(16)}"
            controller = ReconciliationController(trip, **controller_options)
            session = TripSession(session_id, flask_session_id, controller)
            self.sessions[session_id] = session

            logger.info(f"Created session {session_id} for trip {trip.id}")
            return session

    def get_session(self, session_id: str) -> Optional[TripSession]:
        """Get an existing session by ID.

        Args:
            session_id: Session ID to retrieve

        Returns:
            TripSession object or None if not found
        """
        with self.lock:
            session = self.sessions.get(session_id)
            if session:
                session.last_activity = datetime.now()
            return session

    def get_session_by_flask_id(self, flask_session_id: Optional[str]) -> Optional[TripSession]:
        """Get the session of a browser by its Flask session ID."""
        if not flask_session_id:
            return None
        with self.lock:
            for session in self.sessions.values():
                if session.flask_session_id == flask_session_id:
                    session.last_activity = datetime.now()
                    return session
            return None

    def record_mutation(self, session: TripSession, committed: bool) -> None:
        """Update session statistics after a controller call."""
        if committed:
            session.mutation_count += 1
        else:
            session.rejected_count += 1
        session.last_activity = datetime.now()

    def remove_session(self, session_id: str, reason: str = "manual"):
        """Completely remove a session.

        Args:
            session_id: Session ID to remove
            reason: Reason for removal
        """
        with self.lock:
            session = self.sessions.pop(session_id, None)
            if not session:
                return

            duration = (datetime.now() - session.created_at).total_seconds()
            logger.info(
                f"Removed session {session_id} - "
                f"Reason: {reason}, Duration: {duration:.1f}s, "
                f"Mutations: {session.mutation_count}, "
                f"Rejected: {session.rejected_count}"
            )

    def get_stats(self) -> Dict[str, Any]:
        """Get overall session manager statistics."""
        with self.lock:
            return {
                "total_sessions": len(self.sessions),
                "total_mutations": sum(s.mutation_count for s in self.sessions.values()),
                "total_rejected": sum(s.rejected_count for s in self.sessions.values()),
                "total_allocation_passes": sum(
                    s.controller.allocation_passes for s in self.sessions.values()
                ),
                "config": {
                    "max_sessions": self.config["max_sessions"],
                    "timeout_seconds": self.config["session_timeout_seconds"]
                }
            }

    def _cleanup_loop(self):
        """Background thread to clean up expired sessions."""
        while True:
            try:
                time.sleep(self.config.get("cleanup_interval_seconds", 30))
                self.cleanup_expired_sessions()
            except Exception as e:
                logger.error(f"Error in cleanup loop: {e}")

    def cleanup_expired_sessions(self) -> int:
        """Remove sessions idle for longer than the timeout."""
        timeout_seconds = self.config["session_timeout_seconds"]
        cutoff_time = datetime.now() - timedelta(seconds=timeout_seconds)

        with self.lock:
            expired_sessions = [
                sid for sid, session in self.sessions.items()
                if session.last_activity < cutoff_time
            ]

        for sid in expired_sessions:
            self.remove_session(sid, "timeout")

        if expired_sessions:
            logger.info(f"Cleaned up {len(expired_sessions)} expired sessions")
        return len(expired_sessions)


# Global session manager instance
_session_manager = None


def get_session_manager() -> TripSessionManager:
    """Get the global TripSessionManager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = TripSessionManager()
    return _session_manager
