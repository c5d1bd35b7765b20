# dayplan_travel/api/services/trip_service.py
"""Service layer shared by the HTTP routes and the Socket.IO handlers."""

import logging
import secrets
import threading
from typing import Any, Callable, Dict, Optional

from flask import session

from dayplan_travel.api.core.reconciler import ReconciliationController
from dayplan_travel.api.core.transfer import list_transfers
from dayplan_travel.api.core.validation import MutationResult
from dayplan_travel.api.models import Trip
from dayplan_travel.api.services.map_service import MapService
from dayplan_travel.api.services.session_manager import TripSession, TripSessionManager

logger = logging.getLogger(__name__)


def _require(args: Dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if args.get(k) is None]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")


def _reorder(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "destination_ids")
    ids = args["destination_ids"]
    if not isinstance(ids, list):
        raise ValueError("destination_ids must be a list")
    return controller.on_reorder(ids)


def _change_nights(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "destination_id", "delta")
    return controller.on_night_count_change(args["destination_id"], _as_int(args["delta"], "delta"))


def _set_nights(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "destination_id", "nights")
    return controller.set_nights(args["destination_id"], _as_int(args["nights"], "nights"))


def _add_destination(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    destination = args.get("destination", args)
    if not isinstance(destination, dict) or not destination.get("name"):
        raise ValueError("Destination needs a name")
    return controller.on_add_destination(destination)


def _remove_destination(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "destination_id")
    return controller.on_remove_destination(args["destination_id"])


def _change_dates(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "start_date", "end_date")
    return controller.on_date_range_change(args["start_date"], args["end_date"])


def _select_day(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    _require(args, "day_id")
    return controller.select_day(args["day_id"])


def _select_destination(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    # None clears the destination selection
    return controller.select_destination(args.get("destination_id"))


_NAVIGATION = {
    "next_day": lambda c: c.select_adjacent_day(1),
    "previous_day": lambda c: c.select_adjacent_day(-1),
    "next_destination": lambda c: c.select_adjacent_destination(1),
    "previous_destination": lambda c: c.select_adjacent_destination(-1),
}


def _navigate(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    direction = args.get("direction")
    if direction not in _NAVIGATION:
        raise ValueError(f"direction must be one of: {', '.join(_NAVIGATION)}")
    return _NAVIGATION[direction](controller)


def _set_view(controller: ReconciliationController, args: Dict[str, Any]) -> MutationResult:
    committed = False
    if "expanded" in args:
        committed |= controller.set_expanded_view(args["expanded"]).committed
    if "mini_map_visible" in args:
        committed |= controller.set_mini_map_visible(args["mini_map_visible"]).committed
    return MutationResult(committed=committed)


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer") from None


# Operation registry
OPERATIONS: Dict[str, Callable[[ReconciliationController, Dict[str, Any]], MutationResult]] = {
    "reorder": _reorder,
    "change_nights": _change_nights,
    "set_nights": _set_nights,
    "add_destination": _add_destination,
    "remove_destination": _remove_destination,
    "change_dates": _change_dates,
    "select_day": _select_day,
    "select_destination": _select_destination,
    "navigate": _navigate,
    "set_view": _set_view,
}


class TripService:
    """Handles trip loading, session binding and operation dispatch."""

    @staticmethod
    def ensure_flask_session_id(fallback: Optional[str] = None) -> str:
        """Return the browser's Flask session ID, creating one if needed."""
        if '_id' not in session:
            session['_id'] = fallback or f"anon_{secrets.token_urlsafe(12)}"
            session.modified = True
        return session['_id']

    @staticmethod
    def load_trip(manager: TripSessionManager, data: Dict[str, Any]) -> TripSession:
        """Load a trip from its persisted JSON shape for the current browser.

        Raises:
            ValueError: If the payload is malformed
            RuntimeError: If the session manager is at capacity
        """
        trip = Trip.from_dict(data)
        flask_session_id = TripService.ensure_flask_session_id()

        trip_session = manager.create_session(flask_session_id, trip)
        if trip_session is None:
            raise RuntimeError("Server at capacity, try again later")

        TripService.store_in_session(trip)
        logger.info(f"Loaded trip {trip.id} for {flask_session_id}")
        return trip_session

    @staticmethod
    def get_current(manager: TripSessionManager) -> Optional[TripSession]:
        """Trip session of the current browser, if one is loaded."""
        return manager.get_session_by_flask_id(session.get('_id'))

    @staticmethod
    def store_in_session(trip: Trip) -> None:
        """Remember which trip this browser has open."""
        session['current_trip_id'] = trip.id
        session['current_trip_title'] = trip.title
        session.modified = True
        logger.debug(f"Stored trip {trip.id} in session")

    @staticmethod
    def get_session_info(manager: TripSessionManager) -> Dict[str, Any]:
        trip_session = TripService.get_current(manager)
        return {
            'has_trip': trip_session is not None,
            'current_trip_id': session.get('current_trip_id'),
            'current_trip_title': session.get('current_trip_title'),
        }

    @staticmethod
    def clear(manager: TripSessionManager) -> None:
        """Drop the current browser's trip session."""
        trip_session = TripService.get_current(manager)
        if trip_session:
            manager.remove_session(trip_session.session_id, "cleared")
        for key in ['current_trip_id', 'current_trip_title']:
            session.pop(key, None)
        session.modified = True
        logger.debug("Cleared trip from session")

    @staticmethod
    def dispatch(
        manager: TripSessionManager,
        trip_session: TripSession,
        name: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> MutationResult:
        """Run a named operation against the session's controller.

        Raises:
            ValueError: If the operation is unknown or its arguments are malformed
        """
        if name not in OPERATIONS:
            raise ValueError(f"Unknown operation: {name}")

        with trip_session.lock:
            result = OPERATIONS[name](trip_session.controller, args or {})
        manager.record_mutation(trip_session, result.committed)

        if name == "add_destination" and result.committed:
            TripService.locate_in_background(trip_session)

        return result

    @staticmethod
    def locate_in_background(trip_session: TripSession) -> threading.Thread:
        """Geocode destinations lacking coordinates without holding up the caller.

        Coordinates arrive later through ``set_coordinates`` and reach the
        views as a ``destinations_changed`` event.
        """
        def _locate():
            try:
                located = MapService.locate_destinations(trip_session.controller, trip_session.lock)
                if located:
                    logger.info(f"Located {located} for session {trip_session.session_id}")
            except Exception as e:
                logger.error(f"Background geocoding failed for {trip_session.session_id}: {e}")

        thread = threading.Thread(target=_locate, daemon=True)
        trip_session.locate_thread = thread
        thread.start()
        return thread

    @staticmethod
    def state_payload(trip_session: TripSession) -> Dict[str, Any]:
        """Full state for a view: trip, summary, transfers, selection, map focus."""
        with trip_session.lock:
            controller = trip_session.controller
            trip = controller.trip
            payload = controller.snapshot()
            payload['transfers'] = [
                MapService.describe_transfer(t)
                for t in list_transfers(trip.days, trip.destinations)
            ]
            payload['distances'] = MapService.distances_from_previous(trip.destinations)
            payload['mapFocus'] = MapService.focus_for_selection(trip, controller.selection)
        return payload


__all__ = ['TripService', 'OPERATIONS']
