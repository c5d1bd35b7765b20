"""Helper functions for wiring controller notifications to Socket.IO events."""

import logging

from dayplan_travel.api.core.allocator import allocation_summary
from dayplan_travel.api.core.transfer import list_transfers
from dayplan_travel.api.services.map_service import MapService

logger = logging.getLogger(__name__)


def wire_controller_callbacks(socketio, trip_session, namespace: str = "/travel/ws") -> None:
    """
    Bridge ReconciliationController notifications → Socket.IO events.

    Every view of the browser (rail, calendar strip, map, timeline) joins the
    room named after the Flask session ID, so one mutation reaches all of
    them with the same data. Wiring is done once per trip session.
    """
    if trip_session.callbacks_wired:
        return

    controller = trip_session.controller
    room = trip_session.flask_session_id

    def _emit(event: str, data: dict) -> None:
        try:
            socketio.emit(event, data, room=room, namespace=namespace)
        except Exception as exc:
            logger.exception("Failed emitting %s: %s", event, exc)

    # -- day assignments ------------------------------------------------------
    def _on_days(days) -> None:
        trip = controller.trip
        _emit(
            "day_assignments_changed",
            {
                "days": [day.to_dict() for day in days],
                "transfers": [
                    MapService.describe_transfer(t)
                    for t in list_transfers(days, trip.destinations)
                ],
                "summary": allocation_summary(trip.destinations, days),
            },
        )

    # -- destinations ---------------------------------------------------------
    def _on_destinations(destinations) -> None:
        _emit(
            "destinations_changed",
            {
                "destinations": [d.to_dict() for d in destinations],
                "distances": MapService.distances_from_previous(destinations),
            },
        )

    # -- selection ------------------------------------------------------------
    def _on_selection(state) -> None:
        _emit(
            "selection_changed",
            {
                "selection": state.to_dict(),
                "mapFocus": MapService.focus_for_selection(controller.trip, state),
            },
        )

    # -- warnings -------------------------------------------------------------
    def _on_warning(warning) -> None:
        logger.debug(f"Validation warning for {room}: {warning.kind.value}")
        _emit("validation_warning", warning.to_dict())

    controller.add_listener("day_assignments_changed", _on_days)
    controller.add_listener("destinations_changed", _on_destinations)
    controller.add_listener("selection_changed", _on_selection)
    controller.add_listener("validation_warning", _on_warning)
    trip_session.callbacks_wired = True
    logger.info(f"Wired controller callbacks for session {trip_session.session_id} → room {room}")
