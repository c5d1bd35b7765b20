# dayplan_travel/routes/travel.py
"""Travel routes and blueprint configuration."""

import logging

from flask import Blueprint, jsonify, request

from dayplan_travel.api.config import get_google_maps_config
from dayplan_travel.api.services.trip_service import TripService
from dayplan_travel.routes.websocket.base import NAMESPACE
from dayplan_travel.routes.websocket.callback_helpers import wire_controller_callbacks

logger = logging.getLogger(__name__)


def create_travel_blueprint(manager, socketio=None):
    """Create and configure the travel blueprint.

    Args:
        manager: TripSessionManager holding the per-browser controllers
        socketio: Optional Flask-SocketIO instance; when given, changes made
            over HTTP are pushed to the browser's Socket.IO room too

    Returns:
        Configured Flask Blueprint
    """
    travel_bp = Blueprint("travel", __name__, url_prefix="/travel")

    def _current():
        trip_session = TripService.get_current(manager)
        if trip_session is None:
            return None, (jsonify({"error": "No trip loaded"}), 404)
        return trip_session, None

    def _run(name, args):
        trip_session, error = _current()
        if error:
            return error
        try:
            result = TripService.dispatch(manager, trip_session, name, args)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({
            "result": result.to_dict(),
            "state": TripService.state_payload(trip_session),
        })

    @travel_bp.before_request
    def bind_session():
        TripService.ensure_flask_session_id()

    @travel_bp.route("/api/config")
    def api_config():
        """Return Google Maps configuration for the map views."""
        config = get_google_maps_config()

        if config.get("api_key"):
            return jsonify({
                "auth_type": "api_key",
                "google_maps_api_key": config["api_key"],
                "google_maps_client_id": config.get("client_id", ""),
                "client_secret_configured": bool(config.get("client_secret"))
            })
        else:
            return jsonify({
                "error": "No Google Maps API key configured"
            }), 500

    @travel_bp.route("/api/trip", methods=["GET", "POST", "DELETE"])
    def api_trip():
        """Load, retrieve or drop the browser's trip."""
        if request.method == "POST":
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({"error": "Expected a JSON trip"}), 400
            try:
                trip_session = TripService.load_trip(manager, data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            except RuntimeError as e:
                return jsonify({"error": str(e)}), 503

            if socketio is not None:
                wire_controller_callbacks(socketio, trip_session, NAMESPACE)
            return jsonify(TripService.state_payload(trip_session)), 201

        if request.method == "DELETE":
            TripService.clear(manager)
            return jsonify({"status": "cleared"})

        trip_session, error = _current()
        if error:
            return error
        return jsonify(TripService.state_payload(trip_session))

    @travel_bp.route("/api/trip/destinations", methods=["POST"])
    def add_destination():
        return _run("add_destination", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/destinations/<destination_id>", methods=["DELETE"])
    def remove_destination(destination_id):
        return _run("remove_destination", {"destination_id": destination_id})

    @travel_bp.route("/api/trip/destinations/order", methods=["PUT"])
    def reorder_destinations():
        return _run("reorder", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/destinations/<destination_id>/nights", methods=["POST"])
    def change_nights(destination_id):
        data = request.get_json(silent=True) or {}
        if "nights" in data:
            return _run("set_nights", {"destination_id": destination_id, "nights": data["nights"]})
        return _run("change_nights", {"destination_id": destination_id, "delta": data.get("delta")})

    @travel_bp.route("/api/trip/dates", methods=["PUT"])
    def change_dates():
        return _run("change_dates", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/selection/day", methods=["POST"])
    def select_day():
        return _run("select_day", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/selection/destination", methods=["POST"])
    def select_destination():
        return _run("select_destination", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/selection/navigate", methods=["POST"])
    def navigate():
        return _run("navigate", request.get_json(silent=True) or {})

    @travel_bp.route("/api/trip/view", methods=["PUT"])
    def set_view():
        return _run("set_view", request.get_json(silent=True) or {})

    @travel_bp.route("/health")
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok", "service": "travel", "sessions": manager.get_stats()})

    return travel_bp


__all__ = ['create_travel_blueprint']
