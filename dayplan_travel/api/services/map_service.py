# dayplan_travel/api/services/map_service.py
"""Service layer for map-related operations."""

import logging
import math
from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Sequence

from dayplan_travel.api.core.allocator import sort_destinations
from dayplan_travel.api.core.selection import SelectionState
from dayplan_travel.api.core.transfer import Transfer
from dayplan_travel.api.geocoding import geocode_destinations
from dayplan_travel.api.models import Coordinates, Destination, Trip

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class MapService:
    """Handles map-related calculations for the trip views."""

    @staticmethod
    def validate_coordinates(lat: float, lng: float) -> bool:
        """Validate that coordinates are within valid ranges.

        Args:
            lat: Latitude
            lng: Longitude

        Returns:
            True if valid, False otherwise
        """
        return -90 <= lat <= 90 and -180 <= lng <= 180

    @staticmethod
    def distance_km(a: Coordinates, b: Coordinates) -> float:
        """Great-circle distance between two points in kilometres."""
        lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
        dlat = lat2 - lat1
        dlng = math.radians(b.lng - a.lng)
        h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
        return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))

    @staticmethod
    def distances_from_previous(destinations: Sequence[Destination]) -> Dict[str, Optional[int]]:
        """Distance in whole km from the previous located destination in visit order.

        The first located destination, and any destination without
        coordinates, maps to None.
        """
        distances: Dict[str, Optional[int]] = {}
        previous: Optional[Coordinates] = None

        for destination in sort_destinations(destinations):
            if destination.coordinates is None:
                distances[destination.id] = None
                continue
            if previous is None:
                distances[destination.id] = None
            else:
                distances[destination.id] = round(MapService.distance_km(previous, destination.coordinates))
            previous = destination.coordinates

        return distances

    @staticmethod
    def calculate_bounds(destinations: Sequence[Destination]) -> Dict[str, Any]:
        """Calculate bounding box for all located destinations.

        Args:
            destinations: Trip destinations

        Returns:
            Dictionary with north, south, east, west bounds
        """
        located = [d.coordinates for d in destinations if d.coordinates is not None]
        if not located:
            return {}

        lats = [c.lat for c in located]
        lngs = [c.lng for c in located]

        return {
            'north': max(lats),
            'south': min(lats),
            'east': max(lngs),
            'west': min(lngs)
        }

    @staticmethod
    def focus_for_selection(trip: Trip, selection: SelectionState) -> Dict[str, Any]:
        """Where the map should recenter for the current selection.

        Focuses the selected destination when it has coordinates, otherwise
        fits all located destinations.
        """
        selected = trip.get_destination(selection.selected_destination_id)
        if selected is not None and selected.coordinates is not None:
            return {
                'mode': 'destination',
                'destination_id': selected.id,
                'center': selected.coordinates.to_dict(),
            }

        bounds = MapService.calculate_bounds(trip.destinations)
        if bounds:
            return {
                'mode': 'bounds',
                'destination_id': None,
                'bounds': bounds,
                'center': {
                    'lat': (bounds['north'] + bounds['south']) / 2,
                    'lng': (bounds['east'] + bounds['west']) / 2,
                },
            }

        return {'mode': 'none', 'destination_id': None}

    @staticmethod
    def describe_transfer(transfer: Transfer, mode: str = "driving") -> Dict[str, Any]:
        """Transfer payload with distance and a rough travel time when both ends are located."""
        info = transfer.to_dict()
        start = transfer.from_destination.coordinates if transfer.from_destination else None
        end = transfer.to_destination.coordinates if transfer.to_destination else None

        if start is not None and end is not None:
            distance = MapService.distance_km(start, end)
            info['distanceKm'] = round(distance)
            info['estimatedMinutes'] = MapService.estimate_travel_time(distance * 1000, mode)
        return info

    @staticmethod
    def estimate_travel_time(distance_meters: float, mode: str = "driving") -> int:
        """Estimate travel time based on distance and mode.

        Args:
            distance_meters: Distance in meters
            mode: Travel mode (driving, walking, transit)

        Returns:
            Estimated time in minutes
        """
        # Average speeds in meters per minute
        speeds = {
            "driving": 1333,   # ~80 km/h between cities
            "transit": 1000,   # ~60 km/h
            "flying": 12000,   # ~720 km/h
        }

        speed = speeds.get(mode, speeds["driving"])
        return max(1, int(distance_meters / speed))

    @staticmethod
    def locate_destinations(controller, lock=None) -> List[str]:
        """Geocode destinations lacking coordinates and store them via the controller.

        Runs after the allocation pass that added them; scheduling never
        waits on it. The network lookups happen outside ``lock``; only the
        write-back through the controller is done while holding it.

        Returns:
            Ids of destinations that were located
        """
        found = geocode_destinations(list(controller.trip.destinations))
        if not found:
            return []

        located = []
        with lock or nullcontext():
            for destination_id, coords in found.items():
                if not MapService.validate_coordinates(coords.lat, coords.lng):
                    logger.warning(f"Discarding out-of-range coordinates for {destination_id}")
                    continue
                # The destination may have been removed while we were geocoding
                if controller.set_coordinates(destination_id, coords).committed:
                    located.append(destination_id)
        return located


# Export for use in other modules
__all__ = ['MapService']
