from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Dict, Iterable

import googlemaps
from googlemaps.exceptions import Timeout, TransportError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dayplan_travel.api.config import get_geocoding_config, get_google_maps_config
from dayplan_travel.api.models import Coordinates, Destination

logger = logging.getLogger(__name__)

_gmaps: googlemaps.Client | None = None


def _get_client() -> googlemaps.Client | None:
    """Return a cached googlemaps.Client instance, or None without a key."""
    global _gmaps
    if _gmaps is None:
        try:
            cfg = get_google_maps_config()
            api_key = cfg.get("api_key", "")
            if not api_key:
                logger.error("No Google Maps API key found in config")
                return None
            logger.info(f"Initializing Google Maps client with key: {api_key[:10]}...")
            _gmaps = googlemaps.Client(key=api_key)
        except Exception as e:
            logger.error(f"Failed to initialize Google Maps client: {e}")
            return None
    return _gmaps


@retry(
    retry=retry_if_exception_type((Timeout, TransportError)),
    stop=stop_after_attempt(get_geocoding_config()["max_attempts"]),
    wait=wait_exponential(multiplier=0.5, max=4),
    reraise=True,
)
def _geocode(client: googlemaps.Client, place: str) -> list:
    return client.geocode(place, language=get_geocoding_config()["language"])


@lru_cache(maxsize=1000)
def _lookup(place: str) -> tuple[float, float] | None:
    # Transport errors propagate so they are not cached
    client = _get_client()
    if client is None:
        return None

    results = _geocode(client, place)
    if not results:
        logger.warning(f"No results found for place: {place}")
        return None

    loc = results[0]["geometry"]["location"]
    return loc["lat"], loc["lng"]


def get_coordinates_for_place(place: str) -> Coordinates | None:
    """Resolve a free-text place name to Coordinates or None if not found."""
    if not place:
        return None
    try:
        found = _lookup(place)
    except Exception as e:
        logger.error(f"Geocoding error for '{place}': {e}")
        return None

    if found is None:
        return None
    logger.debug(f"Geocoded {place} to {found[0]}, {found[1]}")
    return Coordinates(lat=found[0], lng=found[1])


def geocode_destinations(destinations: Iterable[Destination]) -> Dict[str, Coordinates]:
    """Coordinates for every destination that has a name but no location yet.

    Never raises; destinations that fail to resolve are simply absent from
    the result.
    """
    results = {}
    start_time = time.time()
    attempted = 0

    for destination in destinations:
        if destination.coordinates is not None or not destination.name:
            continue
        attempted += 1
        coords = get_coordinates_for_place(destination.name)
        if coords:
            results[destination.id] = coords
        else:
            logger.warning(f"Failed to geocode '{destination.name}'")

    if attempted:
        duration = time.time() - start_time
        logger.info(f"Geocoded {len(results)}/{attempted} destinations in {duration:.2f}s")
    return results


__all__ = [
    "get_coordinates_for_place",
    "geocode_destinations",
]
