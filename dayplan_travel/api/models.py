"""Shared data structures for multi-destination trips.

A trip owns an ordered set of destinations (each with a night allocation)
and one calendar day per date of the trip. Which destination a day belongs
to is derived by the allocator in ``api.core.allocator``; nothing else
writes ``CalendarDay.destination_id``.

The JSON shape produced by ``to_dict`` uses camelCase keys because it is
consumed directly by the front-end surfaces.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional


def new_id() -> str:
    return str(uuid.uuid4())


def parse_date(value: Any) -> date:
    """Parse an ISO calendar date (``YYYY-MM-DD``), raising ValueError."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid date: {value!r}")
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def calculate_trip_nights(start_date: Any, end_date: Any) -> int:
    """Number of nights between two dates, inclusive range, never negative."""
    start = parse_date(start_date)
    end = parse_date(end_date)
    return max(0, (end - start).days)


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Coordinates"]:
        if not data:
            return None
        try:
            return cls(lat=float(data["lat"]), lng=float(data["lng"]))
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Invalid coordinates: {data!r}") from None


@dataclass
class Destination:
    """A stop on a multi-destination trip."""

    id: str
    name: str = ""
    order: int = 0  # visit sequence, unique per trip, gaps allowed
    nights: int = 0  # 0 = listed but not scheduled
    start_date: Optional[str] = None  # derived
    end_date: Optional[str] = None  # derived
    coordinates: Optional[Coordinates] = None

    @property
    def is_active(self) -> bool:
        return self.nights > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "nights": self.nights,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Destination":
        if not isinstance(data, dict):
            raise ValueError("Destination must be an object")

        try:
            nights = int(data.get("nights", 0) or 0)
            order = int(data.get("order", 0) or 0)
        except (TypeError, ValueError):
            raise ValueError("Destination nights and order must be integers") from None

        if nights < 0:
            raise ValueError(f"Destination nights cannot be negative: {nights}")

        return cls(
            id=str(data.get("id") or new_id()),
            name=str(data.get("name") or ""),
            order=order,
            nights=nights,
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            coordinates=Coordinates.from_dict(data.get("coordinates")),
        )


@dataclass(frozen=True)
class CalendarDay:
    """One calendar date of a trip; only ``destination_id`` is ever derived."""

    id: str
    date: str
    destination_id: Optional[str] = None

    @property
    def is_orphan(self) -> bool:
        return self.destination_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "destinationId": self.destination_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarDay":
        if not isinstance(data, dict):
            raise ValueError("Day must be an object")
        return cls(
            id=str(data.get("id") or new_id()),
            date=parse_date(data.get("date")).isoformat(),
            destination_id=data.get("destinationId"),
        )


def generate_days(start_date: Any, end_date: Any) -> List[CalendarDay]:
    """Create one CalendarDay per date from start to end, both inclusive."""
    start = parse_date(start_date)
    end = parse_date(end_date)
    if end < start:
        raise ValueError("Trip end date is before its start date")

    return [
        CalendarDay(id=new_id(), date=(start + timedelta(days=offset)).isoformat())
        for offset in range(calculate_trip_nights(start, end) + 1)
    ]


@dataclass
class Trip:
    """The trip aggregate: destinations plus the fixed day sequence."""

    id: str
    title: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    destinations: List[Destination] = field(default_factory=list)
    days: List[CalendarDay] = field(default_factory=list)
    updated_at: Optional[str] = None

    @property
    def total_nights(self) -> int:
        return max(0, len(self.days) - 1)

    @property
    def allocated_nights(self) -> int:
        return sum(d.nights for d in self.destinations)

    @property
    def remaining_nights(self) -> int:
        return self.total_nights - self.allocated_nights

    def get_destination(self, destination_id: Optional[str]) -> Optional[Destination]:
        for destination in self.destinations:
            if destination.id == destination_id:
                return destination
        return None

    def get_day(self, day_id: Optional[str]) -> Optional[CalendarDay]:
        for day in self.days:
            if day.id == day_id:
                return day
        return None

    def day_index(self, day_id: Optional[str]) -> int:
        for index, day in enumerate(self.days):
            if day.id == day_id:
                return index
        return -1

    def touch(self) -> None:
        self.updated_at = datetime.now().isoformat()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "destinations": [d.to_dict() for d in self.destinations],
            "days": [d.to_dict() for d in self.days],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trip":
        """Rebuild a trip from its persisted JSON shape.

        Only ``id/order/nights`` on destinations and ``id/date`` on days are
        authoritative; cached ``destinationId``/``startDate``/``endDate``
        values are carried but get re-derived by the next allocation pass.
        When no day array is stored, days are generated from the trip's
        start and end dates.

        Raises:
            ValueError: If the payload is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Trip must be an object")

        destinations = [Destination.from_dict(d) for d in data.get("destinations") or []]
        destination_ids = [d.id for d in destinations]
        if len(set(destination_ids)) != len(destination_ids):
            raise ValueError("Duplicate destination ids")

        start_date = data.get("startDate")
        end_date = data.get("endDate")

        raw_days = data.get("days")
        if raw_days:
            days = [CalendarDay.from_dict(d) for d in raw_days]
        elif start_date and end_date:
            days = generate_days(start_date, end_date)
        else:
            raise ValueError("Trip needs either a day array or startDate and endDate")

        day_ids = [d.id for d in days]
        if len(set(day_ids)) != len(day_ids):
            raise ValueError("Duplicate day ids")

        return cls(
            id=str(data.get("id") or new_id()),
            title=str(data.get("title") or ""),
            start_date=start_date or days[0].date,
            end_date=end_date or days[-1].date,
            destinations=destinations,
            days=days,
            updated_at=data.get("updatedAt"),
        )
