"""Day allocation: which calendar day belongs to which destination.

A destination with ``n`` nights spans ``n + 1`` calendar days (arrival day
through departure morning). Between two consecutive destinations the
departure morning of the first is the arrival day of the second, so every
active destination except the last one claims exactly ``n`` days and the
last active destination claims ``n + 1``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from dayplan_travel.api.models import CalendarDay, Destination, parse_date


def sort_destinations(destinations: Sequence[Destination]) -> List[Destination]:
    """Destinations in visit order; equal ``order`` values keep input order."""
    return sorted(destinations, key=lambda d: d.order)


def compute_assignments(destinations: Sequence[Destination], day_count: int) -> List[Optional[str]]:
    """Destination id for each of ``day_count`` days (None for orphans)."""
    ordered = sort_destinations(destinations)
    assignments: List[Optional[str]] = [None] * day_count
    day_index = 0

    for position, destination in enumerate(ordered):
        if day_index >= day_count:
            break
        if not destination.is_active:
            continue

        has_following_active = any(d.is_active for d in ordered[position + 1:])
        span = destination.nights if has_following_active else destination.nights + 1

        end = min(day_index + span, day_count)
        for index in range(day_index, end):
            assignments[index] = destination.id
        day_index = end

    return assignments


def allocate(destinations: Sequence[Destination], days: Sequence[CalendarDay]) -> List[CalendarDay]:
    """Stamp every day with the destination it belongs to.

    Returns a new list. Days whose assignment is unchanged are returned as
    the very same objects; the others are copies differing only in
    ``destination_id``.
    """
    assignments = compute_assignments(destinations, len(days))
    return [
        day if day.destination_id == assigned else replace(day, destination_id=assigned)
        for day, assigned in zip(days, assignments)
    ]


def assignments_differ(old_days: Sequence[CalendarDay], new_days: Sequence[CalendarDay]) -> bool:
    """True if any day changed destination (or the day sequence changed)."""
    if len(old_days) != len(new_days):
        return True
    return any(
        old.id != new.id or old.destination_id != new.destination_id
        for old, new in zip(old_days, new_days)
    )


def derive_destination_dates(
    destinations: Sequence[Destination], days: Sequence[CalendarDay]
) -> List[Destination]:
    """Recompute ``start_date``/``end_date`` from an allocated day sequence.

    ``start_date`` is the first day the destination owns and ``end_date`` is
    its departure morning (``start_date + nights``). Destinations that own
    no day get no dates. Destinations whose dates are unchanged are returned
    as the same objects.
    """
    first_day: Dict[str, str] = {}
    for day in days:
        if day.destination_id is not None and day.destination_id not in first_day:
            first_day[day.destination_id] = day.date

    result = []
    for destination in destinations:
        start = first_day.get(destination.id) if destination.is_active else None
        end = None
        if start is not None:
            end = (parse_date(start) + timedelta(days=destination.nights)).isoformat()

        if destination.start_date == start and destination.end_date == end:
            result.append(destination)
        else:
            result.append(replace(destination, start_date=start, end_date=end))
    return result


def over_allocation(destinations: Sequence[Destination], days: Sequence[CalendarDay]) -> int:
    """Nights requested beyond what the trip holds (0 when it all fits)."""
    total_nights = max(0, len(days) - 1)
    allocated = sum(max(0, d.nights) for d in destinations)
    return max(0, allocated - total_nights)


def orphan_days(days: Sequence[CalendarDay]) -> List[CalendarDay]:
    return [day for day in days if day.is_orphan]


def allocation_summary(destinations: Sequence[Destination], days: Sequence[CalendarDay]) -> dict:
    """Counts the destination rail and calendar strip display."""
    total_nights = max(0, len(days) - 1)
    allocated = sum(max(0, d.nights) for d in destinations)
    counts = Counter(day.destination_id for day in days if day.destination_id is not None)

    return {
        "total_nights": total_nights,
        "allocated_nights": allocated,
        "remaining_nights": total_nights - allocated,
        "over_allocated_by": max(0, allocated - total_nights),
        "orphan_days": len(orphan_days(days)),
        "days_per_destination": {d.id: counts.get(d.id, 0) for d in destinations},
    }


__all__ = [
    "allocate",
    "allocation_summary",
    "assignments_differ",
    "compute_assignments",
    "derive_destination_dates",
    "orphan_days",
    "over_allocation",
    "sort_destinations",
]
