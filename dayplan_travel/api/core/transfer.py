"""Transfer day classification.

A transfer day is a day whose destination differs from the previous day's.
Unassigned days are gaps, never transfers. This is always computed from
the allocated day sequence and never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from dayplan_travel.api.models import CalendarDay, Destination


@dataclass(frozen=True)
class Transfer:
    day_index: int
    day_id: str
    from_destination_id: str
    to_destination_id: str
    from_destination: Optional[Destination] = None
    to_destination: Optional[Destination] = None

    def to_dict(self) -> dict:
        return {
            "dayIndex": self.day_index,
            "dayId": self.day_id,
            "fromDestinationId": self.from_destination_id,
            "toDestinationId": self.to_destination_id,
            "fromName": self.from_destination.name if self.from_destination else None,
            "toName": self.to_destination.name if self.to_destination else None,
        }


def is_transfer_day(
    day_index: int,
    days: Sequence[CalendarDay],
    destinations: Optional[Sequence[Destination]] = None,
) -> bool:
    """True if the day at ``day_index`` moves from one destination to another."""
    if day_index <= 0 or day_index >= len(days):
        return False

    current = days[day_index].destination_id
    previous = days[day_index - 1].destination_id
    if current is None or previous is None:
        return False
    return current != previous


def get_transfer(
    day_index: int,
    days: Sequence[CalendarDay],
    destinations: Optional[Sequence[Destination]] = None,
) -> Optional[Transfer]:
    """The from/to pair for a transfer day, or None if it is not one.

    When ``destinations`` is given the matching Destination objects are
    attached as well.
    """
    if not is_transfer_day(day_index, days, destinations):
        return None

    from_id = days[day_index - 1].destination_id
    to_id = days[day_index].destination_id
    by_id = {d.id: d for d in destinations or []}

    return Transfer(
        day_index=day_index,
        day_id=days[day_index].id,
        from_destination_id=from_id,
        to_destination_id=to_id,
        from_destination=by_id.get(from_id),
        to_destination=by_id.get(to_id),
    )


def list_transfers(
    days: Sequence[CalendarDay],
    destinations: Optional[Sequence[Destination]] = None,
) -> List[Transfer]:
    transfers = []
    for index in range(1, len(days)):
        transfer = get_transfer(index, days, destinations)
        if transfer is not None:
            transfers.append(transfer)
    return transfers


__all__ = ["Transfer", "is_transfer_day", "get_transfer", "list_transfers"]
