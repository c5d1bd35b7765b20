"""Reconciliation controller: the single writer of day assignments.

Every mutation of a trip (reorder, night change, add/remove destination,
date range change) goes through one method here. Each method builds the
new destination list and hands it to ``_commit``, which runs exactly one
allocation pass over the whole trip and exactly one selection
reconciliation, then notifies listeners.

Listeners (``add_listener``) receive:

* ``day_assignments_changed(days)`` - only when a day changed destination
* ``destinations_changed(destinations)`` - order/nights/derived dates changed
* ``selection_changed(state)`` - a new SelectionState version was published
* ``validation_warning(warning)`` - advisory, never an exception
"""

import logging
import time
from collections import defaultdict
from dataclasses import replace
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from dayplan_travel.api.config import get_reconcile_config
from dayplan_travel.api.core.allocator import (
    allocate,
    allocation_summary,
    assignments_differ,
    derive_destination_dates,
    over_allocation,
    sort_destinations,
)
from dayplan_travel.api.core.selection import SelectionState, SelectionStore
from dayplan_travel.api.core.transfer import list_transfers
from dayplan_travel.api.core.validation import MutationResult, ValidationWarning, WarningKind
from dayplan_travel.api.models import (
    CalendarDay,
    Coordinates,
    Destination,
    Trip,
    calculate_trip_nights,
    new_id,
    parse_date,
)

logger = logging.getLogger(__name__)

EVENTS = (
    "day_assignments_changed",
    "destinations_changed",
    "selection_changed",
    "validation_warning",
)

DestinationRef = Union[Destination, str]


class ReconciliationController:
    """Owns a trip's day assignments and keeps the selection consistent."""

    def __init__(
        self,
        trip: Trip,
        store: Optional[SelectionStore] = None,
        debounce_ms: Optional[int] = None,
        auto_fill_single: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = get_reconcile_config()
        if debounce_ms is None:
            debounce_ms = config["debounce_ms"]
        if auto_fill_single is None:
            auto_fill_single = config["auto_fill_single"]

        self.trip = trip
        self.store = store or SelectionStore()
        self.debounce_seconds = max(0, debounce_ms) / 1000.0
        self.auto_fill_single = auto_fill_single
        self._clock = clock

        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._committing = False
        self._last_action: Optional[tuple] = None
        self._last_commit_at: Optional[float] = None

        # Stats
        self.allocation_passes = 0
        self.rejected_count = 0

        self.store.subscribe(self._on_selection_published)
        self.load_trip(trip)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: str, callback: Callable) -> Callable[[], None]:
        """Subscribe to a controller event; returns an unsubscribe function."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

        def remove():
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return remove

    def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception as e:
                logger.exception(f"Listener for {event} failed: {e}")

    def _on_selection_published(self, state: SelectionState) -> None:
        self._emit("selection_changed", state)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def load_trip(self, trip: Trip) -> MutationResult:
        """Make ``trip`` current: reset the selection and run the initial pass."""
        self.trip = trip
        self._last_action = None
        self._last_commit_at = None
        # Published once, by the reconciliation below
        self.store.reset(notify=False)
        logger.info(f"Loaded trip {trip.id} ({len(trip.destinations)} destinations, {len(trip.days)} days)")
        return self._commit(list(trip.destinations), ("load", trip.id), force_notify=True)

    def on_reorder(self, ordered: Sequence[DestinationRef]) -> MutationResult:
        """Apply a new visit order; ``ordered`` holds every destination (or its id)."""
        blocked = self._guard()
        if blocked:
            return blocked

        ids = [item.id if isinstance(item, Destination) else str(item) for item in ordered]
        current = {d.id: d for d in self.trip.destinations}
        if len(ids) != len(current) or set(ids) != set(current):
            return self._reject(
                WarningKind.INVALID_REORDER,
                "Reorder must list every destination exactly once",
                {"received": ids, "expected": sorted(current)},
            )

        action = ("reorder", tuple(ids))
        if self._is_duplicate(action):
            return self._duplicate(action)

        reordered = []
        for position, destination_id in enumerate(ids):
            destination = current[destination_id]
            if destination.order != position:
                destination = replace(destination, order=position)
            reordered.append(destination)

        logger.info(f"Reorder trip {self.trip.id}: {ids}")
        return self._commit(reordered, action)

    def on_night_count_change(self, destination_id: str, delta: int) -> MutationResult:
        """Add ``delta`` nights to a destination (negative to remove)."""
        blocked = self._guard()
        if blocked:
            return blocked

        destination = self.trip.get_destination(destination_id)
        if destination is None:
            return self._reject(
                WarningKind.UNKNOWN_DESTINATION,
                f"No destination {destination_id}",
                {"destination_id": destination_id},
            )

        delta = int(delta)
        if delta == 0:
            return MutationResult(committed=False)

        details = {
            "destination_id": destination_id,
            "nights": destination.nights,
            "delta": delta,
            "remaining_nights": self.trip.remaining_nights,
        }

        if self.auto_fill_single and len(self.trip.destinations) == 1:
            return self._reject(
                WarningKind.INVALID_NIGHT_DELTA,
                "A single destination always covers the whole trip",
                details,
            )

        new_nights = destination.nights + delta
        if new_nights < 0:
            return self._reject(
                WarningKind.INVALID_NIGHT_DELTA,
                f"{destination.name or destination_id} cannot have fewer than 0 nights",
                details,
            )

        if delta > 0 and delta > self.trip.remaining_nights:
            return self._reject(
                WarningKind.INVALID_NIGHT_DELTA,
                f"Only {max(0, self.trip.remaining_nights)} unallocated nights remain",
                details,
            )

        action = ("nights", destination_id, delta)
        if self._is_duplicate(action):
            return self._duplicate(action)

        updated = [
            replace(d, nights=new_nights) if d.id == destination_id else d
            for d in self.trip.destinations
        ]
        logger.info(f"Nights for {destination_id}: {destination.nights} -> {new_nights}")
        return self._commit(updated, action)

    def set_nights(self, destination_id: str, nights: int) -> MutationResult:
        """Set an absolute night count; validated like a delta change."""
        destination = self.trip.get_destination(destination_id)
        if destination is None:
            return self._reject(
                WarningKind.UNKNOWN_DESTINATION,
                f"No destination {destination_id}",
                {"destination_id": destination_id},
            )
        return self.on_night_count_change(destination_id, int(nights) - destination.nights)

    def on_add_destination(self, new_destination: Union[Destination, dict]) -> MutationResult:
        """Append a destination after every existing one."""
        blocked = self._guard()
        if blocked:
            return blocked

        if isinstance(new_destination, dict):
            try:
                new_destination = Destination.from_dict(new_destination)
            except ValueError as e:
                return self._reject(WarningKind.INVALID_DESTINATION, str(e), {})

        if new_destination.nights < 0:
            return self._reject(
                WarningKind.INVALID_DESTINATION,
                "Destination nights cannot be negative",
                {"nights": new_destination.nights},
            )

        if self.trip.get_destination(new_destination.id) is not None:
            return self._reject(
                WarningKind.DUPLICATE_DESTINATION,
                f"Destination {new_destination.id} already exists",
                {"destination_id": new_destination.id},
            )

        action = ("add", new_destination.name, new_destination.nights, new_destination.coordinates)
        if self._is_duplicate(action):
            return self._duplicate(action)

        orders = [d.order for d in self.trip.destinations]
        destination = replace(
            new_destination,
            order=max(orders) + 1 if orders else 0,
            start_date=None,
            end_date=None,
        )

        logger.info(f"Add destination {destination.id} '{destination.name}' ({destination.nights} nights)")
        result = self._commit(self.trip.destinations + [destination], action)
        result.destination_id = destination.id
        return result

    def on_remove_destination(self, destination_id: str) -> MutationResult:
        """Remove a destination; its days go to whichever destinations follow."""
        blocked = self._guard()
        if blocked:
            return blocked

        if self.trip.get_destination(destination_id) is None:
            return self._reject(
                WarningKind.UNKNOWN_DESTINATION,
                f"No destination {destination_id}",
                {"destination_id": destination_id},
            )

        action = ("remove", destination_id)
        remaining = [d for d in self.trip.destinations if d.id != destination_id]
        logger.info(f"Remove destination {destination_id}")
        return self._commit(remaining, action)

    def on_date_range_change(self, start_date: Any, end_date: Any) -> MutationResult:
        """Change the trip's date range, keeping the days that still fall in it."""
        blocked = self._guard()
        if blocked:
            return blocked

        try:
            start = parse_date(start_date)
            end = parse_date(end_date)
            if end < start:
                raise ValueError("Trip end date is before its start date")
        except ValueError as e:
            return self._reject(
                WarningKind.INVALID_DATE_RANGE,
                str(e),
                {"start_date": str(start_date), "end_date": str(end_date)},
            )

        action = ("dates", start.isoformat(), end.isoformat())
        if self._is_duplicate(action):
            return self._duplicate(action)

        existing = {day.date: day for day in self.trip.days}
        days = []
        for offset in range(calculate_trip_nights(start, end) + 1):
            iso = (start + timedelta(days=offset)).isoformat()
            days.append(existing.get(iso) or CalendarDay(id=new_id(), date=iso))

        self.trip.start_date = start.isoformat()
        self.trip.end_date = end.isoformat()
        logger.info(f"Date range for trip {self.trip.id}: {start} - {end} ({len(days)} days)")
        return self._commit(list(self.trip.destinations), action, days=days)

    def set_coordinates(self, destination_id: str, coordinates: Optional[Coordinates]) -> MutationResult:
        """Attach map coordinates; scheduling is unaffected so nothing is reallocated."""
        blocked = self._guard()
        if blocked:
            return blocked

        destination = self.trip.get_destination(destination_id)
        if destination is None:
            return self._reject(
                WarningKind.UNKNOWN_DESTINATION,
                f"No destination {destination_id}",
                {"destination_id": destination_id},
            )
        if destination.coordinates == coordinates:
            return MutationResult(committed=False)

        self.trip.destinations = [
            replace(d, coordinates=coordinates) if d.id == destination_id else d
            for d in self.trip.destinations
        ]
        self.trip.touch()
        self._emit("destinations_changed", list(self.trip.destinations))
        return MutationResult(committed=True)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_day(self, day_id: str) -> MutationResult:
        """Select a day; the selected destination follows the day."""
        blocked = self._guard()
        if blocked:
            return blocked

        day = self.trip.get_day(day_id)
        if day is None:
            return self._reject(WarningKind.UNKNOWN_DAY, f"No day {day_id}", {"day_id": day_id})

        changes = {"selected_day_id": day.id}
        if day.destination_id is not None:
            changes["selected_destination_id"] = day.destination_id
        self.store.update(**changes)
        return MutationResult(committed=True)

    def select_destination(self, destination_id: Optional[str]) -> MutationResult:
        """Select a destination without moving the selected day."""
        blocked = self._guard()
        if blocked:
            return blocked

        if destination_id is not None and self.trip.get_destination(destination_id) is None:
            return self._reject(
                WarningKind.UNKNOWN_DESTINATION,
                f"No destination {destination_id}",
                {"destination_id": destination_id},
            )
        self.store.update(selected_destination_id=destination_id)
        return MutationResult(committed=True)

    def select_adjacent_day(self, step: int = 1) -> MutationResult:
        """Move the day selection by ``step``, wrapping at either end."""
        days = self.trip.days
        if not days:
            return MutationResult(committed=False)
        index = self.trip.day_index(self.store.state.selected_day_id)
        index = 0 if index < 0 else (index + step) % len(days)
        return self.select_day(days[index].id)

    def select_adjacent_destination(self, step: int = 1) -> MutationResult:
        """Move the destination selection by ``step`` in visit order, wrapping."""
        ordered = sort_destinations(self.trip.destinations)
        if not ordered:
            return MutationResult(committed=False)
        ids = [d.id for d in ordered]
        selected = self.store.state.selected_destination_id
        index = 0 if selected not in ids else (ids.index(selected) + step) % len(ids)
        return self.select_destination(ids[index])

    def set_expanded_view(self, expanded: bool) -> MutationResult:
        return MutationResult(committed=self.store.update(is_expanded_view=bool(expanded)))

    def set_mini_map_visible(self, visible: bool) -> MutationResult:
        return MutationResult(committed=self.store.update(is_mini_map_visible=bool(visible)))

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def selection(self) -> SelectionState:
        return self.store.state

    def summary(self) -> dict:
        return allocation_summary(self.trip.destinations, self.trip.days)

    def snapshot(self) -> dict:
        """Everything a freshly attached view needs to render."""
        return {
            "trip": self.trip.to_dict(),
            "summary": self.summary(),
            "transfers": [t.to_dict() for t in list_transfers(self.trip.days, self.trip.destinations)],
            "selection": self.store.state.to_dict(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(
        self,
        destinations: List[Destination],
        action: tuple,
        days: Optional[List[CalendarDay]] = None,
        force_notify: bool = False,
    ) -> MutationResult:
        """One allocation pass plus one selection reconciliation."""
        self._committing = True
        try:
            base_days = self.trip.days if days is None else days
            destinations = self._apply_auto_fill(destinations, base_days)

            new_days = allocate(destinations, base_days)
            self.allocation_passes += 1
            new_destinations = derive_destination_dates(destinations, new_days)

            days_changed = assignments_differ(self.trip.days, new_days)
            destinations_changed = new_destinations != self.trip.destinations

            self.trip.destinations = new_destinations
            if days_changed:
                self.trip.days = new_days
            if days_changed or destinations_changed:
                self.trip.touch()
            else:
                logger.debug(f"No assignment change after {action[0]}")

            self._last_action = action
            self._last_commit_at = self._clock()

            if destinations_changed or force_notify:
                self._emit("destinations_changed", list(self.trip.destinations))
            if days_changed or force_notify:
                self._emit("day_assignments_changed", list(self.trip.days))

            warnings = self._reconcile_selection(force_publish=force_notify)

            excess = over_allocation(self.trip.destinations, self.trip.days)
            if excess:
                warnings.append(ValidationWarning(
                    WarningKind.OVER_ALLOCATION,
                    f"Over-allocated by {excess} night{'s' if excess != 1 else ''}",
                    {
                        "over_allocated_by": excess,
                        "allocated_nights": self.trip.allocated_nights,
                        "total_nights": self.trip.total_nights,
                    },
                ))

            for warning in warnings:
                logger.info(f"Trip {self.trip.id}: {warning.message}")
                self._emit("validation_warning", warning)

            return MutationResult(committed=True, days_changed=days_changed, warnings=warnings)
        finally:
            self._committing = False

    def _apply_auto_fill(
        self, destinations: List[Destination], days: Sequence[CalendarDay]
    ) -> List[Destination]:
        if not self.auto_fill_single or len(destinations) != 1:
            return destinations
        only = destinations[0]
        total = max(0, len(days) - 1)
        if only.nights == total:
            return destinations
        logger.info(f"Single destination {only.id} takes all {total} nights")
        return [replace(only, nights=total)]

    def _reconcile_selection(self, force_publish: bool = False) -> List[ValidationWarning]:
        """Push the selection back to a state consistent with the day array.

        With ``force_publish`` the resulting state is announced even when the
        update itself was a no-op (a freshly loaded trip).
        """
        warnings = []
        state = self.store.state

        day_id = state.selected_day_id
        if day_id is not None and self.trip.get_day(day_id) is None:
            warnings.append(ValidationWarning(
                WarningKind.DANGLING_SELECTION,
                "Selected day no longer exists",
                {"day_id": day_id},
            ))
            day_id = None
        if day_id is None and self.trip.days:
            day_id = self.trip.days[0].id

        destination_id = state.selected_destination_id
        if destination_id is not None and self.trip.get_destination(destination_id) is None:
            warnings.append(ValidationWarning(
                WarningKind.DANGLING_SELECTION,
                "Selected destination no longer exists",
                {"destination_id": destination_id},
            ))
            destination_id = None

        day = self.trip.get_day(day_id)
        if day is not None and day.destination_id is not None:
            destination_id = day.destination_id
        elif destination_id is None and self.trip.destinations:
            destination_id = sort_destinations(self.trip.destinations)[0].id

        published = self.store.update(selected_day_id=day_id, selected_destination_id=destination_id)
        if force_publish and not published:
            self._emit("selection_changed", self.store.state)
        return warnings

    def _guard(self) -> Optional[MutationResult]:
        """Reject calls made from inside a commit (listener feedback loops)."""
        if not self._committing:
            return None
        self.rejected_count += 1
        logger.warning("Ignoring mutation issued while a commit is in flight")
        return MutationResult(
            committed=False,
            warnings=[ValidationWarning(
                WarningKind.REENTRANT_MUTATION,
                "Mutation issued while a commit is in flight",
            )],
        )

    def _is_duplicate(self, action: tuple) -> bool:
        if self.debounce_seconds <= 0 or self._last_commit_at is None:
            return False
        if action != self._last_action:
            return False
        return self._clock() - self._last_commit_at < self.debounce_seconds

    def _duplicate(self, action: tuple) -> MutationResult:
        self.rejected_count += 1
        logger.info(f"Dropping duplicate {action[0]} within {self.debounce_seconds * 1000:.0f}ms lockout")
        return MutationResult(
            committed=False,
            warnings=[ValidationWarning(
                WarningKind.DUPLICATE_ACTION,
                "Same action repeated within the lockout window",
                {"action": action[0]},
            )],
        )

    def _reject(self, kind: WarningKind, message: str, details: dict) -> MutationResult:
        self.rejected_count += 1
        warning = ValidationWarning(kind, message, details)
        logger.warning(f"Rejected on trip {self.trip.id}: {message}")
        self._emit("validation_warning", warning)
        return MutationResult(committed=False, warnings=[warning])
