"""Shared selection state for every view of a trip.

The destination rail, calendar strip, map and timeline all read the same
SelectionStore and subscribe to its change notifications instead of
keeping their own copies. The store is owned by the UI session and is not
persisted with the trip.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionState:
    selected_destination_id: Optional[str] = None
    selected_day_id: Optional[str] = None
    is_expanded_view: bool = False
    is_mini_map_visible: bool = True
    version: int = 0

    def to_dict(self) -> dict:
        return {
            "selectedDestinationId": self.selected_destination_id,
            "selectedDayId": self.selected_day_id,
            "isExpandedView": self.is_expanded_view,
            "isMiniMapVisible": self.is_mini_map_visible,
            "version": self.version,
        }


_FIELDS = {f.name for f in fields(SelectionState)} - {"version"}


class SelectionStore:
    """Versioned holder of the current SelectionState."""

    def __init__(self, state: Optional[SelectionState] = None):
        self._state = state or SelectionState()
        self._subscribers: List[Callable[[SelectionState], None]] = []

    @property
    def state(self) -> SelectionState:
        return self._state

    def subscribe(self, callback: Callable[[SelectionState], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def update(self, **changes) -> bool:
        """Apply field changes as one new version.

        Subscribers are notified once, and only if a value actually changed.
        Returns True when a new version was published.
        """
        unknown = set(changes) - _FIELDS
        if unknown:
            raise TypeError(f"Unknown selection fields: {', '.join(sorted(unknown))}")

        current = self._state
        effective = {k: v for k, v in changes.items() if getattr(current, k) != v}
        if not effective:
            return False

        self._state = replace(current, version=current.version + 1, **effective)
        logger.debug(f"Selection v{self._state.version}: {effective}")
        self._notify()
        return True

    def reset(self, keep_view_flags: bool = True, notify: bool = True) -> None:
        """Clear the selection, e.g. when a different trip is loaded.

        With ``notify=False`` the cleared state is not announced; the caller
        publishes the next consistent state itself.
        """
        current = self._state
        if keep_view_flags:
            fresh = SelectionState(
                is_expanded_view=current.is_expanded_view,
                is_mini_map_visible=current.is_mini_map_visible,
            )
        else:
            fresh = SelectionState()
        self._state = replace(fresh, version=current.version + 1)
        if notify:
            self._notify()

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Selection subscriber failed: {e}")
