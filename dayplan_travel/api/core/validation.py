"""Validation signals reported by the reconciliation controller.

None of these are exceptions: the controller always leaves the trip in a
consistent state and hands the warning to the UI as an advisory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class WarningKind(str, Enum):
    OVER_ALLOCATION = "over_allocation"
    INVALID_NIGHT_DELTA = "invalid_night_delta"
    DANGLING_SELECTION = "dangling_selection"
    UNKNOWN_DESTINATION = "unknown_destination"
    UNKNOWN_DAY = "unknown_day"
    INVALID_REORDER = "invalid_reorder"
    DUPLICATE_DESTINATION = "duplicate_destination"
    INVALID_DESTINATION = "invalid_destination"
    INVALID_DATE_RANGE = "invalid_date_range"
    DUPLICATE_ACTION = "duplicate_action"
    REENTRANT_MUTATION = "reentrant_mutation"


@dataclass(frozen=True)
class ValidationWarning:
    kind: WarningKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass
class MutationResult:
    """Outcome of one controller operation.

    ``committed`` is False when the request was rejected and nothing changed.
    ``days_changed`` is True only when at least one day changed destination.
    """

    committed: bool
    days_changed: bool = False
    warnings: List[ValidationWarning] = field(default_factory=list)
    destination_id: Optional[str] = None  # set by add_destination

    @property
    def rejected(self) -> bool:
        return not self.committed

    def has_warning(self, kind: WarningKind) -> bool:
        return any(w.kind == kind for w in self.warnings)

    def to_dict(self) -> dict:
        return {
            "committed": self.committed,
            "days_changed": self.days_changed,
            "destination_id": self.destination_id,
            "warnings": [w.to_dict() for w in self.warnings],
        }
