"""Day allocation and cross-view selection synchronization."""

from .allocator import allocate, allocation_summary, derive_destination_dates
from .transfer import Transfer, is_transfer_day, get_transfer, list_transfers
from .selection import SelectionState, SelectionStore
from .validation import MutationResult, ValidationWarning, WarningKind
from .reconciler import ReconciliationController

__all__ = [
    'allocate',
    'allocation_summary',
    'derive_destination_dates',
    'Transfer',
    'is_transfer_day',
    'get_transfer',
    'list_transfers',
    'SelectionState',
    'SelectionStore',
    'MutationResult',
    'ValidationWarning',
    'WarningKind',
    'ReconciliationController',
]
