"""Domain layer definitions."""

from .orders import ActionOutcome, Filters, InvoiceMatch, ReconcileResult, ReconcilerState

__all__ = [
    "ActionOutcome",
    "Filters",
    "InvoiceMatch",
    "ReconcileResult",
    "ReconcilerState",
]
