"""Client-side state of the sales-order dashboard."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from orderdesk.core.schema import OrderRow


@dataclass(slots=True)
class Filters:
    """Snapshot of the criteria that drive one fetch of the orders page."""

    q: str = ""
    tokens: list[str] = field(default_factory=list)
    brand: str = ""
    city: str = ""
    start_date: str = ""
    end_date: str = ""
    limit: int = 25
    customers: list[str] = field(default_factory=list)
    items: list[str] = field(default_factory=list)

    def copy(self) -> Filters:
        return replace(
            self,
            tokens=list(self.tokens),
            customers=list(self.customers),
            items=list(self.items),
        )


@dataclass(slots=True)
class InvoiceMatch:
    date_iso: str
    days_ago: int


@dataclass(slots=True)
class ReconcilerState:
    """Everything the dashboard shows, owned by a single reconciler."""

    rows: list[OrderRow] = field(default_factory=list)
    total: int = 0
    page: int = 0
    loading: bool = False
    dispatched_keys: set[str] = field(default_factory=set)
    pending_keys: set[str] = field(default_factory=set)
    verified_keys: set[str] = field(default_factory=set)
    pending_rows: dict[str, OrderRow] = field(default_factory=dict)
    verification_map: dict[str, dict[str, Any]] = field(default_factory=dict)
    invoice_map: dict[str, InvoiceMatch] = field(default_factory=dict)
    selected_colors: dict[str, str] = field(default_factory=dict)
    checked: set[str] = field(default_factory=set)
    production_qty: dict[str, float | None] = field(default_factory=dict)
    collapsed_groups: set[str] = field(default_factory=set)


@dataclass(slots=True)
class ReconcileResult:
    rows: list[OrderRow]
    total: int
    page: int
    server_total: int
    excluded: int = 0


@dataclass(slots=True)
class ActionOutcome:
    """Result of a verify, dispatch or cancel command."""

    ok: bool
    count: int = 0
    keys: list[str] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False
