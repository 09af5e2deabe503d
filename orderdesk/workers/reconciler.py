"""Source reconciler: merges the order page with dispatch, verification,
invoice and stock data into the row set shown on the dashboard."""
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Sequence

import httpx
from pydantic import ValidationError

from orderdesk.core.dates import days_between, parse_date
from orderdesk.core.grouping import RowGroup, group_rows, row_date
from orderdesk.core.keys import (
    customer_compare_key,
    invoice_key,
    item_compare_key,
    item_key,
    row_key,
)
from orderdesk.core.row_shape import clean_value, coerce_number
from orderdesk.core.schema import VERIFIED_CONFIRMED, CrossTabEvent, OrderRow
from orderdesk.core.verification import has_timestamp
from orderdesk.domain.orders import Filters, InvoiceMatch, ReconcileResult, ReconcilerState
from orderdesk.infrastructure.api_client import BoundaryError, OrdersApiClient
from orderdesk.infrastructure.notifier import CrossTabNotifier

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (BoundaryError, httpx.HTTPError, ValueError)

INVOICE_HISTORY_LIMIT = 1000


def make_uid(row: OrderRow) -> str:
    base = "__".join(
        str(part or "").strip() for part in (row.so_no, row.item or row.item_code, row.color)
    )
    return f"{base or 'uid'}__{uuid.uuid4().hex}"


def build_invoice_map(rows: Iterable[Mapping[str, Any]], today: date) -> dict[str, InvoiceMatch]:
    """Latest invoice date per customer/item/colour, with its age in days."""

    latest: dict[str, date] = {}
    for invoice in rows:
        customer = invoice.get("Customer_Name") or invoice.get("Customer") or ""
        item = invoice.get("Item_Code") or invoice.get("Item") or ""
        color = invoice.get("Item_Color") or invoice.get("Color") or ""
        key = invoice_key(customer, item, color)
        customer_part, item_part, _ = key.split("|")
        if not customer_part or not item_part:
            continue
        raw_date = invoice.get("parsed_date") or invoice.get("Date")
        parsed = parse_date(raw_date)
        if parsed is None:
            continue
        if key not in latest or parsed > latest[key]:
            latest[key] = parsed
    return {
        key: InvoiceMatch(date_iso=value.isoformat(), days_ago=days_between(value, today))
        for key, value in latest.items()
    }


def build_stock_maps(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[dict[str, float], dict[str, dict[str, float]]]:
    totals: dict[str, float] = {}
    by_color: dict[str, dict[str, float]] = {}
    for stock in rows:
        norm = str(stock.get("normalized_item") or stock.get("Item") or "").strip().lower()
        if not norm:
            continue
        closing = coerce_number(stock.get("Closing_Stock"))
        if closing is None:
            continue
        color = str(stock.get("Color") or "").strip()
        colors = by_color.setdefault(norm, {})
        colors[color] = colors.get(color, 0) + closing
        totals[norm] = totals.get(norm, 0) + closing
    return totals, by_color


def _stock_rank(row: OrderRow) -> float:
    if row.stock is None or math.isnan(row.stock):
        return -math.inf
    return row.stock


def sort_visible(rows: Sequence[OrderRow]) -> list[OrderRow]:
    """Quantity descending, then stock descending (unknown last), then date ascending."""

    def order(row: OrderRow) -> tuple[float, float, int, date]:
        parsed = row_date(row)
        return (
            -(row.order_qty or 0),
            -_stock_rank(row),
            0 if parsed is not None else 1,
            parsed or date.max,
        )

    return sorted(rows, key=order)


def _excluded_by_stock(row: OrderRow) -> bool:
    return row.stock is not None and (math.isnan(row.stock) or row.stock == 0)


class OrderReconciler:
    """Owns the visible row set and every per-row selection map.

    ``load`` runs one reconciliation cycle. Starting a new cycle cancels the
    one in flight; a superseded cycle never touches :attr:`state`.
    """

    def __init__(
        self,
        client: OrdersApiClient,
        *,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.client = client
        self.state = ReconcilerState()
        self._today = today or date.today
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._scheduled: set[asyncio.Task] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # cycle control
    # ------------------------------------------------------------------
    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def load(self, filters: Filters, page: int | None = None) -> ReconcileResult | None:
        """Run a reconciliation cycle; ``None`` means a newer cycle superseded it."""

        target_page = self.state.page if page is None else max(0, page)
        self._generation += 1
        generation = self._generation
        previous = self._task
        if previous is not None and not previous.done():
            logger.debug("Cancelling superseded reconciliation cycle")
            previous.cancel()

        task = asyncio.ensure_future(self._cycle(filters.copy(), target_page, generation))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and not self._is_current(generation):
                logger.debug("Reconciliation cycle %d discarded", generation)
                return None
            raise

    def reload_soon(self, filters: Filters, page: int | None = 0) -> asyncio.Task:
        """Schedule a cycle on the running loop (used by filter listeners)."""

        task = asyncio.get_running_loop().create_task(self.load(filters, page))
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def settle(self) -> None:
        """Wait until every scheduled reload has finished."""

        while self._scheduled:
            await asyncio.gather(*list(self._scheduled), return_exceptions=True)

    def cancel(self) -> None:
        """Abandon the in-flight cycle, if any."""

        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.state.loading = False

    def follow(self, controller: Any) -> Callable[[], None]:
        """Reload from page 0 whenever ``controller`` changes its applied filters."""

        unsubscribe = controller.subscribe(lambda filters: self.reload_soon(filters, 0))
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    # ------------------------------------------------------------------
    # source fetches
    # ------------------------------------------------------------------
    async def _fetch_dispatched(self) -> set[str]:
        try:
            keys = await self.client.fetch_dispatched_keys()
        except TRANSIENT_ERRORS as exc:
            logger.warning("Dispatched keys unavailable: %s", exc)
            return set()
        return {key.strip().upper() for key in keys if key and key.strip()}

    async def _fetch_verifications(self) -> tuple[dict[str, dict[str, Any]], set[str], set[str]]:
        try:
            records = await self.client.fetch_verifications()
        except TRANSIENT_ERRORS as exc:
            logger.warning("Verification list unavailable: %s", exc)
            return {}, set(), set()
        mapping: dict[str, dict[str, Any]] = {}
        pending: set[str] = set()
        verified: set[str] = set()
        for record in records:
            if not isinstance(record, Mapping):
                continue
            key = row_key(record)
            mapping[key] = dict(record)
            if has_timestamp(record.get("verified_at")):
                verified.add(key)
            else:
                pending.add(key)
        return mapping, pending, verified

    async def _fetch_invoices(self) -> dict[str, InvoiceMatch]:
        try:
            invoices = await self.client.fetch_invoices(INVOICE_HISTORY_LIMIT)
        except TRANSIENT_ERRORS as exc:
            logger.warning("Invoice history unavailable: %s", exc)
            return {}
        return build_invoice_map((row for row in invoices if isinstance(row, Mapping)), self._today())

    async def _fetch_stock(self, keys: list[str]) -> tuple[dict[str, float], dict[str, dict[str, float]]]:
        if not keys:
            return {}, {}
        try:
            stock_rows = await self.client.fetch_stock_batch(keys)
        except TRANSIENT_ERRORS as exc:
            logger.warning("Stock batch unavailable: %s", exc)
            return {}, {}
        return build_stock_maps(row for row in stock_rows if isinstance(row, Mapping))

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------
    async def _cycle(self, filters: Filters, page: int, generation: int) -> ReconcileResult | None:
        self.state.loading = True
        baseline = self._key_snapshot()
        try:
            dispatched = await self._fetch_dispatched()
            verification_map, pending, verified = await self._fetch_verifications()
            locally_pending = set(self.state.pending_rows)

            while True:
                try:
                    payload = await self.client.fetch_orders(filters, page * filters.limit)
                except TRANSIENT_ERRORS as exc:
                    logger.warning("Sales orders unavailable: %s", exc)
                    if not self._is_current(generation):
                        return None
                    dispatched, pending, verified = self._merge_local_edits(baseline, dispatched, pending, verified)
                    self._commit_empty(page, dispatched, pending, verified, verification_map)
                    return ReconcileResult(rows=[], total=0, page=page, server_total=0)

                incoming = [row for row in payload.get("rows") or [] if isinstance(row, Mapping)]
                server_total = coerce_number(payload.get("total"))
                server_total = int(server_total) if server_total is not None else len(incoming)
                if not incoming and server_total > 0 and page > 0:
                    logger.debug("Page %d came back empty, returning to the first page", page)
                    page = 0
                    continue
                break

            preselected: dict[str, str] = {}
            rows: list[OrderRow] = []
            for raw in incoming:
                try:
                    row = OrderRow.model_validate(raw)
                except ValidationError as exc:
                    logger.warning("Skipping malformed order row %s: %s", raw.get("SO_No"), exc)
                    continue
                key = row_key(row)
                record = verification_map.get(key)
                replacement = clean_value(record.get("New_Color")) if record else None
                if replacement:
                    preselected[key] = str(replacement)
                row.uid = make_uid(row)
                row.pending = key in pending
                row.verified = key in verified
                row.new_color = row.new_color or (str(replacement) if replacement else None)
                row.stock_by_color = None
                rows.append(row)

            excluded_keys = dispatched | pending | locally_pending
            rows = [row for row in rows if row_key(row) not in excluded_keys]

            invoice_map = await self._fetch_invoices()
            rows = self._apply_invoice_history(rows, invoice_map)

            stock_keys = list(dict.fromkeys(key for key in (item_key(row.item or row.item_code) for row in rows) if key))
            totals, by_color = await self._fetch_stock(stock_keys)
            for row in rows:
                key = item_key(row.item or row.item_code)
                row.stock = totals.get(key) if key else None
                row.stock_by_color = by_color.get(key) if key else None

            rows = [row for row in rows if not _excluded_by_stock(row)]
            rows = self._apply_selection_filters(rows, filters)
            rows = sort_visible(rows)

            if not self._is_current(generation):
                logger.debug("Discarding results of stale cycle %d", generation)
                return None

            # local commands and confirmations may have landed while awaiting
            dispatched, pending, verified = self._merge_local_edits(baseline, dispatched, pending, verified)
            excluded_keys = dispatched | pending | set(self.state.pending_rows)
            rows = [row for row in rows if row_key(row) not in excluded_keys]
            visible = {row_key(row) for row in rows}
            confirmed = self.state.verified_keys - baseline[2]
            carried = [
                row
                for row in self.state.rows
                if row_key(row) in confirmed and row_key(row) not in excluded_keys | visible
            ]
            rows = carried + rows

            removed = max(0, len(incoming) - len(rows))
            total = max(0, server_total - removed)

            state = self.state
            state.rows = rows
            state.total = total
            state.page = page
            state.dispatched_keys = dispatched
            state.pending_keys = pending
            state.verified_keys = verified
            state.verification_map = verification_map
            state.invoice_map = invoice_map
            state.selected_colors.update(preselected)
            state.collapsed_groups.clear()
            state.checked.clear()
            return ReconcileResult(rows=list(rows), total=total, page=page, server_total=server_total, excluded=removed)
        finally:
            if self._is_current(generation):
                self.state.loading = False

    def _key_snapshot(self) -> tuple[set[str], set[str], set[str]]:
        state = self.state
        return set(state.dispatched_keys), set(state.pending_keys), set(state.verified_keys)

    def _merge_local_edits(
        self,
        baseline: tuple[set[str], set[str], set[str]],
        dispatched: set[str],
        pending: set[str],
        verified: set[str],
    ) -> tuple[set[str], set[str], set[str]]:
        """Fold keys changed locally since ``baseline`` into freshly fetched sets."""

        state = self.state
        _, base_pending, base_verified = baseline
        confirmed = state.verified_keys - base_verified
        merged_dispatched = dispatched | state.dispatched_keys
        merged_pending = (pending | (state.pending_keys - base_pending)) - confirmed
        merged_verified = verified | confirmed
        return merged_dispatched, merged_pending, merged_verified

    def _commit_empty(
        self,
        page: int,
        dispatched: set[str],
        pending: set[str],
        verified: set[str],
        verification_map: dict[str, dict[str, Any]],
    ) -> None:
        self.state.rows = []
        self.state.total = 0
        self.state.page = page
        self.state.dispatched_keys = dispatched
        self.state.pending_keys = pending
        self.state.verified_keys = verified
        self.state.verification_map = verification_map

    @staticmethod
    def _apply_invoice_history(rows: list[OrderRow], invoice_map: dict[str, InvoiceMatch]) -> list[OrderRow]:
        if not invoice_map:
            return rows
        kept: list[OrderRow] = []
        for row in rows:
            match = invoice_map.get(invoice_key(row.customer, row.item or row.item_code, row.color))
            if match is None:
                kept.append(row)
                continue
            ordered_on = parse_date(row.so_date) or parse_date(row.so_date_parsed)
            if ordered_on is not None and ordered_on.isoformat() < match.date_iso:
                continue
            row.last_invoice_date = match.date_iso
            row.invoice_days_ago = match.days_ago
            kept.append(row)
        return kept

    @staticmethod
    def _apply_selection_filters(rows: list[OrderRow], filters: Filters) -> list[OrderRow]:
        customers = {customer_compare_key(value) for value in filters.customers}
        items = {item_compare_key(value) for value in filters.items}
        if not customers and not items:
            return rows
        return [
            row
            for row in rows
            if (not customers or customer_compare_key(row.customer) in customers)
            and (not items or item_compare_key(row.item) in items)
        ]

    # ------------------------------------------------------------------
    # cross-tab merge
    # ------------------------------------------------------------------
    def handle_event(self, event: Mapping[str, Any]) -> bool:
        """Merge a confirmed verification; returns True when a row was re-inserted."""

        try:
            parsed = CrossTabEvent.model_validate(event)
        except ValidationError:
            logger.debug("Ignoring malformed cross-tab event")
            return False
        if parsed.type != VERIFIED_CONFIRMED or parsed.row is None:
            return False
        incoming = parsed.row

        key = row_key(incoming)
        state = self.state
        state.pending_keys.discard(key)
        state.pending_rows.pop(key, None)
        state.verified_keys.add(key)
        replacement = clean_value(incoming.get("New_Color"))
        if replacement:
            state.selected_colors[key] = str(replacement)

        if key in state.dispatched_keys:
            return False
        if any(row_key(row) == key for row in state.rows):
            return False

        try:
            row = OrderRow.model_validate(
                {
                    "SO_No": incoming.get("SO_No"),
                    "Customer": incoming.get("Customer"),
                    "Item": incoming.get("Item"),
                    "Color": incoming.get("Color"),
                    "New_Color": incoming.get("New_Color"),
                    "Size": incoming.get("Size"),
                    "OrderQty": incoming.get("OrderQty"),
                    "SO_Date": incoming.get("SO_Date"),
                }
            )
        except ValidationError as exc:
            logger.warning("Ignoring malformed confirmation for %s: %s", key, exc)
            return False
        row.uid = make_uid(row)
        row.verified = True
        state.rows.insert(0, row)
        return True

    def attach(self, notifier: CrossTabNotifier) -> None:
        self._unsubscribers.append(notifier.subscribe(self.handle_event))

    def detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()
        self.cancel()

    # ------------------------------------------------------------------
    # selection surface
    # ------------------------------------------------------------------
    def toggle_checked(self, uid: str) -> bool:
        return self.set_checked(uid, uid not in self.state.checked)

    def set_checked(self, uid: str, value: bool) -> bool:
        if value:
            self.state.checked.add(uid)
        else:
            self.state.checked.discard(uid)
        return value

    def toggle_color(self, row: OrderRow, color: str) -> str | None:
        key = row_key(row)
        if self.state.selected_colors.get(key) == color:
            self.state.selected_colors.pop(key, None)
            return None
        self.state.selected_colors[key] = color
        return color

    def set_production_qty(self, uid: str, value: Any) -> float | None:
        quantity = coerce_number(value)
        self.state.production_qty[uid] = quantity
        return quantity

    def toggle_group(self, key: str) -> bool:
        if key in self.state.collapsed_groups:
            self.state.collapsed_groups.discard(key)
            return False
        self.state.collapsed_groups.add(key)
        return True

    @property
    def selected_count(self) -> int:
        return len(self.state.checked)

    def checked_rows(self) -> list[OrderRow]:
        return [row for row in self.state.rows if row.uid in self.state.checked]

    def grouped(self, group_by: Iterable[str] | None = None) -> list[RowGroup]:
        return group_rows(self.state.rows, group_by)

    # ------------------------------------------------------------------
    # mutation surface
    # ------------------------------------------------------------------
    def mark_pending(self, rows: Sequence[OrderRow]) -> int:
        keys = {row_key(row) for row in rows}
        state = self.state
        for row in rows:
            state.pending_rows[row_key(row)] = row.model_copy(update={"verified": False, "pending": True})
        state.pending_keys |= keys
        self._drop_rows(keys)
        for key in keys:
            state.selected_colors.pop(key, None)
        state.checked.clear()
        return len(rows)

    def mark_dispatched(self, rows: Sequence[OrderRow], keys: Iterable[str]) -> int:
        dispatched = set(keys) | {row_key(row) for row in rows}
        state = self.state
        # uids are regenerated every cycle, so match rows by identity
        self._drop_rows(dispatched)
        state.dispatched_keys |= dispatched
        for row in rows:
            state.selected_colors.pop(row_key(row), None)
            if row.uid is not None:
                state.production_qty.pop(row.uid, None)
        state.checked.clear()
        return len(rows)

    def _drop_rows(self, keys: set[str]) -> int:
        state = self.state
        kept = [row for row in state.rows if row_key(row) not in keys]
        removed = len(state.rows) - len(kept)
        state.rows = kept
        state.total = max(0, state.total - removed)
        return removed

    def mark_cancelled(self, order_no: str) -> int:
        changed = 0
        for row in self.state.rows:
            if row.so_no == order_no:
                row.status = "Cancelled"
                changed += 1
        return changed
