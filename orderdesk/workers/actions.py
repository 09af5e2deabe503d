"""Verify, dispatch and cancel commands issued from the dashboard."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from orderdesk.core.keys import row_key
from orderdesk.core.schema import OrderRow
from orderdesk.domain.orders import ActionOutcome
from orderdesk.infrastructure.api_client import OrdersApiClient
from orderdesk.workers.reconciler import TRANSIENT_ERRORS, OrderReconciler

logger = logging.getLogger(__name__)


class ActionCoordinator:
    """Runs one command of each kind at a time against the reconciler's selection.

    Local state only changes after the API accepted the command. Rows whose
    key is part of a request still in flight are left out of new requests.
    """

    def __init__(self, reconciler: OrderReconciler, client: OrdersApiClient) -> None:
        self.reconciler = reconciler
        self.client = client
        self.verifying = False
        self.saving = False
        self.cancelling = False
        self.last_error: str | None = None
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------
    # selection
    # ------------------------------------------------------------------
    def _selected_color(self, row: OrderRow) -> str | None:
        return self.reconciler.state.selected_colors.get(row_key(row)) or row.new_color

    def verification_candidates(self) -> list[OrderRow]:
        state = self.reconciler.state
        return [
            row
            for row in state.rows
            if (row.uid in state.checked or row_key(row) in state.selected_colors)
            and row_key(row) not in self._in_flight
        ]

    def dispatch_candidates(self) -> list[OrderRow]:
        return [row for row in self.reconciler.checked_rows() if row_key(row) not in self._in_flight]

    @property
    def can_verify(self) -> bool:
        return not self.verifying and bool(self.verification_candidates())

    @property
    def can_dispatch(self) -> bool:
        return not self.saving and bool(self.dispatch_candidates())

    def verification_payload(self, rows: Sequence[OrderRow]) -> list[dict[str, Any]]:
        return [
            {
                "SO_No": row.so_no,
                "Customer": row.customer,
                "Item": row.item,
                "Color": row.color,
                "New_Color": self._selected_color(row),
                "Size": row.size,
                "OrderQty": row.order_qty,
                "SO_Date": row.so_date,
            }
            for row in rows
        ]

    def dispatch_payload(self, rows: Sequence[OrderRow]) -> list[dict[str, Any]]:
        production = self.reconciler.state.production_qty
        payload = []
        for row in rows:
            new_color = self._selected_color(row)
            quantity = production.get(row.uid) if row.uid in production else row.production_qty
            payload.append(
                {
                    "SO_No": row.so_no,
                    "Customer": row.customer,
                    "Item": row.item,
                    "Old_Color": row.color,
                    "New_Color": new_color,
                    "Color": new_color or row.color,
                    "ProductionQty": quantity,
                    "Dispatched": True,
                }
            )
        return payload

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------
    def _failed(self, action: str, exc: Exception, keys: list[str]) -> ActionOutcome:
        self.last_error = str(exc)
        logger.warning("%s failed for %d row(s): %s", action, len(keys), exc)
        return ActionOutcome(ok=False, keys=keys, error=self.last_error)

    async def request_verification(self) -> ActionOutcome:
        if self.verifying:
            return ActionOutcome(ok=False, skipped=True, error="Verification already in progress")
        rows = self.verification_candidates()
        if not rows:
            return ActionOutcome(ok=True, skipped=True)

        keys = [row_key(row) for row in rows]
        self.verifying = True
        self._in_flight.update(keys)
        try:
            await self.client.request_verification(self.verification_payload(rows))
        except TRANSIENT_ERRORS as exc:
            return self._failed("Verification request", exc, keys)
        finally:
            self.verifying = False
            self._in_flight.difference_update(keys)

        self.last_error = None
        count = self.reconciler.mark_pending(rows)
        logger.info("Sent %d row(s) for verification", count)
        return ActionOutcome(ok=True, count=count, keys=keys)

    async def save_dispatched(self) -> ActionOutcome:
        if self.saving:
            return ActionOutcome(ok=False, skipped=True, error="Dispatch already in progress")
        rows = self.dispatch_candidates()
        if not rows:
            return ActionOutcome(ok=True, skipped=True)

        keys = [row_key(row) for row in rows]
        self.saving = True
        self._in_flight.update(keys)
        try:
            await self.client.save_dispatch(self.dispatch_payload(rows))
        except TRANSIENT_ERRORS as exc:
            return self._failed("Dispatch", exc, keys)
        finally:
            self.saving = False
            self._in_flight.difference_update(keys)

        self.last_error = None
        count = self.reconciler.mark_dispatched(rows, keys)
        logger.info("Saved %d dispatched row(s)", count)
        return ActionOutcome(ok=True, count=count, keys=keys)

    async def cancel_order(self, row: OrderRow) -> ActionOutcome:
        order_no = (row.so_no or "").strip()
        if not order_no:
            return ActionOutcome(ok=False, skipped=True, error="Row has no order number")
        if self.cancelling:
            return ActionOutcome(ok=False, skipped=True, error="Cancellation already in progress")

        self.cancelling = True
        try:
            await self.client.cancel_order(order_no)
        except TRANSIENT_ERRORS as exc:
            return self._failed("Cancellation", exc, [row_key(row)])
        finally:
            self.cancelling = False

        self.last_error = None
        count = self.reconciler.mark_cancelled(row.so_no or order_no)
        return ActionOutcome(ok=True, count=count, keys=[row_key(row)])
