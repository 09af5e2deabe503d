"""Application service behind the order-desk API."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from orderdesk.core.query_builder import OrderQueryBuilder, OrderQueryParams, Query
from orderdesk.core.row_shape import (
    CUSTOMER_NUMERIC_FIELDS,
    INVOICE_NUMERIC_FIELDS,
    STOCK_NUMERIC_FIELDS,
    VERIFICATION_NUMERIC_FIELDS,
    coerce_int,
    normalize_order_row,
    normalize_records,
)
from orderdesk.core.schema import VERIFIED_CONFIRMED, DispatchRow, VerificationRow
from orderdesk.core.verification import merge_verification_rows
from orderdesk.infrastructure import (
    CrossTabNotifier,
    DuckDBWarehouse,
    Warehouse,
    get_notifier,
)
from orderdesk.infrastructure.warehouse import DISPATCH_COLUMNS, VERIFICATION_COLUMNS
from orderdesk.settings import WarehouseSettings, load_settings

logger = logging.getLogger(__name__)

VERIFICATION_SOURCE = "sales_orders"


def utc_timestamp(moment: datetime | None = None) -> str:
    current = moment or datetime.now(timezone.utc)
    return current.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _count(rows: list[dict[str, Any]], fallback: int) -> int:
    if not rows:
        return fallback
    value = coerce_int(rows[0].get("cnt"))
    return fallback if value is None else value


class OrderService:
    """Coordinates warehouse reads and log-table appends for the API."""

    def __init__(
        self,
        warehouse: Warehouse,
        builder: OrderQueryBuilder,
        notifier: CrossTabNotifier | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._warehouse = warehouse
        self._builder = builder
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def settings(self) -> WarehouseSettings:
        return self._builder.settings

    @property
    def notifier(self) -> CrossTabNotifier:
        return self._notifier or get_notifier()

    def _now(self) -> str:
        return utc_timestamp(self._clock())

    def _listing(self, queries: tuple[Query, Query], numeric: Iterable[str]) -> dict[str, Any]:
        select, count = queries
        rows = normalize_records(self._warehouse.query(select), numeric)
        total = _count(self._warehouse.query(count), len(rows))
        return {"rows": rows, "total": total}

    # ------------------------------------------------------------------
    # sales orders
    # ------------------------------------------------------------------
    def list_orders(self, params: OrderQueryParams) -> dict[str, Any]:
        rows = [normalize_order_row(row) for row in self._warehouse.query(self._builder.build_select(params))]
        total = _count(self._warehouse.query(self._builder.build_count(params)), len(rows))
        return {"rows": rows, "total": total}

    def cancel_order(self, order_no: str) -> dict[str, Any]:
        order = str(order_no or "").strip()
        if not order:
            raise ValueError("orderNo is required")
        logger.info("Cancellation requested for order %s", order)
        return {"success": True, "message": f"Order {order} has been cancelled successfully"}

    # ------------------------------------------------------------------
    # dispatch log
    # ------------------------------------------------------------------
    def _dispatch_location(self) -> tuple[str, str]:
        self.settings.require()
        return str(self.settings.dataset), self.settings.dispatched_table

    def dispatch_keys(self) -> dict[str, Any]:
        dataset, table = self._dispatch_location()
        self._warehouse.ensure_table(dataset, table, DISPATCH_COLUMNS)
        rows = self._warehouse.query(self._builder.build_dispatch_keys())
        keys = [str(row["dispatch_key"]) for row in rows if row.get("dispatch_key")]
        return {"keys": keys}

    def record_dispatch(self, rows: Iterable[Any]) -> dict[str, Any]:
        timestamp = self._now()
        records: list[dict[str, Any]] = []
        for raw in rows:
            if not isinstance(raw, Mapping):
                continue
            so_no = raw.get("SO_No")
            if not isinstance(so_no, str) or not so_no.strip():
                continue
            payload = {**raw, "SO_No": so_no.strip(), "Dispatched_At": timestamp}
            records.append(DispatchRow.model_validate(payload).to_record())
        if not records:
            raise ValueError("No valid rows to insert (missing or invalid SO_No?)")

        dataset, table = self._dispatch_location()
        logger.info("Dispatch insert -> %s.%s, rows=%d", dataset, table, len(records))
        inserted = self._warehouse.insert_rows(dataset, table, records, DISPATCH_COLUMNS)
        return {"inserted": inserted, "table": f"{self.settings.project}.{dataset}.{table}"}

    # ------------------------------------------------------------------
    # verification log
    # ------------------------------------------------------------------
    def _verification_location(self) -> tuple[str, str]:
        self.settings.require()
        return str(self.settings.dataset), self.settings.verified_table

    @staticmethod
    def _whitelist(rows: Iterable[Any], verified_at: str | None) -> list[dict[str, Any]]:
        records = []
        for raw in rows:
            if not isinstance(raw, Mapping):
                continue
            record = VerificationRow.model_validate(raw).to_record()
            record["verified_at"] = verified_at
            record["source"] = VERIFICATION_SOURCE
            records.append(record)
        return records

    def list_verifications(self) -> dict[str, Any]:
        dataset, table = self._verification_location()
        self._warehouse.ensure_table(dataset, table, VERIFICATION_COLUMNS)
        rows = normalize_records(
            self._warehouse.query(self._builder.build_verification_list()),
            VERIFICATION_NUMERIC_FIELDS,
        )
        merged = merge_verification_rows(rows)
        return {"rows": merged, "total": len(merged)}

    def request_verification(self, rows: Iterable[Any]) -> dict[str, Any]:
        records = self._whitelist(rows, None)
        if not records:
            raise ValueError("No rows provided")
        dataset, table = self._verification_location()
        inserted = self._warehouse.insert_rows(dataset, table, records, VERIFICATION_COLUMNS)
        return {"success": True, "inserted": inserted}

    def confirm_verification(self, rows: Iterable[Any]) -> dict[str, Any]:
        records = self._whitelist(rows, self._now())
        if not records:
            raise ValueError("No rows provided")
        dataset, table = self._verification_location()
        inserted = self._warehouse.insert_rows(dataset, table, records, VERIFICATION_COLUMNS)
        for record in records:
            self.notifier.publish({"type": VERIFIED_CONFIRMED, "row": dict(record)})
        return {"success": True, "inserted": inserted, "rows": records}

    # ------------------------------------------------------------------
    # stock and reference data
    # ------------------------------------------------------------------
    def stock_batch(self, items: Iterable[Any]) -> dict[str, Any]:
        query = self._builder.build_stock_batch(items)
        if query is None:
            return {"rows": []}
        return {"rows": normalize_records(self._warehouse.query(query), STOCK_NUMERIC_FIELDS)}

    def list_stock(self, **filters: Any) -> dict[str, Any]:
        return self._listing(self._builder.build_stock_list(**filters), STOCK_NUMERIC_FIELDS)

    def list_invoices(self, **filters: Any) -> dict[str, Any]:
        return self._listing(self._builder.build_invoice_list(**filters), INVOICE_NUMERIC_FIELDS)

    def list_customers(self, **filters: Any) -> dict[str, Any]:
        return self._listing(self._builder.build_customer_list(**filters), CUSTOMER_NUMERIC_FIELDS)

    def list_samples(self, **filters: Any) -> dict[str, Any]:
        return self._listing(self._builder.build_sample_list(**filters), ())


_service: OrderService | None = None


def build_order_service(settings: WarehouseSettings | None = None) -> OrderService:
    resolved = settings or load_settings()
    return OrderService(DuckDBWarehouse(resolved), OrderQueryBuilder(resolved))


def configure_order_service(service: OrderService | None) -> None:
    """Install the service used by the API routes."""

    global _service
    _service = service


def get_order_service() -> OrderService:
    """Return the process-wide service, building it from the environment on first use."""

    global _service
    if _service is None:
        _service = build_order_service()
    return _service


def reset_order_service() -> None:
    global _service
    _service = None
