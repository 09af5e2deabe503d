"""duckdb-backed analytical warehouse."""
from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Protocol, Sequence

import duckdb
import pandas as pd

from orderdesk.core.query_builder import Query, quote_identifier, table_ref
from orderdesk.core.row_shape import frame_to_records
from orderdesk.settings import WarehouseSettings

logger = logging.getLogger(__name__)

Column = tuple[str, str]

DISPATCH_COLUMNS: list[Column] = [
    ("SO_No", "VARCHAR"),
    ("Customer", "VARCHAR"),
    ("Item", "VARCHAR"),
    ("Color", "VARCHAR"),
    ("Old_Color", "VARCHAR"),
    ("New_Color", "VARCHAR"),
    ("ProductionQty", "DOUBLE"),
    ("Dispatched", "BOOLEAN"),
    ("Dispatched_At", "VARCHAR"),
]

VERIFICATION_COLUMNS: list[Column] = [
    ("SO_No", "VARCHAR"),
    ("Customer", "VARCHAR"),
    ("Item", "VARCHAR"),
    ("Color", "VARCHAR"),
    ("New_Color", "VARCHAR"),
    ("Size", "VARCHAR"),
    ("OrderQty", "BIGINT"),
    ("SO_Date", "VARCHAR"),
    ("verified_at", "VARCHAR"),
    ("source", "VARCHAR"),
]

ORDER_COLUMNS: list[Column] = [
    ("SO_No", "VARCHAR"),
    ("SO_Date", "VARCHAR"),
    ("Parent_CustomerCity", "VARCHAR"),
    ("Child_Customer_City", "VARCHAR"),
    ("Broker", "VARCHAR"),
    ("Item_Name_Code", "VARCHAR"),
    ("Color_Code", "VARCHAR"),
    ("Brand", "VARCHAR"),
    ("SubCategory", "VARCHAR"),
    ("Size", "VARCHAR"),
    ("Total", "VARCHAR"),
    ("Remark", "VARCHAR"),
    ("Expected_Date", "VARCHAR"),
    ("GroupBy", "VARCHAR"),
    ("Status", "VARCHAR"),
]

SAMPLE_COLUMNS: list[Column] = [
    ("Product_Code", "VARCHAR"),
    ("Concept_2", "VARCHAR"),
    ("Concept_3", "VARCHAR"),
    ("File_URL", "VARCHAR"),
]

CUSTOMER_COLUMNS: list[Column] = [
    ("Company_Name", "VARCHAR"),
    ("Cust_Ved_Type", "VARCHAR"),
    ("rk_rating", "VARCHAR"),
    ("Area", "VARCHAR"),
    ("City", "VARCHAR"),
    ("State", "VARCHAR"),
    ("Outstanding", "DOUBLE"),
    ("Type", "VARCHAR"),
    ("Broker", "VARCHAR"),
    ("Contact_Name", "VARCHAR"),
    ("Number", "VARCHAR"),
    ("Created_Date", "VARCHAR"),
    ("abmulance_corridor", "VARCHAR"),
    ("customer_status", "VARCHAR"),
]

STOCK_COLUMNS: list[Column] = [
    ("Item", "VARCHAR"),
    ("normalized_item", "VARCHAR"),
    ("Color", "VARCHAR"),
    ("Size", "VARCHAR"),
    ("Opening_Stock", "DOUBLE"),
    ("Stock_In", "DOUBLE"),
    ("Stock_Out", "DOUBLE"),
    ("Closing_Stock", "DOUBLE"),
    ("Location", "VARCHAR"),
    ("Product_type", "VARCHAR"),
    ("Concept", "VARCHAR"),
    ("Fabric", "VARCHAR"),
    ("file_URL", "VARCHAR"),
    ("SNP", "DOUBLE"),
    ("WSP", "DOUBLE"),
    ("stock_status", "VARCHAR"),
    ("cost_price", "DOUBLE"),
    ("adjusted_cost_price", "DOUBLE"),
]

INVOICE_COLUMNS: list[Column] = [
    ("Customer_Name", "VARCHAR"),
    ("Area", "VARCHAR"),
    ("Broker_Name", "VARCHAR"),
    ("Order_No", "VARCHAR"),
    ("Date", "VARCHAR"),
    ("Total", "VARCHAR"),
    ("Item_Code", "VARCHAR"),
    ("Item_Color", "VARCHAR"),
]


class WarehouseError(RuntimeError):
    """Raised when the warehouse rejects a query or an insert."""


class Warehouse(Protocol):
    """Contract for the analytical store behind the API."""

    def table_ref(self, dataset: str, table: str) -> str: ...

    def ensure_table(self, dataset: str, table: str, columns: Iterable[Column]) -> None: ...

    def query(self, query: Query) -> list[dict[str, Any]]: ...

    def insert_rows(
        self,
        dataset: str,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        columns: Sequence[Column],
    ) -> int: ...


class DuckDBWarehouse:
    """Warehouse stored in a duckdb database attached as the project catalog.

    Datasets map to schemas, so ``"project"."dataset"."table"`` references
    resolve the same way they do in the generated SQL.
    """

    def __init__(
        self,
        settings: WarehouseSettings,
        *,
        connection: duckdb.DuckDBPyConnection | None = None,
    ) -> None:
        settings.require()
        self.settings = settings
        self.project = str(settings.project)
        self._conn = connection or duckdb.connect()
        self._owns_connection = connection is None
        self._lock = threading.Lock()
        self._attach()

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------
    def _attach(self) -> None:
        attached = {
            row[0]
            for row in self._conn.execute("SELECT database_name FROM duckdb_databases()").fetchall()
        }
        if self.project in attached:
            return
        location = self.settings.database.replace("'", "''")
        self._conn.execute(f"ATTACH '{location}' AS {quote_identifier(self.project)}")
        logger.debug("Attached warehouse %s as catalog %s", self.settings.database, self.project)

    def ensure_schema(self, dataset: str) -> None:
        ref = f"{quote_identifier(self.project)}.{quote_identifier(dataset)}"
        self._conn.execute(f"CREATE SCHEMA IF NOT EXISTS {ref}")

    def ensure_table(self, dataset: str, table: str, columns: Iterable[Column]) -> None:
        self.ensure_schema(dataset)
        definition = ", ".join(f"{quote_identifier(name)} {kind}" for name, kind in columns)
        self._conn.execute(f"CREATE TABLE IF NOT EXISTS {self.table_ref(dataset, table)} ({definition})")

    def table_ref(self, dataset: str, table: str) -> str:
        return table_ref(self.project, dataset, table)

    # ------------------------------------------------------------------
    # reads and writes
    # ------------------------------------------------------------------
    def query(self, query: Query) -> list[dict[str, Any]]:
        with self._lock:
            try:
                if query.params:
                    result = self._conn.execute(query.sql, query.params)
                else:
                    result = self._conn.execute(query.sql)
                frame = result.fetchdf()
            except duckdb.Error as exc:
                logger.exception("Warehouse query failed")
                raise WarehouseError(str(exc)) from exc
        return frame_to_records(frame)

    def insert_rows(
        self,
        dataset: str,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        columns: Sequence[Column],
    ) -> int:
        if not rows:
            return 0
        names = [name for name, _ in columns]
        placeholders = ", ".join("?" for _ in names)
        column_list = ", ".join(quote_identifier(name) for name in names)
        values = [tuple(row.get(name) for name in names) for row in rows]
        with self._lock:
            try:
                self.ensure_table(dataset, table, columns)
                self._conn.executemany(
                    f"INSERT INTO {self.table_ref(dataset, table)} ({column_list}) VALUES ({placeholders})",
                    values,
                )
            except duckdb.Error as exc:
                logger.exception("Warehouse insert into %s.%s failed", dataset, table)
                raise WarehouseError(str(exc)) from exc
        logger.info("Inserted %d row(s) into %s.%s", len(values), dataset, table)
        return len(values)

    def load_frame(
        self,
        dataset: str,
        table: str,
        frame: pd.DataFrame,
        columns: Sequence[Column],
    ) -> int:
        """Replace a table with the contents of a DataFrame, typed by ``columns``."""

        present = {str(name) for name in frame.columns}
        projection = ", ".join(
            f"CAST({quote_identifier(name)} AS {kind})" if name in present else f"CAST(NULL AS {kind})"
            for name, kind in columns
        )
        definition = ", ".join(f"{quote_identifier(name)} {kind}" for name, kind in columns)
        ref = self.table_ref(dataset, table)
        with self._lock:
            self.ensure_schema(dataset)
            self._conn.register("_orderdesk_frame", frame)
            try:
                self._conn.execute(f"CREATE OR REPLACE TABLE {ref} ({definition})")
                if len(frame):
                    self._conn.execute(f"INSERT INTO {ref} SELECT {projection} FROM _orderdesk_frame")
            except duckdb.Error as exc:
                logger.exception("Loading %s.%s failed", dataset, table)
                raise WarehouseError(str(exc)) from exc
            finally:
                self._conn.unregister("_orderdesk_frame")
        return len(frame)

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()
