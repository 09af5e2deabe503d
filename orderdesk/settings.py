"""Runtime configuration for the warehouse and the API."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

CONFIG_DIR = Path(__file__).resolve().parent / "config"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_BUILTIN_DEFAULTS: dict = {
    "reference_dataset": "frono",
    "tables": {
        "sample": "Sample_details",
        "customer": "customer_combined",
        "stock": "stock_combined",
        "dispatched": "dispatched_orders",
        "verified": "verified_sales_orders",
        "invoice": "kolkata_item_wise_customer",
    },
}


class WarehouseConfigError(RuntimeError):
    """Raised when required warehouse identifiers are missing or invalid."""


def _load_defaults() -> dict:
    path = CONFIG_DIR / "warehouse.yaml"
    if not path.exists():
        return _BUILTIN_DEFAULTS
    with path.open("r", encoding="utf-8") as fp:
        loaded = yaml.safe_load(fp) or {}
    tables = dict(_BUILTIN_DEFAULTS["tables"])
    tables.update(loaded.get("tables") or {})
    return {
        "reference_dataset": loaded.get("reference_dataset") or _BUILTIN_DEFAULTS["reference_dataset"],
        "tables": tables,
    }


DEFAULTS = _load_defaults()


@dataclass(frozen=True)
class WarehouseSettings:
    project: str | None
    dataset: str | None
    orders_table: str | None
    reference_dataset: str = DEFAULTS["reference_dataset"]
    sample_table: str = DEFAULTS["tables"]["sample"]
    customer_table: str = DEFAULTS["tables"]["customer"]
    stock_table: str = DEFAULTS["tables"]["stock"]
    dispatched_table: str = DEFAULTS["tables"]["dispatched"]
    verified_table: str = DEFAULTS["tables"]["verified"]
    invoice_table: str = DEFAULTS["tables"]["invoice"]
    database: str = ":memory:"

    def require(self, *, orders: bool = False) -> None:
        """Fail fast when identifiers needed for a query are not configured."""

        required = {"WAREHOUSE_PROJECT": self.project, "WAREHOUSE_DATASET": self.dataset}
        if orders:
            required["WAREHOUSE_TABLE_SO"] = self.orders_table
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise WarehouseConfigError(f"Missing env: {', '.join(missing)} must be set")

        identifiers = [
            self.project,
            self.dataset,
            self.reference_dataset,
            self.sample_table,
            self.customer_table,
            self.stock_table,
            self.dispatched_table,
            self.verified_table,
            self.invoice_table,
        ]
        if orders:
            identifiers.append(self.orders_table)
        invalid = [str(value) for value in identifiers if not _IDENTIFIER.match(str(value or ""))]
        if invalid:
            raise WarehouseConfigError(f"Invalid warehouse identifier(s): {', '.join(invalid)}")


def load_settings() -> WarehouseSettings:
    load_dotenv(Path.cwd() / ".env")
    tables = DEFAULTS["tables"]
    return WarehouseSettings(
        project=os.getenv("WAREHOUSE_PROJECT") or None,
        dataset=os.getenv("WAREHOUSE_DATASET") or None,
        orders_table=os.getenv("WAREHOUSE_TABLE_SO") or None,
        reference_dataset=os.getenv("WAREHOUSE_REFERENCE_DATASET") or DEFAULTS["reference_dataset"],
        sample_table=os.getenv("WAREHOUSE_TABLE_SAMPLE") or tables["sample"],
        customer_table=os.getenv("WAREHOUSE_TABLE_CUSTOMER") or tables["customer"],
        stock_table=os.getenv("WAREHOUSE_TABLE_STOCK") or tables["stock"],
        dispatched_table=os.getenv("WAREHOUSE_TABLE_DISPATCHED") or tables["dispatched"],
        verified_table=os.getenv("WAREHOUSE_TABLE_VERIFIED") or tables["verified"],
        invoice_table=os.getenv("WAREHOUSE_TABLE_INVOICE") or tables["invoice"],
        database=os.getenv("WAREHOUSE_DATABASE") or ":memory:",
    )


def configure_logging(level: str | None = None) -> None:
    """Install the console handler used by the API process."""

    level_name = (level or os.getenv("ORDERDESK_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger("orderdesk")
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if not any(getattr(handler, "_orderdesk", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler._orderdesk = True  # type: ignore[attr-defined]
        root.addHandler(handler)
