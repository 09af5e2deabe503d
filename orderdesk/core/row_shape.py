"""Post-query clean-up of warehouse rows before they leave the API."""
from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

import pandas as pd

_CUSTOMER_CITY = re.compile(r"^(.*?)\s*\[\s*(.*?)\s*\]\s*$")

ORDER_NUMERIC_FIELDS = {"OrderQty"}
STOCK_NUMERIC_FIELDS = {
    "Closing_Stock",
    "Opening_Stock",
    "Stock_In",
    "Stock_Out",
    "SNP",
    "WSP",
    "cost_price",
    "adjusted_cost_price",
}
INVOICE_NUMERIC_FIELDS = {"Total"}
CUSTOMER_NUMERIC_FIELDS = {"Outstanding"}
VERIFICATION_NUMERIC_FIELDS = {"OrderQty"}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        missing = pd.isna(value)
    except (TypeError, ValueError):
        return False
    if hasattr(missing, "__len__"):
        return False
    return bool(missing)


def clean_value(value: Any) -> Any:
    """Collapse empty-ish values to ``None`` and trim strings."""

    if _is_missing(value):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() == "nan":
            return None
        return stripped
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (TypeError, ValueError):
            return value
    return value


def coerce_number(value: Any) -> int | float | None:
    cleaned = clean_value(value)
    if cleaned is None or isinstance(cleaned, bool):
        return None
    if isinstance(cleaned, int):
        return cleaned
    try:
        number = Decimal(str(cleaned).replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def coerce_int(value: Any) -> int | None:
    number = coerce_number(value)
    if number is None:
        return None
    return int(number)


def split_customer_city(value: Any) -> tuple[str | None, str | None]:
    """Split ``"Name [City]"`` into its name and city parts."""

    cleaned = clean_value(value)
    if cleaned is None:
        return None, None
    text = str(cleaned)
    match = _CUSTOMER_CITY.match(text)
    if match:
        name = match.group(1).strip() or None
        city = match.group(2).strip() or None
        return name, city
    return text or None, None


def normalize_record(raw: Mapping[str, Any], numeric_fields: Iterable[str] = ()) -> dict[str, Any]:
    numeric = set(numeric_fields)
    record: dict[str, Any] = {}
    for key, value in raw.items():
        if key in numeric:
            record[key] = coerce_number(value)
        else:
            cleaned = clean_value(value)
            record[key] = cleaned if cleaned is None or isinstance(cleaned, (int, float, bool)) else str(cleaned)
    return record


def normalize_records(
    rows: Iterable[Mapping[str, Any]],
    numeric_fields: Iterable[str] = (),
) -> list[dict[str, Any]]:
    numeric = set(numeric_fields)
    return [normalize_record(row, numeric) for row in rows]


def normalize_order_row(raw: Mapping[str, Any]) -> dict[str, Any]:
    record = normalize_record(raw, ORDER_NUMERIC_FIELDS)
    if record.get("OrderQty") is not None:
        record["OrderQty"] = coerce_int(record["OrderQty"])
    name, city = split_customer_city(record.get("Customer"))
    record["Customer"] = name
    if city:
        record["CustomerCity"] = city
    return record


def frame_to_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    boxed = frame.astype(object).where(frame.notna(), None)
    return [{str(key): clean_value(value) for key, value in row.items()} for row in boxed.to_dict(orient="records")]
