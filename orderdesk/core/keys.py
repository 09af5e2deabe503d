from __future__ import annotations

import re
from typing import Any, Mapping

_BRACKET_SUFFIX = re.compile(r"\s*\[.*?\]")
_WHITESPACE = re.compile(r"\s+")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_field(value: Any) -> str:
    """Strip bracketed annotations, trim and upper-case a key part."""

    return _BRACKET_SUFFIX.sub("", _text(value)).strip().upper()


def composite_key(so_no: Any, customer: Any, item: Any, color: Any) -> str:
    return "|".join(normalize_field(part) for part in (so_no, customer, item, color))


def row_key(row: Any) -> str:
    """Composite key of an order row, dispatch row or verification record."""

    if isinstance(row, Mapping):
        return composite_key(row.get("SO_No"), row.get("Customer"), row.get("Item"), row.get("Color"))
    return composite_key(
        getattr(row, "so_no", None),
        getattr(row, "customer", None),
        getattr(row, "item", None),
        getattr(row, "color", None),
    )


def item_key(value: Any) -> str:
    """Key used to match order items against stock rows."""

    stripped = _BRACKET_SUFFIX.sub("", _text(value))
    return _WHITESPACE.sub(" ", stripped).strip().lower()


def customer_compare_key(value: Any) -> str:
    return _BRACKET_SUFFIX.sub("", _text(value)).strip().lower()


def item_compare_key(value: Any) -> str:
    return _text(value).strip().lower()


def color_compare_key(value: Any) -> str:
    return _text(value).strip().lower()


def invoice_key(customer: Any, item: Any, color: Any) -> str:
    return "|".join(
        [customer_compare_key(customer), item_compare_key(item), color_compare_key(color)]
    )
