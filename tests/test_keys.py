from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.core.keys import (
    composite_key,
    customer_compare_key,
    invoice_key,
    item_compare_key,
    item_key,
    normalize_field,
    row_key,
)
from orderdesk.core.schema import OrderRow


def test_normalize_field_strips_brackets_and_uppercases():
    assert normalize_field("  Acme Traders [Kolkata] ") == "ACME TRADERS"
    assert normalize_field(None) == ""
    assert normalize_field(42) == "42"


def test_composite_key_is_shared_by_mappings_and_rows():
    record = {"SO_No": "so-1", "Customer": "Acme Traders [Kolkata]", "Item": "krt-101", "Color": " red "}
    row = OrderRow.model_validate(record)
    assert row_key(record) == "SO-1|ACME TRADERS|KRT-101|RED"
    assert row_key(row) == row_key(record)
    assert composite_key("SO-1", None, "x", None) == "SO-1||X|"


def test_item_key_collapses_whitespace_and_brackets():
    assert item_key("  Kurta   Classic [old] ") == "kurta classic"
    assert item_key(None) == ""


def test_compare_keys():
    assert customer_compare_key("Acme Traders [Kolkata]") == "acme traders"
    assert item_compare_key(" KRT-101 ") == "krt-101"
    assert invoice_key("Acme Traders", "KRT-101", "Red") == "acme traders|krt-101|red"
