from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.core.query_builder import (
    IncludeColumn,
    OrderQueryBuilder,
    OrderQueryParams,
    clamp_limit,
    clamp_offset,
)
from orderdesk.settings import WarehouseConfigError, WarehouseSettings


@pytest.fixture()
def builder() -> OrderQueryBuilder:
    return OrderQueryBuilder(WarehouseSettings(project="demo", dataset="sales", orders_table="pending_orders"))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 25), ("", 25), ("abc", 25), (0, 25), (-3, 25), ("0.5", 25), ("10.9", 10), (9999, 500), (500, 500)],
)
def test_clamp_limit(raw, expected):
    assert clamp_limit(raw) == expected


@pytest.mark.parametrize(("raw", "expected"), [(None, 0), ("-5", 0), ("abc", 0), ("12.7", 12), (40, 40)])
def test_clamp_offset(raw, expected):
    assert clamp_offset(raw) == expected


def test_select_binds_only_referenced_parameters(builder):
    params = OrderQueryParams(q="kurta", tokens=["SO-1", "  ", "acme"], brand="Orderdesk", limit="10", offset="20")
    query = builder.build_select(params)
    assert set(query.params) == {"q", "token0", "token1", "brand"}
    assert query.params["token1"] == "%acme%"
    for name in query.params:
        assert f"${name}" in query.sql
    assert "LIMIT 10 OFFSET 20" in query.sql
    assert '"demo"."sales"."pending_orders"' in query.sql
    assert '"demo"."frono"."customer_combined"' in query.sql


def test_dates_are_bound_as_dates_and_garbage_is_ignored(builder):
    params = OrderQueryParams.model_validate({"startDate": "05-01-2025", "endDate": "not-a-date"})
    query = builder.build_count(params)
    assert query.params == {"start_date": date(2025, 1, 5)}


def test_include_column_resolution(builder, caplog):
    assert IncludeColumn.resolve("SO_No") is IncludeColumn.SO_NO
    assert IncludeColumn.resolve("Customer").column == "customer_norm"
    assert IncludeColumn.CUSTOMER.prepare(["Acme Traders [Kolkata]"]) == ["acme traders"]
    with caplog.at_level("WARNING"):
        assert IncludeColumn.resolve("DROP TABLE") is None
    assert "Ignored invalid includeColumn" in caplog.text

    ignored = builder.build_select(OrderQueryParams.model_validate({"includeColumn": "Nope", "includeValues": ["x"]}))
    assert "include_values" not in ignored.params

    included = builder.build_select(
        OrderQueryParams.model_validate({"includeColumn": "Broker", "includeValues": ["Direct"]})
    )
    assert included.params == {"include_values": ["Direct"]}
    assert "list_contains($include_values, ps.Broker)" in included.sql


def test_stock_batch_skips_blank_items(builder):
    assert builder.build_stock_batch(["", "  ", None]) is None
    query = builder.build_stock_batch([" KRT-101 ", "sar-220"])
    assert query.params == {"items": ["krt-101", "sar-220"]}


def test_listing_sorts_are_whitelisted(builder):
    select, count = builder.build_stock_list(sort_by="Closing_Stock; DROP", order="desc", limit=5000)
    assert "ORDER BY Item DESC" in select.sql
    assert "LIMIT 1000 OFFSET 0" in select.sql
    assert count.params == {}

    select, _ = builder.build_customer_list(sort_by="Outstanding", order="asc", min_outstanding="100")
    assert "ORDER BY Outstanding ASC" in select.sql
    assert select.params == {"min_outstanding": 100.0}


def test_missing_configuration_is_reported():
    builder = OrderQueryBuilder(WarehouseSettings(project="demo", dataset=None, orders_table=None))
    with pytest.raises(WarehouseConfigError) as excinfo:
        builder.build_select(OrderQueryParams())
    assert "WAREHOUSE_DATASET" in str(excinfo.value)
    assert "WAREHOUSE_TABLE_SO" in str(excinfo.value)


def test_invalid_identifier_is_rejected():
    settings = WarehouseSettings(project="demo", dataset="sales", orders_table="orders; DROP")
    with pytest.raises(WarehouseConfigError):
        settings.require(orders=True)
