from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from orderdesk.core.dates import parse_date
from orderdesk.core.schema import OrderRow

GROUPABLE_OPTIONS: tuple[str, ...] = ("Customer", "Item", "Color", "Broker", "Status")
DEFAULT_GROUP_BY: tuple[str, ...] = ("Customer",)
EMPTY_LABEL = "(empty)"

_ATTRIBUTES = {
    "Customer": "customer",
    "Item": "item",
    "Color": "color",
    "Broker": "broker",
    "Status": "status",
}


@dataclass(slots=True)
class RowGroup:
    key: str
    label_parts: list[str]
    rows: list[OrderRow] = field(default_factory=list)
    count: int = 0
    quantity: int = 0
    min_date: date | None = None


def effective_group_keys(group_by: Iterable[str] | None) -> list[str]:
    keys = [key for key in (group_by or []) if key in GROUPABLE_OPTIONS]
    return keys or list(DEFAULT_GROUP_BY)


def row_date(row: OrderRow) -> date | None:
    return parse_date(row.so_date_parsed or row.so_date)


def _date_rank(value: date | None) -> tuple[int, date]:
    return (0, value) if value is not None else (1, date.max)


def _row_order(row: OrderRow) -> tuple[tuple[int, date], str]:
    return _date_rank(row_date(row)), row.so_no or ""


def _label(row: OrderRow, key: str) -> str:
    value = getattr(row, _ATTRIBUTES[key])
    text = "" if value is None else str(value)
    return text if text else EMPTY_LABEL


def _quantity(row: OrderRow) -> int:
    return row.order_qty or 0


def group_rows(rows: Sequence[OrderRow], group_by: Iterable[str] | None = None) -> list[RowGroup]:
    """Partition rows by the formatted values of the group-by attributes.

    Groups are ordered by their earliest order date (undated groups last) and
    then by key; rows inside a group by order date and order number.
    """

    keys = effective_group_keys(group_by)
    groups: dict[str, RowGroup] = {}
    for row in rows:
        parts = [_label(row, key) for key in keys]
        group_key = " | ".join(parts)
        group = groups.get(group_key)
        if group is None:
            group = groups[group_key] = RowGroup(key=group_key, label_parts=parts)
        group.rows.append(row)
        group.count += 1
        group.quantity += _quantity(row)
        parsed = row_date(row)
        if parsed is not None and (group.min_date is None or parsed < group.min_date):
            group.min_date = parsed

    for group in groups.values():
        group.rows.sort(key=_row_order)

    return sorted(groups.values(), key=lambda group: (_date_rank(group.min_date), group.key))
