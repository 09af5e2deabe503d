from __future__ import annotations

from typing import Any, Iterable, Mapping

from orderdesk.core.keys import row_key


def has_timestamp(value: Any) -> bool:
    """Whether a ``verified_at`` value carries a completion time."""

    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, Mapping):
        if "value" in value and str(value["value"]).strip():
            return True
        if value.get("seconds") is not None:
            return True
        return len(value) > 0
    return True


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_verification_rows(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Collapse verification records sharing a composite key.

    The first non-empty value of each field wins, except ``verified_at``
    which is replaced when the kept value has no timestamp and a later
    record does.
    """

    merged: dict[str, dict[str, Any]] = {}
    for row in rows:
        key = row_key(row)
        existing = merged.get(key)
        if existing is None:
            merged[key] = dict(row)
            continue
        for prop, value in row.items():
            current = existing.get(prop)
            if _is_blank(current):
                if value is not None:
                    existing[prop] = value
                continue
            if prop == "verified_at" and not has_timestamp(current) and has_timestamp(value):
                existing[prop] = value
    return list(merged.values())
