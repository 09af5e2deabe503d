from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T\s].*)?$")
_DAY_FIRST = re.compile(r"^(\d{2})[-/](\d{2})[-/](\d{4})$")
_DOTTED_DAY_FIRST = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")
_DOTTED_YEAR_FIRST = re.compile(r"^(\d{4})\.(\d{2})\.(\d{2})$")


def _build(year: str, month: str, day: str) -> date | None:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """Parse the date formats found in the warehouse exports.

    ISO dates (optionally carrying a time part), ``DD-MM-YYYY``,
    ``DD/MM/YYYY`` and dotted variants are accepted; the first form that
    parses wins. Anything else resolves to ``None``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    raw = str(value).strip()
    if not raw:
        return None

    match = _ISO_PREFIX.match(raw)
    if match:
        return _build(match.group(1), match.group(2), match.group(3))

    match = _DAY_FIRST.match(raw)
    if match:
        return _build(match.group(3), match.group(2), match.group(1))

    match = _DOTTED_DAY_FIRST.match(raw)
    if match:
        return _build(match.group(3), match.group(2), match.group(1))

    match = _DOTTED_YEAR_FIRST.match(raw)
    if match:
        return _build(match.group(1), match.group(2), match.group(3))

    return None


def to_iso(value: Any) -> str | None:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days
