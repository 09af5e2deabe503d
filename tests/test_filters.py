from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.application import FilterController


def test_draft_changes_are_not_applied_until_requested():
    controller = FilterController()
    seen = []
    controller.subscribe(seen.append)

    controller.add_token("  acme ")
    controller.add_token("acme")
    controller.add_token("   ")
    controller.set_dates("2025-01-01", "2025-01-31")
    controller.set_customers(["Acme Traders"])
    assert controller.draft.tokens == ["acme"]
    assert controller.applied.tokens == []
    assert seen == []

    applied = controller.apply()
    assert applied.tokens == ["acme"]
    assert applied.start_date == "2025-01-01"
    assert applied.customers == ["Acme Traders"]
    assert len(seen) == 1

    applied.tokens.append("mutated")
    assert controller.applied.tokens == ["acme"]


def test_clearing_applies_immediately():
    controller = FilterController()
    seen = []
    controller.subscribe(seen.append)
    controller.add_token("acme")
    controller.set_dates("2025-01-01", "2025-01-31")
    controller.apply()

    controller.clear_tokens()
    assert controller.applied.tokens == []
    assert controller.applied.start_date == "2025-01-01"
    controller.clear_dates()
    assert controller.applied.start_date == ""
    assert controller.draft.end_date == ""
    assert len(seen) == 3


def test_group_by_changes_and_clear_all():
    controller = FilterController()
    seen = []
    unsubscribe = controller.subscribe(seen.append)
    assert controller.group_by == ["Item"]

    assert controller.set_group_by(["Status", "Customer"]) == ["Customer", "Status"]
    assert controller.set_group_by(["Customer", "Status"]) == ["Customer", "Status"]
    assert len(seen) == 1
    assert controller.set_group_by([]) == ["Customer"]

    controller.set_limit(0)
    assert controller.draft.limit == 25
    controller.add_token("x")
    controller.clear_all()
    assert controller.group_by == ["Customer"]
    assert controller.draft.tokens == []
    assert controller.applied.tokens == []

    unsubscribe()
    controller.apply()
    assert len(seen) == 3
