from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.infrastructure import InProcessNotifier, configure_notifier, get_channel, get_notifier


def test_channels_are_shared_by_name():
    assert get_channel("sales-orders") is get_channel("sales-orders")
    assert get_channel("other") is not get_channel("sales-orders")
    assert get_notifier() is get_channel("sales-orders")


def test_configured_notifier_takes_precedence():
    custom = InProcessNotifier("custom")
    configure_notifier(custom)
    assert get_notifier() is custom
    configure_notifier(None)
    assert get_notifier() is get_channel()


def test_failing_subscriber_does_not_stop_delivery(caplog):
    notifier = InProcessNotifier()
    received = []

    def broken(event):
        raise RuntimeError("subscriber crashed")

    notifier.subscribe(broken)
    unsubscribe = notifier.subscribe(received.append)
    with caplog.at_level("ERROR"):
        notifier.publish({"type": "verified:confirmed", "row": {"SO_No": "SO-1"}})
    assert received == [{"type": "verified:confirmed", "row": {"SO_No": "SO-1"}}]
    assert "Subscriber failed" in caplog.text

    unsubscribe()
    unsubscribe()
    assert notifier.subscriber_count == 1
