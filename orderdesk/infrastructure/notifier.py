"""Cross-tab notification bus.

Several dashboard sessions living in one process share a named channel;
a confirmed verification published on the channel reaches every
subscribed reconciler. Delivery is at-least-once, so subscribers must
merge events idempotently.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Protocol

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "sales-orders"

Handler = Callable[[dict[str, Any]], None]


class CrossTabNotifier(Protocol):
    """Contract for broadcasting events between dashboard sessions."""

    def publish(self, event: Mapping[str, Any]) -> None: ...

    def subscribe(self, handler: Handler) -> Callable[[], None]: ...


class InProcessNotifier:
    """Named in-process broadcast channel."""

    def __init__(self, channel: str = DEFAULT_CHANNEL) -> None:
        self.channel = channel
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def publish(self, event: Mapping[str, Any]) -> None:
        payload = dict(event)
        with self._lock:
            handlers = list(self._handlers)
        logger.debug("Publishing %s on %s to %d subscriber(s)", payload.get("type"), self.channel, len(handlers))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Subscriber failed while handling %s on %s", payload.get("type"), self.channel)

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)


_channels: dict[str, InProcessNotifier] = {}
_channels_lock = threading.Lock()


def get_channel(name: str = DEFAULT_CHANNEL) -> InProcessNotifier:
    """Return the shared bus for ``name``, creating it on first use."""

    with _channels_lock:
        channel = _channels.get(name)
        if channel is None:
            channel = _channels[name] = InProcessNotifier(name)
        return channel


_notifier: CrossTabNotifier | None = None


def configure_notifier(notifier: CrossTabNotifier | None) -> None:
    """Install the notifier used by the API; ``None`` restores the default channel."""

    global _notifier
    _notifier = notifier


def get_notifier() -> CrossTabNotifier:
    if _notifier is None:
        return get_channel(DEFAULT_CHANNEL)
    return _notifier


def reset_channels() -> None:
    global _notifier
    with _channels_lock:
        _channels.clear()
    _notifier = None
