"""
Synchronous per-channel fan-out.

HOT PATH: publish() runs once per inbound message, right after the cache
merge, on the same event-loop turn.

Delivery rules:
1. Subscribers run in subscription order
2. Iteration is over a snapshot, so callbacks may subscribe/unsubscribe freely
3. A failing callback is logged and skipped; publish() never raises
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..types import channel_name

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]


class SubscriptionBus:
    """
    Channel name -> ordered subscriber list.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = ('_subscribers', 'delivered', 'failures')

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = {}
        self.delivered: int = 0
        self.failures: int = 0

    def subscribe(self, channel: str, callback: Callback) -> None:
        """Register `callback`; subscribing the same callback twice is ignored."""
        subscribers = self._subscribers.setdefault(channel_name(channel), [])
        if callback not in subscribers:
            subscribers.append(callback)

    def unsubscribe(self, channel: str, callback: Callback) -> None:
        subscribers = self._subscribers.get(channel_name(channel))
        if not subscribers:
            return
        try:
            subscribers.remove(callback)
        except ValueError:
            return
        if not subscribers:
            del self._subscribers[channel_name(channel)]

    def publish(self, channel: str, payload: Any) -> int:
        """
        Deliver `payload` to every current subscriber of `channel`.

        Returns the number of callbacks that completed without raising.
        """
        snapshot = tuple(self._subscribers.get(channel_name(channel), ()))
        ok = 0
        for callback in snapshot:
            try:
                callback(payload)
            except Exception:
                self.failures += 1
                logger.exception("Subscriber %r failed on channel %s", callback, channel)
            else:
                ok += 1
        self.delivered += ok
        return ok

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel_name(channel), ()))

    def channels(self) -> list[str]:
        return list(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()
