"""
Owner-scoped timers.

Every periodic or delayed callback in the dashboard (log cleanup, order
refresh, drag-release flag, log "waiting" notice) goes through one
Scheduler, tagged with the object that owns it. Tearing an owner down is a
single cancel_owner() call, so no timer can outlive the widget or channel
it acts on.

The scheduling backend is pluggable: AsyncioScheduler uses the running
event loop; tests drive a manual clock instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable reference to one scheduled callback."""

    __slots__ = ('owner', 'interval', 'callback', 'cancelled', '_scheduler', '_token')

    def __init__(
        self,
        scheduler: Scheduler,
        callback: Callable[[], Any],
        owner: Any = None,
        interval: float | None = None,
    ) -> None:
        self.owner = owner
        self.interval = interval
        self.callback = callback
        self.cancelled = False
        self._scheduler = scheduler
        self._token: Any = None

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def cancel(self) -> None:
        self._scheduler._cancel(self)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<TimerHandle owner={self.owner!r} interval={self.interval} {state}>"


class Scheduler:
    """
    Timer registry keyed by owner.

    Subclasses provide _arm(delay, fire) -> token and _disarm(token).

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(self) -> None:
        self._timers: dict[Any, list[TimerHandle]] = {}

    # Backend hooks
    def _arm(self, delay: float, fire: Callable[[], None]) -> Any:
        raise NotImplementedError

    def _disarm(self, token: Any) -> None:
        raise NotImplementedError

    def call_later(self, delay: float, fn: Callable[[], Any], owner: Any = None) -> TimerHandle:
        """Run `fn` once after `delay` seconds."""
        handle = TimerHandle(self, fn, owner)
        self._register(handle, delay)
        return handle

    def call_every(self, interval: float, fn: Callable[[], Any], owner: Any = None) -> TimerHandle:
        """Run `fn` every `interval` seconds until cancelled."""
        if interval <= 0:
            raise ValueError("interval must be > 0")
        handle = TimerHandle(self, fn, owner, interval=interval)
        self._register(handle, interval)
        return handle

    def cancel_owner(self, owner: Any) -> int:
        """Cancel every timer held by `owner`; returns how many were live."""
        handles = self._timers.pop(owner, [])
        for handle in handles:
            handle.cancelled = True
            self._disarm(handle._token)
        if handles:
            logger.debug("Cancelled %d timer(s) for %r", len(handles), owner)
        return len(handles)

    def cancel_all(self) -> None:
        for owner in list(self._timers):
            self.cancel_owner(owner)

    def pending(self, owner: Any = None) -> int:
        """Live timers for `owner`, or for everyone when owner is None."""
        if owner is None:
            return sum(len(handles) for handles in self._timers.values())
        return len(self._timers.get(owner, ()))

    def _register(self, handle: TimerHandle, delay: float) -> None:
        self._timers.setdefault(handle.owner, []).append(handle)
        handle._token = self._arm(max(0.0, delay), lambda: self._fire(handle))

    def _forget(self, handle: TimerHandle) -> None:
        handles = self._timers.get(handle.owner)
        if handles is None:
            return
        try:
            handles.remove(handle)
        except ValueError:
            return
        if not handles:
            del self._timers[handle.owner]

    def _cancel(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        handle.cancelled = True
        self._disarm(handle._token)
        self._forget(handle)

    def _fire(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        if handle.interval is not None:
            # Re-arm first so the callback may cancel its own timer
            handle._token = self._arm(handle.interval, lambda: self._fire(handle))
        else:
            handle.cancelled = True
            self._forget(handle)
        try:
            handle.callback()
        except Exception:
            logger.exception("Timer callback failed (owner=%r)", handle.owner)


class AsyncioScheduler(Scheduler):
    """Scheduler backed by loop.call_later on the running event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__()
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _arm(self, delay: float, fire: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, fire)

    def _disarm(self, token: asyncio.TimerHandle | None) -> None:
        if token is not None:
            token.cancel()
