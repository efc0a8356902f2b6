from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable

import pytest

from opsboard.canvas.engine import CanvasEngine
from opsboard.canvas.storage import MemoryStore, WidgetStorage
from opsboard.engine.bus import SubscriptionBus
from opsboard.engine.cache import StreamCache
from opsboard.engine.scheduler import Scheduler


class FakeScheduler(Scheduler):
    """Scheduler driven by a manual clock; advance() fires due timers in order."""

    def __init__(self) -> None:
        super().__init__()
        self.now = 0.0
        self._queue: list[tuple[float, int, list]] = []
        self._seq = itertools.count()

    def _arm(self, delay: float, fire: Callable[[], None]) -> Any:
        token = [fire]
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), token))
        return token

    def _disarm(self, token: Any) -> None:
        if token is not None:
            token[0] = None

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, token = heapq.heappop(self._queue)
            self.now = when
            fire = token[0]
            if fire is not None:
                fire()
        self.now = target


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def cache() -> StreamCache:
    return StreamCache()


@pytest.fixture
def bus() -> SubscriptionBus:
    return SubscriptionBus()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def storage(store: MemoryStore) -> WidgetStorage:
    return WidgetStorage(store)


@pytest.fixture
def canvas(storage: WidgetStorage, scheduler: FakeScheduler) -> CanvasEngine:
    return CanvasEngine(1200, 800, storage=storage, scheduler=scheduler)


def telemetry_item(
    name: str,
    value: Any,
    metric_type: str = "gauge",
    labels: dict | None = None,
    **extra: Any,
) -> dict:
    return {
        "name": name,
        "labels": labels or {},
        "metric_type": {"type": metric_type, "value": value},
        **extra,
    }
