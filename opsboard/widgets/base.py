"""
Widget lifecycle.

A Widget is one placed view bound to a channel. Its behaviour is selected
by `kind` through a KindSpec from the static registry; there is no
per-kind subclass.

Lifecycle:
    created -> mount() -> update()* -> destroy()

mount() renders from the current cache first (placeholder when empty),
then subscribes and starts the kind's timers. destroy() unsubscribes
first, cancels every timer the widget owns, then detaches.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, NamedTuple

from rich.console import RenderableType
from rich.text import Text

from ..types import (
    Channel,
    GridPosition,
    GridSize,
    LogLine,
    MetricEntry,
    WidgetConfig,
    WidgetKind,
)

if TYPE_CHECKING:
    from ..engine.bus import SubscriptionBus
    from ..engine.cache import StreamCache
    from ..engine.scheduler import Scheduler

logger = logging.getLogger(__name__)

PLACEHOLDER_STYLE = "dim"

RenderFn = Callable[["Widget", "StreamCache"], RenderableType]
TimerFn = Callable[["Widget"], None]
PayloadFn = Callable[["Widget", Any], None]


class KindSpec(NamedTuple):
    """Static description of one widget kind."""
    kind: WidgetKind
    channel: Channel
    title: str
    default_size: GridSize
    render: RenderFn
    # Config keys naming the bound target, in lookup order
    bound_keys: tuple[str, ...] = ()
    # (interval seconds, action) pairs started on mount
    timers: tuple[tuple[float, TimerFn], ...] = ()
    # Called with each channel payload before re-rendering
    on_payload: PayloadFn | None = None
    # Extra bus channels the widget listens to (payload handled by on_payload)
    extra_channels: tuple[str, ...] = ()


def placeholder(message: str) -> Text:
    return Text(message, style=PLACEHOLDER_STYLE, justify="center")


class Widget:
    """
    Mounted view of one cache channel.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        config: WidgetConfig,
        spec: KindSpec,
        cache: StreamCache,
        bus: SubscriptionBus,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config
        self.spec = spec
        self.cache = cache
        self.bus = bus
        self.scheduler = scheduler

        self.mounted = False
        self.destroyed = False
        self.selected = False
        self.renderable: RenderableType = placeholder("No data")
        self.render_count = 0
        # Log kinds keep their own bounded window
        self.buffer: list[LogLine] = []

        # Target adopted by fallback; configured key still wins once present
        self._adopted_key: str | None = None
        self._render_listeners: list[Callable[[Widget], None]] = []
        self._detach_listeners: list[Callable[[Widget], None]] = []

    # ------------------------------------------------------------------
    # Identity and geometry (proxied to the persisted config)
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def kind(self) -> WidgetKind:
        return self.spec.kind

    @property
    def channel(self) -> str:
        return self.spec.channel.value

    @property
    def title(self) -> str:
        name = self.config.config.get("metricName")
        return f"{self.spec.title}: {name}" if name else self.spec.title

    @property
    def position(self) -> GridPosition:
        return self.config.position

    @position.setter
    def position(self, value: GridPosition) -> None:
        self.config.position = GridPosition(int(value[0]), int(value[1]))

    @property
    def size(self) -> GridSize:
        return self.config.size

    @size.setter
    def size(self, value: GridSize) -> None:
        self.config.size = GridSize(int(value[0]), int(value[1]))

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    @property
    def bound_key(self) -> str | None:
        """Configured target key, looked up through the kind's aliases."""
        for name in self.spec.bound_keys:
            value = self.config.config.get(name)
            if value:
                return str(value)
        return None

    @property
    def target_key(self) -> str | None:
        return self.bound_key or self._adopted_key

    def resolve_target(
        self,
        predicate: Callable[[MetricEntry], bool] | None = None,
    ) -> MetricEntry | None:
        """
        Entry this widget should show.

        Order: configured key, previously adopted key, then the first entry
        of the channel passing `predicate` (adopted from then on).
        """
        for key in (self.bound_key, self._adopted_key):
            if key:
                entry = self.cache.get(self.channel, key)
                if entry is not None:
                    return entry

        key = self.cache.first_key(self.channel, predicate)
        if key is None:
            return None
        if key != self._adopted_key:
            logger.debug("Widget %s adopted %s as its target", self.id, key)
        self._adopted_key = key
        return self.cache.get(self.channel, key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        if self.mounted or self.destroyed:
            return
        self.render()
        self.bus.subscribe(self.channel, self.update)
        for channel in self.spec.extra_channels:
            self.bus.subscribe(channel, self.update)
        if self.scheduler is not None:
            for interval, action in self.spec.timers:
                self.scheduler.call_every(interval, lambda action=action: action(self), owner=self)
        self.mounted = True

    def update(self, payload: Any = None) -> None:
        """Bus callback: absorb the payload (if the kind wants it) and re-render."""
        if self.destroyed:
            return
        if self.spec.on_payload is not None:
            self.spec.on_payload(self, payload)
        self.render()

    def render(self) -> RenderableType:
        try:
            self.renderable = self.spec.render(self, self.cache)
        except Exception:
            logger.exception("Widget %s (%s) failed to render", self.id, self.kind.value)
            self.renderable = placeholder("Render error")
        self.render_count += 1
        for listener in tuple(self._render_listeners):
            listener(self)
        return self.renderable

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.bus.unsubscribe(self.channel, self.update)
        for channel in self.spec.extra_channels:
            self.bus.unsubscribe(channel, self.update)
        if self.scheduler is not None:
            self.scheduler.cancel_owner(self)
        self.mounted = False
        self.destroyed = True
        for listener in tuple(self._detach_listeners):
            listener(self)
        self._render_listeners.clear()
        self._detach_listeners.clear()

    # ------------------------------------------------------------------
    # Listeners (UI hooks)
    # ------------------------------------------------------------------

    def add_render_listener(self, listener: Callable[[Widget], None]) -> None:
        self._render_listeners.append(listener)

    def remove_render_listener(self, listener: Callable[[Widget], None]) -> None:
        if listener in self._render_listeners:
            self._render_listeners.remove(listener)

    def add_detach_listener(self, listener: Callable[[Widget], None]) -> None:
        self._detach_listeners.append(listener)

    def __repr__(self) -> str:
        return f"<Widget {self.id} {self.kind.value} at {tuple(self.position)}>"

