"""
Dashboard session: wires cache, bus, scheduler, storage, canvas, layout,
discovery and one ChannelIngest per configured channel.

One Dashboard per application session; everything it owns is created
here and injected, there are no module-level stores.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from .canvas.engine import CanvasEngine
from .canvas.layout import AutoLayout, LayoutRequest
from .canvas.storage import JsonFileStore, KeyValueStore, WidgetStorage
from .config import DashboardConfig
from .datafeed.ingest import ChannelIngest
from .datafeed.transport import Transport, WebSocketTransport
from .engine.bus import SubscriptionBus
from .engine.cache import StreamCache
from .engine.discovery import MetricDiscovery
from .engine.scheduler import AsyncioScheduler, Scheduler
from .types import GridPosition, GridSize, WidgetConfig, WidgetKind
from .widgets.base import Widget
from .widgets.registry import create_widget, new_config, new_widget_id

logger = logging.getLogger(__name__)


class Dashboard:
    """
    Application session.

    Usage:
        dashboard = Dashboard(DashboardConfig())
        dashboard.load_saved()
        await dashboard.run()
    """

    def __init__(
        self,
        config: DashboardConfig | None = None,
        store: KeyValueStore | None = None,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
        viewport: tuple[float, float] = (1280.0, 800.0),
    ) -> None:
        self.config = config or DashboardConfig()
        self.cache = StreamCache()
        self.bus = SubscriptionBus()
        self.scheduler = scheduler or AsyncioScheduler()
        self.storage = WidgetStorage(store if store is not None else JsonFileStore(self.config.storage_path))
        self.canvas = CanvasEngine(
            viewport[0],
            viewport[1],
            grid_size=self.config.grid_size,
            storage=self.storage,
            scheduler=self.scheduler,
        )
        self.layout = AutoLayout(self.canvas, self._build_widget, self.storage)
        self.discovery = MetricDiscovery(self.cache)

        self.transport = transport or WebSocketTransport()
        self.ingests: dict[str, ChannelIngest] = {
            channel: ChannelIngest(
                channel,
                self.cache,
                self.bus,
                self.transport,
                self.config.stream_url(channel),
                scheduler=self.scheduler,
                reconnect_delay=self.config.reconnect_delay,
            )
            for channel in self.config.channels
        }
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Widgets
    # ------------------------------------------------------------------

    def _build_widget(self, config: WidgetConfig) -> Widget | None:
        return create_widget(config, self.cache, self.bus, self.scheduler)

    def create_widget_from_config(self, config: WidgetConfig, persist: bool = True) -> Widget | None:
        """Build, mount and (optionally) persist a widget from its config."""
        widget = self._build_widget(config)
        if widget is None:
            return None
        if not self.canvas.add_widget(widget):
            return None
        if persist:
            self.storage.add_widget(config)
        return widget

    def add_widget(
        self,
        kind: str | WidgetKind,
        bound: dict[str, Any] | None = None,
        position: GridPosition | None = None,
        size: GridSize | None = None,
    ) -> Widget | None:
        return self.create_widget_from_config(new_config(kind, bound, position, size))

    def duplicate_widget(self, widget_id: str) -> Widget | None:
        """Copy kind, size and bound config to a fresh id, offset by (+1, +1)."""
        original = self.canvas.get_widget(widget_id)
        if original is None:
            logger.debug("duplicate_widget: unknown widget %s", widget_id)
            return None
        source = original.config
        config = WidgetConfig(
            id=new_widget_id(source.type),
            type=source.type,
            position=GridPosition(source.position.x + 1, source.position.y + 1),
            size=source.size,
            config=dict(source.config),
        )
        return self.create_widget_from_config(config)

    def remove_widget(self, widget_id: str) -> bool:
        return self.canvas.remove_widget(widget_id)

    def clear(self) -> None:
        """Remove every widget: storage first, then the canvas."""
        self.storage.clear_all()
        self.canvas.clear()

    def load_saved(self) -> list[Widget]:
        """Mount every stored widget without re-persisting it."""
        widgets = []
        for config in self.storage.get_widgets():
            widget = self.create_widget_from_config(config, persist=False)
            if widget is not None:
                widgets.append(widget)
        logger.info("Loaded %d saved widget(s)", len(widgets))
        return widgets

    def add_options(self, option_ids: Iterable[str]) -> list[WidgetConfig]:
        """Auto-layout one widget per discovered option id."""
        requests = []
        for option_id in option_ids:
            option = self.discovery.get(option_id)
            if option is None:
                logger.debug("add_options: unknown option %s", option_id)
                continue
            requests.append(LayoutRequest(option.widget_type, option.config))
        return self.layout.place(requests)

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    def start(self) -> list[asyncio.Task]:
        """Spawn one ingest task per channel on the running loop."""
        if not self._tasks:
            self._tasks = [
                asyncio.create_task(ingest.run(), name=f"ingest-{channel}")
                for channel, ingest in self.ingests.items()
            ]
        return self._tasks

    async def run(self) -> None:
        """Run every channel until stop() or cancellation."""
        tasks = self.start()
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            await self.stop()
        for channel, result in zip(self.ingests, results):
            if isinstance(result, Exception):
                logger.error("%s: ingest stopped with %r", channel, result)

    async def stop(self) -> None:
        for ingest in self.ingests.values():
            ingest.stop()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def shutdown(self) -> None:
        """Tear down widgets and timers (storage is left intact)."""
        self.canvas.clear()
        self.scheduler.cancel_all()
