"""
Auto-layout for batches of new widgets.

Greedy shelf packing, left to right then top to bottom:
1. A widget that would overflow the row width wraps to a new row at
   (previous row's max height + margin)
2. A widget that would overflow the canvas height skips ahead to the next
   "page" instead of failing
3. Widgets are separated by a one-unit margin

Deterministic and O(n); not an optimal packing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

from ..types import GridPosition, GridSize, WidgetConfig, WidgetKind
from ..widgets.registry import new_config

if TYPE_CHECKING:
    from .engine import CanvasEngine
    from .storage import WidgetStorage
    from ..widgets.base import Widget

logger = logging.getLogger(__name__)

MARGIN = 1
# Minimum vertical jump when skipping to the next page
PAGE_SKIP_MIN = 4


class LayoutRequest(NamedTuple):
    """A widget to be created by auto-layout."""
    kind: WidgetKind
    config: dict[str, Any] = {}
    size: GridSize | None = None


def calculate_layout(
    sizes: Iterable[GridSize],
    canvas_width: int,
    canvas_height: int,
    margin: int = MARGIN,
) -> list[GridPosition]:
    """Grid positions for `sizes`, in order."""
    positions: list[GridPosition] = []
    x = y = 0
    row_height = 0

    for width, height in sizes:
        # Wrap only when the row already holds something; a widget wider
        # than the canvas goes alone on its row at x = 0
        if x > 0 and x + width > canvas_width:
            x = 0
            y += row_height + margin
            row_height = 0

        if y + height > canvas_height:
            y = max(y + height + margin * 2, y + PAGE_SKIP_MIN)

        positions.append(GridPosition(x, y))
        x += width + margin
        row_height = max(row_height, height)

    return positions


class AutoLayout:
    """
    Creates, positions, mounts and persists a batch of widgets.

    `widget_factory` builds an unmounted Widget from a WidgetConfig (or
    returns None for kinds it cannot build).
    """

    def __init__(
        self,
        canvas: CanvasEngine,
        widget_factory: Callable[[WidgetConfig], Widget | None],
        storage: WidgetStorage | None = None,
        margin: int = MARGIN,
    ) -> None:
        self.canvas = canvas
        self.widget_factory = widget_factory
        self.storage = storage
        self.margin = margin

    def layout(self, configs: Sequence[WidgetConfig]) -> list[GridPosition]:
        return calculate_layout(
            (c.size for c in configs),
            self.canvas.grid_width,
            self.canvas.grid_height,
            self.margin,
        )

    def place(self, requests: Iterable[LayoutRequest]) -> list[WidgetConfig]:
        """Build configs for `requests`, lay them out, mount and persist them."""
        configs = [new_config(r.kind, r.config, size=r.size) for r in requests]
        positions = self.layout(configs)

        placed: list[WidgetConfig] = []
        for config, position in zip(configs, positions):
            config.position = position
            widget = self.widget_factory(config)
            if widget is None:
                logger.debug("Skipping unsupported widget type %s", config.type)
                continue
            if not self.canvas.add_widget(widget):
                continue
            if self.storage is not None:
                self.storage.add_widget(config)
            placed.append(config)

        logger.info("Auto-layout placed %d widget(s)", len(placed))
        return placed
