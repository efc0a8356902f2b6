"""Static widget-kind registry and factory."""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from . import balance, log, system, telemetry
from .base import KindSpec, Widget
from ..types import GridPosition, GridSize, WidgetConfig, WidgetKind

if TYPE_CHECKING:
    from ..engine.bus import SubscriptionBus
    from ..engine.cache import StreamCache
    from ..engine.scheduler import Scheduler

logger = logging.getLogger(__name__)

REGISTRY: dict[WidgetKind, KindSpec] = {
    spec.kind: spec
    for spec in (*telemetry.KINDS, *balance.KINDS, *system.KINDS, *log.KINDS)
}

FALLBACK_SIZE = GridSize(4, 3)


def get_spec(kind: str | WidgetKind) -> KindSpec | None:
    try:
        return REGISTRY.get(WidgetKind(kind))
    except ValueError:
        return None


def default_size(kind: str | WidgetKind) -> GridSize:
    spec = get_spec(kind)
    return spec.default_size if spec is not None else FALLBACK_SIZE


def new_widget_id(kind: str | WidgetKind) -> str:
    kind_name = kind.value if isinstance(kind, WidgetKind) else str(kind)
    return f"{kind_name}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def new_config(
    kind: str | WidgetKind,
    bound: dict | None = None,
    position: GridPosition | None = None,
    size: GridSize | None = None,
) -> WidgetConfig:
    """Fresh WidgetConfig with a new id and the kind's default size."""
    kind_name = kind.value if isinstance(kind, WidgetKind) else str(kind)
    return WidgetConfig(
        id=new_widget_id(kind_name),
        type=kind_name,
        position=position or GridPosition(0, 0),
        size=size or default_size(kind_name),
        config=dict(bound or {}),
    )


def create_widget(
    config: WidgetConfig,
    cache: StreamCache,
    bus: SubscriptionBus,
    scheduler: Scheduler | None = None,
) -> Widget | None:
    """Build (but do not mount) a widget; unknown kinds yield None."""
    spec = get_spec(config.type)
    if spec is None:
        logger.debug("Unsupported widget type: %s", config.type)
        return None
    return Widget(config, spec, cache, bus, scheduler)
