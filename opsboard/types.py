"""
Data types for opsboard.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- Cache entries are replaced wholesale on upsert, never mutated in place
- WidgetConfig is the only mutable type; it is the persisted form of a widget
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Union


class Channel(str, Enum):
    """Independently managed message streams."""
    TELEMETRY = "telemetry"
    BALANCE = "balance"
    SYSTEM = "system"
    LOG = "log"


class WidgetKind(str, Enum):
    """Widget kinds; the value is the persisted `type` string."""
    TELEMETRY_GAUGE = "telemetry-gauge"
    TELEMETRY_COUNTER = "telemetry-counter"
    TELEMETRY_HISTOGRAM = "telemetry-histogram"
    TELEMETRY_METRIC = "telemetry-metric"
    BALANCE_ASSETS = "balance-assets"
    BALANCE_ORDERS = "balance-orders"
    BALANCE_SINGLE = "balance-single"
    BALANCE_ORDERS_SINGLE = "balance-orders-single"
    SYSTEM_CPU = "system-cpu"
    SYSTEM_MEMORY = "system-memory"
    SYSTEM_METRIC = "system-metric"
    LOG_STREAM = "log-stream"


# Extra bus channel carrying ChannelStatus events (not a transport stream)
STATUS_CHANNEL = "status"


def channel_name(channel: str | Channel) -> str:
    """Plain string name of a channel (str() on a str-Enum member is not the value)."""
    return channel.value if isinstance(channel, Channel) else str(channel)


class Point(NamedTuple):
    """Pointer or touch location in viewport pixels."""
    x: float
    y: float


class GridPosition(NamedTuple):
    """Widget origin in grid units (integers >= 0)."""
    x: int
    y: int


class GridSize(NamedTuple):
    """Widget extent in grid units."""
    width: int
    height: int


class MetricEntry(NamedTuple):
    """
    Last known value for one cache key.

    `kind` is the unit class used by formatting: "time", "memory" or "number".
    Memory values are always stored in bytes.
    """
    key: str
    name: str
    value: Any                     # number | list[number] | mapping
    labels: dict[str, Any]
    rate: float = 0.0
    last_updated: float | None = None
    metric_type: str | None = None  # gauge / counter / histogram (telemetry only)
    kind: str = "number"
    extra: dict[str, Any] = {}


class LogEntry(NamedTuple):
    """Structured log line."""
    timestamp: str | float | None
    level: str
    section: str
    message: str
    id: str | int | None = None


# A log line is either raw text or a structured entry
LogLine = Union[str, LogEntry]


class CacheUpdate(NamedTuple):
    """Payload published on a cached channel after a merge."""
    channel: str
    changed: frozenset[str]


class ChannelStatus(NamedTuple):
    """Connection status transition for one channel."""
    channel: str
    state: str
    message: str


class CanvasViewState(NamedTuple):
    """Derived canvas sizing; recomputed on every structural change."""
    scale: float
    base_width: float
    base_height: float


class OrderStats(NamedTuple):
    """Aggregated open-order figures for one symbol."""
    buy_count: int
    sell_count: int
    total_count: int
    buy_value: float
    sell_value: float
    difference: float


@dataclass
class WidgetConfig:
    """
    Persisted form of a widget.

    Serialises to {"id", "type", "position": {"x", "y"},
    "size": {"width", "height"}, "config": {...}}.
    """

    id: str
    type: str
    position: GridPosition = GridPosition(0, 0)
    size: GridSize = GridSize(4, 3)
    config: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "position": {"x": self.position.x, "y": self.position.y},
            "size": {"width": self.size.width, "height": self.size.height},
            "config": dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WidgetConfig:
        position = data.get("position") or {}
        size = data.get("size") or {}
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            position=GridPosition(int(position.get("x", 0)), int(position.get("y", 0))),
            size=GridSize(int(size.get("width", 4)), int(size.get("height", 3))),
            config=dict(data.get("config") or {}),
        )
