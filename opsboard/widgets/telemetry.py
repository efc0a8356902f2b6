"""
Telemetry widget kinds.

Gauge, counter and histogram kinds show either one configured metric or a
group of up to 6 metrics of their type (4 for histograms). The metric kind
shows exactly one metric, falling back to the first available one.
"""

from __future__ import annotations

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from .base import KindSpec, Widget, placeholder
from ..engine.cache import StreamCache
from ..engine.units import TIME, format_labels, format_time, format_timestamp, format_value
from ..types import Channel, GridSize, MetricEntry, WidgetKind

VALUE_COLOR = "#67e8f9"        # Cyan
HISTOGRAM_COLOR = "#d8b4fe"    # Purple
LABEL_COLOR = "#94a3b8"

GROUP_LIMIT = 6
HISTOGRAM_GROUP_LIMIT = 4


def display_name(name: str) -> str:
    return name.replace("_", " ")


def format_rate(entry: MetricEntry) -> str:
    if entry.kind == TIME:
        return format_time(entry.rate)
    return format_value(entry.rate, entry.kind)


def metric_card(entry: MetricEntry, color: str = VALUE_COLOR) -> RenderableType:
    """Single metric: name, labels, big value, rate and timestamp."""
    lines: list[RenderableType] = [
        Text(display_name(entry.name), style="bold", justify="center"),
    ]
    if entry.labels:
        lines.append(Text(format_labels(entry.labels), style=LABEL_COLOR, justify="center"))
    lines.append(Text(format_value(entry.value, entry.kind), style=f"bold {color}", justify="center"))
    if entry.rate:
        lines.append(Text(f"Rate: {format_rate(entry)}", style=LABEL_COLOR, justify="center"))
    lines.append(Text(format_timestamp(entry.last_updated), style="dim", justify="center"))
    return Group(*lines)


def metric_table(entries: list[MetricEntry], color: str = VALUE_COLOR) -> Table:
    table = Table(box=None, show_header=False, padding=(0, 1), expand=True)
    table.add_column("Metric", ratio=2, no_wrap=True)
    table.add_column("Value", justify="right", ratio=1)
    for entry in entries:
        name = Text(display_name(entry.name))
        if entry.labels:
            name.append(f" {format_labels(entry.labels)}", style=LABEL_COLOR)
        value = Text(format_value(entry.value, entry.kind), style=f"bold {color}")
        if entry.rate:
            value.append(f" ({format_rate(entry)}/s)", style=LABEL_COLOR)
        table.add_row(name, value)
    return table


def _typed_renderer(metric_type: str, limit: int, color: str):
    """Renderer for one configured metric, or a group of `metric_type`."""

    def render(widget: Widget, cache: StreamCache) -> RenderableType:
        key = widget.bound_key
        if key:
            entry = cache.get(Channel.TELEMETRY, key)
            if entry is None:
                return placeholder("Metric not available")
            return metric_card(entry, color)

        entries = [e for e in cache.entries(Channel.TELEMETRY) if e.metric_type == metric_type]
        if not entries:
            return placeholder(f"No {metric_type} metrics available")
        return metric_table(entries[:limit], color)

    return render


def render_metric(widget: Widget, cache: StreamCache) -> RenderableType:
    entry = widget.resolve_target()
    if entry is None:
        return placeholder("No metrics available")
    return metric_card(entry)


TELEMETRY_BOUND_KEYS = ("key", "metricKey")

KINDS = (
    KindSpec(
        kind=WidgetKind.TELEMETRY_GAUGE,
        channel=Channel.TELEMETRY,
        title="Gauges",
        default_size=GridSize(6, 4),
        render=_typed_renderer("gauge", GROUP_LIMIT, VALUE_COLOR),
        bound_keys=TELEMETRY_BOUND_KEYS,
    ),
    KindSpec(
        kind=WidgetKind.TELEMETRY_COUNTER,
        channel=Channel.TELEMETRY,
        title="Counters",
        default_size=GridSize(6, 4),
        render=_typed_renderer("counter", GROUP_LIMIT, VALUE_COLOR),
        bound_keys=TELEMETRY_BOUND_KEYS,
    ),
    KindSpec(
        kind=WidgetKind.TELEMETRY_HISTOGRAM,
        channel=Channel.TELEMETRY,
        title="Histograms",
        default_size=GridSize(8, 4),
        render=_typed_renderer("histogram", HISTOGRAM_GROUP_LIMIT, HISTOGRAM_COLOR),
        bound_keys=TELEMETRY_BOUND_KEYS,
    ),
    KindSpec(
        kind=WidgetKind.TELEMETRY_METRIC,
        channel=Channel.TELEMETRY,
        title="Metric",
        default_size=GridSize(4, 3),
        render=render_metric,
        bound_keys=TELEMETRY_BOUND_KEYS,
    ),
)
