"""
System widget kinds: CPU, memory and single system metric.

Memory values arrive in bytes (converted at ingest), so formatting here is
unit-uniform.
"""

from __future__ import annotations

import numpy as np
from rich.console import Group, RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from .base import KindSpec, Widget, placeholder
from ..engine.cache import StreamCache, iter_numeric
from ..engine.units import format_memory, format_timestamp, format_value
from ..types import Channel, GridSize, MetricEntry, WidgetKind

BAR_BG = "#1e293b"
LABEL_COLOR = "#94a3b8"
BAR_WIDTH = 20
CORE_BAR_WIDTH = 10


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_ratio = min(1.0, max(0.0, value / max_value))
    fill_width = int(fill_ratio * width)

    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def cpu_color(usage: float) -> str:
    if usage > 80:
        return "red"
    if usage > 60:
        return "yellow"
    return "green"


def memory_color(usage: float) -> str:
    if usage > 90:
        return "red"
    if usage > 70:
        return "yellow"
    return "blue"


def _number(entry: MetricEntry | None) -> float | None:
    if entry is None:
        return None
    value = entry.value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def render_cpu(widget: Widget, cache: StreamCache) -> RenderableType:
    cpu = cache.get(Channel.SYSTEM, "cpu_usage")
    usage = _number(cpu)
    if cpu is None or usage is None:
        return placeholder("No CPU data")

    cores_entry = cache.get(Channel.SYSTEM, "cpu_cores")
    cores = format_value(cores_entry.value) if cores_entry is not None else "N/A"

    lines: list[RenderableType] = [
        Text(f"{usage:.1f}%", style=f"bold {cpu_color(usage)}", justify="center"),
        make_bar(usage, 100.0, BAR_WIDTH, cpu_color(usage)),
        Text(f"Cores: {cores}", style=LABEL_COLOR),
    ]

    core_entry = cache.get(Channel.SYSTEM, "core_usages")
    core_usages = iter_numeric(core_entry.value) if core_entry is not None and isinstance(core_entry.value, list) else []
    if core_usages:
        usages = np.asarray(core_usages, dtype=np.float64)
        table = Table(box=None, show_header=False, padding=(0, 1))
        table.add_column("Core", style=LABEL_COLOR)
        table.add_column("Bar", no_wrap=True)
        table.add_column("Usage", justify="right")
        for index, core_usage in enumerate(usages):
            table.add_row(
                f"{index}",
                make_bar(float(core_usage), 100.0, CORE_BAR_WIDTH, cpu_color(core_usage)),
                f"{core_usage:.0f}%",
            )
        lines.append(table)
        lines.append(Text(
            f"avg {usages.mean():.1f}%  max {usages.max():.1f}%",
            style=LABEL_COLOR,
        ))

    lines.append(Text(format_timestamp(cpu.last_updated), style="dim", justify="center"))
    return Group(*lines)


def _usage_block(label: str, used: float, total: float) -> list[RenderableType]:
    usage = used / total * 100 if total > 0 else 0.0
    return [
        Text(f"{label} {usage:.1f}%", style=f"bold {memory_color(usage)}"),
        make_bar(usage, 100.0, BAR_WIDTH, memory_color(usage)),
        Text(f"{format_memory(used)} / {format_memory(total)}", style=LABEL_COLOR),
    ]


def render_memory(widget: Widget, cache: StreamCache) -> RenderableType:
    used = _number(cache.get(Channel.SYSTEM, "memory_used"))
    total = _number(cache.get(Channel.SYSTEM, "memory_total"))
    if used is None or total is None:
        return placeholder("No memory data")

    lines = _usage_block("Memory", used, total)
    swap_used = _number(cache.get(Channel.SYSTEM, "swap_used"))
    swap_total = _number(cache.get(Channel.SYSTEM, "swap_total"))
    if swap_used is not None and swap_total is not None:
        lines.extend(_usage_block("Swap", swap_used, swap_total))

    entry = cache.get(Channel.SYSTEM, "memory_used")
    lines.append(Text(format_timestamp(entry.last_updated if entry else None), style="dim", justify="center"))
    return Group(*lines)


def is_scalar(entry: MetricEntry) -> bool:
    return not isinstance(entry.value, (list, tuple, dict))


def render_metric(widget: Widget, cache: StreamCache) -> RenderableType:
    entry = widget.resolve_target(is_scalar)
    if entry is None:
        return placeholder("No system metrics")
    return Group(
        Text(entry.key.replace("_", " "), style="bold", justify="center"),
        Text(format_value(entry.value, entry.kind), style="bold #67e8f9", justify="center"),
        Text(format_timestamp(entry.last_updated), style="dim", justify="center"),
    )


KINDS = (
    KindSpec(
        kind=WidgetKind.SYSTEM_CPU,
        channel=Channel.SYSTEM,
        title="CPU",
        default_size=GridSize(6, 4),
        render=render_cpu,
    ),
    KindSpec(
        kind=WidgetKind.SYSTEM_MEMORY,
        channel=Channel.SYSTEM,
        title="Memory",
        default_size=GridSize(6, 4),
        render=render_memory,
    ),
    KindSpec(
        kind=WidgetKind.SYSTEM_METRIC,
        channel=Channel.SYSTEM,
        title="System",
        default_size=GridSize(4, 3),
        render=render_metric,
        bound_keys=("systemKey", "metricKey"),
    ),
)
