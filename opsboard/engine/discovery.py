"""
Metric discovery: turns the current cache contents into widget options.

This is the backend of the "add widget" menu. Discovery is read-only and
cheap enough to re-run whenever the menu opens.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from .cache import StreamCache
from .units import format_timestamp, format_value
from ..types import Channel, WidgetKind, channel_name


class WidgetOption(NamedTuple):
    """One selectable entry in the widget menu."""
    id: str
    key: str
    name: str
    channel: str
    subsection: str
    widget_type: WidgetKind
    display_value: str
    display_time: str

    @property
    def config(self) -> dict[str, Any]:
        """Bound config for a widget created from this option."""
        config: dict[str, Any] = {
            "metricId": self.id,
            "metricKey": self.key,
            "metricName": self.name,
        }
        extra_key = _BOUND_KEYS.get(self.widget_type)
        if extra_key:
            config[extra_key] = self.key
        return config


# Kind-specific name of the bound key, alongside the generic metricKey
_BOUND_KEYS = {
    WidgetKind.TELEMETRY_METRIC: "key",
    WidgetKind.BALANCE_SINGLE: "asset",
    WidgetKind.BALANCE_ORDERS_SINGLE: "symbol",
    WidgetKind.SYSTEM_METRIC: "systemKey",
}


class Subsection(NamedTuple):
    name: str
    title: str
    options: list[WidgetOption]


SUBSECTION_TITLES: dict[str, tuple[tuple[str, str], ...]] = {
    Channel.TELEMETRY.value: (
        ("gauges", "Gauge Metrics"),
        ("counters", "Counter Metrics"),
        ("histograms", "Histogram Metrics"),
    ),
    Channel.BALANCE.value: (
        ("assets", "Asset Balances"),
        ("orders", "Open Orders"),
    ),
    Channel.SYSTEM.value: (
        ("cpu", "CPU Metrics"),
        ("memory", "Memory Metrics"),
        ("system", "System Metrics"),
    ),
    Channel.LOG.value: (
        ("logs", "Log Streams"),
    ),
}


def telemetry_subsection(metric_type: str | None) -> str:
    return {"gauge": "gauges", "counter": "counters", "histogram": "histograms"}.get(
        metric_type or "gauge", "metrics"
    )


def system_subsection(key: str) -> str:
    if "cpu" in key or "core" in key or key == "load_avg":
        return "cpu"
    if "memory" in key or "mem" in key or "swap" in key:
        return "memory"
    return "system"


class MetricDiscovery:
    """
    Builds WidgetOptions from a StreamCache.

    Usage:
        discovery = MetricDiscovery(cache)
        for section in discovery.subsections("telemetry"):
            ...
    """

    def __init__(self, cache: StreamCache) -> None:
        self.cache = cache

    def discover(self) -> dict[str, list[WidgetOption]]:
        return {
            Channel.TELEMETRY.value: self.telemetry_options(),
            Channel.BALANCE.value: self.balance_options(),
            Channel.SYSTEM.value: self.system_options(),
            Channel.LOG.value: self.log_options(),
        }

    def all_options(self) -> list[WidgetOption]:
        return [option for options in self.discover().values() for option in options]

    def get(self, option_id: str) -> WidgetOption | None:
        for option in self.all_options():
            if option.id == option_id:
                return option
        return None

    def subsections(self, channel: str | Channel) -> list[Subsection]:
        """Options of one channel grouped by subsection; empty groups dropped."""
        channel = channel_name(channel)
        options = self.discover().get(channel, [])
        sections = []
        for name, title in SUBSECTION_TITLES.get(channel, ()):
            members = [option for option in options if option.subsection == name]
            if members:
                sections.append(Subsection(name, title, members))
        return sections

    # ------------------------------------------------------------------

    def telemetry_options(self) -> list[WidgetOption]:
        options = []
        for entry in self.cache.entries(Channel.TELEMETRY):
            options.append(WidgetOption(
                id=entry.key,
                key=entry.key,
                name=entry.name,
                channel=Channel.TELEMETRY.value,
                subsection=telemetry_subsection(entry.metric_type),
                widget_type=WidgetKind.TELEMETRY_METRIC,
                display_value=format_value(entry.value, entry.kind),
                display_time=format_timestamp(entry.last_updated),
            ))
        return options

    def balance_options(self) -> list[WidgetOption]:
        options = []
        for entry in self.cache.entries(Channel.BALANCE):
            options.append(WidgetOption(
                id=f"balance-{entry.key}",
                key=entry.key,
                name=entry.name,
                channel=Channel.BALANCE.value,
                subsection="assets",
                widget_type=WidgetKind.BALANCE_SINGLE,
                display_value=format_value(entry.value),
                display_time=format_timestamp(entry.last_updated),
            ))

        orders = self.cache.orders
        for symbol in self.cache.order_symbols():
            symbol_orders = [o for o in orders if str(o.get("symbol") or "N/A") == symbol]
            options.append(WidgetOption(
                id=f"orders-{symbol}",
                key=symbol,
                name=f"{symbol} Orders",
                channel=Channel.BALANCE.value,
                subsection="orders",
                widget_type=WidgetKind.BALANCE_ORDERS_SINGLE,
                display_value=f"{len(symbol_orders)} orders",
                display_time=format_timestamp(symbol_orders[0].get("last_updated")),
            ))
        return options

    def system_options(self) -> list[WidgetOption]:
        options = []
        for entry in self.cache.entries(Channel.SYSTEM):
            if isinstance(entry.value, (list, tuple, dict)):
                continue
            options.append(WidgetOption(
                id=f"system-{entry.key}",
                key=entry.key,
                name=entry.key.replace("_", " "),
                channel=Channel.SYSTEM.value,
                subsection=system_subsection(entry.key),
                widget_type=WidgetKind.SYSTEM_METRIC,
                display_value=format_value(entry.value, entry.kind),
                display_time=format_timestamp(entry.last_updated),
            ))

        cpu = self.cache.get(Channel.SYSTEM, "cpu_usage")
        if cpu is not None:
            options.append(WidgetOption(
                id="system-cpu-usage",
                key="cpu_usage",
                name="CPU Usage",
                channel=Channel.SYSTEM.value,
                subsection="cpu",
                widget_type=WidgetKind.SYSTEM_CPU,
                display_value=_percent(cpu.value),
                display_time=format_timestamp(cpu.last_updated),
            ))

        used = self.cache.get(Channel.SYSTEM, "memory_used")
        total = self.cache.get(Channel.SYSTEM, "memory_total")
        if used is not None and total is not None:
            usage = _ratio_percent(used.value, total.value)
            options.append(WidgetOption(
                id="system-memory-usage",
                key="memory_usage",
                name="Memory Usage",
                channel=Channel.SYSTEM.value,
                subsection="memory",
                widget_type=WidgetKind.SYSTEM_MEMORY,
                display_value=_percent(usage),
                display_time=format_timestamp(used.last_updated),
            ))
        return options

    def log_options(self) -> list[WidgetOption]:
        return [WidgetOption(
            id="log-stream",
            key="log",
            name="Log Stream",
            channel=Channel.LOG.value,
            subsection="logs",
            widget_type=WidgetKind.LOG_STREAM,
            display_value="Real-time logs",
            display_time="Live",
        )]


def _percent(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:.1f}%"
    return "N/A"


def _ratio_percent(used: Any, total: Any) -> float | None:
    try:
        return float(used) / float(total) * 100
    except (TypeError, ValueError, ZeroDivisionError):
        return None
