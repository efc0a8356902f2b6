from __future__ import annotations

import logging

from rich.console import Console

from conftest import FakeScheduler, telemetry_item
from opsboard.datafeed.ingest import decode_log
from opsboard.engine.bus import SubscriptionBus
from opsboard.engine.cache import StreamCache
from opsboard.engine.units import format_timestamp
from opsboard.types import (
    STATUS_CHANNEL,
    CacheUpdate,
    ChannelStatus,
    GridSize,
    LogEntry,
    WidgetKind,
)
from opsboard.widgets import log as log_widget
from opsboard.widgets.balance import wallet_label
from opsboard.widgets.base import Widget
from opsboard.widgets.registry import (
    REGISTRY,
    create_widget,
    default_size,
    get_spec,
    new_config,
    new_widget_id,
)


def plain(widget: Widget) -> str:
    console = Console(width=100, record=True, color_system=None)
    console.print(widget.renderable)
    return console.export_text()


def build(kind, cache, bus, scheduler=None, **bound) -> Widget:
    widget = create_widget(new_config(kind, bound), cache, bus, scheduler)
    widget.mount()
    return widget


def publish(bus: SubscriptionBus, channel: str, changed=()) -> None:
    bus.publish(channel, CacheUpdate(channel, frozenset(changed)))


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------

def test_every_kind_is_registered() -> None:
    assert set(REGISTRY) == set(WidgetKind)


def test_default_sizes_and_unknown_kind(cache, bus) -> None:
    assert default_size(WidgetKind.LOG_STREAM) == GridSize(12, 8)
    assert default_size("balance-orders") == GridSize(10, 6)
    assert default_size("bogus") == GridSize(4, 3)
    assert get_spec("bogus") is None
    assert create_widget(new_config("bogus"), cache, bus) is None


def test_new_widget_id_is_unique_and_prefixed() -> None:
    a = new_widget_id(WidgetKind.SYSTEM_CPU)
    b = new_widget_id("system-cpu")
    assert a != b
    assert a.startswith("system-cpu_")


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------

def test_mount_renders_placeholder_then_updates(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.TELEMETRY_METRIC, cache, bus)
    assert widget.mounted
    assert "No metrics available" in plain(widget)

    cache.merge("telemetry", [telemetry_item("cpu_temp", 61.5)])
    publish(bus, "telemetry", ["cpu_temp|{}"])

    text = plain(widget)
    assert "cpu temp" in text
    assert "61.5" in text


def test_mount_renders_existing_cache_immediately(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("system", {"cpu_usage": 37.5, "cpu_cores": 8})
    widget = build(WidgetKind.SYSTEM_CPU, cache, bus)
    text = plain(widget)
    assert "37.5%" in text
    assert "Cores: 8" in text


def test_fallback_then_lock(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("telemetry", [telemetry_item("fan_rpm", 1200)])
    widget = build(WidgetKind.TELEMETRY_METRIC, cache, bus, key="cpu_temp|{}")

    # Configured key absent: show the first available metric
    assert "fan rpm" in plain(widget)

    # Later keys do not displace the adopted fallback
    cache.merge("telemetry", [telemetry_item("aaa_first", 1)])
    publish(bus, "telemetry")
    assert "fan rpm" in plain(widget)

    # Once the configured key shows up, it wins
    cache.merge("telemetry", [telemetry_item("cpu_temp", 61.5)])
    publish(bus, "telemetry")
    assert "cpu temp" in plain(widget)


def test_fallback_skips_array_system_values(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("system", {"core_usages": [1, 2], "load_avg": 0.75})
    widget = build(WidgetKind.SYSTEM_METRIC, cache, bus)
    assert widget.target_key == "load_avg"
    assert "0.75" in plain(widget)


def test_destroy_unsubscribes_and_cancels_timers(
    cache: StreamCache, bus: SubscriptionBus, scheduler: FakeScheduler,
) -> None:
    widget = build(WidgetKind.LOG_STREAM, cache, bus, scheduler)
    assert bus.subscriber_count("log") == 1
    assert bus.subscriber_count(STATUS_CHANNEL) == 1
    assert scheduler.pending(widget) == 1

    detached = []
    widget.add_detach_listener(detached.append)
    widget.destroy()

    assert bus.subscriber_count("log") == 0
    assert bus.subscriber_count(STATUS_CHANNEL) == 0
    assert scheduler.pending(widget) == 0
    assert detached == [widget]

    count = widget.render_count
    bus.publish("log", "late line")
    scheduler.advance(60)
    assert widget.render_count == count


def test_render_error_shows_placeholder(cache: StreamCache, bus: SubscriptionBus, caplog) -> None:
    widget = build(WidgetKind.TELEMETRY_METRIC, cache, bus)

    def broken(_widget, _cache):
        raise RuntimeError("boom")

    widget.spec = widget.spec._replace(render=broken)
    with caplog.at_level(logging.ERROR, logger="opsboard.widgets.base"):
        widget.render()
    assert "Render error" in plain(widget)
    assert "failed to render" in caplog.text


def test_render_listener(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.SYSTEM_MEMORY, cache, bus)
    seen = []
    widget.add_render_listener(seen.append)
    publish(bus, "system")
    widget.remove_render_listener(seen.append)
    publish(bus, "system")
    assert seen == [widget]


def test_title_uses_metric_name(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.TELEMETRY_METRIC, cache, bus, metricName="cpu_temp")
    assert widget.title == "Metric: cpu_temp"


# ----------------------------------------------------------------------
# Kinds
# ----------------------------------------------------------------------

def test_gauge_group_and_missing_bound_metric(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("telemetry", [
        telemetry_item(f"g{i}", i) for i in range(8)
    ] + [telemetry_item("requests_total", 5, metric_type="counter")])

    group = build(WidgetKind.TELEMETRY_GAUGE, cache, bus)
    text = plain(group)
    assert "g5" in text and "g6" not in text
    assert "requests" not in text

    bound = build(WidgetKind.TELEMETRY_GAUGE, cache, bus, key="nope|{}")
    assert "Metric not available" in plain(bound)


def test_memory_widget(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.SYSTEM_MEMORY, cache, bus)
    assert "No memory data" in plain(widget)

    cache.merge("system", {"memory_used": 512 * 1024, "memory_total": 2048 * 1024})
    publish(bus, "system")
    text = plain(widget)
    assert "25.0%" in text
    assert "512 MB / 2 GB" in text


def test_balance_single_and_wallets(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("balance", {"balances": [
        {"asset": "BTC", "total_balance": 1.25, "wallets": [
            {"wallet_type": "spot", "wallet_id": "main", "balance": 1.0},
            {"wallet_type": "aggregated", "wallet_id": "all", "balance": 1.25},
        ]},
    ]})
    widget = build(WidgetKind.BALANCE_SINGLE, cache, bus, asset="BTC")
    text = plain(widget)
    assert "BTC" in text
    assert "1.25" in text
    assert "spot (main)" in text
    assert "All Wallets" in text


def test_wallet_labels() -> None:
    assert wallet_label({"wallet_type": "margin", "wallet_id": "all"}) == "Margin"
    assert wallet_label({"wallet_type": "futures"}) == "Futures"
    assert wallet_label({"wallet_id": "w-9"}) == "w-9"
    assert wallet_label({}) == "Unknown"


def test_orders_single_stats(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("balance", {"open_orders": [
        {"symbol": "BTCUSDT", "side": "buy", "qty": 2, "price": 100},
        {"symbol": "BTCUSDT", "side": "sell", "qty": 1, "price": 50},
        {"symbol": "ETHUSDT", "side": "buy", "qty": 1, "price": 10},
    ]})
    unbound = build(WidgetKind.BALANCE_ORDERS_SINGLE, cache, bus)
    assert "No symbol configured" in plain(unbound)

    widget = build(WidgetKind.BALANCE_ORDERS_SINGLE, cache, bus, symbol="BTCUSDT")
    text = plain(widget)
    assert "$200.00" in text
    assert "$50.00" in text
    assert "$150.00" in text


def test_orders_list_refreshes_on_timer(
    cache: StreamCache, bus: SubscriptionBus, scheduler: FakeScheduler,
) -> None:
    widget = build(WidgetKind.BALANCE_ORDERS, cache, bus, scheduler)
    count = widget.render_count
    scheduler.advance(4.0)
    assert widget.render_count == count + 2
    assert "No open orders" in plain(widget)


# ----------------------------------------------------------------------
# Log stream
# ----------------------------------------------------------------------

def test_log_lines_and_status(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.LOG_STREAM, cache, bus)
    assert "Waiting for log messages" in plain(widget)

    bus.publish("log", LogEntry("12:00:00", "ERROR", "orders", "fill failed", 3))
    bus.publish("log", "raw line")
    bus.publish(STATUS_CHANNEL, ChannelStatus("log", "connected", "Connection established"))
    bus.publish(STATUS_CHANNEL, ChannelStatus("system", "connected", "ignored"))

    text = plain(widget)
    assert "fill failed" in text
    assert "#3" in text
    assert "raw line" in text
    assert "Connection established" in text
    assert "ignored" not in text


def test_log_buffer_is_bounded(cache: StreamCache, bus: SubscriptionBus, scheduler: FakeScheduler) -> None:
    widget = build(WidgetKind.LOG_STREAM, cache, bus, scheduler)
    for i in range(101):
        bus.publish("log", f"line {i}")
    assert len(widget.buffer) == log_widget.MAX_LINES
    assert widget.buffer[-1] == "line 100"

    for i in range(20):
        bus.publish("log", f"more {i}")
    assert len(widget.buffer) == 70
    scheduler.advance(log_widget.CLEANUP_INTERVAL_SEC)
    assert len(widget.buffer) == log_widget.MAX_LINES
    assert widget.buffer[-1] == "more 19"


def test_log_entry_with_epoch_timestamp(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.LOG_STREAM, cache, bus)
    bus.publish("log", "earlier line")
    bus.publish("log", decode_log(
        '{"type":"log","timestamp":1700000000,"level":"INFO","section":"core","message":"hi"}'
    ))

    text = plain(widget)
    assert "Render error" not in text
    assert "earlier line" in text
    assert "hi" in text
    assert format_timestamp(1700000000) in text


def test_log_stamp_formats() -> None:
    assert log_widget.format_stamp("12:00:01") == "12:00:01"
    assert log_widget.format_stamp(1700000000.5) == format_timestamp(1700000000.5)
    assert len(log_widget.format_stamp(None)) == 8


# ----------------------------------------------------------------------
# System
# ----------------------------------------------------------------------

def test_cpu_widget_per_core_table(cache: StreamCache, bus: SubscriptionBus) -> None:
    cache.merge("system", {"cpu_usage": 37.5, "cpu_cores": 4, "core_usages": [10, 20, 30, 90], "timestamp": 1})
    widget = build(WidgetKind.SYSTEM_CPU, cache, bus)

    text = plain(widget)
    assert "37.5%" in text
    assert "Cores: 4" in text
    assert "90%" in text
    assert "avg 37.5%" in text
    assert "max 90.0%" in text


def test_cpu_widget_without_core_usages(cache: StreamCache, bus: SubscriptionBus) -> None:
    widget = build(WidgetKind.SYSTEM_CPU, cache, bus)
    assert "No CPU data" in plain(widget)

    cache.merge("system", {"cpu_usage": 5, "timestamp": 1})
    publish(bus, "system", ["cpu_usage"])
    text = plain(widget)
    assert "5.0%" in text
    assert "avg" not in text
