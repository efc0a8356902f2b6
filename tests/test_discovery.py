from __future__ import annotations

from conftest import telemetry_item
from opsboard.engine.cache import StreamCache
from opsboard.engine.discovery import MetricDiscovery, system_subsection, telemetry_subsection
from opsboard.types import WidgetKind


def test_empty_cache_offers_only_the_log_stream(cache: StreamCache) -> None:
    options = MetricDiscovery(cache).all_options()
    assert [o.id for o in options] == ["log-stream"]
    assert options[0].widget_type == WidgetKind.LOG_STREAM


def test_telemetry_options_grouped_by_type(cache: StreamCache) -> None:
    cache.merge("telemetry", [
        telemetry_item("heap_allocated", 4),
        telemetry_item("requests_total", 10, metric_type="counter", labels={"route": "/"}),
    ])
    discovery = MetricDiscovery(cache)

    sections = discovery.subsections("telemetry")
    assert [(s.name, s.title) for s in sections] == [
        ("gauges", "Gauge Metrics"),
        ("counters", "Counter Metrics"),
    ]
    heap = sections[0].options[0]
    assert heap.display_value == "4 KB"
    assert heap.config == {
        "metricId": "heap_allocated|{}",
        "metricKey": "heap_allocated|{}",
        "metricName": "heap_allocated",
        "key": "heap_allocated|{}",
    }


def test_balance_options(cache: StreamCache) -> None:
    cache.merge("balance", {
        "balances": [{"asset": "ETH", "total_balance": 3}],
        "open_orders": [
            {"symbol": "ETHUSDT", "qty": 1, "price": 1},
            {"symbol": "ETHUSDT", "qty": 2, "price": 1},
        ],
    })
    options = MetricDiscovery(cache).balance_options()

    assert [o.id for o in options] == ["balance-ETH", "orders-ETHUSDT"]
    assert options[0].config["asset"] == "ETH"
    assert options[1].widget_type == WidgetKind.BALANCE_ORDERS_SINGLE
    assert options[1].display_value == "2 orders"
    assert options[1].config["symbol"] == "ETHUSDT"


def test_system_options_and_composites(cache: StreamCache) -> None:
    cache.merge("system", {
        "cpu_usage": 12.5,
        "core_usages": [1, 2],
        "memory_used": 1,
        "memory_total": 4,
        "hostname": "web-1",
    })
    discovery = MetricDiscovery(cache)
    by_id = {o.id: o for o in discovery.system_options()}

    assert "system-core_usages" not in by_id
    assert by_id["system-hostname"].subsection == "system"
    assert by_id["system-hostname"].config["systemKey"] == "hostname"
    assert by_id["system-cpu-usage"].display_value == "12.5%"
    assert by_id["system-memory-usage"].display_value == "25.0%"
    assert by_id["system-memory-usage"].widget_type == WidgetKind.SYSTEM_MEMORY
    assert discovery.get("system-cpu_usage").name == "cpu usage"
    assert discovery.get("missing") is None


def test_subsection_helpers() -> None:
    assert telemetry_subsection(None) == "gauges"
    assert telemetry_subsection("histogram") == "histograms"
    assert system_subsection("load_avg") == "cpu"
    assert system_subsection("swap_used") == "memory"
    assert system_subsection("uptime") == "system"
