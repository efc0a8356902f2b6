"""
Open-order field extraction and aggregation.

The balance stream does not agree on a single field name for order quantity
or price, so extraction walks a fixed alias list in priority order. The lists
mirror what the upstream server has been seen to send; treat them as an
upstream inconsistency, not a pattern to copy for other fields.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..types import OrderStats

QUANTITY_FIELDS = (
    "order_qty", "qty", "quantity", "amount", "size", "vol", "volume",
    "orig_qty", "original_qty",
)
PRICE_FIELDS = ("limit_price", "price", "limit")

BUY_SIDES = ("buy", "bid")
SELL_SIDES = ("sell", "ask")


def _first_float(order: Mapping[str, Any], fields: tuple[str, ...]) -> float | None:
    for name in fields:
        raw = order.get(name)
        if raw is None:
            continue
        try:
            return float(raw)
        except (TypeError, ValueError):
            continue
    return None


def extract_quantity(order: Mapping[str, Any]) -> float:
    value = _first_float(order, QUANTITY_FIELDS)
    return 0.0 if value is None else value


def extract_price(order: Mapping[str, Any]) -> float:
    value = _first_float(order, PRICE_FIELDS)
    return 0.0 if value is None else value


def has_quantity(order: Mapping[str, Any]) -> bool:
    return any(order.get(name) for name in QUANTITY_FIELDS)


def has_price(order: Mapping[str, Any]) -> bool:
    return any(order.get(name) for name in PRICE_FIELDS)


def orders_for_symbol(orders: Iterable[Mapping[str, Any]], symbol: str) -> list[Mapping[str, Any]]:
    return [order for order in orders if order.get("symbol") == symbol]


def order_stats(orders: Iterable[Mapping[str, Any]]) -> OrderStats:
    """Count and value buy/sell orders; other sides are ignored."""
    buy_count = sell_count = 0
    buy_value = sell_value = 0.0

    for order in orders:
        side = str(order.get("side") or "").lower()
        usd_value = extract_quantity(order) * extract_price(order)
        if side in BUY_SIDES:
            buy_count += 1
            buy_value += usd_value
        elif side in SELL_SIDES:
            sell_count += 1
            sell_value += usd_value

    return OrderStats(
        buy_count=buy_count,
        sell_count=sell_count,
        total_count=buy_count + sell_count,
        buy_value=buy_value,
        sell_value=sell_value,
        difference=buy_value - sell_value,
    )
