"""Balance widget kinds: asset balances and open orders."""

from __future__ import annotations

from typing import Any

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from .base import KindSpec, Widget, placeholder
from ..engine.cache import StreamCache
from ..engine.orders import extract_price, extract_quantity, order_stats, orders_for_symbol
from ..engine.units import format_timestamp, format_usd, format_value
from ..types import Channel, GridSize, MetricEntry, WidgetKind

BUY_COLOR = "#22c55e"      # Green
SELL_COLOR = "#ef4444"     # Red
BALANCE_COLOR = "#fde047"
LABEL_COLOR = "#94a3b8"

ASSET_LIMIT = 8
ORDER_LIMIT = 6
WALLET_LIMIT = 3
ORDERS_REFRESH_SEC = 2.0


def _total(entry: MetricEntry) -> float:
    try:
        return float(entry.value or 0)
    except (TypeError, ValueError):
        return 0.0


def _wallets(entry: MetricEntry) -> list[dict[str, Any]]:
    wallets = entry.extra.get("wallets")
    return [w for w in wallets if isinstance(w, dict)] if isinstance(wallets, list) else []


def wallet_label(wallet: dict[str, Any]) -> str:
    wallet_type = wallet.get("wallet_type")
    wallet_id = wallet.get("wallet_id")
    if wallet_type and wallet_id:
        if wallet_type == "aggregated" and wallet_id == "all":
            return "All Wallets"
        if wallet_id != "all":
            return f"{wallet_type} ({wallet_id})"
        return str(wallet_type).capitalize()
    if wallet_type:
        return str(wallet_type).capitalize()
    if wallet_id:
        return str(wallet_id)
    return "Unknown"


def side_color(side: Any) -> str:
    side = str(side or "").lower()
    if side in ("buy", "bid"):
        return BUY_COLOR
    if side in ("sell", "ask"):
        return SELL_COLOR
    return LABEL_COLOR


def render_assets(widget: Widget, cache: StreamCache) -> RenderableType:
    entries = cache.entries(Channel.BALANCE)
    if not entries:
        return placeholder("No balance data")

    entries.sort(key=_total, reverse=True)
    table = Table(box=None, show_header=False, padding=(0, 1), expand=True)
    table.add_column("Asset", style="bold", no_wrap=True)
    table.add_column("Balance", justify="right")
    table.add_column("Wallets", justify="right", style=LABEL_COLOR)
    for entry in entries[:ASSET_LIMIT]:
        count = len(_wallets(entry))
        wallets = f"{count} wallet{'s' if count != 1 else ''}" if count else ""
        table.add_row(entry.name, Text(format_value(entry.value), style=BALANCE_COLOR), wallets)
    return table


def render_single(widget: Widget, cache: StreamCache) -> RenderableType:
    entry = widget.resolve_target()
    if entry is None:
        return placeholder("No balance data")

    lines: list[RenderableType] = [
        Text(entry.name, style="bold", justify="center"),
        Text(format_value(entry.value), style=f"bold {BALANCE_COLOR}", justify="center"),
    ]
    for wallet in _wallets(entry)[:WALLET_LIMIT]:
        line = Text(f"{wallet_label(wallet)}: ", style=LABEL_COLOR, justify="center")
        line.append(format_value(wallet.get("balance")))
        lines.append(line)
    lines.append(Text(format_timestamp(entry.last_updated), style="dim", justify="center"))
    return Group(*lines)


def orders_table(orders: list[dict[str, Any]]) -> Table:
    table = Table(box=None, show_header=True, header_style=LABEL_COLOR, padding=(0, 1), expand=True)
    table.add_column("Symbol", no_wrap=True)
    table.add_column("Side")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Id", style="dim")
    for order in orders:
        order_id = str(order.get("order_id") or "")
        table.add_row(
            str(order.get("symbol") or "N/A"),
            Text(str(order.get("side") or "").upper(), style=side_color(order.get("side"))),
            format_value(extract_quantity(order)),
            format_value(extract_price(order)),
            f"{order_id[:6]}..." if order_id else "N/A",
        )
    return table


def render_orders(widget: Widget, cache: StreamCache) -> RenderableType:
    orders = cache.orders
    if not orders:
        return placeholder("No open orders")
    symbol = widget.bound_key
    if symbol:
        orders = orders_for_symbol(orders, symbol)
        if not orders:
            return placeholder(f"No open orders for {symbol}")
    return orders_table(orders[:ORDER_LIMIT])


def render_orders_single(widget: Widget, cache: StreamCache) -> RenderableType:
    symbol = widget.bound_key
    if not symbol:
        return placeholder("No symbol configured")
    orders = orders_for_symbol(cache.orders, symbol)
    if not orders:
        return placeholder(f"No open orders for {symbol}")

    stats = order_stats(orders)
    table = Table(box=None, show_header=False, padding=(0, 1), expand=True)
    table.add_column("Side", style=LABEL_COLOR)
    table.add_column("Count", justify="right")
    table.add_column("Value", justify="right")
    table.add_row("Buy", str(stats.buy_count), Text(format_usd(stats.buy_value), style=BUY_COLOR))
    table.add_row("Sell", str(stats.sell_count), Text(format_usd(stats.sell_value), style=SELL_COLOR))
    diff_color = BUY_COLOR if stats.difference >= 0 else SELL_COLOR
    table.add_row("Diff", str(stats.total_count), Text(format_usd(stats.difference), style=diff_color))
    return Group(Text(f"{symbol} Orders", style="bold", justify="center"), table)


def _rerender(widget: Widget) -> None:
    widget.render()


ORDER_BOUND_KEYS = ("symbol", "metricKey")

KINDS = (
    KindSpec(
        kind=WidgetKind.BALANCE_ASSETS,
        channel=Channel.BALANCE,
        title="Balances",
        default_size=GridSize(8, 6),
        render=render_assets,
    ),
    KindSpec(
        kind=WidgetKind.BALANCE_ORDERS,
        channel=Channel.BALANCE,
        title="Open Orders",
        default_size=GridSize(10, 6),
        render=render_orders,
        bound_keys=ORDER_BOUND_KEYS,
        timers=((ORDERS_REFRESH_SEC, _rerender),),
    ),
    KindSpec(
        kind=WidgetKind.BALANCE_SINGLE,
        channel=Channel.BALANCE,
        title="Balance",
        default_size=GridSize(6, 4),
        render=render_single,
        bound_keys=("asset", "metricKey"),
    ),
    KindSpec(
        kind=WidgetKind.BALANCE_ORDERS_SINGLE,
        channel=Channel.BALANCE,
        title="Orders",
        default_size=GridSize(8, 4),
        render=render_orders_single,
        bound_keys=ORDER_BOUND_KEYS,
    ),
)
