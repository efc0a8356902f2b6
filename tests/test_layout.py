from __future__ import annotations

import itertools

from opsboard.canvas.engine import CanvasEngine
from opsboard.canvas.layout import AutoLayout, LayoutRequest, calculate_layout
from opsboard.types import GridPosition, GridSize, WidgetKind
from opsboard.widgets.registry import create_widget


def overlaps(a_pos, a_size, b_pos, b_size) -> bool:
    return (
        a_pos.x < b_pos.x + b_size.width and b_pos.x < a_pos.x + a_size.width
        and a_pos.y < b_pos.y + b_size.height and b_pos.y < a_pos.y + a_size.height
    )


def test_row_wraps_when_width_is_exceeded() -> None:
    sizes = [GridSize(4, 3), GridSize(4, 3)]
    assert calculate_layout(sizes, canvas_width=6, canvas_height=40) == [
        GridPosition(0, 0),
        GridPosition(0, 4),
    ]


def test_row_fills_left_to_right_with_margin() -> None:
    sizes = [GridSize(4, 3), GridSize(6, 5), GridSize(2, 2), GridSize(4, 3)]
    assert calculate_layout(sizes, canvas_width=16, canvas_height=40) == [
        GridPosition(0, 0),
        GridPosition(5, 0),
        GridPosition(12, 0),
        GridPosition(0, 6),
    ]


def test_oversized_widget_sits_alone_at_row_start() -> None:
    sizes = [GridSize(30, 3), GridSize(4, 3)]
    assert calculate_layout(sizes, canvas_width=10, canvas_height=40) == [
        GridPosition(0, 0),
        GridPosition(0, 4),
    ]


def test_height_overflow_skips_to_next_page() -> None:
    sizes = [GridSize(4, 8), GridSize(4, 8)]
    positions = calculate_layout(sizes, canvas_width=6, canvas_height=10)
    assert positions[0] == GridPosition(0, 0)
    # Second widget wraps to y=9, overflows, and jumps ahead
    assert positions[1] == GridPosition(0, 9 + 8 + 2)


def test_layout_never_overlaps() -> None:
    sizes = [GridSize(w, h) for w, h in itertools.product((3, 5, 9), (2, 4, 7))] * 3
    positions = calculate_layout(sizes, canvas_width=24, canvas_height=20)
    for (i, a), (j, b) in itertools.combinations(enumerate(positions), 2):
        assert not overlaps(a, sizes[i], b, sizes[j]), (i, j)


def test_auto_layout_places_mounts_and_persists(cache, bus, storage, scheduler) -> None:
    canvas = CanvasEngine(120, 200, storage=storage, scheduler=scheduler)
    layout = AutoLayout(canvas, lambda config: create_widget(config, cache, bus, scheduler), storage)

    placed = layout.place([
        LayoutRequest(WidgetKind.SYSTEM_CPU),
        LayoutRequest(WidgetKind.SYSTEM_METRIC, {"systemKey": "uptime"}),
        LayoutRequest("no-such-kind"),
    ])

    assert [c.type for c in placed] == ["system-cpu", "system-metric"]
    # Canvas is 6 grid units wide, so the second widget wraps
    assert placed[0].position == GridPosition(0, 0)
    assert placed[1].position == GridPosition(0, 5)
    assert [w.id for w in canvas.all_widgets()] == [c.id for c in placed]
    assert all(w.mounted for w in canvas.all_widgets())
    assert [w.id for w in storage.get_widgets()] == [c.id for c in placed]
    assert storage.get_widget(placed[1].id).config == {"systemKey": "uptime"}
