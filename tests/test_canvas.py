from __future__ import annotations

import math

import pytest

from opsboard.canvas.engine import MAX_SCALE, MIN_SCALE, CanvasEngine, clamp_scale
from opsboard.engine.bus import SubscriptionBus
from opsboard.engine.cache import StreamCache
from opsboard.types import GridPosition, GridSize, Point, WidgetKind
from opsboard.widgets.registry import create_widget, new_config


def place(canvas: CanvasEngine, cache: StreamCache, bus: SubscriptionBus, x: int, y: int, w: int = 4, h: int = 3):
    widget = create_widget(
        new_config(WidgetKind.SYSTEM_METRIC, position=GridPosition(x, y), size=GridSize(w, h)),
        cache, bus,
    )
    assert canvas.add_widget(widget)
    return widget


@pytest.mark.parametrize("requested, expected", [
    (0.1, MIN_SCALE),
    (5.0, MAX_SCALE),
    (0.5, 0.5),
    (float("nan"), 1.0),
])
def test_scale_is_clamped(canvas: CanvasEngine, requested, expected) -> None:
    assert canvas.set_scale(requested) == expected
    assert clamp_scale(requested) == expected


def test_zoom_steps(canvas: CanvasEngine) -> None:
    canvas.zoom_in()
    assert canvas.scale == pytest.approx(1.2)
    canvas.zoom_out()
    canvas.zoom_out()
    assert canvas.scale == pytest.approx(1 / 1.2)
    for _ in range(20):
        canvas.zoom_out()
    assert canvas.scale == MIN_SCALE
    canvas.reset_zoom()
    assert canvas.scale == 1.0


def test_keyboard_zoom_requires_modifier(canvas: CanvasEngine) -> None:
    assert not canvas.handle_key("+")
    assert canvas.handle_key("=", ctrl=True)
    assert canvas.scale == pytest.approx(1.2)
    assert canvas.handle_key("-", meta=True)
    assert canvas.scale == pytest.approx(1.0)
    canvas.set_scale(2.0)
    assert canvas.handle_key("0", ctrl=True)
    assert canvas.scale == 1.0
    assert not canvas.handle_key("z", ctrl=True)


def test_zoom_out_expands_content(canvas: CanvasEngine) -> None:
    canvas.set_scale(0.5)
    assert canvas.content_width == 2400
    assert canvas.content_height == 1600
    canvas.set_scale(2.0)
    assert canvas.content_width == 1200
    assert canvas.needs_scroll


def test_coordinate_round_trip(canvas: CanvasEngine) -> None:
    canvas.origin = Point(30.0, 40.0)
    for scale in (0.25, 0.8, 1.0, 1.7, 2.0):
        canvas.set_scale(scale)
        for point in (Point(0.0, 0.0), Point(123.5, 77.25), Point(999.0, 3.0)):
            back = canvas.to_canvas(canvas.to_viewport(point))
            assert math.isclose(back.x, point.x, abs_tol=1e-9)
            assert math.isclose(back.y, point.y, abs_tol=1e-9)


def test_zoom_does_not_move_widgets(canvas: CanvasEngine, cache, bus) -> None:
    widget = place(canvas, cache, bus, 5, 7)
    canvas.set_scale(0.4)
    assert widget.position == GridPosition(5, 7)


def test_grid_helpers(canvas: CanvasEngine) -> None:
    assert canvas.grid_to_pixels(GridPosition(3, 2)) == Point(60.0, 40.0)
    assert canvas.pixels_to_grid(Point(30.0, 29.0)) == GridPosition(2, 1)
    assert canvas.snap_to_grid(9.0, 10.0) == Point(0.0, 20.0)
    canvas.set_scale(0.5)
    assert canvas.grid_position(Point(100.0, 100.0)) == GridPosition(10, 10)


def test_bounds_empty_and_with_widgets(canvas: CanvasEngine, cache, bus) -> None:
    assert canvas.calculate_widget_bounds() == (1200.0, 800.0)
    place(canvas, cache, bus, 70, 10, w=8, h=4)
    width, height = canvas.calculate_widget_bounds()
    assert width == (78 + 2) * 20
    assert height == (14 + 2) * 20
    assert canvas.base_width == 1600
    assert canvas.base_height == 800


def test_add_duplicate_and_remove(canvas: CanvasEngine, cache, bus, storage) -> None:
    widget = place(canvas, cache, bus, 0, 0)
    assert widget.mounted
    assert not canvas.add_widget(widget)

    storage.add_widget(widget.config)
    assert canvas.remove_widget(widget.id)
    assert widget.destroyed
    assert storage.get_widgets() == []
    assert not canvas.remove_widget(widget.id)


def test_negative_positions_are_constrained(canvas: CanvasEngine, cache, bus) -> None:
    widget = place(canvas, cache, bus, -3, 4)
    assert widget.position == GridPosition(0, 4)


def test_widget_at_prefers_topmost(canvas: CanvasEngine, cache, bus) -> None:
    bottom = place(canvas, cache, bus, 0, 0, w=6, h=6)
    top = place(canvas, cache, bus, 2, 2, w=4, h=4)
    assert canvas.widget_at(Point(50.0, 50.0)) is top
    canvas.bring_to_front(bottom.id)
    assert canvas.widget_at(Point(50.0, 50.0)) is bottom
    canvas.send_to_back(bottom.id)
    assert canvas.all_widgets()[0] is bottom
    assert canvas.widget_at(Point(500.0, 500.0)) is None


def test_selection(canvas: CanvasEngine, cache, bus) -> None:
    a = place(canvas, cache, bus, 0, 0)
    b = place(canvas, cache, bus, 10, 0)
    assert canvas.click_widget(a.id)
    canvas.select_widget(b.id)
    assert not a.selected and b.selected
    assert canvas.selected is b
    assert not canvas.click_widget(a.id, on_close_control=True)
    canvas.click_canvas()
    assert canvas.selected is None


def test_pinch_zoom(canvas: CanvasEngine) -> None:
    canvas.touch_start([Point(0.0, 0.0), Point(100.0, 0.0)])
    assert canvas.is_zooming
    canvas.touch_move([Point(0.0, 0.0), Point(150.0, 0.0)])
    assert canvas.scale == pytest.approx(1.5)
    canvas.touch_move([Point(0.0, 0.0), Point(300.0, 0.0)])
    assert canvas.scale == MAX_SCALE
    canvas.touch_end(remaining=1)
    assert not canvas.is_zooming


def test_single_tap_deselects(canvas: CanvasEngine, cache, bus) -> None:
    widget = place(canvas, cache, bus, 0, 0)
    canvas.select_widget(widget.id)
    canvas.touch_end(remaining=0, changed=1)
    assert canvas.selected is None


def test_clear_destroys_but_keeps_storage(canvas: CanvasEngine, cache, bus, storage) -> None:
    widget = place(canvas, cache, bus, 0, 0)
    storage.add_widget(widget.config)
    canvas.clear()
    assert canvas.all_widgets() == []
    assert widget.destroyed
    assert len(storage.get_widgets()) == 1


def test_change_listener_notified_on_zoom(canvas: CanvasEngine) -> None:
    seen = []
    canvas.add_change_listener(lambda c: seen.append(c.scale))
    canvas.zoom_in()
    assert seen and seen[-1] == pytest.approx(1.2)


def test_export_layout(canvas: CanvasEngine, cache, bus) -> None:
    widget = place(canvas, cache, bus, 1, 2, w=5, h=6)
    assert canvas.export_layout() == {
        widget.id: {"position": {"x": 1, "y": 2}, "size": {"width": 5, "height": 6}},
    }


def test_snapping_is_idempotent(canvas: CanvasEngine) -> None:
    for x, y in ((0.0, 0.0), (20.0, 40.0), (380.0, 1000.0)):
        assert canvas.snap_to_grid(x, y) == Point(x, y)
        snapped = canvas.snap_to_grid(x + 7.3, y + 12.9)
        assert canvas.snap_to_grid(*snapped) == snapped


def test_grid_round_trip_through_zoom(canvas: CanvasEngine) -> None:
    for scale in (0.25, 0.6, 1.0, 1.5, 2.0):
        canvas.set_scale(scale)
        for position in (GridPosition(0, 0), GridPosition(7, 3), GridPosition(41, 29)):
            viewport = canvas.to_viewport(canvas.grid_to_pixels(position))
            assert canvas.grid_position(viewport) == position
