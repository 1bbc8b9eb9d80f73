import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from grid_canvas.ui.network_editor.components import ComponentFactory
from grid_canvas.ui.network_editor.geom_snap import (
    Bounds, ViewTransform, bounding_box, clamp_zoom, node_length, snap, snap_to_grid
)


def test_transform_round_trip():
    """螢幕 ↔ 世界座標互為反函數"""
    t = ViewTransform(zoom=1.7, pan_x=33.0, pan_y=-12.5)
    for x, y in [(0, 0), (123.4, -56.7), (-1000, 2500), (0.001, 99999)]:
        world = t.screenToWorld(x, y)
        screen = t.worldToScreen(world.x(), world.y())
        assert screen.x() == pytest.approx(x)
        assert screen.y() == pytest.approx(y)


def test_snap_rounds_to_grid():
    assert snap(29.9, -31) == (20, -40)
    assert snap(10, 10) == (20, 20)       # 0.5 一律進位
    assert snap(-10, -10) == (0, 0)
    assert snap_to_grid(7, 5) == 5
    assert snap_to_grid(7, 0) == 7


def test_snap_idempotent():
    for v in [-73.2, -10, 0, 9.99, 10, 31, 1234.5]:
        once = snap(v, v)
        assert snap(*once) == once
        assert once[0] % 20 == 0


def test_zoom_keeps_anchor():
    """以游標為中心縮放時，錨點的世界座標不變"""
    t = ViewTransform(zoom=1.3, pan_x=40.0, pan_y=-20.0)
    before = t.screenToWorld(300, 200)
    assert t.zoomAt(300, 200, 1.1)
    after = t.screenToWorld(300, 200)
    assert after.x() == pytest.approx(before.x())
    assert after.y() == pytest.approx(before.y())

    t.zoomAt(300, 200, 0.9)
    again = t.screenToWorld(300, 200)
    assert again.x() == pytest.approx(before.x())


def test_zoom_clamped():
    t = ViewTransform()
    t.zoomAt(0, 0, 100)
    assert t.zoom == 4.0
    assert not t.zoomAt(0, 0, 1.5)
    t.zoomAt(0, 0, 0.0001)
    assert t.zoom == 0.15
    assert clamp_zoom(1.0) == 1.0


def test_q_transform_matches_mapping():
    t = ViewTransform(zoom=2.0, pan_x=10.0, pan_y=5.0)
    p = t.toQTransform().map(t.screenToWorld(50, 60))
    assert p.x() == pytest.approx(50)
    assert p.y() == pytest.approx(60)


def test_node_box_growth():
    factory = ComponentFactory()
    bus = factory.create('Bus', cx=0, cy=0)
    for count in (0, 1, 2):
        assert bounding_box(bus, count) == Bounds(40, 4)
    assert bounding_box(bus, 5) == Bounds(94, 4)
    assert node_length(3) == 58

    bus.rotation = 270
    assert bounding_box(bus, 5) == Bounds(4, 94)


def test_fixed_bounds_per_type():
    factory = ComponentFactory()
    assert bounding_box(factory.create('Generator'), 7) == Bounds(16, 16)
    assert bounding_box(factory.create('Transformer')) == Bounds(20, 12)
