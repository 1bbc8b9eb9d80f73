import json
import math
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from grid_canvas.ui.network_editor import (
    EditorSettings, EditorState, NetworkScene, UnknownComponentTypeError
)
from grid_canvas.ui.network_editor.geom_snap import Bounds


def snapshot_text(scene):
    return json.dumps(scene.serialize(), sort_keys=True)


def record(signal):
    events = []
    signal.connect(lambda *args: events.append(args))
    return events


# ----------------------------------------------------------------------
# 情境
# ----------------------------------------------------------------------
def test_scenario_auto_assign_then_dangling():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    gen = scene.placeInstance('Generator', 100, 0)
    assert gen.data['bus'] == bus.name == 'Bus_1'
    assert len(scene.routing.connections_for(gen.id)) == 1

    assert scene.deleteEntity(bus.id)
    assert scene.getEntity(gen.id) is gen
    assert gen.data['bus'] == 'Bus_1'
    assert scene.routing.connections_for(gen.id) == []
    assert scene.danglingReferences() == [(gen.id, 'bus', 'Bus_1')]


def test_scenario_region_threshold():
    scene = NetworkScene()
    exited = record(scene.modeExited)

    scene.startDrawingRegion()
    scene.pointerDown(10, 10)
    scene.pointerMove(15, 15)
    scene.pointerUp(15, 15)
    assert scene.regions == []
    assert scene.state is EditorState.IDLE
    assert len(exited) == 1

    length = len(scene.history)
    scene.startDrawingRegion()
    scene.pointerDown(10, 10)
    scene.pointerMove(40, 40)
    assert scene.previewRect is not None
    scene.pointerUp(40, 40)
    assert len(scene.regions) == 1
    region = scene.regions[0]
    assert (region.x, region.y, region.w, region.h) == (10, 10, 30, 30)
    assert region.name == 'Zone 1'
    assert scene.selectedRegionId == region.id
    assert scene.previewRect is None
    assert len(scene.history) == length + 1


def test_scenario_undo_redo_exact():
    scene = NetworkScene()
    initial = snapshot_text(scene)
    assert not scene.undo()
    assert snapshot_text(scene) == initial

    scene.placeInstance('Bus', 40, 60)
    scene.placeInstance('Generator', 100, 100)
    before = snapshot_text(scene)
    assert scene.undo()
    assert snapshot_text(scene) != before
    assert scene.redo()
    assert snapshot_text(scene) == before
    assert not scene.redo()


def test_snapshot_round_trip_without_aliasing():
    scene = NetworkScene()
    scene.placeInstance('Bus', 0, 0)
    scene.placeInstance('Link', 80, 80)
    scene.addRegion(0, 0, 100, 100)
    scene.zoomAt(0, 0, 1.5)
    state = scene.serialize()
    text = json.dumps(state, sort_keys=True)

    other = NetworkScene()
    other.restore(state)
    assert snapshot_text(other) == text

    other.entities[0].data['name'] = 'renamed'
    other.regions[0].w = 5
    assert state['entities'][0]['data']['name'] == 'Bus_1'
    assert scene.entities[0].name == 'Bus_1'
    assert scene.regions[0].w == 100


# ----------------------------------------------------------------------
# 自動指定匯流排
# ----------------------------------------------------------------------
def test_nearest_node_ties_first_wins():
    scene = NetworkScene()
    left = scene.placeInstance('Bus', -100, 0)
    scene.placeInstance('Bus', 100, 0)
    line = scene.placeInstance('Line', 0, 0)
    assert line.data['bus0'] == left.name
    assert line.data['bus1'] == left.name


def test_no_nodes_leaves_port_empty():
    scene = NetworkScene()
    load = scene.placeInstance('Load', 0, 0)
    assert load.data['bus'] == ''
    assert scene.routing.connections == []


def test_explicit_port_is_kept():
    scene = NetworkScene()
    scene.placeInstance('Bus', 0, 0)
    load = scene.placeInstance('Load', 20, 20, bus='Elsewhere')
    assert load.data['bus'] == 'Elsewhere'


def test_place_with_attributes_named_x_y():
    scene = NetworkScene()
    line = scene.placeInstance('Line', 100, 0, x=0.1)
    assert (line.cx, line.cy) == (100, 0)
    assert line.data['x'] == 0.1

    bus = scene.placeInstance('Bus', 200, 40, x=121.5, y=25.0)
    assert (bus.cx, bus.cy) == (200, 40)
    assert (bus.data['x'], bus.data['y']) == (121.5, 25.0)


def test_place_snaps_to_grid():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 31, -9)
    assert (bus.cx, bus.cy) == (40, 0)


# ----------------------------------------------------------------------
# 不變量：重算 → 通知 → 快照
# ----------------------------------------------------------------------
def test_commit_order():
    scene = NetworkScene()
    order = []
    scene.entitiesChanged.connect(lambda: order.append(('changed', len(scene.routing.bounds),
                                                        len(scene.history))))
    scene.placeInstance('Bus', 0, 0)
    assert order == [('changed', 1, 1)]
    assert len(scene.history) == 2


def test_noop_mutation_does_not_push():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    length = len(scene.history)
    assert not scene.renameEntity(bus.id, 'Bus_1')
    assert not scene.moveEntity(bus.id, 3, 4)
    assert not scene.deleteEntity('missing')
    assert not scene.rotateEntity('missing')
    assert len(scene.history) == length


# ----------------------------------------------------------------------
# 變更入口
# ----------------------------------------------------------------------
def test_rename_does_not_cascade():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    gen = scene.placeInstance('Generator', 0, 100)
    assert scene.renameEntity(bus.id, 'North')
    assert gen.data['bus'] == 'Bus_1'
    assert scene.nodeByName('North') is bus
    assert scene.nodeByName('Bus_1') is None
    assert scene.danglingReferences() == [(gen.id, 'bus', 'Bus_1')]


def test_set_attribute_coerces():
    scene = NetworkScene()
    gen = scene.placeInstance('Generator', 0, 0)
    assert scene.setAttribute(gen.id, 'p_nom', '12.5')
    assert gen.data['p_nom'] == 12.5
    assert scene.setAttribute(gen.id, 'p_nom', '')
    assert math.isnan(gen.data['p_nom'])
    length = len(scene.history)
    assert not scene.setAttribute(gen.id, 'p_nom', 'garbage')
    assert len(scene.history) == length
    assert scene.setAttribute(gen.id, 'p_nom', 'inf')
    assert gen.data['p_nom'] == math.inf
    assert not scene.setAttribute(gen.id, 'p_nom_max', 'inf')
    assert scene.setAttribute(gen.id, 'control', 'Slack')
    assert not scene.setAttribute(gen.id, 'unknown_key', 1)


def test_set_carrier_creates_definition():
    scene = NetworkScene()
    gen = scene.placeInstance('Generator', 0, 0)
    assert scene.setAttribute(gen.id, 'carrier', 'solar')
    carrier = scene.findCarrier('solar')
    assert carrier is not None
    assert carrier.type == 'Carrier'
    assert 'solar' in scene.carrierOptions()
    assert 'AC' in scene.carrierOptions()

    scene.setAttribute(gen.id, 'carrier', 'AC')
    scene.setAttribute(gen.id, 'carrier', 'solar')
    assert len([e for e in scene.entities if e.type == 'Carrier']) == 2


def test_move_and_rotate():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    gen = scene.placeInstance('Generator', 0, 100)
    assert scene.moveEntity(gen.id, 67, 91)
    assert (gen.cx, gen.cy) == (60, 100)

    assert not scene.rotateEntity(gen.id)
    scene.selectEntity(bus.id)
    assert scene.rotateSelected()
    assert bus.rotation == 90
    assert scene.boundsOf(bus) == Bounds(4, 40)
    for _ in range(3):
        scene.rotateSelected()
    assert bus.rotation == 0


def test_start_placing_definition_and_unknown():
    scene = NetworkScene()
    scene.startPlacing('Carrier')
    assert scene.state is EditorState.IDLE
    carrier = scene.selectedEntity()
    assert carrier.name == 'Carrier_1'
    with pytest.raises(UnknownComponentTypeError):
        scene.startPlacing('Substation')


def test_clear_scene_keeps_counters():
    scene = NetworkScene()
    scene.placeInstance('Bus', 0, 0)
    scene.addRegion(0, 0, 50, 50)
    scene.clearScene()
    assert scene.entities == [] and scene.regions == []
    assert scene.placeInstance('Bus', 0, 0).name == 'Bus_2'
    scene.resetCounters()
    assert scene.placeInstance('Bus', 40, 0).name == 'Bus_1'

    scene.clearScene()
    assert scene.undo()
    assert [e.name for e in scene.entities] == ['Bus_2', 'Bus_1']


def test_update_and_delete_region():
    scene = NetworkScene()
    region = scene.addRegion(0, 0, 50, 50)
    assert scene.addRegion(0, 0, 0, 10) is None
    assert scene.updateRegion(region.id, name='North', opacity=2, w=-5, fillColor='#00ff00')
    assert (region.name, region.opacity, region.w, region.fillColor) == ('North', 1.0, 50, '#00ff00')
    scene.selectRegion(region.id)
    assert scene.deleteSelected()
    assert scene.regions == []
    assert scene.selectedRegionId is None


def test_update_region_coerces_malformed_input():
    scene = NetworkScene()
    region = scene.addRegion(0, 0, 50, 50)
    length = len(scene.history)

    assert not scene.updateRegion(region.id, opacity='abc', w='oops', x='', h='nan?')
    assert (region.x, region.w, region.h, region.opacity) == (0, 50, 50, 0.08)
    assert len(scene.history) == length

    assert scene.updateRegion(region.id, opacity='0.5x', w='120px', y='-40', x='inf')
    assert (region.x, region.y, region.w, region.opacity) == (0, -40.0, 120.0, 0.5)
    assert scene.updateRegion(region.id, opacity='7')
    assert region.opacity == 1.0


# ----------------------------------------------------------------------
# 選取
# ----------------------------------------------------------------------
def test_selection_is_exclusive():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    region = scene.addRegion(200, 200, 50, 50)
    selections = record(scene.selectionChanged)
    regions = record(scene.regionSelected)

    scene.selectRegion(region.id)
    assert scene.selectedId is None
    assert scene.selectedRegionId == region.id
    assert selections[-1] == (None,)
    assert regions[-1] == (region,)

    scene.selectEntity(bus.id)
    assert scene.selectedRegionId is None
    assert regions[-1] == (None,)
    assert selections[-1] == (bus.id,)

    scene.selectEntity('missing')
    assert scene.selectedId is None


def test_undo_clears_stale_selection():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    assert scene.selectedId == bus.id
    scene.undo()
    assert scene.selectedId is None


# ----------------------------------------------------------------------
# 手勢
# ----------------------------------------------------------------------
def test_drag_instance_commits_on_release():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    gen = scene.placeInstance('Generator', 0, 100)
    length = len(scene.history)

    scene.pointerDown(5, 2)
    assert scene.state is EditorState.DRAGGING_INSTANCE
    assert scene.selectedId == bus.id
    scene.pointerMove(47, 38)
    assert (bus.cx, bus.cy) == (40, 40)
    assert len(scene.history) == length
    scene.pointerUp(47, 38)
    assert scene.state is EditorState.IDLE
    assert len(scene.history) == length + 1
    assert scene.routing.connections_for(gen.id)[0].node_id == bus.id


def test_click_without_move_only_selects():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    scene.selectEntity(None)
    length = len(scene.history)
    scene.pointerDown(0, 0)
    scene.pointerUp(0, 0)
    assert scene.selectedId == bus.id
    assert len(scene.history) == length


def test_cancel_rolls_back_drag():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    length = len(scene.history)
    scene.pointerDown(0, 0)
    scene.pointerMove(200, 200)
    scene.cancelMode()
    assert (bus.cx, bus.cy) == (0, 0)
    assert scene.state is EditorState.IDLE
    assert len(scene.history) == length
    assert scene.routing.bounds[bus.id] == Bounds(40, 4)


def test_pan_on_empty_space():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    length = len(scene.history)
    scene.pointerDown(500, 500)
    assert scene.state is EditorState.PANNING
    assert scene.selectedId is None
    scene.pointerMove(520, 510)
    scene.pointerUp(520, 510)
    assert (scene.transform.pan_x, scene.transform.pan_y) == (20, 10)
    assert scene.state is EditorState.IDLE
    assert len(scene.history) == length
    assert scene.instanceAt(0, 0) is bus


def test_drag_region():
    scene = NetworkScene()
    region = scene.addRegion(100, 100, 100, 100)
    scene.pointerDown(150, 150)
    assert scene.state is EditorState.DRAGGING_REGION
    assert scene.selectedRegionId == region.id
    scene.pointerMove(160, 170)
    scene.pointerUp(160, 170)
    assert (region.x, region.y) == (110, 120)


def test_resize_region_corners():
    scene = NetworkScene()
    region = scene.addRegion(100, 100, 100, 100)
    scene.selectRegion(region.id)
    length = len(scene.history)

    scene.pointerDown(200, 200)
    assert scene.state is EditorState.RESIZING_REGION
    scene.pointerMove(230, 250)
    scene.pointerUp(230, 250)
    assert (region.x, region.y, region.w, region.h) == (100, 100, 130, 150)
    assert len(scene.history) == length + 1

    # 左上角拖過頭：最小 40，右下角固定
    scene.pointerDown(100, 100)
    scene.pointerMove(400, 400)
    scene.pointerUp(400, 400)
    assert (region.w, region.h) == (40, 40)
    assert (region.x + region.w, region.y + region.h) == (230, 250)


def test_cancel_rolls_back_resize():
    scene = NetworkScene()
    region = scene.addRegion(100, 100, 100, 100)
    scene.selectRegion(region.id)
    scene.pointerDown(200, 100)
    scene.pointerMove(300, 0)
    assert region.w == 200
    scene.cancelMode()
    assert (region.x, region.y, region.w, region.h) == (100, 100, 100, 100)


def test_placement_by_click():
    scene = NetworkScene()
    exited = record(scene.modeExited)
    scene.startPlacing('Bus')
    assert scene.state is EditorState.PLACING
    scene.pointerDown(103, 97)
    scene.pointerUp(103, 97)
    bus = scene.selectedEntity()
    assert (bus.type, bus.cx, bus.cy) == ('Bus', 100, 100)
    assert scene.state is EditorState.IDLE
    assert len(exited) == 1


def test_placement_stays_armed():
    scene = NetworkScene()
    scene.startPlacing('Load')
    scene.pointerDown(0, 0)
    scene.pointerUp(0, 0, stayArmed=True)
    assert scene.state is EditorState.PLACING
    scene.pointerDown(200, 0)
    scene.pointerUp(200, 0)
    assert [e.name for e in scene.entities] == ['Load_1', 'Load_2']
    assert scene.state is EditorState.IDLE

    scene.startPlacing('Load', repeat=True)
    scene.pointerDown(400, 0)
    scene.pointerUp(400, 0)
    assert scene.state is EditorState.PLACING


def test_placing_ignores_regions_and_does_not_pan():
    scene = NetworkScene()
    scene.addRegion(0, 0, 200, 200)
    scene.startPlacing('Bus')
    scene.pointerDown(100, 100)
    assert scene.state is EditorState.PLACING
    assert scene.selectedRegionId is None
    scene.pointerUp(100, 100)
    assert scene.entities[0].cx == 100


def test_drag_while_armed_keeps_mode():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    scene.startPlacing('Generator')
    scene.pointerDown(0, 0)
    scene.pointerMove(100, 0)
    scene.pointerUp(100, 0)
    assert bus.cx == 100
    assert scene.state is EditorState.PLACING
    assert len(scene.entities) == 1


def test_cancel_mode_emits_mode_exited():
    scene = NetworkScene()
    exited = record(scene.modeExited)
    scene.cancelMode()
    assert exited == []
    scene.startDrawingRegion()
    scene.pointerDown(0, 0)
    scene.pointerMove(100, 100)
    scene.cancelMode()
    assert len(exited) == 1
    assert scene.previewRect is None
    assert scene.regions == []


def test_switching_mode_emits_mode_exited():
    scene = NetworkScene()
    exited = record(scene.modeExited)
    scene.startPlacing('Bus')
    assert exited == []
    scene.startPlacing('Bus', repeat=True)
    assert exited == []
    scene.startPlacing('Load')
    assert len(exited) == 1
    scene.startDrawingRegion()
    assert len(exited) == 2
    assert scene.placingType is None
    scene.startPlacing('Generator')
    assert len(exited) == 3
    scene.startPlacing('Carrier')
    assert len(exited) == 4
    assert scene.state is EditorState.IDLE


def test_drawing_region_stays_armed_with_shift():
    scene = NetworkScene()
    scene.startDrawingRegion()
    scene.pointerDown(0, 0)
    scene.pointerUp(50, 50, stayArmed=True)
    assert scene.state is EditorState.DRAWING_REGION
    scene.pointerDown(100, 100)
    scene.pointerUp(200, 200)
    assert [r.name for r in scene.regions] == ['Zone 1', 'Zone 2']
    assert scene.state is EditorState.IDLE


def test_gestures_under_zoom_and_pan():
    scene = NetworkScene()
    scene.transform.zoom = 2.0
    scene.transform.pan_x = 100.0
    scene.transform.pan_y = 50.0
    scene.startPlacing('Bus')
    # 螢幕 (180, 130) → 世界 (40, 40)
    scene.pointerDown(180, 130)
    scene.pointerUp(180, 130)
    bus = scene.entities[0]
    assert (bus.cx, bus.cy) == (40, 40)


# ----------------------------------------------------------------------
# 縮放與其他輸入
# ----------------------------------------------------------------------
def test_wheel_zoom():
    scene = NetworkScene()
    assert scene.wheel(100, 100, 120)
    assert scene.transform.zoom == pytest.approx(1.1)
    assert scene.wheel(100, 100, -120)
    assert scene.transform.zoom == pytest.approx(1.0)
    assert not scene.wheel(100, 100, 0)


def test_center_view():
    scene = NetworkScene(EditorSettings(viewport_width=800, viewport_height=600))
    scene.placeInstance('Bus', 100, 100)
    scene.placeInstance('Bus', 300, 100)
    scene.addCarrier('far')
    scene.centerView()
    assert (scene.transform.pan_x, scene.transform.pan_y) == (200, 200)


def test_double_click_requests_name_focus():
    scene = NetworkScene()
    gen = scene.placeInstance('Generator', 0, 0)
    scene.selectEntity(None)
    focus = record(scene.focusRequested)
    scene.doubleClick(3, 3)
    assert scene.selectedId == gen.id
    assert focus == [('name',)]
    scene.doubleClick(500, 500)
    assert len(focus) == 1


def test_context_click_rotates_bus_only():
    scene = NetworkScene()
    bus = scene.placeInstance('Bus', 0, 0)
    gen = scene.placeInstance('Generator', 0, 200)
    assert scene.contextClick(0, 0)
    assert bus.rotation == 90
    assert not scene.contextClick(0, 200)
    assert gen.rotation == 0


def test_custom_settings():
    settings = EditorSettings(grid_size=10, history_capacity=3)
    scene = NetworkScene(settings)
    bus = scene.placeInstance('Bus', 13, 17)
    assert (bus.cx, bus.cy) == (10, 20)
    for x in range(5):
        scene.placeInstance('Bus', x * 100, 300)
    assert len(scene.history) == 3
