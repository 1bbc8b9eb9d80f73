import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from grid_canvas.ui.network_editor.history import HistoryManager
from grid_canvas.ui.network_editor.scene import NetworkScene


def test_initial_history_has_one_snapshot():
    scene = NetworkScene()
    assert len(scene.history) == 1
    assert not scene.history.canUndo()
    assert not scene.history.canRedo()


def test_ring_buffer_evicts_oldest():
    """容量 50 推入 51 次，最舊的被丟棄，撤銷到底停在目前第 0 筆"""
    scene = NetworkScene()
    history = HistoryManager(scene, capacity=50)
    for i in range(51):
        scene.transform.pan_x = float(i)
        history.push()
    assert len(history) == 50
    assert history.pointer == 49
    assert history.snapshotAt(0)['panX'] == 1.0

    results = [history.undo() for _ in range(50)]
    assert results.count(True) == 49
    assert results[-1] is False
    assert history.pointer == 0
    assert scene.transform.pan_x == 1.0


def test_push_truncates_redo_tail():
    scene = NetworkScene()
    history = HistoryManager(scene, capacity=10)
    for i in range(3):
        scene.transform.pan_x = float(i)
        history.push()
    history.undo()
    history.undo()
    assert history.canRedo()
    scene.transform.pan_x = 99.0
    history.push()
    assert len(history) == 2
    assert not history.canRedo()
    assert history.snapshotAt(1)['panX'] == 99.0


def test_restore_does_not_record_history():
    scene = NetworkScene()
    scene.placeInstance('Bus', 0, 0)
    scene.placeInstance('Bus', 100, 0)
    # 協作者在變更通知中呼叫 push 也不能產生新紀錄
    scene.entitiesChanged.connect(scene.history.push)
    length = len(scene.history)
    assert scene.undo()
    assert len(scene.history) == length
    assert scene.redo()
    assert len(scene.history) == length


def test_state_changed_signal():
    scene = NetworkScene()
    states = []
    scene.history.stateChanged.connect(lambda u, r: states.append((u, r)))
    scene.placeInstance('Bus', 0, 0)
    scene.undo()
    scene.redo()
    assert states == [(True, False), (False, True), (True, False)]


def test_reset_keeps_current_scene_only():
    scene = NetworkScene()
    scene.placeInstance('Bus', 0, 0)
    scene.history.reset()
    assert len(scene.history) == 1
    assert json.loads(scene.history.stack[0])['entities'][0]['data']['name'] == 'Bus_1'


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        HistoryManager(NetworkScene(), capacity=0)
