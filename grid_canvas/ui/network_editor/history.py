"""撤銷/重做歷史紀錄

以完整場景快照（JSON 文字）組成有上限的線性堆疊，
超過容量時丟棄最舊的快照；還原期間不會產生新的快照。
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, List

from PyQt5.QtCore import QObject, pyqtSignal

if TYPE_CHECKING:
    from .scene import NetworkScene

logger = logging.getLogger(__name__)


class HistoryManager(QObject):
    """快照式撤銷/重做管理器"""

    stateChanged = pyqtSignal(bool, bool)  # (canUndo, canRedo)

    def __init__(self, scene: NetworkScene, capacity: int = 50) -> None:
        super().__init__()
        if capacity < 1:
            raise ValueError("history capacity must be positive")
        self.scene = scene
        self.capacity = capacity
        self.stack: List[str] = []
        self.pointer = -1
        self.restoring = False

    def __len__(self) -> int:
        return len(self.stack)

    def push(self) -> None:
        """在目前位置之後加入快照，並捨棄所有可重做的快照"""
        if self.restoring:
            return
        state = json.dumps(self.scene.serialize())
        del self.stack[self.pointer + 1:]
        self.stack.append(state)
        if len(self.stack) > self.capacity:
            # 丟棄最舊的快照，指標隨之前移
            del self.stack[0]
        self.pointer = len(self.stack) - 1
        self._emitState()

    def undo(self) -> bool:
        if self.pointer <= 0:
            return False
        self.pointer -= 1
        self._restore()
        return True

    def redo(self) -> bool:
        if self.pointer >= len(self.stack) - 1:
            return False
        self.pointer += 1
        self._restore()
        return True

    def canUndo(self) -> bool:
        return self.pointer > 0

    def canRedo(self) -> bool:
        return self.pointer < len(self.stack) - 1

    def reset(self) -> None:
        """清空歷史並以目前場景作為唯一快照"""
        self.stack = []
        self.pointer = -1
        self.push()

    def snapshotAt(self, index: int) -> dict:
        return json.loads(self.stack[index])

    def _restore(self) -> None:
        self.restoring = True
        try:
            state = json.loads(self.stack[self.pointer])
            self.scene.restore(state)
        finally:
            self.restoring = False
        logger.debug("還原快照 %d/%d", self.pointer + 1, len(self.stack))
        self._emitState()

    def _emitState(self) -> None:
        self.stateChanged.emit(self.canUndo(), self.canRedo())
