"""
網路圖場景控制器

持有所有元件、區域、選取狀態與互動手勢狀態機。
每次提交的結構性變更都依序：重新路由 → 發出 entitiesChanged → 推入歷史快照。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from PyQt5.QtCore import QObject, QPointF, QRectF, pyqtSignal

from .commands import (
    AddCarrierCommand, AddRegionCommand, ClearSceneCommand, Command,
    DeleteComponentCommand, DeleteRegionCommand, MoveComponentCommand,
    PlaceComponentCommand, RenameCommand, RotateCommand, SetAttributeCommand,
    UpdateRegionCommand,
)
from .components import (
    DEFAULT_CARRIERS, ComponentFactory, ComponentInstance, Region, get_type
)
from .config import EditorSettings
from .enums import EditorState
from .geom_snap import Bounds, ViewTransform, bounding_box, distance, snap
from .handles import RegionHandles, ResizeDrag
from .history import HistoryManager
from .routing import ConnectionRouter, RoutingResult
from .topology import build_node_index, dangling_references

logger = logging.getLogger(__name__)


class NetworkScene(QObject):
    """網路圖場景 - 唯一可以修改場景資料的物件"""

    entitiesChanged = pyqtSignal()
    selectionChanged = pyqtSignal(object)   # 元件 id 或 None
    regionSelected = pyqtSignal(object)     # Region 或 None
    modeExited = pyqtSignal()
    viewChanged = pyqtSignal()
    focusRequested = pyqtSignal(str)

    def __init__(self, settings: Optional[EditorSettings] = None,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.settings = settings or EditorSettings()
        s = self.settings

        self.factory = ComponentFactory()
        self.entities: List[ComponentInstance] = []
        self.regions: List[Region] = []

        self.transform = ViewTransform(1.0, 0.0, 0.0, s.min_zoom, s.max_zoom)
        self.viewportWidth = s.viewport_width
        self.viewportHeight = s.viewport_height

        self.router = ConnectionRouter(s.node_base_length, s.node_growth, s.arrow_offset)
        self.routing = RoutingResult()
        self._nodeIndex: Dict[str, ComponentInstance] = {}
        self.handles = RegionHandles(s.handle_size, s.min_resize)

        # 選取（元件與區域互斥）
        self.selectedId: Optional[str] = None
        self.selectedRegionId: Optional[str] = None

        # 互動狀態
        self.state = EditorState.IDLE
        self.placingType: Optional[str] = None
        self.drawingArmed = False
        self.repeatArmed = False
        self.previewRect: Optional[QRectF] = None
        self.cursorWorld: Optional[QPointF] = None
        self._gesture: Dict[str, Any] = {}

        self.recompute()
        self.history = HistoryManager(self, s.history_capacity)
        self.history.push()

    # ------------------------------------------------------------------
    # 查詢
    # ------------------------------------------------------------------
    def getEntity(self, entity_id: Optional[str]) -> Optional[ComponentInstance]:
        if entity_id is None:
            return None
        for inst in self.entities:
            if inst.id == entity_id:
                return inst
        return None

    def getRegion(self, region_id: Optional[str]) -> Optional[Region]:
        if region_id is None:
            return None
        for region in self.regions:
            if region.id == region_id:
                return region
        return None

    def selectedEntity(self) -> Optional[ComponentInstance]:
        return self.getEntity(self.selectedId)

    def selectedRegion(self) -> Optional[Region]:
        return self.getRegion(self.selectedRegionId)

    def nodes(self) -> List[ComponentInstance]:
        return [inst for inst in self.entities if inst.definition.is_node]

    def nodeByName(self, name: str) -> Optional[ComponentInstance]:
        return self._nodeIndex.get(name)

    def nearestNode(self, x: float, y: float) -> Optional[ComponentInstance]:
        """距離最近的匯流排；距離相同時取先出現者"""
        best = None
        best_dist = None
        for inst in self.nodes():
            d = distance(x, y, inst.cx, inst.cy)
            if best_dist is None or d < best_dist:
                best, best_dist = inst, d
        return best

    def findCarrier(self, name: str) -> Optional[ComponentInstance]:
        for inst in self.entities:
            if inst.type == 'Carrier' and inst.name == name:
                return inst
        return None

    def carrierOptions(self) -> List[str]:
        """預設載體與場景中定義的載體名稱"""
        names = set(DEFAULT_CARRIERS)
        names.update(inst.name for inst in self.entities if inst.type == 'Carrier' and inst.name)
        return sorted(names)

    def boundsOf(self, inst: ComponentInstance) -> Bounds:
        bounds = self.routing.bounds.get(inst.id)
        if bounds is None:
            bounds = bounding_box(inst, 0, self.settings.node_base_length, self.settings.node_growth)
        return bounds

    def instanceAt(self, x: float, y: float) -> Optional[ComponentInstance]:
        """世界座標下最上層的可見元件（後繪製者在上）"""
        pad = self.settings.hit_padding
        for inst in reversed(self.entities):
            if not inst.definition.is_visual:
                continue
            b = self.boundsOf(inst)
            if abs(x - inst.cx) <= b.hw + pad and abs(y - inst.cy) <= b.hh + pad:
                return inst
        return None

    def regionAt(self, x: float, y: float) -> Optional[Region]:
        for region in reversed(self.regions):
            if region.contains(x, y):
                return region
        return None

    def snap(self, x: float, y: float) -> Tuple[float, float]:
        return snap(x, y, self.settings.grid_size)

    def danglingReferences(self) -> List[Tuple[str, str, str]]:
        if self.routing.graph is None:
            return []
        return dangling_references(self.routing.graph)

    def isArmed(self) -> bool:
        return self.placingType is not None or self.drawingArmed

    # ------------------------------------------------------------------
    # 重新計算與提交
    # ------------------------------------------------------------------
    def recompute(self) -> None:
        """重建名稱索引並整批重新路由"""
        self._nodeIndex = build_node_index(self.entities)
        self.routing = self.router.route_all(self.entities)

    def _commit(self) -> None:
        self.recompute()
        self.entitiesChanged.emit()
        self.history.push()

    def executeCommand(self, command: Command) -> bool:
        """執行命令；有變更時才重新路由、通知並記錄歷史"""
        if not command.execute():
            logger.debug("命令未產生變更：%s", command.description)
            return False
        logger.info("提交變更：%s", command.description)
        self._commit()
        return True

    # ------------------------------------------------------------------
    # 快照
    # ------------------------------------------------------------------
    def serialize(self) -> Dict[str, Any]:
        return {
            'entities': [inst.to_dict() for inst in self.entities],
            'regions': [region.to_dict() for region in self.regions],
            'zoom': self.transform.zoom,
            'panX': self.transform.pan_x,
            'panY': self.transform.pan_y,
        }

    def restore(self, state: Dict[str, Any]) -> None:
        """
        以快照取代整個場景

        先完整建立新的集合再一次替換，過程中不會出現部分還原的狀態。
        """
        entities = [ComponentInstance.from_dict(e) for e in state.get('entities', [])]
        regions = [Region.from_dict(r) for r in state.get('regions', [])]
        self.entities = entities
        self.regions = regions
        self.transform.setZoom(float(state.get('zoom', 1.0)))
        self.transform.pan_x = float(state.get('panX', 0.0))
        self.transform.pan_y = float(state.get('panY', 0.0))

        # 進行中的手勢指向舊物件，直接丟棄
        self._gesture = {}
        self.previewRect = None
        self.state = self._armedState()
        self.recompute()

        if self.selectedId is not None and self.getEntity(self.selectedId) is None:
            self.selectedId = None
            self.selectionChanged.emit(None)
        if self.selectedRegionId is not None and self.getRegion(self.selectedRegionId) is None:
            self.selectedRegionId = None
            self.regionSelected.emit(None)

        self.entitiesChanged.emit()
        self.viewChanged.emit()

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def resetCounters(self) -> None:
        self.factory.reset()

    # ------------------------------------------------------------------
    # 外部命令
    # ------------------------------------------------------------------
    def startPlacing(self, typeName: str, repeat: bool = False) -> None:
        """
        進入放置模式

        定義型別（Carrier）不會出現在畫布上，直接建立並選取。

        Raises:
            UnknownComponentTypeError: 型別未註冊
        """
        definition = get_type(typeName)
        # 換成不同模式時，先通知原模式已結束
        replaced = not definition.is_visual or self.drawingArmed or \
            self.placingType not in (None, typeName)
        self.cancelMode(emit=replaced)
        if not definition.is_visual:
            cmd = AddCarrierCommand(self)
            self.executeCommand(cmd)
            self.selectEntity(cmd.instance.id)
            return
        self.placingType = typeName
        self.repeatArmed = repeat
        self.state = EditorState.PLACING
        logger.debug("進入放置模式：%s", typeName)
        self.viewChanged.emit()

    def startDrawingRegion(self, repeat: bool = False) -> None:
        self.cancelMode(emit=self.placingType is not None)
        self.drawingArmed = True
        self.repeatArmed = repeat
        self.state = EditorState.DRAWING_REGION
        logger.debug("進入區域繪製模式")
        self.viewChanged.emit()

    def cancelMode(self, emit: bool = True) -> None:
        """中止所有尚未提交的互動並回到閒置狀態"""
        was_armed = self.isArmed()
        self._abortGesture()
        self.placingType = None
        self.drawingArmed = False
        self.repeatArmed = False
        self.previewRect = None
        self.state = EditorState.IDLE
        if was_armed and emit:
            self.modeExited.emit()
        self.viewChanged.emit()

    def selectEntity(self, entity_id: Optional[str]) -> None:
        inst = self.getEntity(entity_id)
        if entity_id is not None and inst is None:
            logger.debug("忽略不存在的元件 id：%s", entity_id)
        new_id = inst.id if inst is not None else None
        if new_id is not None and self.selectedRegionId is not None:
            self.selectedRegionId = None
            self.regionSelected.emit(None)
        if new_id != self.selectedId:
            self.selectedId = new_id
            self.selectionChanged.emit(new_id)
        self.viewChanged.emit()

    def selectRegion(self, region_id: Optional[str]) -> None:
        region = self.getRegion(region_id)
        if region_id is not None and region is None:
            logger.debug("忽略不存在的區域 id：%s", region_id)
        new_id = region.id if region is not None else None
        if new_id is not None and self.selectedId is not None:
            self.selectedId = None
            self.selectionChanged.emit(None)
        if new_id != self.selectedRegionId:
            self.selectedRegionId = new_id
            self.regionSelected.emit(region)
        self.viewChanged.emit()

    def deleteSelected(self) -> bool:
        if self.selectedId is not None:
            return self.deleteEntity(self.selectedId)
        if self.selectedRegionId is not None:
            return self.deleteRegion(self.selectedRegionId)
        return False

    def clearScene(self) -> None:
        """清空場景；自動命名計數器不重設"""
        self.cancelMode()
        self.selectEntity(None)
        self.selectRegion(None)
        self.executeCommand(ClearSceneCommand(self))

    def rotateSelected(self) -> bool:
        if self.selectedId is None:
            return False
        return self.rotateEntity(self.selectedId)

    def centerView(self) -> None:
        """將所有可見元件的中心移到視窗中央，縮放不變"""
        visible = [inst for inst in self.entities if inst.definition.is_visual]
        if not visible:
            return
        min_x = min(inst.cx for inst in visible)
        max_x = max(inst.cx for inst in visible)
        min_y = min(inst.cy for inst in visible)
        max_y = max(inst.cy for inst in visible)
        cx = (min_x + max_x) / 2
        cy = (min_y + max_y) / 2
        self.transform.pan_x = self.viewportWidth / 2 - cx * self.transform.zoom
        self.transform.pan_y = self.viewportHeight / 2 - cy * self.transform.zoom
        self.viewChanged.emit()

    def setViewportSize(self, width: int, height: int) -> None:
        self.viewportWidth = width
        self.viewportHeight = height

    # ------------------------------------------------------------------
    # 變更入口（屬性表單等外部協作者使用）
    # ------------------------------------------------------------------
    def placeInstance(self, typeName: str, cx: float, cy: float,
                      **data: Any) -> Optional[ComponentInstance]:
        """在對齊網格後的位置放置元件並選取；data 可覆寫任何屬性（含 x、y）"""
        sx, sy = self.snap(cx, cy)
        cmd = PlaceComponentCommand(self, typeName, sx, sy, data)
        self.executeCommand(cmd)
        self.selectEntity(cmd.instance.id)
        return cmd.instance

    def addCarrier(self, name: Optional[str] = None) -> ComponentInstance:
        cmd = AddCarrierCommand(self, name)
        self.executeCommand(cmd)
        return cmd.instance

    def renameEntity(self, entity_id: str, name: str) -> bool:
        return self.executeCommand(RenameCommand(self, entity_id, name))

    def setAttribute(self, entity_id: str, key: str, raw: Any) -> bool:
        return self.executeCommand(SetAttributeCommand(self, entity_id, key, raw))

    def moveEntity(self, entity_id: str, x: float, y: float) -> bool:
        return self.executeCommand(MoveComponentCommand(self, entity_id, x, y))

    def rotateEntity(self, entity_id: str) -> bool:
        return self.executeCommand(RotateCommand(self, entity_id))

    def deleteEntity(self, entity_id: str) -> bool:
        changed = self.executeCommand(DeleteComponentCommand(self, entity_id))
        if changed and self.selectedId == entity_id:
            self.selectEntity(None)
        return changed

    def addRegion(self, x: float, y: float, w: float, h: float) -> Optional[Region]:
        if not (w > 0 and h > 0):
            return None
        cmd = AddRegionCommand(self, x, y, w, h)
        self.executeCommand(cmd)
        return cmd.region

    def updateRegion(self, region_id: str, **fields: Any) -> bool:
        return self.executeCommand(UpdateRegionCommand(self, region_id, **fields))

    def deleteRegion(self, region_id: str) -> bool:
        changed = self.executeCommand(DeleteRegionCommand(self, region_id))
        if changed and self.selectedRegionId == region_id:
            self.selectRegion(None)
        return changed

    # ------------------------------------------------------------------
    # 指標手勢（螢幕座標）
    # ------------------------------------------------------------------
    def pointerDown(self, sx: float, sy: float) -> None:
        """
        指標按下，依優先順序分派

        1. 元件 → 拖曳
        2. 區域（未在放置/繪製模式時）→ 調整大小或拖曳
        3. 區域繪製模式 → 開始繪製
        4. 非放置模式 → 平移並清除選取
        """
        if self._gesture:
            return
        world = self.transform.screenToWorld(sx, sy)
        wx, wy = world.x(), world.y()
        self.cursorWorld = world

        inst = self.instanceAt(wx, wy)
        if inst is not None:
            self.selectEntity(inst.id)
            self._gesture = {'kind': EditorState.DRAGGING_INSTANCE, 'id': inst.id,
                             'orig': (inst.cx, inst.cy)}
            self.state = EditorState.DRAGGING_INSTANCE
            logger.debug("開始拖曳元件 %s", inst.name)
            return

        if not self.isArmed():
            region = self.selectedRegion()
            corner = self.handles.hitTest(region, wx, wy) if region is not None else None
            if corner is not None:
                drag = self.handles.begin(region, corner, world)
                self._gesture = {'kind': EditorState.RESIZING_REGION, 'drag': drag}
                self.state = EditorState.RESIZING_REGION
                logger.debug("開始調整區域 %s (%s)", region.name, corner.value)
                return
            region = self.regionAt(wx, wy)
            if region is not None:
                self.selectRegion(region.id)
                self._gesture = {'kind': EditorState.DRAGGING_REGION, 'id': region.id,
                                 'orig': (region.x, region.y), 'start': world}
                self.state = EditorState.DRAGGING_REGION
                return

        if self.drawingArmed:
            self._gesture = {'kind': EditorState.DRAWING_REGION, 'start': world}
            self.previewRect = QRectF(wx, wy, 0.0, 0.0)
            self.state = EditorState.DRAWING_REGION
            self.viewChanged.emit()
            return

        if self.placingType is None:
            self._gesture = {'kind': EditorState.PANNING, 'start': QPointF(sx, sy),
                             'orig': (self.transform.pan_x, self.transform.pan_y)}
            self.state = EditorState.PANNING
            self.selectEntity(None)
            self.selectRegion(None)

    def pointerMove(self, sx: float, sy: float) -> None:
        world = self.transform.screenToWorld(sx, sy)
        self.cursorWorld = world
        kind = self._gesture.get('kind')

        if kind is EditorState.PANNING:
            start = self._gesture['start']
            ox, oy = self._gesture['orig']
            self.transform.pan_x = ox + sx - start.x()
            self.transform.pan_y = oy + sy - start.y()
        elif kind is EditorState.DRAGGING_INSTANCE:
            inst = self.getEntity(self._gesture['id'])
            if inst is not None:
                x, y = self.snap(world.x(), world.y())
                if (inst.cx, inst.cy) != (x, y):
                    inst.cx, inst.cy = x, y
                    # 拖曳中即時重新路由，提交留到放開時
                    self.recompute()
        elif kind is EditorState.DRAGGING_REGION:
            region = self.getRegion(self._gesture['id'])
            if region is not None:
                start = self._gesture['start']
                ox, oy = self._gesture['orig']
                region.x = ox + world.x() - start.x()
                region.y = oy + world.y() - start.y()
        elif kind is EditorState.RESIZING_REGION:
            self.handles.apply(self._gesture['drag'], world)
        elif kind is EditorState.DRAWING_REGION:
            start = self._gesture['start']
            self.previewRect = QRectF(start, world).normalized()
        self.viewChanged.emit()

    def pointerUp(self, sx: float, sy: float, stayArmed: bool = False) -> None:
        """
        指標放開，提交目前手勢

        Args:
            sx, sy: 螢幕座標
            stayArmed: 為 True 時放置/繪製模式維持啟用（連續放置）
        """
        world = self.transform.screenToWorld(sx, sy)
        gesture, self._gesture = self._gesture, {}
        kind = gesture.get('kind')

        if kind is EditorState.DRAGGING_INSTANCE:
            inst = self.getEntity(gesture['id'])
            if inst is not None and (inst.cx, inst.cy) != gesture['orig']:
                logger.info("提交變更：move %s", inst.name)
                self._commit()
        elif kind is EditorState.DRAGGING_REGION:
            region = self.getRegion(gesture['id'])
            if region is not None and (region.x, region.y) != gesture['orig']:
                logger.info("提交變更：move region %s", region.name)
                self._commit()
        elif kind is EditorState.RESIZING_REGION:
            drag: ResizeDrag = gesture['drag']
            if self.handles.changed(drag):
                logger.info("提交變更：resize region %s", drag.region.name)
                self._commit()
        elif kind is EditorState.DRAWING_REGION:
            self._finishDrawing(gesture['start'], world, stayArmed)
            return
        elif kind is None and self.placingType is not None:
            self._finishPlacing(world, stayArmed)
            return

        self.state = self._armedState()
        self.viewChanged.emit()

    def _finishDrawing(self, start: QPointF, end: QPointF, stayArmed: bool) -> None:
        rect = QRectF(start, end).normalized()
        self.previewRect = None
        minimum = self.settings.min_region_size
        if rect.width() > minimum and rect.height() > minimum:
            region = self.addRegion(rect.x(), rect.y(), rect.width(), rect.height())
            self.selectRegion(region.id)
        else:
            logger.debug("區域太小，捨棄 (%.1f x %.1f)", rect.width(), rect.height())
        self._endArmedGesture(stayArmed or self.repeatArmed)

    def _finishPlacing(self, world: QPointF, stayArmed: bool) -> None:
        self.placeInstance(self.placingType, world.x(), world.y())
        self._endArmedGesture(stayArmed or self.repeatArmed)

    def _endArmedGesture(self, stayArmed: bool) -> None:
        if stayArmed:
            self.state = self._armedState()
        else:
            self.placingType = None
            self.drawingArmed = False
            self.repeatArmed = False
            self.state = EditorState.IDLE
            self.modeExited.emit()
        self.viewChanged.emit()

    def _armedState(self) -> EditorState:
        if self.placingType is not None:
            return EditorState.PLACING
        if self.drawingArmed:
            return EditorState.DRAWING_REGION
        return EditorState.IDLE

    def _abortGesture(self) -> None:
        """還原進行中的手勢（不提交、不記錄歷史）"""
        gesture, self._gesture = self._gesture, {}
        kind = gesture.get('kind')
        if kind is EditorState.PANNING:
            self.transform.pan_x, self.transform.pan_y = gesture['orig']
        elif kind is EditorState.DRAGGING_INSTANCE:
            inst = self.getEntity(gesture['id'])
            if inst is not None:
                inst.cx, inst.cy = gesture['orig']
                self.recompute()
        elif kind is EditorState.DRAGGING_REGION:
            region = self.getRegion(gesture['id'])
            if region is not None:
                region.x, region.y = gesture['orig']
        elif kind is EditorState.RESIZING_REGION:
            self.handles.restore(gesture['drag'])
        self.state = self._armedState()

    # ------------------------------------------------------------------
    # 縮放與其他輸入
    # ------------------------------------------------------------------
    def zoomAt(self, sx: float, sy: float, factor: float) -> bool:
        changed = self.transform.zoomAt(sx, sy, factor)
        if changed:
            self.viewChanged.emit()
        return changed

    def wheel(self, sx: float, sy: float, delta: float) -> bool:
        """滾輪縮放：向上放大、向下縮小"""
        if delta == 0:
            return False
        step = self.settings.zoom_step
        factor = step if delta > 0 else 1 / step
        return self.zoomAt(sx, sy, factor)

    def doubleClick(self, sx: float, sy: float) -> None:
        """雙擊元件：選取並要求屬性表單聚焦名稱欄位"""
        world = self.transform.screenToWorld(sx, sy)
        inst = self.instanceAt(world.x(), world.y())
        if inst is None:
            return
        self.selectEntity(inst.id)
        self.focusRequested.emit('name')

    def contextClick(self, sx: float, sy: float) -> bool:
        """右鍵點擊匯流排：旋轉 90 度"""
        world = self.transform.screenToWorld(sx, sy)
        inst = self.instanceAt(world.x(), world.y())
        if inst is None or not inst.definition.is_node:
            return False
        return self.rotateEntity(inst.id)
