from __future__ import annotations

import math
from typing import Optional

from PyQt5.QtCore import Qt, QPointF, QRectF
from PyQt5.QtGui import (
    QBrush, QColor, QFont, QFontMetricsF, QPainter, QPainterPath, QPen, QPolygonF
)
from PyQt5.QtWidgets import QWidget

from .components import ComponentInstance, get_type
from .enums import EditorState
from .geom_snap import Bounds, is_vertical
from .routing import arrow_polygon, edge_point
from .scene import NetworkScene

INK = QColor(29, 29, 31)
ACCENT = QColor(0, 113, 227)


class CanvasView(QWidget):
    """網路圖畫布 - 繪製場景並把輸入事件轉交給 NetworkScene"""

    def __init__(self, scene: NetworkScene, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.scene = scene
        self.showGrid = True

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMinimumSize(200, 150)

        scene.entitiesChanged.connect(self.update)
        scene.viewChanged.connect(self.update)
        scene.selectionChanged.connect(lambda _id: self.update())
        scene.regionSelected.connect(lambda _region: self.update())
        scene.modeExited.connect(self._updateCursor)

    def setGridVisible(self, visible: bool) -> None:
        """設定網格可見性"""
        self.showGrid = visible
        self.update()

    # ------------------------------------------------------------------
    # 繪製
    # ------------------------------------------------------------------
    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        painter.setRenderHint(QPainter.TextAntialiasing, True)
        painter.fillRect(self.rect(), QColor(255, 255, 255))

        painter.setTransform(self.scene.transform.toQTransform())
        if self.showGrid:
            self.drawGrid(painter)
        self.drawRegions(painter)
        self.drawConnections(painter)
        for inst in self.scene.entities:
            if inst.definition.is_visual:
                self.drawComponent(painter, inst)
        self.drawPreview(painter)
        painter.end()

    def visibleWorldRect(self) -> QRectF:
        t = self.scene.transform
        tl = t.screenToWorld(0, 0)
        br = t.screenToWorld(self.width(), self.height())
        return QRectF(tl, br)

    def drawGrid(self, painter: QPainter) -> None:
        """點狀網格；縮得太小時不畫以免過密"""
        grid = self.scene.settings.grid_size
        if grid * self.scene.transform.zoom < 6:
            return
        rect = self.visibleWorldRect()
        painter.setPen(QPen(QColor(0, 0, 0, 30), 1.2 / self.scene.transform.zoom))
        left = math.floor(rect.left() / grid) * grid
        top = math.floor(rect.top() / grid) * grid

        points = []
        y = top
        while y <= rect.bottom():
            x = left
            while x <= rect.right():
                points.append(QPointF(x, y))
                x += grid
            y += grid
        if points:
            painter.drawPoints(QPolygonF(points))

    def drawRegions(self, painter: QPainter) -> None:
        selected = self.scene.selectedRegionId
        for region in self.scene.regions:
            rect = QRectF(region.x, region.y, region.w, region.h)
            fill = QColor(region.fillColor)
            fill.setAlphaF(region.opacity)
            border = QColor(region.borderColor)
            pen = QPen(border, 1.5)
            pen.setDashPattern([8, 4])
            painter.setPen(pen)
            painter.setBrush(QBrush(fill))
            painter.drawRoundedRect(rect, 6, 6)

            painter.setPen(border)
            painter.setFont(QFont('Sans Serif', 9, QFont.DemiBold))
            painter.drawText(QPointF(region.x + 8, region.y + 16), region.name)

            if region.id == selected:
                painter.setPen(QPen(border, 1))
                painter.setBrush(QColor(255, 255, 255))
                for _corner, handle in self.scene.handles.handleRects(region):
                    painter.drawRect(handle)

    def drawConnections(self, painter: QPainter) -> None:
        routing = self.scene.routing
        painter.setBrush(Qt.NoBrush)
        for conn in routing.connections:
            pen = QPen(INK, 1.5)
            if conn.dash:
                pen.setDashPattern([d / 1.5 for d in conn.dash])
            painter.setPen(pen)
            path = QPainterPath(conn.points[0])
            for p in conn.points[1:]:
                path.lineTo(p)
            painter.drawPath(path)

            # 匯流排上的接點
            painter.setPen(Qt.NoPen)
            painter.setBrush(INK)
            j = conn.junction
            painter.drawRect(QRectF(j.x() - 2.5, j.y() - 2.5, 5, 5))
            painter.setBrush(Qt.NoBrush)

        painter.setPen(Qt.NoPen)
        painter.setBrush(INK)
        for arrow in routing.arrows:
            painter.drawPolygon(QPolygonF(arrow_polygon(arrow)))
        painter.setBrush(Qt.NoBrush)

    def drawComponent(self, painter: QPainter, inst: ComponentInstance) -> None:
        bounds = self.scene.boundsOf(inst)
        painter.save()
        painter.translate(inst.cx, inst.cy)
        self.drawSymbol(painter, inst, bounds)

        if inst.id == self.scene.selectedId:
            pen = QPen(ACCENT, 1.5)
            pen.setDashPattern([4 / 1.5, 3 / 1.5])
            painter.setPen(pen)
            painter.setBrush(Qt.NoBrush)
            painter.drawRoundedRect(
                QRectF(-(bounds.hw + 6), -(bounds.hh + 6), (bounds.hw + 6) * 2, (bounds.hh + 6) * 2),
                4, 4,
            )

        # 名稱標籤
        font = QFont('Sans Serif', 8, QFont.Medium)
        painter.setFont(font)
        metrics = QFontMetricsF(font)
        text = inst.name
        width = metrics.horizontalAdvance(text) + 10
        label_y = -(bounds.hh + 10)
        painter.setPen(QPen(QColor(0, 0, 0, 20), 0.5))
        painter.setBrush(QColor(255, 255, 255, 224))
        painter.drawRoundedRect(QRectF(-width / 2, label_y - 9, width, 16), 3, 3)
        painter.setPen(INK)
        painter.drawText(QRectF(-width / 2, label_y - 9, width, 16), Qt.AlignCenter, text)
        painter.restore()

    def drawSymbol(self, painter: QPainter, inst: ComponentInstance, bounds: Bounds) -> None:
        """依型別繪製元件符號（原點為元件中心）"""
        kind = inst.type
        painter.setPen(QPen(INK, 1.8))
        painter.setBrush(Qt.NoBrush)

        if kind == 'Bus':
            painter.setPen(Qt.NoPen)
            painter.setBrush(INK)
            if is_vertical(inst.rotation):
                painter.drawRoundedRect(QRectF(-3, -bounds.hh, 6, bounds.hh * 2), 1, 1)
            else:
                painter.drawRoundedRect(QRectF(-bounds.hw, -3, bounds.hw * 2, 6), 1, 1)
        elif kind == 'Generator':
            painter.drawEllipse(QPointF(0, 0), 16, 16)
            painter.setFont(QFont('Serif', 14))
            painter.drawText(QRectF(-16, -16, 32, 32), Qt.AlignCenter, '~')
        elif kind == 'Load':
            painter.drawPolygon(QPolygonF([QPointF(0, -18), QPointF(12, 10), QPointF(-12, 10)]))
            painter.drawLine(QPointF(0, 10), QPointF(0, 18))
            painter.drawLine(QPointF(-8, 18), QPointF(8, 18))
        elif kind == 'StorageUnit':
            painter.drawRoundedRect(QRectF(-14, -10, 28, 20), 2, 2)
            for x, h in ((-6, 4), (-2, 7), (2, 4), (6, 7)):
                painter.drawLine(QPointF(x, -h), QPointF(x, h))
        elif kind == 'Store':
            painter.drawRoundedRect(QRectF(-14, -12, 28, 24), 3, 3)
            painter.setFont(QFont('Sans Serif', 9, QFont.Bold))
            painter.drawText(QRectF(-14, -12, 28, 24), Qt.AlignCenter, 'E')
        elif kind == 'ShuntImpedance':
            painter.drawLine(QPointF(0, -14), QPointF(0, -6))
            zigzag = [(-8, -6), (8, -6), (6, 0), (-6, 0), (-4, 6), (4, 6), (2, 12), (-2, 12)]
            painter.drawPolyline(QPolygonF([QPointF(x, y) for x, y in zigzag]))
            for half, y in ((10, 14), (6, 17), (3, 20)):
                painter.drawLine(QPointF(-half, y), QPointF(half, y))
        elif kind == 'Line':
            painter.drawLine(QPointF(-20, 0), QPointF(20, 0))
        elif kind == 'Link':
            painter.drawPolygon(QPolygonF([QPointF(0, -8), QPointF(8, 0), QPointF(0, 8), QPointF(-8, 0)]))
        elif kind == 'Transformer':
            painter.drawEllipse(QPointF(-8, 0), 12, 12)
            painter.drawEllipse(QPointF(8, 0), 12, 12)
        else:
            painter.drawRect(QRectF(-bounds.hw, -bounds.hh, bounds.hw * 2, bounds.hh * 2))
            painter.drawText(QRectF(-bounds.hw, -bounds.hh, bounds.hw * 2, bounds.hh * 2),
                             Qt.AlignCenter, inst.definition.icon)

    def drawPreview(self, painter: QPainter) -> None:
        """區域繪製預覽框與放置中的虛線連線"""
        scene = self.scene
        if scene.previewRect is not None:
            pen = QPen(QColor('#cc3333'), 1.5)
            pen.setDashPattern([4, 2.67])
            painter.setPen(pen)
            painter.setBrush(QColor(220, 50, 50, 20))
            painter.drawRoundedRect(scene.previewRect, 4, 4)

        if scene.state is not EditorState.PLACING or scene.cursorWorld is None:
            return
        definition = get_type(scene.placingType)
        if not definition.port_keys:
            return
        cursor = scene.cursorWorld
        x, y = scene.snap(cursor.x(), cursor.y())
        node = scene.nearestNode(x, y)
        if node is None:
            return
        start = edge_point(QPointF(node.cx, node.cy), scene.boundsOf(node), QPointF(x, y))
        pen = QPen(ACCENT, 1.2)
        pen.setDashPattern([4, 3])
        painter.setPen(pen)
        painter.drawLine(start, QPointF(x, y))

    # ------------------------------------------------------------------
    # 輸入事件
    # ------------------------------------------------------------------
    def resizeEvent(self, event):
        self.scene.setViewportSize(self.width(), self.height())
        super().resizeEvent(event)

    def mousePressEvent(self, event):
        pos = event.localPos()
        if event.button() == Qt.LeftButton:
            self.scene.pointerDown(pos.x(), pos.y())
            self._updateCursor()
            event.accept()
        elif event.button() == Qt.RightButton:
            self.scene.contextClick(pos.x(), pos.y())
            event.accept()
        else:
            super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        pos = event.localPos()
        self.scene.pointerMove(pos.x(), pos.y())
        event.accept()

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.LeftButton:
            pos = event.localPos()
            stay = bool(event.modifiers() & Qt.ShiftModifier)
            self.scene.pointerUp(pos.x(), pos.y(), stayArmed=stay)
            self._updateCursor()
            event.accept()
        else:
            super().mouseReleaseEvent(event)

    def mouseDoubleClickEvent(self, event):
        if event.button() == Qt.LeftButton:
            pos = event.localPos()
            self.scene.doubleClick(pos.x(), pos.y())
            event.accept()
        else:
            super().mouseDoubleClickEvent(event)

    def wheelEvent(self, event):
        """滾輪縮放（以游標為錨點）"""
        pos = event.posF()
        self.scene.wheel(pos.x(), pos.y(), event.angleDelta().y())
        event.accept()

    def keyPressEvent(self, event):
        key = event.key()
        mods = event.modifiers()
        if key == Qt.Key_Escape:
            self.scene.cancelMode()
            self._updateCursor()
        elif key in (Qt.Key_Delete, Qt.Key_Backspace):
            self.scene.deleteSelected()
        elif key == Qt.Key_Z and mods & Qt.ControlModifier:
            if mods & Qt.ShiftModifier:
                self.scene.redo()
            else:
                self.scene.undo()
        elif key == Qt.Key_Y and mods & Qt.ControlModifier:
            self.scene.redo()
        else:
            super().keyPressEvent(event)
            return
        event.accept()

    def _updateCursor(self) -> None:
        state = self.scene.state
        if state is EditorState.PANNING:
            self.setCursor(Qt.ClosedHandCursor)
        elif self.scene.isArmed():
            self.setCursor(Qt.CrossCursor)
        else:
            self.setCursor(Qt.ArrowCursor)
