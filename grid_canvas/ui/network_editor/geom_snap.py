# -*- coding: utf-8 -*-
"""
座標轉換與網格對齊工具
世界座標 ↔ 螢幕座標轉換、網格量化、縮放限制、元件外框計算
"""

import math
from dataclasses import dataclass
from typing import Tuple, Union

from PyQt5.QtCore import QPointF
from PyQt5.QtGui import QTransform

from .components import ComponentInstance

# 全域常數
GRID = 20.0          # 網格間距（世界座標）
MIN_ZOOM = 0.15
MAX_ZOOM = 4.0
NODE_BASE_LENGTH = 40.0
NODE_GROWTH = 18.0
NODE_THICKNESS = 4.0

Number = Union[int, float]


def snap_to_grid(value: float, grid_size: float = GRID) -> float:
    """
    將數值量化到最近的網格點（0.5 一律進位）

    Args:
        value: 原始數值
        grid_size: 網格間距

    Returns:
        量化後的數值
    """
    if grid_size <= 0:
        return value
    return math.floor(value / grid_size + 0.5) * grid_size


def snap(x: float, y: float, grid_size: float = GRID) -> Tuple[float, float]:
    """量化座標點到網格，重複呼叫結果不變"""
    return snap_to_grid(x, grid_size), snap_to_grid(y, grid_size)


def clamp_zoom(zoom: float, min_zoom: float = MIN_ZOOM, max_zoom: float = MAX_ZOOM) -> float:
    """將縮放比例限制在允許範圍內"""
    return max(min_zoom, min(max_zoom, zoom))


class ViewTransform:
    """平移 + 等比縮放的仿射轉換：screen = world * zoom + pan"""

    def __init__(self, zoom: float = 1.0, pan_x: float = 0.0, pan_y: float = 0.0,
                 min_zoom: float = MIN_ZOOM, max_zoom: float = MAX_ZOOM) -> None:
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.zoom = clamp_zoom(zoom, min_zoom, max_zoom)
        self.pan_x = pan_x
        self.pan_y = pan_y

    def worldToScreen(self, x: Number, y: Number) -> QPointF:
        return QPointF(x * self.zoom + self.pan_x, y * self.zoom + self.pan_y)

    def screenToWorld(self, sx: Number, sy: Number) -> QPointF:
        return QPointF((sx - self.pan_x) / self.zoom, (sy - self.pan_y) / self.zoom)

    def zoomAt(self, sx: Number, sy: Number, factor: float) -> bool:
        """
        以螢幕錨點為中心縮放，錨點對應的世界座標維持不變

        Returns:
            縮放比例是否有改變
        """
        new_zoom = clamp_zoom(self.zoom * factor, self.min_zoom, self.max_zoom)
        if new_zoom == self.zoom:
            return False
        ratio = new_zoom / self.zoom
        self.pan_x = sx - (sx - self.pan_x) * ratio
        self.pan_y = sy - (sy - self.pan_y) * ratio
        self.zoom = new_zoom
        return True

    def setZoom(self, zoom: float) -> None:
        self.zoom = clamp_zoom(zoom, self.min_zoom, self.max_zoom)

    def toQTransform(self) -> QTransform:
        """提供給 QPainter 使用的轉換矩陣"""
        return QTransform(self.zoom, 0.0, 0.0, self.zoom, self.pan_x, self.pan_y)

    def __repr__(self) -> str:
        return f"ViewTransform(zoom={self.zoom:.3f}, pan=({self.pan_x:.1f}, {self.pan_y:.1f}))"


@dataclass(frozen=True)
class Bounds:
    """元件外框的半寬與半高"""
    hw: float
    hh: float


def is_vertical(rotation: int) -> bool:
    """90/270 度為垂直方向"""
    return rotation % 180 == 90


def node_length(fan_in: int, base: float = NODE_BASE_LENGTH, growth: float = NODE_GROWTH) -> float:
    """匯流排長軸半長：前兩條連線不加長，之後每條加 growth"""
    return base + growth * max(0, fan_in - 2)


def bounding_box(instance: ComponentInstance, fan_in: int = 0,
                 base: float = NODE_BASE_LENGTH, growth: float = NODE_GROWTH) -> Bounds:
    """
    計算元件外框

    Args:
        instance: 元件實例
        fan_in: 指向此節點的連線數（僅節點使用）

    Returns:
        Bounds(hw, hh)
    """
    definition = instance.definition
    if definition.is_node:
        length = node_length(fan_in, base, growth)
        if is_vertical(instance.rotation):
            return Bounds(NODE_THICKNESS, length)
        return Bounds(length, NODE_THICKNESS)
    hw, hh = definition.bounds
    return Bounds(hw, hh)


def distance(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(bx - ax, by - ay)
