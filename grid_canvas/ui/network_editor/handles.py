from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from PyQt5.QtCore import QPointF, QRectF

from .components import Region
from .enums import ResizeCorner


@dataclass
class ResizeDrag:
    """調整區域大小時記錄的起始狀態"""
    region: Region
    corner: ResizeCorner
    start: QPointF
    orig_x: float
    orig_y: float
    orig_w: float
    orig_h: float


class RegionHandles:
    """區域四角的調整把手 - 只有被選取的區域才顯示"""

    HANDLE_SIZE = 8  # 把手大小（世界座標）
    MIN_REGION_SIZE = 40  # 調整後的最小邊長

    def __init__(self, handle_size: float = HANDLE_SIZE, min_size: float = MIN_REGION_SIZE):
        self.handle_size = handle_size
        self.min_size = min_size

    @staticmethod
    def cornerPoints(region: Region) -> List[Tuple[ResizeCorner, QPointF]]:
        """四個角落的世界座標"""
        return [
            (ResizeCorner.NW, QPointF(region.x, region.y)),
            (ResizeCorner.NE, QPointF(region.x + region.w, region.y)),
            (ResizeCorner.SW, QPointF(region.x, region.y + region.h)),
            (ResizeCorner.SE, QPointF(region.x + region.w, region.y + region.h)),
        ]

    def handleRects(self, region: Region) -> List[Tuple[ResizeCorner, QRectF]]:
        half = self.handle_size / 2
        return [
            (corner, QRectF(p.x() - half, p.y() - half, self.handle_size, self.handle_size))
            for corner, p in self.cornerPoints(region)
        ]

    def hitTest(self, region: Region, x: float, y: float) -> Optional[ResizeCorner]:
        """檢查世界座標是否落在某個把手上"""
        half = self.handle_size / 2
        for corner, p in self.cornerPoints(region):
            if abs(x - p.x()) <= half and abs(y - p.y()) <= half:
                return corner
        return None

    def begin(self, region: Region, corner: ResizeCorner, start: QPointF) -> ResizeDrag:
        return ResizeDrag(region, corner, QPointF(start), region.x, region.y, region.w, region.h)

    def apply(self, drag: ResizeDrag, current: QPointF) -> None:
        """
        依把手位置調整區域

        對側邊固定不動；寬高各自不得小於 min_size。
        """
        dx = current.x() - drag.start.x()
        dy = current.y() - drag.start.y()
        region = drag.region
        corner = drag.corner

        if corner is ResizeCorner.SE:
            region.w = max(self.min_size, drag.orig_w + dx)
            region.h = max(self.min_size, drag.orig_h + dy)
        elif corner is ResizeCorner.SW:
            region.w = max(self.min_size, drag.orig_w - dx)
            region.x = drag.orig_x + drag.orig_w - region.w
            region.h = max(self.min_size, drag.orig_h + dy)
        elif corner is ResizeCorner.NE:
            region.w = max(self.min_size, drag.orig_w + dx)
            region.h = max(self.min_size, drag.orig_h - dy)
            region.y = drag.orig_y + drag.orig_h - region.h
        elif corner is ResizeCorner.NW:
            region.w = max(self.min_size, drag.orig_w - dx)
            region.h = max(self.min_size, drag.orig_h - dy)
            region.x = drag.orig_x + drag.orig_w - region.w
            region.y = drag.orig_y + drag.orig_h - region.h

    def restore(self, drag: ResizeDrag) -> None:
        """取消調整，回到起始狀態"""
        region = drag.region
        region.x, region.y = drag.orig_x, drag.orig_y
        region.w, region.h = drag.orig_w, drag.orig_h

    @staticmethod
    def changed(drag: ResizeDrag) -> bool:
        region = drag.region
        return (region.x, region.y, region.w, region.h) != (
            drag.orig_x, drag.orig_y, drag.orig_w, drag.orig_h
        )
