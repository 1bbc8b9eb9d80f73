"""
匯流排連線路由

每次變更都整批重算：先依連線數重新量測匯流排外框，
再為每個單埠元件與支路元件產生正交（單一轉折）路徑。
找不到的匯流排名稱只會略過該段路徑，不會拋出例外。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import networkx as nx
from PyQt5.QtCore import QPointF

from .components import ComponentInstance
from .enums import ComponentCategory
from .geom_snap import (
    Bounds, NODE_BASE_LENGTH, NODE_GROWTH, bounding_box, is_vertical
)
from .topology import build_node_index, build_topology, fan_in_counts

logger = logging.getLogger(__name__)

ARROW_OFFSET = 14.0


@dataclass
class Connection:
    """一段匯流排 ↔ 元件的正交路徑"""
    owner_id: str
    node_id: str
    port: str
    points: List[QPointF]
    junction: QPointF        # 匯流排上的接點
    dash: Tuple[float, ...] = ()


@dataclass
class DirectionArrow:
    """有向支路的方向箭頭"""
    owner_id: str
    pos: QPointF
    angle: float


@dataclass
class RoutingResult:
    """整批路由結果"""
    connections: List[Connection] = field(default_factory=list)
    arrows: List[DirectionArrow] = field(default_factory=list)
    bounds: Dict[str, Bounds] = field(default_factory=dict)
    fan_in: Dict[str, int] = field(default_factory=dict)
    graph: Optional[nx.MultiGraph] = None

    def connections_for(self, owner_id: str) -> List[Connection]:
        return [c for c in self.connections if c.owner_id == owner_id]


def edge_point(center: QPointF, bounds: Bounds, toward: QPointF) -> QPointF:
    """
    計算兩中心連線與外框的交點

    以斜率比較 |dx|·hh 與 |dy|·hw 判斷與哪一側相交，恆回傳單一點。

    Args:
        center: 起點元件中心
        bounds: 起點元件外框
        toward: 目標中心

    Returns:
        外框上的交點；兩中心重合時回傳中心
    """
    dx = toward.x() - center.x()
    dy = toward.y() - center.y()
    if dx == 0 and dy == 0:
        return QPointF(center)

    abs_dx = abs(dx)
    abs_dy = abs(dy)
    if abs_dx * bounds.hh > abs_dy * bounds.hw:
        # 與左右邊相交
        t = bounds.hw / abs_dx
    else:
        # 與上下邊相交
        t = bounds.hh / abs_dy
    return QPointF(center.x() + dx * t, center.y() + dy * t)


def orthogonal_path(node: ComponentInstance, node_bounds: Bounds,
                    target: ComponentInstance, target_bounds: Bounds) -> List[QPointF]:
    """
    從匯流排到元件的 L 形路徑

    第一段垂直於匯流排長軸離開，接點沿長軸夾在匯流排範圍內。

    Returns:
        [匯流排接點, 轉折點, 元件接點]
    """
    dx = target.cx - node.cx
    dy = target.cy - node.cy
    vertical = is_vertical(node.rotation)

    if vertical:
        bx = node.cx + (node_bounds.hw if dx >= 0 else -node_bounds.hw)
        by = max(node.cy - node_bounds.hh, min(node.cy + node_bounds.hh, target.cy))
    else:
        bx = max(node.cx - node_bounds.hw, min(node.cx + node_bounds.hw, target.cx))
        by = node.cy + (node_bounds.hh if dy >= 0 else -node_bounds.hh)

    if abs(dx) > abs(dy) or vertical:
        tx = target.cx + (-target_bounds.hw if dx >= 0 else target_bounds.hw)
        ty = target.cy
    else:
        tx = target.cx
        ty = target.cy + (-target_bounds.hh if dy >= 0 else target_bounds.hh)

    if vertical:
        bend = QPointF(tx, by)
    else:
        bend = QPointF(bx, ty)
    return [QPointF(bx, by), bend, QPointF(tx, ty)]


def direction_arrow(owner: ComponentInstance, owner_bounds: Bounds, node1: ComponentInstance,
                    offset: float = ARROW_OFFSET) -> DirectionArrow:
    """在第二段（元件 → bus1）離開元件處放置箭頭"""
    ddx = node1.cx - owner.cx
    ddy = node1.cy - owner.cy
    if abs(ddx) > abs(ddy) or is_vertical(node1.rotation):
        # 第一段為水平
        reach = owner_bounds.hw + offset
        pos = QPointF(owner.cx + (reach if ddx >= 0 else -reach), owner.cy)
        angle = 0.0 if ddx >= 0 else 180.0
    else:
        reach = owner_bounds.hh + offset
        pos = QPointF(owner.cx, owner.cy + (reach if ddy >= 0 else -reach))
        angle = 90.0 if ddy >= 0 else -90.0
    return DirectionArrow(owner.id, pos, angle)


def is_bidirectional(owner: ComponentInstance) -> bool:
    """最小功率為負值代表雙向；NaN 視為單向"""
    value = owner.data.get('p_min_pu', 0.0)
    try:
        return float(value) < 0
    except (TypeError, ValueError):
        return False


class ConnectionRouter:
    """
    匯流排連線路由器

    不做增量更新：任何位置、旋轉或連接埠變更都呼叫 route_all 重新計算全部路徑。
    """

    def __init__(self, node_base_length: float = NODE_BASE_LENGTH,
                 node_growth: float = NODE_GROWTH, arrow_offset: float = ARROW_OFFSET):
        self.node_base_length = node_base_length
        self.node_growth = node_growth
        self.arrow_offset = arrow_offset

    def measure(self, entities: Sequence[ComponentInstance],
                fan_in: Dict[str, int]) -> Dict[str, Bounds]:
        """依連線數量測所有可見元件外框"""
        result = {}
        for inst in entities:
            if not inst.definition.is_visual:
                continue
            count = fan_in.get(inst.name, 0) if inst.definition.is_node else 0
            result[inst.id] = bounding_box(inst, count, self.node_base_length, self.node_growth)
        return result

    def route_all(self, entities: Sequence[ComponentInstance]) -> RoutingResult:
        """
        重新計算所有路徑

        Args:
            entities: 場景中的所有元件（順序即繪製順序）

        Returns:
            RoutingResult
        """
        graph = build_topology(entities)
        fan_in = fan_in_counts(graph)
        bounds = self.measure(entities, fan_in)
        index = build_node_index(entities)
        result = RoutingResult(bounds=bounds, fan_in=fan_in, graph=graph)

        for inst in entities:
            definition = inst.definition
            if not definition.port_keys:
                continue
            if definition.category is ComponentCategory.BRANCH:
                self._route_branch(inst, index, bounds, result)
            else:
                for port, name in inst.ports():
                    node = index.get(name) if name else None
                    if node is None:
                        continue
                    points = orthogonal_path(node, bounds[node.id], inst, bounds[inst.id])
                    result.connections.append(
                        Connection(inst.id, node.id, port, points, points[0], definition.dash)
                    )

        logger.debug("路由完成：%d 條路徑，%d 個箭頭", len(result.connections), len(result.arrows))
        return result

    def _route_branch(self, inst: ComponentInstance, index: Dict[str, ComponentInstance],
                      bounds: Dict[str, Bounds], result: RoutingResult) -> None:
        definition = inst.definition
        key0, key1 = definition.port_keys[0], definition.port_keys[1]
        name0 = inst.data.get(key0, '')
        name1 = inst.data.get(key1, '')
        node0 = index.get(name0) if name0 else None
        node1 = index.get(name1) if name1 else None

        # node0 → 元件
        if node0 is not None:
            points = orthogonal_path(node0, bounds[node0.id], inst, bounds[inst.id])
            result.connections.append(
                Connection(inst.id, node0.id, key0, points, points[0], definition.dash)
            )

        # 元件 → node1
        if node1 is not None:
            points = orthogonal_path(node1, bounds[node1.id], inst, bounds[inst.id])
            points.reverse()
            result.connections.append(
                Connection(inst.id, node1.id, key1, points, points[-1], definition.dash)
            )

            if definition.directed and not is_bidirectional(inst):
                result.arrows.append(
                    direction_arrow(inst, bounds[inst.id], node1, self.arrow_offset)
                )


def arrow_polygon(arrow: DirectionArrow) -> List[QPointF]:
    """箭頭三角形的世界座標頂點"""
    rad = math.radians(arrow.angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    result = []
    for px, py in ((6.0, 0.0), (-4.0, -4.0), (-4.0, 4.0)):
        result.append(QPointF(arrow.pos.x() + px * cos_a - py * sin_a,
                              arrow.pos.y() + px * sin_a + py * cos_a))
    return result
