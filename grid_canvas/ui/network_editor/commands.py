from __future__ import annotations

import math
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional

from .components import ComponentInstance, Region, coerce_value, parse_float

if TYPE_CHECKING:
    from .scene import NetworkScene


class Command:
    """
    場景變更命令基類

    所有結構性變更都包成命令交給 NetworkScene.executeCommand 執行，
    由場景統一處理重新路由、通知與歷史紀錄。撤銷由快照完成，命令不需要 undo。
    """
    description = "command"

    def __init__(self, scene: NetworkScene):
        self.scene = scene

    def execute(self) -> bool:
        """執行變更；回傳 False 表示沒有任何改變"""
        raise NotImplementedError


class PlaceComponentCommand(Command):
    """放置新元件，並自動指定最近的匯流排"""
    description = "place"

    def __init__(self, scene: NetworkScene, type_name: str, cx: float, cy: float,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(scene)
        self.type_name = type_name
        self.cx = cx
        self.cy = cy
        # 屬性覆寫另外存放；Bus.x/y 與 Line.x 等欄位名稱會和位置參數衝突
        self.data = dict(data or {})
        self.instance: Optional[ComponentInstance] = None

    def execute(self) -> bool:
        inst = self.scene.factory.create(self.type_name, cx=self.cx, cy=self.cy, **self.data)
        for port, name in inst.ports():
            if name:
                continue
            nearest = self.scene.nearestNode(self.cx, self.cy)
            if nearest is not None:
                inst.data[port] = nearest.name
        self.scene.entities.append(inst)
        self.instance = inst
        return True


class AddCarrierCommand(Command):
    """新增載體定義（不在畫布上繪製）"""
    description = "add carrier"

    def __init__(self, scene: NetworkScene, name: Optional[str] = None):
        super().__init__(scene)
        self.name = name
        self.instance: Optional[ComponentInstance] = None

    def execute(self) -> bool:
        overrides = {'name': self.name} if self.name else {}
        self.instance = self.scene.factory.create('Carrier', **overrides)
        self.scene.entities.append(self.instance)
        return True


class DeleteComponentCommand(Command):
    """刪除元件（不連帶刪除引用它的元件）"""
    description = "delete"

    def __init__(self, scene: NetworkScene, entity_id: str):
        super().__init__(scene)
        self.entity_id = entity_id

    def execute(self) -> bool:
        before = len(self.scene.entities)
        self.scene.entities[:] = [e for e in self.scene.entities if e.id != self.entity_id]
        return len(self.scene.entities) != before


class RenameCommand(Command):
    """改名；既有引用保持舊名稱"""
    description = "rename"

    def __init__(self, scene: NetworkScene, entity_id: str, name: str):
        super().__init__(scene)
        self.entity_id = entity_id
        self.name = name

    def execute(self) -> bool:
        inst = self.scene.getEntity(self.entity_id)
        if inst is None or inst.data.get('name') == self.name:
            return False
        inst.data['name'] = self.name
        return True


class SetAttributeCommand(Command):
    """設定單一屬性，輸入值依型別轉換"""
    description = "set attribute"

    def __init__(self, scene: NetworkScene, entity_id: str, key: str, raw: Any):
        super().__init__(scene)
        self.entity_id = entity_id
        self.key = key
        self.raw = raw

    def execute(self) -> bool:
        inst = self.scene.getEntity(self.entity_id)
        if inst is None:
            return False
        attr = inst.definition.attr(self.key)
        if attr is None:
            return False
        value = coerce_value(attr, self.raw)
        old = inst.data.get(self.key)
        if _same_value(old, value):
            return False
        inst.data[self.key] = value

        # 指定的載體若尚未定義則自動建立
        if attr.kind == 'carrier' and value and self.scene.findCarrier(value) is None:
            self.scene.entities.append(self.scene.factory.create('Carrier', name=value))
        return True


class MoveComponentCommand(Command):
    """移動元件到對齊網格後的位置"""
    description = "move"

    def __init__(self, scene: NetworkScene, entity_id: str, x: float, y: float):
        super().__init__(scene)
        self.entity_id = entity_id
        self.x = x
        self.y = y

    def execute(self) -> bool:
        inst = self.scene.getEntity(self.entity_id)
        if inst is None or not inst.definition.is_visual:
            return False
        x, y = self.scene.snap(self.x, self.y)
        if (inst.cx, inst.cy) == (x, y):
            return False
        inst.cx, inst.cy = x, y
        return True


class RotateCommand(Command):
    """旋轉匯流排 90 度（其他型別不處理）"""
    description = "rotate"

    def __init__(self, scene: NetworkScene, entity_id: str):
        super().__init__(scene)
        self.entity_id = entity_id

    def execute(self) -> bool:
        inst = self.scene.getEntity(self.entity_id)
        if inst is None or not inst.definition.is_node:
            return False
        inst.rotation = (inst.rotation + 90) % 360
        return True


class AddRegionCommand(Command):
    """新增標註區域"""
    description = "add region"

    def __init__(self, scene: NetworkScene, x: float, y: float, w: float, h: float):
        super().__init__(scene)
        self.rect = (x, y, w, h)
        self.region: Optional[Region] = None

    def execute(self) -> bool:
        x, y, w, h = self.rect
        self.region = Region(
            id=f"region_{uuid.uuid4().hex[:12]}",
            name=f"Zone {len(self.scene.regions) + 1}",
            x=x, y=y, w=w, h=h,
        )
        self.scene.regions.append(self.region)
        return True


class UpdateRegionCommand(Command):
    """更新區域名稱、顏色、透明度或位置大小"""
    description = "update region"

    FIELDS = ('name', 'x', 'y', 'w', 'h', 'fillColor', 'opacity', 'borderColor')

    def __init__(self, scene: NetworkScene, region_id: str, **fields: Any):
        super().__init__(scene)
        self.region_id = region_id
        self.fields = {k: v for k, v in fields.items() if k in self.FIELDS}

    def execute(self) -> bool:
        region = self.scene.getRegion(self.region_id)
        if region is None:
            return False
        changed = False
        for key, value in self.fields.items():
            if key == 'opacity':
                value = parse_float(value)
                if math.isnan(value):
                    continue
                value = min(1.0, max(0.0, value))
            elif key in ('w', 'h'):
                value = parse_float(value)
                if not (value > 0 and math.isfinite(value)):
                    continue
            elif key in ('x', 'y'):
                value = parse_float(value)
                if not math.isfinite(value):
                    continue
            else:
                value = str(value)
            if getattr(region, key) != value:
                setattr(region, key, value)
                changed = True
        return changed


class DeleteRegionCommand(Command):
    """刪除標註區域"""
    description = "delete region"

    def __init__(self, scene: NetworkScene, region_id: str):
        super().__init__(scene)
        self.region_id = region_id

    def execute(self) -> bool:
        before = len(self.scene.regions)
        self.scene.regions[:] = [r for r in self.scene.regions if r.id != self.region_id]
        return len(self.scene.regions) != before


class ClearSceneCommand(Command):
    """清空所有元件與區域"""
    description = "clear"

    def execute(self) -> bool:
        self.scene.entities.clear()
        self.scene.regions.clear()
        return True


def _same_value(a: Any, b: Any) -> bool:
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return type(a) is type(b) and a == b


__all__ = [
    'Command', 'PlaceComponentCommand', 'AddCarrierCommand', 'DeleteComponentCommand',
    'RenameCommand', 'SetAttributeCommand', 'MoveComponentCommand', 'RotateCommand',
    'AddRegionCommand', 'UpdateRegionCommand', 'DeleteRegionCommand', 'ClearSceneCommand',
]
