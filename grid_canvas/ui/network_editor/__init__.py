"""網路圖編輯器模組化架構

主要入口為 NetworkEditor 主視窗，場景邏輯集中在 NetworkScene。

模組結構：
- main_editor.py: NetworkEditor 主視窗
- scene.py: NetworkScene 場景控制器與手勢狀態機
- view.py: CanvasView 畫布組件
- components.py: 元件型別目錄、實例、區域與工廠
- commands.py: 命令模式相關類
- history.py: HistoryManager 快照式撤銷/重做
- handles.py: RegionHandles 區域調整把手
- routing.py: ConnectionRouter 正交連線路由
- topology.py: networkx 拓撲圖與連線數
- geom_snap.py: 座標轉換、網格對齊與外框計算
- tables.py: pandas 表格檢視與匯出
- config.py: EditorSettings 編輯器設定
- enums.py: 枚舉定義
"""

from .enums import EditorState, ComponentCategory, ResizeCorner
from .config import EditorSettings
from .components import (
    COMPONENT_TYPES, DEFAULT_CARRIERS, PALETTE_GROUPS,
    AttributeDef, ComponentType, ComponentInstance, Region, ComponentFactory,
    GridCanvasError, UnknownComponentTypeError, get_type, coerce_value
)
from .geom_snap import ViewTransform, Bounds, snap, snap_to_grid, bounding_box
from .routing import ConnectionRouter, RoutingResult, Connection, DirectionArrow, edge_point
from .commands import (
    Command, PlaceComponentCommand, AddCarrierCommand, DeleteComponentCommand,
    RenameCommand, SetAttributeCommand, MoveComponentCommand, RotateCommand,
    AddRegionCommand, UpdateRegionCommand, DeleteRegionCommand, ClearSceneCommand
)
from .handles import RegionHandles
from .history import HistoryManager
from .scene import NetworkScene
from .view import CanvasView
from .main_editor import NetworkEditor

__all__ = [
    # 主要類別
    'NetworkEditor', 'NetworkScene', 'CanvasView', 'HistoryManager', 'EditorSettings',

    # 枚舉
    'EditorState', 'ComponentCategory', 'ResizeCorner',

    # 元件模型
    'COMPONENT_TYPES', 'DEFAULT_CARRIERS', 'PALETTE_GROUPS',
    'AttributeDef', 'ComponentType', 'ComponentInstance', 'Region', 'ComponentFactory',
    'GridCanvasError', 'UnknownComponentTypeError', 'get_type', 'coerce_value',

    # 幾何與路由
    'ViewTransform', 'Bounds', 'snap', 'snap_to_grid', 'bounding_box',
    'ConnectionRouter', 'RoutingResult', 'Connection', 'DirectionArrow', 'edge_point',
    'RegionHandles',

    # 命令模式
    'Command', 'PlaceComponentCommand', 'AddCarrierCommand', 'DeleteComponentCommand',
    'RenameCommand', 'SetAttributeCommand', 'MoveComponentCommand', 'RotateCommand',
    'AddRegionCommand', 'UpdateRegionCommand', 'DeleteRegionCommand', 'ClearSceneCommand',
]
