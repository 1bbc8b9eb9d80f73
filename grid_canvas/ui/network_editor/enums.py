from enum import Enum


class EditorState(Enum):
    """編輯器狀態枚舉（同一時間只會有一種暫態）"""
    IDLE = "idle"
    PANNING = "panning"
    DRAGGING_INSTANCE = "dragging_instance"
    DRAGGING_REGION = "dragging_region"
    RESIZING_REGION = "resizing_region"
    DRAWING_REGION = "drawing_region"
    PLACING = "placing"


class ComponentCategory(Enum):
    """元件類別枚舉"""
    DEFINITION = "definition"
    NODE = "node"
    ONE_PORT = "one-port"
    BRANCH = "branch"


class ResizeCorner(Enum):
    """區域調整把手位置"""
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"
