"""編輯器設定

集中管理網格、縮放、歷史紀錄與互動門檻等常數，
由 NetworkScene 與 CanvasView 共用。
"""

from dataclasses import dataclass


@dataclass
class EditorSettings:
    """場景引擎的可調參數"""

    grid_size: float = 20.0          # 網格間距（世界座標）
    min_zoom: float = 0.15
    max_zoom: float = 4.0
    zoom_step: float = 1.1           # 滾輪每格縮放倍率
    history_capacity: int = 50       # 撤銷環形緩衝容量
    min_region_size: float = 20.0    # 新區域兩邊都必須大於此值
    min_resize: float = 40.0         # 調整區域大小時的最小邊長
    handle_size: float = 8.0         # 區域角落把手大小
    hit_padding: float = 10.0        # 元件點擊判定外擴距離
    arrow_offset: float = 14.0       # 方向箭頭與元件邊緣的距離
    node_base_length: float = 40.0   # 匯流排基本半長
    node_growth: float = 18.0        # 每多一條連線增加的半長
    viewport_width: int = 800
    viewport_height: int = 600
