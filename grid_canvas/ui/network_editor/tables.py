"""場景資料的表格檢視

以 pandas DataFrame 呈現元件清單與匯流排關聯矩陣，供狀態列與匯出使用。
"""

from __future__ import annotations

import logging
from typing import Iterable, List

import pandas as pd

from .components import ComponentInstance

logger = logging.getLogger(__name__)

FRAME_COLUMNS = ['id', 'type', 'category', 'name', 'cx', 'cy', 'rotation', 'bus0', 'bus1']


def component_frame(entities: Iterable[ComponentInstance]) -> pd.DataFrame:
    """
    每個元件一列

    單埠元件的 bus 欄位放在 bus0；沒有連接埠的欄位為空字串。
    """
    rows = []
    for inst in entities:
        ports = [name for _key, name in inst.ports()]
        rows.append({
            'id': inst.id,
            'type': inst.type,
            'category': inst.definition.category.value,
            'name': inst.name,
            'cx': inst.cx,
            'cy': inst.cy,
            'rotation': inst.rotation,
            'bus0': ports[0] if len(ports) > 0 else '',
            'bus1': ports[1] if len(ports) > 1 else '',
        })
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def incidence_matrix(entities: Iterable[ComponentInstance]) -> pd.DataFrame:
    """
    建立匯流排 × 元件關聯矩陣

    列為匯流排名稱，欄為有連接埠的元件名稱；引用次數寫入對應格。
    指向不存在匯流排的引用不列入。
    """
    entities = list(entities)
    buses: List[str] = []
    for inst in entities:
        if inst.definition.is_node and inst.name not in buses:
            buses.append(inst.name)
    consumers = [inst for inst in entities if inst.definition.port_keys]

    matrix = pd.DataFrame(0, index=buses, columns=[c.name for c in consumers], dtype=int)
    for col, inst in enumerate(consumers):
        for _key, name in inst.ports():
            if name in buses:
                matrix.iloc[buses.index(name), col] += 1
    return matrix


def component_summary(entities: Iterable[ComponentInstance]) -> str:
    """狀態列文字：可見元件數，有載體定義時附加載體數"""
    frame = component_frame(entities)
    carriers = int((frame['type'] == 'Carrier').sum())
    text = f"{len(frame) - carriers} components"
    if carriers > 0:
        text += f" | {carriers} carriers"
    return text


def export_incidence_csv(entities: Iterable[ComponentInstance], path: str) -> None:
    """匯出關聯矩陣 CSV（utf-8-sig 讓 Excel 正確顯示）"""
    incidence_matrix(entities).to_csv(path, encoding="utf-8-sig")
    logger.info("已匯出關聯矩陣：%s", path)
