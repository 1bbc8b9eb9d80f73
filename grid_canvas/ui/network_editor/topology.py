"""以名稱引用建立的網路拓撲圖

節點為匯流排名稱與元件 id，每個連接埠引用為一條邊。
使用 MultiGraph 讓同一元件兩端接同一匯流排時計為兩條連線。
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

import networkx as nx

from .components import ComponentInstance

NODE_KIND = 'node'
COMPONENT_KIND = 'component'


def node_key(name: str) -> Tuple[str, str]:
    return (NODE_KIND, name)


def build_node_index(entities: Iterable[ComponentInstance]) -> Dict[str, ComponentInstance]:
    """名稱 → 匯流排實例；名稱重複時以先出現者為準"""
    index: Dict[str, ComponentInstance] = {}
    for inst in entities:
        if inst.definition.is_node and inst.name not in index:
            index[inst.name] = inst
    return index


def build_topology(entities: Iterable[ComponentInstance]) -> nx.MultiGraph:
    """
    建立拓撲圖

    Args:
        entities: 場景中的所有元件實例

    Returns:
        MultiGraph；節點屬性 exists 表示該名稱是否對應到實際匯流排
    """
    graph = nx.MultiGraph()
    entities = list(entities)

    for inst in entities:
        if inst.definition.is_node:
            key = node_key(inst.name)
            if key not in graph:
                graph.add_node(key, kind=NODE_KIND, exists=True, instance_id=inst.id)

    for inst in entities:
        port_keys = inst.definition.port_keys
        if not port_keys:
            continue
        graph.add_node((COMPONENT_KIND, inst.id), kind=COMPONENT_KIND, type=inst.type)
        for port, name in inst.ports():
            if not name:
                continue
            key = node_key(name)
            if key not in graph:
                # 懸空引用：名稱不存在於場景
                graph.add_node(key, kind=NODE_KIND, exists=False, instance_id=None)
            graph.add_edge((COMPONENT_KIND, inst.id), key, port=port)

    return graph


def fan_in_counts(graph: nx.MultiGraph) -> Dict[str, int]:
    """每個匯流排名稱的連線數（MultiGraph 度數）"""
    return {
        key[1]: graph.degree(key)
        for key, attrs in graph.nodes(data=True)
        if attrs.get('kind') == NODE_KIND
    }


def dangling_references(graph: nx.MultiGraph) -> List[Tuple[str, str, str]]:
    """
    列出無法解析的引用

    Returns:
        [(元件 id, 欄位, 匯流排名稱), ...]
    """
    result = []
    for key, attrs in graph.nodes(data=True):
        if attrs.get('kind') != NODE_KIND or attrs.get('exists'):
            continue
        for _, neighbor, edge_attrs in graph.edges(key, data=True):
            result.append((neighbor[1], edge_attrs['port'], key[1]))
    return sorted(result)
