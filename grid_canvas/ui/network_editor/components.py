"""元件型別定義與實例工廠

PyPSA 元件目錄：每個型別包含有序屬性清單、預設值、連接埠欄位與類別。
實例以名稱（非物件參考）指向匯流排，刪除或改名都不會連帶修改引用。
"""

from __future__ import annotations

import copy
import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .enums import ComponentCategory

INF = math.inf
NAN = math.nan

DEFAULT_CARRIERS = ['AC', 'DC', 'heat', 'gas', 'hydrogen', 'oil', 'biomass', 'co2', 'water']

_FLOAT_PREFIX = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')
_INT_PREFIX = re.compile(r'^[+-]?\d+')


class GridCanvasError(Exception):
    """場景引擎錯誤基類"""


class UnknownComponentTypeError(GridCanvasError, KeyError):
    """建立未註冊元件型別時拋出（程式錯誤，非使用者輸入錯誤）"""


@dataclass(frozen=True)
class AttributeDef:
    """單一屬性定義"""
    key: str
    kind: str                   # string / float / int / bool / select / bus / carrier
    default: Any
    label: str
    essential: bool = False
    required: bool = False
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ComponentType:
    """元件型別定義"""
    name: str
    category: ComponentCategory
    label: str
    icon: str
    attrs: Tuple[AttributeDef, ...]
    port_keys: Tuple[str, ...] = ()
    bounds: Tuple[float, float] = (20.0, 20.0)   # (半寬, 半高)
    dash: Tuple[float, ...] = ()
    directed: bool = False

    @property
    def is_node(self) -> bool:
        return self.category is ComponentCategory.NODE

    @property
    def is_visual(self) -> bool:
        return self.category is not ComponentCategory.DEFINITION

    def attr(self, key: str) -> Optional[AttributeDef]:
        for a in self.attrs:
            if a.key == key:
                return a
        return None


def _a(key, kind, default, label, essential=False, required=False, options=()):
    return AttributeDef(key, kind, default, label, essential, required, tuple(options))


def _name():
    return _a('name', 'string', '', 'Name', required=True)


def _bus(key='bus', label='Bus'):
    return _a(key, 'bus', '', label, required=True)


_CONTROL = ('PQ', 'PV', 'Slack')

COMPONENT_TYPES: Dict[str, ComponentType] = {
    'Carrier': ComponentType(
        'Carrier', ComponentCategory.DEFINITION, 'Carrier', 'Cr',
        attrs=(
            _name(),
            _a('co2_emissions', 'float', 0.0, 'CO2 Emissions (t/MWh)', essential=True),
            _a('nice_name', 'string', '', 'Nice Name'),
            _a('color', 'string', '', 'Color (hex)'),
            _a('max_growth', 'float', INF, 'Max Growth'),
            _a('max_relative_growth', 'float', INF, 'Max Relative Growth'),
        ),
    ),
    'Bus': ComponentType(
        'Bus', ComponentCategory.NODE, 'Bus', '--',
        attrs=(
            _name(),
            _a('v_nom', 'float', 1.0, 'Nominal Voltage (kV)'),
            _a('carrier', 'carrier', 'AC', 'Carrier', essential=True),
            _a('x', 'float', 0.0, 'Longitude (x)'),
            _a('y', 'float', 0.0, 'Latitude (y)'),
            _a('control', 'select', 'PQ', 'Control', options=_CONTROL),
        ),
        bounds=(40.0, 4.0),
    ),
    'Generator': ComponentType(
        'Generator', ComponentCategory.ONE_PORT, 'Generator', 'G~',
        attrs=(
            _name(),
            _bus(),
            _a('carrier', 'carrier', '', 'Carrier'),
            _a('type', 'string', '', 'Type'),
            _a('p_nom', 'float', 0.0, 'Nominal Power (MW)', essential=True),
            _a('p_nom_extendable', 'bool', False, 'P Nom Extendable'),
            _a('p_nom_min', 'float', 0.0, 'P Nom Min (MW)'),
            _a('p_nom_max', 'float', INF, 'P Nom Max (MW)'),
            _a('p_min_pu', 'float', 0.0, 'P Min (p.u.)'),
            _a('p_max_pu', 'float', 1.0, 'P Max (p.u.)'),
            _a('p_set', 'float', 0.0, 'P Set (MW)', essential=True),
            _a('q_set', 'float', 0.0, 'Q Set (MVar)'),
            _a('sign', 'float', 1.0, 'Sign'),
            _a('marginal_cost', 'float', 0.0, 'Marginal Cost', essential=True),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
            _a('efficiency', 'float', 1.0, 'Efficiency'),
            _a('committable', 'bool', False, 'Committable'),
            _a('min_up_time', 'int', 0, 'Min Up Time (snapshots)'),
            _a('min_down_time', 'int', 0, 'Min Down Time (snapshots)'),
            _a('ramp_limit_up', 'float', NAN, 'Ramp Up Limit (p.u.)'),
            _a('ramp_limit_down', 'float', NAN, 'Ramp Down Limit (p.u.)'),
            _a('start_up_cost', 'float', 0.0, 'Start-Up Cost'),
            _a('shut_down_cost', 'float', 0.0, 'Shut-Down Cost'),
            _a('control', 'select', 'PQ', 'Control', options=_CONTROL),
        ),
        port_keys=('bus',),
        bounds=(16.0, 16.0),
    ),
    'Load': ComponentType(
        'Load', ComponentCategory.ONE_PORT, 'Load', 'Ld',
        attrs=(
            _name(),
            _bus(),
            _a('carrier', 'carrier', '', 'Carrier'),
            _a('type', 'string', '', 'Type'),
            _a('p_set', 'float', 0.0, 'P Set (MW)', essential=True),
            _a('q_set', 'float', 0.0, 'Q Set (MVar)'),
            _a('sign', 'float', -1.0, 'Sign'),
        ),
        port_keys=('bus',),
        bounds=(12.0, 20.0),
    ),
    'StorageUnit': ComponentType(
        'StorageUnit', ComponentCategory.ONE_PORT, 'Storage Unit', 'SU',
        attrs=(
            _name(),
            _bus(),
            _a('carrier', 'carrier', '', 'Carrier'),
            _a('type', 'string', '', 'Type'),
            _a('p_nom', 'float', 0.0, 'Nominal Power (MW)', essential=True),
            _a('p_nom_extendable', 'bool', False, 'P Nom Extendable'),
            _a('p_nom_min', 'float', 0.0, 'P Nom Min (MW)'),
            _a('p_nom_max', 'float', INF, 'P Nom Max (MW)'),
            _a('p_min_pu', 'float', -1.0, 'P Min (p.u.)'),
            _a('p_max_pu', 'float', 1.0, 'P Max (p.u.)'),
            _a('max_hours', 'float', 6.0, 'Max Hours (h)', essential=True),
            _a('efficiency_store', 'float', 1.0, 'Charging Efficiency'),
            _a('efficiency_dispatch', 'float', 1.0, 'Discharging Efficiency'),
            _a('standing_loss', 'float', 0.0, 'Standing Loss (1/h)'),
            _a('state_of_charge_initial', 'float', 0.0, 'Initial SOC (MWh)'),
            _a('cyclic_state_of_charge', 'bool', False, 'Cyclic SOC'),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
            _a('marginal_cost', 'float', 0.0, 'Marginal Cost', essential=True),
            _a('inflow', 'float', 0.0, 'Inflow (MW)'),
            _a('sign', 'float', 1.0, 'Sign'),
            _a('spill_cost', 'float', 0.0, 'Spill Cost'),
        ),
        port_keys=('bus',),
        bounds=(16.0, 12.0),
    ),
    'Store': ComponentType(
        'Store', ComponentCategory.ONE_PORT, 'Store', 'St',
        attrs=(
            _name(),
            _bus(),
            _a('carrier', 'carrier', '', 'Carrier'),
            _a('type', 'string', '', 'Type'),
            _a('e_nom', 'float', 0.0, 'Nominal Energy (MWh)', essential=True),
            _a('e_nom_extendable', 'bool', False, 'E Nom Extendable'),
            _a('e_nom_min', 'float', 0.0, 'E Nom Min (MWh)'),
            _a('e_nom_max', 'float', INF, 'E Nom Max (MWh)'),
            _a('e_initial', 'float', 0.0, 'Initial Energy (MWh)'),
            _a('e_cyclic', 'bool', False, 'Cyclic Energy'),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
            _a('marginal_cost', 'float', 0.0, 'Marginal Cost', essential=True),
            _a('standing_loss', 'float', 0.0, 'Standing Loss (1/h)'),
            _a('sign', 'float', 1.0, 'Sign'),
        ),
        port_keys=('bus',),
        bounds=(14.0, 12.0),
    ),
    'ShuntImpedance': ComponentType(
        'ShuntImpedance', ComponentCategory.ONE_PORT, 'Shunt Impedance', 'SI',
        attrs=(
            _name(),
            _bus(),
            _a('g', 'float', 0.0, 'Conductance (S)', essential=True),
            _a('b', 'float', 0.0, 'Susceptance (S)', essential=True),
            _a('sign', 'float', 1.0, 'Sign'),
        ),
        port_keys=('bus',),
        bounds=(10.0, 20.0),
    ),
    'Line': ComponentType(
        'Line', ComponentCategory.BRANCH, 'Line', '--',
        attrs=(
            _name(),
            _bus('bus0', 'Bus0 (from)'),
            _bus('bus1', 'Bus1 (to)'),
            _a('carrier', 'carrier', 'AC', 'Carrier'),
            _a('type', 'string', '', 'Standard Type'),
            _a('r', 'float', 0.0, 'Resistance (p.u.)'),
            _a('x', 'float', 0.0, 'Reactance (p.u.)', essential=True),
            _a('b', 'float', 0.0, 'Susceptance (p.u.)'),
            _a('g', 'float', 0.0, 'Conductance (p.u.)'),
            _a('s_nom', 'float', 0.0, 'Nominal Power (MVA)', essential=True),
            _a('s_nom_extendable', 'bool', False, 'S Nom Extendable'),
            _a('s_nom_min', 'float', 0.0, 'S Nom Min (MVA)'),
            _a('s_nom_max', 'float', INF, 'S Nom Max (MVA)'),
            _a('length', 'float', 1.0, 'Length (km)'),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
            _a('num_parallel', 'float', 1.0, 'Parallel Lines'),
            _a('terrain_factor', 'float', 1.0, 'Terrain Factor'),
        ),
        port_keys=('bus0', 'bus1'),
        bounds=(20.0, 6.0),
    ),
    'Link': ComponentType(
        'Link', ComponentCategory.BRANCH, 'Link', '->',
        attrs=(
            _name(),
            _bus('bus0', 'Bus0 (from)'),
            _bus('bus1', 'Bus1 (to)'),
            _a('carrier', 'carrier', '', 'Carrier'),
            _a('type', 'string', '', 'Type'),
            _a('p_nom', 'float', 0.0, 'Nominal Power (MW)', essential=True),
            _a('p_nom_extendable', 'bool', False, 'P Nom Extendable'),
            _a('p_nom_min', 'float', 0.0, 'P Nom Min (MW)'),
            _a('p_nom_max', 'float', INF, 'P Nom Max (MW)'),
            _a('p_min_pu', 'float', 0.0, 'P Min (p.u.) [-1=bidir]'),
            _a('p_max_pu', 'float', 1.0, 'P Max (p.u.)'),
            _a('efficiency', 'float', 1.0, 'Efficiency', essential=True),
            _a('marginal_cost', 'float', 0.0, 'Marginal Cost'),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
            _a('length', 'float', 1.0, 'Length (km)'),
        ),
        port_keys=('bus0', 'bus1'),
        bounds=(10.0, 10.0),
        dash=(6.0, 3.0),
        directed=True,
    ),
    'Transformer': ComponentType(
        'Transformer', ComponentCategory.BRANCH, 'Transformer', 'Tr',
        attrs=(
            _name(),
            _bus('bus0', 'Bus0 (HV)'),
            _bus('bus1', 'Bus1 (LV)'),
            _a('type', 'string', '', 'Standard Type'),
            _a('model', 'select', 't', 'Model', options=('t', 'pi')),
            _a('r', 'float', 0.0, 'Resistance (p.u.)'),
            _a('x', 'float', 0.0, 'Reactance (p.u.)', essential=True),
            _a('g', 'float', 0.0, 'Conductance (p.u.)'),
            _a('b', 'float', 0.0, 'Susceptance (p.u.)'),
            _a('s_nom', 'float', 0.0, 'Nominal Power (MVA)', essential=True),
            _a('s_nom_extendable', 'bool', False, 'S Nom Extendable'),
            _a('s_nom_min', 'float', 0.0, 'S Nom Min (MVA)'),
            _a('s_nom_max', 'float', INF, 'S Nom Max (MVA)'),
            _a('tap_ratio', 'float', 1.0, 'Tap Ratio'),
            _a('phase_shift', 'float', 0.0, 'Phase Shift'),
            _a('capital_cost', 'float', 0.0, 'Capital Cost'),
        ),
        port_keys=('bus0', 'bus1'),
        bounds=(20.0, 12.0),
        dash=(3.0, 2.0),
    ),
}

# 調色盤分組順序
PALETTE_GROUPS = {
    'Definitions': ['Carrier'],
    'Nodes': ['Bus'],
    'One-Port': ['Generator', 'Load', 'StorageUnit', 'Store', 'ShuntImpedance'],
    'Branches': ['Line', 'Link', 'Transformer'],
}


def get_type(type_name: str) -> ComponentType:
    """取得型別定義，未註冊型別直接拋出錯誤"""
    try:
        return COMPONENT_TYPES[type_name]
    except KeyError:
        raise UnknownComponentTypeError(f"Unknown component type: {type_name}") from None


@dataclass
class ComponentInstance:
    """場景中的元件實例"""
    id: str
    type: str
    data: Dict[str, Any]
    cx: float = 0.0
    cy: float = 0.0
    rotation: int = 0

    @property
    def name(self) -> str:
        return self.data.get('name', '')

    @property
    def definition(self) -> ComponentType:
        return get_type(self.type)

    def ports(self) -> List[Tuple[str, str]]:
        """回傳 (欄位, 匯流排名稱) 列表，包含尚未指定的空字串"""
        return [(key, self.data.get(key, '')) for key in self.definition.port_keys]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'data': copy.deepcopy(self.data),
            'cx': self.cx,
            'cy': self.cy,
            'rotation': self.rotation,
        }

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> ComponentInstance:
        definition = get_type(state['type'])
        data = {a.key: a.default for a in definition.attrs}
        # 只保留型別宣告的欄位
        for key, value in state.get('data', {}).items():
            if key in data:
                data[key] = copy.deepcopy(value)
        return cls(
            id=state['id'],
            type=state['type'],
            data=data,
            cx=float(state.get('cx', 0.0)),
            cy=float(state.get('cy', 0.0)),
            rotation=normalize_rotation(state.get('rotation', 0)),
        )


@dataclass
class Region:
    """自由矩形標註區域（與拓撲無關）"""
    id: str
    name: str
    x: float
    y: float
    w: float
    h: float
    fillColor: str = '#dc3232'
    opacity: float = 0.08
    borderColor: str = '#cc3333'

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.w and self.y <= y <= self.y + self.h

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'x': self.x,
            'y': self.y,
            'w': self.w,
            'h': self.h,
            'fillColor': self.fillColor,
            'opacity': self.opacity,
            'borderColor': self.borderColor,
        }

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> Region:
        return cls(
            id=state['id'],
            name=state.get('name', ''),
            x=float(state['x']),
            y=float(state['y']),
            w=float(state['w']),
            h=float(state['h']),
            fillColor=state.get('fillColor', '#dc3232'),
            opacity=min(1.0, max(0.0, float(state.get('opacity', 0.08)))),
            borderColor=state.get('borderColor', '#cc3333'),
        )


@dataclass
class ComponentFactory:
    """元件工廠，持有各型別的自動命名計數器"""
    counters: Dict[str, int] = field(default_factory=dict)

    def reset(self) -> None:
        """重設自動命名計數器"""
        self.counters.clear()

    def auto_name(self, type_name: str) -> str:
        self.counters[type_name] = self.counters.get(type_name, 0) + 1
        return f"{type_name}_{self.counters[type_name]}"

    def create(self, type_name: str, cx: Optional[float] = None, cy: Optional[float] = None,
               rotation: int = 0, **data: Any) -> ComponentInstance:
        """
        建立新元件實例

        Args:
            type_name: 型別名稱
            cx, cy: 世界座標位置（未指定時為 200, 200）
            rotation: 旋轉角度
            **data: 覆寫的屬性值

        Returns:
            新的 ComponentInstance

        Raises:
            UnknownComponentTypeError: 型別未註冊
        """
        definition = get_type(type_name)
        values = {a.key: a.default for a in definition.attrs}
        values['name'] = data.pop('name', None) or self.auto_name(type_name)
        for key, value in data.items():
            if key in values:
                values[key] = value
        return ComponentInstance(
            id=str(uuid.uuid4()),
            type=type_name,
            data=values,
            cx=200.0 if cx is None else float(cx),
            cy=200.0 if cy is None else float(cy),
            rotation=normalize_rotation(rotation),
        )


def parse_float(raw: Any) -> float:
    """寬鬆的浮點數轉換：'inf' → 無限大，空字串或無法解析 → NaN，其餘取最長數字前綴"""
    if isinstance(raw, (bool, int, float)):
        return float(raw)
    text = str(raw).strip()
    if text.lower() in ('inf', '+inf', 'infinity'):
        return INF
    if text.lower() in ('-inf', '-infinity'):
        return -INF
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(0)) if match else NAN


def normalize_rotation(value: Any) -> int:
    """取最近的 90 度倍數並落在 0..270；無法解析時為 0"""
    angle = parse_float(value)
    if not math.isfinite(angle):
        return 0
    return int(math.floor(angle / 90 + 0.5)) * 90 % 360


def coerce_value(attr: AttributeDef, raw: Any) -> Any:
    """
    將屬性表單輸入轉為欄位型別，無效輸入不拋錯

    - float：'inf' → 無限大，空字串 → NaN，其餘取最長數字前綴
    - int：取整數前綴，失敗為 0
    - bool：真值判斷
    - select：不在選項內時回到預設值
    """
    if attr.kind == 'float':
        return parse_float(raw)
    if attr.kind == 'int':
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return int(raw) if math.isfinite(raw) else 0
        match = _INT_PREFIX.match(str(raw).strip())
        return int(match.group(0)) if match else 0
    if attr.kind == 'bool':
        if isinstance(raw, str):
            return raw.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(raw)
    if attr.kind == 'select':
        value = str(raw)
        return value if value in attr.options else attr.default
    return '' if raw is None else str(raw)
