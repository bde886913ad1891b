"""
Snapshot Serialization
======================

Build network snapshots and configs from plain dictionaries (JSON documents
produced by the surrounding product) and back.

Keys are accepted in snake_case or camelCase.
"""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config import OrbitalConfig, SimulationConfig
from .errors import ValidationError
from .network import (
    Conductor,
    HeatLoad,
    Material,
    NetworkSnapshot,
    Node,
    OrbitalLoadParams,
)


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def _get(data: Mapping[str, Any], name: str, default=None):
    if name in data:
        return data[name]
    return data.get(_camel(name), default)


def _pairs(raw, x_key: str, y_key: str):
    """Accept [[x, y], ...] or [{x_key: .., y_key: ..}, ...]."""
    if not raw:
        return ()
    out = []
    for item in raw:
        if isinstance(item, Mapping):
            out.append((item[x_key], item[y_key]))
        else:
            x, y = item
            out.append((x, y))
    return tuple(out)


def _build(cls, data: Mapping[str, Any], **overrides):
    try:
        return cls(**overrides)
    except (TypeError, ValueError) as e:
        ident = _get(data, 'id', '?')
        raise ValidationError(f"{cls.__name__} '{ident}': {e}") from e


def node_from_dict(data: Mapping[str, Any]) -> Node:
    return _build(
        Node, data,
        id=str(data['id']),
        kind=_get(data, 'kind', _get(data, 'node_type')),
        temperature=_get(data, 'temperature'),
        capacitance=_get(data, 'capacitance'),
        boundary_temp=_get(data, 'boundary_temp'),
        boundary_schedule=_pairs(_get(data, 'boundary_schedule'), 'time', 'temperature'),
        name=_get(data, 'name', '') or '',
        area=_get(data, 'area'),
        mass=_get(data, 'mass'),
        absorptivity=_get(data, 'absorptivity'),
        emissivity=_get(data, 'emissivity'),
        material_id=_get(data, 'material_id'),
    )


def conductor_from_dict(data: Mapping[str, Any]) -> Conductor:
    return _build(
        Conductor, data,
        id=str(data['id']),
        kind=_get(data, 'kind', _get(data, 'type')),
        node_from=str(_get(data, 'node_from', data.get('from'))),
        node_to=str(_get(data, 'node_to', data.get('to'))),
        conductance=_get(data, 'conductance'),
        area=_get(data, 'area'),
        view_factor=_get(data, 'view_factor'),
        emissivity=_get(data, 'emissivity'),
        conductance_data=_pairs(_get(data, 'conductance_data'), 'temperature', 'conductance'),
        name=_get(data, 'name', '') or '',
    )


def heat_load_from_dict(data: Mapping[str, Any]) -> HeatLoad:
    raw_params = _get(data, 'orbital_params')
    params = None
    if raw_params:
        params = _build(
            OrbitalLoadParams, raw_params,
            surface_type=_get(raw_params, 'surface_type'),
            absorptivity=_get(raw_params, 'absorptivity'),
            emissivity=_get(raw_params, 'emissivity'),
            area=_get(raw_params, 'area'),
            surface_normal=_get(raw_params, 'surface_normal'),
        )
    return _build(
        HeatLoad, data,
        id=str(data['id']),
        node_id=str(_get(data, 'node_id')),
        kind=_get(data, 'kind', _get(data, 'load_type')),
        value=_get(data, 'value'),
        time_values=_pairs(_get(data, 'time_values'), 'time', 'value'),
        orbital_params=params,
        name=_get(data, 'name', '') or '',
    )


def material_from_dict(data: Mapping[str, Any]) -> Material:
    return _build(
        Material, data,
        id=str(data['id']),
        name=_get(data, 'name', '') or '',
        density=float(_get(data, 'density', 0.0)),
        specific_heat=float(_get(data, 'specific_heat', 0.0)),
        conductivity=float(_get(data, 'conductivity', 0.0)),
        absorptivity=_get(data, 'absorptivity'),
        emissivity=_get(data, 'emissivity'),
    )


def orbital_config_from_dict(data: Mapping[str, Any]) -> OrbitalConfig:
    kwargs = {}
    for name, alias in (('altitude_km', 'altitude'), ('inclination_deg', 'inclination'),
                        ('raan_deg', 'raan'), ('perigee_altitude_km', 'perigee_altitude'),
                        ('apogee_altitude_km', 'apogee_altitude')):
        value = _get(data, name, _get(data, alias))
        if value is not None:
            kwargs[name] = value
    for name in ('epoch', 'orbit_type', 'attitude'):
        value = _get(data, name)
        if value is not None:
            kwargs[name] = value
    try:
        return OrbitalConfig(**kwargs)
    except (TypeError, ValueError) as e:
        if isinstance(e, ValidationError):
            raise
        raise ValidationError(f"orbital config: {e}") from e


def config_from_dict(data: Mapping[str, Any]) -> SimulationConfig:
    kwargs = {}
    for name in ('kind', 'solver_method', 'time_start', 'time_end', 'time_step', 'min_step', 'max_step',
                 'output_interval', 'max_iterations', 'tolerance', 'max_steps',
                 'max_wall_time', 'arithmetic_max_iterations', 'arithmetic_tolerance'):
        value = _get(data, name)
        if value is not None:
            kwargs[name] = value
    if 'kind' not in kwargs and _get(data, 'simulation_type') is not None:
        kwargs['kind'] = _get(data, 'simulation_type')
    try:
        return SimulationConfig(**kwargs)
    except (TypeError, ValueError) as e:
        if isinstance(e, ValidationError):
            raise
        raise ValidationError(f"simulation config: {e}") from e


def snapshot_from_dict(data: Mapping[str, Any]) -> NetworkSnapshot:
    """Build a NetworkSnapshot from a dict with nodes/conductors/heatLoads/materials/orbital."""
    orbital = _get(data, 'orbital', _get(data, 'orbital_config'))
    return NetworkSnapshot(
        nodes=tuple(node_from_dict(n) for n in data.get('nodes', ())),
        conductors=tuple(conductor_from_dict(c) for c in data.get('conductors', ())),
        heat_loads=tuple(heat_load_from_dict(h) for h in _get(data, 'heat_loads', ())),
        materials=tuple(material_from_dict(m) for m in data.get('materials', ())),
        orbital=orbital_config_from_dict(orbital) if orbital else None,
    )


def _strip(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None and v != () and v != ''}


def snapshot_to_dict(snapshot: NetworkSnapshot) -> Dict[str, Any]:
    """Inverse of ``snapshot_from_dict`` (snake_case keys)."""
    def node(n: Node):
        return _strip({
            'id': n.id, 'kind': n.kind.value, 'temperature': n.temperature,
            'capacitance': n.capacitance, 'boundary_temp': n.boundary_temp,
            'boundary_schedule': [list(p) for p in n.boundary_schedule] or None,
            'name': n.name, 'area': n.area, 'mass': n.mass,
            'absorptivity': n.absorptivity, 'emissivity': n.emissivity,
            'material_id': n.material_id,
        })

    def conductor(c: Conductor):
        return _strip({
            'id': c.id, 'kind': c.kind.value, 'node_from': c.node_from, 'node_to': c.node_to,
            'conductance': c.conductance, 'area': c.area, 'view_factor': c.view_factor,
            'emissivity': c.emissivity,
            'conductance_data': [list(p) for p in c.conductance_data] or None,
            'name': c.name,
        })

    def load(h: HeatLoad):
        params = None
        if h.orbital_params is not None:
            p = h.orbital_params
            params = _strip({
                'surface_type': p.surface_type.value, 'absorptivity': p.absorptivity,
                'emissivity': p.emissivity, 'area': p.area,
                'surface_normal': list(p.surface_normal) if p.surface_normal else None,
            })
        return _strip({
            'id': h.id, 'node_id': h.node_id, 'kind': h.kind.value, 'value': h.value,
            'time_values': [list(p) for p in h.time_values] or None,
            'orbital_params': params, 'name': h.name,
        })

    out: Dict[str, Any] = {
        'nodes': [node(n) for n in snapshot.nodes],
        'conductors': [conductor(c) for c in snapshot.conductors],
        'heat_loads': [load(h) for h in snapshot.heat_loads],
        'materials': [_strip(asdict(m)) for m in snapshot.materials],
    }
    if snapshot.orbital is not None:
        o = snapshot.orbital
        out['orbital'] = _strip({
            'orbit_type': o.orbit_type.value, 'altitude_km': o.altitude_km,
            'inclination_deg': o.inclination_deg, 'raan_deg': o.raan_deg,
            'epoch': o.epoch.isoformat(), 'perigee_altitude_km': o.perigee_altitude_km,
            'apogee_altitude_km': o.apogee_altitude_km, 'attitude': o.attitude.value,
        })
    return out


def load_case(path: Union[str, Path]) -> Tuple[NetworkSnapshot, Optional[SimulationConfig]]:
    """
    Read a JSON case file holding ``network`` (or top-level network keys)
    and an optional ``config`` section.
    """
    data = json.loads(Path(path).read_text(encoding='utf-8'))
    network = data.get('network', data)
    raw_config = data.get('config')
    config = config_from_dict(raw_config) if raw_config else None
    return snapshot_from_dict(network), config
