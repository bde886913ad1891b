"""
Model Parameters
================

Addressing and perturbing individual numeric properties of a snapshot.

Every change returns a new snapshot; the input is never modified.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Mapping, Tuple, Union

from ..core.errors import ValidationError
from ..core.network import ConductorKind, HeatLoadKind, NetworkSnapshot, NodeKind


class EntityType(Enum):
    """Kind of entity a parameter belongs to."""
    NODE = 'node'
    CONDUCTOR = 'conductor'
    HEAT_LOAD = 'heat_load'


ALLOWED_PROPERTIES = {
    EntityType.NODE: ('absorptivity', 'emissivity', 'capacitance', 'mass', 'area',
                      'temperature', 'boundary_temp'),
    EntityType.CONDUCTOR: ('conductance', 'view_factor', 'emissivity', 'area'),
    EntityType.HEAT_LOAD: ('value',),
}

# Valid range of each property, as enforced by network validation
PROPERTY_BOUNDS = {
    'absorptivity': (0.0, 1.0),
    'emissivity': (0.0, 1.0),
    'view_factor': (0.0, 1.0),
    'capacitance': (0.0, math.inf),
    'mass': (0.0, math.inf),
    'area': (0.0, math.inf),
    'temperature': (0.0, math.inf),
    'boundary_temp': (0.0, math.inf),
    'conductance': (0.0, math.inf),
    'value': (-math.inf, math.inf),
}


@dataclass(frozen=True)
class ParameterRef:
    """Identifies one numeric property, e.g. ``node:battery:capacitance``."""
    entity_type: EntityType
    entity_id: str
    property: str

    def __post_init__(self):
        object.__setattr__(self, 'entity_type', EntityType(self.entity_type))
        if self.property not in ALLOWED_PROPERTIES[self.entity_type]:
            raise ValidationError(
                f"property '{self.property}' not supported for {self.entity_type.value}; "
                f"allowed: {', '.join(ALLOWED_PROPERTIES[self.entity_type])}")

    @property
    def key(self) -> str:
        return f"{self.entity_type.value}:{self.entity_id}:{self.property}"

    @property
    def bounds(self) -> Tuple[float, float]:
        return PROPERTY_BOUNDS[self.property]

    @classmethod
    def parse(cls, key: str) -> 'ParameterRef':
        """Inverse of ``key``."""
        parts = key.split(':')
        if len(parts) != 3:
            raise ValidationError(f"parameter key '{key}' must be 'entity_type:entity_id:property'")
        return cls(EntityType(parts[0]), parts[1], parts[2])

    def __str__(self) -> str:
        return self.key


ParamLike = Union[ParameterRef, str]


def as_ref(param: ParamLike) -> ParameterRef:
    return param if isinstance(param, ParameterRef) else ParameterRef.parse(param)


def _entity(snapshot: NetworkSnapshot, ref: ParameterRef):
    try:
        if ref.entity_type == EntityType.NODE:
            return snapshot.node(ref.entity_id)
        if ref.entity_type == EntityType.CONDUCTOR:
            return snapshot.conductor(ref.entity_id)
        return snapshot.heat_load(ref.entity_id)
    except KeyError as e:
        raise ValidationError(f"parameter {ref.key}: {e.args[0]}") from e


def get_value(snapshot: NetworkSnapshot, param: ParamLike) -> float:
    """Current value of a parameter."""
    ref = as_ref(param)
    value = getattr(_entity(snapshot, ref), ref.property)
    if value is None:
        raise ValidationError(f"parameter {ref.key} is not set on this entity")
    return float(value)


def set_values(snapshot: NetworkSnapshot, values: Mapping[ParamLike, float]) -> NetworkSnapshot:
    """
    Copy of ``snapshot`` with the given parameters set to absolute values.

    Raises:
        ValidationError: unknown entity or a property that is unset on it
    """
    updated = snapshot
    for param, value in values.items():
        ref = as_ref(param)
        entity = _entity(updated, ref)
        if getattr(entity, ref.property) is None:
            raise ValidationError(f"parameter {ref.key} is not set on this entity")
        changed = replace(entity, **{ref.property: float(value)})
        if ref.entity_type == EntityType.NODE:
            updated = updated.replace_node(changed)
        elif ref.entity_type == EntityType.CONDUCTOR:
            updated = updated.replace_conductor(changed)
        else:
            updated = updated.replace_heat_load(changed)
    return updated


def apply_deltas(snapshot: NetworkSnapshot, deltas: Mapping[ParamLike, float]) -> NetworkSnapshot:
    """Copy of ``snapshot`` with each parameter shifted by its delta."""
    return set_values(snapshot, {
        param: get_value(snapshot, param) + delta for param, delta in deltas.items()
    })


def collect_parameters(snapshot: NetworkSnapshot) -> List[ParameterRef]:
    """
    Default set of tracked parameters for a network.

    Surface optical properties and capacitance of diffusion nodes,
    conductance of linear/contact conductors, view factor of radiation
    conductors and the value of constant heat loads.
    """
    params = []
    for node in snapshot.nodes:
        if node.kind == NodeKind.BOUNDARY:
            continue
        for prop in ('absorptivity', 'emissivity', 'capacitance'):
            if getattr(node, prop) is not None:
                params.append(ParameterRef(EntityType.NODE, node.id, prop))
    for conductor in snapshot.conductors:
        if conductor.kind in (ConductorKind.LINEAR, ConductorKind.CONTACT):
            params.append(ParameterRef(EntityType.CONDUCTOR, conductor.id, 'conductance'))
        elif conductor.kind == ConductorKind.RADIATION:
            params.append(ParameterRef(EntityType.CONDUCTOR, conductor.id, 'view_factor'))
    for load in snapshot.heat_loads:
        if load.kind == HeatLoadKind.CONSTANT:
            params.append(ParameterRef(EntityType.HEAT_LOAD, load.id, 'value'))
    return params
