"""
Thermal Network Model
=====================

Immutable value types describing a lumped-parameter thermal network.

A snapshot is built once by the caller and never modified by the engine;
perturbed copies are produced with ``dataclasses.replace``.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from .config import OrbitalConfig


class NodeKind(Enum):
    """Thermal node kind."""
    DIFFUSION = 'diffusion'
    ARITHMETIC = 'arithmetic'
    BOUNDARY = 'boundary'


class ConductorKind(Enum):
    """Conductor coupling kind."""
    LINEAR = 'linear'
    RADIATION = 'radiation'
    CONTACT = 'contact'
    HEAT_PIPE = 'heat_pipe'


class HeatLoadKind(Enum):
    """Heat load kind."""
    CONSTANT = 'constant'
    TIME_VARYING = 'time_varying'
    ORBITAL = 'orbital'


class SurfaceType(Enum):
    """Orientation class of a surface receiving orbital flux."""
    SOLAR = 'solar'
    EARTH_FACING = 'earth_facing'
    ANTI_EARTH = 'anti_earth'
    CUSTOM = 'custom'


# (time [s] or temperature [K], value) pairs
Table = Tuple[Tuple[float, float], ...]


def _as_table(pairs: Optional[Iterable]) -> Table:
    if pairs is None:
        return ()
    return tuple((float(a), float(b)) for a, b in pairs)


def interpolate_table(table: Table, x: float) -> float:
    """
    Piecewise-linear lookup, clamped to the first/last value outside the table.

    Args:
        table: Ordered (x, value) pairs
        x: Query abscissa

    Returns:
        Interpolated value
    """
    xs = [p[0] for p in table]
    ys = [p[1] for p in table]
    return float(np.interp(x, xs, ys))


@dataclass(frozen=True)
class Material:
    """Material properties referenced by nodes."""
    id: str
    name: str = ""
    density: float = 0.0                # kg/m^3
    specific_heat: float = 0.0          # J/(kg K)
    conductivity: float = 0.0           # W/(m K)
    absorptivity: Optional[float] = None
    emissivity: Optional[float] = None


@dataclass(frozen=True)
class Node:
    """Thermal node."""
    id: str
    kind: NodeKind
    temperature: float
    capacitance: Optional[float] = None      # J/K, diffusion only
    boundary_temp: Optional[float] = None    # K, boundary only
    boundary_schedule: Table = ()            # optional (time, K) pairs
    name: str = ""
    area: Optional[float] = None
    mass: Optional[float] = None
    absorptivity: Optional[float] = None
    emissivity: Optional[float] = None
    material_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'kind', NodeKind(self.kind))
        object.__setattr__(self, 'boundary_schedule', _as_table(self.boundary_schedule))

    @property
    def label(self) -> str:
        return self.name or self.id

    def boundary_temperature_at(self, t: float) -> float:
        """Fixed temperature of a boundary node at time ``t``."""
        if self.boundary_schedule:
            return interpolate_table(self.boundary_schedule, t)
        return float(self.boundary_temp)


@dataclass(frozen=True)
class Conductor:
    """Thermal coupling between two nodes."""
    id: str
    kind: ConductorKind
    node_from: str
    node_to: str
    conductance: Optional[float] = None      # W/K, linear/contact
    area: Optional[float] = None             # m^2, radiation
    view_factor: Optional[float] = None      # radiation
    emissivity: Optional[float] = None       # radiation
    conductance_data: Table = ()             # (K, W/K), heat_pipe
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'kind', ConductorKind(self.kind))
        object.__setattr__(self, 'conductance_data', _as_table(self.conductance_data))

    @property
    def label(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class OrbitalLoadParams:
    """Surface description for an orbital heat load."""
    surface_type: SurfaceType
    absorptivity: float
    emissivity: float
    area: float
    surface_normal: Optional[Tuple[float, float, float]] = None  # body frame

    def __post_init__(self):
        object.__setattr__(self, 'surface_type', SurfaceType(self.surface_type))
        if self.surface_normal is not None:
            object.__setattr__(self, 'surface_normal', tuple(float(c) for c in self.surface_normal))


@dataclass(frozen=True)
class HeatLoad:
    """External or internal heat applied to a node."""
    id: str
    node_id: str
    kind: HeatLoadKind
    value: Optional[float] = None            # W, constant
    time_values: Table = ()                  # (s, W), time_varying
    orbital_params: Optional[OrbitalLoadParams] = None
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'kind', HeatLoadKind(self.kind))
        object.__setattr__(self, 'time_values', _as_table(self.time_values))


@dataclass(frozen=True)
class NetworkSnapshot:
    """
    Complete, immutable input network for one run.

    Lookups by id are linear scans; networks are small compared with the
    cost of a single run.
    """
    nodes: Tuple[Node, ...]
    conductors: Tuple[Conductor, ...] = ()
    heat_loads: Tuple[HeatLoad, ...] = ()
    materials: Tuple[Material, ...] = ()
    orbital: Optional[OrbitalConfig] = None

    def __post_init__(self):
        object.__setattr__(self, 'nodes', tuple(self.nodes))
        object.__setattr__(self, 'conductors', tuple(self.conductors))
        object.__setattr__(self, 'heat_loads', tuple(self.heat_loads))
        object.__setattr__(self, 'materials', tuple(self.materials))

    def node(self, node_id: str) -> Node:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(f"Unknown node: {node_id}")

    def conductor(self, conductor_id: str) -> Conductor:
        for conductor in self.conductors:
            if conductor.id == conductor_id:
                return conductor
        raise KeyError(f"Unknown conductor: {conductor_id}")

    def heat_load(self, load_id: str) -> HeatLoad:
        for load in self.heat_loads:
            if load.id == load_id:
                return load
        raise KeyError(f"Unknown heat load: {load_id}")

    def material(self, material_id: str) -> Material:
        for material in self.materials:
            if material.id == material_id:
                return material
        raise KeyError(f"Unknown material: {material_id}")

    def node_names(self) -> Dict[str, str]:
        return {n.id: n.label for n in self.nodes}

    def replace_node(self, node: Node) -> 'NetworkSnapshot':
        """Return a copy with the node of the same id swapped for ``node``."""
        self.node(node.id)
        return replace(self, nodes=tuple(node if n.id == node.id else n for n in self.nodes))

    def replace_conductor(self, conductor: Conductor) -> 'NetworkSnapshot':
        self.conductor(conductor.id)
        return replace(self, conductors=tuple(
            conductor if c.id == conductor.id else c for c in self.conductors))

    def replace_heat_load(self, load: HeatLoad) -> 'NetworkSnapshot':
        self.heat_load(load.id)
        return replace(self, heat_loads=tuple(
            load if h.id == load.id else h for h in self.heat_loads))


def capacitance_from_material(mass: float, material: Material) -> float:
    """Lumped capacitance ``m * cp`` [J/K]."""
    return float(mass) * float(material.specific_heat)


__all__ = [
    'NodeKind',
    'ConductorKind',
    'HeatLoadKind',
    'SurfaceType',
    'Material',
    'Node',
    'Conductor',
    'OrbitalLoadParams',
    'HeatLoad',
    'NetworkSnapshot',
    'interpolate_table',
    'capacitance_from_material',
]
