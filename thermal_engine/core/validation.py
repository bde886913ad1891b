"""
Network Validation
==================

Structural checks run before any integration starts.
"""

import math
from collections import Counter
from typing import List

from .errors import ValidationError
from .network import (
    ConductorKind,
    HeatLoadKind,
    NetworkSnapshot,
    NodeKind,
    SurfaceType,
)


def _finite(value) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)


def _unit_interval(value) -> bool:
    return _finite(value) and 0.0 <= value <= 1.0


def _duplicates(ids) -> List[str]:
    return sorted(i for i, count in Counter(ids).items() if count > 1)


def _check_nodes(snapshot: NetworkSnapshot, problems: List[str]):
    material_ids = {m.id for m in snapshot.materials}

    for node in snapshot.nodes:
        where = f"node '{node.id}'"
        if not _finite(node.temperature) or node.temperature < 0:
            problems.append(f"{where}: temperature must be a finite value >= 0 K")

        if node.kind == NodeKind.DIFFUSION:
            if not _finite(node.capacitance) or node.capacitance <= 0:
                problems.append(f"{where}: diffusion node requires capacitance > 0")
        elif node.capacitance not in (None, 0, 0.0):
            problems.append(f"{where}: {node.kind.value} node must not carry capacitance")

        if node.kind == NodeKind.BOUNDARY:
            if node.boundary_schedule:
                _check_table(node.boundary_schedule, where, "boundary_schedule", problems,
                             strictly_increasing=False, positive_values=True)
            elif not _finite(node.boundary_temp) or node.boundary_temp < 0:
                problems.append(f"{where}: boundary node requires boundary_temp >= 0 K")
        elif node.boundary_temp is not None or node.boundary_schedule:
            problems.append(f"{where}: only boundary nodes carry a boundary temperature")

        for prop in ('absorptivity', 'emissivity'):
            value = getattr(node, prop)
            if value is not None and not _unit_interval(value):
                problems.append(f"{where}: {prop} must lie in [0, 1]")
        for prop in ('area', 'mass'):
            value = getattr(node, prop)
            if value is not None and (not _finite(value) or value < 0):
                problems.append(f"{where}: {prop} must be >= 0")

        if node.material_id is not None and node.material_id not in material_ids:
            problems.append(f"{where}: unknown material '{node.material_id}'")


def _check_table(table, where: str, label: str, problems: List[str],
                 strictly_increasing: bool, positive_values: bool):
    if len(table) < 2:
        problems.append(f"{where}: {label} needs at least 2 points")
        return
    xs = [p[0] for p in table]
    ys = [p[1] for p in table]
    if not all(_finite(x) for x in xs) or not all(_finite(y) for y in ys):
        problems.append(f"{where}: {label} contains non-finite values")
        return
    steps = [b - a for a, b in zip(xs, xs[1:])]
    if strictly_increasing and any(s <= 0 for s in steps):
        problems.append(f"{where}: {label} must have strictly increasing, unique abscissae")
    elif not strictly_increasing and any(s < 0 for s in steps):
        problems.append(f"{where}: {label} must be ordered by time")
    if positive_values and any(y <= 0 for y in ys):
        problems.append(f"{where}: {label} values must be > 0")


# Fields that belong to each conductor kind
_CONDUCTOR_FIELDS = {
    ConductorKind.LINEAR: {'conductance'},
    ConductorKind.CONTACT: {'conductance'},
    ConductorKind.RADIATION: {'area', 'view_factor', 'emissivity'},
    ConductorKind.HEAT_PIPE: {'conductance_data'},
}
_ALL_CONDUCTOR_FIELDS = set().union(*_CONDUCTOR_FIELDS.values())


def _check_conductors(snapshot: NetworkSnapshot, problems: List[str]):
    node_ids = {n.id for n in snapshot.nodes}

    for conductor in snapshot.conductors:
        where = f"conductor '{conductor.id}'"
        for endpoint in (conductor.node_from, conductor.node_to):
            if endpoint not in node_ids:
                problems.append(f"{where}: dangling endpoint '{endpoint}'")
        if conductor.node_from == conductor.node_to:
            problems.append(f"{where}: self-loop on '{conductor.node_from}'")

        expected = _CONDUCTOR_FIELDS[conductor.kind]
        for name in sorted(_ALL_CONDUCTOR_FIELDS - expected):
            value = getattr(conductor, name)
            if value not in (None, ()):
                problems.append(f"{where}: field '{name}' not allowed on {conductor.kind.value} conductor")

        if conductor.kind in (ConductorKind.LINEAR, ConductorKind.CONTACT):
            if not _finite(conductor.conductance) or conductor.conductance < 0:
                problems.append(f"{where}: conductance must be >= 0 W/K")
        elif conductor.kind == ConductorKind.RADIATION:
            if not _finite(conductor.area) or conductor.area <= 0:
                problems.append(f"{where}: radiation area must be > 0")
            if not _unit_interval(conductor.view_factor):
                problems.append(f"{where}: view_factor must lie in [0, 1]")
            if not _unit_interval(conductor.emissivity):
                problems.append(f"{where}: emissivity must lie in [0, 1]")
        else:
            _check_table(conductor.conductance_data, where, "conductance_data", problems,
                         strictly_increasing=True, positive_values=True)


def _check_heat_loads(snapshot: NetworkSnapshot, problems: List[str]):
    node_ids = {n.id for n in snapshot.nodes}

    for load in snapshot.heat_loads:
        where = f"heat load '{load.id}'"
        if load.node_id not in node_ids:
            problems.append(f"{where}: unknown node '{load.node_id}'")

        if load.kind == HeatLoadKind.CONSTANT:
            if not _finite(load.value):
                problems.append(f"{where}: constant load requires a finite value")
        elif load.kind == HeatLoadKind.TIME_VARYING:
            _check_table(load.time_values, where, "time_values", problems,
                         strictly_increasing=False, positive_values=False)
            if any(_finite(t) and t < 0 for t, _ in load.time_values):
                problems.append(f"{where}: time_values times must be >= 0")
        else:
            params = load.orbital_params
            if params is None:
                problems.append(f"{where}: orbital load requires orbital_params")
                continue
            if snapshot.orbital is None:
                problems.append(f"{where}: orbital load requires an orbital configuration")
            if not _unit_interval(params.absorptivity):
                problems.append(f"{where}: absorptivity must lie in [0, 1]")
            if not _unit_interval(params.emissivity):
                problems.append(f"{where}: emissivity must lie in [0, 1]")
            if not _finite(params.area) or params.area < 0:
                problems.append(f"{where}: area must be >= 0")
            if params.surface_normal is not None:
                if params.surface_type != SurfaceType.CUSTOM:
                    problems.append(f"{where}: surface_normal only applies to custom surfaces")
                elif (len(params.surface_normal) != 3
                      or not all(_finite(c) for c in params.surface_normal)
                      or math.sqrt(sum(c * c for c in params.surface_normal)) == 0.0):
                    problems.append(f"{where}: surface_normal must be a non-zero 3-vector")


def network_problems(snapshot: NetworkSnapshot) -> List[str]:
    """Return every structural problem found in ``snapshot``."""
    problems: List[str] = []

    if not snapshot.nodes:
        problems.append("network has no nodes")
    for label, items in (("node", snapshot.nodes), ("conductor", snapshot.conductors),
                         ("heat load", snapshot.heat_loads), ("material", snapshot.materials)):
        for dup in _duplicates(item.id for item in items):
            problems.append(f"duplicate {label} id '{dup}'")

    _check_nodes(snapshot, problems)
    _check_conductors(snapshot, problems)
    _check_heat_loads(snapshot, problems)
    return problems


def validate_network(snapshot: NetworkSnapshot):
    """
    Reject malformed networks before integration.

    Raises:
        ValidationError: listing every problem found
    """
    problems = network_problems(snapshot)
    if problems:
        raise ValidationError(problems)
