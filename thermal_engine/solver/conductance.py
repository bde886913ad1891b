"""
Conductance Evaluator
=====================

Instantaneous heat flow through a conductor.

Sign convention: a positive flow moves heat from ``node_from`` to
``node_to``. Radiation always uses the full fourth-power exchange;
``linearized_conductance`` exists only for reporting.
"""

import numpy as np

from ..core.network import Conductor, ConductorKind

STEFAN_BOLTZMANN = 5.670374419e-8  # W/(m^2 K^4)


def heat_pipe_conductance(conductor: Conductor, temperature: float) -> float:
    """
    Heat pipe conductance at ``temperature``.

    Linear interpolation in ``conductance_data``; the end values are held
    outside the table and exact table temperatures return the table value.
    """
    temps = [p[0] for p in conductor.conductance_data]
    values = [p[1] for p in conductor.conductance_data]
    return float(np.interp(temperature, temps, values))


def heat_pipe_reference_temperature(t_from: float, t_to: float) -> float:
    """Heat pipes are evaluated at their hotter end."""
    return max(t_from, t_to)


def radiation_coefficient(conductor: Conductor) -> float:
    """sigma * eps * A * F [W/K^4]."""
    return STEFAN_BOLTZMANN * conductor.emissivity * conductor.area * conductor.view_factor


def conductor_heat_flow(conductor: Conductor, t_from: float, t_to: float) -> float:
    """
    Heat flow from ``node_from`` to ``node_to`` [W].

    Args:
        conductor: Conductor definition
        t_from: Temperature of ``node_from`` [K]
        t_to: Temperature of ``node_to`` [K]
    """
    kind = conductor.kind
    if kind in (ConductorKind.LINEAR, ConductorKind.CONTACT):
        return conductor.conductance * (t_from - t_to)
    if kind == ConductorKind.RADIATION:
        return radiation_coefficient(conductor) * (t_from**4 - t_to**4)
    if kind == ConductorKind.HEAT_PIPE:
        g = heat_pipe_conductance(conductor, heat_pipe_reference_temperature(t_from, t_to))
        return g * (t_from - t_to)
    raise ValueError(f"Unknown conductor kind: {kind}")


def linearized_conductance(conductor: Conductor, t_from: float, t_to: float) -> float:
    """
    Equivalent linear conductance ``Q / (T_from - T_to)`` [W/K] for display.

    For radiation this is ``sigma eps A F (T1^2 + T2^2)(T1 + T2)``, which
    reproduces the fourth-power flow exactly at the given temperatures only.
    """
    kind = conductor.kind
    if kind in (ConductorKind.LINEAR, ConductorKind.CONTACT):
        return float(conductor.conductance)
    if kind == ConductorKind.RADIATION:
        return radiation_coefficient(conductor) * (t_from**2 + t_to**2) * (t_from + t_to)
    if kind == ConductorKind.HEAT_PIPE:
        return heat_pipe_conductance(conductor, heat_pipe_reference_temperature(t_from, t_to))
    raise ValueError(f"Unknown conductor kind: {kind}")
