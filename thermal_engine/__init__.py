"""
Thermal Engine
==============

Spacecraft thermal-network simulation engine.

A run is a pure function of its inputs:
``run_simulation(NetworkSnapshot, SimulationConfig) -> ResultSnapshot``.

Components:
- Network model (diffusion, arithmetic and boundary nodes)
- Orbital environment (solar, albedo and Earth IR fluxes, eclipse)
- Conductance evaluation (linear, contact, radiation, heat pipe)
- Transient (adaptive RK4) and steady-state (Newton) solvers
- Monte Carlo radiative view factors
- Energy balance validation
- Sensitivity, design-space and failure-mode analysis
"""

__version__ = "1.0.0"

from .core.config import SimulationConfig, OrbitalConfig, create_transient_config, create_steady_config
from .core.errors import (
    ThermalEngineError,
    ValidationError,
    ConvergenceError,
    SolverTimeoutError,
    NumericalInstabilityError,
    WorkerError,
)
from .core.network import NetworkSnapshot, Node, Conductor, HeatLoad, Material
from .core.results import ResultSnapshot
from .solver.simulator import ThermalSimulator, run_simulation

__all__ = [
    'SimulationConfig',
    'OrbitalConfig',
    'create_transient_config',
    'create_steady_config',
    'ThermalEngineError',
    'ValidationError',
    'ConvergenceError',
    'SolverTimeoutError',
    'NumericalInstabilityError',
    'WorkerError',
    'NetworkSnapshot',
    'Node',
    'Conductor',
    'HeatLoad',
    'Material',
    'ResultSnapshot',
    'ThermalSimulator',
    'run_simulation',
]
