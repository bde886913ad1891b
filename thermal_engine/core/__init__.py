"""
Core Module
===========

Network data model, configuration, errors and results.
"""

from .config import (
    SimulationKind,
    SolverMethod,
    OrbitType,
    AttitudeMode,
    OrbitalConfig,
    SimulationConfig,
    create_transient_config,
    create_steady_config,
    create_leo_orbit,
    create_geo_orbit,
    create_heo_orbit,
)
from .errors import (
    ThermalEngineError,
    ValidationError,
    ConvergenceError,
    SolverTimeoutError,
    NumericalInstabilityError,
    WorkerError,
)
from .network import (
    NodeKind,
    ConductorKind,
    HeatLoadKind,
    SurfaceType,
    Material,
    Node,
    Conductor,
    OrbitalLoadParams,
    HeatLoad,
    NetworkSnapshot,
    capacitance_from_material,
)
from .results import RunStatus, ResultSnapshot, EnergyLedger, export_summary
from .serialization import snapshot_from_dict, snapshot_to_dict, config_from_dict, load_case
from .validation import validate_network, network_problems

__all__ = [
    'SimulationKind', 'SolverMethod', 'OrbitType', 'AttitudeMode', 'OrbitalConfig', 'SimulationConfig',
    'create_transient_config', 'create_steady_config',
    'create_leo_orbit', 'create_geo_orbit', 'create_heo_orbit',
    'ThermalEngineError', 'ValidationError', 'ConvergenceError', 'SolverTimeoutError',
    'NumericalInstabilityError', 'WorkerError',
    'NodeKind', 'ConductorKind', 'HeatLoadKind', 'SurfaceType',
    'Material', 'Node', 'Conductor', 'OrbitalLoadParams', 'HeatLoad', 'NetworkSnapshot',
    'capacitance_from_material',
    'RunStatus', 'ResultSnapshot', 'EnergyLedger', 'export_summary',
    'snapshot_from_dict', 'snapshot_to_dict', 'config_from_dict', 'load_case',
    'validate_network', 'network_problems',
]
