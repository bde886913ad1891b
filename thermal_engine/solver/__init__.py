"""
Solver Module
=============

Network assembly, integrators and the simulator facade.
"""

from .conductance import conductor_heat_flow, linearized_conductance, STEFAN_BOLTZMANN
from .energy_balance import EnergyBalanceReport, check_energy_balance, energy_balance
from .integrators import BackwardEuler, RK4Integrator, RichardsonRK4
from .simulator import ThermalSimulator, run_simulation
from .steady_state import SteadyStateSolver
from .thermal_network import ThermalNetworkModel
from .transient import ImplicitEulerSolver, TransientSolver, transient_solver

__all__ = [
    'conductor_heat_flow',
    'linearized_conductance',
    'STEFAN_BOLTZMANN',
    'EnergyBalanceReport',
    'check_energy_balance',
    'energy_balance',
    'BackwardEuler',
    'RK4Integrator',
    'RichardsonRK4',
    'ThermalSimulator',
    'run_simulation',
    'SteadyStateSolver',
    'ThermalNetworkModel',
    'ImplicitEulerSolver',
    'TransientSolver',
    'transient_solver',
]
