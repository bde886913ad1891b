"""
Thermal Simulator
=================

Entry point turning a network snapshot and a configuration into a result.
"""

import itertools
import time
from typing import Callable, Optional

from ..core.config import SimulationConfig, SimulationKind
from ..core.errors import ConvergenceError, NumericalInstabilityError, ValidationError
from ..core.network import NetworkSnapshot
from ..core.results import ResultSnapshot, RunStatus
from ..core.validation import validate_network
from ..environment.orbital_environment import OrbitalEnvironment
from ..utils.logger import get_logger
from .energy_balance import energy_balance
from .steady_state import SteadyStateSolver
from .thermal_network import ThermalNetworkModel
from .transient import transient_solver

_run_counter = itertools.count(1)


class ThermalSimulator:
    """
    One run of the thermal engine.

    Validates the snapshot, assembles the network, dispatches to the
    transient or steady-state solver and checks the energy balance.
    ``status`` moves pending -> running -> completed or failed; failures are
    re-raised as typed errors after the status is set.
    """

    def __init__(self,
                 snapshot: NetworkSnapshot,
                 config: SimulationConfig,
                 environment: Optional[OrbitalEnvironment] = None,
                 progress_callback: Optional[Callable[[float, str], None]] = None):
        """
        Args:
            snapshot: Network to solve (never modified)
            config: Solver settings
            environment: Pre-built orbital environment to share between runs
            progress_callback: Called with (fraction, message) as the run advances
        """
        self.snapshot = snapshot
        self.config = config
        self.environment = environment
        self.progress_callback = progress_callback
        self.status = RunStatus.PENDING
        self.result: Optional[ResultSnapshot] = None
        self.error: Optional[Exception] = None
        self.run_id = f"run-{next(_run_counter)}"
        self.logger = get_logger()

    def run(self) -> ResultSnapshot:
        """
        Execute the run.

        Raises:
            ValidationError: malformed snapshot, before any integration
            ConvergenceError: steady state or relaxation budget exhausted
            NumericalInstabilityError: NaN/Inf or step collapse
        """
        try:
            validate_network(self.snapshot)
        except ValidationError as e:
            self._fail(e)
            raise

        self.status = RunStatus.RUNNING
        self.logger.start_run(self.run_id, {
            'kind': self.config.kind.value,
            'solver_method': self.config.solver_method.value,
            'nodes': len(self.snapshot.nodes),
            'conductors': len(self.snapshot.conductors),
            'heat_loads': len(self.snapshot.heat_loads),
        })
        start = time.perf_counter()

        try:
            model = ThermalNetworkModel(self.snapshot, self.config, self.environment)
            if self.config.kind == SimulationKind.STEADY:
                solver = SteadyStateSolver(model, self.config, self.progress_callback)
            else:
                solver = transient_solver(model, self.config, self.progress_callback)
            result = solver.solve()
        except (ConvergenceError, NumericalInstabilityError) as e:
            self._fail(e)
            self.logger.end_run(self.run_id, False, time.perf_counter() - start, str(e))
            raise

        report = energy_balance(result)
        result.energy_balance_error = report.relative_error
        result.diagnostics['wall_time_s'] = time.perf_counter() - start
        self.result = result
        self.status = RunStatus.COMPLETED
        self.logger.end_run(self.run_id, True, time.perf_counter() - start,
                            f"energy balance error {report.error_percent:.2e}%")
        return result

    def _fail(self, error: Exception):
        self.status = RunStatus.FAILED
        self.error = error
        self.result = ResultSnapshot(status=RunStatus.FAILED, error=f"{type(error).__name__}: {error}")


def run_simulation(snapshot: NetworkSnapshot,
                   config: SimulationConfig,
                   environment: Optional[OrbitalEnvironment] = None,
                   progress_callback: Optional[Callable[[float, str], None]] = None) -> ResultSnapshot:
    """
    Convenience function: run one simulation and return its result.

    Args:
        snapshot: Network to solve
        config: Solver settings
        environment: Optional shared orbital environment
        progress_callback: Optional (fraction, message) callback

    Returns:
        Completed ResultSnapshot
    """
    return ThermalSimulator(snapshot, config, environment, progress_callback).run()
