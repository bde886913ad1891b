"""
Steady-State Solver
===================

Equilibrium temperatures by Newton iteration on the nodal heat balance.
"""

import time
from typing import Callable, Optional

import numpy as np
from scipy.sparse import linalg as sparse_linalg

from ..core.config import SimulationConfig
from ..core.errors import ConvergenceError, NumericalInstabilityError, SolverTimeoutError
from ..core.results import (
    ConductorFlowResult,
    EnergyLedger,
    NodeResult,
    ResultSnapshot,
    RunStatus,
)
from ..utils.logger import get_logger
from .thermal_network import ThermalNetworkModel


class SteadyStateSolver:
    """
    Implicit equilibrium solve.

    Each iteration linearizes every conductor at the current temperatures
    (exact fourth-power derivative for radiation, heat pipe conductance
    re-read at the hotter end) and solves the sparse system for all
    diffusion and arithmetic nodes at once. Converged when the largest
    temperature update is below ``tolerance``.
    """

    # Largest update applied in one iteration [K]
    MAX_UPDATE_K = 200.0

    def __init__(self,
                 model: ThermalNetworkModel,
                 config: SimulationConfig,
                 progress_callback: Optional[Callable[[float, str], None]] = None):
        self.model = model
        self.config = config
        self.progress_callback = progress_callback
        self.logger = get_logger()
        self.history = []

    def solve(self) -> ResultSnapshot:
        cfg = self.config
        model = self.model
        free = model.free_idx
        n_free = len(free)
        position = model.free_positions()

        T = model.initial_temperatures.copy()
        if len(model.bnd_idx):
            T[model.bnd_idx] = model.boundary_temperatures(cfg.time_start)
        loads = model.loads.steady_loads(cfg.time_start)

        change = 0.0
        converged = n_free == 0
        iteration = 0
        wall_start = time.perf_counter()
        while not converged:
            iteration += 1
            if iteration > cfg.max_iterations:
                raise ConvergenceError(
                    f"steady state not converged after {cfg.max_iterations} iterations "
                    f"(last max dT={change:.3e} K, tolerance {cfg.tolerance:g} K)",
                    iterations=cfg.max_iterations,
                    residual=change,
                )
            if cfg.max_wall_time is not None and time.perf_counter() - wall_start > cfg.max_wall_time:
                raise SolverTimeoutError(
                    f"wall-clock limit of {cfg.max_wall_time:g}s exceeded after {iteration - 1} iterations",
                    iterations=iteration - 1,
                    residual=change,
                )

            residual = model.net_heat(T, loads)[free]
            J = model.net_heat_jacobian(T, position)
            isolated = np.flatnonzero(J.diagonal() == 0.0)
            if len(isolated):
                names = ', '.join(model.node_ids[free[i]] for i in isolated)
                raise NumericalInstabilityError(
                    f"singular heat balance: no conductance at node(s) {names}",
                    time=cfg.time_start, last_state=model.named(T))
            delta = np.atleast_1d(sparse_linalg.spsolve(J, -residual))
            if not np.all(np.isfinite(delta)):
                raise NumericalInstabilityError(
                    "singular heat balance: a node has no path to a boundary or is isolated",
                    time=cfg.time_start, last_state=model.named(T))

            largest = float(np.max(np.abs(delta)))
            if largest > self.MAX_UPDATE_K:
                delta *= self.MAX_UPDATE_K / largest
            old = T[free]
            T[free] = np.maximum(old + delta, 0.5 * old)
            change = float(np.max(np.abs(T[free] - old)))

            self.history.append(change)
            self.logger.log_convergence(iteration, change, cfg.tolerance)
            if self.progress_callback:
                self.progress_callback(iteration / cfg.max_iterations, f"iteration {iteration}")
            converged = change < cfg.tolerance

        return self._build_result(T, loads, iteration)

    def _build_result(self, T: np.ndarray, loads: np.ndarray, iterations: int) -> ResultSnapshot:
        model = self.model
        times = np.array([self.config.time_start])
        flows = model.flows(T)
        p_in, p_out = model.exchange_power(T, loads)
        return ResultSnapshot(
            status=RunStatus.COMPLETED,
            times=times,
            node_results={
                node_id: NodeResult(node_id, times.copy(), np.array([T[i]]))
                for i, node_id in enumerate(model.node_ids)
            },
            conductor_flows={
                cond_id: ConductorFlowResult(cond_id, times.copy(), np.array([flows[k]]))
                for k, cond_id in enumerate(model.conductor_ids)
            },
            ledger=EnergyLedger(times.copy(), np.array([p_in]), np.array([p_out]),
                                np.array([0.0]), steady=True),
            iterations=iterations,
            converged=True,
            diagnostics={'convergence_history': list(self.history)},
        )
