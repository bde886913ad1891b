"""
Transient Solver
================

Time marching of the thermal network on a fixed output grid.

Two schemes share the loop, budgets and energy ledger:
- ``TransientSolver``: explicit RK4 with Richardson step control
- ``ImplicitEulerSolver``: backward Euler with Newton iteration, for stiff
  networks (small capacitances behind large conductances)
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from ..core.config import SimulationConfig, SolverMethod
from ..core.errors import NumericalInstabilityError, SolverTimeoutError
from ..core.results import (
    ConductorFlowResult,
    EnergyLedger,
    NodeResult,
    ResultSnapshot,
    RunStatus,
)
from ..utils.logger import get_logger
from .integrators import BackwardEuler, RichardsonRK4
from .thermal_network import ThermalNetworkModel


def output_times(config: SimulationConfig) -> np.ndarray:
    """Multiples of ``output_interval`` from ``time_start``, plus ``time_end``."""
    n = int(np.floor(config.duration / config.output_interval + 1e-9))
    times = config.time_start + config.output_interval * np.arange(n + 1)
    if config.time_end - times[-1] > 1e-9 * max(1.0, abs(config.time_end)):
        times = np.append(times, config.time_end)
    else:
        times[-1] = config.time_end
    return times


@dataclass
class StepAttempt:
    """One step attempt in diffusion-node state space."""
    y: np.ndarray
    accepted: bool
    error: float                       # K; local error (RK4) or last Newton update
    y_mid: Optional[np.ndarray] = None
    iterations: int = 0


class TransientSolver:
    """
    Transient solve with Richardson step control.

    Steps are halved while the local error estimate exceeds ``tolerance``
    and doubled after a step whose error is below ``tolerance / 32``. Steps
    are shortened to land exactly on output times without changing the
    controller's step size.
    """

    # Error reduction needed before doubling (2^5 for a 4th order method)
    GROWTH_MARGIN = 32.0

    def __init__(self,
                 model: ThermalNetworkModel,
                 config: SimulationConfig,
                 progress_callback: Optional[Callable[[float, str], None]] = None):
        self.model = model
        self.config = config
        self.progress_callback = progress_callback
        self.stepper = RichardsonRK4(model.derivative)
        self.logger = get_logger()

        self.steps_accepted = 0
        self.steps_rejected = 0
        self.min_dt_used = np.inf
        self.max_dt_used = 0.0

    def _report(self, fraction: float, message: str):
        if self.progress_callback:
            self.progress_callback(fraction, message)

    def _attempt(self, t: float, y: np.ndarray, h: float) -> StepAttempt:
        step = self.stepper.attempt(t, y, h)
        return StepAttempt(y=step.y, accepted=step.error <= self.config.tolerance,
                           error=step.error, y_mid=step.y_mid)

    def _step_energy(self, t: float, h: float, attempt: StepAttempt,
                     start: Tuple[float, float], end: Tuple[float, float]) -> Tuple[float, float]:
        """Energy in and out over an accepted step, Simpson's rule."""
        T_mid, loads_mid = self.model.full_state(t + 0.5 * h, attempt.y_mid)
        pm_in, pm_out = self.model.exchange_power(T_mid, loads_mid)
        return (h / 6.0 * (start[0] + 4.0 * pm_in + end[0]),
                h / 6.0 * (start[1] + 4.0 * pm_out + end[1]))

    def _next_dt(self, dt: float, attempt: StepAttempt) -> float:
        if attempt.error < self.config.tolerance / self.GROWTH_MARGIN:
            return min(2.0 * dt, self.config.max_step)
        return dt

    def solve(self) -> ResultSnapshot:
        cfg = self.config
        model = self.model
        out_times = output_times(cfg)
        n_out = len(out_times)

        temps = np.zeros((n_out, model.n))
        flows = np.zeros((n_out, len(model.conductor_ids)))
        e_in = np.zeros(n_out)
        e_out = np.zeros(n_out)
        stored = np.zeros(n_out)

        t = cfg.time_start
        y = model.initial_state()
        dt = cfg.time_step
        T, loads = model.full_state(t, y)
        p_in, p_out = model.exchange_power(T, loads)
        energy_in = energy_out = 0.0

        def record(k: int, T_now: np.ndarray):
            temps[k] = T_now
            flows[k] = model.flows(T_now)
            e_in[k] = energy_in
            e_out[k] = energy_out
            stored[k] = model.stored_energy(T_now)

        record(0, T)
        next_out = 1
        attempts = 0
        wall_start = time.perf_counter()

        while next_out < n_out:
            target = out_times[next_out]
            h = min(dt, target - t)
            clipped = h < dt

            attempts += 1
            if attempts > cfg.max_steps:
                raise SolverTimeoutError(
                    f"step budget of {cfg.max_steps} attempts exhausted at t={t:.3f}s",
                    iterations=attempts - 1)
            if cfg.max_wall_time is not None and time.perf_counter() - wall_start > cfg.max_wall_time:
                raise SolverTimeoutError(
                    f"wall-clock limit of {cfg.max_wall_time:.1f}s exceeded at t={t:.3f}s",
                    iterations=attempts - 1)

            step = self._attempt(t, y, h)
            if not np.all(np.isfinite(step.y)):
                raise NumericalInstabilityError(
                    f"non-finite temperature at t={t + h:.6g}s", time=t, last_state=model.named(T))

            if not step.accepted:
                self.steps_rejected += 1
                new_dt = 0.5 * h
                if new_dt < cfg.min_step:
                    raise NumericalInstabilityError(
                        f"step collapsed below min_step={cfg.min_step:g}s at t={t:.6g}s "
                        f"(error {step.error:.3e} K)",
                        time=t, last_state=model.named(T))
                self.logger.debug(f"Rejected step dt={h:.4g}s at t={t:.4g}s, error={step.error:.3e} K")
                dt = new_dt
                continue

            T_end, loads_end = model.full_state(t + h, step.y)
            p1_in, p1_out = model.exchange_power(T_end, loads_end)
            d_in, d_out = self._step_energy(t, h, step, (p_in, p_out), (p1_in, p1_out))
            energy_in += d_in
            energy_out += d_out

            t = t + h
            y = step.y
            T, p_in, p_out = T_end, p1_in, p1_out
            self.steps_accepted += 1
            self.min_dt_used = min(self.min_dt_used, h)
            self.max_dt_used = max(self.max_dt_used, h)

            if target - t <= 1e-9 * max(1.0, abs(target)):
                t = target
                record(next_out, T)
                self._report((t - cfg.time_start) / cfg.duration, f"t={t:.1f}s")
                next_out += 1

            if not clipped:
                dt = self._next_dt(dt, step)

        return self._build_result(out_times, temps, flows, e_in, e_out, stored)

    def _build_result(self, out_times, temps, flows, e_in, e_out, stored) -> ResultSnapshot:
        model = self.model
        node_results = {
            node_id: NodeResult(node_id, out_times.copy(), temps[:, i].copy())
            for i, node_id in enumerate(model.node_ids)
        }
        conductor_flows = {
            cond_id: ConductorFlowResult(cond_id, out_times.copy(), flows[:, k].copy())
            for k, cond_id in enumerate(model.conductor_ids)
        }
        return ResultSnapshot(
            status=RunStatus.COMPLETED,
            times=out_times,
            node_results=node_results,
            conductor_flows=conductor_flows,
            ledger=EnergyLedger(out_times.copy(), e_in, e_out, stored),
            iterations=self.steps_accepted,
            converged=True,
            diagnostics={
                'steps_accepted': self.steps_accepted,
                'steps_rejected': self.steps_rejected,
                'min_dt': float(self.min_dt_used) if self.steps_accepted else None,
                'max_dt': float(self.max_dt_used) if self.steps_accepted else None,
            },
        )


class ImplicitEulerSolver(TransientSolver):
    """
    Transient solve by backward Euler.

    Every step solves the heat balance of all diffusion and arithmetic
    nodes at ``t + dt`` by Newton iteration with the sparse network
    Jacobian; ``tolerance`` bounds the last Newton update. The step doubles
    after a solve needing at most 3 iterations, halves after one needing 7
    or more, and is retried at half size when Newton does not converge.
    Energy is accounted at the end of each step, which is what the scheme
    conserves.
    """

    FAST_ITERATIONS = 3
    SLOW_ITERATIONS = 7

    def __init__(self,
                 model: ThermalNetworkModel,
                 config: SimulationConfig,
                 progress_callback: Optional[Callable[[float, str], None]] = None):
        super().__init__(model, config, progress_callback)
        self._position = model.free_positions()
        # Diffusion nodes within the free block
        self._diff_rows = self._position[model.diff_idx]
        self.stepper = BackwardEuler(self._rhs, self._jacobian, model.capacitance[model.free_idx])
        self.newton_iterations = 0

    def _temperatures(self, t: float, x: np.ndarray) -> np.ndarray:
        model = self.model
        T = model.initial_temperatures.copy()
        T[model.free_idx] = x
        if len(model.bnd_idx):
            T[model.bnd_idx] = model.boundary_temperatures(t)
        return T

    def _rhs(self, t: float, x: np.ndarray) -> np.ndarray:
        model = self.model
        return model.net_heat(self._temperatures(t, x), model.loads.node_loads(t))[model.free_idx]

    def _jacobian(self, t: float, x: np.ndarray):
        return self.model.net_heat_jacobian(self._temperatures(t, x), self._position)

    def _attempt(self, t: float, y: np.ndarray, h: float) -> StepAttempt:
        T, _ = self.model.full_state(t, y)
        step = self.stepper.attempt(t, T[self.model.free_idx], h, self.config.tolerance)
        self.newton_iterations += step.iterations
        return StepAttempt(y=step.x[self._diff_rows], accepted=step.converged,
                           error=step.update, iterations=step.iterations)

    def _step_energy(self, t: float, h: float, attempt: StepAttempt,
                     start: Tuple[float, float], end: Tuple[float, float]) -> Tuple[float, float]:
        return h * end[0], h * end[1]

    def _next_dt(self, dt: float, attempt: StepAttempt) -> float:
        if attempt.iterations <= self.FAST_ITERATIONS:
            return min(2.0 * dt, self.config.max_step)
        if attempt.iterations >= self.SLOW_ITERATIONS:
            return max(0.5 * dt, self.config.min_step)
        return dt

    def _build_result(self, out_times, temps, flows, e_in, e_out, stored) -> ResultSnapshot:
        result = super()._build_result(out_times, temps, flows, e_in, e_out, stored)
        result.diagnostics['newton_iterations'] = self.newton_iterations
        return result


def transient_solver(model: ThermalNetworkModel,
                     config: SimulationConfig,
                     progress_callback: Optional[Callable[[float, str], None]] = None) -> TransientSolver:
    """Solver for ``config.solver_method``."""
    if config.solver_method == SolverMethod.IMPLICIT_EULER:
        return ImplicitEulerSolver(model, config, progress_callback)
    return TransientSolver(model, config, progress_callback)
