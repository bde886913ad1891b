"""
Numerical Integrators
=====================

Time stepping for the transient thermal solve: explicit RK4 with
Richardson error control, and backward Euler for stiff networks.
"""

from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy import sparse
from scipy.sparse import linalg as sparse_linalg


class RK4Integrator:
    """
    4th order Runge-Kutta integrator.

    Classic fixed-step RK4 method for ODEs.
    """

    def __init__(self, derivative_func: Callable[[float, np.ndarray], np.ndarray]):
        """
        Args:
            derivative_func: Function f(t, y) returning dy/dt
        """
        self.derivative = derivative_func

    def step(self, t: float, y: np.ndarray, dt: float, k1: np.ndarray = None) -> np.ndarray:
        """
        Perform single RK4 step.

        Args:
            t: Current time
            y: Current state
            dt: Time step
            k1: Derivative at (t, y) if already known

        Returns:
            New state after step
        """
        if k1 is None:
            k1 = self.derivative(t, y)
        k2 = self.derivative(t + 0.5*dt, y + 0.5*dt*k1)
        k3 = self.derivative(t + 0.5*dt, y + 0.5*dt*k2)
        k4 = self.derivative(t + dt, y + dt*k3)

        return y + (dt/6) * (k1 + 2*k2 + 2*k3 + k4)


@dataclass
class StepResult:
    """Outcome of one Richardson step attempt."""
    y: np.ndarray            # extrapolated state at t + dt
    y_mid: np.ndarray        # state after the first half step
    error: float             # estimated local error [K]


class RichardsonRK4:
    """
    RK4 with step-doubling error control.

    A full step is compared with two half steps. For a 4th order method the
    difference divided by 15 estimates the local error of the half-step
    solution, and adding it back gives a 5th order accurate state.
    """

    RICHARDSON_FACTOR = 15.0

    def __init__(self, derivative_func: Callable[[float, np.ndarray], np.ndarray]):
        self.rk4 = RK4Integrator(derivative_func)
        self.derivative = derivative_func

    def attempt(self, t: float, y: np.ndarray, dt: float) -> StepResult:
        """
        Try one step of size ``dt`` from ``(t, y)``.

        Returns:
            Extrapolated state, midpoint state and error estimate
        """
        k1 = self.derivative(t, y)
        y_full = self.rk4.step(t, y, dt, k1=k1)
        y_mid = self.rk4.step(t, y, 0.5*dt, k1=k1)
        y_half = self.rk4.step(t + 0.5*dt, y_mid, 0.5*dt)

        diff = (y_half - y_full) / self.RICHARDSON_FACTOR
        error = float(np.max(np.abs(diff), initial=0.0))
        return StepResult(y=y_half + diff, y_mid=y_mid, error=error)


@dataclass
class NewtonStep:
    """Outcome of one backward Euler step attempt."""
    x: np.ndarray            # state at t + dt (the start state when not converged)
    iterations: int
    converged: bool
    update: float            # largest Newton update of the last iteration


class BackwardEuler:
    """
    Backward (implicit) Euler with Newton iteration.

    Solves ``M (x1 - x0) / dt = f(t + dt, x1)`` for ``x1``, where ``M`` is a
    diagonal mass vector. Rows with zero mass are algebraic and solved for
    ``f = 0``. Unconditionally stable, so stiff systems take steps set by
    accuracy rather than by their fastest mode.
    """

    MAX_ITERATIONS = 10
    # Largest update applied in one Newton iteration
    MAX_UPDATE = 200.0

    def __init__(self,
                 rhs: Callable[[float, np.ndarray], np.ndarray],
                 jacobian: Callable[[float, np.ndarray], sparse.spmatrix],
                 mass: np.ndarray):
        """
        Args:
            rhs: f(t, x)
            jacobian: df/dx at (t, x), sparse
            mass: Diagonal of M
        """
        self.rhs = rhs
        self.jacobian = jacobian
        self.mass = np.asarray(mass, dtype=float)

    def attempt(self, t: float, x: np.ndarray, dt: float, tolerance: float) -> NewtonStep:
        """
        Try one step of size ``dt`` from ``(t, x)``.

        Converged once the largest Newton update is below ``tolerance``.
        """
        if len(x) == 0:
            return NewtonStep(x=x, iterations=0, converged=True, update=0.0)
        t1 = t + dt
        x1 = x.copy()
        m_dt = sparse.diags(self.mass / dt, format='csc')
        update = np.inf
        for iteration in range(1, self.MAX_ITERATIONS + 1):
            residual = self.mass * (x1 - x) / dt - self.rhs(t1, x1)
            J = m_dt - self.jacobian(t1, x1)
            delta = np.atleast_1d(sparse_linalg.spsolve(J, -residual))
            if not np.all(np.isfinite(delta)):
                return NewtonStep(x=x, iterations=iteration, converged=False, update=np.inf)
            update = float(np.max(np.abs(delta), initial=0.0))
            if update > self.MAX_UPDATE:
                delta *= self.MAX_UPDATE / update
            x1 = np.maximum(x1 + delta, 0.5 * x1)
            if update < tolerance:
                return NewtonStep(x=x1, iterations=iteration, converged=True, update=update)
        return NewtonStep(x=x, iterations=self.MAX_ITERATIONS, converged=False, update=update)
