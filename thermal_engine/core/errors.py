"""
Engine Errors
=============

Typed failures raised by validation, the solvers and the view-factor worker.
"""

from typing import Dict, List, Optional


class ThermalEngineError(Exception):
    """Base class for all engine failures."""


class ValidationError(ThermalEngineError, ValueError):
    """
    Malformed topology or configuration, reported before a run starts.

    Attributes:
        problems: Every problem found, one message per entry
    """

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems: List[str] = list(problems)
        if len(self.problems) == 1:
            message = self.problems[0]
        else:
            message = f"{len(self.problems)} validation problems: " + "; ".join(self.problems)
        super().__init__(message)


class ConvergenceError(ThermalEngineError):
    """An iterative solve exhausted its budget without meeting tolerance."""

    def __init__(self, message: str, iterations: int = 0, residual: float = float('nan')):
        super().__init__(message)
        self.iterations = iterations
        self.residual = residual


class SolverTimeoutError(ConvergenceError):
    """A run exceeded its step budget or wall-clock limit."""


class NumericalInstabilityError(ThermalEngineError):
    """
    Integration produced NaN/Inf or the step collapsed below ``min_step``.

    Attributes:
        time: Simulation time of the last valid state
        last_state: Node temperatures (K) of the last valid state
    """

    def __init__(self,
                 message: str,
                 time: Optional[float] = None,
                 last_state: Optional[Dict[str, float]] = None):
        super().__init__(message)
        self.time = time
        self.last_state = dict(last_state) if last_state else {}


class WorkerError(ThermalEngineError):
    """A background view-factor computation crashed or was cancelled."""

    def __init__(self, message: str, cancelled: bool = False):
        super().__init__(message)
        self.cancelled = cancelled
