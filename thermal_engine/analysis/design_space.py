"""
Design Space Explorer
=====================

Samples a box of parameter values, solves the network at every sample and
checks the resulting temperatures against per-node limits.

Samples are independent: each one applies its values to its own copy of
the baseline snapshot, so results do not depend on evaluation order or
on how many run in parallel.
"""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy.stats import qmc

from ..core.config import SimulationConfig
from ..core.errors import ValidationError
from ..core.network import NetworkSnapshot
from ..solver.simulator import run_simulation
from ..utils.logger import get_logger, timed_function
from .parallel import Outcome, run_bounded
from .parameters import EntityType, ParameterRef, set_values


class SamplingMethod(Enum):
    LHS = 'lhs'
    RANDOM = 'random'
    GRID = 'grid'


@dataclass(frozen=True)
class ExplorationParameter:
    """A parameter swept between ``min_value`` and ``max_value``."""
    entity_type: EntityType
    entity_id: str
    property: str
    min_value: float
    max_value: float
    num_levels: int = 5

    def __post_init__(self):
        object.__setattr__(self, 'entity_type', EntityType(self.entity_type))
        if not self.max_value >= self.min_value:
            raise ValidationError(f"{self.key}: max_value must be >= min_value")
        if self.num_levels < 1:
            raise ValidationError(f"{self.key}: num_levels must be at least 1")

    @property
    def ref(self) -> ParameterRef:
        return ParameterRef(self.entity_type, self.entity_id, self.property)

    @property
    def key(self) -> str:
        return f"{EntityType(self.entity_type).value}:{self.entity_id}:{self.property}"


@dataclass(frozen=True)
class ExplorationConstraint:
    """Allowed temperature band of one node (either bound optional)."""
    node_id: str
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None


@dataclass(frozen=True)
class ExplorationConfig:
    """
    Exploration settings.

    ``num_samples`` is ignored by grid sampling, which takes every
    combination of each parameter's ``num_levels`` evenly spaced values.
    """
    parameters: Sequence[ExplorationParameter]
    constraints: Sequence[ExplorationConstraint] = ()
    num_samples: int = 50
    method: SamplingMethod = SamplingMethod.LHS
    seed: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'parameters', tuple(self.parameters))
        object.__setattr__(self, 'constraints', tuple(self.constraints))
        object.__setattr__(self, 'method', SamplingMethod(self.method))
        if not self.parameters:
            raise ValidationError("exploration needs at least one parameter")
        if self.num_samples < 1:
            raise ValidationError("num_samples must be at least 1")
        keys = [p.key for p in self.parameters]
        if len(set(keys)) != len(keys):
            raise ValidationError("exploration parameters must be unique")


@dataclass
class NodeStats:
    node_id: str
    min_temp: float
    max_temp: float
    mean_temp: float


@dataclass
class SampleResult:
    """Outcome of one sample."""
    index: int
    values: Dict[str, float]
    node_stats: Dict[str, NodeStats] = field(default_factory=dict)
    max_temperature: float = float('nan')
    feasible: bool = False
    violations: List[str] = field(default_factory=list)
    errored: bool = False
    error: Optional[str] = None


@dataclass
class ExplorationResult:
    samples: List[SampleResult]
    duration_s: float = 0.0

    @property
    def feasible(self) -> List[SampleResult]:
        return [s for s in self.samples if s.feasible]

    @property
    def errored(self) -> List[SampleResult]:
        return [s for s in self.samples if s.errored]

    @property
    def feasible_fraction(self) -> float:
        return len(self.feasible) / len(self.samples) if self.samples else 0.0

    def best(self, node_id: Optional[str] = None) -> Optional[SampleResult]:
        """Feasible sample with the lowest peak temperature (of ``node_id`` if given)."""
        candidates = self.feasible
        if not candidates:
            return None
        if node_id is None:
            return min(candidates, key=lambda s: s.max_temperature)
        return min(candidates, key=lambda s: s.node_stats[node_id].max_temp)


def latin_hypercube_sample(parameters: Sequence[ExplorationParameter], n: int,
                           seed: Optional[int] = None) -> np.ndarray:
    """One stratified sample per row, shape (n, len(parameters))."""
    sampler = qmc.LatinHypercube(d=len(parameters), seed=seed)
    unit = sampler.random(n)
    lower = np.array([p.min_value for p in parameters])
    upper = np.array([p.max_value for p in parameters])
    span = upper - lower
    # qmc.scale rejects zero-width bounds
    if np.all(span > 0):
        return qmc.scale(unit, lower, upper)
    return lower + unit * span


def random_sample(parameters: Sequence[ExplorationParameter], n: int,
                  seed: Optional[int] = None) -> np.ndarray:
    rng = np.random.default_rng(seed)
    lower = np.array([p.min_value for p in parameters])
    upper = np.array([p.max_value for p in parameters])
    return lower + rng.random((n, len(parameters))) * (upper - lower)


def grid_sample(parameters: Sequence[ExplorationParameter]) -> np.ndarray:
    levels = [np.linspace(p.min_value, p.max_value, p.num_levels) for p in parameters]
    return np.array(list(itertools.product(*levels)), dtype=float)


def generate_samples(config: ExplorationConfig) -> List[Dict[str, float]]:
    """Parameter values of every sample, keyed by parameter key."""
    if config.method == SamplingMethod.LHS:
        matrix = latin_hypercube_sample(config.parameters, config.num_samples, config.seed)
    elif config.method == SamplingMethod.RANDOM:
        matrix = random_sample(config.parameters, config.num_samples, config.seed)
    else:
        matrix = grid_sample(config.parameters)
    keys = [p.key for p in config.parameters]
    return [dict(zip(keys, (float(v) for v in row))) for row in matrix]


def check_feasibility(stats: Dict[str, NodeStats],
                      constraints: Sequence[ExplorationConstraint]) -> List[str]:
    """Constraint violations; an empty list means feasible."""
    violations = []
    for c in constraints:
        s = stats.get(c.node_id)
        if s is None:
            continue
        if c.temp_max is not None and s.max_temp > c.temp_max:
            violations.append(f"{c.node_id}: max {s.max_temp:.2f} K > {c.temp_max:.2f} K")
        if c.temp_min is not None and s.min_temp < c.temp_min:
            violations.append(f"{c.node_id}: min {s.min_temp:.2f} K < {c.temp_min:.2f} K")
    return violations


def evaluate_sample(snapshot: NetworkSnapshot,
                    config: SimulationConfig,
                    values: Dict[str, float],
                    constraints: Sequence[ExplorationConstraint] = (),
                    index: int = 0) -> SampleResult:
    """
    Solve one sample.

    Engine errors propagate; ``DesignSpaceExplorer`` records them per sample.
    """
    result = run_simulation(set_values(snapshot, values), config)
    stats = {
        node_id: NodeStats(node_id, r.t_min, r.t_max, r.t_mean)
        for node_id, r in result.node_results.items()
    }
    violations = check_feasibility(stats, constraints)
    return SampleResult(
        index=index,
        values=dict(values),
        node_stats=stats,
        max_temperature=max((s.max_temp for s in stats.values()), default=float('nan')),
        feasible=not violations,
        violations=violations,
    )


def _evaluate_task(task) -> SampleResult:
    return evaluate_sample(*task)


class DesignSpaceExplorer:
    """
    Runs an exploration over a baseline network.

    Usage::

        explorer = DesignSpaceExplorer(snapshot, create_steady_config())
        result = explorer.explore(ExplorationConfig(parameters=[...], num_samples=100, seed=1))
    """

    def __init__(self,
                 snapshot: NetworkSnapshot,
                 config: SimulationConfig,
                 max_workers: Optional[int] = None):
        self.snapshot = snapshot
        self.config = config
        self.max_workers = max_workers
        self.logger = get_logger()

    @timed_function('design_space')
    def explore(self,
                exploration: ExplorationConfig,
                progress: Optional[Callable[[int, int], None]] = None) -> ExplorationResult:
        """
        Evaluate every sample.

        A sample whose run fails is marked errored and infeasible; the rest
        of the batch continues.

        Args:
            exploration: Parameters, constraints and sampling settings
            progress: Called with (samples_completed, samples_total)
        """
        # Fail fast on parameters that do not exist in this network
        for p in exploration.parameters:
            set_values(self.snapshot, {p.ref: p.min_value})

        start = time.perf_counter()
        samples = generate_samples(exploration)
        self.logger.info(f"design space: {len(samples)} samples ({exploration.method.value}), "
                         f"{len(exploration.parameters)} parameters")
        tasks = [(self.snapshot, self.config, values, exploration.constraints, i)
                 for i, values in enumerate(samples)]
        on_done = None
        if progress is not None:
            on_done = lambda outcome, done, total: progress(done, total)
        outcomes: List[Outcome] = run_bounded(_evaluate_task, tasks, self.max_workers, on_done)

        results = []
        for outcome, values in zip(outcomes, samples):
            if outcome.ok:
                results.append(outcome.value)
            else:
                results.append(SampleResult(index=outcome.index, values=dict(values),
                                            errored=True, error=outcome.error))
        explored = ExplorationResult(results, time.perf_counter() - start)
        self.logger.info(f"design space: {len(explored.feasible)} feasible, "
                         f"{len(explored.errored)} errored in {explored.duration_s:.2f}s")
        return explored
