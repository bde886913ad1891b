"""
Sensitivity Engine
==================

Finite-difference temperature sensitivities and what-if reconstruction.

For every tracked parameter ``p`` the engine reruns the solver at
``p + dp`` and ``p - dp`` with ``dp = max(5% |p|, 1e-10)`` and records per
node:

    dT/dp  = (T+ - T0) / dp               (forward difference)
    d2T/dp2 = (T+ - 2 T0 + T-) / dp^2     (central second difference)

A parameter whose ``p + dp`` or ``p - dp`` would leave its valid range
(an emissivity of 1.0, a conductance of 0) is stepped one-sided instead,
at ``p - dp, p - 2dp`` or ``p + dp, p + 2dp``.

What-if temperatures are then reconstructed without rerunning the solver:

    T(node) = T0(node) + sum_i dT/dp_i * delta_i
"""

import dataclasses
import hashlib
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..core.config import SimulationConfig
from ..core.errors import ThermalEngineError
from ..core.network import NetworkSnapshot, NodeKind
from ..core.results import ResultSnapshot
from ..core.serialization import snapshot_to_dict
from ..solver.simulator import run_simulation
from ..utils.logger import get_logger, timed_function
from .parallel import Outcome, run_bounded
from .parameters import ParameterRef, ParamLike, as_ref, collect_parameters, get_value, set_values

PERTURBATION_FRACTION = 0.05
MIN_PERTURBATION = 1e-10

# Confidence thresholds
NONLINEARITY_LIMIT = 0.2
LOW_CHANGE_FRACTION = 0.30
MEDIUM_CHANGE_FRACTION = 0.10


class Metric(Enum):
    """Which temperature of each node's history the derivatives describe."""
    FINAL = 'final'
    MAX = 'max'
    MEAN = 'mean'


class Stencil(Enum):
    """Where the two perturbed runs sit relative to the baseline value."""
    CENTRAL = 'central'
    FORWARD = 'forward'
    BACKWARD = 'backward'


_STENCIL_OFFSETS = {
    Stencil.CENTRAL: (1, -1),
    Stencil.FORWARD: (1, 2),
    Stencil.BACKWARD: (-1, -2),
}


class Confidence(Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


_CONFIDENCE_RANK = {Confidence.HIGH: 0, Confidence.MEDIUM: 1, Confidence.LOW: 2}


def metric_temperatures(result: ResultSnapshot, metric: Metric) -> Dict[str, float]:
    metric = Metric(metric)
    if metric == Metric.MAX:
        return result.max_temperatures()
    if metric == Metric.MEAN:
        return result.mean_temperatures()
    return result.final_temperatures()


def perturbation_step(value: float) -> float:
    return max(abs(value) * PERTURBATION_FRACTION, MIN_PERTURBATION)


def choose_stencil(value: float, step: float, bounds: Tuple[float, float]) -> Stencil:
    """Central when both neighbours are in range, otherwise the side that fits."""
    lo, hi = bounds
    if lo <= value - step and value + step <= hi:
        return Stencil.CENTRAL
    if value + 2 * step <= hi:
        return Stencil.FORWARD
    if lo <= value - 2 * step:
        return Stencil.BACKWARD
    # Range narrower than the step; the runs fail and are reported
    return Stencil.CENTRAL


def _derivatives(stencil: Stencil, t0: float, ta: float, tb: float, dp: float) -> Tuple[float, float]:
    if stencil == Stencil.FORWARD:
        return (ta - t0) / dp, (tb - 2 * ta + t0) / (dp * dp)
    if stencil == Stencil.BACKWARD:
        return (t0 - ta) / dp, (t0 - 2 * ta + tb) / (dp * dp)
    return (ta - t0) / dp, (ta - 2 * t0 + tb) / (dp * dp)


def fingerprint(snapshot: NetworkSnapshot, config: SimulationConfig) -> str:
    """Content hash identifying a (network, configuration) pair."""
    payload = {
        'network': snapshot_to_dict(snapshot),
        'config': dataclasses.asdict(config),
    }
    text = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


class BaselineHandle:
    """
    The one current baseline: snapshot, configuration, its result and a
    fingerprint of the inputs.

    A handle is invalidated explicitly when the network changes; using an
    invalidated handle raises instead of returning stale temperatures.
    """

    def __init__(self, snapshot: NetworkSnapshot, config: SimulationConfig, result: ResultSnapshot):
        self.snapshot = snapshot
        self.config = config
        self._result = result
        self.fingerprint = fingerprint(snapshot, config)
        self._valid = True

    @classmethod
    def run(cls, snapshot: NetworkSnapshot, config: SimulationConfig) -> 'BaselineHandle':
        """Solve the baseline and wrap it."""
        return cls(snapshot, config, run_simulation(snapshot, config))

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self):
        self._valid = False

    def matches(self, snapshot: NetworkSnapshot, config: Optional[SimulationConfig] = None) -> bool:
        return self._valid and fingerprint(snapshot, config or self.config) == self.fingerprint

    @property
    def result(self) -> ResultSnapshot:
        if not self._valid:
            raise ThermalEngineError("baseline has been invalidated; rerun it for the current network")
        return self._result

    def temperatures(self, metric: Metric = Metric.FINAL) -> Dict[str, float]:
        return metric_temperatures(self.result, metric)


@dataclass
class SensitivityEntry:
    """Derivatives of one node temperature with respect to one parameter."""
    parameter: str
    node_id: str
    dT_dp: float
    d2T_dp2: float
    baseline_value: float
    step: float
    stencil: str = Stencil.CENTRAL.value


@dataclass
class SensitivityMatrix:
    """All entries of one sensitivity computation."""
    baseline_fingerprint: str
    metric: Metric
    baseline_temperatures: Dict[str, float]
    baseline_values: Dict[str, float]
    entries: List[SensitivityEntry] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    duration_s: float = 0.0

    def for_parameter(self, parameter: ParamLike) -> List[SensitivityEntry]:
        key = as_ref(parameter).key
        return [e for e in self.entries if e.parameter == key]

    def for_node(self, node_id: str) -> List[SensitivityEntry]:
        return [e for e in self.entries if e.node_id == node_id]

    def derivative(self, parameter: ParamLike, node_id: str) -> float:
        key = as_ref(parameter).key
        for e in self.entries:
            if e.parameter == key and e.node_id == node_id:
                return e.dT_dp
        raise KeyError(f"No sensitivity for {key} on node {node_id}")

    def ranked(self, node_id: str) -> List[SensitivityEntry]:
        """Entries for a node ordered by the temperature change of a 5% step."""
        return sorted(self.for_node(node_id), key=lambda e: abs(e.dT_dp * e.step), reverse=True)

    def to_dict(self) -> Dict:
        return {
            'baselineFingerprint': self.baseline_fingerprint,
            'metric': self.metric.value,
            'entries': [dataclasses.asdict(e) for e in self.entries],
            'failures': dict(self.failures),
        }


@dataclass
class WhatIfResult:
    """Reconstructed temperatures for a set of parameter deltas."""
    temperatures: Dict[str, float]
    delta_temperatures: Dict[str, float]
    confidence: Dict[str, Confidence]
    overall_confidence: Confidence
    accuracy_score: float


def _perturbed_run(task):
    """Process-pool task: run one perturbed snapshot and reduce it to a metric."""
    snapshot, config, values, metric = task
    result = run_simulation(set_values(snapshot, values), config)
    return metric_temperatures(result, metric)


class SensitivityEngine:
    """
    Computes sensitivity matrices against a baseline.

    Perturbed runs are independent and go through a bounded process pool;
    a parameter whose perturbed run fails is recorded in
    ``SensitivityMatrix.failures`` and the others carry on. ``reconstruct``
    refuses deltas for failed parameters.
    """

    def __init__(self,
                 baseline: BaselineHandle,
                 metric: Metric = Metric.FINAL,
                 max_workers: Optional[int] = None):
        self.baseline = baseline
        self.metric = Metric(metric)
        self.max_workers = max_workers
        self.logger = get_logger()

    def update_network(self, snapshot: NetworkSnapshot,
                       config: Optional[SimulationConfig] = None) -> BaselineHandle:
        """
        Replace the baseline when the network changed.

        The previous handle is invalidated and a new baseline solved; an
        unchanged network keeps the current handle.
        """
        config = config or self.baseline.config
        if self.baseline.matches(snapshot, config):
            return self.baseline
        self.baseline.invalidate()
        self.baseline = BaselineHandle.run(snapshot, config)
        self.logger.info(f"baseline replaced, fingerprint {self.baseline.fingerprint[:12]}")
        return self.baseline

    @timed_function('sensitivity')
    def compute(self,
                parameters: Optional[Sequence[ParamLike]] = None,
                progress: Optional[Callable[[int, int], None]] = None) -> SensitivityMatrix:
        """
        Compute dT/dp and d2T/dp2 for every parameter and non-boundary node.

        Args:
            parameters: Parameters to track, defaults to ``collect_parameters``
            progress: Called with (runs_completed, runs_total)

        Returns:
            SensitivityMatrix
        """
        baseline = self.baseline
        t0 = baseline.temperatures(self.metric)
        snapshot = baseline.snapshot
        refs: List[ParameterRef] = ([as_ref(p) for p in parameters] if parameters is not None
                                    else collect_parameters(snapshot))
        output_nodes = [n.id for n in snapshot.nodes if n.id in t0 and n.kind != NodeKind.BOUNDARY]

        start = time.perf_counter()
        values = {ref.key: get_value(snapshot, ref) for ref in refs}
        steps = {ref.key: perturbation_step(values[ref.key]) for ref in refs}
        stencils = {ref.key: choose_stencil(values[ref.key], steps[ref.key], ref.bounds) for ref in refs}
        tasks = []
        for ref in refs:
            p, dp = values[ref.key], steps[ref.key]
            for offset in _STENCIL_OFFSETS[stencils[ref.key]]:
                tasks.append((snapshot, baseline.config, {ref: p + offset * dp}, self.metric))

        self.logger.info(f"sensitivity: {len(refs)} parameters, {len(tasks)} perturbed runs")
        on_done = None
        if progress is not None:
            on_done = lambda outcome, done, total: progress(done, total)
        outcomes: List[Outcome] = run_bounded(_perturbed_run, tasks, self.max_workers, on_done)

        matrix = SensitivityMatrix(
            baseline_fingerprint=baseline.fingerprint,
            metric=self.metric,
            baseline_temperatures=dict(t0),
            baseline_values=values,
        )
        for k, ref in enumerate(refs):
            first, second = outcomes[2 * k], outcomes[2 * k + 1]
            if not (first.ok and second.ok):
                matrix.failures[ref.key] = first.error or second.error
                continue
            dp, stencil = steps[ref.key], stencils[ref.key]
            for node_id in output_nodes:
                dT_dp, d2T_dp2 = _derivatives(stencil, t0[node_id], first.value[node_id],
                                              second.value[node_id], dp)
                matrix.entries.append(SensitivityEntry(
                    parameter=ref.key,
                    node_id=node_id,
                    dT_dp=dT_dp,
                    d2T_dp2=d2T_dp2,
                    baseline_value=values[ref.key],
                    step=dp,
                    stencil=stencil.value,
                ))
        matrix.duration_s = time.perf_counter() - start
        if matrix.failures:
            self.logger.warning(f"sensitivity: {len(matrix.failures)} parameters failed")
        return matrix


def _nonlinearity(entry: SensitivityEntry, delta: float) -> float:
    first = abs(entry.dT_dp * delta)
    if first < 1e-12:
        return 0.0
    return abs(entry.d2T_dp2 * delta * delta) / first


def delta_confidence(entry: SensitivityEntry, delta: float) -> Confidence:
    """Confidence of the linear reconstruction for one parameter delta."""
    if abs(delta) < 1e-12:
        return Confidence.HIGH
    change = abs(delta / (entry.baseline_value or 1.0))
    if _nonlinearity(entry, delta) > NONLINEARITY_LIMIT or change > LOW_CHANGE_FRACTION:
        return Confidence.LOW
    if change > MEDIUM_CHANGE_FRACTION:
        return Confidence.MEDIUM
    return Confidence.HIGH


def accuracy_score(matrix: SensitivityMatrix, deltas: Mapping[str, float]) -> float:
    """0-100 score; 100 when all deltas are zero, falling with nonlinearity."""
    worst = 0.0
    for entry in matrix.entries:
        delta = deltas.get(entry.parameter, 0.0)
        if delta:
            worst = max(worst, _nonlinearity(entry, delta))
    return float(max(0.0, round(100.0 - 100.0 * worst)))


def reconstruct(matrix: SensitivityMatrix,
                deltas: Mapping[ParamLike, float],
                quadratic: bool = False) -> WhatIfResult:
    """
    What-if temperatures for combined parameter deltas.

    Zero deltas contribute nothing, so all-zero deltas reproduce the
    baseline temperatures exactly.

    Args:
        matrix: Sensitivities from ``SensitivityEngine.compute``
        deltas: Parameter -> absolute change
        quadratic: Add the ``0.5 * d2T/dp2 * delta^2`` term

    Raises:
        KeyError: a parameter was not part of the computation
        ThermalEngineError: a parameter's perturbed runs failed
    """
    by_key = {as_ref(p).key: float(d) for p, d in deltas.items()}
    unknown = set(by_key) - set(matrix.baseline_values)
    if unknown:
        raise KeyError(f"No sensitivities for: {', '.join(sorted(unknown))}")
    failed = sorted(key for key in by_key if key in matrix.failures)
    if failed:
        raise ThermalEngineError(
            "sensitivities unavailable for " + "; ".join(f"{key} ({matrix.failures[key]})" for key in failed))

    delta_t: Dict[str, float] = {}
    confidence: Dict[str, Confidence] = {key: Confidence.HIGH for key in by_key}
    for entry in matrix.entries:
        delta = by_key.get(entry.parameter, 0.0)
        if delta == 0.0:
            continue
        change = entry.dT_dp * delta
        if quadratic:
            change += 0.5 * entry.d2T_dp2 * delta * delta
        delta_t[entry.node_id] = delta_t.get(entry.node_id, 0.0) + change
        level = delta_confidence(entry, delta)
        if _CONFIDENCE_RANK[level] > _CONFIDENCE_RANK[confidence[entry.parameter]]:
            confidence[entry.parameter] = level

    temperatures = {}
    for node_id, t0 in matrix.baseline_temperatures.items():
        temperatures[node_id] = t0 + delta_t[node_id] if node_id in delta_t else t0

    overall = max(confidence.values(), key=_CONFIDENCE_RANK.get, default=Confidence.HIGH)
    return WhatIfResult(
        temperatures=temperatures,
        delta_temperatures=delta_t,
        confidence=confidence,
        overall_confidence=overall,
        accuracy_score=accuracy_score(matrix, by_key),
    )
