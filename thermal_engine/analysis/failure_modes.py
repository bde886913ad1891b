"""
Failure-Mode Analysis
=====================

Scenario transformations applied to a copy of a network, and a runner
comparing each degraded network against the nominal one.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..core.config import SimulationConfig
from ..core.errors import ValidationError
from ..core.network import ConductorKind, HeatLoadKind, NetworkSnapshot, SurfaceType
from ..utils.logger import get_logger, timed_function
from .design_space import ExplorationConstraint, SampleResult, evaluate_sample
from .parallel import run_bounded

MLI_EMISSIVITY_THRESHOLD = 0.1
OPTICAL_CAP = 0.99
TUMBLE_FACES = 6


class FailureType(Enum):
    HEATER_FAILURE = 'heater_failure'
    MLI_DEGRADATION = 'mli_degradation'
    COATING_DEGRADATION_EOL = 'coating_degradation_eol'
    ATTITUDE_LOSS_TUMBLE = 'attitude_loss_tumble'
    POWER_BUDGET_REDUCTION = 'power_budget_reduction'
    CONDUCTOR_FAILURE = 'conductor_failure'
    COMPONENT_POWER_SPIKE = 'component_power_spike'


@dataclass(frozen=True)
class FailureModeParams:
    """Scenario inputs; each failure type reads the fields it needs."""
    heat_load_id: Optional[str] = None
    degradation_factor: float = 5.0
    absorptance_delta: float = 0.05
    power_scale_factor: float = 0.5
    conductor_id: Optional[str] = None
    node_id: Optional[str] = None
    spike_factor: float = 2.0


@dataclass(frozen=True)
class FailureScenario:
    name: str
    failure_type: FailureType
    params: FailureModeParams = FailureModeParams()

    def __post_init__(self):
        object.__setattr__(self, 'failure_type', FailureType(self.failure_type))


def _scaled_table(table, factor, floor=None):
    rows = []
    for t, v in table:
        v = v * factor
        rows.append((t, v if floor is None else max(v, floor)))
    return tuple(rows)


def _heater_failure(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    if params.heat_load_id is None:
        raise ValidationError("heater_failure needs heat_load_id")
    load = snapshot.heat_load(params.heat_load_id)
    if load.kind == HeatLoadKind.ORBITAL:
        raise ValidationError(f"heat load '{load.id}' is orbital, not a heater")
    return snapshot.replace_heat_load(replace(
        load,
        value=0.0 if load.value is not None else None,
        time_values=_scaled_table(load.time_values, 0.0),
    ))


def _mli_degradation(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    def degrade(eps):
        if eps is not None and eps < MLI_EMISSIVITY_THRESHOLD:
            return min(eps * params.degradation_factor, OPTICAL_CAP)
        return eps

    updated = snapshot
    for node in snapshot.nodes:
        updated = updated.replace_node(replace(node, emissivity=degrade(node.emissivity)))
    for c in snapshot.conductors:
        if c.kind == ConductorKind.RADIATION:
            updated = updated.replace_conductor(replace(c, emissivity=degrade(c.emissivity)))
    return updated


def _coating_degradation(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    delta = params.absorptance_delta
    orbital = [h for h in snapshot.heat_loads if h.kind == HeatLoadKind.ORBITAL and h.orbital_params]
    surface_nodes = {h.node_id for h in orbital}

    updated = snapshot
    for node in snapshot.nodes:
        if node.id in surface_nodes:
            alpha = min((node.absorptivity or 0.0) + delta, OPTICAL_CAP)
            updated = updated.replace_node(replace(node, absorptivity=alpha))
    for load in orbital:
        p = load.orbital_params
        updated = updated.replace_heat_load(replace(
            load, orbital_params=replace(p, absorptivity=min(p.absorptivity + delta, OPTICAL_CAP))))
    return updated


def _attitude_loss_tumble(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    updated = snapshot
    for load in snapshot.heat_loads:
        if load.kind == HeatLoadKind.ORBITAL and load.orbital_params:
            p = load.orbital_params
            tumbling = replace(p, surface_type=SurfaceType.CUSTOM, surface_normal=None,
                               absorptivity=p.absorptivity / TUMBLE_FACES)
            updated = updated.replace_heat_load(replace(load, orbital_params=tumbling))
    return updated


def _power_budget_reduction(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    scale = params.power_scale_factor
    updated = snapshot
    for load in snapshot.heat_loads:
        if load.kind == HeatLoadKind.CONSTANT and load.value is not None:
            updated = updated.replace_heat_load(replace(load, value=max(load.value * scale, 0.0)))
        elif load.kind == HeatLoadKind.TIME_VARYING:
            updated = updated.replace_heat_load(replace(
                load, time_values=_scaled_table(load.time_values, scale, floor=0.0)))
    return updated


def _conductor_failure(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    if params.conductor_id is None:
        raise ValidationError("conductor_failure needs conductor_id")
    c = snapshot.conductor(params.conductor_id)
    if c.kind == ConductorKind.RADIATION:
        failed = replace(c, view_factor=0.0)
    else:
        # A dried-out heat pipe conducts nothing
        failed = replace(c, kind=ConductorKind.LINEAR, conductance=0.0, conductance_data=())
    return snapshot.replace_conductor(failed)


def _component_power_spike(snapshot: NetworkSnapshot, params: FailureModeParams) -> NetworkSnapshot:
    if params.node_id is None:
        raise ValidationError("component_power_spike needs node_id")
    snapshot.node(params.node_id)
    updated = snapshot
    for load in snapshot.heat_loads:
        if load.node_id != params.node_id or load.kind == HeatLoadKind.ORBITAL:
            continue
        updated = updated.replace_heat_load(replace(
            load,
            value=load.value * params.spike_factor if load.value is not None else None,
            time_values=_scaled_table(load.time_values, params.spike_factor),
        ))
    return updated


_TRANSFORMS = {
    FailureType.HEATER_FAILURE: _heater_failure,
    FailureType.MLI_DEGRADATION: _mli_degradation,
    FailureType.COATING_DEGRADATION_EOL: _coating_degradation,
    FailureType.ATTITUDE_LOSS_TUMBLE: _attitude_loss_tumble,
    FailureType.POWER_BUDGET_REDUCTION: _power_budget_reduction,
    FailureType.CONDUCTOR_FAILURE: _conductor_failure,
    FailureType.COMPONENT_POWER_SPIKE: _component_power_spike,
}


def apply_failure_mode(snapshot: NetworkSnapshot,
                       failure_type: FailureType,
                       params: Optional[FailureModeParams] = None) -> NetworkSnapshot:
    """
    Degraded copy of ``snapshot``.

    Raises:
        ValidationError: a required id is missing or names no entity
    """
    transform = _TRANSFORMS[FailureType(failure_type)]
    try:
        return transform(snapshot, params or FailureModeParams())
    except KeyError as e:
        raise ValidationError(f"{FailureType(failure_type).value}: {e.args[0]}") from e


@dataclass
class FailureModeResult:
    """A scenario's run compared with the nominal run."""
    scenario: FailureScenario
    sample: SampleResult
    peak_deltas: Dict[str, float] = field(default_factory=dict)

    @property
    def feasible(self) -> bool:
        return self.sample.feasible

    @property
    def worst_node(self) -> Optional[str]:
        if not self.peak_deltas:
            return None
        return max(self.peak_deltas, key=lambda k: abs(self.peak_deltas[k]))


def _scenario_task(task) -> SampleResult:
    snapshot, config, scenario, constraints, index = task
    degraded = apply_failure_mode(snapshot, scenario.failure_type, scenario.params)
    return evaluate_sample(degraded, config, {}, constraints, index)


@timed_function('failure_analysis')
def run_failure_analysis(snapshot: NetworkSnapshot,
                         config: SimulationConfig,
                         scenarios: Sequence[FailureScenario],
                         constraints: Sequence[ExplorationConstraint] = (),
                         max_workers: Optional[int] = None) -> List[FailureModeResult]:
    """
    Run the nominal case and every scenario.

    A scenario whose run fails is reported errored; the others continue.
    The nominal run must succeed.

    Returns:
        One FailureModeResult per scenario, in order
    """
    logger = get_logger()
    nominal = evaluate_sample(snapshot, config, {}, constraints, index=-1)
    tasks = [(snapshot, config, s, tuple(constraints), i) for i, s in enumerate(scenarios)]
    outcomes = run_bounded(_scenario_task, tasks, max_workers)

    results = []
    for scenario, outcome in zip(scenarios, outcomes):
        if not outcome.ok:
            sample = SampleResult(index=outcome.index, values={}, errored=True, error=outcome.error)
            results.append(FailureModeResult(scenario, sample))
            continue
        sample = outcome.value
        deltas = {
            node_id: stats.max_temp - nominal.node_stats[node_id].max_temp
            for node_id, stats in sample.node_stats.items()
            if node_id in nominal.node_stats
        }
        results.append(FailureModeResult(scenario, sample, deltas))
        logger.info(f"failure mode '{scenario.name}': peak {sample.max_temperature:.2f} K, "
                    f"{'feasible' if sample.feasible else 'violates ' + str(len(sample.violations))}")
    return results
