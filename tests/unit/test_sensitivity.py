import math
from dataclasses import replace

import pytest

from networks import radiator_network, two_node_network
from thermal_engine.analysis import sensitivity
from thermal_engine.core.config import create_steady_config
from thermal_engine.core.errors import NumericalInstabilityError, ThermalEngineError, ValidationError
from thermal_engine.core.network import Conductor
from thermal_engine.analysis.parameters import (
    EntityType,
    ParameterRef,
    apply_deltas,
    collect_parameters,
    get_value,
)
from thermal_engine.analysis.sensitivity import (
    BaselineHandle,
    Confidence,
    SensitivityEngine,
    Stencil,
    choose_stencil,
    perturbation_step,
    reconstruct,
)
from thermal_engine.solver.simulator import run_simulation

LOAD = 'heat_load:q:value'
CONDUCTANCE = 'conductor:g:conductance'
VIEW_FACTOR = 'conductor:rad:view_factor'


@pytest.fixture
def engine(two_node):
    baseline = BaselineHandle.run(two_node, create_steady_config(tolerance=1e-10))
    return SensitivityEngine(baseline, max_workers=1)


@pytest.fixture
def matrix(engine):
    return engine.compute([LOAD, CONDUCTANCE])


def test_parameter_keys_round_trip():
    ref = ParameterRef(EntityType.NODE, 'hot', 'capacitance')
    assert ref.key == 'node:hot:capacitance'
    assert ParameterRef.parse(ref.key) == ref
    with pytest.raises(ValidationError):
        ParameterRef(EntityType.HEAT_LOAD, 'q', 'emissivity')
    with pytest.raises(ValidationError):
        ParameterRef.parse('node:hot')


def test_unknown_entity_is_a_validation_error(two_node):
    with pytest.raises(ValidationError):
        get_value(two_node, 'node:missing:capacitance')


def test_apply_deltas_leaves_input_untouched(two_node):
    changed = apply_deltas(two_node, {LOAD: 5.0})
    assert changed.heat_load('q').value == 15.0
    assert two_node.heat_load('q').value == 10.0


def test_default_parameters_skip_boundary_nodes(two_node):
    keys = [p.key for p in collect_parameters(two_node)]
    assert 'node:hot:capacitance' in keys
    assert CONDUCTANCE in keys and LOAD in keys
    assert not any(k.startswith('node:sink:') for k in keys)


def test_perturbation_step():
    assert perturbation_step(10.0) == pytest.approx(0.5)
    assert perturbation_step(0.0) == 1e-10


def test_linear_load_sensitivity(matrix):
    # T = 200 + Q / G
    assert matrix.derivative(LOAD, 'hot') == pytest.approx(1.0, rel=1e-6)
    entry = matrix.for_parameter(LOAD)[0]
    assert entry.d2T_dp2 == pytest.approx(0.0, abs=1e-3)
    assert entry.step == pytest.approx(0.5)


def test_conductance_sensitivity_is_forward_difference(matrix):
    expected = (10.0 / 1.05 - 10.0) / 0.05
    assert matrix.derivative(CONDUCTANCE, 'hot') == pytest.approx(expected, rel=1e-6)
    second = (10.0 / 1.05 - 20.0 + 10.0 / 0.95) / 0.05 ** 2
    assert matrix.for_parameter(CONDUCTANCE)[0].d2T_dp2 == pytest.approx(second, rel=1e-4)


def test_boundary_nodes_have_no_entries(matrix):
    assert matrix.for_node('sink') == []
    assert [e.parameter for e in matrix.ranked('hot')] == [LOAD, CONDUCTANCE]


def test_zero_deltas_reproduce_baseline_exactly(matrix):
    what_if = reconstruct(matrix, {LOAD: 0.0, CONDUCTANCE: 0.0})
    assert what_if.temperatures == matrix.baseline_temperatures
    assert what_if.overall_confidence == Confidence.HIGH
    assert what_if.accuracy_score == 100.0


def test_load_delta_reconstructs_linear_change(matrix):
    what_if = reconstruct(matrix, {LOAD: 0.5})
    assert what_if.temperatures['hot'] == pytest.approx(210.5, rel=1e-8)
    assert what_if.confidence[LOAD] == Confidence.HIGH


def test_confidence_drops_with_large_changes(matrix):
    assert reconstruct(matrix, {LOAD: 2.0}).confidence[LOAD] == Confidence.MEDIUM
    assert reconstruct(matrix, {LOAD: 4.0}).confidence[LOAD] == Confidence.LOW


def test_nonlinear_parameter_lowers_confidence_and_score(matrix):
    small = reconstruct(matrix, {CONDUCTANCE: 0.05})
    large = reconstruct(matrix, {CONDUCTANCE: 0.15})
    assert small.confidence[CONDUCTANCE] == Confidence.HIGH
    assert large.confidence[CONDUCTANCE] == Confidence.LOW
    assert large.overall_confidence == Confidence.LOW
    assert large.accuracy_score < small.accuracy_score <= 100.0


def test_quadratic_term_improves_nonlinear_estimate(matrix):
    exact = 200.0 + 10.0 / 0.9
    linear = reconstruct(matrix, {CONDUCTANCE: -0.1}).temperatures['hot']
    quadratic = reconstruct(matrix, {CONDUCTANCE: -0.1}, quadratic=True).temperatures['hot']
    assert abs(quadratic - exact) < abs(linear - exact)


def test_unknown_parameter_in_deltas(matrix):
    with pytest.raises(KeyError):
        reconstruct(matrix, {'node:hot:emissivity': 0.1})


def test_invalidated_baseline_cannot_be_used(engine, two_node):
    old = engine.baseline
    assert engine.update_network(two_node) is old

    hotter = apply_deltas(two_node, {LOAD: 5.0})
    new = engine.update_network(hotter)
    assert new is not old and new.valid
    assert not old.valid
    with pytest.raises(ThermalEngineError):
        old.result
    assert engine.compute([LOAD]).baseline_temperatures['hot'] == pytest.approx(215.0, abs=1e-6)


def test_failing_parameter_is_isolated(monkeypatch, two_node):
    baseline = BaselineHandle.run(two_node, create_steady_config(tolerance=1e-10))
    solve = sensitivity.run_simulation

    def diverges_above_nominal_load(snapshot, config):
        if snapshot.heat_load('q').value > 10.0:
            raise NumericalInstabilityError('temperature became NaN', time=0.0)
        return solve(snapshot, config)

    monkeypatch.setattr(sensitivity, 'run_simulation', diverges_above_nominal_load)
    progress = []
    matrix = SensitivityEngine(baseline, max_workers=1).compute(
        [LOAD, CONDUCTANCE], progress=lambda done, total: progress.append((done, total)))
    assert 'NumericalInstabilityError' in matrix.failures[LOAD]
    assert matrix.for_parameter(LOAD) == []
    assert matrix.derivative(CONDUCTANCE, 'hot') == pytest.approx((10.0 / 1.05 - 10.0) / 0.05, rel=1e-6)
    assert progress[-1] == (4, 4)


def test_what_if_refuses_failed_parameters(monkeypatch, two_node):
    baseline = BaselineHandle.run(two_node, create_steady_config(tolerance=1e-10))
    monkeypatch.setattr(sensitivity, 'run_simulation', _always_diverges)
    matrix = SensitivityEngine(baseline, max_workers=1).compute([LOAD])
    with pytest.raises(ThermalEngineError, match=LOAD):
        reconstruct(matrix, {LOAD: -0.5})


def _always_diverges(snapshot, config):
    raise NumericalInstabilityError('temperature became NaN', time=0.0)


def test_choose_stencil_stays_in_range():
    assert choose_stencil(0.5, 0.025, (0.0, 1.0)) == Stencil.CENTRAL
    assert choose_stencil(1.0, 0.05, (0.0, 1.0)) == Stencil.BACKWARD
    assert choose_stencil(0.0, 1e-10, (0.0, math.inf)) == Stencil.FORWARD


def test_view_factor_at_its_limit_is_stepped_backward():
    snapshot = radiator_network()
    baseline = BaselineHandle.run(snapshot, create_steady_config(tolerance=1e-10))
    t0 = baseline.temperatures()['radiator']
    matrix = SensitivityEngine(baseline, max_workers=1).compute([VIEW_FACTOR, 'heat_load:q:value'])
    assert matrix.failures == {}

    entry = matrix.for_parameter(VIEW_FACTOR)[0]
    assert entry.stencil == 'backward'
    # T ~ F^-1/4 for a radiator to deep space
    assert entry.dT_dp == pytest.approx(-0.25 * t0, rel=0.05)

    what_if = reconstruct(matrix, {VIEW_FACTOR: -0.1})
    exact = run_simulation(apply_deltas(snapshot, {VIEW_FACTOR: -0.1}),
                           create_steady_config(tolerance=1e-10)).final_temperatures()['radiator']
    assert what_if.temperatures['radiator'] != t0
    assert what_if.temperatures['radiator'] == pytest.approx(exact, abs=0.5)


def test_conductance_of_zero_is_stepped_forward():
    snapshot = two_node_network()
    spare = Conductor('spare', 'linear', 'hot', 'sink', conductance=0.0)
    snapshot = replace(snapshot, conductors=snapshot.conductors + (spare,))
    baseline = BaselineHandle.run(snapshot, create_steady_config(tolerance=1e-10))
    matrix = SensitivityEngine(baseline, max_workers=1).compute(['conductor:spare:conductance'])
    assert matrix.failures == {}
    entry = matrix.for_parameter('conductor:spare:conductance')[0]
    assert entry.stencil == 'forward'
    # T = 200 + 10 / (1 + g)
    assert entry.dT_dp == pytest.approx(-10.0, rel=1e-2)


def test_process_pool_matches_inline(two_node):
    baseline = BaselineHandle.run(two_node, create_steady_config(tolerance=1e-10))
    inline = SensitivityEngine(baseline, max_workers=1).compute([LOAD, CONDUCTANCE])
    pooled = SensitivityEngine(baseline, max_workers=2).compute([LOAD, CONDUCTANCE])
    assert [e.dT_dp for e in pooled.entries] == [e.dT_dp for e in inline.entries]
