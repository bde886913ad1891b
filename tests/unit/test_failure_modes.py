import pytest

from thermal_engine.core.config import create_leo_orbit, create_steady_config
from thermal_engine.core.errors import ValidationError
from thermal_engine.core.network import (
    Conductor,
    ConductorKind,
    HeatLoad,
    NetworkSnapshot,
    Node,
    OrbitalLoadParams,
    SurfaceType,
)
from thermal_engine.analysis.design_space import ExplorationConstraint
from thermal_engine.analysis.failure_modes import (
    FailureModeParams,
    FailureScenario,
    FailureType,
    apply_failure_mode,
    run_failure_analysis,
)


@pytest.fixture
def spacecraft():
    return NetworkSnapshot(
        nodes=(
            Node('box', 'diffusion', temperature=290.0, capacitance=800.0, emissivity=0.05, absorptivity=0.2),
            Node('panel', 'diffusion', temperature=280.0, capacitance=300.0, emissivity=0.85, absorptivity=0.3),
            Node('space', 'boundary', temperature=3.0, boundary_temp=3.0),
        ),
        conductors=(
            Conductor('strap', 'heat_pipe', 'box', 'panel', conductance_data=((200.0, 1.0), (400.0, 3.0))),
            Conductor('mli', 'radiation', 'box', 'space', area=0.5, view_factor=1.0, emissivity=0.03),
            Conductor('rad', 'radiation', 'panel', 'space', area=0.4, view_factor=1.0, emissivity=0.85),
        ),
        heat_loads=(
            HeatLoad('heater', 'box', 'constant', value=20.0),
            HeatLoad('duty', 'box', 'time_varying', time_values=((0.0, 4.0), (600.0, 8.0))),
            HeatLoad('sun', 'panel', 'orbital',
                     orbital_params=OrbitalLoadParams('solar', absorptivity=0.3, emissivity=0.85, area=0.4)),
        ),
        orbital=create_leo_orbit(),
    )


def test_heater_failure_zeroes_the_load(spacecraft):
    failed = apply_failure_mode(spacecraft, 'heater_failure', FailureModeParams(heat_load_id='heater'))
    assert failed.heat_load('heater').value == 0.0
    assert spacecraft.heat_load('heater').value == 20.0

    failed = apply_failure_mode(spacecraft, FailureType.HEATER_FAILURE, FailureModeParams(heat_load_id='duty'))
    assert all(v == 0.0 for _, v in failed.heat_load('duty').time_values)


def test_heater_failure_requires_a_heater(spacecraft):
    with pytest.raises(ValidationError):
        apply_failure_mode(spacecraft, 'heater_failure')
    with pytest.raises(ValidationError):
        apply_failure_mode(spacecraft, 'heater_failure', FailureModeParams(heat_load_id='sun'))
    with pytest.raises(ValidationError):
        apply_failure_mode(spacecraft, 'heater_failure', FailureModeParams(heat_load_id='missing'))


def test_mli_degradation_only_touches_low_emissivity(spacecraft):
    failed = apply_failure_mode(spacecraft, 'mli_degradation', FailureModeParams(degradation_factor=4.0))
    assert failed.node('box').emissivity == pytest.approx(0.2)
    assert failed.node('panel').emissivity == 0.85
    assert failed.conductor('mli').emissivity == pytest.approx(0.12)
    assert failed.conductor('rad').emissivity == 0.85


def test_mli_degradation_is_capped():
    node = Node('blanket', 'diffusion', temperature=290.0, capacitance=1.0, emissivity=0.09)
    snapshot = NetworkSnapshot(nodes=(node,))
    failed = apply_failure_mode(snapshot, 'mli_degradation', FailureModeParams(degradation_factor=50.0))
    assert failed.node('blanket').emissivity == 0.99


def test_coating_degradation_raises_absorptivity_of_sunlit_surfaces(spacecraft):
    failed = apply_failure_mode(spacecraft, 'coating_degradation_eol', FailureModeParams(absorptance_delta=0.1))
    assert failed.node('panel').absorptivity == pytest.approx(0.4)
    assert failed.heat_load('sun').orbital_params.absorptivity == pytest.approx(0.4)
    assert failed.node('box').absorptivity == 0.2


def test_tumble_spreads_solar_input(spacecraft):
    failed = apply_failure_mode(spacecraft, 'attitude_loss_tumble')
    params = failed.heat_load('sun').orbital_params
    assert params.surface_type == SurfaceType.CUSTOM
    assert params.surface_normal is None
    assert params.absorptivity == pytest.approx(0.3 / 6)


def test_power_budget_reduction_scales_internal_loads(spacecraft):
    failed = apply_failure_mode(spacecraft, 'power_budget_reduction', FailureModeParams(power_scale_factor=0.25))
    assert failed.heat_load('heater').value == pytest.approx(5.0)
    assert failed.heat_load('duty').time_values == ((0.0, 1.0), (600.0, 2.0))
    assert failed.heat_load('sun') == spacecraft.heat_load('sun')


def test_conductor_failure(spacecraft):
    failed = apply_failure_mode(spacecraft, 'conductor_failure', FailureModeParams(conductor_id='strap'))
    strap = failed.conductor('strap')
    assert strap.kind == ConductorKind.LINEAR
    assert strap.conductance == 0.0

    failed = apply_failure_mode(spacecraft, 'conductor_failure', FailureModeParams(conductor_id='rad'))
    assert failed.conductor('rad').view_factor == 0.0

    with pytest.raises(ValidationError):
        apply_failure_mode(spacecraft, 'conductor_failure', FailureModeParams(conductor_id='nope'))


def test_component_power_spike(spacecraft):
    failed = apply_failure_mode(spacecraft, 'component_power_spike',
                                FailureModeParams(node_id='box', spike_factor=3.0))
    assert failed.heat_load('heater').value == pytest.approx(60.0)
    assert failed.heat_load('duty').time_values[1][1] == pytest.approx(24.0)
    with pytest.raises(ValidationError):
        apply_failure_mode(spacecraft, 'component_power_spike', FailureModeParams(node_id='ghost'))


def test_failure_analysis_compares_against_nominal(spacecraft):
    scenarios = [
        FailureScenario('heater off', 'heater_failure', FailureModeParams(heat_load_id='heater')),
        FailureScenario('spike', 'component_power_spike', FailureModeParams(node_id='box')),
        FailureScenario('bad id', 'conductor_failure', FailureModeParams(conductor_id='nope')),
    ]
    constraints = [ExplorationConstraint('box', temp_min=150.0, temp_max=400.0)]
    results = run_failure_analysis(spacecraft, create_steady_config(tolerance=1e-8), scenarios,
                                   constraints, max_workers=1)
    assert [r.scenario.name for r in results] == ['heater off', 'spike', 'bad id']

    heater_off, spike, bad = results
    assert heater_off.peak_deltas['box'] < 0.0
    assert spike.peak_deltas['box'] > 0.0
    assert spike.worst_node == 'box'
    assert bad.sample.errored
    assert not bad.feasible
    assert 'ValidationError' in bad.sample.error
