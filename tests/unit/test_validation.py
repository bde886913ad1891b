import pytest

from thermal_engine.core.config import (
    OrbitalConfig,
    OrbitType,
    SimulationConfig,
    create_geo_orbit,
    create_heo_orbit,
    create_leo_orbit,
    create_steady_config,
)
from thermal_engine.core.errors import ValidationError
from thermal_engine.core.network import (
    Conductor,
    HeatLoad,
    Material,
    NetworkSnapshot,
    Node,
    OrbitalLoadParams,
    capacitance_from_material,
)
from thermal_engine.core.results import RunStatus
from thermal_engine.core.validation import network_problems, validate_network
from thermal_engine.solver.simulator import ThermalSimulator


def test_valid_network_passes(two_node):
    assert network_problems(two_node) == []
    validate_network(two_node)


def test_diffusion_node_requires_capacitance():
    snapshot = NetworkSnapshot(nodes=(Node('a', 'diffusion', temperature=300.0),))
    with pytest.raises(ValidationError) as info:
        validate_network(snapshot)
    assert 'capacitance' in str(info.value)


def test_arithmetic_node_must_not_carry_capacitance():
    snapshot = NetworkSnapshot(nodes=(Node('a', 'arithmetic', temperature=300.0, capacitance=5.0),))
    assert any('must not carry capacitance' in p for p in network_problems(snapshot))


def test_boundary_node_requires_temperature():
    snapshot = NetworkSnapshot(nodes=(Node('b', 'boundary', temperature=300.0),))
    assert any('boundary_temp' in p for p in network_problems(snapshot))


def test_dangling_endpoint_and_self_loop_reported():
    snapshot = NetworkSnapshot(
        nodes=(Node('a', 'diffusion', temperature=300.0, capacitance=1.0),),
        conductors=(
            Conductor('c1', 'linear', 'a', 'ghost', conductance=1.0),
            Conductor('c2', 'linear', 'a', 'a', conductance=1.0),
        ),
    )
    problems = network_problems(snapshot)
    assert any("dangling endpoint 'ghost'" in p for p in problems)
    assert any('self-loop' in p for p in problems)


def test_conductor_fields_must_match_kind():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('a', 'diffusion', temperature=300.0, capacitance=1.0),
            Node('b', 'boundary', temperature=3.0, boundary_temp=3.0),
        ),
        conductors=(Conductor('r', 'radiation', 'a', 'b', conductance=2.0,
                              area=1.0, view_factor=0.5, emissivity=0.8),),
    )
    problems = network_problems(snapshot)
    assert any("field 'conductance' not allowed on radiation" in p for p in problems)


def test_heat_pipe_table_must_be_strictly_increasing():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('a', 'diffusion', temperature=300.0, capacitance=1.0),
            Node('b', 'boundary', temperature=250.0, boundary_temp=250.0),
        ),
        conductors=(Conductor('hp', 'heat_pipe', 'a', 'b',
                              conductance_data=((300.0, 2.0), (300.0, 3.0))),),
    )
    assert any('strictly increasing' in p for p in network_problems(snapshot))


def test_view_factor_out_of_range():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('a', 'diffusion', temperature=300.0, capacitance=1.0),
            Node('b', 'boundary', temperature=3.0, boundary_temp=3.0),
        ),
        conductors=(Conductor('r', 'radiation', 'a', 'b', area=1.0, view_factor=1.5, emissivity=0.8),),
    )
    assert any('view_factor' in p for p in network_problems(snapshot))


def test_orbital_load_requires_orbital_config():
    snapshot = NetworkSnapshot(
        nodes=(Node('a', 'diffusion', temperature=300.0, capacitance=1.0),),
        heat_loads=(HeatLoad('sun', 'a', 'orbital',
                             orbital_params=OrbitalLoadParams('solar', 0.3, 0.8, 0.1)),),
    )
    assert any('orbital configuration' in p for p in network_problems(snapshot))


def test_every_problem_is_reported_at_once():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('a', 'diffusion', temperature=300.0),
            Node('a', 'boundary', temperature=300.0),
        ),
    )
    with pytest.raises(ValidationError) as info:
        validate_network(snapshot)
    assert len(info.value.problems) >= 3


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        raise ValidationError("bad")


def test_simulator_rejects_malformed_network_before_running():
    snapshot = NetworkSnapshot(nodes=(Node('a', 'diffusion', temperature=300.0),))
    sim = ThermalSimulator(snapshot, create_steady_config())
    with pytest.raises(ValidationError):
        sim.run()
    assert sim.status == RunStatus.FAILED
    assert sim.result.status == RunStatus.FAILED


def test_transient_config_requires_step_within_limits():
    with pytest.raises(ValidationError):
        SimulationConfig(time_step=500.0, max_step=100.0)
    with pytest.raises(ValidationError):
        SimulationConfig(time_start=100.0, time_end=50.0)


def test_leo_altitude_limits():
    create_leo_orbit(altitude_km=400.0)
    with pytest.raises(ValidationError):
        OrbitalConfig(orbit_type=OrbitType.LEO, altitude_km=100.0)
    with pytest.raises(ValidationError):
        OrbitalConfig(orbit_type=OrbitType.LEO, altitude_km=5000.0)


def test_geo_requires_low_inclination():
    # Sidereal day
    assert create_geo_orbit().period_s == pytest.approx(86164.0, rel=1e-3)
    with pytest.raises(ValidationError):
        OrbitalConfig(orbit_type=OrbitType.GEO, altitude_km=35786.0, inclination_deg=40.0)


def test_heo_requires_apogee_above_perigee():
    create_heo_orbit()
    with pytest.raises(ValidationError):
        create_heo_orbit(perigee_km=20000.0, apogee_km=10000.0)


def test_node_material_must_resolve():
    aluminium = Material('al6061', 'Aluminium 6061', density=2700.0, specific_heat=896.0, conductivity=167.0)
    node = Node('bracket', 'diffusion', temperature=293.0,
                capacitance=capacitance_from_material(0.5, aluminium), material_id='al6061')
    assert node.capacitance == pytest.approx(448.0)

    assert network_problems(NetworkSnapshot(nodes=(node,), materials=(aluminium,))) == []
    problems = network_problems(NetworkSnapshot(nodes=(node,)))
    assert any("unknown material 'al6061'" in p for p in problems)
