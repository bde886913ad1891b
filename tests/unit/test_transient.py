import math

import numpy as np
import pytest
from scipy import sparse

from networks import radiator_network, two_node_network
from thermal_engine.core.config import SimulationConfig, SolverMethod, create_transient_config
from thermal_engine.core.errors import ConvergenceError, NumericalInstabilityError, SolverTimeoutError
from thermal_engine.core.network import Conductor, HeatLoad, NetworkSnapshot, Node
from thermal_engine.solver.energy_balance import energy_balance
from thermal_engine.solver.integrators import BackwardEuler, RichardsonRK4
from thermal_engine.solver.simulator import run_simulation
from thermal_engine.solver.transient import output_times


def _isolated_block(power=25.0, capacitance=500.0, initial=293.15):
    return NetworkSnapshot(
        nodes=(Node('block', 'diffusion', temperature=initial, capacitance=capacitance),),
        heat_loads=(HeatLoad('q', 'block', 'constant', value=power),),
    )


def test_adiabatic_heating_is_linear_in_time():
    result = run_simulation(_isolated_block(), create_transient_config(duration_s=1000.0, output_interval=100.0))
    history = result.temperature_history('block')
    expected = 293.15 + 25.0 * history.times / 500.0
    assert history.temperatures == pytest.approx(expected, abs=1e-9)


def test_lumped_cooling_matches_exponential():
    snapshot = two_node_network(power=0.0, conductance=1.0, sink=300.0, initial=350.0, capacitance=1000.0)
    result = run_simulation(snapshot, create_transient_config(duration_s=2000.0, tolerance=1e-6))
    history = result.temperature_history('hot')
    expected = 300.0 + 50.0 * np.exp(-history.times / 1000.0)
    assert history.temperatures == pytest.approx(expected, rel=1e-6)


def test_output_times_are_independent_of_step():
    config = SimulationConfig(time_end=1000.0, time_step=7.0, output_interval=300.0)
    assert list(output_times(config)) == [0.0, 300.0, 600.0, 900.0, 1000.0]

    result = run_simulation(two_node_network(), config)
    assert list(result.times) == [0.0, 300.0, 600.0, 900.0, 1000.0]
    assert len(result.temperature_history('hot').temperatures) == 5


def test_output_grid_with_offset_start():
    config = SimulationConfig(time_start=100.0, time_end=400.0, time_step=10.0, output_interval=100.0)
    assert list(output_times(config)) == [100.0, 200.0, 300.0, 400.0]


def test_stiff_network_with_large_min_step_is_unstable():
    snapshot = two_node_network(power=0.0, conductance=10.0, capacitance=1e-3, initial=350.0)
    config = SimulationConfig(time_end=10.0, time_step=1.0, min_step=1.0, max_step=1.0,
                              output_interval=1.0, tolerance=1e-6)
    with pytest.raises(NumericalInstabilityError) as info:
        run_simulation(snapshot, config)
    assert info.value.time == 0.0
    assert info.value.last_state['hot'] == pytest.approx(350.0)


def test_step_budget_raises_solver_timeout():
    config = SimulationConfig(time_end=10000.0, time_step=1.0, max_step=1.0, output_interval=100.0,
                              max_steps=3)
    with pytest.raises(SolverTimeoutError):
        run_simulation(two_node_network(), config)


def test_solver_timeout_is_a_convergence_error():
    assert issubclass(SolverTimeoutError, ConvergenceError)


def test_arithmetic_node_stays_balanced_during_transient():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('box', 'diffusion', temperature=350.0, capacitance=200.0),
            Node('bracket', 'arithmetic', temperature=300.0),
            Node('sink', 'boundary', temperature=250.0, boundary_temp=250.0),
        ),
        conductors=(
            Conductor('a', 'linear', 'box', 'bracket', conductance=2.0),
            Conductor('b', 'linear', 'bracket', 'sink', conductance=1.0),
        ),
    )
    result = run_simulation(snapshot, create_transient_config(duration_s=600.0, tolerance=1e-6))
    box = result.temperature_history('box').temperatures
    bracket = result.temperature_history('bracket').temperatures
    assert bracket == pytest.approx((2.0 * box + 250.0) / 3.0, abs=1e-5)
    # Series conductance 2/3 W/K
    expected = 250.0 + 100.0 * math.exp(-(2.0 / 3.0) * 600.0 / 200.0)
    assert box[-1] == pytest.approx(expected, rel=1e-5)


def test_radiating_arithmetic_node():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('box', 'diffusion', temperature=300.0, capacitance=500.0),
            Node('skin', 'arithmetic', temperature=250.0),
            Node('space', 'boundary', temperature=3.0, boundary_temp=3.0),
        ),
        conductors=(
            Conductor('a', 'linear', 'box', 'skin', conductance=5.0),
            Conductor('r', 'radiation', 'skin', 'space', area=0.5, view_factor=1.0, emissivity=0.9),
        ),
    )
    result = run_simulation(snapshot, create_transient_config(duration_s=300.0, tolerance=1e-5))
    box = result.final_temperatures()['box']
    skin = result.final_temperatures()['skin']
    conducted = 5.0 * (box - skin)
    radiated = 5.670374419e-8 * 0.9 * 0.5 * (skin**4 - 3.0**4)
    assert conducted == pytest.approx(radiated, rel=1e-5)


def test_boundary_schedule_drives_node():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('plate', 'diffusion', temperature=300.0, capacitance=10.0),
            Node('env', 'boundary', temperature=300.0, boundary_schedule=((0.0, 300.0), (600.0, 360.0))),
        ),
        conductors=(Conductor('g', 'linear', 'plate', 'env', conductance=1.0),),
    )
    result = run_simulation(snapshot, create_transient_config(duration_s=1200.0, tolerance=1e-5))
    env = result.temperature_history('env').temperatures
    assert env[0] == 300.0
    assert env[-1] == pytest.approx(360.0)
    assert result.final_temperatures()['plate'] == pytest.approx(360.0, abs=0.01)


def test_time_varying_load_is_interpolated():
    snapshot = NetworkSnapshot(
        nodes=(Node('block', 'diffusion', temperature=300.0, capacitance=100.0),),
        heat_loads=(HeatLoad('ramp', 'block', 'time_varying', time_values=((0.0, 0.0), (100.0, 10.0))),),
    )
    result = run_simulation(snapshot, SimulationConfig(time_end=200.0, time_step=5.0, output_interval=100.0))
    # 500 J in the ramp, then 10 W for 100 s
    assert result.final_temperatures()['block'] == pytest.approx(300.0 + (500.0 + 1000.0) / 100.0, abs=1e-6)


def test_progress_callback_reaches_completion():
    seen = []
    run_simulation(two_node_network(), create_transient_config(duration_s=600.0),
                   progress_callback=lambda fraction, message: seen.append(fraction))
    assert seen[-1] == pytest.approx(1.0)
    assert seen == sorted(seen)


def test_energy_balance_error_shrinks_with_tolerance():
    coarse = energy_balance(run_simulation(radiator_network(), create_transient_config(
        duration_s=3000.0, tolerance=1e-1, output_interval=300.0))).relative_error
    fine = energy_balance(run_simulation(radiator_network(), create_transient_config(
        duration_s=3000.0, tolerance=1e-6, output_interval=300.0))).relative_error
    assert fine <= coarse
    assert fine < 1e-4


def test_diagnostics_record_step_statistics():
    result = run_simulation(two_node_network(), create_transient_config(duration_s=600.0))
    diagnostics = result.diagnostics
    assert diagnostics['steps_accepted'] > 0
    assert diagnostics['min_dt'] <= diagnostics['max_dt'] <= 120.0


def test_richardson_step_on_exponential():
    step = RichardsonRK4(lambda t, y: -y).attempt(0.0, np.array([1.0]), 0.1)
    assert step.y[0] == pytest.approx(math.exp(-0.1), abs=1e-9)
    assert 0.0 < step.error < 1e-7


def test_backward_euler_step_on_exponential():
    stepper = BackwardEuler(lambda t, x: -x, lambda t, x: -sparse.identity(1, format='csc'), np.ones(1))
    step = stepper.attempt(0.0, np.array([1.0]), 0.5, tolerance=1e-12)
    assert step.converged
    assert step.x[0] == pytest.approx(1.0 / 1.5)
    assert step.iterations <= 2


def _stiff_config(method):
    return SimulationConfig(time_end=10.0, time_step=1.0, min_step=1.0, max_step=1.0,
                            output_interval=1.0, tolerance=1e-6, solver_method=method)


def test_implicit_euler_solves_network_too_stiff_for_rk4():
    snapshot = two_node_network(power=0.0, conductance=10.0, capacitance=1e-3, initial=350.0)
    with pytest.raises(NumericalInstabilityError):
        run_simulation(snapshot, _stiff_config(SolverMethod.RK4))

    result = run_simulation(snapshot, _stiff_config(SolverMethod.IMPLICIT_EULER))
    hot = result.temperature_history('hot').temperatures
    assert hot[1] == pytest.approx((1e-3 * 350.0 + 10.0 * 200.0) / (1e-3 + 10.0))
    assert hot[-1] == pytest.approx(200.0, abs=1e-9)
    assert np.all(np.diff(hot) <= 1e-9)
    assert result.diagnostics['newton_iterations'] >= result.diagnostics['steps_accepted']


def test_implicit_euler_tracks_slow_mode_behind_stiff_node():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('chip', 'diffusion', temperature=400.0, capacitance=0.01),
            Node('board', 'diffusion', temperature=300.0, capacitance=1000.0),
            Node('frame', 'boundary', temperature=300.0, boundary_temp=300.0),
        ),
        conductors=(
            Conductor('die', 'linear', 'chip', 'board', conductance=100.0),
            Conductor('mount', 'linear', 'board', 'frame', conductance=1.0),
        ),
        heat_loads=(HeatLoad('q', 'chip', 'constant', value=5.0),),
    )
    config = SimulationConfig(time_end=2000.0, time_step=1.0, max_step=50.0, output_interval=100.0,
                              solver_method=SolverMethod.IMPLICIT_EULER)
    result = run_simulation(snapshot, config)
    final = result.final_temperatures()
    # Lumped board time constant of about 1000 s towards 305 K
    assert final['board'] == pytest.approx(305.0 - 5.0 * math.exp(-2.0), abs=0.1)
    assert final['chip'] - final['board'] == pytest.approx(0.05, abs=1e-3)
    assert result.diagnostics['max_dt'] == pytest.approx(50.0)
    assert result.energy_balance_error < 1e-6


def test_implicit_euler_balances_arithmetic_nodes():
    snapshot = NetworkSnapshot(
        nodes=(
            Node('box', 'diffusion', temperature=350.0, capacitance=200.0),
            Node('bracket', 'arithmetic', temperature=300.0),
            Node('sink', 'boundary', temperature=250.0, boundary_temp=250.0),
        ),
        conductors=(
            Conductor('a', 'linear', 'box', 'bracket', conductance=2.0),
            Conductor('b', 'linear', 'bracket', 'sink', conductance=1.0),
        ),
    )
    config = SimulationConfig(time_end=600.0, time_step=2.0, max_step=2.0, output_interval=60.0,
                              solver_method=SolverMethod.IMPLICIT_EULER)
    result = run_simulation(snapshot, config)
    box = result.temperature_history('box').temperatures
    bracket = result.temperature_history('bracket').temperatures
    assert bracket == pytest.approx((2.0 * box + 250.0) / 3.0, abs=1e-5)
    expected = 250.0 + 100.0 * math.exp(-(2.0 / 3.0) * 600.0 / 200.0)
    assert box[-1] == pytest.approx(expected, abs=0.5)


@pytest.mark.parametrize('method', [SolverMethod.RK4, SolverMethod.IMPLICIT_EULER])
def test_adiabatic_energy_balance_vanishes_as_step_shrinks(method):
    errors = []
    for max_step, tolerance in ((120.0, 1e-2), (20.0, 1e-4), (2.0, 1e-6)):
        config = SimulationConfig(time_end=1000.0, time_step=min(10.0, max_step), max_step=max_step,
                                  output_interval=100.0, tolerance=tolerance, solver_method=method)
        result = run_simulation(_isolated_block(), config)
        errors.append(energy_balance(result).relative_error)
    assert all(e < 1e-9 for e in errors)
    assert errors[-1] <= errors[0] + 1e-12
