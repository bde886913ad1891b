import numpy as np
import pytest

from thermal_engine.core.config import create_steady_config
from thermal_engine.core.errors import ValidationError
from thermal_engine.analysis.design_space import (
    DesignSpaceExplorer,
    ExplorationConfig,
    ExplorationConstraint,
    ExplorationParameter,
    NodeStats,
    SamplingMethod,
    check_feasibility,
    generate_samples,
    latin_hypercube_sample,
)

LOAD = ExplorationParameter('heat_load', 'q', 'value', 5.0, 15.0)
CONDUCTANCE = ExplorationParameter('conductor', 'g', 'conductance', 0.5, 2.0)
HOT_LIMIT = ExplorationConstraint('hot', temp_max=212.0)


@pytest.fixture
def explorer(two_node):
    return DesignSpaceExplorer(two_node, create_steady_config(tolerance=1e-9), max_workers=1)


def test_latin_hypercube_is_stratified():
    samples = latin_hypercube_sample([LOAD, CONDUCTANCE], 10, seed=3)
    assert samples.shape == (10, 2)
    bins = np.floor((samples[:, 0] - 5.0) / 1.0).astype(int)
    assert sorted(bins) == list(range(10))
    assert np.all((samples[:, 1] >= 0.5) & (samples[:, 1] <= 2.0))


def test_zero_width_range_is_constant():
    fixed = ExplorationParameter('heat_load', 'q', 'value', 10.0, 10.0)
    samples = latin_hypercube_sample([fixed, CONDUCTANCE], 5, seed=1)
    assert np.all(samples[:, 0] == 10.0)


def test_seeded_sampling_is_reproducible():
    config = ExplorationConfig([LOAD, CONDUCTANCE], num_samples=8, seed=42)
    assert generate_samples(config) == generate_samples(config)
    other = ExplorationConfig([LOAD, CONDUCTANCE], num_samples=8, seed=43)
    assert generate_samples(config) != generate_samples(other)


def test_random_sampling_stays_in_bounds():
    config = ExplorationConfig([LOAD], num_samples=50, method=SamplingMethod.RANDOM, seed=0)
    values = [s[LOAD.key] for s in generate_samples(config)]
    assert len(values) == 50
    assert min(values) >= 5.0 and max(values) <= 15.0


def test_grid_sampling_takes_every_combination():
    load = ExplorationParameter('heat_load', 'q', 'value', 5.0, 15.0, num_levels=3)
    g = ExplorationParameter('conductor', 'g', 'conductance', 1.0, 2.0, num_levels=2)
    samples = generate_samples(ExplorationConfig([load, g], method='grid'))
    assert len(samples) == 6
    assert {s[load.key] for s in samples} == {5.0, 10.0, 15.0}


def test_config_validation():
    with pytest.raises(ValidationError):
        ExplorationParameter('heat_load', 'q', 'value', 2.0, 1.0)
    with pytest.raises(ValidationError):
        ExplorationConfig([])
    with pytest.raises(ValidationError):
        ExplorationConfig([LOAD, LOAD])
    with pytest.raises(ValidationError):
        ExplorationConfig([LOAD], num_samples=0)


def test_feasibility_checks_both_bounds():
    stats = {'hot': NodeStats('hot', 250.0, 300.0, 275.0)}
    assert check_feasibility(stats, [ExplorationConstraint('hot', 240.0, 310.0)]) == []
    violations = check_feasibility(stats, [ExplorationConstraint('hot', 260.0, 290.0)])
    assert len(violations) == 2


def test_exploration_flags_infeasible_samples(explorer):
    result = explorer.explore(ExplorationConfig([LOAD, CONDUCTANCE], [HOT_LIMIT], num_samples=20, seed=5))
    assert len(result.samples) == 20
    for sample in result.samples:
        q, g = sample.values[LOAD.key], sample.values[CONDUCTANCE.key]
        assert sample.node_stats['hot'].max_temp == pytest.approx(200.0 + q / g, abs=1e-6)
        assert sample.feasible == (200.0 + q / g <= 212.0)
    assert 0.0 < result.feasible_fraction < 1.0
    best = result.best('hot')
    assert best.node_stats['hot'].max_temp == min(s.node_stats['hot'].max_temp for s in result.feasible)


def test_failed_sample_does_not_stop_the_batch(explorer):
    g = ExplorationParameter('conductor', 'g', 'conductance', 0.0, 1.0, num_levels=3)
    progress = []
    result = explorer.explore(ExplorationConfig([g], [HOT_LIMIT], method=SamplingMethod.GRID),
                              progress=lambda done, total: progress.append(done))
    errored = result.errored
    assert len(errored) == 1
    assert errored[0].values[g.key] == 0.0
    assert not errored[0].feasible
    assert 'NumericalInstabilityError' in errored[0].error
    assert [s.index for s in result.samples] == [0, 1, 2]
    assert result.samples[2].feasible
    assert progress == [1, 2, 3]


def test_unknown_parameter_fails_before_running(explorer):
    missing = ExplorationParameter('conductor', 'nope', 'conductance', 0.5, 1.0)
    with pytest.raises(ValidationError):
        explorer.explore(ExplorationConfig([missing]))


def test_results_do_not_depend_on_worker_count(two_node):
    config = ExplorationConfig([LOAD, CONDUCTANCE], [HOT_LIMIT], num_samples=6, seed=11)
    steady = create_steady_config(tolerance=1e-9)
    serial = DesignSpaceExplorer(two_node, steady, max_workers=1).explore(config)
    pooled = DesignSpaceExplorer(two_node, steady, max_workers=2).explore(config)
    assert [s.values for s in pooled.samples] == [s.values for s in serial.samples]
    assert [s.max_temperature for s in pooled.samples] == [s.max_temperature for s in serial.samples]
    assert [s.feasible for s in pooled.samples] == [s.feasible for s in serial.samples]
