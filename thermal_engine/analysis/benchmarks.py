"""
Analytical Benchmarks
=====================

Small networks with closed-form answers, solved with the engine and
compared against the exact result. A case passes when the solver is
within 0.1 % of the analytical value (the view-factor case is judged
against its Monte Carlo standard error instead).
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..core.config import SimulationConfig, create_steady_config, create_transient_config
from ..core.network import Conductor, HeatLoad, NetworkSnapshot, Node
from ..radiation.geometry import parallel_plates_view_factor, rectangle_surface
from ..radiation.monte_carlo import MonteCarloViewFactor
from ..solver.conductance import STEFAN_BOLTZMANN
from ..solver.energy_balance import PASS_THRESHOLD_PERCENT
from ..solver.simulator import run_simulation
from ..utils.logger import get_logger

# Standard errors allowed between the Monte Carlo and exact view factor
VIEW_FACTOR_SIGMAS = 3.0


@dataclass
class BenchmarkResult:
    """One analytical case."""
    name: str
    description: str
    analytical: float
    computed: float
    unit: str
    tolerance_percent: float
    energy_balance_error: Optional[float] = None
    duration_s: float = 0.0

    @property
    def error(self) -> float:
        return self.computed - self.analytical

    @property
    def error_percent(self) -> float:
        return 100.0 * abs(self.error) / abs(self.analytical)

    @property
    def passed(self) -> bool:
        return self.error_percent <= self.tolerance_percent

    def as_row(self) -> Dict:
        return {
            'name': self.name,
            'analytical': self.analytical,
            'computed': self.computed,
            'unit': self.unit,
            'error_percent': self.error_percent,
            'tolerance_percent': self.tolerance_percent,
            'energy_balance_error': self.energy_balance_error,
            'passed': self.passed,
        }


def _steady_case(name: str, description: str, snapshot: NetworkSnapshot, node_id: str,
                 analytical: float) -> BenchmarkResult:
    start = time.perf_counter()
    result = run_simulation(snapshot, create_steady_config(tolerance=1e-8, max_iterations=500))
    return BenchmarkResult(
        name=name,
        description=description,
        analytical=analytical,
        computed=result.final_temperatures()[node_id],
        unit='K',
        tolerance_percent=PASS_THRESHOLD_PERCENT,
        energy_balance_error=result.energy_balance_error,
        duration_s=time.perf_counter() - start,
    )


def _transient_case(name: str, description: str, snapshot: NetworkSnapshot, node_id: str,
                    config: SimulationConfig, analytical: float) -> BenchmarkResult:
    start = time.perf_counter()
    result = run_simulation(snapshot, config)
    return BenchmarkResult(
        name=name,
        description=description,
        analytical=analytical,
        computed=result.final_temperatures()[node_id],
        unit='K',
        tolerance_percent=PASS_THRESHOLD_PERCENT,
        energy_balance_error=result.energy_balance_error,
        duration_s=time.perf_counter() - start,
    )


def two_node_conduction(power: float = 10.0, conductance: float = 1.0,
                        sink: float = 200.0) -> BenchmarkResult:
    """Heated node tied to a fixed sink: T = T_sink + Q / G."""
    snapshot = NetworkSnapshot(
        nodes=(
            Node('hot', 'diffusion', temperature=300.0, capacitance=100.0),
            Node('sink', 'boundary', temperature=sink, boundary_temp=sink),
        ),
        conductors=(Conductor('g', 'linear', 'hot', 'sink', conductance=conductance),),
        heat_loads=(HeatLoad('q', 'hot', 'constant', value=power),),
    )
    return _steady_case('two_node_conduction', 'Q into a node linked to a sink',
                        snapshot, 'hot', sink + power / conductance)


def heat_pipe(power: float = 50.0, sink: float = 250.0,
              g_low: float = 2.0, g_high: float = 6.0,
              t_low: float = 200.0, t_high: float = 400.0) -> BenchmarkResult:
    """
    Heat pipe with conductance linear in temperature.

    G(T) = g_low + s (T - t_low) evaluated at the hot end, so the
    equilibrium solves the quadratic (g0 + s x) x = Q with x = T - T_sink.
    """
    slope = (g_high - g_low) / (t_high - t_low)
    g0 = g_low + slope * (sink - t_low)
    x = (-g0 + math.sqrt(g0 * g0 + 4 * slope * power)) / (2 * slope)
    snapshot = NetworkSnapshot(
        nodes=(
            Node('evaporator', 'diffusion', temperature=280.0, capacitance=100.0),
            Node('condenser', 'boundary', temperature=sink, boundary_temp=sink),
        ),
        conductors=(Conductor('hp', 'heat_pipe', 'evaporator', 'condenser',
                              conductance_data=((t_low, g_low), (t_high, g_high))),),
        heat_loads=(HeatLoad('q', 'evaporator', 'constant', value=power),),
    )
    return _steady_case('heat_pipe', 'Temperature-dependent heat pipe to a sink',
                        snapshot, 'evaporator', sink + x)


def radiation_to_space(power: float = 100.0, emissivity: float = 0.85, area: float = 1.0,
                       space: float = 3.0) -> BenchmarkResult:
    """Radiator rejecting Q to deep space: T = (Q / (sigma eps A) + T_space^4)^(1/4)."""
    snapshot = NetworkSnapshot(
        nodes=(
            Node('radiator', 'diffusion', temperature=300.0, capacitance=500.0),
            Node('space', 'boundary', temperature=space, boundary_temp=space),
        ),
        conductors=(Conductor('rad', 'radiation', 'radiator', 'space',
                              area=area, view_factor=1.0, emissivity=emissivity),),
        heat_loads=(HeatLoad('q', 'radiator', 'constant', value=power),),
    )
    analytical = (power / (STEFAN_BOLTZMANN * emissivity * area) + space**4) ** 0.25
    return _steady_case('radiation_to_space', 'Radiator balancing Q against deep space',
                        snapshot, 'radiator', analytical)


def lumped_cooling(capacitance: float = 1000.0, conductance: float = 1.0,
                   initial: float = 350.0, sink: float = 300.0,
                   duration: float = 2000.0) -> BenchmarkResult:
    """Exponential decay toward a sink: T = T_s + (T0 - T_s) exp(-G t / C)."""
    snapshot = NetworkSnapshot(
        nodes=(
            Node('mass', 'diffusion', temperature=initial, capacitance=capacitance),
            Node('sink', 'boundary', temperature=sink, boundary_temp=sink),
        ),
        conductors=(Conductor('g', 'linear', 'mass', 'sink', conductance=conductance),),
    )
    config = create_transient_config(duration_s=duration, time_step=10.0,
                                     output_interval=100.0, tolerance=1e-6)
    analytical = sink + (initial - sink) * math.exp(-conductance * duration / capacitance)
    return _transient_case('lumped_cooling', 'Lumped mass cooling through a conductor',
                           snapshot, 'mass', config, analytical)


def adiabatic_heating(capacitance: float = 500.0, power: float = 25.0,
                      initial: float = 293.15, duration: float = 1000.0) -> BenchmarkResult:
    """Isolated node under constant power: T = T0 + Q t / C."""
    snapshot = NetworkSnapshot(
        nodes=(Node('block', 'diffusion', temperature=initial, capacitance=capacitance),),
        heat_loads=(HeatLoad('q', 'block', 'constant', value=power),),
    )
    config = create_transient_config(duration_s=duration, time_step=10.0,
                                     output_interval=100.0, tolerance=1e-6)
    return _transient_case('adiabatic_heating', 'Isolated node under constant power',
                           snapshot, 'block', config, initial + power * duration / capacitance)


def parallel_plate_view_factor(side: float = 1.0, gap: float = 1.0,
                               n_rays: int = 100_000, seed: int = 7) -> BenchmarkResult:
    """Monte Carlo view factor between opposed unit plates against the exact formula."""
    start = time.perf_counter()
    lower = rectangle_surface('lower', (0, 0, 0), (side, 0, 0), (0, side, 0))
    upper = rectangle_surface('upper', (0, 0, gap), (0, side, 0), (side, 0, 0))
    estimate = MonteCarloViewFactor([lower, upper]).estimate('lower', 'upper', n_rays=n_rays, seed=seed)
    analytical = parallel_plates_view_factor(side, side, gap)
    tolerance = 100.0 * VIEW_FACTOR_SIGMAS * estimate.standard_error / analytical
    return BenchmarkResult(
        name='parallel_plate_view_factor',
        description=f'Opposed plates, {n_rays} rays',
        analytical=analytical,
        computed=estimate.view_factor,
        unit='-',
        tolerance_percent=tolerance,
        duration_s=time.perf_counter() - start,
    )


BENCHMARKS: Dict[str, Callable[[], BenchmarkResult]] = {
    'two_node_conduction': two_node_conduction,
    'heat_pipe': heat_pipe,
    'radiation_to_space': radiation_to_space,
    'lumped_cooling': lumped_cooling,
    'adiabatic_heating': adiabatic_heating,
    'parallel_plate_view_factor': parallel_plate_view_factor,
}


def run_benchmark_suite(names: Optional[List[str]] = None) -> List[BenchmarkResult]:
    """Run the selected (default: all) benchmark cases."""
    logger = get_logger()
    selected = names or list(BENCHMARKS)
    unknown = [n for n in selected if n not in BENCHMARKS]
    if unknown:
        raise KeyError(f"Unknown benchmark(s): {', '.join(unknown)}")
    results = []
    for name in selected:
        result = BENCHMARKS[name]()
        status = 'PASS' if result.passed else 'FAIL'
        logger.info(f"benchmark {name}: {status} ({result.error_percent:.4f}% error)")
        results.append(result)
    return results


def format_benchmark_table(results: List[BenchmarkResult]) -> str:
    """Plain-text table: analytical vs solver vs percent error."""
    header = f"{'Benchmark':<28} {'Analytical':>14} {'Solver':>14} {'Error %':>10} {'Limit %':>9}  Result"
    lines = [header, '-' * len(header)]
    for r in results:
        lines.append(
            f"{r.name:<28} {r.analytical:>14.6g} {r.computed:>14.6g} "
            f"{r.error_percent:>10.4f} {r.tolerance_percent:>9.3f}  {'PASS' if r.passed else 'FAIL'}"
        )
    passed = sum(r.passed for r in results)
    lines.append('-' * len(header))
    lines.append(f"{passed}/{len(results)} passed")
    return "\n".join(lines)
