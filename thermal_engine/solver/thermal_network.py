"""
Assembled Thermal Network
=========================

Index-array form of a network snapshot used by the solvers.

Holds no mutable run state except the warm start of the arithmetic-node
relaxation, so one instance serves exactly one run.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy import sparse

from ..core.config import SimulationConfig
from ..core.errors import ConvergenceError, NumericalInstabilityError
from ..core.network import ConductorKind, NetworkSnapshot, NodeKind
from ..environment.orbital_environment import OrbitalEnvironment
from .conductance import radiation_coefficient
from .heat_loads import HeatLoadEvaluator


class _ArithmeticCoupling:
    """Conductors touching one arithmetic node."""

    def __init__(self, node: int, others, g, rad, heat_pipes):
        self.node = node
        self.others = np.asarray(others, dtype=int)
        self.g = np.asarray(g, dtype=float)
        self.rad = np.asarray(rad, dtype=float)
        # (position in ``others``, table temperatures, table conductances)
        self.heat_pipes: List[Tuple[int, np.ndarray, np.ndarray]] = heat_pipes


class ThermalNetworkModel:
    """
    Lumped-parameter network assembled for integration.

    Node order follows the snapshot. Diffusion nodes form the ODE state,
    boundary nodes are imposed, arithmetic nodes are relaxed to balance
    before every derivative evaluation.
    """

    def __init__(self,
                 snapshot: NetworkSnapshot,
                 config: SimulationConfig,
                 environment: Optional[OrbitalEnvironment] = None):
        self.snapshot = snapshot
        self.config = config

        self.node_ids = [n.id for n in snapshot.nodes]
        self.index: Dict[str, int] = {node_id: i for i, node_id in enumerate(self.node_ids)}
        self.n = len(self.node_ids)

        kinds = [n.kind for n in snapshot.nodes]
        self.diff_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.DIFFUSION], dtype=int)
        self.arith_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.ARITHMETIC], dtype=int)
        self.bnd_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.BOUNDARY], dtype=int)
        self.free_idx = np.array([i for i, k in enumerate(kinds) if k != NodeKind.BOUNDARY], dtype=int)
        self.is_boundary = np.array([k == NodeKind.BOUNDARY for k in kinds])

        self.initial_temperatures = np.array([float(n.temperature) for n in snapshot.nodes])
        self.capacitance = np.array([float(n.capacitance) if k == NodeKind.DIFFUSION else 0.0
                                     for n, k in zip(snapshot.nodes, kinds)])
        self.cap_diff = self.capacitance[self.diff_idx]
        self._boundary_nodes = [(self.index[n.id], n) for n in snapshot.nodes if n.kind == NodeKind.BOUNDARY]

        self._assemble_conductors()
        self.loads = HeatLoadEvaluator(snapshot, self.index, environment)
        self._arithmetic = self._assemble_arithmetic()
        self._arith_guess = self.initial_temperatures[self.arith_idx].copy()

    def _assemble_conductors(self):
        conductors = self.snapshot.conductors
        m = len(conductors)
        self.conductor_ids = [c.id for c in conductors]
        self.src = np.array([self.index[c.node_from] for c in conductors], dtype=int)
        self.dst = np.array([self.index[c.node_to] for c in conductors], dtype=int)
        self.g_lin = np.zeros(m)
        self.rad_coef = np.zeros(m)
        self.heat_pipes: List[Tuple[int, np.ndarray, np.ndarray]] = []

        for k, c in enumerate(conductors):
            if c.kind in (ConductorKind.LINEAR, ConductorKind.CONTACT):
                self.g_lin[k] = c.conductance
            elif c.kind == ConductorKind.RADIATION:
                self.rad_coef[k] = radiation_coefficient(c)
            else:
                xs = np.array([p[0] for p in c.conductance_data])
                ys = np.array([p[1] for p in c.conductance_data])
                self.heat_pipes.append((k, xs, ys))

        # Conductors exchanging heat between the free network and a boundary node
        src_b, dst_b = self.is_boundary[self.src], self.is_boundary[self.dst]
        self._bnd_in_sign = np.where(src_b & ~dst_b, 1.0, np.where(dst_b & ~src_b, -1.0, 0.0))

    def _assemble_arithmetic(self) -> List[_ArithmeticCoupling]:
        hp_tables = {k: (xs, ys) for k, xs, ys in self.heat_pipes}
        couplings = []
        for a in self.arith_idx:
            others, g, rad, hps = [], [], [], []
            for k in range(len(self.conductor_ids)):
                if self.src[k] == a:
                    other = self.dst[k]
                elif self.dst[k] == a:
                    other = self.src[k]
                else:
                    continue
                if k in hp_tables:
                    hps.append((len(others), *hp_tables[k]))
                others.append(other)
                g.append(self.g_lin[k])
                rad.append(self.rad_coef[k])
            couplings.append(_ArithmeticCoupling(int(a), others, g, rad, hps))
        return couplings

    def heat_pipe_conductances(self, T: np.ndarray) -> np.ndarray:
        """Per-conductor heat pipe conductance at the hotter end (0 for other kinds)."""
        g = np.zeros(len(self.conductor_ids))
        for k, xs, ys in self.heat_pipes:
            g[k] = np.interp(max(T[self.src[k]], T[self.dst[k]]), xs, ys)
        return g

    def flows(self, T: np.ndarray) -> np.ndarray:
        """Conductor heat flows [W], positive from -> to."""
        tf = T[self.src]
        tt = T[self.dst]
        g = self.g_lin + self.heat_pipe_conductances(T)
        return g * (tf - tt) + self.rad_coef * (tf**4 - tt**4)

    def flow_derivatives(self, T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """d(flow)/dT_from and d(flow)/dT_to with heat pipe conductance frozen."""
        g = self.g_lin + self.heat_pipe_conductances(T)
        d_from = g + 4.0 * self.rad_coef * T[self.src]**3
        d_to = -(g + 4.0 * self.rad_coef * T[self.dst]**3)
        return d_from, d_to

    def net_heat_jacobian(self, T: np.ndarray, position: np.ndarray) -> sparse.csc_matrix:
        """
        d(net_heat)/dT restricted to the free nodes.

        Args:
            T: All node temperatures [K]
            position: Row of each node in the free block, from ``free_positions``
        """
        n_free = len(self.free_idx)
        d_from, d_to = self.flow_derivatives(T)
        # net_heat[src] -= q, net_heat[dst] += q
        rows = np.concatenate([self.src, self.src, self.dst, self.dst])
        cols = np.concatenate([self.src, self.dst, self.src, self.dst])
        vals = np.concatenate([-d_from, -d_to, d_from, d_to])

        r = position[rows]
        c = position[cols]
        keep = (r >= 0) & (c >= 0)
        return sparse.coo_matrix((vals[keep], (r[keep], c[keep])), shape=(n_free, n_free)).tocsc()

    def free_positions(self) -> np.ndarray:
        """Row of every node in the free block, -1 for boundary nodes."""
        position = np.full(self.n, -1, dtype=int)
        position[self.free_idx] = np.arange(len(self.free_idx))
        return position

    def net_heat(self, T: np.ndarray, loads: np.ndarray) -> np.ndarray:
        """Net heat into every node [W]."""
        q = self.flows(T)
        return (loads
                + np.bincount(self.dst, weights=q, minlength=self.n)
                - np.bincount(self.src, weights=q, minlength=self.n))

    def boundary_temperatures(self, t: float) -> np.ndarray:
        return np.array([node.boundary_temperature_at(t) for _, node in self._boundary_nodes])

    def initial_state(self) -> np.ndarray:
        """ODE state (diffusion node temperatures) at the start of the run."""
        return self.initial_temperatures[self.diff_idx].copy()

    def full_state(self, t: float, y: np.ndarray, loads: Optional[np.ndarray] = None):
        """
        All node temperatures for ODE state ``y`` at time ``t``.

        Returns:
            Tuple of (temperatures, loads)
        """
        if loads is None:
            loads = self.loads.node_loads(t)
        T = self.initial_temperatures.copy()
        T[self.diff_idx] = y
        if len(self.bnd_idx):
            T[self.bnd_idx] = self.boundary_temperatures(t)
        if len(self.arith_idx):
            T[self.arith_idx] = self._arith_guess
            self.relax_arithmetic(T, loads, t)
            self._arith_guess = T[self.arith_idx].copy()
        return T, loads

    def relax_arithmetic(self, T: np.ndarray, loads: np.ndarray, t: float = 0.0):
        """
        Gauss-Seidel relaxation of arithmetic nodes to zero net heat, in place.

        Each node update is a Newton step on its own balance with the
        neighbours held at their latest values.

        Raises:
            ConvergenceError: relaxation budget exhausted
            NumericalInstabilityError: non-finite temperature or an
                isolated arithmetic node with a non-zero load
        """
        tol = self.config.arithmetic_tolerance
        max_change = 0.0
        for iteration in range(1, self.config.arithmetic_max_iterations + 1):
            max_change = 0.0
            for c in self._arithmetic:
                Ta = T[c.node]
                To = T[c.others]
                g = c.g.copy()
                for pos, xs, ys in c.heat_pipes:
                    g[pos] += np.interp(max(Ta, To[pos]), xs, ys)
                q = loads[c.node] + np.sum(g * (To - Ta) + c.rad * (To**4 - Ta**4))
                slope = np.sum(g + 4.0 * c.rad * Ta**3)
                if slope <= 0.0:
                    if q != 0.0:
                        raise NumericalInstabilityError(
                            f"arithmetic node '{self.node_ids[c.node]}' has a load but no conductance",
                            time=t)
                    continue
                new = Ta + q / slope
                if new < 0.5 * Ta:
                    new = 0.5 * Ta
                if not np.isfinite(new):
                    raise NumericalInstabilityError(
                        f"arithmetic node '{self.node_ids[c.node]}' diverged", time=t)
                max_change = max(max_change, abs(new - Ta))
                T[c.node] = new
            if max_change < tol:
                return iteration
        raise ConvergenceError(
            f"arithmetic relaxation did not converge at t={t:.3f}s",
            iterations=self.config.arithmetic_max_iterations,
            residual=max_change,
        )

    def derivative(self, t: float, y: np.ndarray) -> np.ndarray:
        """dT/dt of the diffusion nodes."""
        T, loads = self.full_state(t, y)
        return self.net_heat(T, loads)[self.diff_idx] / self.cap_diff

    def exchange_power(self, T: np.ndarray, loads: np.ndarray) -> Tuple[float, float]:
        """
        Heat entering and leaving the free (non-boundary) network [W].

        Counts heat loads on free nodes and flows through conductors with
        exactly one boundary endpoint.
        """
        free_loads = loads[self.free_idx]
        boundary_in = self._bnd_in_sign * self.flows(T)
        p_in = float(np.sum(free_loads[free_loads > 0]) + np.sum(boundary_in[boundary_in > 0]))
        p_out = float(-np.sum(free_loads[free_loads < 0]) - np.sum(boundary_in[boundary_in < 0]))
        return p_in, p_out

    def stored_energy(self, T: np.ndarray) -> float:
        """Energy stored since the initial state, sum C_i (T_i - T_i0) [J]."""
        return float(np.sum(self.capacitance * (T - self.initial_temperatures)))

    def named(self, T: np.ndarray) -> Dict[str, float]:
        return {node_id: float(T[i]) for i, node_id in enumerate(self.node_ids)}
