"""
Heat Load Evaluation
====================

Per-node external heat input as a function of time.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from ..core.network import HeatLoadKind, NetworkSnapshot
from ..environment.orbital_environment import OrbitalEnvironment, OrbitalFluxTable


class HeatLoadEvaluator:
    """
    Sums heat loads into a per-node power vector.

    Constant loads are pre-summed; time-varying loads are interpolated
    (clamped at the ends); orbital loads are looked up in a periodic
    absorbed-power table built once from the orbital environment.
    """

    def __init__(self,
                 snapshot: NetworkSnapshot,
                 index: Dict[str, int],
                 environment: Optional[OrbitalEnvironment] = None):
        """
        Args:
            snapshot: Network providing the heat loads
            index: Node id to state-vector index
            environment: Orbital environment, built from ``snapshot.orbital``
                when omitted and orbital loads are present
        """
        self.n_nodes = len(index)
        self.constant = np.zeros(self.n_nodes)
        self.time_varying: List[Tuple[int, np.ndarray, np.ndarray]] = []
        self.orbital: List[Tuple[int, np.ndarray]] = []
        self.table: Optional[OrbitalFluxTable] = None
        self.environment = environment

        has_orbital = any(h.kind == HeatLoadKind.ORBITAL for h in snapshot.heat_loads)
        if has_orbital and self.environment is None:
            self.environment = OrbitalEnvironment(snapshot.orbital)
        if has_orbital:
            self.table = self.environment.flux_table()

        for load in snapshot.heat_loads:
            i = index[load.node_id]
            if load.kind == HeatLoadKind.CONSTANT:
                self.constant[i] += load.value
            elif load.kind == HeatLoadKind.TIME_VARYING:
                xs = np.array([p[0] for p in load.time_values])
                ys = np.array([p[1] for p in load.time_values])
                self.time_varying.append((i, xs, ys))
            else:
                series = OrbitalEnvironment.absorbed_power_series(load.orbital_params, self.table)
                self.orbital.append((i, series))

    def node_loads(self, t: float) -> np.ndarray:
        """Heat input per node [W] at time ``t``."""
        q = self.constant.copy()
        for i, xs, ys in self.time_varying:
            q[i] += np.interp(t, xs, ys)
        for i, series in self.orbital:
            q[i] += self.table.interpolate(series, t)
        return q

    def steady_loads(self, t: float) -> np.ndarray:
        """
        Heat input for an equilibrium solve.

        Time-varying loads are taken at ``t``; orbital loads are orbit-averaged.
        """
        q = self.constant.copy()
        for i, xs, ys in self.time_varying:
            q[i] += np.interp(t, xs, ys)
        for i, series in self.orbital:
            q[i] += float(np.mean(series))
        return q
