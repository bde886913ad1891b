"""
Result Snapshot
===============

Output of a thermal run: per-node temperature histories, per-conductor flow
histories, the energy ledger and run status. Also the fixed-column summary
export (CSV/JSON) handed to the reporting layer.
"""

import csv
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np


class RunStatus(Enum):
    """Lifecycle of a run."""
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass
class NodeResult:
    """Temperature history of one node."""
    node_id: str
    times: np.ndarray
    temperatures: np.ndarray

    @property
    def t_min(self) -> float:
        return float(np.min(self.temperatures))

    @property
    def t_max(self) -> float:
        return float(np.max(self.temperatures))

    @property
    def t_mean(self) -> float:
        return float(np.mean(self.temperatures))

    @property
    def t_initial(self) -> float:
        return float(self.temperatures[0])

    @property
    def t_final(self) -> float:
        return float(self.temperatures[-1])


@dataclass
class ConductorFlowResult:
    """Heat flow history of one conductor (W, positive from -> to)."""
    conductor_id: str
    times: np.ndarray
    flows: np.ndarray


@dataclass
class EnergyLedger:
    """
    Cumulative energy bookkeeping of the non-boundary network.

    ``energy_in``/``energy_out`` are time integrals (J) of heat entering and
    leaving through heat loads and boundary conductors, sampled at the output
    times. ``stored`` is ``sum C_i (T_i - T_i0)`` at the same times. Steady
    runs hold instantaneous powers (W) and zero storage.
    """
    times: np.ndarray
    energy_in: np.ndarray
    energy_out: np.ndarray
    stored: np.ndarray
    steady: bool = False


@dataclass
class NodeSummary:
    """One row of the summary export."""
    name: str
    t_min: float
    t_max: float
    t_initial: float
    t_final: float
    delta_t: float

    def as_row(self) -> Dict[str, Any]:
        return {
            'node': self.name,
            'T_min': self.t_min,
            'T_max': self.t_max,
            'T_initial': self.t_initial,
            'T_final': self.t_final,
            'dT': self.delta_t,
        }


SUMMARY_COLUMNS = ['node', 'T_min', 'T_max', 'T_initial', 'T_final', 'dT']


@dataclass
class ResultSnapshot:
    """Everything a run produces."""
    status: RunStatus = RunStatus.PENDING
    times: np.ndarray = field(default_factory=lambda: np.zeros(0))
    node_results: Dict[str, NodeResult] = field(default_factory=dict)
    conductor_flows: Dict[str, ConductorFlowResult] = field(default_factory=dict)
    energy_balance_error: Optional[float] = None
    ledger: Optional[EnergyLedger] = None
    iterations: int = 0
    converged: bool = False
    error: Optional[str] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def final_temperatures(self) -> Dict[str, float]:
        return {node_id: r.t_final for node_id, r in self.node_results.items()}

    def max_temperatures(self) -> Dict[str, float]:
        return {node_id: r.t_max for node_id, r in self.node_results.items()}

    def min_temperatures(self) -> Dict[str, float]:
        return {node_id: r.t_min for node_id, r in self.node_results.items()}

    def mean_temperatures(self) -> Dict[str, float]:
        return {node_id: r.t_mean for node_id, r in self.node_results.items()}

    def temperature_history(self, node_id: str) -> NodeResult:
        return self.node_results[node_id]

    def summary(self, node_names: Optional[Dict[str, str]] = None) -> List[NodeSummary]:
        """Per-node min/max/initial/final summary rows."""
        names = node_names or {}
        rows = []
        for node_id, r in self.node_results.items():
            rows.append(NodeSummary(
                name=names.get(node_id, node_id),
                t_min=r.t_min,
                t_max=r.t_max,
                t_initial=r.t_initial,
                t_final=r.t_final,
                delta_t=r.t_final - r.t_initial,
            ))
        return rows

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation."""
        return {
            'status': self.status.value,
            'times': self.times.tolist(),
            'nodes': {
                node_id: {'times': r.times.tolist(), 'temperatures': r.temperatures.tolist()}
                for node_id, r in self.node_results.items()
            },
            'conductors': {
                cond_id: {'times': r.times.tolist(), 'flows': r.flows.tolist()}
                for cond_id, r in self.conductor_flows.items()
            },
            'energyBalanceError': self.energy_balance_error,
            'iterations': self.iterations,
            'converged': self.converged,
            'error': self.error,
        }


def export_summary(result: ResultSnapshot,
                   path: Union[str, Path],
                   node_names: Optional[Dict[str, str]] = None,
                   fmt: Optional[str] = None) -> Path:
    """
    Write the per-node summary as CSV or JSON.

    Args:
        result: Completed run
        path: Output file; format inferred from the suffix unless ``fmt`` is given
        node_names: Map of node id to display name
        fmt: 'csv' or 'json'

    Returns:
        Path written
    """
    path = Path(path)
    fmt = (fmt or path.suffix.lstrip('.')).lower()
    rows = [s.as_row() for s in result.summary(node_names)]
    path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == 'csv':
        with path.open('w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=SUMMARY_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
    elif fmt == 'json':
        path.write_text(json.dumps(rows, indent=2) + "\n", encoding='utf-8')
    else:
        raise ValueError(f"Unknown export format: {fmt}")
    return path
