"""
Energy Balance Validator
========================

Conservation check on a completed run.

    error = |E_in - E_out - dU| / E_in

where ``E_in``/``E_out`` are heat entering/leaving the non-boundary
network (heat loads plus boundary conductors) and ``dU`` is the change in
stored energy. Steady runs use instantaneous powers and ``dU = 0``.
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np

from ..core.errors import ValidationError
from ..core.results import EnergyLedger, ResultSnapshot

# Benchmark pass threshold [%]
PASS_THRESHOLD_PERCENT = 0.1


def _relative_error(e_in: float, e_out: float, stored: float) -> float:
    imbalance = abs(e_in - e_out - stored)
    scale = e_in
    if scale <= 0.0:
        # Nothing entered; normalize by the largest term instead
        scale = max(abs(e_out), abs(stored))
    if scale <= 0.0:
        return 0.0
    return imbalance / scale


@dataclass
class EnergyBalanceReport:
    """Energy balance over the whole run and per output slice."""
    energy_in: float
    energy_out: float
    stored: float
    relative_error: float
    slice_errors: List[float] = field(default_factory=list)
    steady: bool = False

    @property
    def imbalance(self) -> float:
        return self.energy_in - self.energy_out - self.stored

    @property
    def error_percent(self) -> float:
        return 100.0 * self.relative_error

    def passes(self, threshold_percent: float = PASS_THRESHOLD_PERCENT) -> bool:
        return self.error_percent <= threshold_percent


def check_energy_balance(ledger: EnergyLedger) -> EnergyBalanceReport:
    """Evaluate the ledger recorded by a solver."""
    if ledger.steady:
        e_in, e_out = float(ledger.energy_in[-1]), float(ledger.energy_out[-1])
        return EnergyBalanceReport(e_in, e_out, 0.0, _relative_error(e_in, e_out, 0.0),
                                   slice_errors=[_relative_error(e_in, e_out, 0.0)], steady=True)

    d_in = np.diff(ledger.energy_in)
    d_out = np.diff(ledger.energy_out)
    d_stored = np.diff(ledger.stored)
    slices = [_relative_error(a, b, c) for a, b, c in zip(d_in, d_out, d_stored)]

    e_in = float(ledger.energy_in[-1] - ledger.energy_in[0])
    e_out = float(ledger.energy_out[-1] - ledger.energy_out[0])
    stored = float(ledger.stored[-1] - ledger.stored[0])
    return EnergyBalanceReport(e_in, e_out, stored, _relative_error(e_in, e_out, stored),
                               slice_errors=slices)


def energy_balance(result: ResultSnapshot) -> EnergyBalanceReport:
    """Energy balance of a completed run."""
    if result.ledger is None:
        raise ValidationError("result has no energy ledger")
    return check_energy_balance(result.ledger)
