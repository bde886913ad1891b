"""
Simulation Configuration
========================

Run settings and orbit parameters for the thermal engine.

Both are frozen dataclasses validated on construction; invalid values raise
``ValidationError`` instead of being clamped.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .errors import ValidationError


EARTH_RADIUS_KM = 6378.137
MU_EARTH_KM3_S2 = 398600.4418


class SimulationKind(Enum):
    """Solver mode."""
    TRANSIENT = 'transient'
    STEADY = 'steady'


class SolverMethod(Enum):
    """Transient time-stepping scheme."""
    RK4 = 'rk4'
    IMPLICIT_EULER = 'implicit_euler'


class OrbitType(Enum):
    """Orbit regime."""
    LEO = 'leo'
    MEO = 'meo'
    GEO = 'geo'
    HEO = 'heo'


class AttitudeMode(Enum):
    """Spacecraft pointing used to orient custom surface normals."""
    NADIR_POINTING = 'nadir_pointing'
    SUN_POINTING = 'sun_pointing'


# Altitude bounds per regime [km]
ALTITUDE_LIMITS_KM = {
    OrbitType.LEO: (160.0, 2000.0),
    OrbitType.MEO: (2000.0, 35586.0),
    OrbitType.GEO: (35586.0, 35986.0),
}
HEO_PERIGEE_MIN_KM = 160.0
HEO_APOGEE_MAX_KM = 100000.0
GEO_MAX_INCLINATION_DEG = 15.0


def _finite(value) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class OrbitalConfig:
    """Orbit and epoch driving orbital heat loads."""
    altitude_km: Optional[float] = 500.0
    inclination_deg: float = 97.4
    raan_deg: float = 0.0
    epoch: datetime = field(default_factory=lambda: datetime(2026, 1, 8, tzinfo=timezone.utc))
    orbit_type: OrbitType = OrbitType.LEO
    perigee_altitude_km: Optional[float] = None   # HEO only
    apogee_altitude_km: Optional[float] = None    # HEO only
    attitude: AttitudeMode = AttitudeMode.NADIR_POINTING

    def __post_init__(self):
        object.__setattr__(self, 'orbit_type', OrbitType(self.orbit_type))
        object.__setattr__(self, 'attitude', AttitudeMode(self.attitude))
        epoch = self.epoch
        if isinstance(epoch, str):
            epoch = datetime.fromisoformat(epoch.replace('Z', '+00:00'))
        if epoch.tzinfo is None:
            epoch = epoch.replace(tzinfo=timezone.utc)
        object.__setattr__(self, 'epoch', epoch)

        problems = self.validation_problems()
        if problems:
            raise ValidationError(problems)

    def validation_problems(self) -> List[str]:
        """Range checks for the orbit regime."""
        problems = []
        regime = self.orbit_type.value.upper()

        if not _finite(self.inclination_deg) or not 0.0 <= self.inclination_deg <= 180.0:
            problems.append(f"inclination {self.inclination_deg} deg outside [0, 180]")
        if not _finite(self.raan_deg) or not 0.0 <= self.raan_deg <= 360.0:
            problems.append(f"raan {self.raan_deg} deg outside [0, 360]")

        if self.orbit_type == OrbitType.HEO:
            perigee, apogee = self.perigee_altitude_km, self.apogee_altitude_km
            if not _finite(perigee) or not _finite(apogee):
                problems.append("HEO orbit requires finite perigee and apogee altitudes")
            else:
                if perigee < HEO_PERIGEE_MIN_KM:
                    problems.append(f"HEO perigee {perigee} km below {HEO_PERIGEE_MIN_KM} km")
                if apogee <= perigee:
                    problems.append(f"HEO apogee {apogee} km must exceed perigee {perigee} km")
                if apogee > HEO_APOGEE_MAX_KM:
                    problems.append(f"HEO apogee {apogee} km above {HEO_APOGEE_MAX_KM} km")
            return problems

        low, high = ALTITUDE_LIMITS_KM[self.orbit_type]
        if not _finite(self.altitude_km):
            problems.append(f"{regime} altitude must be a finite number")
        elif not low <= self.altitude_km <= high:
            problems.append(f"{regime} altitude {self.altitude_km} km outside [{low}, {high}]")

        if (self.orbit_type == OrbitType.GEO and _finite(self.inclination_deg)
                and self.inclination_deg > GEO_MAX_INCLINATION_DEG):
            problems.append(f"GEO inclination {self.inclination_deg} deg above {GEO_MAX_INCLINATION_DEG}")
        return problems

    @property
    def semi_major_axis_km(self) -> float:
        if self.orbit_type == OrbitType.HEO:
            return EARTH_RADIUS_KM + 0.5 * (self.perigee_altitude_km + self.apogee_altitude_km)
        return EARTH_RADIUS_KM + self.altitude_km

    @property
    def eccentricity(self) -> float:
        if self.orbit_type == OrbitType.HEO:
            ra = EARTH_RADIUS_KM + self.apogee_altitude_km
            rp = EARTH_RADIUS_KM + self.perigee_altitude_km
            return (ra - rp) / (ra + rp)
        return 0.0

    @property
    def period_s(self) -> float:
        """Orbital period using Kepler's third law."""
        a = self.semi_major_axis_km
        return 2 * math.pi * math.sqrt(a**3 / MU_EARTH_KM3_S2)


@dataclass(frozen=True)
class SimulationConfig:
    """
    Solver settings for one run.

    Transient runs use ``time_*``, ``min_step``, ``max_step``, ``output_interval``
    and ``tolerance``: max local error per step (K) for RK4, Newton update
    limit (K) for implicit Euler. Steady runs use ``max_iterations`` and
    ``tolerance`` (max temperature change, K).
    """
    kind: SimulationKind = SimulationKind.TRANSIENT
    solver_method: SolverMethod = SolverMethod.RK4
    time_start: float = 0.0
    time_end: float = 3600.0
    time_step: float = 10.0
    min_step: float = 1e-3
    max_step: float = 120.0
    output_interval: float = 60.0
    max_iterations: int = 1000
    tolerance: float = 1e-3

    # Run budgets
    max_steps: int = 1_000_000
    max_wall_time: Optional[float] = 300.0     # seconds, None disables

    # Arithmetic node relaxation
    arithmetic_max_iterations: int = 200
    arithmetic_tolerance: float = 1e-6

    def __post_init__(self):
        object.__setattr__(self, 'kind', SimulationKind(self.kind))
        object.__setattr__(self, 'solver_method', SolverMethod(self.solver_method))
        problems = self.validation_problems()
        if problems:
            raise ValidationError(problems)

    def validation_problems(self) -> List[str]:
        problems = []
        numeric = ('time_start', 'time_end', 'time_step', 'min_step', 'max_step',
                   'output_interval', 'tolerance', 'arithmetic_tolerance')
        for name in numeric:
            if not _finite(getattr(self, name)):
                problems.append(f"{name} must be a finite number")
        if problems:
            return problems

        if self.tolerance <= 0:
            problems.append("tolerance must be positive")
        if self.max_iterations < 1:
            problems.append("max_iterations must be at least 1")
        if self.arithmetic_max_iterations < 1:
            problems.append("arithmetic_max_iterations must be at least 1")
        if self.arithmetic_tolerance <= 0:
            problems.append("arithmetic_tolerance must be positive")
        if self.max_wall_time is not None and self.max_wall_time <= 0:
            problems.append("max_wall_time must be positive")

        if self.kind == SimulationKind.TRANSIENT:
            if self.time_end <= self.time_start:
                problems.append("time_end must be after time_start")
            if self.time_step <= 0:
                problems.append("time_step must be positive")
            if self.min_step <= 0:
                problems.append("min_step must be positive")
            if self.max_step < self.min_step:
                problems.append("max_step must be >= min_step")
            if not self.min_step <= self.time_step <= self.max_step:
                problems.append("time_step must lie within [min_step, max_step]")
            if self.output_interval <= 0:
                problems.append("output_interval must be positive")
            if self.max_steps < 1:
                problems.append("max_steps must be at least 1")
        return problems

    @property
    def duration(self) -> float:
        return self.time_end - self.time_start


# Pre-defined configurations
def create_transient_config(duration_s: float = 5700.0,
                            time_step: float = 10.0,
                            output_interval: float = 60.0,
                            tolerance: float = 1e-3,
                            solver_method: SolverMethod = SolverMethod.RK4) -> SimulationConfig:
    """Transient run from t=0 (one LEO orbit by default)."""
    return SimulationConfig(
        kind=SimulationKind.TRANSIENT,
        solver_method=solver_method,
        time_end=duration_s,
        time_step=time_step,
        max_step=max(120.0, time_step),
        output_interval=output_interval,
        tolerance=tolerance,
    )


def create_steady_config(tolerance: float = 1e-4, max_iterations: int = 200) -> SimulationConfig:
    """Steady-state equilibrium solve."""
    return SimulationConfig(
        kind=SimulationKind.STEADY,
        tolerance=tolerance,
        max_iterations=max_iterations,
    )


def create_leo_orbit(altitude_km: float = 500.0, inclination_deg: float = 97.4) -> OrbitalConfig:
    """Sun-synchronous style LEO."""
    return OrbitalConfig(altitude_km=altitude_km, inclination_deg=inclination_deg)


def create_geo_orbit() -> OrbitalConfig:
    """Geostationary orbit."""
    return OrbitalConfig(orbit_type=OrbitType.GEO, altitude_km=35786.0, inclination_deg=0.0)


def create_heo_orbit(perigee_km: float = 500.0, apogee_km: float = 39800.0,
                     inclination_deg: float = 63.4) -> OrbitalConfig:
    """Molniya-like elliptical orbit."""
    return OrbitalConfig(
        orbit_type=OrbitType.HEO,
        altitude_km=None,
        inclination_deg=inclination_deg,
        perigee_altitude_km=perigee_km,
        apogee_altitude_km=apogee_km,
    )
