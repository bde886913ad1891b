"""
Orbital Environment
===================

Incident heat flux on spacecraft surfaces along an orbit.

Propagates a two-body orbit (circular, or elliptical for HEO) from the epoch,
tracks the sun direction and Earth shadow, and produces per-time samples of
direct solar, Earth albedo and Earth IR flux. Orbital heat loads turn a
sample into absorbed power for their surface orientation.
"""

import math
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from ..core.config import (
    EARTH_RADIUS_KM,
    MU_EARTH_KM3_S2,
    AttitudeMode,
    OrbitalConfig,
    OrbitType,
)
from ..core.network import OrbitalLoadParams, SurfaceType
from ..core.time_manager import EpochTime
from .eclipse import EclipseModel
from .sun import SunModel


@dataclass(frozen=True)
class EnvironmentSample:
    """Environment at one instant."""
    time: float                      # s after epoch
    orbit_angle_deg: float           # argument of latitude
    altitude_km: float
    in_eclipse: bool
    solar_flux: float                # W/m^2 normal to the sun
    albedo_flux: float               # W/m^2 on a nadir-facing surface
    earth_ir_flux: float             # W/m^2 on a nadir-facing surface
    earth_view_factor: float
    sun_body: Tuple[float, float, float]
    nadir_body: Tuple[float, float, float]


@dataclass
class OrbitalFluxTable:
    """One orbit of environment samples as arrays, treated as periodic."""
    period: float
    times: np.ndarray
    in_eclipse: np.ndarray
    solar_flux: np.ndarray
    albedo_flux: np.ndarray
    earth_ir_flux: np.ndarray
    sun_body: np.ndarray             # (N, 3)
    nadir_body: np.ndarray           # (N, 3)

    def interpolate(self, series: np.ndarray, t: float) -> float:
        """Periodic linear interpolation of a per-sample series at time ``t``."""
        tau = t % self.period
        xs = np.append(self.times, self.period)
        ys = np.append(series, series[0])
        return float(np.interp(tau, xs, ys))


# (sees direct sun, sees Earth albedo and IR) for the named surface types
_SURFACE_VIEWS = {
    SurfaceType.SOLAR: (1.0, 1.0),
    SurfaceType.EARTH_FACING: (0.0, 1.0),
    SurfaceType.ANTI_EARTH: (1.0, 0.0),
    SurfaceType.CUSTOM: (1.0, 1.0),
}


def _surface_factors(params: OrbitalLoadParams,
                     sun_body: np.ndarray,
                     nadir_body: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Weights of a surface for direct sun and for Earth (albedo/IR).

    Named surface types take the full incident flux of each component they
    see; only a ``custom`` surface with a ``surface_normal`` is projected
    onto the body-frame sun and nadir directions.

    Arrays are (N, 3); returns two (N,) arrays in [0, 1].
    """
    n = len(sun_body)
    if params.surface_type == SurfaceType.CUSTOM and params.surface_normal is not None:
        normal = np.asarray(params.surface_normal, dtype=float)
        normal = normal / np.linalg.norm(normal)
        solar = np.clip(sun_body @ normal, 0.0, None)
        earth = np.clip(nadir_body @ normal, 0.0, None)
        return solar, earth
    solar, earth = _SURFACE_VIEWS[params.surface_type]
    return np.full(n, solar), np.full(n, earth)


class OrbitalEnvironment:
    """
    Orbital heat-flux environment.

    Provides:
    - Orbit propagation and period
    - Sun direction, eclipse state, beta angle
    - Solar, albedo and Earth IR flux samples
    - Absorbed power for orbital heat loads
    """

    ALBEDO_COEFFICIENT = 0.306
    EARTH_IR_FLUX = 237.0            # W/m^2
    SOLAR_FLUX = SunModel.SOLAR_CONSTANT
    HEO_ARG_PERIGEE_DEG = 270.0      # apogee over the northern hemisphere

    def __init__(self, config: OrbitalConfig, samples_per_orbit: int = 360):
        """
        Args:
            config: Orbit parameters (validated on construction)
            samples_per_orbit: Resolution of the periodic flux table
        """
        self.config = config
        self.samples_per_orbit = samples_per_orbit
        self.sun = SunModel()
        self.eclipse = EclipseModel()
        self.clock = EpochTime(config.epoch)

        self.a = config.semi_major_axis_km
        self.e = config.eccentricity
        self.mean_motion = math.sqrt(MU_EARTH_KM3_S2 / self.a**3)

        inc = math.radians(config.inclination_deg)
        raan = math.radians(config.raan_deg)
        self._p = np.array([math.cos(raan), math.sin(raan), 0.0])
        self._q = np.array([-math.cos(inc) * math.sin(raan), math.cos(inc) * math.cos(raan), math.sin(inc)])
        self.orbit_normal = np.cross(self._p, self._q)

        self._table: Optional[OrbitalFluxTable] = None

    @property
    def period(self) -> float:
        """Orbital period [s]."""
        return 2 * math.pi / self.mean_motion

    def argument_of_latitude(self, t: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Argument of latitude [rad] and orbit radius [km] at times ``t``.
        """
        t = np.asarray(t, dtype=float)
        mean_anomaly = self.mean_motion * t
        if self.config.orbit_type != OrbitType.HEO:
            return mean_anomaly, np.full_like(mean_anomaly, self.a)

        # Kepler's equation by Newton iteration
        E = mean_anomaly.copy()
        for _ in range(30):
            dE = (E - self.e * np.sin(E) - mean_anomaly) / (1 - self.e * np.cos(E))
            E = E - dE
            if np.max(np.abs(dE)) < 1e-12:
                break
        true_anomaly = 2 * np.arctan2(math.sqrt(1 + self.e) * np.sin(E / 2),
                                      math.sqrt(1 - self.e) * np.cos(E / 2))
        radius = self.a * (1 - self.e * np.cos(E))
        return true_anomaly + math.radians(self.HEO_ARG_PERIGEE_DEG), radius

    def position_eci(self, t) -> np.ndarray:
        """Satellite position [km], shape (3,) or (N, 3)."""
        scalar = np.ndim(t) == 0
        u, r = self.argument_of_latitude(np.atleast_1d(t))
        pos = r[:, None] * (np.cos(u)[:, None] * self._p + np.sin(u)[:, None] * self._q)
        return pos[0] if scalar else pos

    def sun_direction(self, t: float) -> np.ndarray:
        return self.sun.direction_eci(self.clock.julian_date(t))

    def beta_angle(self, t: float = 0.0) -> float:
        """Sun elevation above the orbit plane [rad]."""
        return float(math.asin(np.clip(np.dot(self.orbit_normal, self.sun_direction(t)), -1.0, 1.0)))

    def eclipse_fraction(self, t: float = 0.0) -> float:
        """Analytical shadow fraction of the orbit (circular orbits)."""
        altitude = self.a - EARTH_RADIUS_KM
        return self.eclipse.eclipse_fraction(altitude, self.beta_angle(t))

    def eclipse_duration(self, t: float = 0.0) -> float:
        """Analytical eclipse duration [s]."""
        return self.eclipse_fraction(t) * self.period

    def _body_axes(self, r_hat: np.ndarray, sun_dir: np.ndarray) -> np.ndarray:
        """
        Rows are body +x, +y, +z in ECI, shape (N, 3, 3).

        Nadir pointing: +z nadir, +y negative orbit normal, +x completes the
        triad (velocity direction on circular orbits). Sun pointing: +x to
        the sun, +z towards nadir as far as possible.
        """
        n = len(r_hat)
        nadir = -r_hat
        if self.config.attitude == AttitudeMode.NADIR_POINTING:
            z = nadir
            y = np.tile(-self.orbit_normal, (n, 1))
            x = np.cross(y, z)
        else:
            x = np.tile(sun_dir, (n, 1))
            z = nadir - np.sum(nadir * x, axis=1)[:, None] * x
            norms = np.linalg.norm(z, axis=1)
            degenerate = norms < 1e-9
            if np.any(degenerate):
                fallback = self.orbit_normal - np.dot(self.orbit_normal, sun_dir) * sun_dir
                z[degenerate] = fallback
                norms[degenerate] = np.linalg.norm(fallback)
            z = z / norms[:, None]
            y = np.cross(z, x)
        return np.stack([x, y, z], axis=1)

    def _evaluate(self, times: np.ndarray, sun_dirs: np.ndarray) -> dict:
        u, radius = self.argument_of_latitude(times)
        pos = radius[:, None] * (np.cos(u)[:, None] * self._p + np.sin(u)[:, None] * self._q)
        r_hat = pos / radius[:, None]

        eclipsed = self.eclipse.in_eclipse(pos, sun_dirs)
        earth_vf = (EARTH_RADIUS_KM / radius)**2
        cos_zenith = np.clip(np.sum(r_hat * sun_dirs, axis=1), 0.0, None)

        solar = np.where(eclipsed, 0.0, self.SOLAR_FLUX)
        albedo = np.where(eclipsed, 0.0, self.ALBEDO_COEFFICIENT * self.SOLAR_FLUX * earth_vf * cos_zenith)
        earth_ir = self.EARTH_IR_FLUX * earth_vf

        sun_body = np.empty_like(pos)
        nadir_body = np.empty_like(pos)
        for i, (rh, s) in enumerate(zip(r_hat, sun_dirs)):
            axes = self._body_axes(rh[None, :], s)[0]
            sun_body[i] = axes @ s
            nadir_body[i] = axes @ (-rh)

        return {
            'u': u, 'radius': radius, 'in_eclipse': eclipsed, 'solar': solar,
            'albedo': albedo, 'earth_ir': earth_ir, 'earth_vf': earth_vf,
            'sun_body': sun_body, 'nadir_body': nadir_body,
        }

    def sample_at(self, t: float) -> EnvironmentSample:
        """Environment sample at ``t`` seconds after the epoch."""
        values = self._evaluate(np.array([float(t)]), self.sun_direction(t)[None, :])
        return EnvironmentSample(
            time=float(t),
            orbit_angle_deg=float(np.degrees(values['u'][0]) % 360.0),
            altitude_km=float(values['radius'][0] - EARTH_RADIUS_KM),
            in_eclipse=bool(values['in_eclipse'][0]),
            solar_flux=float(values['solar'][0]),
            albedo_flux=float(values['albedo'][0]),
            earth_ir_flux=float(values['earth_ir'][0]),
            earth_view_factor=float(values['earth_vf'][0]),
            sun_body=tuple(float(c) for c in values['sun_body'][0]),
            nadir_body=tuple(float(c) for c in values['nadir_body'][0]),
        )

    def profile(self, time_start: float, time_end: float, step: float) -> 'EnvironmentProfile':
        """Lazy sample sequence over ``[time_start, time_end]``."""
        n = int(math.floor((time_end - time_start) / step + 1e-9)) + 1
        return EnvironmentProfile(self, time_start + step * np.arange(n))

    def flux_table(self) -> OrbitalFluxTable:
        """
        One-orbit periodic table starting at the epoch, sun fixed at the epoch.

        Built once and cached; the environment is read-only afterwards.
        """
        if self._table is None:
            n = self.samples_per_orbit
            times = self.period * np.arange(n) / n
            sun_dir = self.sun_direction(0.0)
            values = self._evaluate(times, np.tile(sun_dir, (n, 1)))
            self._table = OrbitalFluxTable(
                period=self.period,
                times=times,
                in_eclipse=values['in_eclipse'],
                solar_flux=values['solar'],
                albedo_flux=values['albedo'],
                earth_ir_flux=values['earth_ir'],
                sun_body=values['sun_body'],
                nadir_body=values['nadir_body'],
            )
        return self._table

    @staticmethod
    def absorbed_power_series(params: OrbitalLoadParams, table: OrbitalFluxTable) -> np.ndarray:
        """
        Absorbed power [W] of one surface at every table sample.

        Solar and albedo are weighted by absorptivity, Earth IR by emissivity.
        """
        solar_factor, earth_factor = _surface_factors(params, table.sun_body, table.nadir_body)
        absorbed_flux = (params.absorptivity * (table.solar_flux * solar_factor
                                                + table.albedo_flux * earth_factor)
                         + params.emissivity * table.earth_ir_flux * earth_factor)
        return params.area * absorbed_flux

    @staticmethod
    def absorbed_power(params: OrbitalLoadParams, sample: EnvironmentSample) -> float:
        """Absorbed power [W] of one surface for a single sample."""
        sun_body = np.array([sample.sun_body])
        nadir_body = np.array([sample.nadir_body])
        solar_factor, earth_factor = _surface_factors(params, sun_body, nadir_body)
        absorbed_flux = (params.absorptivity * (sample.solar_flux * solar_factor[0]
                                                + sample.albedo_flux * earth_factor[0])
                         + params.emissivity * sample.earth_ir_flux * earth_factor[0])
        return float(params.area * absorbed_flux)

    def orbit_average_power(self, params: OrbitalLoadParams) -> float:
        """Orbit-averaged absorbed power [W]."""
        return float(np.mean(self.absorbed_power_series(params, self.flux_table())))

    def summary(self) -> dict:
        return {
            'orbit_type': self.config.orbit_type.value,
            'period_s': self.period,
            'beta_angle_deg': math.degrees(self.beta_angle()),
            'eclipse_fraction': self.eclipse_fraction(),
            'eclipse_duration_s': self.eclipse_duration(),
        }


class EnvironmentProfile:
    """
    Lazy, restartable sequence of environment samples.

    Each iteration recomputes samples on demand; nothing is cached, so
    iterating twice yields identical sequences.
    """

    def __init__(self, environment: OrbitalEnvironment, times: Sequence[float]):
        self.environment = environment
        self.times = np.asarray(times, dtype=float)

    def __len__(self) -> int:
        return len(self.times)

    def __getitem__(self, index: int) -> EnvironmentSample:
        return self.environment.sample_at(self.times[index])

    def __iter__(self) -> Iterator[EnvironmentSample]:
        for t in self.times:
            yield self.environment.sample_at(t)
