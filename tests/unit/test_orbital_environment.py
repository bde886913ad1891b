import math

import numpy as np
import pytest

from thermal_engine.core.config import (
    EARTH_RADIUS_KM,
    MU_EARTH_KM3_S2,
    AttitudeMode,
    OrbitalConfig,
    create_heo_orbit,
    create_leo_orbit,
)
from thermal_engine.core.network import OrbitalLoadParams, SurfaceType
from thermal_engine.environment.eclipse import EclipseModel
from thermal_engine.environment.orbital_environment import OrbitalEnvironment


def _equatorial():
    return OrbitalEnvironment(OrbitalConfig(altitude_km=500.0, inclination_deg=0.0))


def test_period_follows_two_body_mechanics():
    env = OrbitalEnvironment(create_leo_orbit(altitude_km=500.0))
    a = EARTH_RADIUS_KM + 500.0
    assert env.period == pytest.approx(2 * math.pi * math.sqrt(a**3 / MU_EARTH_KM3_S2))
    assert env.period == pytest.approx(5677.0, abs=2.0)


def test_eclipse_samples_have_no_solar_but_keep_earth_ir():
    table = _equatorial().flux_table()
    assert np.any(table.in_eclipse)
    assert np.all(table.solar_flux[table.in_eclipse] == 0.0)
    assert np.all(table.albedo_flux[table.in_eclipse] == 0.0)
    assert np.all(table.earth_ir_flux[table.in_eclipse] > 0.0)
    assert np.all(table.solar_flux[~table.in_eclipse] == pytest.approx(1361.0))


def test_sampled_eclipse_fraction_matches_analytic_value():
    env = _equatorial()
    table = env.flux_table()
    assert np.mean(table.in_eclipse) == pytest.approx(env.eclipse_fraction(), abs=0.01)
    assert 0.3 < env.eclipse_fraction() < 0.45


def test_shadow_cylinder_behind_earth():
    model = EclipseModel()
    positions = np.array([[-7000.0, 0.0, 0.0], [7000.0, 0.0, 0.0], [-7000.0, 8000.0, 0.0]])
    shadowed = model.in_eclipse(positions, np.array([1.0, 0.0, 0.0]))
    assert shadowed.tolist() == [True, False, False]
    assert model.in_eclipse(positions[0], np.array([0.0, 1.0, 0.0])).tolist() == [False]


def test_eclipse_fraction_zero_above_critical_beta():
    model = EclipseModel()
    assert model.eclipse_fraction(500.0, math.radians(80.0)) == 0.0
    assert model.eclipse_fraction(500.0, 0.0) > 0.35


def test_earth_view_factor_decreases_with_altitude():
    sample = _equatorial().sample_at(0.0)
    r = EARTH_RADIUS_KM + 500.0
    assert sample.earth_view_factor == pytest.approx((EARTH_RADIUS_KM / r)**2)
    assert sample.earth_ir_flux == pytest.approx(237.0 * (EARTH_RADIUS_KM / r)**2)


def test_solar_surface_sees_sun_albedo_and_ir():
    env = _equatorial()
    table = env.flux_table()
    params = OrbitalLoadParams(SurfaceType.SOLAR, absorptivity=0.5, emissivity=0.8, area=0.2)
    series = env.absorbed_power_series(params, table)
    expected = 0.2 * (0.5 * (table.solar_flux + table.albedo_flux) + 0.8 * table.earth_ir_flux)
    assert series == pytest.approx(expected)
    assert series[table.in_eclipse] == pytest.approx(0.2 * 0.8 * table.earth_ir_flux[table.in_eclipse])
    assert 0.0 < env.orbit_average_power(params) < series.max()


def test_anti_earth_surface_takes_full_solar_flux_when_sunlit():
    env = OrbitalEnvironment(create_leo_orbit(altitude_km=500.0))
    table = env.flux_table()
    params = OrbitalLoadParams(SurfaceType.ANTI_EARTH, absorptivity=1.0, emissivity=0.9, area=1.0)
    series = env.absorbed_power_series(params, table)
    assert np.all(series[~table.in_eclipse] == pytest.approx(1361.0))
    assert np.all(series[table.in_eclipse] == 0.0)


def test_earth_facing_surface_gets_no_direct_sun():
    env = _equatorial()
    table = env.flux_table()
    params = OrbitalLoadParams(SurfaceType.EARTH_FACING, absorptivity=0.3, emissivity=0.9, area=1.0)
    series = env.absorbed_power_series(params, table)
    assert series == pytest.approx(0.3 * table.albedo_flux + 0.9 * table.earth_ir_flux)
    expected_ir = 0.9 * table.earth_ir_flux[table.in_eclipse]
    assert series[table.in_eclipse] == pytest.approx(expected_ir)


def test_custom_normal_is_projected():
    env = _equatorial()
    table = env.flux_table()
    zenith = OrbitalLoadParams(SurfaceType.CUSTOM, 1.0, 1.0, 1.0, surface_normal=(0.0, 0.0, -1.0))
    nadir = OrbitalLoadParams(SurfaceType.CUSTOM, 1.0, 1.0, 1.0, surface_normal=(0.0, 0.0, 1.0))
    unoriented = OrbitalLoadParams(SurfaceType.CUSTOM, 1.0, 1.0, 1.0)
    # Nadir pointing puts Earth on body +z
    assert np.all(env.absorbed_power_series(zenith, table)
                  <= table.solar_flux + 1e-9)
    nadir_series = env.absorbed_power_series(nadir, table)
    assert np.all(nadir_series >= table.albedo_flux + table.earth_ir_flux - 1e-9)
    assert env.absorbed_power_series(unoriented, table) == pytest.approx(
        table.solar_flux + table.albedo_flux + table.earth_ir_flux)


def test_single_sample_and_series_agree():
    env = _equatorial()
    params = OrbitalLoadParams(SurfaceType.CUSTOM, 0.4, 0.7, 0.5, surface_normal=(1.0, 0.0, 0.0))
    sample = env.sample_at(0.0)
    series = env.absorbed_power_series(params, env.flux_table())
    assert env.absorbed_power(params, sample) == pytest.approx(series[0])


def test_profile_is_lazy_and_restartable():
    env = _equatorial()
    profile = env.profile(0.0, 600.0, 60.0)
    assert len(profile) == 11
    first = [s.in_eclipse for s in profile]
    second = [s.in_eclipse for s in profile]
    assert first == second
    assert profile[3].time == pytest.approx(180.0)


def test_heo_radius_spans_perigee_to_apogee():
    env = OrbitalEnvironment(create_heo_orbit(perigee_km=500.0, apogee_km=39800.0))
    assert env.sample_at(0.0).altitude_km == pytest.approx(500.0, abs=1e-6)
    assert env.sample_at(env.period / 2).altitude_km == pytest.approx(39800.0, abs=1e-3)


def test_sun_pointing_attitude_keeps_sun_on_body_x():
    env = OrbitalEnvironment(OrbitalConfig(altitude_km=500.0, inclination_deg=51.6,
                                           attitude=AttitudeMode.SUN_POINTING))
    sample = env.sample_at(1200.0)
    assert sample.sun_body == pytest.approx((1.0, 0.0, 0.0), abs=1e-9)


def test_summary_reports_period_and_beta():
    summary = _equatorial().summary()
    assert summary['orbit_type'] == 'leo'
    assert summary['eclipse_duration_s'] == pytest.approx(summary['eclipse_fraction'] * summary['period_s'])
