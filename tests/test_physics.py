import math

import numpy as np
import pytest

import physics


def test_zone_lengths_sum():
    zones = physics.zone_lengths(160.0, 100.0)
    assert zones.primary == pytest.approx(120.0)
    assert zones.secondary == pytest.approx(50.0)
    assert zones.dilution == pytest.approx(150.0)
    assert zones.total == pytest.approx(320.0)


def test_reference_area_scales_with_mass_flow():
    a = physics.combustor_reference_area(35.0, 750.0, 25e5)
    b = physics.combustor_reference_area(70.0, 750.0, 25e5)
    assert b == pytest.approx(2 * a)
    with pytest.raises(ValueError):
        physics.combustor_reference_area(35.0, 750.0, 0.0)


def test_throat_and_exit_radius():
    at = physics.throat_area(80_000.0, 60e5)
    assert at == pytest.approx(80_000.0 / (60e5 * physics.THRUST_COEFFICIENT))
    ae = physics.exit_area(at, 14.0)
    r_t = physics.area_to_radius_mm(at)
    r_e = physics.area_to_radius_mm(ae)
    assert r_e / r_t == pytest.approx(math.sqrt(14.0))
    assert physics.expansion_ratio(r_t, r_e) == pytest.approx(14.0)


def test_exhaust_velocity():
    assert physics.exhaust_velocity(1.0, 1.0) == 0.0
    assert physics.exhaust_velocity(60.0, 1.0) > physics.exhaust_velocity(20.0, 1.0) > 0


def test_thrust_from_momentum_and_pressure():
    ve = physics.exhaust_velocity(60.0, 1.0)
    m_dot = physics.mass_flow(60.0, 50.0)
    assert physics.thrust_kn(m_dot, ve, 1.0, 1.0, 200.0) == pytest.approx(m_dot * ve / 1000.0)


def test_wall_thickness_has_floor():
    assert physics.wall_thickness(1.0, 10.0) == physics.MIN_WALL_MM
    assert physics.wall_thickness(100.0, 1000.0) > physics.MIN_WALL_MM


def test_de_laval_profile_landmarks():
    r = physics.de_laval_radius(np.array([0.0, 30.0, 100.0]), 30.0, 60.0, 300.0, 50.0, 190.0)
    np.testing.assert_allclose(r, [190.0, 50.0, 300.0])
    assert isinstance(physics.de_laval_radius(45.0, 30.0, 60.0, 300.0, 50.0, 190.0), float)


def test_smoothstep_is_clamped():
    np.testing.assert_allclose(physics.smoothstep(np.array([-1.0, 0.5, 2.0])), [0.0, 0.5, 1.0])
