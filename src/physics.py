"""
Physics leaf functions for the propulsion components.

All functions are pure. Units are given per function; areas returned in m^2
unless the name says otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

# ── Combustor sizing (annular chamber) ───────────────────────────────────────

R_AIR = 287.0
PRESSURE_LOSS_FACTOR = 18.0
FLAME_TUBE_AREA_RATIO = 0.66


@dataclass(frozen=True)
class ZoneLengths:
    primary: float
    secondary: float
    dilution: float

    @property
    def total(self) -> float:
        return self.primary + self.secondary + self.dilution


def combustor_reference_area(mass_flow: float, temp_in_k: float, pressure_in_pa: float) -> float:
    """Reference area, scaled into mm^2 for geometry."""
    if pressure_in_pa <= 0:
        raise ValueError("pressure must be positive")
    numerator = mass_flow * math.sqrt(temp_in_k)
    denominator = pressure_in_pa * PRESSURE_LOSS_FACTOR
    return numerator / denominator * 1_000_000.0


def reference_height(ref_area: float, mean_diameter: float) -> float:
    return ref_area / (math.pi * mean_diameter)


def flame_tube_area(ref_area: float) -> float:
    return FLAME_TUBE_AREA_RATIO * ref_area


def flame_tube_height(ft_area: float, mean_diameter: float) -> float:
    return ft_area / (math.pi * mean_diameter)


def zone_lengths(ref_height: float, ft_height: float) -> ZoneLengths:
    return ZoneLengths(
        primary=0.75 * ref_height,
        secondary=0.5 * ft_height,
        dilution=1.5 * ft_height,
    )


# ── Gas dynamics (nozzle) ────────────────────────────────────────────────────

GAMMA = 1.22
R_UNIVERSAL = 8314.46
MOLAR_MASS = 24.0
T_CHAMBER = 3300.0
THRUST_COEFFICIENT = 1.6
C_STAR = 1750.0
YIELD_STRENGTH_MPA = 900.0
WALL_SAFETY_FACTOR = 2.0
MIN_WALL_MM = 2.0


def exhaust_velocity(chamber_bar: float, exit_bar: float) -> float:
    if exit_bar >= chamber_bar:
        return 0.0
    term1 = 2.0 * GAMMA / (GAMMA - 1.0)
    term2 = R_UNIVERSAL * T_CHAMBER / MOLAR_MASS
    term3 = 1.0 - (exit_bar / chamber_bar) ** ((GAMMA - 1.0) / GAMMA)
    return math.sqrt(term1 * term2 * term3)


def mass_flow(chamber_bar: float, throat_radius_mm: float) -> float:
    throat_area = math.pi * (throat_radius_mm / 1000.0) ** 2
    return chamber_bar * 100_000.0 * throat_area / C_STAR


def thrust_kn(m_dot: float, ve: float, exit_bar: float, ambient_bar: float, exit_radius_mm: float) -> float:
    momentum = m_dot * ve
    exit_area = math.pi * (exit_radius_mm / 1000.0) ** 2
    pressure = (exit_bar - ambient_bar) * 100_000.0 * exit_area
    return (momentum + pressure) / 1000.0


def expansion_ratio(throat_radius: float, exit_radius: float) -> float:
    return (exit_radius * exit_radius) / (throat_radius * throat_radius)


def throat_area(thrust_n: float, chamber_pa: float) -> float:
    """F = P * A * Cf with a fixed thrust coefficient."""
    return thrust_n / (chamber_pa * THRUST_COEFFICIENT)


def exit_area(throat_area_m2: float, ratio: float) -> float:
    return throat_area_m2 * ratio


def area_to_radius_mm(area_m2: float) -> float:
    return math.sqrt(area_m2 / math.pi) * 1000.0


def wall_thickness(pressure_bar: float, radius_mm: float) -> float:
    """Hoop-stress wall with a printable minimum."""
    t = pressure_bar * 0.1 * radius_mm * WALL_SAFETY_FACTOR / YIELD_STRENGTH_MPA
    return max(t, MIN_WALL_MM)


# ── Profiles ─────────────────────────────────────────────────────────────────

def de_laval_radius(z, z_throat: float, z_chamber: float, chamber_r: float,
                    throat_r: float, exit_r: float):
    """Bell radius measured from the exit plane (z=0) toward the chamber.

    Accepts scalars or numpy arrays.
    """
    z = np.asarray(z, dtype=float)
    t_div = np.clip(z / max(z_throat, 1e-9), 0.0, 1.0)
    diverging = throat_r + (exit_r - throat_r) * (1.0 - t_div) ** 1.5
    t_conv = np.clip((z - z_throat) / max(z_chamber - z_throat, 1e-9), 0.0, 1.0)
    blend = (1.0 - np.cos(t_conv * math.pi)) * 0.5
    converging = throat_r + (chamber_r - throat_r) * blend
    r = np.where(z < z_throat, diverging, np.where(z < z_chamber, converging, chamber_r))
    return float(r) if r.ndim == 0 else r


def smoothstep(t):
    t = np.clip(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)
