"""
Parametric shape primitives built on signed-distance sampling.

Radius profiles are functions of the local axial coordinate and must accept
numpy arrays; a plain number is promoted to a constant profile.
"""

from __future__ import annotations

from typing import Callable, Union

import numpy as np

from engine.contracts import Vec3

Profile = Union[float, Callable[[np.ndarray], np.ndarray]]


def as_profile(value: Profile) -> Callable[[np.ndarray], np.ndarray]:
    if callable(value):
        return lambda z: np.broadcast_to(np.asarray(value(z), dtype=float), np.shape(z))
    constant = float(value)
    return lambda z: np.full(np.shape(z), constant)


def pipe(kernel, z0: float, length: float, inner: Profile, outer: Profile, samples: int = 64):
    """Axisymmetric tube along +z from ``z0`` with modulated radii.

    An inner profile of 0 gives a solid of revolution.
    """
    if length <= 0:
        return kernel.empty()
    inner_fn = as_profile(inner)
    outer_fn = as_profile(outer)
    zs = np.linspace(0.0, length, samples)
    r_max = float(np.max(outer_fn(zs)))
    if r_max <= 0:
        return kernel.empty()

    def sdf(p: np.ndarray) -> np.ndarray:
        z_local = p[:, 2] - z0
        r = np.hypot(p[:, 0], p[:, 1])
        return np.maximum.reduce([
            r - outer_fn(z_local),
            inner_fn(z_local) - r,
            -z_local,
            z_local - length,
        ])

    bbox = ((-r_max, -r_max, z0), (r_max, r_max, z0 + length))
    return kernel.sample_signed_distance(sdf, bbox)


def cone(kernel, z0: float, length: float, r_start: float, r_end: float):
    return pipe(
        kernel, z0, length, 0.0,
        lambda z: r_start + (r_end - r_start) * np.clip(z / length, 0.0, 1.0),
    )


def cylinder(kernel, base: Vec3, direction: Vec3, length: float, radius: float):
    """Flat-capped cylinder of any orientation."""
    a = np.asarray(base, dtype=float)
    d = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(d)
    if norm < 1e-9 or length <= 0 or radius <= 0:
        return kernel.empty()
    d = d / norm
    b = a + d * length

    def sdf(p: np.ndarray) -> np.ndarray:
        rel = p - a
        t = rel @ d
        radial = np.linalg.norm(rel - t[:, None] * d, axis=1)
        return np.maximum.reduce([radial - radius, -t, t - length])

    lo = tuple(np.minimum(a, b) - radius)
    hi = tuple(np.maximum(a, b) + radius)
    return kernel.sample_signed_distance(sdf, (lo, hi))


def disc(kernel, z0: float, thickness: float, radius: float):
    return cylinder(kernel, (0.0, 0.0, z0), (0.0, 0.0, 1.0), thickness, radius)


def box(kernel, min_corner: Vec3, max_corner: Vec3):
    return kernel.box(min_corner, max_corner)


def sphere(kernel, centre: Vec3, radius: float):
    c = np.asarray(centre, dtype=float)

    def sdf(p: np.ndarray) -> np.ndarray:
        return np.linalg.norm(p - c, axis=1) - radius

    return kernel.sample_signed_distance(sdf, (tuple(c - radius), tuple(c + radius)))


def shell(geometry, wall: float):
    """Keep a ``wall`` mm skin of ``geometry``."""
    return geometry.shell(wall)
