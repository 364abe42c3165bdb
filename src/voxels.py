"""
Voxel geometry kernel.

Every geometry lives on one world lattice per voxel size: a boolean numpy
array plus the integer lattice index of its first cell. Booleans align two
operands on that shared lattice, so union/intersect are exactly commutative
and associative. Operations return new geometry and never mutate operands,
which lets a cached result be reused across passes as the same object.

Voxel i along an axis covers [i * pitch, (i + 1) * pitch) with its centre at
(i + 0.5) * pitch.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, Optional, Tuple

import numpy as np
import trimesh
from scipy import ndimage
from trimesh.voxel import VoxelGrid

from engine.batch import Beam, PrimitiveBatch, Sphere
from engine.contracts import BBox, Vec3

logger = logging.getLogger(__name__)

# Points per signed-distance evaluation chunk.
SDF_CHUNK_POINTS = 2_000_000


class VoxelGeometry:
    """Occupancy grid anchored on the world lattice."""

    __slots__ = ("voxel_size", "origin", "data")

    def __init__(self, voxel_size: float, origin=(0, 0, 0), data: Optional[np.ndarray] = None):
        self.voxel_size = float(voxel_size)
        self.origin = np.asarray(origin, dtype=np.int64).reshape(3)
        if data is None:
            data = np.zeros((0, 0, 0), dtype=bool)
        self.data = np.asarray(data, dtype=bool)

    @classmethod
    def empty(cls, voxel_size: float) -> "VoxelGeometry":
        return cls(voxel_size)

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def is_empty(self) -> bool:
        return self.data.size == 0 or not self.data.any()

    @property
    def voxel_count(self) -> int:
        return int(np.count_nonzero(self.data))

    @property
    def volume_mm3(self) -> float:
        return self.voxel_count * self.voxel_size ** 3

    def __repr__(self) -> str:
        return (
            f"VoxelGeometry(pitch={self.voxel_size}, origin={self.origin.tolist()}, "
            f"shape={self.data.shape}, voxels={self.voxel_count})"
        )

    def copy(self) -> "VoxelGeometry":
        return VoxelGeometry(self.voxel_size, self.origin.copy(), self.data.copy())

    def crop(self) -> "VoxelGeometry":
        """Tight copy around the occupied voxels."""
        if self.is_empty:
            return VoxelGeometry.empty(self.voxel_size)
        idx = np.argwhere(self.data)
        lo = idx.min(axis=0)
        hi = idx.max(axis=0) + 1
        window = self.data[lo[0]:hi[0], lo[1]:hi[1], lo[2]:hi[2]]
        return VoxelGeometry(self.voxel_size, self.origin + lo, window.copy())

    def bounds(self) -> BBox:
        """World-space bounding box of occupied voxels."""
        if self.is_empty:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        tight = self.crop()
        lo = tight.origin * self.voxel_size
        hi = (tight.origin + np.array(tight.data.shape)) * self.voxel_size
        return tuple(float(v) for v in lo), tuple(float(v) for v in hi)

    def same_as(self, other: "VoxelGeometry") -> bool:
        """Set equality of the occupied world voxels."""
        if not math.isclose(self.voxel_size, other.voxel_size):
            return False
        a, b = self.crop(), other.crop()
        if a.is_empty or b.is_empty:
            return a.is_empty and b.is_empty
        return bool(np.array_equal(a.origin, b.origin) and np.array_equal(a.data, b.data))

    # ── Lattice alignment ────────────────────────────────────────────────

    def _check_pitch(self, other: "VoxelGeometry") -> None:
        if not math.isclose(self.voxel_size, other.voxel_size):
            raise ValueError(
                f"Voxel size mismatch: {self.voxel_size} vs {other.voxel_size}"
            )

    def window(self, origin, shape) -> np.ndarray:
        """Occupancy of this geometry inside an arbitrary lattice window."""
        origin = np.asarray(origin, dtype=np.int64)
        out = np.zeros(tuple(int(s) for s in shape), dtype=bool)
        if self.data.size == 0 or out.size == 0:
            return out
        lo = np.maximum(origin, self.origin)
        hi = np.minimum(origin + np.array(out.shape), self.origin + np.array(self.data.shape))
        if np.any(hi <= lo):
            return out
        dst = tuple(slice(int(l - o), int(h - o)) for l, h, o in zip(lo, hi, origin))
        src = tuple(slice(int(l - o), int(h - o)) for l, h, o in zip(lo, hi, self.origin))
        out[dst] = self.data[src]
        return out

    # ── Booleans ─────────────────────────────────────────────────────────

    def union(self, other: "VoxelGeometry") -> "VoxelGeometry":
        self._check_pitch(other)
        if other.is_empty:
            return self
        if self.is_empty:
            return other
        lo = np.minimum(self.origin, other.origin)
        hi = np.maximum(
            self.origin + np.array(self.data.shape),
            other.origin + np.array(other.data.shape),
        )
        shape = hi - lo
        merged = self.window(lo, shape) | other.window(lo, shape)
        return VoxelGeometry(self.voxel_size, lo, merged)

    def subtract(self, other: "VoxelGeometry") -> "VoxelGeometry":
        self._check_pitch(other)
        if self.is_empty or other.is_empty:
            return self
        cut = other.window(self.origin, self.data.shape)
        return VoxelGeometry(self.voxel_size, self.origin.copy(), self.data & ~cut)

    def intersect(self, other: "VoxelGeometry") -> "VoxelGeometry":
        self._check_pitch(other)
        if self.is_empty or other.is_empty:
            return VoxelGeometry.empty(self.voxel_size)
        keep = other.window(self.origin, self.data.shape)
        return VoxelGeometry(self.voxel_size, self.origin.copy(), self.data & keep)

    # ── Morphology ───────────────────────────────────────────────────────

    def offset(self, distance: float) -> "VoxelGeometry":
        """Grow (positive) or shrink (negative) by ``distance`` mm.

        A negative offset keeps only voxels deeper than ``|distance|``, so the
        result is always contained in the input.
        """
        if self.is_empty or distance == 0:
            return self
        steps = abs(distance) / self.voxel_size
        if distance < 0:
            padded = np.pad(self.data, 1, constant_values=False)
            depth = ndimage.distance_transform_edt(padded)[1:-1, 1:-1, 1:-1]
            return VoxelGeometry(self.voxel_size, self.origin.copy(), depth > steps)

        pad = int(math.ceil(steps)) + 1
        padded = np.pad(self.data, pad, constant_values=False)
        reach = ndimage.distance_transform_edt(~padded)
        return VoxelGeometry(self.voxel_size, self.origin - pad, reach <= steps)

    def smoothen(self, radius: float) -> "VoxelGeometry":
        if self.is_empty or radius <= 0:
            return self
        sigma = max(radius / self.voxel_size / 2.0, 0.5)
        pad = int(math.ceil(3 * sigma)) + 1
        field = np.pad(self.data, pad, constant_values=False).astype(np.float32)
        blurred = ndimage.gaussian_filter(field, sigma=sigma)
        return VoxelGeometry(self.voxel_size, self.origin - pad, blurred >= 0.5).crop()

    def shell(self, wall: float) -> "VoxelGeometry":
        """Hollow the solid, keeping a wall of ``wall`` mm (at least one voxel)."""
        return self.subtract(self.offset(-max(abs(wall), self.voxel_size)))


def union_all(geometries: Iterable[VoxelGeometry], voxel_size: float) -> VoxelGeometry:
    result = VoxelGeometry.empty(voxel_size)
    for g in geometries:
        result = result.union(g)
    return result


# =============================================================================
# Kernel
# =============================================================================

class VoxelKernel:
    """Geometry capability bound to one voxel size."""

    def __init__(self, voxel_size: float):
        if voxel_size <= 0:
            raise ValueError(f"Voxel size must be positive, got {voxel_size}")
        self.voxel_size = float(voxel_size)

    def empty(self) -> VoxelGeometry:
        return VoxelGeometry.empty(self.voxel_size)

    def _index_window(self, bbox: BBox) -> Tuple[np.ndarray, np.ndarray]:
        lo = np.floor(np.asarray(bbox[0], dtype=float) / self.voxel_size).astype(np.int64)
        hi = np.ceil(np.asarray(bbox[1], dtype=float) / self.voxel_size).astype(np.int64)
        return lo, np.maximum(hi, lo)

    def _centres(self, origin: np.ndarray, shape) -> Tuple[np.ndarray, ...]:
        axes = [
            (origin[i] + np.arange(shape[i]) + 0.5) * self.voxel_size
            for i in range(3)
        ]
        return tuple(axes)

    def sample_signed_distance(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        bbox: BBox,
    ) -> VoxelGeometry:
        """Voxelize ``fn <= 0`` over the voxel centres inside ``bbox``.

        ``fn`` takes an (N, 3) array of points and returns N distances.
        """
        origin, hi = self._index_window(bbox)
        shape = tuple(int(v) for v in hi - origin)
        if min(shape) <= 0:
            return self.empty()

        xs, ys, zs = self._centres(origin, shape)
        data = np.zeros(shape, dtype=bool)
        plane = shape[0] * shape[1]
        z_step = max(1, SDF_CHUNK_POINTS // max(plane, 1))
        gx, gy = np.meshgrid(xs, ys, indexing="ij")
        for z0 in range(0, shape[2], z_step):
            z1 = min(shape[2], z0 + z_step)
            n = z1 - z0
            pts = np.empty((shape[0], shape[1], n, 3), dtype=float)
            pts[..., 0] = gx[..., None]
            pts[..., 1] = gy[..., None]
            pts[..., 2] = zs[z0:z1][None, None, :]
            dist = np.asarray(fn(pts.reshape(-1, 3)), dtype=float)
            data[:, :, z0:z1] = (dist <= 0.0).reshape(shape[0], shape[1], n)
        return VoxelGeometry(self.voxel_size, origin, data)

    def box(self, min_corner: Vec3, max_corner: Vec3) -> VoxelGeometry:
        lo = np.asarray(min_corner, dtype=float)
        hi = np.asarray(max_corner, dtype=float)
        centre = (lo + hi) / 2.0
        half = (hi - lo) / 2.0

        def sdf(p: np.ndarray) -> np.ndarray:
            q = np.abs(p - centre) - half
            return q.max(axis=1)

        return self.sample_signed_distance(sdf, (tuple(lo), tuple(hi)))

    def from_primitive_batch(self, batch: PrimitiveBatch) -> VoxelGeometry:
        """Voxelize every distinct primitive of ``batch`` into one geometry."""
        primitives = batch.distinct()
        if not primitives:
            return self.empty()

        origin, hi = self._index_window(batch.bounds())
        shape = tuple(int(v) for v in hi - origin)
        data = np.zeros(shape, dtype=bool)
        for prim in primitives:
            p_lo, p_hi = self._index_window(prim.bounds())
            p_lo = np.maximum(p_lo, origin)
            p_hi = np.minimum(p_hi, hi)
            p_shape = tuple(int(v) for v in p_hi - p_lo)
            if min(p_shape) <= 0:
                continue
            xs, ys, zs = self._centres(p_lo, p_shape)
            pts = np.stack(np.meshgrid(xs, ys, zs, indexing="ij"), axis=-1).reshape(-1, 3)
            inside = (_primitive_sdf(prim, pts) <= 0.0).reshape(p_shape)
            sl = tuple(slice(int(a - o), int(b - o)) for a, b, o in zip(p_lo, p_hi, origin))
            data[sl] |= inside
        return VoxelGeometry(self.voxel_size, origin, data)

    def to_mesh(self, geometry: VoxelGeometry) -> trimesh.Trimesh:
        """Surface voxels as a box mesh."""
        tight = geometry.crop()
        if tight.is_empty:
            return trimesh.Trimesh()
        padded = np.pad(tight.data, 1, constant_values=False)
        interior = ndimage.binary_erosion(padded)[1:-1, 1:-1, 1:-1]
        surface = tight.data & ~interior
        transform = np.eye(4)
        transform[:3, :3] *= self.voxel_size
        transform[:3, 3] = (tight.origin + 0.5) * self.voxel_size
        grid = VoxelGrid(surface, transform=transform)
        return grid.as_boxes()


def export_stl(mesh: trimesh.Trimesh, path: str) -> str:
    mesh.export(path, file_type="stl")
    logger.info("Exported STL: %s (%d faces)", path, len(mesh.faces))
    return path


# =============================================================================
# Primitive signed distances
# =============================================================================

def beam_sdf(p: np.ndarray, a, b, r_a: float, r_b: float) -> np.ndarray:
    """Tapered capsule distance (radius interpolated along the axis)."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    ab = b - a
    denom = float(ab @ ab)
    if denom < 1e-12:
        return np.linalg.norm(p - a, axis=1) - max(r_a, r_b)
    t = np.clip(((p - a) @ ab) / denom, 0.0, 1.0)
    closest = a + t[:, None] * ab
    radius = r_a + (r_b - r_a) * t
    return np.linalg.norm(p - closest, axis=1) - radius


def sphere_sdf(p: np.ndarray, centre, radius: float) -> np.ndarray:
    return np.linalg.norm(p - np.asarray(centre, dtype=float), axis=1) - radius


def _primitive_sdf(prim, pts: np.ndarray) -> np.ndarray:
    if isinstance(prim, Beam):
        return beam_sdf(pts, prim.start, prim.end, prim.r_start, prim.r_end)
    if isinstance(prim, Sphere):
        return sphere_sdf(pts, prim.center, prim.radius)
    raise TypeError(f"Unsupported primitive: {type(prim).__name__}")
