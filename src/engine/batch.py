"""Deferred primitive batches.

Components drop cheap primitives (beams, spheres) into a pass-scoped batch
instead of voxelizing each one; the scheduler voxelizes every batch once per
pass. Only multiset membership matters, never insertion order.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from engine.contracts import BBox, Vec3


def _vec(v) -> Vec3:
    return (float(v[0]), float(v[1]), float(v[2]))


@dataclass(frozen=True)
class Beam:
    """Tapered capsule from ``start`` (radius ``r_start``) to ``end``."""
    start: Vec3
    end: Vec3
    r_start: float
    r_end: float

    def bounds(self) -> BBox:
        r = max(self.r_start, self.r_end)
        lo = tuple(min(a, b) - r for a, b in zip(self.start, self.end))
        hi = tuple(max(a, b) + r for a, b in zip(self.start, self.end))
        return lo, hi


@dataclass(frozen=True)
class Sphere:
    center: Vec3
    radius: float

    def bounds(self) -> BBox:
        lo = tuple(c - self.radius for c in self.center)
        hi = tuple(c + self.radius for c in self.center)
        return lo, hi


class PrimitiveBatch:
    """Unordered multiset of primitive requests."""

    def __init__(self, primitives: Iterable = ()):
        self._items: Counter = Counter()
        for p in primitives:
            self.add(p)

    def add(self, primitive) -> None:
        self._items[primitive] += 1

    def add_beam(self, start, end, r_start: float, r_end: Optional[float] = None) -> None:
        if r_end is None:
            r_end = r_start
        self.add(Beam(_vec(start), _vec(end), float(r_start), float(r_end)))

    def add_sphere(self, center, radius: float) -> None:
        self.add(Sphere(_vec(center), float(radius)))

    def extend(self, other: "PrimitiveBatch") -> None:
        self._items.update(other._items)

    def __len__(self) -> int:
        return sum(self._items.values())

    def __iter__(self) -> Iterator:
        return self._items.elements()

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrimitiveBatch):
            return NotImplemented
        return self._items == other._items

    def distinct(self) -> List:
        """Distinct primitives; duplicates add nothing to a union."""
        return list(self._items.keys())

    def bounds(self) -> BBox:
        if not self._items:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        los, his = zip(*(p.bounds() for p in self._items))
        lo = tuple(min(v[i] for v in los) for i in range(3))
        hi = tuple(max(v[i] for v in his) for i in range(3))
        return lo, hi

    def clear(self) -> None:
        self._items.clear()
