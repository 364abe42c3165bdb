"""
Per-pass build context.

One ``BuildContext`` is created for every pipeline pass and threaded through
the whole tree walk. ``cursor`` and ``handshake`` are mutated in traversal
order; the registry lets a component publish named values or functions for
any component visited later in the same pass.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from engine.batch import PrimitiveBatch
from engine.contracts import ConstructScope, GeometryKernel, PreviewGuide, Vec3

logger = logging.getLogger(__name__)

_MISSING = object()


class BuildContext:
    """Token threaded through one full pipeline pass."""

    def __init__(self, kernel: GeometryKernel, cursor: float = 0.0, handshake: float = 0.0):
        self.kernel = kernel
        self.cursor = float(cursor)
        self.handshake = float(handshake)
        self.registry: Dict[str, Any] = {}
        self.assembly = kernel.empty()
        self.batched_solids = PrimitiveBatch()
        self.batched_voids = PrimitiveBatch()
        self.post_process_cuts = kernel.empty()
        self.previews: List[PreviewGuide] = []

    @property
    def voxel_size(self) -> float:
        return self.kernel.voxel_size

    # ── Registry ─────────────────────────────────────────────────────────

    def publish(self, key: str, value: Any) -> None:
        self.registry[key] = value

    def lookup(self, key: str, default: Any = None) -> Any:
        """Registry value for ``key``; a miss returns ``default``."""
        value = self.registry.get(key, _MISSING)
        if value is _MISSING:
            logger.debug("Registry miss for %r", key)
            return default
        return value

    def lookup_float(self, key: str, default: float = 0.0) -> float:
        value = self.lookup(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            return float(default)

    def publish_function(self, key: str, fn: Callable[[float], float]) -> None:
        if not callable(fn):
            raise TypeError(f"Registry function {key!r} is not callable")
        self.registry[key] = fn

    def function(self, key: str) -> Optional[Callable[[float], float]]:
        fn = self.lookup(key)
        return fn if callable(fn) else None

    def evaluate(self, key: str, x: float, default: Optional[float] = None) -> Optional[float]:
        """Call a published function, or return ``default`` when absent."""
        fn = self.function(key)
        if fn is None:
            return default
        return float(fn(x))

    # ── Accumulators ─────────────────────────────────────────────────────

    def add(self, geometry) -> None:
        """Union ``geometry`` into the current assembly accumulator."""
        if geometry is not None:
            self.assembly = self.assembly.union(geometry)

    def cut(self, geometry) -> None:
        if geometry is not None:
            self.assembly = self.assembly.subtract(geometry)

    def add_post_process_cut(self, geometry) -> None:
        """Queue a cut applied only after the whole tree completes."""
        if geometry is not None:
            self.post_process_cuts = self.post_process_cuts.union(geometry)

    @contextmanager
    def scoped_construct(self, start_position: float) -> Iterator[ConstructScope]:
        """Redirect the accumulators and cursor for one node's construct phase.

        The node sees an empty assembly, empty batches and a cursor at its
        own start position. Whatever it produced is captured in the yielded
        scope, and the real accumulators and cursor are restored on every
        exit path.
        """
        saved = (
            self.assembly,
            self.cursor,
            self.batched_solids,
            self.batched_voids,
            self.post_process_cuts,
        )
        scope = ConstructScope()
        self.assembly = self.kernel.empty()
        self.cursor = float(start_position)
        self.batched_solids = PrimitiveBatch()
        self.batched_voids = PrimitiveBatch()
        self.post_process_cuts = self.kernel.empty()
        try:
            yield scope
        finally:
            scope.geometry = self.assembly
            scope.solids = self.batched_solids
            scope.voids = self.batched_voids
            scope.cuts = self.post_process_cuts
            (
                self.assembly,
                self.cursor,
                self.batched_solids,
                self.batched_voids,
                self.post_process_cuts,
            ) = saved

    def replay(self, scope: ConstructScope) -> None:
        """Composite a (fresh or cached) construct result into the real pass."""
        self.add(scope.geometry)
        if scope.solids is not None:
            self.batched_solids.extend(scope.solids)
        if scope.voids is not None:
            self.batched_voids.extend(scope.voids)
        if scope.cuts is not None:
            self.add_post_process_cut(scope.cuts)

    # ── Preview guides ───────────────────────────────────────────────────

    def preview_circle(self, centre: Vec3, radius: float, color: str = "#cccccc",
                       resolution: int = 32) -> None:
        cx, cy, cz = centre
        points = [
            (cx + math.cos(2 * math.pi * i / resolution) * radius,
             cy + math.sin(2 * math.pi * i / resolution) * radius,
             cz)
            for i in range(resolution + 1)
        ]
        self.previews.append(PreviewGuide("circle", points, color))

    def preview_line(self, start: Vec3, end: Vec3, color: str = "#cccccc") -> None:
        self.previews.append(PreviewGuide("line", [tuple(start), tuple(end)], color))
