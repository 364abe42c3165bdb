"""
Stand-alone procedural strategies: cellular automata, L-system, gyroid.

None of these move the cursor; they build around the position where they
are visited.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import numpy as np

import shapes
from engine.batch import PrimitiveBatch
from engine.component import Strategy, register_component
from engine.contracts import ACTION_PREFIX, Parameter

logger = logging.getLogger(__name__)


# =============================================================================
# Cellular automata
# =============================================================================

SURVIVE_MIN = 4
SURVIVE_MAX = 6
BIRTH = 6


def seed_grid(size: int, density: float, seed: int) -> np.ndarray:
    """Random live cells inside the central half-cube."""
    rng = np.random.default_rng(seed)
    grid = np.zeros((size, size, size), dtype=bool)
    idx = np.arange(size)
    central = np.abs(idx - size // 2) < size // 4
    mask = central[:, None, None] & central[None, :, None] & central[None, None, :]
    grid[mask] = rng.random(int(mask.sum())) < density
    return grid


def step_slab(current: np.ndarray, nxt: np.ndarray, x: int) -> None:
    """Write generation n+1 of the interior slab ``x`` into ``nxt``."""
    n = current.shape[0]
    plane = current[x - 1:x + 2].sum(axis=0, dtype=np.int16)
    counts = np.zeros((n - 2, n - 2), dtype=np.int16)
    for dy in (-1, 0, 1):
        for dz in (-1, 0, 1):
            counts += plane[1 + dy:n - 1 + dy, 1 + dz:n - 1 + dz]
    alive = current[x, 1:n - 1, 1:n - 1]
    counts -= alive.astype(np.int16)
    survive = (counts >= SURVIVE_MIN) & (counts <= SURVIVE_MAX)
    nxt[x, 1:n - 1, 1:n - 1] = np.where(alive, survive, counts == BIRTH)


def run_automaton(grid: np.ndarray, iterations: int, workers: Optional[int] = None) -> np.ndarray:
    """Double-buffered simulation with slabs updated concurrently.

    Every slab of a generation completes before the buffers swap.
    """
    current = grid.copy()
    nxt = np.zeros_like(current)
    n = current.shape[0]
    if n < 3:
        return current
    with ThreadPoolExecutor(max_workers=workers) as pool:
        for i in range(iterations):
            futures = [pool.submit(step_slab, current, nxt, x) for x in range(1, n - 1)]
            for future in futures:
                future.result()
            current, nxt = nxt, current
            logger.debug("Automaton generation %d: %d live cells", i + 1, int(current.sum()))
    return current


@register_component("cellular_automata", label="Cellular Automata", category="algorithms")
class CellularAutomata(Strategy):
    name = "Cellular Automata"
    cell_size = 5.0

    def __init__(self):
        self.grid_size = 50
        self.iterations = 10
        self.seed_density = 0.2
        self.seed = 1

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Grid Size", self.grid_size, 20, 80, self._set_grid, step=1.0),
            Parameter("Iterations", self.iterations, 1, 25, self._set_iterations, step=1.0),
            Parameter("Seed Density (%)", self.seed_density * 100.0, 5, 50, self.bind("seed_density", 0.01)),
            Parameter("Seed", self.seed, 0, 9999, self._set_seed, step=1.0, continuous=False),
            Parameter(f"{ACTION_PREFIX} Reseed", 0.0, 0, 1, self._reseed, continuous=False),
        ]

    def _set_grid(self, value: float) -> None:
        self.grid_size = int(value)

    def _set_iterations(self, value: float) -> None:
        self.iterations = int(value)

    def _set_seed(self, value: float) -> None:
        self.seed = int(value)

    def _reseed(self, _value: float) -> None:
        self.seed = (self.seed * 7919 + 1) % 10_000

    def preview(self, ctx) -> None:
        extent = self.grid_size * self.cell_size
        z = ctx.cursor
        ctx.preview_line((0.0, 0.0, z), (extent, 0.0, z), "#94a3b8")
        ctx.preview_line((0.0, 0.0, z), (0.0, extent, z), "#94a3b8")
        ctx.preview_line((0.0, 0.0, z), (0.0, 0.0, z + extent), "#94a3b8")

    def construct(self, ctx):
        grid = seed_grid(self.grid_size, self.seed_density, self.seed)
        grid = run_automaton(grid, self.iterations)
        live = np.argwhere(grid)
        logger.info("Cellular automata: %d live cells after %d generations", len(live), self.iterations)
        radius = self.cell_size * 0.7
        for x, y, z in live:
            ctx.batched_solids.add_sphere(
                (x * self.cell_size, y * self.cell_size, ctx.cursor + z * self.cell_size), radius
            )
        return None


# =============================================================================
# L-system
# =============================================================================

AXIOM = "X"
RULES: Dict[str, str] = {"X": "F-[[X]+X]+F[+FX]-X", "F": "FF"}


def expand(axiom: str, rules: Dict[str, str], iterations: int) -> str:
    current = axiom
    for _ in range(iterations):
        current = "".join(rules.get(c, c) for c in current)
    return current


def _rotate(v: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """Rodrigues rotation of ``v`` about unit ``axis``."""
    c, s = math.cos(angle), math.sin(angle)
    return v * c + np.cross(axis, v) * s + axis * float(axis @ v) * (1.0 - c)


def interpret(program: str, angle_deg: float, step: float, thickness: float,
              origin=(0.0, 0.0, 0.0)) -> PrimitiveBatch:
    """Bracketed 3D turtle; each ``F`` becomes a tapered beam."""
    angle = math.radians(angle_deg)
    pos = np.asarray(origin, dtype=float)
    forward = np.array([0.0, 1.0, 0.0])
    right = np.array([1.0, 0.0, 0.0])
    up = np.array([0.0, 0.0, 1.0])
    radius = thickness
    stack = []
    beams = PrimitiveBatch()

    for c in program:
        if c == "F":
            end = pos + forward * step
            beams.add_beam(pos, end, radius, radius * 0.7)
            pos = end
        elif c in "+-":
            a = angle if c == "+" else -angle
            forward, right = _rotate(forward, up, a), _rotate(right, up, a)
        elif c in "&^":
            a = angle if c == "&" else -angle
            forward, up = _rotate(forward, right, a), _rotate(up, right, a)
        elif c in "\\/":
            a = angle if c == "\\" else -angle
            right, up = _rotate(right, forward, a), _rotate(up, forward, a)
        elif c == "[":
            stack.append((pos, forward, right, up, radius))
            radius *= 0.75
        elif c == "]" and stack:
            pos, forward, right, up, radius = stack.pop()
    return beams


@register_component("l_system", label="L-System Plant", category="algorithms")
class LSystem(Strategy):
    name = "L-System Plant"

    def __init__(self):
        self.iterations = 4
        self.angle = 25.0
        self.step = 20.0
        self.thickness = 2.0

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Iterations", self.iterations, 1, 6, self._set_iterations, step=1.0),
            Parameter("Angle (deg)", self.angle, 10, 90, self.bind("angle")),
            Parameter("Step Size (mm)", self.step, 5, 100, self.bind("step")),
            Parameter("Thickness (mm)", self.thickness, 1, 15, self.bind("thickness")),
        ]

    def _set_iterations(self, value: float) -> None:
        self.iterations = int(value)

    def construct(self, ctx):
        program = expand(AXIOM, RULES, self.iterations)
        root_radius = self.thickness * 1.5 ** self.iterations
        beams = interpret(program, self.angle, self.step, root_radius, origin=(0.0, 0.0, ctx.cursor))
        logger.info("L-system: %d symbols, %d beams", len(program), len(beams))
        plant = ctx.kernel.from_primitive_batch(beams)
        return plant.smoothen(self.thickness * 0.5)


# =============================================================================
# Implicit gyroid
# =============================================================================

def gyroid_sdf(points: np.ndarray, cell_size: float, wall: float) -> np.ndarray:
    """Approximate distance to a gyroid sheet of thickness ``wall``."""
    scale = 2.0 * math.pi / cell_size
    x, y, z = (points * scale).T
    value = np.sin(x) * np.cos(y) + np.sin(y) * np.cos(z) + np.sin(z) * np.cos(x)
    return np.abs(value) / scale - wall / 2.0


@register_component("implicit_gyroid", label="Implicit Gyroid", category="algorithms")
class ImplicitGyroid(Strategy):
    name = "Implicit Gyroid"

    def __init__(self):
        self.cell_size = 20.0
        self.wall = 2.0
        self.bounding = 100.0

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Cell Size", self.cell_size, 5, 100, self.bind("cell_size")),
            Parameter("Wall Thickness", self.wall, 0.5, 10, self.bind("wall")),
            Parameter("Bounding Size", self.bounding, 20, 400, self.bind("bounding")),
        ]

    def preview(self, ctx) -> None:
        r = self.bounding / 2.0
        ctx.preview_circle((0.0, 0.0, ctx.cursor + r), r, "#94a3b8")

    def construct(self, ctx):
        kernel = ctx.kernel
        r = self.bounding / 2.0
        centre = (0.0, 0.0, ctx.cursor + r)
        # Walls thinner than a voxel would alias away entirely.
        wall = max(self.wall, kernel.voxel_size)
        bbox = ((-r, -r, ctx.cursor), (r, r, ctx.cursor + 2.0 * r))
        sheet = kernel.sample_signed_distance(
            lambda p: gyroid_sdf(p, self.cell_size, wall), bbox
        )
        return sheet.intersect(shapes.sphere(kernel, centre, r))
