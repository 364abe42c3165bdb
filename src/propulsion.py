"""
Turbojet stage strategies.

Stages run along +z. Each reads the incoming cursor as its start, advances
it by its own extent and passes an exit radius on as the handshake. The
assembly root publishes the global diameter and required thrust during the
physics phase.
"""

from __future__ import annotations

import logging
import math
from typing import List, Tuple

import numpy as np

import physics
import shapes
from engine.component import Strategy, register_component
from engine.contracts import Parameter

logger = logging.getLogger(__name__)

BLUE = "#3b82f6"
RED = "#ef4444"
STEEL = "#94a3b8"
WARNING = "#f59e0b"

DEFAULT_DIAMETER = 1000.0
DEFAULT_THRUST_N = 50_000.0

# The reference-area correlation yields sub-millimetre chambers at typical
# inputs; heights are floored so the section stays printable.
MIN_CASING_HEIGHT_MM = 160.0


def _main_diameter(ctx) -> float:
    diameter = ctx.lookup_float("main_diameter", DEFAULT_DIAMETER)
    return diameter if diameter > 0 else DEFAULT_DIAMETER


@register_component(
    "turbojet_assembly",
    label="Turbojet Assembly",
    category="propulsion",
    children=("inlet", "compressor", "combustor", "nozzle"),
    addable=False,
)
class TurbojetAssembly(Strategy):
    """Root of the propulsion tree: outer skin plus optional section cut."""

    name = "Turbojet Assembly"

    def __init__(self):
        self.diameter = DEFAULT_DIAMETER
        self.thrust_kn = 80.0
        self.casing_length = 2000.0
        self.section_view = 0.0

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Global Diameter", self.diameter, 500, 2000, self.bind("diameter")),
            Parameter("Req. Thrust (kN)", self.thrust_kn, 10, 200, self.bind("thrust_kn")),
            Parameter("Casing Length", self.casing_length, 500, 5000, self.bind("casing_length")),
            Parameter("Section View", self.section_view, 0, 1, self.bind("section_view"),
                      step=1.0, continuous=False),
        ]

    def physics(self, ctx) -> None:
        ctx.publish("main_diameter", self.diameter)
        ctx.publish("required_thrust_n", self.thrust_kn * 1000.0)

    def setup(self, ctx) -> None:
        ctx.handshake = self.diameter / 2.0

    def preview(self, ctx) -> None:
        r = self.diameter / 2.0
        ctx.preview_circle((0.0, 0.0, ctx.cursor), r + 20.0, STEEL)
        ctx.preview_line((r + 20.0, 0.0, ctx.cursor), (r + 20.0, 0.0, ctx.cursor + self.casing_length), STEEL)

    def skin_radius(self, z):
        r = self.diameter / 2.0
        z = np.asarray(z, dtype=float)
        length = self.casing_length
        return np.where(z < 0.2 * length, r, np.where(z > 0.8 * length, r * 0.8, r + 20.0))

    def construct(self, ctx):
        kernel = ctx.kernel
        skin = shapes.pipe(
            kernel, ctx.cursor, self.casing_length,
            self.skin_radius,
            lambda z: self.skin_radius(z) + 10.0,
        )
        if self.section_view > 0.5:
            d = self.diameter
            cutter = kernel.box((0.0, -d, ctx.cursor - 100.0), (d, d, ctx.cursor + self.casing_length + 500.0))
            ctx.add_post_process_cut(cutter)
        return skin


@register_component("inlet", label="Inlet", category="propulsion")
class InletSystem(Strategy):
    name = "Inlet"

    def __init__(self):
        self.length = 300.0
        self.diameter = DEFAULT_DIAMETER

    def parameters(self) -> List[Parameter]:
        return [Parameter("Length", self.length, 100, 1000, self.bind("length"))]

    def setup(self, ctx) -> None:
        self.diameter = _main_diameter(ctx)
        ctx.handshake = self.diameter / 2.0
        ctx.cursor += self.length

    def cache_inputs(self) -> Tuple[float, ...]:
        return (self.diameter,)

    def preview(self, ctx) -> None:
        z0 = ctx.cursor - self.length
        r = self.diameter / 2.0
        ctx.preview_circle((0.0, 0.0, z0), r, BLUE)
        ctx.preview_circle((0.0, 0.0, z0 + self.length), r, RED)
        ctx.preview_line((0.0, 0.0, z0), (0.0, 0.0, z0 + self.length), STEEL)
        ctx.preview_line((0.0, 0.0, z0), (0.0, 0.0, z0 - 100.0), WARNING)

    def construct(self, ctx):
        kernel = ctx.kernel
        r = self.diameter / 2.0
        duct = shapes.pipe(kernel, ctx.cursor, self.length, r - 20.0, r)
        spike = shapes.cone(kernel, ctx.cursor, self.length, 0.0, self.diameter / 4.0)
        return duct.union(spike)


@register_component("compressor", label="Axial Compressor", category="propulsion")
class CompressorSection(Strategy):
    """Smoothstep casing; hub and blades go to the shared solids batch."""

    name = "Axial Compressor"
    stages = 5
    blades_per_stage = 12

    def __init__(self):
        self.length = 600.0
        self.ratio = 0.6
        self.r_in = 0.0
        self.r_out = 0.0
        self.z_start = 0.0

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Length", self.length, 200, 1000, self.bind("length")),
            Parameter("Comp. Ratio (%)", self.ratio * 100.0, 30, 90, self.bind("ratio", 0.01)),
        ]

    def radius(self, z_local):
        t = np.asarray(z_local, dtype=float) / self.length
        return self.r_in + (self.r_out - self.r_in) * physics.smoothstep(t)

    def setup(self, ctx) -> None:
        self.r_in = ctx.handshake if ctx.handshake > 0 else _main_diameter(ctx) / 2.0
        self.r_out = self.r_in * self.ratio
        self.z_start = ctx.cursor

        z_start, length = self.z_start, self.length

        def wall(z: float) -> float:
            if z < z_start or z > z_start + length:
                return -1.0
            return float(self.radius(z - z_start))

        ctx.publish_function("compressor_wall", wall)
        ctx.publish("compressor_span", (z_start, z_start + length))
        ctx.cursor += self.length
        ctx.handshake = self.r_out

    def cache_inputs(self) -> Tuple[float, ...]:
        return (self.r_in, self.r_out)

    def preview(self, ctx) -> None:
        z0, z1 = self.z_start, self.z_start + self.length
        ctx.preview_circle((0.0, 0.0, z0), self.r_in, BLUE)
        ctx.preview_circle((0.0, 0.0, z1), self.r_out, RED)
        ctx.preview_line((self.r_in, 0.0, z0), (self.r_out, 0.0, z1), STEEL)
        ctx.preview_line((-self.r_in, 0.0, z0), (-self.r_out, 0.0, z1), STEEL)
        for i in range(self.stages):
            z = z0 + self.length / self.stages * i
            ctx.preview_circle((0.0, 0.0, z), self.r_in * 0.5, WARNING)

    def construct(self, ctx):
        z0 = ctx.cursor
        casing = shapes.pipe(ctx.kernel, z0, self.length, 0.0, self.radius)
        casing = shapes.shell(casing, 8.0)

        for s in range(self.stages):
            offset = self.length / self.stages * s
            z = z0 + offset + 50.0
            r = float(self.radius(offset))
            hub = r * 0.3
            ctx.batched_solids.add_beam((0.0, 0.0, z - 20.0), (0.0, 0.0, z + 20.0), hub)
            for b in range(self.blades_per_stage):
                angle = b / self.blades_per_stage * 2.0 * math.pi
                root = (math.cos(angle) * hub, math.sin(angle) * hub, z)
                tip = (math.cos(angle + 0.2) * (r - 5.0), math.sin(angle + 0.2) * (r - 5.0), z)
                ctx.batched_solids.add_beam(root, tip, 5.0, 2.0)
        return casing


@register_component("combustor", label="Annular Combustor", category="propulsion")
class CombustorSection(Strategy):
    """Annular chamber sized from mass flow, inlet temperature and pressure."""

    name = "Annular Combustor"

    def __init__(self):
        self.mass_flow = 35.0
        self.inlet_temp = 750.0
        self.inlet_pressure = 25.0
        self.mean_diameter = 800.0
        self.casing_height = MIN_CASING_HEIGHT_MM
        self.liner_height = MIN_CASING_HEIGHT_MM * physics.FLAME_TUBE_AREA_RATIO
        self.zones = physics.zone_lengths(self.casing_height, self.liner_height)

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Mass Flow (kg/s)", self.mass_flow, 10, 100, self.bind("mass_flow")),
            Parameter("Inlet Temp (K)", self.inlet_temp, 400, 900, self.bind("inlet_temp")),
            Parameter("Inlet Pressure (Bar)", self.inlet_pressure, 5, 40, self.bind("inlet_pressure")),
        ]

    @property
    def total_length(self) -> float:
        return self.zones.total

    def setup(self, ctx) -> None:
        radius = ctx.handshake if ctx.handshake > 0 else 400.0
        self.mean_diameter = radius * 2.0

        ref_area = physics.combustor_reference_area(
            self.mass_flow, self.inlet_temp, self.inlet_pressure * 100_000.0
        )
        self.casing_height = max(
            physics.reference_height(ref_area, self.mean_diameter), MIN_CASING_HEIGHT_MM
        )
        ft_area = physics.flame_tube_area(ref_area)
        self.liner_height = max(
            physics.flame_tube_height(ft_area, self.mean_diameter),
            MIN_CASING_HEIGHT_MM * physics.FLAME_TUBE_AREA_RATIO,
        )
        self.zones = physics.zone_lengths(self.casing_height, self.liner_height)
        ctx.handshake = radius
        ctx.cursor += self.total_length

    def cache_inputs(self) -> Tuple[float, ...]:
        return (self.mean_diameter, self.casing_height, self.liner_height)

    def preview(self, ctx) -> None:
        z0 = ctx.cursor - self.total_length
        z1 = ctx.cursor
        mean_r = self.mean_diameter / 2.0
        ctx.preview_circle((0.0, 0.0, z0), mean_r + self.casing_height / 2.0, STEEL)
        ctx.preview_circle((0.0, 0.0, z1), mean_r + self.casing_height / 2.0, STEEL)
        ctx.preview_circle((0.0, 0.0, z0 + 10.0), mean_r, RED)
        ctx.preview_circle((0.0, 0.0, z1 - 10.0), mean_r, RED)

    def _hole_row(self, kernel, z: float, count: int, radius: float):
        mean_r = self.mean_diameter / 2.0
        holes = kernel.empty()
        for i in range(count):
            angle = i / count * 2.0 * math.pi
            direction = (math.cos(angle), math.sin(angle), 0.0)
            base = tuple((mean_r - 50.0) * c for c in direction[:2]) + (z,)
            holes = holes.union(shapes.cylinder(kernel, base, direction, 150.0, radius))
        return holes

    def construct(self, ctx):
        kernel = ctx.kernel
        z0 = ctx.cursor
        mean_r = self.mean_diameter / 2.0
        length = self.total_length

        liner = shapes.pipe(
            kernel, z0, length,
            mean_r - self.liner_height / 2.0,
            mean_r + self.liner_height / 2.0,
        )
        liner = shapes.shell(liner, 2.0)
        holes = self._hole_row(kernel, z0 + self.zones.primary * 0.5, 12, 15.0)
        holes = holes.union(
            self._hole_row(kernel, z0 + self.zones.primary + self.zones.secondary * 0.5, 16, 10.0)
        )
        liner = liner.subtract(holes)

        casing = shapes.pipe(
            kernel, z0, length,
            mean_r - self.casing_height / 2.0,
            mean_r + self.casing_height / 2.0,
        )
        casing = shapes.shell(casing, 4.0)
        return liner.union(casing)


@register_component("turbine", label="Turbine", category="propulsion")
class TurbineSection(Strategy):
    name = "Turbine"
    stages = 3

    def __init__(self):
        self.length = 300.0
        self.r_in = 400.0
        self.r_out = 440.0

    def parameters(self) -> List[Parameter]:
        return [Parameter("Length", self.length, 100, 600, self.bind("length"))]

    def setup(self, ctx) -> None:
        self.r_in = ctx.handshake if ctx.handshake > 0 else 400.0
        self.r_out = self.r_in * 1.1
        ctx.handshake = self.r_out
        ctx.cursor += self.length

    def preview(self, ctx) -> None:
        z0, z1 = ctx.cursor - self.length, ctx.cursor
        ctx.preview_circle((0.0, 0.0, z0), self.r_in, BLUE)
        ctx.preview_circle((0.0, 0.0, z1), self.r_out, RED)
        ctx.preview_line((self.r_in, 0.0, z0), (self.r_out, 0.0, z1), STEEL)
        ctx.preview_line((-self.r_in, 0.0, z0), (-self.r_out, 0.0, z1), STEEL)

    def construct(self, ctx):
        kernel = ctx.kernel
        z0 = ctx.cursor
        housing = shapes.shell(shapes.cone(kernel, z0, self.length, self.r_in, self.r_out), 10.0)
        for i in range(self.stages):
            z = z0 + self.length / self.stages * i + 20.0
            r = self.r_in + (self.r_out - self.r_in) * (i / self.stages)
            housing = housing.union(shapes.disc(kernel, z, 20.0, r - 5.0))
        return housing


@register_component("nozzle", label="Exhaust Nozzle", category="propulsion")
class ExhaustNozzle(Strategy):
    """De Laval bell sized from the required thrust and chamber pressure."""

    name = "Exhaust Nozzle"

    def __init__(self):
        self.pressure = 60.0
        self.expansion = 14.0
        self.thrust_n = DEFAULT_THRUST_N
        self.r_in = 0.0
        self.r_throat = 0.0
        self.r_exit = 0.0
        self.height = 0.0

    def parameters(self) -> List[Parameter]:
        return [
            Parameter("Pressure (Bar)", self.pressure, 10, 100, self.bind("pressure")),
            Parameter("Exp. Ratio", self.expansion, 2, 30, self.bind("expansion")),
        ]

    def setup(self, ctx) -> None:
        thrust = ctx.lookup_float("required_thrust_n", DEFAULT_THRUST_N)
        self.thrust_n = thrust if thrust > 0 else DEFAULT_THRUST_N

        at = physics.throat_area(self.thrust_n, self.pressure * 100_000.0)
        ae = physics.exit_area(at, self.expansion)
        self.r_throat = physics.area_to_radius_mm(at)
        self.r_exit = physics.area_to_radius_mm(ae)
        self.r_in = ctx.handshake if ctx.handshake > 0 else self.r_throat * 2.0
        self.height = self.r_exit * 4.0

        ctx.cursor += self.height
        ctx.handshake = self.r_exit

    def cache_inputs(self) -> Tuple[float, ...]:
        return (self.r_in, self.r_throat, self.r_exit)

    def preview(self, ctx) -> None:
        z0 = ctx.cursor - self.height
        ctx.preview_circle((0.0, 0.0, z0), self.r_in, BLUE)
        ctx.preview_circle((0.0, 0.0, z0 + self.height), self.r_exit, RED)

    def radius(self, z_local):
        # Profile runs from the exit plane; the chamber end meets the upstream stage.
        from_exit = self.height - np.asarray(z_local, dtype=float)
        return physics.de_laval_radius(
            from_exit, self.height * 0.3, self.height * 0.6,
            self.r_in, self.r_throat, self.r_exit,
        )

    def construct(self, ctx):
        bell = shapes.pipe(ctx.kernel, ctx.cursor, self.height, 0.0, self.radius, samples=128)
        wall = physics.wall_thickness(self.pressure, self.r_in)
        return shapes.shell(bell, wall)


@register_component("cooling", label="Regenerative Cooling", category="propulsion")
class CoolingSystem(Strategy):
    """Helical channel following the published compressor wall.

    Without a published wall the component contributes nothing.
    """

    name = "Regenerative Cooling"
    steps = 200
    tightness = 0.05
    channel_radius = 3.0

    def __init__(self):
        self.points: List[Tuple[float, float, float]] = []

    def setup(self, ctx) -> None:
        wall = ctx.function("compressor_wall")
        self.points = []
        if wall is None:
            return
        z_start, z_end = ctx.lookup("compressor_span", (0.0, 600.0))
        for i in range(self.steps + 1):
            z = z_start + (z_end - z_start) * i / self.steps
            r = wall(z)
            if r > 0:
                angle = z * self.tightness
                self.points.append((math.cos(angle) * r, math.sin(angle) * r, z))

    def cache_inputs(self) -> Tuple[float, ...]:
        return tuple(v for p in self.points for v in p)

    def preview(self, ctx) -> None:
        stride = max(1, len(self.points) // 50)
        sampled = self.points[::stride]
        for a, b in zip(sampled, sampled[1:]):
            ctx.preview_line(a, b, WARNING)

    def construct(self, ctx):
        if len(self.points) < 2:
            return None
        for a, b in zip(self.points, self.points[1:]):
            if math.dist(a, b) < 1e-3:
                continue
            ctx.batched_voids.add_beam(a, b, self.channel_radius)
        return None
