"""Contracts shared by the incremental construction engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol, Tuple

Vec3 = Tuple[float, float, float]
BBox = Tuple[Vec3, Vec3]

ENABLED_PREFIX = "[ "
ACTION_PREFIX = ">>>"


class EngineError(Exception):
    """Base exception for engine errors."""
    pass


class UnknownComponentTypeError(EngineError):
    """A persisted or requested component kind is not registered."""

    def __init__(self, kind: str):
        super().__init__(f"Unknown component type: {kind}")
        self.kind = kind


class ProjectFormatError(EngineError):
    """A project file could not be parsed into a project record."""
    pass


class ResolutionMismatchError(EngineError):
    """Project resolution differs and no confirmation path was supplied."""

    def __init__(self, project_resolution: float, current_resolution: float):
        super().__init__(
            f"Project uses {project_resolution}mm resolution, "
            f"current is {current_resolution}mm"
        )
        self.project_resolution = project_resolution
        self.current_resolution = current_resolution


class BuildFailedError(EngineError):
    """A headless pass did not publish a result."""
    pass


@dataclass
class Parameter:
    """A named scalar control with bounds.

    ``on_change`` is authoritative: assigning ``value`` directly has no
    geometric effect.
    """
    name: str
    value: float
    min: float
    max: float
    on_change: Callable[[float], None]
    step: Optional[float] = None
    continuous: bool = True

    @property
    def is_toggle(self) -> bool:
        return self.name.startswith(ENABLED_PREFIX)

    @property
    def is_action(self) -> bool:
        return self.name.startswith(ACTION_PREFIX)

    def clamp(self, value: float) -> float:
        if self.max <= self.min:
            return float(value)
        return float(min(max(value, self.min), self.max))


@dataclass(frozen=True)
class ParameterChange:
    """A parameter edit posted from the UI thread to the geometry thread."""
    node_id: int
    name: str
    value: float


@dataclass
class ConstructScope:
    """What one construct phase produced while the context was redirected."""
    geometry: Any = None
    solids: Any = None
    voids: Any = None
    cuts: Any = None


@dataclass
class CacheEntry:
    """Cached construct result keyed by the handshake it was built from.

    A cleared signature (NaN) means the entry is invalid; there is no
    separate dirty flag to keep in sync. ``inputs`` holds the start position
    and the derived dimensions the strategy reported after setup, so moved
    stages and registry-driven changes also miss the cache.
    """
    signature: float = math.nan
    value: Optional[Any] = None
    inputs: Tuple[float, ...] = ()
    deferred: Optional[ConstructScope] = None

    def invalidate(self) -> None:
        self.signature = math.nan

    @property
    def is_valid(self) -> bool:
        return self.value is not None and not math.isnan(self.signature)

    def matches(self, handshake: float, epsilon: float, inputs: Tuple[float, ...] = ()) -> bool:
        if not self.is_valid:
            return False
        if abs(handshake - self.signature) > epsilon:
            return False
        return _inputs_close(self.inputs, inputs)

    def store(self, handshake: float, scope: ConstructScope, inputs: Tuple[float, ...] = ()) -> None:
        self.signature = float(handshake)
        self.value = scope.geometry
        self.inputs = tuple(inputs)
        self.deferred = scope


def _inputs_close(a: Tuple[float, ...], b: Tuple[float, ...], rel: float = 1e-6) -> bool:
    if len(a) != len(b):
        return False
    return all(math.isclose(x, y, rel_tol=rel, abs_tol=1e-9) for x, y in zip(a, b))


@dataclass
class PreviewGuide:
    """Lightweight visual guide emitted in the preview phase (never cached)."""
    kind: str  # "circle" or "line"
    points: List[Vec3] = field(default_factory=list)
    color: str = "#cccccc"


class GeometryKernel(Protocol):
    """The geometry capability consumed by construction strategies."""

    voxel_size: float

    def empty(self) -> Any: ...

    def from_primitive_batch(self, batch: Any) -> Any: ...

    def sample_signed_distance(self, fn: Callable[[Any], Any], bbox: BBox) -> Any: ...

    def box(self, min_corner: Vec3, max_corner: Vec3) -> Any: ...

    def to_mesh(self, geometry: Any) -> Any: ...


class ConstructionStrategy(Protocol):
    """Four-callback interface implemented by each component kind."""

    name: str

    def parameters(self) -> List[Parameter]: ...

    def physics(self, ctx: Any) -> None: ...

    def setup(self, ctx: Any) -> None: ...

    def preview(self, ctx: Any) -> None: ...

    def construct(self, ctx: Any) -> Optional[Any]: ...

    def cache_inputs(self) -> Tuple[float, ...]: ...
