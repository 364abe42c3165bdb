"""
Component nodes and the component-kind table.

A ``ComponentNode`` wraps one construction strategy with the caching and
invalidation rules of the build pipeline. Strategies are registered under a
stable kind string so a project file can name them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from engine.contracts import (
    ENABLED_PREFIX,
    CacheEntry,
    ConstructionStrategy,
    Parameter,
    UnknownComponentTypeError,
)

logger = logging.getLogger(__name__)


class NodeStatus(str, Enum):
    BUILT = "built"
    REUSED = "reused"
    FAILED = "failed"
    DISABLED = "disabled"


class Strategy:
    """Convenience base for construction strategies.

    Every callback is a no-op except ``construct``. ``cache_inputs`` returns
    the derived dimensions (computed during setup) that the construct phase
    depends on besides the incoming handshake.
    """

    name = "Component"

    def parameters(self) -> List[Parameter]:
        return []

    def physics(self, ctx) -> None:
        pass

    def setup(self, ctx) -> None:
        pass

    def preview(self, ctx) -> None:
        pass

    def construct(self, ctx):
        raise NotImplementedError

    def cache_inputs(self) -> Tuple[float, ...]:
        return ()

    def bind(self, attr: str, scale: float = 1.0) -> Callable[[float], None]:
        """Setter for ``on_change`` storing ``value * scale`` on ``attr``."""

        def setter(value: float) -> None:
            setattr(self, attr, float(value) * scale)

        return setter


# =============================================================================
# Kind table
# =============================================================================

@dataclass(frozen=True)
class ComponentKind:
    kind: str
    factory: Callable[[], Strategy]
    label: str
    category: str = "algorithms"
    children: Tuple[str, ...] = ()
    addable: bool = True


COMPONENT_KINDS: Dict[str, ComponentKind] = {}


def register_component(
    kind: str,
    label: Optional[str] = None,
    category: str = "algorithms",
    children: Tuple[str, ...] = (),
    addable: bool = True,
):
    """Class decorator adding a strategy to the kind table."""

    def decorator(cls):
        if kind in COMPONENT_KINDS and COMPONENT_KINDS[kind].factory is not cls:
            raise ValueError(f"Component kind {kind!r} already registered")
        cls.kind = kind
        COMPONENT_KINDS[kind] = ComponentKind(
            kind=kind,
            factory=cls,
            label=label or getattr(cls, "name", kind),
            category=category,
            children=tuple(children),
            addable=addable,
        )
        return cls

    return decorator


def lookup_kind(kind: str) -> ComponentKind:
    try:
        return COMPONENT_KINDS[kind]
    except KeyError:
        raise UnknownComponentTypeError(kind) from None


def create_strategy(kind: str) -> Strategy:
    return lookup_kind(kind).factory()


def available_kinds(category: Optional[str] = None) -> List[ComponentKind]:
    kinds = sorted(COMPONENT_KINDS.values(), key=lambda k: (k.category, k.label))
    if category is not None:
        kinds = [k for k in kinds if k.category == category]
    return kinds


# =============================================================================
# Node
# =============================================================================

class ComponentNode:
    """One node of the build tree.

    ``start_position`` is captured at the start of setup on every pass.
    The cache is keyed by the handshake seen when the node was entered;
    parameter edits invalidate it through ``set_parameter`` only.
    """

    def __init__(self, strategy: ConstructionStrategy, kind: str, node_id: int = -1):
        self.node_id = node_id
        self.kind = kind
        self.strategy = strategy
        self.enabled = True
        self.parent_id: Optional[int] = None
        self.children: List[int] = []
        self.cache = CacheEntry()
        self.start_position = 0.0
        self.last_status: Optional[NodeStatus] = None
        self.last_error: Optional[str] = None

    def __repr__(self) -> str:
        return f"ComponentNode(id={self.node_id}, kind={self.kind!r}, enabled={self.enabled})"

    @property
    def name(self) -> str:
        return self.strategy.name

    @property
    def dirty(self) -> bool:
        return not self.cache.is_valid

    @property
    def cached_geometry(self):
        return self.cache.value

    @property
    def cached_input_signature(self) -> float:
        return self.cache.signature

    # ── Parameters ───────────────────────────────────────────────────────

    @property
    def header_name(self) -> str:
        return f"{ENABLED_PREFIX}{self.name.upper()} ]"

    def _set_enabled(self, value: float) -> None:
        self.enabled = value > 0.5

    def parameters(self) -> List[Parameter]:
        header = Parameter(
            name=self.header_name,
            value=1.0 if self.enabled else 0.0,
            min=0.0,
            max=1.0,
            on_change=self._set_enabled,
            step=1.0,
            continuous=False,
        )
        return [header] + list(self.strategy.parameters())

    def find_parameter(self, name: str) -> Optional[Parameter]:
        for param in self.parameters():
            if param.name == name:
                return param
        return None

    def set_parameter(self, name: str, value: float) -> bool:
        """Clamp a value to its range, route it through ``on_change`` and invalidate the cache.

        The enabled header is the exception: toggling it keeps the cache so
        a re-enabled node resumes without rebuilding.
        """
        param = self.find_parameter(name)
        if param is None:
            logger.warning("Unknown parameter %r on %s", name, self.name)
            return False
        value = param.clamp(float(value))
        param.on_change(value)
        param.value = value
        if not param.is_toggle:
            self.cache.invalidate()
        return True

    def parameter_state(self) -> Dict[str, float]:
        """Persistable values; action buttons carry no state."""
        return {p.name: float(p.value) for p in self.parameters() if not p.is_action}

    def apply_parameter_state(self, saved: Dict[str, float]) -> int:
        """Replay saved values in the current parameter order."""
        applied = 0
        for name in [p.name for p in self.parameters() if not p.is_action]:
            if name in saved and self.set_parameter(name, saved[name]):
                applied += 1
        return applied

    def invalidate(self) -> None:
        self.cache.invalidate()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def run_physics(self, ctx) -> None:
        self.strategy.physics(ctx)

    def build(self, ctx, epsilon: float = 0.1) -> NodeStatus:
        """Setup, preview and construct/composite for one pass."""
        input_handshake = ctx.handshake
        self.start_position = ctx.cursor
        self.strategy.setup(ctx)
        self.strategy.preview(ctx)

        # Cached geometry sits at an absolute position, so a moved start misses too.
        inputs = (self.start_position,) + tuple(float(v) for v in self.strategy.cache_inputs())
        if self.cache.matches(input_handshake, epsilon, inputs):
            status = NodeStatus.REUSED
            logger.debug("Reusing %s (signature %.3f)", self.name, self.cache.signature)
        else:
            try:
                with ctx.scoped_construct(self.start_position) as scope:
                    produced = self.strategy.construct(ctx)
                    if produced is not None:
                        ctx.add(produced)
            except Exception as exc:
                logger.exception("Construct failed for %s (node %d)", self.name, self.node_id)
                self.cache.invalidate()
                self.last_status = NodeStatus.FAILED
                self.last_error = f"{type(exc).__name__}: {exc}"
                return NodeStatus.FAILED
            self.cache.store(input_handshake, scope, inputs)
            status = NodeStatus.BUILT
            logger.debug("Built %s: %s", self.name, scope.geometry)

        ctx.replay(self.cache.deferred)
        self.last_status = status
        self.last_error = None
        return status
