"""Public API for the incremental construction engine."""

from engine.batch import Beam, PrimitiveBatch, Sphere
from engine.component import (
    ComponentNode,
    NodeStatus,
    Strategy,
    available_kinds,
    create_strategy,
    register_component,
)
from engine.context import BuildContext
from engine.contracts import (
    BuildFailedError,
    CacheEntry,
    EngineError,
    Parameter,
    ParameterChange,
    ProjectFormatError,
    ResolutionMismatchError,
    UnknownComponentTypeError,
)
from engine.scheduler import BuildResult, Scheduler, SchedulerConfig
from engine.tree import ApplicationState, ComponentTree

__all__ = [
    "ApplicationState",
    "Beam",
    "BuildContext",
    "BuildFailedError",
    "BuildResult",
    "CacheEntry",
    "ComponentNode",
    "ComponentTree",
    "EngineError",
    "NodeStatus",
    "Parameter",
    "ParameterChange",
    "PrimitiveBatch",
    "ProjectFormatError",
    "ResolutionMismatchError",
    "Scheduler",
    "SchedulerConfig",
    "Sphere",
    "Strategy",
    "UnknownComponentTypeError",
    "available_kinds",
    "create_strategy",
    "register_component",
]
