"""
Project files (.wgp).

A project is a JSON record of the root component kind, the voxel resolution
it was authored at, and the flattened parameter values of the root and its
direct children. Child keys are prefixed with the child's name so equal
parameter names on different stages never collide.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from engine.component import ComponentNode, lookup_kind
from engine.contracts import ProjectFormatError, ResolutionMismatchError, UnknownComponentTypeError
from engine.tree import ComponentTree
from run_protocol import write_json

logger = logging.getLogger(__name__)

PROJECT_VERSION = "1.0"
PROJECT_SUFFIX = ".wgp"
CHILD_SEPARATOR = " / "
RESOLUTION_TOLERANCE = 0.001

ConfirmCallback = Callable[[float, float], bool]


@dataclass
class ProjectFile:
    version: str = PROJECT_VERSION
    voxel_resolution: float = 5.0
    root_type: str = ""
    parameters: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "voxel_resolution": self.voxel_resolution,
            "root_type": self.root_type,
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "ProjectFile":
        if not isinstance(payload, dict):
            raise ProjectFormatError("Project file must contain a JSON object")
        root_type = payload.get("root_type")
        if not isinstance(root_type, str) or not root_type:
            raise ProjectFormatError("Project file has no root_type")
        params = payload.get("parameters", {})
        if not isinstance(params, dict):
            raise ProjectFormatError("parameters must be an object")
        try:
            resolution = float(payload.get("voxel_resolution"))
            parameters = {str(k): float(v) for k, v in params.items()}
        except (TypeError, ValueError) as exc:
            raise ProjectFormatError(f"Invalid numeric value: {exc}") from exc
        if not math.isfinite(resolution) or resolution <= 0:
            raise ProjectFormatError(f"Invalid voxel_resolution: {resolution}")
        return cls(
            version=str(payload.get("version", PROJECT_VERSION)),
            voxel_resolution=resolution,
            root_type=root_type,
            parameters=parameters,
        )


@dataclass
class LoadResult:
    tree: ComponentTree
    project: ProjectFile
    restart_required: bool = False


# ── Flattening ───────────────────────────────────────────────────────────────

def declared_children(tree: ComponentTree) -> List[ComponentNode]:
    """Children that fill the root kind's declared slots, in tree order.

    Each declared kind claims the first unclaimed child of that kind; stages
    added from the menu are not part of the saved record.
    """
    root = tree.root
    if root is None:
        return []
    try:
        pending = list(lookup_kind(root.kind).children)
    except UnknownComponentTypeError:
        pending = []
    slots = []
    for child in tree.children_of(root.node_id):
        if child.kind in pending:
            pending.remove(child.kind)
            slots.append(child)
    return slots


def collect_parameters(tree: ComponentTree) -> Dict[str, float]:
    """Root values under bare names, then each declared child's under ``"<child> / <name>"``."""
    root = tree.root
    if root is None:
        return {}
    values = dict(root.parameter_state())
    slots = declared_children(tree)
    for child in slots:
        for name, value in child.parameter_state().items():
            values[f"{child.name}{CHILD_SEPARATOR}{name}"] = value
    skipped = len(root.children) - len(slots)
    if skipped:
        logger.warning("%d added component(s) are not part of the %s record", skipped, root.kind)
    return values


def apply_parameters(tree: ComponentTree, parameters: Dict[str, float]) -> int:
    """Replay values through each node's normal invalidation path."""
    root = tree.root
    if root is None:
        return 0
    applied = root.apply_parameter_state(parameters)
    for child in declared_children(tree):
        prefix = f"{child.name}{CHILD_SEPARATOR}"
        scoped = {k[len(prefix):]: v for k, v in parameters.items() if k.startswith(prefix)}
        applied += child.apply_parameter_state(scoped)
    if applied < len(parameters):
        logger.debug("Ignored %d saved value(s) with no matching parameter", len(parameters) - applied)
    return applied


# ── Save / load ──────────────────────────────────────────────────────────────

def snapshot(tree: ComponentTree, voxel_resolution: float) -> ProjectFile:
    root = tree.root
    if root is None:
        raise ProjectFormatError("Nothing to save: the tree has no root")
    return ProjectFile(
        voxel_resolution=float(voxel_resolution),
        root_type=root.kind,
        parameters=collect_parameters(tree),
    )


def save_project(tree: ComponentTree, path: Union[str, Path], voxel_resolution: float) -> ProjectFile:
    project = snapshot(tree, voxel_resolution)
    write_json(Path(path), project.to_dict())
    logger.info("Saved project %s (%d parameters)", path, len(project.parameters))
    return project


def read_project(path: Union[str, Path]) -> ProjectFile:
    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as exc:
        raise ProjectFormatError(f"{path} is not valid JSON: {exc}") from exc
    return ProjectFile.from_dict(payload)


def build_tree(project: ProjectFile) -> ComponentTree:
    """Fresh tree of the saved kind with the saved values replayed.

    Raises ``UnknownComponentTypeError`` before anything is built.
    """
    lookup_kind(project.root_type)
    tree = ComponentTree.from_kind(project.root_type)
    apply_parameters(tree, project.parameters)
    return tree


def load_project(
    path: Union[str, Path],
    current_resolution: float,
    confirm_resolution_change: Optional[ConfirmCallback] = None,
    config=None,
) -> LoadResult:
    """Load a project file.

    A resolution mismatch is never applied silently: the callback decides,
    and a confirmed change is persisted through ``config`` and reported as
    ``restart_required``. Without a callback the mismatch raises.
    """
    project = read_project(path)
    lookup_kind(project.root_type)

    restart_required = False
    if abs(project.voxel_resolution - current_resolution) > RESOLUTION_TOLERANCE:
        if confirm_resolution_change is None:
            raise ResolutionMismatchError(project.voxel_resolution, current_resolution)
        if confirm_resolution_change(project.voxel_resolution, current_resolution):
            if config is not None:
                config.save(project.voxel_resolution)
            restart_required = True
            logger.info(
                "Resolution change to %.2fmm accepted; restart required",
                project.voxel_resolution,
            )
        else:
            logger.info("Resolution change declined; loading at %.2fmm", current_resolution)

    tree = build_tree(project)
    logger.info("Loaded project %s (%s)", path, project.root_type)
    return LoadResult(tree=tree, project=project, restart_required=restart_required)
