"""Headless pipeline: project or component kind -> one build pass -> run artifacts."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

# Registers the component kinds.
import playground  # noqa: F401
import propulsion  # noqa: F401
from engine.component import NodeStatus, lookup_kind
from engine.contracts import BuildFailedError
from engine.scheduler import BuildResult, Scheduler, SchedulerConfig
from engine.tree import ApplicationState, ComponentTree
from project_io import PROJECT_SUFFIX, build_tree, read_project, save_project
from run_protocol import (
    copy_input_file,
    prepare_run_dir,
    update_latest_pointer,
    write_json,
    write_text,
)

logger = logging.getLogger(__name__)


@dataclass
class BuildConfig:
    runs_dir: str = "runs"
    voxel_size: Optional[float] = None
    epsilon: float = 0.1
    export_stl: bool = True
    overrides: Dict[str, float] = field(default_factory=dict)


@dataclass
class BuildRunResult:
    run_id: str
    run_dir: str
    project_path: str
    metrics_path: str
    summary_path: str
    manifest_path: str
    stl_path: Optional[str] = None
    build: Optional[BuildResult] = None


def _resolve_tree(source: str, default_voxel: float):
    """Tree plus voxel size from a project file path or a registered kind."""
    if source.endswith(PROJECT_SUFFIX) or os.path.isfile(source):
        if not os.path.isfile(source):
            raise FileNotFoundError(f"Project file not found: {source}")
        project = read_project(source)
        return build_tree(project), project.voxel_resolution, project.root_type
    lookup_kind(source)
    return ComponentTree.from_kind(source), default_voxel, source


def run_build(
    source: str,
    design_name: Optional[str] = None,
    config: Optional[BuildConfig] = None,
    default_voxel: float = 5.0,
) -> BuildRunResult:
    if config is None:
        config = BuildConfig()

    started = time.perf_counter()
    tree, project_voxel, root_type = _resolve_tree(source, default_voxel)
    voxel_size = config.voxel_size or project_voxel
    design_name = design_name or root_type

    root = tree.root
    for name, value in config.overrides.items():
        if not root.set_parameter(name, value):
            raise ValueError(f"{root.name} has no parameter {name!r}")

    paths = prepare_run_dir(config.runs_dir, design_name)
    if os.path.isfile(source):
        project_path = copy_input_file(source, paths.input_dir)
    else:
        project_path = paths.input_dir / f"{design_name}{PROJECT_SUFFIX}"
        save_project(tree, project_path, voxel_size)

    scheduler = Scheduler(
        ApplicationState(tree=tree),
        SchedulerConfig(voxel_size=voxel_size, epsilon=config.epsilon, build_mesh=config.export_stl),
    )
    if config.export_stl:
        scheduler.request_export(str(paths.stl_path))

    logger.info("Building %s at %.2fmm", root_type, voxel_size)
    result = scheduler.tick()
    if result is None:
        raise BuildFailedError(scheduler.last_error or "build pass failed")

    stl_path = str(paths.stl_path) if str(paths.stl_path) in result.export_paths else None
    elapsed = time.perf_counter() - started
    lo, hi = result.assembly.bounds()

    metrics_payload: Dict[str, object] = {
        "run_id": paths.run_id,
        "root_type": root_type,
        "voxel_size_mm": voxel_size,
        "elapsed_s": round(elapsed, 3),
        "pass_elapsed_s": round(result.elapsed_s, 3),
        "voxel_count": result.assembly.voxel_count,
        "volume_mm3": result.assembly.volume_mm3,
        "bounds_mm": [list(lo), list(hi)],
        "nodes": [
            {
                "id": node.node_id,
                "name": node.name,
                "kind": node.kind,
                "status": result.statuses.get(node.node_id, NodeStatus.DISABLED).value,
                "start_position": node.start_position,
                "error": result.errors.get(node.node_id),
            }
            for node in tree.walk()
        ],
        "export_errors": result.export_errors,
    }
    write_json(paths.metrics_path, metrics_payload)
    write_text(paths.summary_path, _build_summary(paths.run_id, root_type, result, elapsed, stl_path))

    manifest = {
        "run_id": paths.run_id,
        "design_name": design_name,
        "root_type": root_type,
        "input_project": str(project_path),
        "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "config": asdict(config),
        "artifacts": {
            "stl": stl_path,
            "metrics": str(paths.metrics_path),
            "summary": str(paths.summary_path),
        },
    }
    write_json(paths.manifest_path, manifest)
    update_latest_pointer(config.runs_dir, paths.run_dir)

    return BuildRunResult(
        run_id=paths.run_id,
        run_dir=str(paths.run_dir),
        project_path=str(project_path),
        metrics_path=str(paths.metrics_path),
        summary_path=str(paths.summary_path),
        manifest_path=str(paths.manifest_path),
        stl_path=stl_path,
        build=result,
    )


def _build_summary(
    run_id: str,
    root_type: str,
    result: BuildResult,
    elapsed_s: float,
    stl_path: Optional[str],
) -> str:
    lines = [
        f"# Build {run_id}",
        "",
        f"- Root: **{root_type}**",
        f"- Duration: {elapsed_s:.2f}s",
        f"- Voxels: {result.assembly.voxel_count}",
        f"- Volume: {result.assembly.volume_mm3 / 1000.0:.1f} cm^3",
        f"- Built / failed nodes: {result.count(NodeStatus.BUILT)} / {result.count(NodeStatus.FAILED)}",
        f"- STL: {stl_path or 'not exported'}",
        "",
        "## Node Errors",
    ]
    errors: List[str] = [f"- node {nid}: {msg}" for nid, msg in result.errors.items()]
    lines.extend(errors or ["- None"])
    lines.append("")
    return "\n".join(lines)
