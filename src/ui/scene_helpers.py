"""
Helpers for rendering build results into NiceGUI scenes.

NiceGUI scene API notes:
- stl(url) is a method on the Scene object, not on Group.
- Objects created inside a `with scene.group()` context are parented to that group.
- Scaling is done via .scale(s) chained call, not a constructor param.
- three.js uses Y-up coordinate system; the build axis is +Z.
"""

import logging
import math
import os
from typing import List, Optional

from nicegui import ui

from engine.contracts import PreviewGuide
from engine.scheduler import BuildResult

logger = logging.getLogger(__name__)

# Conversion factor: project uses mm, three.js scenes use metres
MM_TO_M = 0.001

ASSEMBLY_COLOR = "#bbbbbb"


def write_result_mesh(result: BuildResult, output_dir: str) -> Optional[str]:
    """Write the result mesh as ``pass_<id>.stl``; returns the file name."""
    mesh = result.mesh
    if mesh is None or len(mesh.faces) == 0:
        return None
    os.makedirs(output_dir, exist_ok=True)
    name = f"pass_{result.pass_id:05d}.stl"
    mesh.export(os.path.join(output_dir, name), file_type="stl")
    _prune_old_meshes(output_dir, keep=name)
    return name


def _prune_old_meshes(output_dir: str, keep: str, history: int = 4) -> None:
    names = sorted(n for n in os.listdir(output_dir) if n.startswith("pass_") and n.endswith(".stl"))
    for name in names[:-history]:
        if name != keep:
            try:
                os.remove(os.path.join(output_dir, name))
            except OSError as exc:
                logger.debug("Could not remove %s: %s", name, exc)


def guide_segments(guide: PreviewGuide) -> List[tuple]:
    """Consecutive point pairs of a guide, scaled to metres."""
    pts = [tuple(c * MM_TO_M for c in p) for p in guide.points]
    return list(zip(pts, pts[1:]))


def render_result(scene: ui.scene, mesh_url: Optional[str], previews: List[PreviewGuide],
                  show_previews: bool = True) -> None:
    """Assembly mesh plus preview guides, rotated from Z-up to Y-up."""
    with scene:
        with scene.group().rotate(-math.pi / 2, 0, 0):
            if mesh_url:
                scene.stl(mesh_url).scale(MM_TO_M).material(color=ASSEMBLY_COLOR)
            if show_previews:
                for guide in previews:
                    for start, end in guide_segments(guide):
                        scene.line(start, end).material(color=guide.color)
