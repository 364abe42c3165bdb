"""UI helpers that do not need a browser."""
import pytest

from app_config import AppConfig
from engine.contracts import PreviewGuide
from engine.scheduler import BuildResult
from ui.scene_helpers import MM_TO_M, guide_segments, write_result_mesh


def test_guide_segments_scale_to_metres():
    guide = PreviewGuide("line", [(0.0, 0.0, 0.0), (1000.0, 0.0, 0.0), (1000.0, 500.0, 0.0)])
    segments = guide_segments(guide)
    assert len(segments) == 2
    assert segments[0][1] == pytest.approx((1000.0 * MM_TO_M, 0.0, 0.0))


def test_write_result_mesh_keeps_recent_passes(kernel, tmp_path):
    mesh = kernel.to_mesh(kernel.box((0, 0, 0), (30, 30, 30)))
    names = []
    for pass_id in range(1, 8):
        result = BuildResult(pass_id=pass_id, assembly=None, mesh=mesh)
        names.append(write_result_mesh(result, str(tmp_path)))

    assert names[-1] == "pass_00007.stl"
    remaining = sorted(p.name for p in tmp_path.iterdir())
    assert remaining == names[-4:]


def test_write_result_mesh_skips_empty(kernel, tmp_path):
    result = BuildResult(pass_id=1, assembly=None, mesh=kernel.to_mesh(kernel.empty()))
    assert write_result_mesh(result, str(tmp_path)) is None


def test_app_state_tracks_structure(tmp_path):
    from ui.app import create_app_state

    shared = create_app_state(AppConfig(voxel_size_mm=20.0, path=tmp_path / "s.json"), tmp_path / "passes")
    key = shared.structure_key()
    assert [kind for _, kind in key][0] == "turbojet_assembly"
    assert shared.scheduler.config.voxel_size == 20.0

    shared.scheduler.submit_command(lambda state: state.tree.set_root("implicit_gyroid"))
    result = shared.scheduler.tick()
    assert result is not None
    assert shared.structure_key() != key
    assert shared.tree.root.kind == "implicit_gyroid"
