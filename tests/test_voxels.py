import numpy as np
import pytest

from engine.batch import PrimitiveBatch
from voxels import VoxelGeometry, VoxelKernel, beam_sdf, export_stl, union_all


def test_kernel_rejects_non_positive_voxel_size():
    with pytest.raises(ValueError):
        VoxelKernel(0.0)


def test_box_covers_expected_cells(kernel):
    cube = kernel.box((0.0, 0.0, 0.0), (100.0, 50.0, 30.0))
    assert cube.voxel_count == 10 * 5 * 3
    assert cube.volume_mm3 == pytest.approx(100.0 * 50.0 * 30.0)
    assert cube.bounds() == ((0.0, 0.0, 0.0), (100.0, 50.0, 30.0))


def test_union_is_commutative_and_associative(kernel):
    a = kernel.box((0, 0, 0), (40, 40, 40))
    b = kernel.box((30, 0, 0), (90, 20, 20))
    c = kernel.box((-50, -50, -50), (-10, 0, 0))

    assert a.union(b).same_as(b.union(a))
    assert a.union(b).union(c).same_as(a.union(b.union(c)))


def test_union_with_empty_is_identity(kernel):
    a = kernel.box((0, 0, 0), (40, 40, 40))
    assert a.union(kernel.empty()) is a
    assert kernel.empty().union(a) is a


def test_subtract_and_intersect(kernel):
    a = kernel.box((0, 0, 0), (100, 100, 100))
    b = kernel.box((50, 0, 0), (150, 100, 100))

    left = a.subtract(b)
    assert left.bounds() == ((0.0, 0.0, 0.0), (50.0, 100.0, 100.0))
    overlap = a.intersect(b)
    assert overlap.voxel_count == 5 * 10 * 10
    assert left.union(overlap).same_as(a)


def test_operations_do_not_mutate_operands(kernel):
    a = kernel.box((0, 0, 0), (40, 40, 40))
    before = a.data.copy()
    a.union(kernel.box((100, 0, 0), (140, 40, 40)))
    a.subtract(kernel.box((0, 0, 0), (20, 20, 20)))
    np.testing.assert_array_equal(a.data, before)


def test_mixed_voxel_sizes_are_rejected():
    a = VoxelKernel(10.0).box((0, 0, 0), (40, 40, 40))
    b = VoxelKernel(5.0).box((0, 0, 0), (40, 40, 40))
    with pytest.raises(ValueError):
        a.union(b)


def test_negative_offset_is_contained(kernel):
    a = kernel.box((0, 0, 0), (100, 100, 100))
    shrunk = a.offset(-20.0)
    assert not shrunk.is_empty
    assert shrunk.subtract(a).is_empty
    assert shrunk.voxel_count < a.voxel_count


def test_positive_offset_grows(kernel):
    a = kernel.box((0, 0, 0), (100, 100, 100))
    grown = a.offset(20.0)
    assert a.subtract(grown).is_empty
    lo, hi = grown.bounds()
    assert lo[0] == pytest.approx(-20.0)
    assert hi[0] == pytest.approx(120.0)


def test_shell_keeps_at_least_one_voxel(kernel):
    a = kernel.box((0, 0, 0), (100, 100, 100))
    thin = a.shell(1.0)
    assert not thin.is_empty
    assert thin.voxel_count < a.voxel_count
    assert thin.subtract(a).is_empty


def test_smoothen_keeps_a_solid_blob(kernel):
    a = kernel.box((0, 0, 0), (100, 100, 100))
    smooth = a.smoothen(20.0)
    assert not smooth.is_empty
    assert smooth.voxel_count <= a.voxel_count + 6 * 100


def test_sample_signed_distance_sphere(kernel):
    def sdf(p):
        return np.linalg.norm(p, axis=1) - 50.0

    ball = kernel.sample_signed_distance(sdf, ((-60, -60, -60), (60, 60, 60)))
    expected = 4.0 / 3.0 * np.pi * 50.0 ** 3
    assert ball.volume_mm3 == pytest.approx(expected, rel=0.15)


def test_batch_voxelization_ignores_order_and_duplicates(kernel):
    first = PrimitiveBatch()
    first.add_beam((0, 0, 0), (0, 0, 200), 20.0)
    first.add_sphere((100, 0, 0), 30.0)

    second = PrimitiveBatch()
    second.add_sphere((100, 0, 0), 30.0)
    second.add_beam((0, 0, 0), (0, 0, 200), 20.0)
    second.add_sphere((100, 0, 0), 30.0)

    assert kernel.from_primitive_batch(first).same_as(kernel.from_primitive_batch(second))


def test_empty_batch_gives_empty_geometry(kernel):
    assert kernel.from_primitive_batch(PrimitiveBatch()).is_empty


def test_beam_sdf_tapers():
    pts = np.array([[0.0, 9.0, 0.0], [0.0, 9.0, 100.0]])
    d = beam_sdf(pts, (0, 0, 0), (0, 0, 100), 10.0, 5.0)
    assert d[0] < 0
    assert d[1] > 0


def test_union_all(kernel):
    parts = [kernel.box((i * 100, 0, 0), (i * 100 + 50, 50, 50)) for i in range(3)]
    merged = union_all(parts, kernel.voxel_size)
    assert merged.voxel_count == sum(p.voxel_count for p in parts)


def test_mesh_and_stl_export(kernel, tmp_path):
    cube = kernel.box((0, 0, 0), (50, 50, 50))
    mesh = kernel.to_mesh(cube)
    assert len(mesh.faces) > 0
    lo, hi = mesh.bounds
    np.testing.assert_allclose(lo, [0, 0, 0], atol=1e-6)
    np.testing.assert_allclose(hi, [50, 50, 50], atol=1e-6)

    path = export_stl(mesh, str(tmp_path / "cube.stl"))
    assert (tmp_path / "cube.stl").stat().st_size > 0
    assert path.endswith("cube.stl")


def test_empty_geometry_meshes_to_nothing(kernel):
    assert len(kernel.to_mesh(kernel.empty()).faces) == 0
    assert VoxelGeometry.empty(10.0).bounds() == ((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
