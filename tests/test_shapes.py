import numpy as np
import pytest

import shapes


def test_constant_profile_broadcasts():
    fn = shapes.as_profile(5.0)
    np.testing.assert_array_equal(fn(np.zeros(3)), [5.0, 5.0, 5.0])


def test_pipe_bounds_and_hollow(kernel):
    tube = shapes.pipe(kernel, 100.0, 200.0, 30.0, 50.0)
    lo, hi = tube.bounds()
    assert lo[2] == pytest.approx(100.0)
    assert hi[2] == pytest.approx(300.0)
    assert hi[0] == pytest.approx(50.0)
    core = shapes.cylinder(kernel, (0.0, 0.0, 100.0), (0.0, 0.0, 1.0), 200.0, 20.0)
    assert tube.intersect(core).is_empty


def test_pipe_of_zero_length_is_empty(kernel):
    assert shapes.pipe(kernel, 0.0, 0.0, 0.0, 50.0).is_empty


def test_cone_narrows(kernel):
    solid = shapes.cone(kernel, 0.0, 200.0, 80.0, 20.0)
    base = solid.intersect(kernel.box((-100, -100, 0), (100, 100, 10)))
    tip = solid.intersect(kernel.box((-100, -100, 190), (100, 100, 200)))
    assert base.voxel_count > tip.voxel_count > 0


def test_cylinder_along_x(kernel):
    bar = shapes.cylinder(kernel, (0.0, 0.0, 0.0), (1.0, 0.0, 0.0), 200.0, 20.0)
    lo, hi = bar.bounds()
    assert lo[0] == pytest.approx(0.0)
    assert hi[0] == pytest.approx(200.0)
    assert hi[2] == pytest.approx(20.0)


def test_degenerate_cylinder_is_empty(kernel):
    assert shapes.cylinder(kernel, (0, 0, 0), (0, 0, 0), 100.0, 10.0).is_empty


def test_shell_is_thinner_than_solid(kernel):
    solid = shapes.sphere(kernel, (0.0, 0.0, 0.0), 60.0)
    skin = shapes.shell(solid, 10.0)
    assert 0 < skin.voxel_count < solid.voxel_count
