import pytest

from engine.context import BuildContext


def test_registry_miss_returns_default(kernel):
    ctx = BuildContext(kernel)
    assert ctx.lookup("missing") is None
    assert ctx.lookup("missing", 42) == 42
    assert ctx.lookup_float("missing", 3.5) == 3.5
    assert ctx.evaluate("missing_fn", 1.0) is None
    assert ctx.evaluate("missing_fn", 1.0, default=-1.0) == -1.0


def test_published_function_is_evaluated(kernel):
    ctx = BuildContext(kernel)
    ctx.publish_function("wall", lambda z: z * 2.0)
    assert ctx.evaluate("wall", 4.0) == 8.0
    assert ctx.function("wall") is not None


def test_non_callable_function_is_rejected(kernel):
    ctx = BuildContext(kernel)
    with pytest.raises(TypeError):
        ctx.publish_function("wall", 3.0)


def test_lookup_float_falls_back_on_bad_value(kernel):
    ctx = BuildContext(kernel)
    ctx.publish("diameter", "wide")
    assert ctx.lookup_float("diameter", 10.0) == 10.0


def test_scoped_construct_restores_on_error(kernel):
    ctx = BuildContext(kernel, cursor=100.0)
    outer = kernel.box((0, 0, 0), (20, 20, 20))
    ctx.add(outer)
    ctx.batched_solids.add_sphere((0, 0, 0), 5.0)

    with pytest.raises(RuntimeError):
        with ctx.scoped_construct(40.0) as scope:
            assert ctx.cursor == 40.0
            assert ctx.assembly.is_empty
            assert len(ctx.batched_solids) == 0
            ctx.add(kernel.box((100, 100, 100), (120, 120, 120)))
            ctx.cursor += 500.0
            raise RuntimeError("boom")

    assert ctx.cursor == 100.0
    assert ctx.assembly is outer
    assert len(ctx.batched_solids) == 1
    assert not scope.geometry.is_empty


def test_replay_merges_scope_into_pass(kernel):
    ctx = BuildContext(kernel)
    with ctx.scoped_construct(0.0) as scope:
        ctx.add(kernel.box((0, 0, 0), (20, 20, 20)))
        ctx.batched_voids.add_sphere((0, 0, 0), 5.0)
        ctx.add_post_process_cut(kernel.box((0, 0, 0), (10, 10, 10)))

    assert ctx.assembly.is_empty
    ctx.replay(scope)
    ctx.replay(scope)

    assert ctx.assembly.voxel_count == 8
    assert len(ctx.batched_voids) == 2
    assert ctx.post_process_cuts.voxel_count == 1


def test_preview_guides(kernel):
    ctx = BuildContext(kernel)
    ctx.preview_circle((0.0, 0.0, 10.0), 5.0, "#ff0000", resolution=8)
    ctx.preview_line((0, 0, 0), (0, 0, 100))

    circle, line = ctx.previews
    assert circle.kind == "circle"
    assert len(circle.points) == 9
    assert circle.points[0] == pytest.approx((5.0, 0.0, 10.0))
    assert line.points == [(0, 0, 0), (0, 0, 100)]
