"""Turbojet strategies built end to end on a very coarse lattice."""
import pytest

import physics
import propulsion
from engine.component import (
    NodeStatus,
    Strategy,
    available_kinds,
    lookup_kind,
    register_component,
)
from engine.contracts import UnknownComponentTypeError
from engine.scheduler import Scheduler, SchedulerConfig
from engine.tree import ApplicationState, ComponentTree


@pytest.fixture
def turbojet():
    tree = ComponentTree.from_kind("turbojet_assembly")
    children = {n.kind: n for n in tree.children_of(tree.root.node_id)}
    return tree, children


def test_default_tree_layout(turbojet):
    tree, children = turbojet
    assert tree.root.kind == "turbojet_assembly"
    assert [n.kind for n in tree.children_of(tree.root.node_id)] == [
        "inlet", "compressor", "combustor", "nozzle",
    ]
    assert len(tree) == 5


def test_full_build_chains_stages(turbojet, coarse_kernel, run_pass):
    tree, children = turbojet
    ctx, statuses = run_pass(tree, coarse_kernel)

    assert set(statuses.values()) == {NodeStatus.BUILT}
    comp = children["compressor"]
    comb = children["combustor"]
    nozzle = children["nozzle"]

    assert children["inlet"].start_position == 0.0
    assert comp.start_position == pytest.approx(300.0)
    assert comb.start_position == pytest.approx(900.0)
    assert nozzle.start_position == pytest.approx(900.0 + comb.strategy.total_length)
    assert ctx.cursor == pytest.approx(nozzle.start_position + nozzle.strategy.height)

    assert comp.strategy.r_in == pytest.approx(500.0)
    assert comp.strategy.r_out == pytest.approx(300.0)
    assert nozzle.strategy.r_in == pytest.approx(300.0)
    assert len(ctx.batched_solids) > 0
    assert not ctx.assembly.is_empty
    assert ctx.previews


def test_combustor_height_is_floored(turbojet, coarse_kernel, run_pass):
    tree, children = turbojet
    run_pass(tree, coarse_kernel)
    comb = children["combustor"].strategy
    assert comb.casing_height == pytest.approx(propulsion.MIN_CASING_HEIGHT_MM)
    assert comb.mean_diameter == pytest.approx(600.0)


def test_nozzle_sized_from_published_thrust(turbojet, coarse_kernel, run_pass):
    tree, children = turbojet
    run_pass(tree, coarse_kernel)
    nozzle = children["nozzle"].strategy
    expected = physics.area_to_radius_mm(physics.throat_area(80_000.0, 60e5))
    assert nozzle.r_throat == pytest.approx(expected)
    assert nozzle.r_exit == pytest.approx(expected * 14.0 ** 0.5)


def test_thrust_change_rebuilds_only_what_depends_on_it(turbojet, coarse_kernel, run_pass):
    tree, children = turbojet
    run_pass(tree, coarse_kernel)

    tree.root.set_parameter("Req. Thrust (kN)", 120.0)
    _, statuses = run_pass(tree, coarse_kernel)

    assert statuses[tree.root.node_id] == NodeStatus.BUILT
    assert statuses[children["inlet"].node_id] == NodeStatus.REUSED
    assert statuses[children["compressor"].node_id] == NodeStatus.REUSED
    assert statuses[children["combustor"].node_id] == NodeStatus.REUSED
    assert statuses[children["nozzle"].node_id] == NodeStatus.BUILT


def test_compression_ratio_is_percent(turbojet):
    _, children = turbojet
    comp = children["compressor"]
    comp.set_parameter("Comp. Ratio (%)", 75.0)
    assert comp.strategy.ratio == pytest.approx(0.75)


def test_cooling_follows_compressor_wall(turbojet, coarse_kernel, run_pass):
    tree, children = turbojet
    cooling = tree.add_child(tree.root.node_id, "cooling")
    ctx, statuses = run_pass(tree, coarse_kernel)

    assert statuses[cooling.node_id] == NodeStatus.BUILT
    points = cooling.strategy.points
    assert len(points) > 100
    span = ctx.lookup("compressor_span")
    assert all(span[0] <= z <= span[1] for _, _, z in points)
    assert len(ctx.batched_voids) > 0


def test_cooling_without_compressor_contributes_nothing(coarse_kernel, run_pass):
    tree = ComponentTree.from_kind("cooling")
    ctx, statuses = run_pass(tree, coarse_kernel)
    assert statuses[tree.root.node_id] == NodeStatus.BUILT
    assert len(ctx.batched_voids) == 0
    assert ctx.assembly.is_empty


def test_inlet_alone_uses_default_diameter(coarse_kernel, run_pass):
    tree = ComponentTree.from_kind("inlet")
    ctx, _ = run_pass(tree, coarse_kernel)
    assert tree.root.strategy.diameter == propulsion.DEFAULT_DIAMETER
    assert ctx.handshake == pytest.approx(propulsion.DEFAULT_DIAMETER / 2.0)


def test_section_view_cuts_half_after_compositing(turbojet, coarse_kernel):
    tree, _ = turbojet
    tree.root.set_parameter("Section View", 1.0)
    sched = Scheduler(
        ApplicationState(tree=tree),
        SchedulerConfig(voxel_size=coarse_kernel.voxel_size, build_mesh=False),
        kernel=coarse_kernel,
    )
    result = sched.tick()

    lo, hi = result.assembly.bounds()
    assert hi[0] <= 0.0
    assert lo[0] < -400.0


def test_kind_table():
    assert lookup_kind("nozzle").factory is propulsion.ExhaustNozzle
    assert not lookup_kind("turbojet_assembly").addable
    labels = {k.label for k in available_kinds("algorithms")}
    assert {"Cellular Automata", "L-System Plant", "Implicit Gyroid"} <= labels
    with pytest.raises(UnknownComponentTypeError):
        lookup_kind("warp_drive")


def test_kind_names_must_be_unique():
    with pytest.raises(ValueError):
        @register_component("nozzle")
        class Impostor(Strategy):
            pass
