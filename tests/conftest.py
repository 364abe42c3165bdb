"""
Shared test fixtures for the construction engine tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Registers the component kinds used by project and pipeline tests.
import playground  # noqa: E402,F401
import propulsion  # noqa: E402,F401
from engine.component import Strategy  # noqa: E402
from engine.context import BuildContext  # noqa: E402
from engine.contracts import Parameter  # noqa: E402
from engine.tree import ComponentTree  # noqa: E402
from voxels import VoxelKernel  # noqa: E402


class StageStrategy(Strategy):
    """Axial stage of fixed length that builds a square bar.

    Counts construct calls so tests can tell a rebuild from a reuse.
    """

    def __init__(self, name="Stage", length=300.0, radius=40.0, exit_radius=None):
        self.name = name
        self.length = length
        self.radius = radius
        self.exit_radius = exit_radius
        self.fail = False
        self.construct_calls = 0
        self.seen_handshakes = []

    def parameters(self):
        return [
            Parameter("Length", self.length, 10, 2000, self.bind("length")),
            Parameter("Radius", self.radius, 5, 500, self.bind("radius")),
            Parameter("Exit Radius", self.exit_radius or 0.0, 0, 500, self.bind("exit_radius")),
        ]

    def setup(self, ctx):
        self.seen_handshakes.append(ctx.handshake)
        ctx.cursor += self.length
        if self.exit_radius:
            ctx.handshake = self.exit_radius

    def construct(self, ctx):
        self.construct_calls += 1
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        r = self.radius
        return ctx.kernel.box((-r, -r, ctx.cursor), (r, r, ctx.cursor + self.length))


class GroupStrategy(Strategy):
    """Root that contributes nothing and does not move the cursor."""

    name = "Group"

    def construct(self, ctx):
        return None


class BatchStrategy(Strategy):
    """Sends its only contribution to the shared solids batch."""

    name = "Batcher"

    def __init__(self, z=0.0):
        self.z = z
        self.construct_calls = 0

    def construct(self, ctx):
        self.construct_calls += 1
        ctx.batched_solids.add_sphere((0.0, 0.0, self.z), 30.0)
        return None


@pytest.fixture
def kernel():
    """Coarse kernel so geometry tests stay fast."""
    return VoxelKernel(10.0)


@pytest.fixture
def coarse_kernel():
    """Very coarse kernel for full turbojet builds."""
    return VoxelKernel(20.0)


@pytest.fixture
def stage_tree():
    """Group root with three stages of 300, 600 and 420 mm."""
    tree = ComponentTree()
    root = tree.add_root_strategy(GroupStrategy(), kind="group")
    stages = [
        tree.add_child_strategy(root.node_id, StageStrategy("A", 300.0, exit_radius=100.0)),
        tree.add_child_strategy(root.node_id, StageStrategy("B", 600.0)),
        tree.add_child_strategy(root.node_id, StageStrategy("C", 420.0)),
    ]
    return tree, stages


@pytest.fixture
def run_pass():
    """Run one physics + build walk and return (ctx, statuses)."""

    def _run(tree, kernel, epsilon=0.1):
        ctx = BuildContext(kernel)
        tree.run_physics(ctx)
        statuses = tree.run_build(ctx, epsilon)
        return ctx, statuses

    return _run


@pytest.fixture
def make_stage():
    return StageStrategy


@pytest.fixture
def make_batcher():
    return BatchStrategy


@pytest.fixture
def make_group():
    return GroupStrategy
