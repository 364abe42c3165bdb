"""
Geometry-thread scheduler.

The UI thread only posts messages (parameter changes, tree commands, slicer
updates, export requests) and wakes the loop. The geometry thread drains a
snapshot of those messages at the start of a pass, walks the tree, composites
batches and post-process cuts, and publishes a ``BuildResult``.

Wake requests arriving during a pass coalesce into exactly one further pass.
Continuous controls (drag sliders, the slicer) are held until they have been
quiet for ``debounce_s``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from engine.component import NodeStatus
from engine.context import BuildContext
from engine.contracts import ParameterChange, PreviewGuide
from engine.tree import ApplicationState

logger = logging.getLogger(__name__)

AXES = {"x": 0, "y": 1, "z": 2}

Command = Callable[[ApplicationState], None]


@dataclass
class SchedulerConfig:
    voxel_size: float = 5.0
    debounce_s: float = 0.1
    idle_poll_s: float = 0.05
    epsilon: float = 0.1
    build_mesh: bool = True


@dataclass(frozen=True)
class SlicerState:
    active: bool = False
    axis: str = "z"
    offset: float = 0.0


@dataclass
class BuildResult:
    """Everything one successful pass hands to the renderer."""
    pass_id: int
    assembly: Any
    previews: List[PreviewGuide] = field(default_factory=list)
    statuses: Dict[int, NodeStatus] = field(default_factory=dict)
    errors: Dict[int, str] = field(default_factory=dict)
    elapsed_s: float = 0.0
    mesh: Optional[Any] = None
    export_paths: List[str] = field(default_factory=list)
    export_errors: Dict[str, str] = field(default_factory=dict)

    def count(self, status: NodeStatus) -> int:
        return sum(1 for s in self.statuses.values() if s == status)


@dataclass
class _Work:
    messages: List[Union[ParameterChange, Command]]
    slicer: Optional[SlicerState]
    exports: List[str]


class Scheduler:
    """Owns the geometry thread and the only writer access to the tree."""

    def __init__(
        self,
        state: ApplicationState,
        config: Optional[SchedulerConfig] = None,
        on_result: Optional[Callable[[BuildResult], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        kernel=None,
    ):
        self.state = state
        self.config = config or SchedulerConfig()
        if kernel is None:
            from voxels import VoxelKernel
            kernel = VoxelKernel(self.config.voxel_size)
        self.kernel = kernel
        self.on_result = on_result
        self._clock = clock

        self._cond = threading.Condition()
        self._pass_lock = threading.Lock()
        self.tree_lock = threading.RLock()  # held while commands and edits mutate the tree
        self._messages: List[Union[ParameterChange, Command]] = []
        self._continuous: Dict[Tuple[int, str], ParameterChange] = {}
        self._slicer_pending: Optional[SlicerState] = None
        self._last_input_at: Optional[float] = None
        self._exports: List[str] = []
        self._wake = True  # fresh nodes are dirty
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

        self.slicer = SlicerState()
        self.latest: Optional[BuildResult] = None
        self.pass_count = 0
        self.failed_passes = 0
        self.last_error: Optional[str] = None

    # ── UI-thread API ────────────────────────────────────────────────────

    def submit(self, change: ParameterChange) -> None:
        """Discrete edit: wake the geometry thread immediately."""
        with self._cond:
            self._messages.append(change)
            self._wake = True
            self._cond.notify_all()

    def submit_continuous(self, change: ParameterChange) -> None:
        """Dragged edit: keep the latest value until input goes quiet."""
        with self._cond:
            self._continuous[(change.node_id, change.name)] = change
            self._last_input_at = self._clock()
            self._cond.notify_all()

    def submit_command(self, command: Command) -> None:
        """Structural tree edit run on the geometry thread before the next pass."""
        with self._cond:
            self._messages.append(command)
            self._wake = True
            self._cond.notify_all()

    def update_slicer(self, active: bool, axis: str = "z", offset: float = 0.0) -> None:
        if axis not in AXES:
            raise ValueError(f"Unknown slicer axis {axis!r}")
        with self._cond:
            self._slicer_pending = SlicerState(bool(active), axis, float(offset))
            self._last_input_at = self._clock()
            self._cond.notify_all()

    def request_export(self, path: str) -> None:
        with self._cond:
            self._exports.append(str(path))
            self._wake = True
            self._cond.notify_all()

    def request_rebuild(self) -> None:
        with self._cond:
            self._wake = True
            self._cond.notify_all()

    # ── Wake logic ───────────────────────────────────────────────────────

    def _debounced_pending(self) -> bool:
        return bool(self._continuous) or self._slicer_pending is not None

    def _quiet(self, now: float) -> bool:
        if self._last_input_at is None:
            return True
        return now - self._last_input_at >= self.config.debounce_s

    def _due(self, now: float) -> bool:
        return self._wake or (self._debounced_pending() and self._quiet(now))

    def _take_work(self, now: float) -> Optional[_Work]:
        """Snapshot and clear pending input. Caller holds ``_cond``."""
        if not self._due(now):
            return None
        messages = list(self._messages)
        self._messages.clear()
        slicer = None
        if self._quiet(now):
            if self._continuous:
                logger.debug("Debounce fired for %d continuous edit(s)", len(self._continuous))
            messages.extend(self._continuous.values())
            self._continuous.clear()
            slicer, self._slicer_pending = self._slicer_pending, None
        exports = list(self._exports)
        self._exports.clear()
        self._wake = False
        return _Work(messages, slicer, exports)

    # ── Geometry thread ──────────────────────────────────────────────────

    def tick(self) -> Optional[BuildResult]:
        """Run at most one pass if one is due. Returns the published result."""
        with self._pass_lock:
            with self._cond:
                work = self._take_work(self._clock())
            if work is None:
                return None
            return self._run_pass(work)

    def _apply(self, work: _Work) -> None:
        tree = self.state.tree
        for message in work.messages:
            if isinstance(message, ParameterChange):
                if message.node_id not in tree:
                    logger.warning("Dropping edit for removed node %d", message.node_id)
                    continue
                tree.node(message.node_id).set_parameter(message.name, message.value)
            else:
                message(self.state)
        if work.slicer is not None:
            self.slicer = work.slicer

    def _run_pass(self, work: _Work) -> Optional[BuildResult]:
        self.pass_count += 1
        pass_id = self.pass_count
        started = time.perf_counter()
        logger.info("Pass %d started", pass_id)
        try:
            with self.tree_lock:
                self._apply(work)
            ctx = BuildContext(self.kernel)
            tree = self.state.tree
            tree.run_physics(ctx)
            statuses = tree.run_build(ctx, self.config.epsilon)
            assembly = self.composite(ctx)
            mesh = self.kernel.to_mesh(assembly) if self.config.build_mesh else None
        except Exception as exc:
            self.failed_passes += 1
            self.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Pass %d failed; keeping previous result", pass_id)
            return None

        errors = {
            nid: tree.node(nid).last_error
            for nid, status in statuses.items()
            if status == NodeStatus.FAILED
        }
        result = BuildResult(
            pass_id=pass_id,
            assembly=assembly,
            previews=list(ctx.previews),
            statuses=statuses,
            errors=errors,
            mesh=mesh,
        )
        for path in work.exports:
            self._export(result, path)
        result.elapsed_s = time.perf_counter() - started
        logger.info(
            "Pass %d finished in %.2fs (%d built, %d reused, %d failed)",
            pass_id,
            result.elapsed_s,
            result.count(NodeStatus.BUILT),
            result.count(NodeStatus.REUSED),
            result.count(NodeStatus.FAILED),
        )
        self.last_error = None
        self._publish(result)
        return result

    def composite(self, ctx: BuildContext):
        """Flush batches, then post-process cuts, then the slicer."""
        assembly = ctx.assembly
        if len(ctx.batched_solids):
            assembly = assembly.union(self.kernel.from_primitive_batch(ctx.batched_solids))
        if len(ctx.batched_voids):
            assembly = assembly.subtract(self.kernel.from_primitive_batch(ctx.batched_voids))
        if not ctx.post_process_cuts.is_empty:
            assembly = assembly.subtract(ctx.post_process_cuts)
        if self.slicer.active and not assembly.is_empty:
            assembly = assembly.subtract(self._slicer_cutter(assembly))
        return assembly

    def _slicer_cutter(self, assembly):
        lo, hi = assembly.bounds()
        pad = self.kernel.voxel_size
        lo = [v - pad for v in lo]
        hi = [v + pad for v in hi]
        axis = AXES[self.slicer.axis]
        lo[axis] = max(lo[axis], self.slicer.offset)
        if lo[axis] >= hi[axis]:
            return self.kernel.empty()
        return self.kernel.box(tuple(lo), tuple(hi))

    def _export(self, result: BuildResult, path: str) -> None:
        from voxels import export_stl

        try:
            mesh = result.mesh if result.mesh is not None else self.kernel.to_mesh(result.assembly)
            if len(mesh.faces) == 0:
                raise ValueError("assembly is empty")
            export_stl(mesh, path)
            result.export_paths.append(path)
        except (OSError, ValueError) as exc:
            logger.error("STL export to %s failed: %s", path, exc)
            result.export_errors[path] = str(exc)

    def _publish(self, result: BuildResult) -> None:
        # Hand-off first so pollers of ``latest`` never see an unrendered pass.
        if self.on_result is not None:
            try:
                self.on_result(result)
            except Exception:
                logger.exception("Result hand-off failed for pass %d", result.pass_id)
        with self._cond:
            self.latest = result
            self._cond.notify_all()

    def wait_for_pass(self, pass_id: int, timeout: float = 10.0) -> Optional[BuildResult]:
        """Block until a result with at least ``pass_id`` is published."""
        with self._cond:
            self._cond.wait_for(
                lambda: self.latest is not None and self.latest.pass_id >= pass_id,
                timeout=timeout,
            )
            return self.latest

    # ── Thread control ───────────────────────────────────────────────────

    def _wait_timeout(self, now: float) -> float:
        timeout = self.config.idle_poll_s
        if self._debounced_pending() and self._last_input_at is not None:
            remaining = self.config.debounce_s - (now - self._last_input_at)
            timeout = min(timeout, max(remaining, 0.001))
        return timeout

    def _loop(self) -> None:
        logger.info("Geometry thread started")
        while True:
            with self._cond:
                while not self._stopping and not self._due(self._clock()):
                    self._cond.wait(timeout=self._wait_timeout(self._clock()))
                if self._stopping:
                    break
            self.tick()
        logger.info("Geometry thread stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping = False
        self._thread = threading.Thread(target=self._loop, name="geometry", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
