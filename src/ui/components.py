"""
Reusable UI builder functions for the NiceGUI web interface.

Designed to render inside overlay panels: compact layout, no outer cards.
Controls never touch component state directly; every edit is posted to the
scheduler as a ``ParameterChange``.
"""

from typing import Callable, Optional

from nicegui import ui

from engine.component import ComponentNode, NodeStatus
from engine.contracts import ParameterChange
from engine.scheduler import BuildResult, Scheduler

_STATUS_COLORS = {
    NodeStatus.BUILT: "green",
    NodeStatus.REUSED: "blue",
    NodeStatus.FAILED: "red",
    NodeStatus.DISABLED: "grey",
}


def build_parameter_panel(node: ComponentNode, scheduler: Scheduler) -> None:
    """Sliders, switches and action buttons for one component node."""
    for param in node.parameters():
        if param.is_toggle:
            ui.switch(
                param.name.strip("[] "),
                value=param.value > 0.5,
                on_change=lambda e, n=param.name: scheduler.submit(
                    ParameterChange(node.node_id, n, 1.0 if e.value else 0.0)
                ),
            ).classes("text-sm font-bold")
        elif param.is_action:
            ui.button(
                param.name.lstrip(">").strip(),
                on_click=lambda n=param.name: scheduler.submit(
                    ParameterChange(node.node_id, n, 1.0)
                ),
            ).props("flat dense size=sm color=primary")
        elif param.max - param.min <= 1.0 and param.step == 1.0:
            ui.switch(
                param.name,
                value=param.value > 0.5,
                on_change=lambda e, n=param.name: scheduler.submit(
                    ParameterChange(node.node_id, n, 1.0 if e.value else 0.0)
                ),
            )
        else:
            submit = scheduler.submit_continuous if param.continuous else scheduler.submit
            _slider(
                param.name, param.value, param.min, param.max,
                param.step or _default_step(param.min, param.max),
                lambda v, n=param.name: submit(ParameterChange(node.node_id, n, float(v))),
            )


def build_node_summary(node: ComponentNode, result: Optional[BuildResult]) -> None:
    status = result.statuses.get(node.node_id) if result else None
    with ui.row().classes("w-full items-center gap-2"):
        ui.label(node.name).classes("text-sm font-bold")
        if status is not None:
            ui.badge(status.value, color=_STATUS_COLORS[status]).props("outline dense")
    ui.label(f"start z = {node.start_position:.1f} mm").classes("text-[10px] text-gray-500")
    if node.last_error:
        with ui.expansion("Error Details", icon="error").classes("w-full"):
            ui.label(node.last_error).classes(
                "text-xs text-red-500 whitespace-pre-wrap"
            ).style("font-family: monospace; word-break: break-all;")


def build_results(result: Optional[BuildResult], scheduler: Scheduler) -> None:
    """Compact metrics for the latest published pass."""
    if result is None:
        ui.label("Building…").classes("text-gray-400 italic text-xs")
        return
    assembly = result.assembly
    with ui.row().classes("w-full justify-around"):
        _metric("Pass", str(result.pass_id))
        _metric("Time", f"{result.elapsed_s:.2f}s")
        _metric("Voxels", f"{assembly.voxel_count:,}")
        _metric("Volume", f"{assembly.volume_mm3 / 1e6:.2f} L")
    with ui.row().classes("w-full justify-around"):
        _metric("Built", str(result.count(NodeStatus.BUILT)))
        _metric("Reused", str(result.count(NodeStatus.REUSED)))
        _metric("Failed", str(result.count(NodeStatus.FAILED)))
    if scheduler.last_error:
        ui.label(f"Last pass failed: {scheduler.last_error}").classes("text-xs text-red-600")


def build_slicer_controls(scheduler: Scheduler) -> None:
    """Cutaway plane: switch, axis and offset, all debounced."""
    slicer = scheduler.slicer
    values = {"active": slicer.active, "axis": slicer.axis, "offset": slicer.offset}

    def push(**changes):
        values.update(changes)
        scheduler.update_slicer(values["active"], values["axis"], values["offset"])

    with ui.row().classes("w-full items-center gap-2"):
        ui.switch("Slicer", value=slicer.active, on_change=lambda e: push(active=e.value))
        ui.select(["x", "y", "z"], value=slicer.axis,
                  on_change=lambda e: push(axis=e.value)).props("dense").classes("w-16")
    _slider("Offset (mm)", slicer.offset, -2000, 5000, 10, lambda v: push(offset=float(v)))


def _default_step(min_val: float, max_val: float) -> float:
    span = max_val - min_val
    if span <= 2:
        return 0.01
    if span <= 100:
        return 0.5
    return 1.0


def _slider(
    label: str,
    value: float,
    min_val: float,
    max_val: float,
    step: float,
    on_change: Callable,
) -> None:
    with ui.row().classes("w-full items-center gap-1"):
        ui.label(label).classes("text-xs w-28")
        val_label = ui.label(f"{value:g}").classes("text-xs w-12 text-right")

        def _on_slide(e, cb=on_change):
            val_label.text = f"{e.value:g}"
            cb(e.value)

        ui.slider(
            min=min_val, max=max_val, step=step, value=value,
            on_change=_on_slide,
        ).classes("flex-grow")


def _metric(label: str, value: str) -> None:
    with ui.column().classes("items-center gap-0"):
        ui.label(value).classes("text-lg font-bold")
        ui.label(label).classes("text-[10px] text-gray-500")
