"""
Main NiceGUI application: full-screen 3D viewer with floating overlays.

Layout:
- Full-viewport 3D scene as the main canvas (latest assembly + preview guides)
- Header menus: File, Add Object, Resolution
- Right overlay: one tab per component node with its parameters
- Bottom-left overlay: pass metrics, node statuses and slicer controls

The UI thread never builds geometry. Every edit goes to the shared
``Scheduler``; a ``ui.timer`` picks up whatever pass it publishes.

Run with:
    python scripts/run_ui.py
"""

import logging
from pathlib import Path

from nicegui import app, ui

# Registers the component kinds.
import playground  # noqa: F401
import propulsion  # noqa: F401
from app_config import RESOLUTION_PRESETS, AppConfig
from engine.component import available_kinds
from engine.contracts import EngineError
from engine.scheduler import BuildResult, Scheduler, SchedulerConfig
from engine.tree import ApplicationState, ComponentTree
from project_io import PROJECT_SUFFIX, RESOLUTION_TOLERANCE, load_project, read_project, save_project
from ui.components import (
    build_node_summary,
    build_parameter_panel,
    build_results,
    build_slicer_controls,
)
from ui.scene_helpers import render_result, write_result_mesh
from ui.state import AppState, PageState

logger = logging.getLogger(__name__)

# Directories
BASE_DIR = Path(__file__).resolve().parent.parent.parent
UPLOAD_DIR = BASE_DIR / "uploads"
OUTPUT_DIR = BASE_DIR / "output"
MESH_DIR = OUTPUT_DIR / "passes"

DEFAULT_ROOT = "turbojet_assembly"
POLL_INTERVAL_S = 0.25

# CSS for floating overlay panels
OVERLAY_CSS = (
    "position:fixed; z-index:100; backdrop-filter:blur(12px); "
    "background:rgba(255,255,255,0.92); border-radius:12px; "
    "box-shadow:0 4px 24px rgba(0,0,0,0.15); overflow-y:auto;"
)
PARAMS_OVERLAY_STYLE = OVERLAY_CSS + " top:72px; right:16px; width:360px; max-height:calc(100vh - 88px);"
RESULTS_OVERLAY_STYLE = OVERLAY_CSS + " bottom:16px; left:16px; width:320px; max-height:50vh;"


# ═══════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════

def main() -> None:
    UPLOAD_DIR.mkdir(exist_ok=True)
    MESH_DIR.mkdir(parents=True, exist_ok=True)

    shared = create_app_state()
    app.add_static_files("/output", str(OUTPUT_DIR))
    app.on_shutdown(shared.scheduler.stop)
    shared.scheduler.start()

    @ui.page("/")
    def index():
        _build_page(shared)

    ui.run(title="WiredGeist Architect", port=8080, reload=False)


def create_app_state(config: AppConfig = None, mesh_dir: Path = MESH_DIR) -> AppState:
    """Config, default turbojet tree and the scheduler wired to the mesh folder."""
    config = config or AppConfig.load()
    application = ApplicationState(tree=ComponentTree.from_kind(DEFAULT_ROOT))
    scheduler = Scheduler(application, SchedulerConfig(voxel_size=config.voxel_size_mm))
    shared = AppState(config=config, application=application, scheduler=scheduler)

    def on_result(result: BuildResult) -> None:
        name = write_result_mesh(result, str(mesh_dir))
        if name:
            shared.mesh_urls[result.pass_id] = f"/output/passes/{name}"

    scheduler.on_result = on_result
    logger.info("UI state ready at %.2fmm voxels", config.voxel_size_mm)
    return shared


# ═══════════════════════════════════════════════════════════════════════════
# Page builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_page(shared: AppState) -> None:
    page = PageState()

    # ── Thin header bar ─────────────────────────────────────────────────
    with ui.header().classes(
        "bg-blue-800 text-white items-center h-12 px-4 gap-2"
    ).style("min-height:48px"):
        ui.label("WiredGeist Architect").classes("text-lg font-bold")
        _build_file_menu(shared)
        _build_add_menu(shared)
        _build_resolution_menu(shared)
        ui.space()
        ui.switch(
            "Guides", value=page.show_previews,
            on_change=lambda e: _toggle_previews(shared, page, scene_container, e.value),
        ).props("dense color=white")
        voxel_label = ui.label(f"{shared.config.voxel_size_mm:g} mm").classes("text-xs")

    # ── Full-screen 3D scene ────────────────────────────────────────────
    with ui.element("div").classes("w-full").style(
        "position:fixed; top:48px; left:0; right:0; bottom:0;"
    ) as scene_container:
        _build_main_scene(shared, page)

    # ── Component overlay (right) ───────────────────────────────────────
    with ui.element("div").style(PARAMS_OVERLAY_STYLE).classes("p-3"):
        params_container = ui.element("div").classes("w-full")
        with params_container:
            _build_component_tabs(shared, page)

    # ── Results overlay (bottom-left) ───────────────────────────────────
    with ui.element("div").style(RESULTS_OVERLAY_STYLE).classes("p-3"):
        build_slicer_controls(shared.scheduler)
        ui.separator().classes("my-2")
        results_container = ui.element("div").classes("w-full")
        with results_container:
            _build_results_overlay(shared)

    def poll() -> None:
        if shared.restart_required:
            voxel_label.text = f"{shared.config.voxel_size_mm:g} mm (restart)"
        structure = shared.structure_key()
        if structure != page.rendered_structure:
            params_container.clear()
            with params_container:
                _build_component_tabs(shared, page)
        result = shared.scheduler.latest
        if result is not None and result.pass_id != page.rendered_pass:
            scene_container.clear()
            with scene_container:
                _build_main_scene(shared, page)
            results_container.clear()
            with results_container:
                _build_results_overlay(shared)
            _deliver_download(shared, result)

    ui.timer(POLL_INTERVAL_S, poll)


# ═══════════════════════════════════════════════════════════════════════════
# Sub-builders
# ═══════════════════════════════════════════════════════════════════════════

def _build_main_scene(shared: AppState, page: PageState) -> None:
    result = shared.scheduler.latest
    with ui.scene().classes("w-full h-full") as scene:
        pass
    if result is None:
        return  # Empty scene until the first pass lands
    render_result(scene, shared.mesh_urls.get(result.pass_id), result.previews, page.show_previews)
    page.rendered_pass = result.pass_id


def _build_component_tabs(shared: AppState, page: PageState) -> None:
    """One tab per node in traversal order, each with its parameter panel."""
    with shared.scheduler.tree_lock:
        nodes = list(shared.tree.walk())
        page.rendered_structure = shared.structure_key()
    if not nodes:
        ui.label("Empty project. Use Add Object.").classes("text-gray-400 italic text-xs")
        return

    if page.selected_node not in {n.node_id for n in nodes}:
        page.selected_node = nodes[0].node_id

    tab_for = {}
    with ui.tabs().props("dense outside-arrows mobile-arrows").classes("w-full") as tabs:
        for node in nodes:
            tab_for[node.node_id] = ui.tab(str(node.node_id), label=node.name)

    def on_tab(e) -> None:
        page.selected_node = int(e.value)

    tabs.on_value_change(on_tab)

    with ui.tab_panels(tabs, value=tab_for[page.selected_node]).classes("w-full"):
        for node in nodes:
            with ui.tab_panel(tab_for[node.node_id]):
                build_parameter_panel(node, shared.scheduler)
                if node.parent_id is not None:
                    ui.button(
                        "Remove",
                        icon="delete",
                        on_click=lambda nid=node.node_id: _remove_node(shared, nid),
                    ).props("flat dense size=sm color=negative").classes("mt-2")


def _build_results_overlay(shared: AppState) -> None:
    result = shared.scheduler.latest
    build_results(result, shared.scheduler)
    if result is None:
        return
    with shared.scheduler.tree_lock:
        nodes = list(shared.tree.walk())
    with ui.expansion("Components", icon="account_tree").classes("w-full"):
        for node in nodes:
            build_node_summary(node, result)
    for path, message in result.export_errors.items():
        ui.label(f"Export failed ({Path(path).name}): {message}").classes("text-xs text-red-600")


def _build_file_menu(shared: AppState) -> None:
    with ui.button("File").props("flat text-color=white"):
        with ui.menu():
            ui.menu_item("New", on_click=lambda: _install_root(shared, DEFAULT_ROOT))
            ui.menu_item("Save Project", on_click=lambda: _handle_save(shared))
            ui.menu_item("Open Project…", on_click=lambda: _open_dialog(shared))
            ui.menu_item("Export STL", on_click=lambda: _handle_export(shared))


def _build_add_menu(shared: AppState) -> None:
    with ui.button("Add Object").props("flat text-color=white"):
        with ui.menu():
            ui.menu_item("Turbojet Assembly", on_click=lambda: _install_root(shared, DEFAULT_ROOT))
            ui.separator()
            for spec in available_kinds("algorithms"):
                ui.menu_item(spec.label, on_click=lambda k=spec.kind: _install_root(shared, k))
            ui.separator()
            for spec in available_kinds("propulsion"):
                if spec.addable:
                    ui.menu_item(
                        f"Add {spec.label} to root",
                        on_click=lambda k=spec.kind: _add_child(shared, k),
                    )


def _build_resolution_menu(shared: AppState) -> None:
    with ui.button("Resolution").props("flat text-color=white"):
        with ui.menu():
            for label, size in RESOLUTION_PRESETS.items():
                ui.menu_item(label, on_click=lambda s=size: _handle_resolution(shared, s))


# ═══════════════════════════════════════════════════════════════════════════
# Event handlers
# ═══════════════════════════════════════════════════════════════════════════

def _install_root(shared: AppState, kind: str) -> None:
    def command(state: ApplicationState) -> None:
        state.tree.set_root(kind)
        state.selected_node = None

    shared.project_name = kind
    shared.scheduler.submit_command(command)


def _add_child(shared: AppState, kind: str) -> None:
    def command(state: ApplicationState) -> None:
        root = state.tree.root
        if root is None:
            logger.warning("Cannot add %s: project is empty", kind)
            return
        state.tree.add_child(root.node_id, kind)

    shared.scheduler.submit_command(command)


def _remove_node(shared: AppState, node_id: int) -> None:
    def command(state: ApplicationState) -> None:
        if node_id in state.tree:
            state.tree.remove(node_id)

    shared.scheduler.submit_command(command)


def _toggle_previews(shared: AppState, page: PageState, scene_container, value: bool) -> None:
    page.show_previews = value
    scene_container.clear()
    with scene_container:
        _build_main_scene(shared, page)


def _handle_save(shared: AppState) -> None:
    if shared.tree.root is None:
        ui.notify("Nothing to save.", type="warning")
        return
    dest = OUTPUT_DIR / f"{shared.project_name}{PROJECT_SUFFIX}"
    try:
        with shared.scheduler.tree_lock:
            save_project(shared.tree, dest, shared.scheduler.config.voxel_size)
    except OSError as exc:
        ui.notify(f"Save failed: {exc}", type="negative")
        return
    ui.download(str(dest))
    ui.notify(f"Saved {dest.name}", type="positive")


def _handle_export(shared: AppState) -> None:
    dest = OUTPUT_DIR / f"{shared.project_name}.stl"
    shared.pending_download = str(dest)
    shared.scheduler.request_export(str(dest))
    ui.notify("Export queued for the next pass.")


def _deliver_download(shared: AppState, result: BuildResult) -> None:
    path = shared.pending_download
    if path is None:
        return
    if path in result.export_paths:
        ui.download(path)
        ui.notify(f"Exported {Path(path).name}", type="positive")
    elif path in result.export_errors:
        ui.notify(f"Export failed: {result.export_errors[path]}", type="negative")
    else:
        return
    shared.pending_download = None


async def _confirm(message: str, accept: str, decline: str) -> bool:
    with ui.dialog() as dialog, ui.card():
        ui.label(message).classes("text-sm")
        with ui.row().classes("w-full justify-end"):
            ui.button(decline, on_click=lambda: dialog.submit(False)).props("flat")
            ui.button(accept, on_click=lambda: dialog.submit(True)).props("color=primary")
    return bool(await dialog)


def _open_dialog(shared: AppState) -> None:
    with ui.dialog() as dialog, ui.card():
        ui.label("Open project").classes("text-sm font-bold")
        ui.upload(
            label=f"Upload {PROJECT_SUFFIX}",
            auto_upload=True,
            on_upload=lambda e: _handle_upload(e, shared, dialog),
        ).props(f'accept="{PROJECT_SUFFIX}" dense').classes("w-full")
    dialog.open()


async def _handle_upload(event, shared: AppState, dialog) -> None:
    dest = UPLOAD_DIR / Path(event.name).name
    with open(dest, "wb") as f:
        f.write(event.content.read())
    dialog.close()

    current = shared.scheduler.config.voxel_size
    try:
        project = read_project(dest)
    except (EngineError, OSError) as exc:
        ui.notify(f"Cannot open {dest.name}: {exc}", type="negative")
        return

    answer = True
    if abs(project.voxel_resolution - current) > RESOLUTION_TOLERANCE:
        answer = await _confirm(
            f"This project was made at {project.voxel_resolution:g} mm, the app runs at "
            f"{current:g} mm. Switch resolution? (takes effect after a restart)",
            accept="Switch & restart", decline="Keep current",
        )

    try:
        loaded = load_project(dest, current, lambda *_: answer, shared.config)
    except (EngineError, OSError) as exc:
        ui.notify(f"Cannot open {dest.name}: {exc}", type="negative")
        return

    def command(state: ApplicationState) -> None:
        state.tree = loaded.tree
        state.selected_node = None

    shared.project_name = dest.stem
    shared.scheduler.submit_command(command)
    if loaded.restart_required:
        shared.restart_required = True
        ui.notify("Resolution saved. Restart to apply.", type="warning")
    ui.notify(f"Loaded {dest.name}", type="positive")


async def _handle_resolution(shared: AppState, size: float) -> None:
    if abs(size - shared.scheduler.config.voxel_size) <= RESOLUTION_TOLERANCE:
        ui.notify(f"Already at {size:g} mm.")
        return
    if not await _confirm(
        f"Switch voxel resolution to {size:g} mm? The app must restart to apply it.",
        accept="Save", decline="Cancel",
    ):
        return
    shared.config.save(size)
    shared.restart_required = True
    ui.notify("Resolution saved. Restart to apply.", type="warning")
