"""
Per-process state for the web UI.

The scheduler and its ``ApplicationState`` are shared by every browser tab;
``AppState`` adds what the UI thread tracks on top of them.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from app_config import AppConfig
from engine.scheduler import Scheduler
from engine.tree import ApplicationState


@dataclass
class AppState:
    """Root UI state."""

    config: AppConfig
    application: ApplicationState
    scheduler: Scheduler
    project_name: str = "untitled"
    mesh_urls: Dict[int, str] = field(default_factory=dict)  # pass id -> served STL
    pending_download: Optional[str] = None  # export path awaiting a result
    restart_required: bool = False

    @property
    def tree(self):
        return self.application.tree

    def structure_key(self) -> Tuple[Tuple[int, str], ...]:
        """Changes whenever nodes are added, removed or replaced."""
        with self.scheduler.tree_lock:
            return tuple((n.node_id, n.kind) for n in self.tree.walk())


@dataclass
class PageState:
    """What one browser tab has rendered so far."""

    rendered_pass: int = 0
    rendered_structure: Tuple[Tuple[int, str], ...] = ()
    selected_node: Optional[int] = None
    show_previews: bool = True
