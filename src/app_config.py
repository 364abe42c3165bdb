"""
Persisted application settings.

The only setting is the voxel resolution. It is read once at startup; a
change is written to disk and takes effect after a restart.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = BASE_DIR / ".architect_settings.json"

DEFAULT_VOXEL_SIZE = 5.0

RESOLUTION_PRESETS: Dict[str, float] = {
    "High (2mm)": 2.0,
    "Standard (5mm)": 5.0,
    "Draft (10mm)": 10.0,
    "Raw (20mm)": 20.0,
}


@dataclass
class AppConfig:
    voxel_size_mm: float = DEFAULT_VOXEL_SIZE
    path: Optional[Path] = None

    @classmethod
    def load(cls, path: Union[str, Path, None] = None) -> "AppConfig":
        """Read settings; a missing or corrupt file yields the defaults."""
        path = Path(path) if path is not None else SETTINGS_PATH
        config = cls(path=path)
        if not path.is_file():
            return config
        try:
            with open(path, encoding="utf-8") as f:
                saved = json.load(f)
            size = float(saved.get("voxel_size_mm", DEFAULT_VOXEL_SIZE))
        except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            return config
        if size > 0:
            config.voxel_size_mm = size
        return config

    def save(self, voxel_size_mm: Optional[float] = None) -> Path:
        if voxel_size_mm is not None:
            if voxel_size_mm <= 0:
                raise ValueError(f"Voxel size must be positive, got {voxel_size_mm}")
            self.voxel_size_mm = float(voxel_size_mm)
        path = self.path or SETTINGS_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"voxel_size_mm": self.voxel_size_mm}, f, indent=2)
        logger.info("Saved voxel resolution %.2fmm to %s (restart required)", self.voxel_size_mm, path)
        return path
