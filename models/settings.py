from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import json
import logging

from PyQt6.QtCore import QSettings

logger = logging.getLogger(__name__)


DEFAULT_LAYER_PALETTE = [
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEEAD",
    "#D4A5A5",
    "#9370DB",
    "#20B2AA",
    "#FFB6C1",
    "#98FB98",
]


@dataclass
class EngineSettings:
    """Tunable constants of the annotation engine."""

    min_box_size: float = 20.0
    hit_threshold: float = 5.0
    control_distance_ratio: float = 1 / 3

    default_page_width: int = 800
    default_page_height: int = 1131

    default_layer_name: str = "Default layer"
    default_layer_color: str = "#000000"
    layer_palette: List[str] = field(default_factory=lambda: list(DEFAULT_LAYER_PALETTE))

    capture_base_url: str = "http://localhost:8001"

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            "min_box_size": self.min_box_size,
            "hit_threshold": self.hit_threshold,
            "control_distance_ratio": self.control_distance_ratio,
            "default_page_width": self.default_page_width,
            "default_page_height": self.default_page_height,
            "default_layer_name": self.default_layer_name,
            "default_layer_color": self.default_layer_color,
            "layer_palette": list(self.layer_palette),
            "capture_base_url": self.capture_base_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EngineSettings:
        """Create settings from dictionary."""
        defaults = cls()
        return cls(
            min_box_size=data.get("min_box_size", defaults.min_box_size),
            hit_threshold=data.get("hit_threshold", defaults.hit_threshold),
            control_distance_ratio=data.get("control_distance_ratio", defaults.control_distance_ratio),
            default_page_width=data.get("default_page_width", defaults.default_page_width),
            default_page_height=data.get("default_page_height", defaults.default_page_height),
            default_layer_name=data.get("default_layer_name", defaults.default_layer_name),
            default_layer_color=data.get("default_layer_color", defaults.default_layer_color),
            layer_palette=list(data.get("layer_palette", defaults.layer_palette)),
            capture_base_url=data.get("capture_base_url", defaults.capture_base_url),
        )


class SettingsStore:
    """
    Loads and saves EngineSettings through QSettings.

    Settings are kept as a JSON blob under a single key so that new fields
    can be added without migrating stored values.
    """

    ORGANIZATION_NAME = "BoxLayers"
    APPLICATION_NAME = "BoxLayerEngine"
    SETTINGS_KEY = "settings/engine"

    def __init__(self, qsettings: Optional[QSettings] = None):
        self._qsettings = qsettings or QSettings(self.ORGANIZATION_NAME, self.APPLICATION_NAME)

    def load(self) -> EngineSettings:
        """Load engine settings, falling back to defaults on bad data."""
        data = self._qsettings.value(self.SETTINGS_KEY)
        if data:
            try:
                return EngineSettings.from_dict(json.loads(data))
            except (json.JSONDecodeError, TypeError, AttributeError):
                logger.warning(f"Ignoring unreadable engine settings under {self.SETTINGS_KEY}")
        return EngineSettings()

    def save(self, settings: EngineSettings) -> None:
        """Save engine settings to persistent storage."""
        self._qsettings.setValue(self.SETTINGS_KEY, json.dumps(settings.to_dict()))
        self._qsettings.sync()

    def reset(self) -> EngineSettings:
        """Remove stored settings and return the defaults."""
        self._qsettings.remove(self.SETTINGS_KEY)
        self._qsettings.sync()
        return EngineSettings()
