from models.annotation import (
    DEFAULT_LAYER_ID,
    BoxType,
    Color,
    Point,
    Rectangle,
    Layer,
    Box,
    ConnectionStyle,
    Connection,
    Group,
    PageKey,
)
from models.settings import (
    DEFAULT_LAYER_PALETTE,
    EngineSettings,
    SettingsStore,
)

__all__ = [
    "DEFAULT_LAYER_ID",
    "BoxType",
    "Color",
    "Point",
    "Rectangle",
    "Layer",
    "Box",
    "ConnectionStyle",
    "Connection",
    "Group",
    "PageKey",
    "DEFAULT_LAYER_PALETTE",
    "EngineSettings",
    "SettingsStore",
]
