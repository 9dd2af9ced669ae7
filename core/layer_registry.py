from __future__ import annotations
from typing import Optional, Dict, List
import random
import threading
import logging

from PyQt6.QtCore import QObject, pyqtSignal

from core.box_store import BoxStore
from core.connection_store import ConnectionStore
from core.group_store import GroupStore
from core.error_types import (
    Result,
    Success,
    Failure,
    ValidationError,
)
from models.annotation import (
    DEFAULT_LAYER_ID,
    Color,
    Layer,
    generate_id,
)
from models.settings import EngineSettings
from utils.validators import validate_color_hex, validate_name

logger = logging.getLogger(__name__)


class LayerRegistry(QObject):
    """
    Ordered set of layers plus the active layer that receives new boxes.

    The registry owns the layer lifecycle and drives the cascades into the
    entity stores: removing a layer removes its boxes, connections and
    groups on every page; merging re-tags them; duplicating deep-copies the
    boxes into a fresh layer.

    Signals:
        layers_changed: Emitted after any change to the layer list or a layer
        active_layer_changed: Emitted with the id of the newly active layer
    """

    layers_changed = pyqtSignal()
    active_layer_changed = pyqtSignal(str)

    COPY_SUFFIX = " (copy)"

    def __init__(
        self,
        box_store: BoxStore,
        connection_store: ConnectionStore,
        group_store: GroupStore,
        settings: Optional[EngineSettings] = None,
        lock: Optional[threading.RLock] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__()

        self._box_store = box_store
        self._connection_store = connection_store
        self._group_store = group_store
        self._settings = settings or EngineSettings()
        self._lock = lock or threading.RLock()
        self._rng = rng or random.Random()

        self._layers: Dict[str, Layer] = {
            DEFAULT_LAYER_ID: Layer(
                layer_id=DEFAULT_LAYER_ID,
                name=self._settings.default_layer_name,
                color=self._settings.default_layer_color,
            )
        }
        self._active_layer_id = DEFAULT_LAYER_ID

    # Lookup

    def layers(self) -> List[Layer]:
        """Layers in creation order."""
        with self._lock:
            return [layer.copy() for layer in self._layers.values()]

    def get_layer(self, layer_id: str) -> Optional[Layer]:
        with self._lock:
            layer = self._layers.get(layer_id)
            return layer.copy() if layer is not None else None

    def has_layer(self, layer_id: str) -> bool:
        with self._lock:
            return layer_id in self._layers

    def visible_layer_ids(self) -> List[str]:
        with self._lock:
            return [layer.layer_id for layer in self._layers.values() if layer.visible]

    def active_layer(self) -> Layer:
        with self._lock:
            return self._layers[self._active_layer_id].copy()

    def _name_taken(self, name: str, ignore_id: Optional[str] = None) -> bool:
        return any(
            layer.name == name and layer.layer_id != ignore_id
            for layer in self._layers.values()
        )

    def _next_color(self) -> str:
        used = {layer.color.upper() for layer in self._layers.values()}
        for color in self._settings.layer_palette:
            if color.upper() not in used:
                return color
        return Color.random(self._rng).to_hex()

    def _missing_layer(self, layer_id: str, field_name: str = "layer_id") -> ValidationError:
        return ValidationError(
            message=f"Layer {layer_id} does not exist",
            field_name=field_name,
            invalid_value=str(layer_id),
        )

    def _activate(self, layer_id: str) -> None:
        if self._active_layer_id != layer_id:
            self._active_layer_id = layer_id
            self.active_layer_changed.emit(layer_id)

    # Lifecycle

    def add_layer(self, name: str, color: Optional[str] = None) -> Result[Layer]:
        """
        Create a layer and make it the active layer.

        Args:
            name: Display name, unique among layers (case-sensitive).
            color: Optional hex color; defaults to the first unused palette color.

        Returns:
            Result containing the new Layer.
        """
        name_result = validate_name(name, "name")
        if name_result.is_failure():
            return Failure(name_result.get_error())
        name = name_result.unwrap()

        if color is not None:
            color_result = validate_color_hex(color)
            if color_result.is_failure():
                return Failure(color_result.get_error())
            color = color_result.unwrap()

        with self._lock:
            if self._name_taken(name):
                error = ValidationError(
                    message=f"A layer named '{name}' already exists",
                    field_name="name",
                    invalid_value=name,
                )
                error.log(logger)
                return Failure(error)

            layer = Layer(
                layer_id=generate_id(),
                name=name,
                color=color or self._next_color(),
            )
            self._layers[layer.layer_id] = layer
            self._activate(layer.layer_id)
            self.layers_changed.emit()

        logger.info(f"Created layer '{layer.name}' ({layer.layer_id})")
        return Success(layer.copy())

    def remove_layer(self, layer_id: str) -> Result[bool]:
        """
        Remove a layer with everything it owns on every page.

        The default layer cannot be removed. If the removed layer was active,
        the first remaining layer becomes active.

        Returns:
            Result containing True if removed, False if the layer does not exist.
        """
        if layer_id == DEFAULT_LAYER_ID:
            error = ValidationError(
                message="The default layer cannot be removed",
                field_name="layer_id",
                invalid_value=layer_id,
            )
            error.log(logger)
            return Failure(error)

        with self._lock:
            layer = self._layers.get(layer_id)
            if layer is None:
                return Success(False)

            removed_boxes = self._purge(layer_id)
            del self._layers[layer_id]

            if self._active_layer_id == layer_id:
                self._activate(next(iter(self._layers)))
            self.layers_changed.emit()

        logger.info(f"Removed layer '{layer.name}' and {removed_boxes} boxes")
        return Success(True)

    def _purge(self, layer_id: str) -> int:
        removed = self._box_store.remove_boxes_for_layer(layer_id)
        self._connection_store.remove_connections_for_layer(layer_id)
        self._group_store.remove_groups_for_layer(layer_id)
        return len(removed)

    def clear_layer(self, layer_id: str) -> Result[int]:
        """Delete the boxes, connections and groups of a layer but keep the layer."""
        with self._lock:
            if layer_id not in self._layers:
                return Success(0)
            removed_boxes = self._purge(layer_id)

        logger.info(f"Cleared {removed_boxes} boxes from layer {layer_id}")
        return Success(removed_boxes)

    def duplicate_layer(self, layer_id: str) -> Result[Layer]:
        """
        Copy a layer and all of its boxes.

        The copy is named "<name> (copy)", numbered when that name is taken,
        and gets the next palette color. Boxes receive fresh ids; connections
        and groups are not copied.
        """
        with self._lock:
            source = self._layers.get(layer_id)
            if source is None:
                return Failure(self._missing_layer(layer_id))

            base_name = f"{source.name}{self.COPY_SUFFIX}"
            name = base_name
            counter = 2
            while self._name_taken(name):
                name = f"{base_name} {counter}"
                counter += 1

            duplicate = Layer(
                layer_id=generate_id(),
                name=name,
                color=self._next_color(),
                visible=source.visible,
            )
            self._layers[duplicate.layer_id] = duplicate
            clones = self._box_store.clone_layer_boxes(layer_id, duplicate.layer_id)
            self.layers_changed.emit()

        logger.info(f"Duplicated layer '{source.name}' as '{duplicate.name}' with {len(clones)} boxes")
        return Success(duplicate.copy())

    def merge_layers(self, source_layer_id: str, target_layer_id: str) -> Result[Layer]:
        """
        Move everything of the source layer into the target, then remove the source.

        Returns:
            Result containing the target Layer.
        """
        if source_layer_id == DEFAULT_LAYER_ID:
            return Failure(ValidationError(
                message="The default layer cannot be merged away",
                field_name="source_layer_id",
                invalid_value=source_layer_id,
            ))
        if source_layer_id == target_layer_id:
            return Failure(ValidationError(
                message="A layer cannot be merged into itself",
                field_name="target_layer_id",
                invalid_value=target_layer_id,
            ))

        with self._lock:
            if source_layer_id not in self._layers:
                return Failure(self._missing_layer(source_layer_id, "source_layer_id"))
            if target_layer_id not in self._layers:
                return Failure(self._missing_layer(target_layer_id, "target_layer_id"))

            moved = self._box_store.reassign_layer(source_layer_id, target_layer_id)
            self._connection_store.reassign_layer(source_layer_id, target_layer_id)
            self._group_store.reassign_layer(source_layer_id, target_layer_id)

            source = self._layers.pop(source_layer_id)
            if self._active_layer_id == source_layer_id:
                self._activate(target_layer_id)
            self.layers_changed.emit()
            target = self._layers[target_layer_id].copy()

        logger.info(f"Merged layer '{source.name}' into '{target.name}' ({moved} boxes)")
        return Success(target)

    # Properties

    def toggle_visibility(self, layer_id: str) -> Result[bool]:
        """Flip a layer between shown and hidden."""
        with self._lock:
            layer = self._layers.get(layer_id)
            if layer is None:
                return Success(False)
            return self.set_visibility(layer_id, not layer.visible)

    def set_visibility(self, layer_id: str, visible: bool) -> Result[bool]:
        with self._lock:
            layer = self._layers.get(layer_id)
            if layer is None:
                return Success(False)
            layer.visible = bool(visible)
            self.layers_changed.emit()
        return Success(True)

    def rename_layer(self, layer_id: str, name: str) -> Result[bool]:
        name_result = validate_name(name, "name")
        if name_result.is_failure():
            return Failure(name_result.get_error())
        name = name_result.unwrap()

        with self._lock:
            layer = self._layers.get(layer_id)
            if layer is None:
                return Success(False)
            if self._name_taken(name, ignore_id=layer_id):
                return Failure(ValidationError(
                    message=f"A layer named '{name}' already exists",
                    field_name="name",
                    invalid_value=name,
                ))
            layer.name = name
            self.layers_changed.emit()
        return Success(True)

    def set_layer_color(self, layer_id: str, color: str) -> Result[bool]:
        color_result = validate_color_hex(color)
        if color_result.is_failure():
            return Failure(color_result.get_error())

        with self._lock:
            layer = self._layers.get(layer_id)
            if layer is None:
                return Success(False)
            layer.color = color_result.unwrap()
            self.layers_changed.emit()
        return Success(True)

    def set_active_layer(self, layer_id: str) -> Result[bool]:
        """Select the layer that receives new boxes."""
        with self._lock:
            if layer_id not in self._layers:
                return Success(False)
            self._activate(layer_id)
        return Success(True)
