from __future__ import annotations
from typing import Optional, List
import threading
import logging

from core.box_store import BoxStore
from core.connection_store import ConnectionStore
from core.group_store import GroupStore
from core.layer_registry import LayerRegistry
from core.page_data import PageData, PageDataAssembler
from core.error_types import (
    Result,
    Failure,
    ValidationError,
)
from models.annotation import (
    Box,
    BoxType,
    Connection,
    ConnectionStyle,
    Group,
    Point,
    Rectangle,
)
from models.settings import EngineSettings, SettingsStore
from utils.geometry import (
    ConnectionPoints,
    calculate_connection_points,
    is_point_near_line,
)

logger = logging.getLogger(__name__)


class AnnotationWorkspace:
    """
    Facade over the annotation stores of one session.

    Creates the stores with a shared lock and shared settings, wires the
    box-removal cascades and the page-data cache, and checks that every
    entity is created on a live layer. Callers that need finer control can
    use the stores directly through the read-only properties.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = settings or EngineSettings()
        self._lock = threading.RLock()

        self._boxes = BoxStore(self._settings, self._lock)
        self._connections = ConnectionStore(self._boxes, self._lock)
        self._groups = GroupStore(self._boxes, self._lock)
        self._layers = LayerRegistry(
            self._boxes,
            self._connections,
            self._groups,
            self._settings,
            self._lock,
        )
        self._assembler = PageDataAssembler(
            self._boxes,
            self._connections,
            self._groups,
            self._layers,
            self._lock,
        )

    @classmethod
    def from_settings_store(cls, settings_store: Optional[SettingsStore] = None) -> AnnotationWorkspace:
        """Create a workspace configured from persisted settings."""
        store = settings_store or SettingsStore()
        return cls(store.load())

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def boxes(self) -> BoxStore:
        return self._boxes

    @property
    def connections(self) -> ConnectionStore:
        return self._connections

    @property
    def groups(self) -> GroupStore:
        return self._groups

    @property
    def layers(self) -> LayerRegistry:
        return self._layers

    @property
    def pages(self) -> PageDataAssembler:
        return self._assembler

    def _require_layer(self, layer_id: str) -> Optional[ValidationError]:
        if self._layers.has_layer(layer_id):
            return None
        error = ValidationError(
            message=f"Layer {layer_id} does not exist",
            field_name="layer_id",
            invalid_value=str(layer_id),
        )
        error.log(logger)
        return error

    def add_box(
        self,
        document_id: str,
        page_number: int,
        rect: Rectangle,
        layer_id: Optional[str] = None,
        text: str = "",
        color: Optional[str] = None,
        box_type: BoxType = BoxType.BOX,
    ) -> Result[Box]:
        """
        Create a box on a live layer.

        Args:
            document_id: Document the page belongs to.
            page_number: One-based page number.
            rect: Geometry in page-local coordinates.
            layer_id: Owning layer; defaults to the active layer.
            text: Optional text content.
            color: Optional color override.
            box_type: Semantic tag.

        Returns:
            Result containing the new Box.
        """
        with self._lock:
            layer_id = layer_id or self._layers.active_layer().layer_id
            error = self._require_layer(layer_id)
            if error is not None:
                return Failure(error)
            return self._boxes.add_box(
                document_id, page_number, layer_id, rect, text, color, box_type,
            )

    def move_box_to_layer(self, box_id: str, layer_id: str) -> Result[bool]:
        with self._lock:
            error = self._require_layer(layer_id)
            if error is not None:
                return Failure(error)
            return self._boxes.move_box_to_layer(box_id, layer_id)

    def add_connection(
        self,
        start_box_id: str,
        end_box_id: str,
        layer_id: Optional[str] = None,
        style: Optional[ConnectionStyle] = None,
        label: Optional[str] = None,
    ) -> Result[Connection]:
        with self._lock:
            layer_id = layer_id or self._layers.active_layer().layer_id
            error = self._require_layer(layer_id)
            if error is not None:
                return Failure(error)
            return self._connections.add_connection(start_box_id, end_box_id, layer_id, style, label)

    def create_group(
        self,
        box_ids: List[str],
        name: str,
        layer_id: str,
        page_number: int,
        document_id: str,
    ) -> Result[Group]:
        with self._lock:
            error = self._require_layer(layer_id)
            if error is not None:
                return Failure(error)
            return self._groups.create_group(box_ids, name, layer_id, page_number, document_id)

    def get_page_data(self, document_id: str, page_number: int) -> PageData:
        return self._assembler.get_page_data(document_id, page_number)

    def connection_points(self, connection_id: str) -> Optional[ConnectionPoints]:
        """Endpoints and control points of a connector, None if it is gone."""
        with self._lock:
            connection = self._connections.get_connection(connection_id)
            if connection is None:
                return None
            start_box = self._boxes.get_box(connection.start_box_id)
            end_box = self._boxes.get_box(connection.end_box_id)
        if start_box is None or end_box is None:
            return None
        return calculate_connection_points(
            start_box, end_box, self._settings.control_distance_ratio,
        )

    def _page_for_hit_test(self, document_id: str, page_number: int, layer_id: Optional[str]) -> PageData:
        if layer_id is not None:
            return self._assembler.get_page_data(document_id, page_number)
        return self._assembler.visible_page_data(document_id, page_number)

    def box_at(
        self,
        document_id: str,
        page_number: int,
        point: Point,
        layer_id: Optional[str] = None,
    ) -> Optional[Box]:
        """Topmost box containing point, on visible layers unless layer_id is given."""
        page = self._page_for_hit_test(document_id, page_number, layer_id)
        for box in reversed(page.boxes):
            if (layer_id is None or box.layer_id == layer_id) and box.bounds.contains_point(point):
                return box
        return None

    def connection_at(
        self,
        document_id: str,
        page_number: int,
        point: Point,
        layer_id: Optional[str] = None,
    ) -> Optional[Connection]:
        """
        Topmost connector whose line passes within the configured hit
        threshold of point. Only visible layers are searched unless
        layer_id is given.
        """
        page = self._page_for_hit_test(document_id, page_number, layer_id)
        for connection in reversed(page.connections):
            if layer_id is not None and connection.layer_id != layer_id:
                continue
            points = self.connection_points(connection.connection_id)
            if points is not None and is_point_near_line(
                point, points.start, points.end, self._settings.hit_threshold,
            ):
                return connection
        return None
