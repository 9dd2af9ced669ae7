from __future__ import annotations
from typing import Optional, Dict, List, Any
import functools
import threading
import logging

from PyQt6.QtCore import QObject, pyqtSignal

from core.box_store import BoxStore
from core.error_types import (
    Result,
    Success,
    Failure,
    ValidationError,
)
from models.annotation import (
    Box,
    Connection,
    ConnectionStyle,
    generate_id,
)
from utils.validators import validate_color_hex, is_number

logger = logging.getLogger(__name__)


class ConnectionStore(QObject):
    """
    Connections between two boxes of the same page.

    Connections are partitioned by (page_number, layer_id) for lookups and
    carry the document id of their boxes. The store listens to
    BoxStore.box_removed and drops every connection that referenced the
    removed box.

    Signals:
        connection_added: Emitted with the new Connection
        connection_removed: Emitted with the removed Connection
        page_changed: Emitted with (document_id, page_number) after any mutation
    """

    connection_added = pyqtSignal(object)
    connection_removed = pyqtSignal(object)
    page_changed = pyqtSignal(str, int)

    STYLE_FIELDS = ("color", "width", "dashed", "arrow_head")
    ENDPOINT_FIELDS = ("start_box_id", "end_box_id")

    def __init__(
        self,
        box_store: BoxStore,
        lock: Optional[threading.RLock] = None,
    ):
        super().__init__()

        self._box_store = box_store
        self._lock = lock or threading.RLock()

        self._connections: Dict[str, Connection] = {}

        self._box_store.box_removed.connect(self._on_box_removed)

    def _validate_endpoints(
        self,
        start_box_id: str,
        end_box_id: str,
    ) -> Result[tuple[Box, Box]]:
        if start_box_id == end_box_id:
            return Failure(ValidationError(
                message="A connection needs two different boxes",
                field_name="end_box_id",
                invalid_value=end_box_id,
            ))

        start_box = self._box_store.get_box(start_box_id)
        end_box = self._box_store.get_box(end_box_id)
        missing = [
            box_id for box_id, box in ((start_box_id, start_box), (end_box_id, end_box))
            if box is None
        ]
        if missing:
            return Failure(ValidationError(
                message=f"Cannot connect missing box {missing[0]}",
                field_name="box_id",
                invalid_value=missing[0],
            ))

        if (start_box.document_id, start_box.page_number) != (end_box.document_id, end_box.page_number):
            return Failure(ValidationError(
                message="Connected boxes must be on the same page",
                field_name="page_number",
                invalid_value=f"{start_box.page_number}/{end_box.page_number}",
            ))

        return Success((start_box, end_box))

    def add_connection(
        self,
        start_box_id: str,
        end_box_id: str,
        layer_id: str,
        style: Optional[ConnectionStyle] = None,
        label: Optional[str] = None,
    ) -> Result[Connection]:
        """
        Connect two boxes.

        Args:
            start_box_id: Box the connector starts at.
            end_box_id: Box the connector ends at (arrow tip).
            layer_id: Owning layer.
            style: Optional stroke style.
            label: Optional label text.

        Returns:
            Result containing the new Connection, or a ValidationError when the
            ids are equal, a box is missing, or the boxes are on different pages.
        """
        with self._lock:
            endpoints = self._validate_endpoints(start_box_id, end_box_id)
            if endpoints.is_failure():
                endpoints.get_error().log(logger)
                return Failure(endpoints.get_error())

            start_box, _ = endpoints.unwrap()
            connection = Connection(
                connection_id=generate_id(),
                start_box_id=start_box_id,
                end_box_id=end_box_id,
                layer_id=layer_id,
                document_id=start_box.document_id,
                page_number=start_box.page_number,
                style=style or ConnectionStyle(),
                label=label,
            )
            self._connections[connection.connection_id] = connection

            self.connection_added.emit(connection.copy())
            self.page_changed.emit(connection.document_id, connection.page_number)

        logger.debug(f"Connected {start_box_id} -> {end_box_id} on layer {layer_id}")
        return Success(connection.copy())

    def connect_in_reading_order(
        self,
        box_ids: List[str],
        layer_id: str,
        style: Optional[ConnectionStyle] = None,
    ) -> Result[List[Connection]]:
        """
        Chain boxes in reading order: top to bottom, and left to right for
        boxes on the same row. Two boxes share a row when their y positions
        differ by less than half the smaller height.
        """
        boxes = [box for box in (self._box_store.get_box(box_id) for box_id in box_ids) if box]
        if len(boxes) < 2:
            return Success([])

        ordered = sort_reading_order(boxes)

        with self._lock:
            for first, second in zip(ordered, ordered[1:]):
                check = self._validate_endpoints(first.box_id, second.box_id)
                if check.is_failure():
                    return Failure(check.get_error())

            created = [
                self.add_connection(first.box_id, second.box_id, layer_id, style).unwrap()
                for first, second in zip(ordered, ordered[1:])
            ]

        return Success(created)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.get(connection_id)
            return connection.copy() if connection is not None else None

    def update_connection(
        self,
        connection_id: str,
        updates: Dict[str, Any],
    ) -> Result[bool]:
        """
        Merge style fields, endpoints or label into a connection.

        The owning layer is not updatable here; layer moves go through the
        layer registry so that layer cascades keep covering the connection.

        Returns:
            Result containing True if updated, False if the connection does not exist.
        """
        allowed = set(self.STYLE_FIELDS) | set(self.ENDPOINT_FIELDS) | {"label"}
        unknown = sorted(set(updates) - allowed)
        if unknown:
            return Failure(ValidationError(
                message=f"Unknown connection fields: {', '.join(unknown)}",
                field_name="updates",
                invalid_value=str(unknown),
            ))

        if "color" in updates:
            color_result = validate_color_hex(updates["color"])
            if color_result.is_failure():
                return Failure(color_result.get_error())

        if "width" in updates and (not is_number(updates["width"]) or updates["width"] <= 0):
            return Failure(ValidationError(
                message="Connection width must be a positive number",
                field_name="width",
                invalid_value=str(updates["width"]),
            ))

        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return Success(False)

            start_box_id = updates.get("start_box_id", connection.start_box_id)
            end_box_id = updates.get("end_box_id", connection.end_box_id)
            if (start_box_id, end_box_id) != (connection.start_box_id, connection.end_box_id):
                endpoints = self._validate_endpoints(start_box_id, end_box_id)
                if endpoints.is_failure():
                    return Failure(endpoints.get_error())
                start_box, _ = endpoints.unwrap()
                old_page = (connection.document_id, connection.page_number)
                connection.start_box_id = start_box_id
                connection.end_box_id = end_box_id
                connection.document_id = start_box.document_id
                connection.page_number = start_box.page_number
                if old_page != (connection.document_id, connection.page_number):
                    self.page_changed.emit(*old_page)

            style_updates = {
                name: updates[name] for name in self.STYLE_FIELDS if name in updates
            }
            if style_updates:
                connection.style = ConnectionStyle.from_dict({
                    **connection.style.to_dict(),
                    **style_updates,
                })

            if "label" in updates:
                connection.label = updates["label"]

            self.page_changed.emit(connection.document_id, connection.page_number)

        return Success(True)

    def remove_connection(self, connection_id: str) -> Result[bool]:
        """Remove a connection. Removing an absent connection is a no-op."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return Success(False)

            self.connection_removed.emit(connection)
            self.page_changed.emit(connection.document_id, connection.page_number)

        return Success(True)

    def _select(self, predicate) -> List[Connection]:
        return [c for c in self._connections.values() if predicate(c)]

    def connections_for_box(self, box_id: str) -> List[Connection]:
        with self._lock:
            return [c.copy() for c in self._select(lambda c: c.references(box_id))]

    def connections_for_page(
        self,
        page_number: int,
        layer_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> List[Connection]:
        with self._lock:
            return [
                c.copy() for c in self._select(
                    lambda c: c.page_number == page_number
                    and (layer_id is None or c.layer_id == layer_id)
                    and (document_id is None or c.document_id == document_id)
                )
            ]

    def connections_for_layer(self, layer_id: str) -> List[Connection]:
        with self._lock:
            return [c.copy() for c in self._select(lambda c: c.layer_id == layer_id)]

    def reassign_layer(self, source_layer_id: str, target_layer_id: str) -> int:
        with self._lock:
            moved = self._select(lambda c: c.layer_id == source_layer_id)
            for connection in moved:
                connection.layer_id = target_layer_id
            for document_id, page_number in {(c.document_id, c.page_number) for c in moved}:
                self.page_changed.emit(document_id, page_number)
        return len(moved)

    def remove_connections_for_layer(self, layer_id: str) -> int:
        with self._lock:
            doomed = self._select(lambda c: c.layer_id == layer_id)
            for connection in doomed:
                self.remove_connection(connection.connection_id)
        return len(doomed)

    def count(self) -> int:
        with self._lock:
            return len(self._connections)

    def _on_box_removed(self, box: Box) -> None:
        with self._lock:
            dangling = self._select(lambda c: c.references(box.box_id))
            for connection in dangling:
                self.remove_connection(connection.connection_id)
        if dangling:
            logger.debug(f"Removed {len(dangling)} connections of deleted box {box.box_id}")


def sort_reading_order(boxes: List[Box]) -> List[Box]:
    """Sort boxes top to bottom, left to right within a row."""
    def compare(first: Box, second: Box) -> int:
        y_diff = first.y - second.y
        if abs(y_diff) < min(first.height, second.height) / 2:
            x_diff = first.x - second.x
            return (x_diff > 0) - (x_diff < 0)
        return (y_diff > 0) - (y_diff < 0)

    return sorted(boxes, key=functools.cmp_to_key(compare))
