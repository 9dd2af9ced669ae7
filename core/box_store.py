from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, List, Any, Iterable
import threading
import logging

from PyQt6.QtCore import QObject, pyqtSignal

from core.error_types import (
    Result,
    Success,
    Failure,
    ValidationError,
)
from models.annotation import (
    Box,
    BoxType,
    PageKey,
    Rectangle,
    generate_id,
)
from models.settings import EngineSettings
from utils.geometry import boxes_overlap
from utils.validators import (
    is_number,
    validate_color_hex,
    validate_geometry,
    validate_page_number,
    validate_resize_handle,
)

logger = logging.getLogger(__name__)


class BoxStore(QObject):
    """
    Arena of boxes indexed by page partition and by layer.

    Boxes live in a single id-keyed dict. Each (document, page) partition keeps
    the ids of its boxes in insertion order, and each layer keeps the ids it
    owns. Partitions are created on first access, so reading or writing an
    unknown page never fails.

    Signals:
        box_added: Emitted with the new Box
        box_updated: Emitted with the updated Box
        box_removed: Emitted with the removed Box, before page_changed
        page_changed: Emitted with (document_id, page_number) after any mutation
    """

    box_added = pyqtSignal(object)
    box_updated = pyqtSignal(object)
    box_removed = pyqtSignal(object)
    page_changed = pyqtSignal(str, int)

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        lock: Optional[threading.RLock] = None,
    ):
        super().__init__()

        self._settings = settings or EngineSettings()
        self._lock = lock or threading.RLock()

        self._boxes: Dict[str, Box] = {}
        self._page_index: Dict[PageKey, List[str]] = {}
        self._layer_index: Dict[str, List[str]] = {}

    @property
    def min_box_size(self) -> float:
        return self._settings.min_box_size

    def ensure_page(self, document_id: str, page_number: int) -> PageKey:
        """Create the partition for a page if it does not exist yet."""
        key = PageKey(document_id, page_number)
        with self._lock:
            self._page_index.setdefault(key, [])
        return key

    def pages(self, document_id: Optional[str] = None) -> List[PageKey]:
        """Known page partitions, optionally restricted to one document."""
        with self._lock:
            return [
                key for key in self._page_index
                if document_id is None or key.document_id == document_id
            ]

    def add_box(
        self,
        document_id: str,
        page_number: int,
        layer_id: str,
        rect: Rectangle,
        text: str = "",
        color: Optional[str] = None,
        box_type: BoxType = BoxType.BOX,
    ) -> Result[Box]:
        """
        Create a box on a page.

        Args:
            document_id: Document the page belongs to.
            page_number: One-based page number.
            layer_id: Owning layer.
            rect: Geometry in page-local, unscaled coordinates.
            text: Optional text content.
            color: Optional color override; renderers fall back to the layer color.
            box_type: Semantic tag.

        Returns:
            Result containing the new Box.
        """
        page_result = validate_page_number(page_number)
        if page_result.is_failure():
            return Failure(page_result.get_error())

        geometry_result = validate_geometry(rect.x, rect.y, rect.width, rect.height)
        if geometry_result.is_failure():
            return Failure(geometry_result.get_error())

        if color is not None:
            color_result = validate_color_hex(color)
            if color_result.is_failure():
                return Failure(color_result.get_error())
            color = color_result.unwrap()

        x, y, width, height = geometry_result.unwrap()
        now = datetime.now()

        with self._lock:
            box_id = generate_id()
            while box_id in self._boxes:
                box_id = generate_id()

            box = Box(
                box_id=box_id,
                document_id=document_id,
                layer_id=layer_id,
                page_number=page_number,
                x=x,
                y=y,
                width=width,
                height=height,
                text=text or "",
                color=color,
                box_type=box_type,
                created_at=now,
                updated_at=now,
            )

            self._insert(box)

            self.box_added.emit(box.copy())
            self.page_changed.emit(document_id, page_number)

        logger.debug(f"Added box {box.box_id} on {document_id}:{page_number} layer={layer_id}")
        return Success(box.copy())

    def _insert(self, box: Box) -> None:
        key = PageKey(box.document_id, box.page_number)
        self._boxes[box.box_id] = box
        self._page_index.setdefault(key, []).append(box.box_id)
        self._layer_index.setdefault(box.layer_id, []).append(box.box_id)

    def _detach(self, box: Box) -> None:
        key = PageKey(box.document_id, box.page_number)
        del self._boxes[box.box_id]
        page_ids = self._page_index.get(key, [])
        if box.box_id in page_ids:
            page_ids.remove(box.box_id)
        layer_ids = self._layer_index.get(box.layer_id, [])
        if box.box_id in layer_ids:
            layer_ids.remove(box.box_id)

    def get_box(self, box_id: str) -> Optional[Box]:
        with self._lock:
            box = self._boxes.get(box_id)
            return box.copy() if box is not None else None

    def has_box(self, box_id: str) -> bool:
        with self._lock:
            return box_id in self._boxes

    def update_box(
        self,
        box_id: str,
        updates: Dict[str, Any],
        handle: Optional[str] = None,
    ) -> Result[bool]:
        """
        Merge a partial field set into a box.

        The update timestamp is always refreshed. If an updated width or
        height would drop below the minimum box size, it is clamped and x/y
        are adjusted so the edge opposite the drag handle stays where it was.
        Without an explicit handle, an update that moves x (or y) is treated
        as a drag of the west (or north) edge.

        Args:
            box_id: Box to update.
            updates: Field name to new value.
            handle: Optional resize handle (n, s, e, w, ne, nw, se, sw).

        Returns:
            Result containing True if updated, False if the box does not exist.
        """
        unknown = sorted(set(updates) - set(Box.MUTABLE_FIELDS))
        if unknown:
            return Failure(ValidationError(
                message=f"Unknown or read-only box fields: {', '.join(unknown)}",
                field_name="updates",
                invalid_value=str(unknown),
            ))

        if handle is not None:
            handle_result = validate_resize_handle(handle)
            if handle_result.is_failure():
                return Failure(handle_result.get_error())

        with self._lock:
            box = self._boxes.get(box_id)
            if box is None:
                return Success(False)

            x = updates.get("x", box.x)
            y = updates.get("y", box.y)
            width = updates.get("width", box.width)
            height = updates.get("height", box.height)

            # Sizes below the minimum, negative ones included, are clamped below.
            if not all(is_number(value) for value in (x, y, width, height)):
                return Failure(ValidationError(
                    message="Box geometry values must be finite numbers",
                    field_name="geometry",
                    invalid_value=str((x, y, width, height)),
                ))

            drags_west = "w" in handle if handle else ("x" in updates and x != box.x)
            drags_north = "n" in handle if handle else ("y" in updates and y != box.y)

            min_size = self._settings.min_box_size
            # Only sizes carried by the update are clamped; boxes created small stay small.
            if "width" in updates and width < min_size:
                width = min_size
                x = box.x + box.width - min_size if drags_west else box.x
            if "height" in updates and height < min_size:
                height = min_size
                y = box.y + box.height - min_size if drags_north else box.y

            color = updates.get("color", box.color)
            if color is not None:
                color_result = validate_color_hex(color)
                if color_result.is_failure():
                    return Failure(color_result.get_error())
                color = color_result.unwrap()

            box_type = updates.get("box_type", box.box_type)
            if not isinstance(box_type, BoxType):
                try:
                    box_type = BoxType(box_type)
                except ValueError:
                    return Failure(ValidationError(
                        message=f"Unknown box type: {box_type}",
                        field_name="box_type",
                        invalid_value=str(box_type),
                    ))

            box.x = float(x)
            box.y = float(y)
            box.width = float(width)
            box.height = float(height)
            box.text = updates.get("text", box.text) or ""
            box.color = color
            box.box_type = box_type
            box.updated_at = datetime.now()

            self.box_updated.emit(box.copy())
            self.page_changed.emit(box.document_id, box.page_number)

        return Success(True)

    def resize_box(
        self,
        box_id: str,
        handle: str,
        dx: float,
        dy: float,
    ) -> Result[bool]:
        """
        Resize a box by dragging one of its eight handles by (dx, dy).

        Returns:
            Result containing True if resized, False if the box does not exist.
        """
        handle_result = validate_resize_handle(handle)
        if handle_result.is_failure():
            return Failure(handle_result.get_error())

        with self._lock:
            box = self._boxes.get(box_id)
            if box is None:
                return Success(False)

            updates: Dict[str, float] = {}
            if "n" in handle:
                updates["y"] = box.y + dy
                updates["height"] = box.height - dy
            if "s" in handle:
                updates["height"] = box.height + dy
            if "e" in handle:
                updates["width"] = box.width + dx
            if "w" in handle:
                updates["x"] = box.x + dx
                updates["width"] = box.width - dx

            return self.update_box(box_id, updates, handle=handle)

    def move_box_to_layer(self, box_id: str, layer_id: str) -> Result[bool]:
        """Re-tag a single box with another layer."""
        with self._lock:
            box = self._boxes.get(box_id)
            if box is None:
                return Success(False)
            if box.layer_id == layer_id:
                return Success(True)

            self._layer_index.get(box.layer_id, []).remove(box_id)
            self._layer_index.setdefault(layer_id, []).append(box_id)
            box.layer_id = layer_id
            box.updated_at = datetime.now()

            self.box_updated.emit(box.copy())
            self.page_changed.emit(box.document_id, box.page_number)

        return Success(True)

    def remove_box(self, box_id: str) -> Result[bool]:
        """
        Remove a box. Removing an absent box is a no-op.

        Listeners of box_removed drop the connections and group memberships
        that reference the box before this call returns.

        Returns:
            Result containing True if a box was removed.
        """
        with self._lock:
            box = self._boxes.get(box_id)
            if box is None:
                return Success(False)

            self._detach(box)

            self.box_removed.emit(box)
            self.page_changed.emit(box.document_id, box.page_number)

        logger.debug(f"Removed box {box_id}")
        return Success(True)

    def list_boxes(
        self,
        document_id: str,
        page_number: int,
        layer_id: Optional[str] = None,
        sort_by_position: bool = False,
    ) -> List[Box]:
        """
        List the boxes of a page in insertion order.

        Args:
            document_id: Document id.
            page_number: One-based page number.
            layer_id: Optional layer filter.
            sort_by_position: Order by (page_number, y) instead.

        Returns:
            Copies of the matching boxes.
        """
        key = self.ensure_page(document_id, page_number)
        with self._lock:
            boxes = [
                self._boxes[box_id].copy()
                for box_id in self._page_index[key]
                if layer_id is None or self._boxes[box_id].layer_id == layer_id
            ]
        if sort_by_position:
            boxes = sort_boxes_by_position(boxes)
        return boxes

    def boxes_for_layer(self, layer_id: str) -> List[Box]:
        with self._lock:
            return [self._boxes[box_id].copy() for box_id in self._layer_index.get(layer_id, [])]

    def boxes_for_document(
        self,
        document_id: str,
        layer_id: Optional[str] = None,
    ) -> List[Box]:
        """All boxes of a document, page by page, each page in insertion order."""
        with self._lock:
            keys = sorted(
                (key for key in self._page_index if key.document_id == document_id),
                key=lambda key: key.page_number,
            )
            return [
                self._boxes[box_id].copy()
                for key in keys
                for box_id in self._page_index[key]
                if layer_id is None or self._boxes[box_id].layer_id == layer_id
            ]

    def boxes_in_region(
        self,
        document_id: str,
        page_number: int,
        region: Rectangle,
        layer_id: Optional[str] = None,
    ) -> List[Box]:
        """Boxes overlapping a selection rectangle."""
        return [
            box for box in self.list_boxes(document_id, page_number, layer_id)
            if boxes_overlap(box, region)
        ]

    def reassign_layer(self, source_layer_id: str, target_layer_id: str) -> int:
        """Move every box of one layer to another. Returns the number moved."""
        with self._lock:
            moved_ids = self._layer_index.pop(source_layer_id, [])
            if not moved_ids:
                return 0

            touched = set()
            for box_id in moved_ids:
                box = self._boxes[box_id]
                box.layer_id = target_layer_id
                touched.add(PageKey(box.document_id, box.page_number))
            self._layer_index.setdefault(target_layer_id, []).extend(moved_ids)

            for key in touched:
                self.page_changed.emit(key.document_id, key.page_number)

        logger.debug(f"Reassigned {len(moved_ids)} boxes from {source_layer_id} to {target_layer_id}")
        return len(moved_ids)

    def clone_layer_boxes(self, source_layer_id: str, target_layer_id: str) -> List[Box]:
        """Deep-copy every box of a layer into another layer with fresh ids."""
        with self._lock:
            clones: List[Box] = []
            now = datetime.now()
            for box_id in list(self._layer_index.get(source_layer_id, [])):
                source = self._boxes[box_id]
                clone_id = generate_id()
                while clone_id in self._boxes:
                    clone_id = generate_id()
                clone = source.copy(
                    box_id=clone_id,
                    layer_id=target_layer_id,
                    created_at=now,
                    updated_at=now,
                )
                self._insert(clone)
                clones.append(clone.copy())
                self.box_added.emit(clone.copy())

            for key in {PageKey(box.document_id, box.page_number) for box in clones}:
                self.page_changed.emit(key.document_id, key.page_number)

        return clones

    def remove_boxes_for_layer(self, layer_id: str) -> List[Box]:
        """Remove every box of a layer on every page, with cascades."""
        with self._lock:
            removed: List[Box] = []
            for box_id in list(self._layer_index.get(layer_id, [])):
                box = self._boxes[box_id]
                self._detach(box)
                self.box_removed.emit(box)
                removed.append(box)
            self._layer_index.pop(layer_id, None)

            for key in {PageKey(box.document_id, box.page_number) for box in removed}:
                self.page_changed.emit(key.document_id, key.page_number)

        return removed

    def count(self, layer_id: Optional[str] = None) -> int:
        with self._lock:
            if layer_id is None:
                return len(self._boxes)
            return len(self._layer_index.get(layer_id, []))


def sort_boxes_by_position(boxes: Iterable[Box]) -> List[Box]:
    """Order boxes by page, then top to bottom. The sort is stable."""
    return sorted(boxes, key=lambda box: (box.page_number, box.y))


def filter_boxes(
    boxes: Iterable[Box],
    search_term: Optional[str] = None,
    min_text_length: Optional[int] = None,
    max_text_length: Optional[int] = None,
    page_number: Optional[int] = None,
) -> List[Box]:
    """
    Filter boxes the way the layer box list does.

    Args:
        boxes: Boxes to filter.
        search_term: Case-insensitive substring that must appear in the text.
        min_text_length: Drop boxes with shorter text.
        max_text_length: Drop boxes with longer text.
        page_number: Keep only boxes on this page.

    Returns:
        Matching boxes, original order preserved.
    """
    needle = search_term.lower() if search_term else None
    matches = []
    for box in boxes:
        if page_number is not None and box.page_number != page_number:
            continue
        text = box.text or ""
        if needle and needle not in text.lower():
            continue
        if min_text_length is not None and len(text) < min_text_length:
            continue
        if max_text_length is not None and len(text) > max_text_length:
            continue
        matches.append(box)
    return matches
