from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, List
import threading
import logging

from PyQt6.QtCore import QObject

from core.box_store import BoxStore
from core.connection_store import ConnectionStore
from core.group_store import GroupStore
from core.layer_registry import LayerRegistry
from models.annotation import (
    Box,
    Connection,
    Group,
    Layer,
    PageKey,
)

logger = logging.getLogger(__name__)


@dataclass
class PageData:
    """Read-only view of everything drawn on one page."""

    document_id: str
    page_number: int
    layers: List[Layer] = field(default_factory=list)
    boxes: List[Box] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    group_boxes: List[Group] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.boxes or self.connections or self.group_boxes)

    def copy(self) -> PageData:
        """Detached copy; changing it never reaches the cached view."""
        return PageData(
            document_id=self.document_id,
            page_number=self.page_number,
            layers=[layer.copy() for layer in self.layers],
            boxes=[box.copy() for box in self.boxes],
            connections=[connection.copy() for connection in self.connections],
            group_boxes=[group.copy() for group in self.group_boxes],
        )

    def serialize(self) -> Dict[str, object]:
        return {
            "layers": [layer.serialize() for layer in self.layers],
            "boxes": [box.serialize() for box in self.boxes],
            "connections": [connection.serialize() for connection in self.connections],
            "groupBoxes": [group.serialize() for group in self.group_boxes],
        }


class PageDataAssembler(QObject):
    """
    Builds PageData views and caches them per page.

    A cached view is dropped when any store reports a change to its page;
    a layer change drops every cached view, since each view embeds the
    global layer list.
    """

    def __init__(
        self,
        box_store: BoxStore,
        connection_store: ConnectionStore,
        group_store: GroupStore,
        layer_registry: LayerRegistry,
        lock: Optional[threading.RLock] = None,
    ):
        super().__init__()

        self._box_store = box_store
        self._connection_store = connection_store
        self._group_store = group_store
        self._layer_registry = layer_registry
        self._lock = lock or threading.RLock()

        self._cache: Dict[PageKey, PageData] = {}

        for store in (box_store, connection_store, group_store):
            store.page_changed.connect(self.invalidate_page)
        layer_registry.layers_changed.connect(self.invalidate_all)

    def invalidate_page(self, document_id: str, page_number: int) -> None:
        with self._lock:
            self._cache.pop(PageKey(document_id, page_number), None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._cache.clear()

    def is_cached(self, document_id: str, page_number: int) -> bool:
        with self._lock:
            return PageKey(document_id, page_number) in self._cache

    def get_page_data(self, document_id: str, page_number: int) -> PageData:
        """
        Get the view of a page, creating its empty partition on first access.

        Args:
            document_id: Document id.
            page_number: One-based page number.

        Returns:
            PageData with the global layer list and the page's boxes,
            connections and groups.
        """
        with self._lock:
            key = self._box_store.ensure_page(document_id, page_number)
            cached = self._cache.get(key)
            if cached is not None:
                return cached.copy()

            page_data = PageData(
                document_id=document_id,
                page_number=page_number,
                layers=self._layer_registry.layers(),
                boxes=self._box_store.list_boxes(document_id, page_number),
                connections=self._connection_store.connections_for_page(
                    page_number, document_id=document_id,
                ),
                group_boxes=self._group_store.groups_for_page(document_id, page_number),
            )
            self._cache[key] = page_data

        logger.debug(f"Assembled page data for {document_id}:{page_number}")
        return page_data.copy()

    def visible_page_data(self, document_id: str, page_number: int) -> PageData:
        """Page view restricted to layers that are currently shown."""
        page_data = self.get_page_data(document_id, page_number)
        visible = {layer.layer_id for layer in page_data.layers if layer.visible}
        return PageData(
            document_id=document_id,
            page_number=page_number,
            layers=[layer for layer in page_data.layers if layer.visible],
            boxes=[box for box in page_data.boxes if box.layer_id in visible],
            connections=[c for c in page_data.connections if c.layer_id in visible],
            group_boxes=[g for g in page_data.group_boxes if g.layer_id in visible],
        )


def layer_boxes(page_data: PageData) -> Dict[str, List[Box]]:
    """Boxes of a page view keyed by layer id, one entry per layer."""
    grouped: Dict[str, List[Box]] = {layer.layer_id: [] for layer in page_data.layers}
    for box in page_data.boxes:
        grouped.setdefault(box.layer_id, []).append(box)
    return grouped
