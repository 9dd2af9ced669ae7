from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, List, Any
import random
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
    Color,
    Group,
    generate_id,
)
from utils.geometry import boxes_envelope
from utils.validators import validate_color_hex, validate_name

logger = logging.getLogger(__name__)


class GroupStore(QObject):
    """
    Named groups of boxes on one page and layer.

    A group's bounds are the envelope of its members when it is created (or
    when refresh_bounds is called); moving a member afterwards leaves the
    bounds stale on purpose. Deleting a group never deletes its boxes, while
    deleting a box drops it from every group it belonged to.

    Signals:
        page_changed: Emitted with (document_id, page_number) after any mutation
    """

    page_changed = pyqtSignal(str, int)

    MIN_MEMBERS = 2

    def __init__(
        self,
        box_store: BoxStore,
        lock: Optional[threading.RLock] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__()

        self._box_store = box_store
        self._lock = lock or threading.RLock()
        self._rng = rng or random.Random()

        self._groups: Dict[str, Group] = {}

        self._box_store.box_removed.connect(self.discard_box)

    def _collect_members(
        self,
        box_ids: List[str],
        layer_id: str,
        page_number: int,
        document_id: str,
    ) -> Result[List[Box]]:
        unique_ids = list(dict.fromkeys(box_ids))
        if len(unique_ids) < self.MIN_MEMBERS:
            return Failure(ValidationError(
                message=f"A group needs at least {self.MIN_MEMBERS} distinct boxes",
                field_name="box_ids",
                invalid_value=str(len(unique_ids)),
            ))

        members: List[Box] = []
        for box_id in unique_ids:
            box = self._box_store.get_box(box_id)
            if box is None:
                return Failure(ValidationError(
                    message=f"Box {box_id} does not exist",
                    field_name="box_ids",
                    invalid_value=box_id,
                ))
            if (box.document_id, box.page_number, box.layer_id) != (document_id, page_number, layer_id):
                return Failure(ValidationError(
                    message=f"Box {box_id} is not on page {page_number} of layer {layer_id}",
                    field_name="box_ids",
                    invalid_value=box_id,
                ))
            members.append(box)

        return Success(members)

    def create_group(
        self,
        box_ids: List[str],
        name: str,
        layer_id: str,
        page_number: int,
        document_id: str,
    ) -> Result[Group]:
        """
        Group boxes of one page and layer.

        Args:
            box_ids: Member boxes; duplicates are ignored.
            name: Display name.
            layer_id: Layer every member must belong to.
            page_number: Page every member must be on.
            document_id: Document of the page.

        Returns:
            Result containing the new Group with its bounds computed.
        """
        name_result = validate_name(name, "name")
        if name_result.is_failure():
            return Failure(name_result.get_error())

        with self._lock:
            members_result = self._collect_members(box_ids, layer_id, page_number, document_id)
            if members_result.is_failure():
                members_result.get_error().log(logger)
                return Failure(members_result.get_error())

            members = members_result.unwrap()
            group = Group(
                group_id=generate_id(),
                name=name_result.unwrap(),
                layer_id=layer_id,
                document_id=document_id,
                page_number=page_number,
                box_ids=[box.box_id for box in members],
                bounds=boxes_envelope(members),
                color=Color.random(self._rng).to_hex(),
                created_at=datetime.now(),
            )
            self._groups[group.group_id] = group
            self.page_changed.emit(document_id, page_number)

        logger.debug(f"Created group {group.group_id} with {len(group.box_ids)} boxes")
        return Success(group.copy())

    def get_group(self, group_id: str) -> Optional[Group]:
        with self._lock:
            group = self._groups.get(group_id)
            return group.copy() if group is not None else None

    def update_group(self, group_id: str, updates: Dict[str, Any]) -> Result[bool]:
        """
        Merge name, color or membership changes into a group.

        Changing box_ids re-validates membership and recomputes the bounds.

        Returns:
            Result containing True if updated, False if the group does not exist.
        """
        unknown = sorted(set(updates) - {"name", "color", "box_ids"})
        if unknown:
            return Failure(ValidationError(
                message=f"Unknown group fields: {', '.join(unknown)}",
                field_name="updates",
                invalid_value=str(unknown),
            ))

        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                return Success(False)

            name = group.name
            if "name" in updates:
                name_result = validate_name(updates["name"], "name")
                if name_result.is_failure():
                    return Failure(name_result.get_error())
                name = name_result.unwrap()

            color = group.color
            if "color" in updates:
                color_result = validate_color_hex(updates["color"])
                if color_result.is_failure():
                    return Failure(color_result.get_error())
                color = color_result.unwrap()

            if "box_ids" in updates:
                members_result = self._collect_members(
                    updates["box_ids"], group.layer_id, group.page_number, group.document_id,
                )
                if members_result.is_failure():
                    return Failure(members_result.get_error())
                members = members_result.unwrap()
                group.box_ids = [box.box_id for box in members]
                group.bounds = boxes_envelope(members)

            group.name = name
            group.color = color
            self.page_changed.emit(group.document_id, group.page_number)

        return Success(True)

    def refresh_bounds(self, group_id: str) -> Result[bool]:
        """Recompute a group's envelope from the current member geometry."""
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                return Success(False)
            members = [self._box_store.get_box(box_id) for box_id in group.box_ids]
            group.bounds = boxes_envelope([box for box in members if box is not None])
            self.page_changed.emit(group.document_id, group.page_number)
        return Success(True)

    def remove_group(self, group_id: str) -> Result[bool]:
        """Remove a group, keeping its boxes. Removing an absent group is a no-op."""
        with self._lock:
            group = self._groups.pop(group_id, None)
            if group is None:
                return Success(False)
            self.page_changed.emit(group.document_id, group.page_number)
        return Success(True)

    def member_boxes(self, group_id: str) -> List[Box]:
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                return []
            return [
                box for box in (self._box_store.get_box(box_id) for box_id in group.box_ids)
                if box is not None
            ]

    def groups_for_page(
        self,
        document_id: str,
        page_number: int,
        layer_id: Optional[str] = None,
    ) -> List[Group]:
        with self._lock:
            return [
                group.copy() for group in self._groups.values()
                if group.document_id == document_id
                and group.page_number == page_number
                and (layer_id is None or group.layer_id == layer_id)
            ]

    def groups_for_box(self, box_id: str) -> List[Group]:
        with self._lock:
            return [group.copy() for group in self._groups.values() if box_id in group.box_ids]

    def groups_for_layer(self, layer_id: str) -> List[Group]:
        with self._lock:
            return [group.copy() for group in self._groups.values() if group.layer_id == layer_id]

    def reassign_layer(self, source_layer_id: str, target_layer_id: str) -> int:
        with self._lock:
            moved = [group for group in self._groups.values() if group.layer_id == source_layer_id]
            for group in moved:
                group.layer_id = target_layer_id
                self.page_changed.emit(group.document_id, group.page_number)
        return len(moved)

    def remove_groups_for_layer(self, layer_id: str) -> int:
        with self._lock:
            doomed = [group.group_id for group in self._groups.values() if group.layer_id == layer_id]
            for group_id in doomed:
                self.remove_group(group_id)
        return len(doomed)

    def discard_box(self, box: Box) -> None:
        """
        Drop a deleted box from every group. Bounds are left as they were.

        A group left with fewer than MIN_MEMBERS boxes is removed.
        """
        with self._lock:
            touched = [group for group in self._groups.values() if box.box_id in group.box_ids]
            for group in touched:
                group.box_ids.remove(box.box_id)
                if len(group.box_ids) < self.MIN_MEMBERS:
                    del self._groups[group.group_id]
                    logger.debug(f"Removed group {group.group_id} left with {len(group.box_ids)} member(s)")
                self.page_changed.emit(group.document_id, group.page_number)

    def count(self) -> int:
        with self._lock:
            return len(self._groups)
