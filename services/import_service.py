"""
Import Service

Reads layer exchange files back into a layer:
- Every box is validated before any is inserted (all-or-nothing)
- Imported boxes get fresh ids and the importing layer's id
- Missing or non-list pages/boxes are treated as empty
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import json
import logging
import time

from PyQt6.QtCore import QObject, pyqtSignal

from core.box_store import BoxStore
from core.layer_registry import LayerRegistry
from core.error_types import (
    Result,
    Success,
    Failure,
    MalformedImportError,
    ValidationError,
    combine_results,
    try_execute,
)
from models.annotation import Box, BoxType, Rectangle
from utils.file_ops import read_file_text
from utils.validators import validate_color_hex, validate_geometry, validate_page_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportedBoxSpec:
    """A box read from an import payload, not yet inserted."""

    page_number: int
    rect: Rectangle
    text: str = ""
    color: Optional[str] = None
    box_type: BoxType = BoxType.BOX


@dataclass
class LayerImportResult:
    """Result of importing a layer payload."""

    layer_id: str
    boxes: List[Box] = field(default_factory=list)
    source_path: Optional[Path] = None
    processing_time_ms: float = 0.0

    @property
    def boxes_imported(self) -> int:
        return len(self.boxes)


def _malformed(message: str, source_path: Optional[Path] = None) -> MalformedImportError:
    return MalformedImportError(
        message=message,
        data_type="layer_export",
        source_path=source_path,
    )


def _parse_box(
    raw: Any,
    page_number: Any,
    index: int,
    source_path: Optional[Path],
) -> Result[ImportedBoxSpec]:
    if not isinstance(raw, dict):
        return Failure(_malformed(f"Box #{index} is not an object", source_path))

    page = raw.get("pageNumber", page_number)
    if validate_page_number(page).is_failure():
        return Failure(_malformed(f"Box #{index} has an invalid page number: {page!r}", source_path))

    geometry = validate_geometry(
        raw.get("x"), raw.get("y"), raw.get("width"), raw.get("height"),
    )
    if geometry.is_failure():
        return Failure(_malformed(f"Box #{index}: {geometry.get_error().message}", source_path))

    text = raw.get("text") or ""
    color = raw.get("color")
    if not isinstance(text, str) or not (color is None or isinstance(color, str)):
        return Failure(_malformed(f"Box #{index} has non-string text or color", source_path))
    if color is not None:
        color_result = validate_color_hex(color)
        if color_result.is_failure():
            return Failure(_malformed(f"Box #{index}: {color_result.get_error().message}", source_path))
        color = color_result.unwrap()

    try:
        box_type = BoxType(raw.get("type", BoxType.BOX.value))
    except ValueError:
        logger.debug(f"Box #{index} has unknown type {raw.get('type')!r}, using {BoxType.BOX.value}")
        box_type = BoxType.BOX

    return Success(ImportedBoxSpec(
        page_number=page,
        rect=Rectangle(*geometry.unwrap()),
        text=text,
        color=color,
        box_type=box_type,
    ))


def parse_layer_export(
    payload: Union[str, bytes, Dict[str, Any]],
    source_path: Optional[Path] = None,
) -> Result[List[ImportedBoxSpec]]:
    """
    Parse and validate every box of a layer export.

    Args:
        payload: JSON text or an already decoded export dictionary.
        source_path: File the payload came from, for error reporting.

    Returns:
        Result containing the box specs in file order, or a
        MalformedImportError describing the first problem found.
    """
    if isinstance(payload, (str, bytes)):
        decoded = try_execute(
            lambda: json.loads(payload),
            MalformedImportError,
            "Invalid JSON",
            data_type="layer_export",
            source_path=source_path,
        )
        if decoded.is_failure():
            return Failure(decoded.get_error())
        payload = decoded.unwrap()

    if not isinstance(payload, dict):
        return Failure(_malformed("Layer export must be a JSON object", source_path))

    pages = payload.get("pages")
    if not isinstance(pages, list):
        return Success([])

    entries = [
        (raw, page.get("pageNumber"))
        for page in pages
        if isinstance(page, dict) and isinstance(page.get("boxes"), list)
        for raw in page["boxes"]
    ]
    return combine_results([
        _parse_box(raw, page_number, index, source_path)
        for index, (raw, page_number) in enumerate(entries)
    ])


class ImportService(QObject):
    """
    Service for importing layer exports into an existing layer.

    Signals:
        import_completed: Emitted when an import is applied (LayerImportResult)
    """

    import_completed = pyqtSignal(object)  # LayerImportResult

    def __init__(
        self,
        box_store: BoxStore,
        layer_registry: LayerRegistry,
    ):
        super().__init__()

        self._box_store = box_store
        self._layer_registry = layer_registry

    def import_layer(
        self,
        document_id: str,
        layer_id: str,
        payload: Union[str, bytes, Dict[str, Any]],
        source_path: Optional[Path] = None,
    ) -> Result[LayerImportResult]:
        """
        Import the boxes of a layer export into a layer.

        Nothing is inserted unless every box of the payload is valid.

        Args:
            document_id: Document to place the boxes in.
            layer_id: Layer receiving the boxes; layerId in the payload is ignored.
            payload: JSON text or decoded export dictionary.
            source_path: File the payload came from, for error reporting.

        Returns:
            Result containing LayerImportResult with the inserted boxes.
        """
        start_time = time.time()

        if not self._layer_registry.has_layer(layer_id):
            return Failure(ValidationError(
                message=f"Layer {layer_id} does not exist",
                field_name="layer_id",
                invalid_value=str(layer_id),
            ))

        parsed = parse_layer_export(payload, source_path)
        if parsed.is_failure():
            parsed.get_error().log(logger)
            return Failure(parsed.get_error())

        boxes: List[Box] = []
        for spec in parsed.unwrap():
            boxes.append(self._box_store.add_box(
                document_id,
                spec.page_number,
                layer_id,
                spec.rect,
                spec.text,
                spec.color,
                spec.box_type,
            ).unwrap())

        result = LayerImportResult(
            layer_id=layer_id,
            boxes=boxes,
            source_path=source_path,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        self.import_completed.emit(result)

        logger.info(f"Imported {result.boxes_imported} boxes into layer {layer_id}")
        return Success(result)

    def import_layer_from_file(
        self,
        document_id: str,
        layer_id: str,
        file_path: Path,
    ) -> Result[LayerImportResult]:
        """Read a layer export file and import it."""
        file_path = Path(file_path)
        text_result = read_file_text(file_path)
        if text_result.is_failure():
            return Failure(text_result.get_error())
        return self.import_layer(document_id, layer_id, text_result.unwrap(), file_path)
