"""
Export Service

Writes the boxes of one layer to the layer exchange format:
- One entry per page 1..total_pages, empty pages included
- Every box tagged with the default page size it was drawn against
- Summary metadata with box count and export timestamp
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List
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
    ExportError,
    ValidationError,
)
from models.settings import EngineSettings
from utils.file_ops import get_unique_filename, safe_filename, write_json_file

logger = logging.getLogger(__name__)


@dataclass
class LayerExportResult:
    """Result of writing a layer export file."""

    output_path: Path
    layer_id: str
    pages_exported: int = 0
    boxes_exported: int = 0
    processing_time_ms: float = 0.0


def export_file_name(document_name: str, layer_name: str) -> str:
    """Default file name of a layer export: <document>_<layer>_boxes.json."""
    return f"{safe_filename(document_name)}_{safe_filename(layer_name)}_boxes.json"


class ExportService(QObject):
    """
    Service for exporting layers as JSON.

    Signals:
        export_completed: Emitted when a file export finishes (LayerExportResult)
    """

    export_completed = pyqtSignal(object)  # LayerExportResult

    def __init__(
        self,
        box_store: BoxStore,
        layer_registry: LayerRegistry,
        settings: Optional[EngineSettings] = None,
    ):
        super().__init__()

        self._box_store = box_store
        self._layer_registry = layer_registry
        self._settings = settings or EngineSettings()

    def _default_total_pages(self, document_id: str) -> int:
        page_numbers = [key.page_number for key in self._box_store.pages(document_id)]
        return max(page_numbers, default=0)

    def build_layer_export(
        self,
        document_id: str,
        layer_id: str,
        total_pages: Optional[int] = None,
    ) -> Result[Dict[str, Any]]:
        """
        Build the export document of a layer.

        Args:
            document_id: Document whose boxes are exported; also written as documentName.
            layer_id: Layer to export.
            total_pages: Number of pages of the document. Defaults to the
                highest page number the store knows for the document.

        Returns:
            Result containing the JSON-ready export dictionary.
        """
        layer = self._layer_registry.get_layer(layer_id)
        if layer is None:
            return Failure(ValidationError(
                message=f"Layer {layer_id} does not exist",
                field_name="layer_id",
                invalid_value=str(layer_id),
            ))

        if total_pages is None:
            total_pages = self._default_total_pages(document_id)
        if isinstance(total_pages, bool) or not isinstance(total_pages, int) or total_pages < 0:
            return Failure(ValidationError(
                message="Total pages must be a non-negative integer",
                field_name="total_pages",
                invalid_value=str(total_pages),
            ))

        page_width = self._settings.default_page_width
        page_height = self._settings.default_page_height

        boxes_by_page: Dict[int, List[Dict[str, Any]]] = {}
        for box in self._box_store.boxes_for_document(document_id, layer_id):
            boxes_by_page.setdefault(box.page_number, []).append({
                **box.serialize(),
                "pageWidth": page_width,
                "pageHeight": page_height,
            })

        pages = [
            {"pageNumber": page_number, "boxes": boxes_by_page.get(page_number, [])}
            for page_number in range(1, total_pages + 1)
        ]

        return Success({
            "documentName": document_id,
            "layer": {
                "id": layer.layer_id,
                "name": layer.name,
                "color": layer.color,
            },
            "pages": pages,
            "metadata": {
                "totalPages": total_pages,
                "totalBoxes": sum(len(page["boxes"]) for page in pages),
                "exportDate": datetime.now(timezone.utc).isoformat(),
                "defaultPageWidth": page_width,
                "defaultPageHeight": page_height,
            },
        })

    def export_layer(
        self,
        document_id: str,
        layer_id: str,
        total_pages: Optional[int] = None,
    ) -> Result[str]:
        """Export a layer as an indented JSON string."""
        return self.build_layer_export(document_id, layer_id, total_pages).map(
            lambda data: json.dumps(data, ensure_ascii=False, indent=2)
        )

    def export_layer_to_file(
        self,
        document_id: str,
        layer_id: str,
        destination: Path,
        total_pages: Optional[int] = None,
        overwrite: bool = False,
    ) -> Result[LayerExportResult]:
        """
        Export a layer to a JSON file.

        Args:
            document_id: Document whose boxes are exported.
            layer_id: Layer to export.
            destination: Target file, or a directory to place a file named
                after the document and layer in.
            total_pages: Number of pages of the document.
            overwrite: Replace an existing file instead of picking a new name.

        Returns:
            Result containing LayerExportResult with details.
        """
        start_time = time.time()

        export_result = self.build_layer_export(document_id, layer_id, total_pages)
        if export_result.is_failure():
            return Failure(export_result.get_error())
        data = export_result.unwrap()

        destination = Path(destination)
        if destination.is_dir():
            file_name = export_file_name(document_id, data["layer"]["name"])
            output_path = destination / file_name
            if not overwrite:
                output_path = get_unique_filename(destination, Path(file_name).stem, ".json")
        else:
            output_path = destination

        write_result = write_json_file(output_path, data, overwrite=overwrite)
        if write_result.is_failure():
            error = ExportError(
                message=f"Failed to export layer {layer_id}: {write_result.get_error().message}",
                destination=output_path,
            )
            error.log(logger)
            return Failure(error)

        result = LayerExportResult(
            output_path=write_result.unwrap(),
            layer_id=layer_id,
            pages_exported=len(data["pages"]),
            boxes_exported=data["metadata"]["totalBoxes"],
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        self.export_completed.emit(result)

        logger.info(f"Exported {result.boxes_exported} boxes of layer {layer_id} to {result.output_path}")
        return Success(result)
