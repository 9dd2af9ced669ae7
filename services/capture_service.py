"""
Capture Service

Prepares region-capture requests for the page rendering backend. The HTTP
call itself belongs to the caller; this module only builds the endpoint
and the JSON body.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict
from urllib.parse import quote
import math
import logging

from core.box_store import BoxStore
from core.error_types import (
    Result,
    Success,
    Failure,
    ValidationError,
)
from models.annotation import Box
from models.settings import EngineSettings
from utils.validators import is_number

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CaptureRequest:
    """Region of a page to capture, in page-local coordinates."""

    box_id: str
    x: float
    y: float
    width: float
    height: float
    viewer_width: float
    viewer_height: float

    def to_payload(self) -> Dict[str, object]:
        """JSON body of the capture call; coordinates rounded to integers."""
        return {
            "box_id": self.box_id,
            "x": _round_half_up(self.x),
            "y": _round_half_up(self.y),
            "width": _round_half_up(self.width),
            "height": _round_half_up(self.height),
            "viewer_width": _round_half_up(self.viewer_width),
            "viewer_height": _round_half_up(self.viewer_height),
        }


def build_capture_request(box: Box, viewer_width: float, viewer_height: float) -> CaptureRequest:
    return CaptureRequest(
        box_id=box.box_id,
        x=box.x,
        y=box.y,
        width=box.width,
        height=box.height,
        viewer_width=viewer_width,
        viewer_height=viewer_height,
    )


def capture_endpoint(base_url: str, document_name: str, page_number: int) -> str:
    """URL of the capture call: <base>/api/pages/<quoted name>/<page>/capture."""
    return f"{base_url.rstrip('/')}/api/pages/{quote(document_name, safe='')}/{page_number}/capture"


class CaptureService:
    """Builds capture requests for boxes held in a BoxStore."""

    def __init__(self, box_store: BoxStore, settings: Optional[EngineSettings] = None):
        self._box_store = box_store
        self._settings = settings or EngineSettings()

    def endpoint_for(self, box: Box) -> str:
        return capture_endpoint(self._settings.capture_base_url, box.document_id, box.page_number)

    def prepare(
        self,
        box_id: str,
        viewer_width: float,
        viewer_height: float,
    ) -> Result[tuple[str, CaptureRequest]]:
        """
        Prepare the capture of a box.

        Args:
            box_id: Box to capture.
            viewer_width: Width of the page as displayed by the caller.
            viewer_height: Height of the page as displayed by the caller.

        Returns:
            Result containing the endpoint URL and the request.
        """
        if not (is_number(viewer_width) and is_number(viewer_height)) or viewer_width <= 0 or viewer_height <= 0:
            return Failure(ValidationError(
                message="Viewer size must be positive numbers",
                field_name="viewer_size",
                invalid_value=f"{viewer_width}x{viewer_height}",
            ))

        box = self._box_store.get_box(box_id)
        if box is None:
            return Failure(ValidationError(
                message=f"Box {box_id} does not exist",
                field_name="box_id",
                invalid_value=box_id,
            ))

        logger.debug(f"Prepared capture of box {box_id} on {box.document_id}:{box.page_number}")
        return Success((self.endpoint_for(box), build_capture_request(box, viewer_width, viewer_height)))
