"""
Services Package

Provides layer exchange files and capture request building on top of the core stores.
"""

from services.capture_service import CaptureService
from services.import_service import ImportService
from services.export_service import ExportService

__all__ = [
    "CaptureService",
    "ImportService",
    "ExportService",
]
