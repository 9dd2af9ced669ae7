from __future__ import annotations
from pathlib import Path
from typing import Any
import json
import os
import re
import tempfile
import logging

from core.error_types import (
    Result,
    Success,
    Failure,
    FileSystemError,
    FileNotFoundError as AppFileNotFoundError,
    FilePermissionError as AppFilePermissionError,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_filename(name: str, fallback: str = "layer") -> str:
    """Replace characters that are not allowed in file names."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(" .")
    return cleaned or fallback


def get_unique_filename(
    directory: Path,
    base_name: str,
    extension: str,
) -> Path:
    """
    Generate a unique filename by appending a number if necessary.

    Args:
        directory: Directory where the file will be created.
        base_name: Base name for the file (without extension).
        extension: File extension (with or without leading dot).

    Returns:
        Path with unique filename.
    """
    if not extension.startswith("."):
        extension = f".{extension}"

    directory = Path(directory).resolve()

    candidate = directory / f"{base_name}{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{base_name} ({counter}){extension}"
        counter += 1
    return candidate


def read_file_text(
    file_path: Path,
    encoding: str = "utf-8",
) -> Result[str]:
    """
    Read file contents as text.

    Args:
        file_path: Path to the file.
        encoding: Text encoding.

    Returns:
        Result containing the file text.
    """
    file_path = Path(file_path).resolve()
    try:
        return Success(file_path.read_text(encoding=encoding))
    except FileNotFoundError:
        return Failure(AppFileNotFoundError(
            message=f"File not found: {file_path}",
            path=file_path,
            operation="read",
        ))
    except PermissionError:
        return Failure(AppFilePermissionError(
            message=f"Permission denied: {file_path}",
            path=file_path,
            operation="read",
        ))
    except (OSError, UnicodeDecodeError) as exception:
        return Failure(FileSystemError(
            message=f"Failed to read file: {str(exception)}",
            path=file_path,
            operation="read",
        ))


def write_file_text(
    file_path: Path,
    text: str,
    encoding: str = "utf-8",
    overwrite: bool = True,
) -> Result[Path]:
    """
    Write text to a file atomically.

    The text goes to a temporary file in the same directory which then
    replaces the destination, so readers never see a half-written file.

    Args:
        file_path: Path to the file.
        text: Text to write.
        encoding: Text encoding.
        overwrite: Whether to overwrite existing file.

    Returns:
        Result containing the file path.
    """
    file_path = Path(file_path).resolve()

    if file_path.exists() and not overwrite:
        return Failure(FileSystemError(
            message=f"File already exists: {file_path}",
            path=file_path,
            operation="write",
        ))

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=encoding) as file:
                file.write(text)
            os.replace(temp_name, file_path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
    except PermissionError:
        return Failure(AppFilePermissionError(
            message=f"Permission denied: {file_path}",
            path=file_path,
            operation="write",
        ))
    except OSError as exception:
        return Failure(FileSystemError(
            message=f"Failed to write file: {str(exception)}",
            path=file_path,
            operation="write",
        ))

    logger.debug(f"Wrote {len(text)} characters to {file_path}")
    return Success(file_path)


def write_json_file(
    file_path: Path,
    data: Any,
    overwrite: bool = True,
) -> Result[Path]:
    """Serialize data as indented UTF-8 JSON and write it atomically."""
    return write_file_text(
        file_path,
        json.dumps(data, ensure_ascii=False, indent=2),
        overwrite=overwrite,
    )
