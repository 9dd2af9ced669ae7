from __future__ import annotations
from typing import Any, Iterable, Tuple
import math
import re

from core.error_types import (
    Result,
    Success,
    Failure,
    ValidationError,
)


RESIZE_HANDLES = ("n", "s", "e", "w", "ne", "nw", "se", "sw")

_HEX_PATTERN = re.compile(r'^[0-9a-fA-F]{6}$|^[0-9a-fA-F]{3}$')


def is_number(value: Any) -> bool:
    """True for finite ints and floats, False for bools and everything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_page_number(page_number: int) -> Result[int]:
    """
    Validate a one-based page number.

    Args:
        page_number: Page number to validate.

    Returns:
        Result containing the validated page number.
    """
    if isinstance(page_number, bool) or not isinstance(page_number, int):
        return Failure(ValidationError(
            message="Page number must be an integer",
            field_name="page_number",
            invalid_value=str(page_number),
        ))

    if page_number < 1:
        return Failure(ValidationError(
            message="Page number must be at least 1",
            field_name="page_number",
            invalid_value=str(page_number),
        ))

    return Success(page_number)


def validate_color_hex(color_hex: str) -> Result[str]:
    """
    Validate a hex color string.

    Args:
        color_hex: Color string to validate (with or without #).

    Returns:
        Result containing the validated color string (with #).
    """
    if not isinstance(color_hex, str):
        return Failure(ValidationError(
            message="Color must be a string",
            field_name="color",
            invalid_value=str(color_hex),
        ))

    color_hex = color_hex.strip()

    if color_hex.startswith("#"):
        color_hex = color_hex[1:]

    if not _HEX_PATTERN.match(color_hex):
        return Failure(ValidationError(
            message="Invalid hex color format. Use #RRGGBB or #RGB",
            field_name="color",
            invalid_value=color_hex,
        ))

    return Success(f"#{color_hex}")


def validate_geometry(
    x: Any,
    y: Any,
    width: Any,
    height: Any,
) -> Result[Tuple[float, float, float, float]]:
    """
    Validate a box rectangle.

    Coordinates may be negative (boxes can be dragged past the page edge),
    sizes may not.
    """
    values = (x, y, width, height)
    if not all(is_number(value) for value in values):
        return Failure(ValidationError(
            message="Box geometry values must be finite numbers",
            field_name="geometry",
            invalid_value=str(values),
        ))

    if width < 0 or height < 0:
        return Failure(ValidationError(
            message="Width and height must be non-negative",
            field_name="geometry",
            invalid_value=str(values),
        ))

    return Success((float(x), float(y), float(width), float(height)))


def validate_name(
    value: str,
    field_name: str,
    max_length: int = 200,
) -> Result[str]:
    """
    Validate a display name. Surrounding whitespace is stripped.

    Args:
        value: String to validate.
        field_name: Name of the field for error messages.
        max_length: Maximum length.

    Returns:
        Result containing the stripped name.
    """
    if not isinstance(value, str):
        return Failure(ValidationError(
            message=f"{field_name} must be a string",
            field_name=field_name,
            invalid_value=str(type(value)),
        ))

    value = value.strip()

    if len(value) == 0:
        return Failure(ValidationError(
            message=f"{field_name} cannot be empty",
            field_name=field_name,
            invalid_value="",
        ))

    if len(value) > max_length:
        return Failure(ValidationError(
            message=f"{field_name} must be at most {max_length} characters",
            field_name=field_name,
            invalid_value=str(len(value)),
        ))

    return Success(value)


def validate_in_list(
    value: str,
    allowed_values: Iterable[str],
    field_name: str,
) -> Result[str]:
    """
    Validate that a value is in a list of allowed values.

    Args:
        value: Value to validate.
        allowed_values: Allowed values.
        field_name: Name of the field for error messages.

    Returns:
        Result containing validated value.
    """
    allowed_values = list(allowed_values)
    if value not in allowed_values:
        return Failure(ValidationError(
            message=f"{field_name} must be one of: {', '.join(allowed_values)}",
            field_name=field_name,
            invalid_value=str(value),
        ))
    return Success(value)


def validate_resize_handle(handle: str) -> Result[str]:
    return validate_in_list(handle, RESIZE_HANDLES, "handle")
