"""Validation helpers for user inputs."""

from __future__ import annotations

from pathlib import Path

from ..core.errors import ValidationError


def validate_input_directory(path: Path | None) -> Path:
    """Ensure the screenshot directory exists."""

    if not path:
        raise ValidationError("No input directory provided")
    if not path.exists():
        raise ValidationError(f"Input directory not found: {path}")
    if not path.is_dir():
        raise ValidationError(f"Input path is not a directory: {path}")
    return path


def validate_output_directory(path: Path | None) -> Path:
    """Ensure the output path is usable as a directory (created later if missing)."""

    if not path:
        raise ValidationError("No output directory provided")
    if path.exists() and not path.is_dir():
        raise ValidationError(f"Output path is not a directory: {path}")
    return path


def parse_positive_int(value: str | None, field: str) -> int | None:
    """Parse a positive integer from a string value, if provided."""

    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be an integer") from exc
    if parsed <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return parsed
