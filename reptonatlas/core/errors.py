"""Domain-specific exceptions for the atlas extractor."""

from pathlib import Path


class InvalidImageError(ValueError):
    """Raised when a screenshot is missing, unreadable or cannot be decoded."""

    def __init__(self, path: Path, reason: str | None = None):
        message = f"Invalid image file: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


class ValidationError(ValueError):
    """Raised when user-provided settings fail validation."""


class ProcessingError(RuntimeError):
    """Raised when the pipeline fails unexpectedly."""


class InvariantViolation(RuntimeError):
    """Raised when internal bookkeeping detects a logic defect; never recovered."""
