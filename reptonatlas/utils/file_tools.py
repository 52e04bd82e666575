"""Filesystem and image file helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image

from ..core.errors import InvalidImageError

logger = logging.getLogger(__name__)


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)
    return path


def list_matching_files(root: Path, pattern: str) -> list[Path]:
    """Return sorted list of files in root matching a glob pattern."""

    if not root.exists():
        return []
    return sorted(p for p in root.glob(pattern) if p.is_file())


def load_image(path: Path) -> np.ndarray:
    """Decode an image file into a read-only HxWx4 RGBA array."""

    if not path.exists():
        raise InvalidImageError(path, reason="File not found")
    try:
        with Image.open(path) as image:
            rgba = image.convert("RGBA")
    except OSError as exc:
        raise InvalidImageError(path, reason=f"Could not decode: {exc}") from exc
    pixels = np.asarray(rgba, dtype=np.uint8)
    pixels.setflags(write=False)
    return pixels


def save_image(image: Image.Image, path: Path) -> Path:
    """Persist an image to disk."""

    ensure_directory(path.parent)
    image.save(path)
    logger.debug("Wrote %s", path)
    return path


def save_pixels(pixels: np.ndarray, path: Path) -> Path:
    """Persist an RGBA array to disk as PNG."""

    return save_image(Image.fromarray(np.ascontiguousarray(pixels)), path)
