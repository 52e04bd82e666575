"""Colour-reference manifest writing logic."""

from __future__ import annotations

import json
import logging
import zlib
from pathlib import Path
from typing import Iterable

import numpy as np

from . import AtlasInfo
from .colours import COLOUR_NAMES
from ..utils import file_tools

logger = logging.getLogger(__name__)

MANIFEST_NAME = "atlases.json"


def hash_sprite(pixels: np.ndarray) -> int:
    """CRC32 of a sprite's RGBA bytes, row by row."""

    return zlib.crc32(np.ascontiguousarray(pixels, dtype=np.uint8).tobytes()) & 0xFFFFFFFF


def write_manifest(atlases: Iterable[AtlasInfo], output_dir: Path) -> Path:
    """Create a JSON manifest describing each atlas and the hash of every sprite."""

    manifest_path = output_dir / MANIFEST_NAME
    file_tools.ensure_directory(manifest_path.parent)

    atlases_payload = {}
    for info in atlases:
        sprites = []
        for index, sprite_hash in enumerate(info.hashes):
            col = index % info.columns
            row = index // info.columns
            sprites.append(
                {
                    "index": index,
                    "x": col * info.tile_width,
                    "y": row * info.tile_height,
                    "hash": sprite_hash,
                }
            )
        atlases_payload[info.name] = {
            "file": info.path.name,
            "columns": info.columns,
            "rows": info.rows,
            "tile_width": info.tile_width,
            "tile_height": info.tile_height,
            "sprites": sprites,
        }

    manifest = {
        "colours": list(COLOUR_NAMES),
        "atlases": atlases_payload,
    }

    manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    logger.info("Wrote manifest to %s", manifest_path)
    return manifest_path
