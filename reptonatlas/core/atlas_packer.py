"""Atlas composition using Pillow."""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

MAX_COLUMNS = 8


def quality(tile_count: int, columns: int) -> float:
    """Score a grid of columns for tile_count tiles; lower is better.

    Combines the cells wasted on the last row with how far the grid is from
    square. A grid with wastage is scored as if it were one column wider.
    """

    if not 1 <= columns <= tile_count:
        raise ValueError(f"Cannot score {columns} columns for {tile_count} tiles.")
    wastage = -tile_count % columns
    rows = tile_count // columns
    if wastage:
        columns += 1
    score = wastage / math.sqrt(columns) + math.sqrt(columns / rows)
    logger.debug("Fit factor for %s tiles in %s columns: %f", tile_count, columns, score)
    return score



def best_fit(tile_count: int) -> tuple[int, int]:
    """Return the (columns, rows) grid that best fits uniform square tiles."""

    if tile_count < 1:
        raise ValueError("Cannot fit an atlas for zero tiles.")
    max_columns = min(tile_count, MAX_COLUMNS)
    # Past 64 tiles the atlas just grows taller at the column limit.
    square = min(math.ceil(math.sqrt(tile_count)), max_columns)
    columns = square
    best = quality(tile_count, columns)
    for candidate in range(square + 1, max_columns + 1):
        score = quality(tile_count, candidate)
        if score < best:
            best = score
            columns = candidate
    rows = math.ceil(tile_count / columns)
    logger.debug("Best fit for %s tiles is %sx%s", tile_count, columns, rows)
    return columns, rows


def _as_image(tile: "np.ndarray | Image.Image") -> Image.Image:
    if isinstance(tile, Image.Image):
        return tile.convert("RGBA")
    return Image.fromarray(np.ascontiguousarray(tile)).convert("RGBA")


def compose_atlas(tiles: Sequence["np.ndarray | Image.Image"]) -> tuple[Image.Image, int, int]:
    """Pack equal-size tiles row-major into one transparent RGBA image.

    Returns the atlas with its column and row count.
    """

    if not tiles:
        raise ValueError("No tiles provided to pack.")
    logger.info("Composing atlas from %s tiles", len(tiles))
    columns, rows = best_fit(len(tiles))
    first = _as_image(tiles[0])
    tile_width, tile_height = first.size
    atlas = Image.new("RGBA", (columns * tile_width, rows * tile_height), (0, 0, 0, 0))
    logger.debug("Atlas size in pixels %s x %s", atlas.width, atlas.height)
    for idx, tile in enumerate(tiles):
        image = first if idx == 0 else _as_image(tile)
        if image.size != (tile_width, tile_height):
            raise ValueError(f"Tile {idx} is {image.size}, expected {(tile_width, tile_height)}")
        col = idx % columns
        row = idx // columns
        atlas.paste(image, (col * tile_width, row * tile_height))
    return atlas, columns, rows
