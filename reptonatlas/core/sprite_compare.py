"""Exact pixel comparison of sprite regions."""

from __future__ import annotations

import logging

import numpy as np

from . import Region

logger = logging.getLogger(__name__)


def rects_are_same_size(first: Region, second: Region) -> bool:
    return first.width == second.width and first.height == second.height


def images_are_equal(
    first: np.ndarray,
    first_region: Region | None,
    second: np.ndarray,
    second_region: Region | None,
) -> bool:
    """Return True if both regions hold exactly the same RGBA pixels.

    A region of None means the whole image. Regions of different sizes are
    never equal.
    """

    first_region = first_region or Region.of(first)
    second_region = second_region or Region.of(second)
    if not rects_are_same_size(first_region, second_region):
        return False
    return np.array_equal(first[first_region.slices()], second[second_region.slices()])


def describe_mismatch(
    first: np.ndarray,
    first_region: Region | None,
    second: np.ndarray,
    second_region: Region | None,
) -> None:
    """Log where two regions differ, for crops flagged as sample points."""

    first_region = first_region or Region.of(first)
    second_region = second_region or Region.of(second)
    logger.debug("Comparing regions %s and %s", first_region, second_region)
    if not rects_are_same_size(first_region, second_region):
        logger.debug("  sizes differ")
        return
    a = first[first_region.slices()]
    b = second[second_region.slices()]
    rows, columns = np.nonzero(np.any(a != b, axis=-1))
    for y, x in zip(rows[:16], columns[:16]):
        logger.debug(
            "  [%2d,%2d] (%4d,%4d) vs (%4d,%4d) : %s vs %s",
            x,
            y,
            first_region.left + x,
            first_region.top + y,
            second_region.left + x,
            second_region.top + y,
            tuple(a[y, x]),
            tuple(b[y, x]),
        )


def sub_image(pixels: np.ndarray, region: Region | None = None) -> np.ndarray:
    """Copy a region into a standalone, read-only RGBA array."""

    region = region or Region.of(pixels)
    copy = np.array(pixels[region.slices()], dtype=np.uint8, copy=True)
    copy.setflags(write=False)
    return copy
