"""Colour theme classification of pixels and sprite regions."""

from __future__ import annotations

import colorsys
import logging
import queue
import threading
from functools import lru_cache
from typing import Sequence

import numpy as np

from . import Region

logger = logging.getLogger(__name__)

# Key colours. The ids are positional indices into COLOUR_NAMES and are shared
# with the reference-hash tooling, so the order must not change.
BLUE = 0
CYAN = 1
GREEN = 2
MAGENTA = 3
ORANGE = 4
RED = 5
BLACK = 6

NO_COLOUR = -1

COLOUR_NAMES = ("Blue", "Cyan", "Green", "Magenta", "Orange", "Red", "Black")
THEME_COLOURS = (BLUE, CYAN, GREEN, MAGENTA, ORANGE, RED)

DEFAULT_WORKERS = 4

_CLOSED = object()


def colour_name(colour: int) -> str:
    if 0 <= colour < len(COLOUR_NAMES):
        return COLOUR_NAMES[colour]
    return "unk"


@lru_cache(maxsize=4096)
def _classify_rgb(red: int, green: int, blue: int) -> int:
    hue, lightness, saturation = colorsys.rgb_to_hls(red / 255.0, green / 255.0, blue / 255.0)
    if lightness < 0.0000001:
        return BLACK
    if saturation < 0.8:
        return NO_COLOUR
    h = hue * 360.0
    if 230 <= h <= 250:
        return BLUE
    if h <= 10 or h >= 350:
        return RED
    if 110 <= h <= 130:
        return GREEN
    if 290 <= h <= 310:
        return MAGENTA
    if 170 <= h <= 190:
        return CYAN
    if 20 <= h <= 40:
        return ORANGE
    return NO_COLOUR


def classify(pixel: Sequence[int]) -> int:
    """Return the key colour closest to an RGB(A) pixel, or NO_COLOUR.

    Alpha is ignored.
    """

    return _classify_rgb(int(pixel[0]), int(pixel[1]), int(pixel[2]))


def count_colours(pixels: np.ndarray, region: Region | None = None) -> list[int]:
    """Histogram of key colours in a region; unmatched pixels are not counted."""

    if region is not None:
        pixels = pixels[region.slices()]
    counts = [0] * len(COLOUR_NAMES)
    if pixels.size == 0:
        return counts
    rgb = pixels[..., :3].reshape(-1, 3)
    values, frequencies = np.unique(rgb, axis=0, return_counts=True)
    for value, frequency in zip(values, frequencies):
        colour = _classify_rgb(int(value[0]), int(value[1]), int(value[2]))
        if colour != NO_COLOUR:
            counts[colour] += int(frequency)
    return counts


def find_dominant_colour(counts: Sequence[int], description: str | None = None) -> int:
    """Pick the dominant colour from a histogram, or NO_COLOUR if inconclusive."""

    ranked = sorted(range(len(counts)), key=lambda index: (-counts[index], index))
    best_index, second_index = ranked[0], ranked[1]
    best, second = counts[best_index], counts[second_index]

    if description:
        lines = [f"Colour frequencies in {description}:"]
        lines.extend(f"  {COLOUR_NAMES[i]:>7} : {n}" for i, n in enumerate(counts))
        lines.append(
            f"Total {sum(counts)}, dominant {COLOUR_NAMES[best_index]}, "
            f"second {COLOUR_NAMES[second_index]}"
        )
        logger.debug("\n".join(lines))

    if best_index == BLACK and second != 0:
        if description:
            logger.debug("Black dominant in %s, but not uniform", description)
        return NO_COLOUR
    # Blue maps tend to contain a lot of false matches for magenta.
    if 10 * best <= 15 * second and (
        best == second or best_index != BLUE or second_index != MAGENTA
    ):
        if description:
            logger.debug("Insufficient majority in %s", description)
        return NO_COLOUR
    return best_index


def _row_bands(region: Region, workers: int) -> list[Region]:
    count = max(1, min(workers, region.height))
    rows_per_band = region.height // count
    bands = []
    for portion in range(count):
        top = region.top + portion * rows_per_band
        bottom = region.bottom if portion == count - 1 else top + rows_per_band
        bands.append(Region(region.left, top, region.right, bottom))
    return bands


def detect_dominant(
    pixels: np.ndarray,
    region: Region | None = None,
    workers: int = DEFAULT_WORKERS,
    description: str | None = None,
) -> int:
    """Scan a region in parallel row bands and return its dominant colour.

    Each scanner thread pushes its partial count for every colour onto that
    colour's queue. When the last scanner reaches the barrier, the barrier
    action posts a closing marker to every queue, telling the per-colour
    aggregators to stop accepting counts and finalize.
    """

    region = region or Region.of(pixels)
    if region.width <= 0 or region.height <= 0:
        return NO_COLOUR

    bands = _row_bands(region, workers)
    totals = [0] * len(COLOUR_NAMES)
    channels: list[queue.SimpleQueue] = [queue.SimpleQueue() for _ in COLOUR_NAMES]

    def close_channels() -> None:
        for channel in channels:
            channel.put(_CLOSED)

    scanners_done = threading.Barrier(len(bands), action=close_channels)

    def scan(band: Region) -> None:
        try:
            partial = count_colours(pixels, band)
            for colour, count in enumerate(partial):
                channels[colour].put(count)
        finally:
            scanners_done.wait()

    def aggregate(colour: int) -> None:
        channel = channels[colour]
        while True:
            count = channel.get()
            if count is _CLOSED:
                break
            totals[colour] += count

    aggregators = [
        threading.Thread(target=aggregate, args=(colour,), name=f"colour-count-{colour}", daemon=True)
        for colour in range(len(COLOUR_NAMES))
    ]
    scanners = [
        threading.Thread(target=scan, args=(band,), name=f"colour-scan-{i}", daemon=True)
        for i, band in enumerate(bands)
    ]
    for thread in aggregators + scanners:
        thread.start()
    for thread in scanners + aggregators:
        thread.join()

    return find_dominant_colour(totals, description)
