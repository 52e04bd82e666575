"""Split completed colour sets into common and theme-specific sprites."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Sequence

from . import DistinctSprite
from .colours import colour_name
from .dataset import DatasetRegistry, DeduplicationStore
from .sprite_compare import images_are_equal

logger = logging.getLogger(__name__)


def _find_match(sprite: DistinctSprite, candidates: Sequence[DistinctSprite]) -> int:
    for index, candidate in enumerate(candidates):
        if images_are_equal(sprite.pixels, None, candidate.pixels, None):
            return index
    return -1


class CommonSpriteSeparator:
    """Finds sprites shared between colour themes.

    The first two complete colours are compared against each other and their
    shared sprites seed the common set. Every later colour is compared only
    against the common set, so a sprite shared by two later colours but absent
    from the first pair ends up in both of their themed sets.
    """

    def __init__(self) -> None:
        self.common_sprites: list[DistinctSprite] = []
        self.themed_sprites: dict[int, list[DistinctSprite]] = {}
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._pending: Future | None = None
        self.started = False

    @property
    def processed_colours(self) -> list[int]:
        with self._lock:
            return sorted(self.themed_sprites)

    def separate_pair(self, first: DeduplicationStore, second: DeduplicationStore) -> None:
        """Seed the common set from two complete stores of different colours."""

        first_sprites = first.sprites
        second_sprites = second.sprites
        first_themed: list[DistinctSprite] = []
        matched_in_second: set[int] = set()
        common: list[DistinctSprite] = []
        for sprite in first_sprites:
            index = _find_match(sprite, second_sprites)
            if index == -1:
                first_themed.append(sprite)
            else:
                matched_in_second.add(index)
                common.append(sprite)
        second_themed = [s for i, s in enumerate(second_sprites) if i not in matched_in_second]
        with self._lock:
            self.common_sprites.extend(common)
            self.themed_sprites[first.dominant_colour] = first_themed
            self.themed_sprites[second.dominant_colour] = second_themed
        logger.info(
            "Identified %s common sprites between %s and %s",
            len(common),
            colour_name(first.dominant_colour),
            colour_name(second.dominant_colour),
        )

    def separate_against_common(self, store: DeduplicationStore) -> None:
        """Derive a store's themed set by removing sprites in the common set."""

        with self._lock:
            common = tuple(self.common_sprites)
        themed = [sprite for sprite in store.sprites if _find_match(sprite, common) == -1]
        with self._lock:
            self.themed_sprites[store.dominant_colour] = themed
        logger.info("%s has %s themed sprites", colour_name(store.dominant_colour), len(themed))

    def start(self, registry: DatasetRegistry) -> Future | None:
        """Start the first-pair job in the background if two colours are complete.

        Returns the pending job, or None if it has already started or there
        is not enough data yet.
        """

        if self.started:
            return None
        if len(registry) < 2:
            logger.info("Not enough data sets to find common sprites")
            return None
        complete = [store for store in registry.snapshot().values() if store.has_all_distinct]
        if len(complete) < 2:
            logger.info("Not enough complete sets to find common sprites")
            return None
        first, second = complete[0], complete[1]
        logger.info("%s and %s complete, finding common sprites", first, second)
        self.started = True
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="common-sprites")
        self._pending = self._executor.submit(self.separate_pair, first, second)
        return self._pending

    def wait(self) -> None:
        """Block until any pending job has finished, re-raising its error."""

        pending, self._pending = self._pending, None
        if pending is None:
            logger.debug("No previous common sprites job")
            return
        logger.info("Waiting for previous common sprites job")
        pending.result()
        logger.info("Identified %s common sprites", len(self.common_sprites))

    def finish(self, registry: DatasetRegistry) -> None:
        """Complete separation for every complete colour not yet processed."""

        self.start(registry)
        try:
            self.wait()
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
        if not self.started:
            logger.warning("Fewer than two complete colour sets; skipping common sprite separation")
            return
        done = set(self.processed_colours)
        for colour, store in registry.snapshot().items():
            if colour in done or not store.has_all_distinct:
                continue
            self.separate_against_common(store)
