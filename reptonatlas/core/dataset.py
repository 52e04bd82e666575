"""Per-file sprite deduplication stores and the colour registry that merges them.

Every screenshot gets its own DeduplicationStore. Once a store works out which
colour theme its sprites belong to it either registers itself as the canonical
store for that colour or forwards everything, past and future, to the store
that got there first.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Union

from . import NUM_DISTINCT_SPRITES, DistinctSprite, SpriteCrop
from .colours import BLACK, DEFAULT_WORKERS, GREEN, NO_COLOUR, colour_name, detect_dominant
from .debug_locks import CriticalSectionTracker
from .sprite_compare import describe_mismatch, images_are_equal, sub_image

logger = logging.getLogger(__name__)

# Repton himself and green earth are both detected as green, so a green store
# needs this many earlier green sprites before the colour is confirmed.
GREEN_CONFIRMATIONS = 2

Sprite = Union[SpriteCrop, DistinctSprite]


class DatasetRegistry:
    """Maps each detected colour to its canonical store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stores: dict[int, DeduplicationStore] = {}

    def claim(self, colour: int, store: "DeduplicationStore") -> "DeduplicationStore":
        """Register store for colour unless another store already owns it.

        Returns the canonical store for the colour.
        """

        with self._lock:
            return self._stores.setdefault(colour, store)

    def get(self, colour: int) -> "DeduplicationStore | None":
        with self._lock:
            return self._stores.get(colour)

    def snapshot(self) -> dict[int, "DeduplicationStore"]:
        with self._lock:
            return dict(sorted(self._stores.items()))

    def complete_colours(self) -> list[int]:
        return [colour for colour, store in self.snapshot().items() if store.has_all_distinct]

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)

    def __contains__(self, colour: int) -> bool:
        with self._lock:
            return colour in self._stores


class DeduplicationStore:
    """Accumulates the visually distinct sprites seen in one screenshot.

    Two locks guard separate state: ``_pending_lock`` covers the crops
    currently being compared, ``_lock`` covers the confirmed sprites, the
    colour fields and the forward link. Neither is held during the pixel
    comparison against confirmed sprites.
    """

    def __init__(
        self,
        name: str,
        registry: DatasetRegistry,
        *,
        target: int = NUM_DISTINCT_SPRITES,
        detector_workers: int = DEFAULT_WORKERS,
        tracker: CriticalSectionTracker | None = None,
    ) -> None:
        self.name = name
        self.dominant_colour = NO_COLOUR
        self.dominant_greens = 0
        self.has_all_distinct = False
        self._registry = registry
        self._target = target
        self._detector_workers = detector_workers
        self._tracker = tracker
        self._sprites: list[DistinctSprite] = []
        self._forward_to: DeduplicationStore | None = None
        self._lock = threading.Lock()
        self._pending: list[Sprite] = []
        self._pending_lock = threading.Lock()

    def __str__(self) -> str:
        complete = "complete" if self.has_all_distinct else str(len(self._sprites))
        text = f"AD[{self.name}, {colour_name(self.dominant_colour)}, {complete}]"
        if self._forward_to is not None:
            text = f"{text} -> {self._forward_to}"
        return text

    def __len__(self) -> int:
        with self._holding(self._lock, "sprites"):
            return len(self._sprites)

    @property
    def forward_to(self) -> "DeduplicationStore | None":
        return self._forward_to

    @property
    def target(self) -> int:
        return self._target

    @property
    def sprites(self) -> tuple[DistinctSprite, ...]:
        with self._holding(self._lock, "sprites"):
            return tuple(self._sprites)

    def resolve(self) -> "DeduplicationStore":
        """Follow forward links to the canonical store."""

        store = self
        while store._forward_to is not None:
            store = store._forward_to
        return store

    @contextmanager
    def _holding(self, lock: threading.Lock, section: str) -> Iterator[None]:
        if self._tracker is None:
            with lock:
                yield
        else:
            # Entered before the lock so same-thread reentry raises.
            with self._tracker.section(f"{self.name}.{section}"), lock:
                yield

    def try_add(self, sprite: Sprite) -> bool:
        """Add sprite if it is distinct from everything already in the store.

        Returns True if the sprite was new.
        """

        target = self._forward_to
        if target is not None:
            return self._add_forwarded(target, sprite)

        with self._holding(self._pending_lock, "pending"):
            for pending in self._pending:
                if images_are_equal(sprite.pixels, sprite.region, pending.pixels, pending.region):
                    # Identical sprite already being worked on; don't wait for it.
                    return False
            self._pending.append(sprite)
        try:
            added = self._add_distinct(sprite)
        finally:
            with self._holding(self._pending_lock, "pending"):
                self._pending.remove(sprite)
        if added is None:
            return False
        if isinstance(added, DeduplicationStore):
            return self._add_forwarded(added, sprite)
        self._detect_colour(added)
        return True

    def _add_distinct(self, sprite: Sprite) -> "DistinctSprite | DeduplicationStore | None":
        """Compare and append; returns the new sprite, a forward target, or None."""

        with self._holding(self._lock, "sprites"):
            confirmed = tuple(self._sprites)
        for existing in confirmed:
            if images_are_equal(sprite.pixels, sprite.region, existing.pixels, None):
                return None
            if sprite.sample_point:
                describe_mismatch(sprite.pixels, sprite.region, existing.pixels, None)

        label = sprite.label if sprite.label.endswith("_") else sprite.label + "_"
        new_sprite = DistinctSprite(sub_image(sprite.pixels, sprite.region), label, sprite.sample_point)
        with self._holding(self._lock, "sprites"):
            if self._forward_to is not None:
                return self._forward_to
            if self.has_all_distinct:
                return None
            # Only sprites appended since the snapshot still need checking.
            for existing in self._sprites[len(confirmed):]:
                if images_are_equal(new_sprite.pixels, None, existing.pixels, None):
                    return None
            self._sprites.append(new_sprite)
            if len(self._sprites) >= self._target:
                self.has_all_distinct = True
        return new_sprite

    def _detect_colour(self, sprite: DistinctSprite) -> None:
        if self.dominant_colour != NO_COLOUR:
            return
        description = str(sprite) if sprite.sample_point else None
        colour = detect_dominant(sprite.pixels, workers=self._detector_workers, description=description)
        if colour in (NO_COLOUR, BLACK):
            return

        with self._holding(self._lock, "sprites"):
            if self.dominant_colour != NO_COLOUR or self._forward_to is not None:
                return
            if colour == GREEN and self.dominant_greens < GREEN_CONFIRMATIONS:
                self.dominant_greens += 1
                logger.debug("Dominant colour of %s unconfirmed green", self)
                return
            self.dominant_colour = colour
            canonical = self._registry.claim(colour, self)
            if canonical is self:
                logger.info("%s is sink for dominant colour %s", self, colour_name(colour))
                return
            logger.info("%s forwarding to %s", self, canonical)
            self._forward_to = canonical
            detached = self._sprites
            self._sprites = []
        self._merge_into(canonical, detached)

    def _merge_into(self, target: "DeduplicationStore", sprites: list[DistinctSprite]) -> None:
        for sprite in sprites:
            if target.has_all_distinct:
                break
            target.try_add(sprite)
        if target.has_all_distinct:
            self.has_all_distinct = True

    def _add_forwarded(self, target: "DeduplicationStore", sprite: Sprite) -> bool:
        result = target.try_add(sprite)
        if target.has_all_distinct:
            self.has_all_distinct = True
        return result
