"""Extraction of per-colour sprite atlases from Repton map editor screenshots.

The screenshots should be full-size views of the editor map, typically a
scenario's worth, with enough of them to contain every sprite in every colour
theme between them. Sprites within each atlas are in discovery order, which
is not guaranteed to be stable between runs.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Sequence

from . import (
    NUM_DISTINCT_SPRITES,
    SPRITE_SIZE,
    AtlasInfo,
    DistinctSprite,
    ExtractionOutcome,
    ExtractionSettings,
    Region,
    SpriteCrop,
)
from .atlas_packer import compose_atlas
from .colours import DEFAULT_WORKERS, THEME_COLOURS, colour_name
from .dataset import DatasetRegistry, DeduplicationStore
from .debug_locks import CriticalSectionTracker
from .directory_processor import process_directory
from .errors import ProcessingError
from .manifest_writer import hash_sprite, write_manifest
from .separator import CommonSpriteSeparator
from ..utils import file_tools, validators

logger = logging.getLogger(__name__)

COMMON_NAME = "common"


def iter_sprite_regions(width: int, height: int, size: int = SPRITE_SIZE):
    """Yield whole-tile regions in raster order; partial edge tiles are skipped."""

    for y in range(height // size):
        for x in range(width // size):
            yield Region(x * size, y * size, (x + 1) * size, (y + 1) * size)


class AtlasExtractor:
    """Directory processor that collects distinct sprites per colour theme."""

    def __init__(
        self,
        detector_workers: int = DEFAULT_WORKERS,
        tracker: CriticalSectionTracker | None = None,
    ) -> None:
        self.registry = DatasetRegistry()
        self.separator = CommonSpriteSeparator()
        self.stores: list[DeduplicationStore] = []
        self._stores_lock = threading.Lock()
        self._detector_workers = detector_workers
        self._tracker = tracker

    def process_file(self, path: Path) -> None:
        pixels = file_tools.load_image(path)
        leaf_name = path.name
        logger.info("Starting on %s", path)
        store = DeduplicationStore(
            leaf_name,
            self.registry,
            target=NUM_DISTINCT_SPRITES,
            detector_workers=self._detector_workers,
            tracker=self._tracker,
        )
        with self._stores_lock:
            self.stores.append(store)
        height, width = pixels.shape[:2]
        for region in iter_sprite_regions(width, height):
            if store.has_all_distinct:
                break
            store.try_add(SpriteCrop(pixels, region, leaf_name))
        logger.info("Finished %s", store)

    def minimum_files_needed_for_completion(self) -> int:
        snapshot = self.registry.snapshot()
        complete = [c for c, store in snapshot.items() if store.has_all_distinct and c in THEME_COLOURS]
        partial = [c for c, store in snapshot.items() if not store.has_all_distinct]
        logger.info("Colours with complete set: %s", " ".join(colour_name(c) for c in complete) or "none")
        logger.info("Colours with partial set: %s", " ".join(colour_name(c) for c in partial) or "none")
        return len(THEME_COLOURS) - len(complete)

    def start_batch(self) -> None:
        logger.debug("Starting batch with %s data sets", len(self.registry))

    def finish_batch(self) -> None:
        logger.info("**** Finished batch ****")
        if self._tracker is not None:
            self._tracker.log_active("Critical sections still held after batch:")
        if self.separator.started:
            self.separator.wait()
        else:
            self.separator.start(self.registry)

    def finish(self) -> None:
        snapshot = self.registry.snapshot()
        logger.info("Finished with %s data sets", len(snapshot))
        for colour, store in snapshot.items():
            if not store.has_all_distinct:
                logger.warning("  %s has %s sprites", colour_name(colour), len(store))
        self.separator.finish(self.registry)

    def colour_sprites(self, colour: int) -> list[DistinctSprite]:
        """Sprites to publish for a colour: its themed set once separated."""

        themed = self.separator.themed_sprites.get(colour)
        if themed is not None:
            return list(themed)
        store = self.registry.get(colour)
        return list(store.sprites) if store is not None else []

    def save(self, output_dir: Path, manifest: bool = True) -> ExtractionOutcome:
        file_tools.ensure_directory(output_dir)
        atlases: list[AtlasInfo] = []
        snapshot = self.registry.snapshot()
        for colour in snapshot:
            info = _save_atlas(self.colour_sprites(colour), output_dir / f"{colour_name(colour)}.png", colour_name(colour))
            if info is not None:
                atlases.append(info)

        common = list(self.separator.common_sprites)
        common_paths = [
            file_tools.save_pixels(sprite.pixels, output_dir / f"{index}.png")
            for index, sprite in enumerate(common)
        ]
        info = _save_atlas(common, output_dir / f"{COMMON_NAME}.png", COMMON_NAME)
        if info is not None:
            atlases.append(info)
        else:
            logger.warning("No common sprites identified; %s.png not written", COMMON_NAME)

        manifest_path = write_manifest(atlases, output_dir) if manifest else None
        return ExtractionOutcome(
            atlases=atlases,
            common_sprite_paths=common_paths,
            manifest_path=manifest_path,
            complete_colours=[colour_name(c) for c, s in snapshot.items() if s.has_all_distinct],
            incomplete_colours=[colour_name(c) for c, s in snapshot.items() if not s.has_all_distinct],
        )


def _save_atlas(sprites: Sequence[DistinctSprite], path: Path, name: str) -> AtlasInfo | None:
    if not sprites:
        return None
    atlas, columns, rows = compose_atlas([sprite.pixels for sprite in sprites])
    try:
        file_tools.save_image(atlas, path)
    except OSError as exc:
        raise ProcessingError(f"Could not write {name} atlas to {path}") from exc
    tile_width, tile_height = sprites[0].size
    logger.info("Wrote %s atlas (%sx%s) to %s", name, columns, rows, path)
    return AtlasInfo(
        name=name,
        path=path,
        columns=columns,
        rows=rows,
        tile_width=tile_width,
        tile_height=tile_height,
        hashes=[hash_sprite(sprite.pixels) for sprite in sprites],
    )


def run(
    input_dir: Path,
    output_dir: Path,
    settings: ExtractionSettings | None = None,
    tracker: CriticalSectionTracker | None = None,
) -> ExtractionOutcome:
    """Extract atlases from the numbered screenshots in input_dir into output_dir."""

    settings = settings or ExtractionSettings(input_dir=input_dir, output_dir=output_dir)
    validators.validate_input_directory(input_dir)
    validators.validate_output_directory(output_dir)
    extractor = AtlasExtractor(detector_workers=settings.detector_workers, tracker=tracker)
    process_directory(input_dir, extractor, settings.file_pattern, settings.max_threads)
    return extractor.save(output_dir, manifest=settings.write_manifest)
