"""Core processing scaffolding for sprite atlas extraction."""

__all__ = [
    "SPRITE_SIZE",
    "NUM_DISTINCT_SPRITES",
    "MAX_THREADS",
    "FILE_PATTERN",
    "Region",
    "SpriteCrop",
    "DistinctSprite",
    "ExtractionSettings",
    "AtlasInfo",
    "ExtractionOutcome",
]

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
from pydantic import BaseModel, Field, field_validator

# Editor screenshots are tiled in 64px squares and every colour theme has
# exactly 33 distinct sprites, blank included.
SPRITE_SIZE = 64
NUM_DISTINCT_SPRITES = 33
MAX_THREADS = 6
FILE_PATTERN = "[0-9]*.png"


@dataclass(frozen=True)
class Region:
    """Half-open pixel rectangle, (left, top) inclusive, (right, bottom) exclusive."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def of(cls, pixels: np.ndarray) -> "Region":
        height, width = pixels.shape[:2]
        return cls(0, 0, width, height)

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def slices(self) -> tuple[slice, slice]:
        """Return (rows, columns) slices for indexing an HxWxC array."""

        return slice(self.top, self.bottom), slice(self.left, self.right)

    def __str__(self) -> str:
        return f"({self.left},{self.top})-({self.right},{self.bottom})"


@dataclass(eq=False)
class SpriteCrop:
    """A tile-sized window onto a shared, read-only source image."""

    pixels: np.ndarray
    region: Region
    label: str
    sample_point: bool = False

    def view(self) -> np.ndarray:
        return self.pixels[self.region.slices()]

    def __str__(self) -> str:
        return f"{self.label:>8} {self.region}"


@dataclass(frozen=True, eq=False)
class DistinctSprite:
    """A sprite confirmed unique within its store, holding its own pixels."""

    pixels: np.ndarray
    label: str
    sample_point: bool = False

    @property
    def region(self) -> Region:
        return Region.of(self.pixels)

    @property
    def size(self) -> tuple[int, int]:
        height, width = self.pixels.shape[:2]
        return width, height

    def view(self) -> np.ndarray:
        return self.pixels

    def __str__(self) -> str:
        return f"{self.label:>8} {self.region}"


class ExtractionSettings(BaseModel):
    """User-configurable settings for an extraction run."""

    input_dir: Path
    output_dir: Path
    max_threads: int = Field(MAX_THREADS, ge=1, le=64)
    detector_workers: int = Field(4, ge=1, le=16)
    write_manifest: bool = True
    file_pattern: str = FILE_PATTERN

    @field_validator("file_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or "\\" in value:
            raise ValueError("File pattern must be a non-empty glob without directories")
        return value


@dataclass
class AtlasInfo:
    """Layout of one composed atlas image."""

    name: str
    path: Path
    columns: int
    rows: int
    tile_width: int
    tile_height: int
    hashes: list[int] = field(default_factory=list)


@dataclass
class ExtractionOutcome:
    """Result paths produced by an extraction run."""

    atlases: list[AtlasInfo]
    common_sprite_paths: list[Path]
    manifest_path: Optional[Path]
    complete_colours: list[str]
    incomplete_colours: list[str]
