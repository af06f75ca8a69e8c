"""Ground-truth overlap labelling for evaluation.

The overlap ratio here is intersection over *tile* area ("tile recall"), not
the symmetric intersection over union. Labelling thresholds are tuned against
this definition.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TileFootprint:
    """Axis-aligned tile rectangle."""

    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class GroundTruthBox:
    """Ground-truth rectangle in the same coordinate space as the tiles."""

    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    def scaled(self, scale_x: float, scale_y: float) -> "GroundTruthBox":
        """Map the box into a resized image space, rounding to whole pixels."""

        return GroundTruthBox(
            x=round(self.x * scale_x),
            y=round(self.y * scale_y),
            width=round(self.width * scale_x),
            height=round(self.height * scale_y),
        )


def compute_overlap_ratio(tile: TileFootprint, box: GroundTruthBox) -> float:
    """Fraction of the tile's area that intersects the box.

    Args:
        tile: Tile footprint.
        box: Ground-truth box.

    Returns:
        Ratio in [0, 1]; 0.0 when either rectangle has zero area.
    """

    tile_area = tile.w * tile.h
    if tile_area <= 0 or box.width <= 0 or box.height <= 0:
        return 0.0

    overlap_x = max(0.0, min(tile.x + tile.w, box.x2) - max(tile.x, box.x))
    overlap_y = max(0.0, min(tile.y + tile.h, box.y2) - max(tile.y, box.y))
    ratio = (overlap_x * overlap_y) / tile_area
    return float(min(1.0, max(0.0, ratio)))


def label_overlap(overlap_ratio: float, threshold: float = 0.5) -> int:
    """Binary relevance label: 1 iff ``overlap_ratio >= threshold``."""

    return 1 if overlap_ratio >= threshold else 0
