"""Tile records produced by the attention engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np


@dataclass(frozen=True)
class ScoredTile:
    """A patch location with its attention features.

    Attributes:
        x: Top-left x-coordinate.
        y: Top-left y-coordinate.
        size: Side length of the square patch.
        histogram: Concatenated RGB histogram (length ``3 * bins``).
        divergence: JSD between the reference and this tile's histogram.
        class_probs: Classifier probability vector, None if excluded.
        unhealthy_prob: Non-background probability mass, None if excluded.
        entropy: Entropy of ``class_probs``, None if excluded.
        combined_score: Attention score for this evaluation, None if excluded.
        smoothed_score: EMA of the combined scores for this tile key, None if excluded.
        overlap_ratio: Tile-relative overlap with the ground-truth box, if one was given.
        label: 1 if ``overlap_ratio`` reaches the threshold, if one was given.
        excluded: True when the classifier failed for this tile.
        error: Classifier failure message for excluded tiles.
    """

    x: int
    y: int
    size: int
    histogram: np.ndarray = field(repr=False)
    divergence: float
    class_probs: tuple[float, ...] | None = None
    unhealthy_prob: float | None = None
    entropy: float | None = None
    combined_score: float | None = None
    smoothed_score: float | None = None
    overlap_ratio: float | None = None
    label: int | None = None
    excluded: bool = False
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Serializable view without the histogram."""

        return {
            "x": self.x,
            "y": self.y,
            "size": self.size,
            "divergence": self.divergence,
            "class_probs": list(self.class_probs) if self.class_probs is not None else None,
            "unhealthy_prob": self.unhealthy_prob,
            "entropy": self.entropy,
            "combined_score": self.combined_score,
            "smoothed_score": self.smoothed_score,
            "overlap_ratio": self.overlap_ratio,
            "label": self.label,
            "excluded": self.excluded,
            "error": self.error,
        }


class SelectionReason(str, Enum):
    """Why a tile was picked by the selector."""

    EXPLORE = "explore"
    EXPLOIT = "exploit"


@dataclass(frozen=True)
class SelectedTile:
    """A selected tile tagged with the reason it was chosen."""

    tile: ScoredTile
    reason: SelectionReason

    @property
    def display_score(self) -> float:
        """Smoothed score, falling back to the combined score."""

        if self.tile.smoothed_score is not None:
            return float(self.tile.smoothed_score)
        return float(self.tile.combined_score or 0.0)


@dataclass(frozen=True)
class AttentionResult:
    """Attention result for one image.

    Attributes:
        image_id: Identity used for the tile keys.
        tiles: All tiles in partition order, including excluded ones.
        selected: Selected tiles in pick order.
        tile_files: Optional saved patch file per selected tile position.
    """

    image_id: str
    tiles: tuple[ScoredTile, ...]
    selected: tuple[SelectedTile, ...]
    tile_files: tuple[str | None, ...] = ()

    @property
    def excluded(self) -> tuple[ScoredTile, ...]:
        return tuple(tile for tile in self.tiles if tile.excluded)

    def to_payload(self) -> dict[str, Any]:
        """Build the visualizer/API payload."""

        selected_payload = []
        for index, selected in enumerate(self.selected):
            entry: dict[str, Any] = {
                "x": selected.tile.x,
                "y": selected.tile.y,
                "smoothed_score": selected.tile.smoothed_score,
                "combined_score": selected.tile.combined_score,
                "unhealthy_prob": selected.tile.unhealthy_prob,
                "reason": selected.reason.value,
            }
            if index < len(self.tile_files) and self.tile_files[index] is not None:
                entry["file"] = self.tile_files[index]
            selected_payload.append(entry)

        return {
            "image": self.image_id,
            "all_tiles": [tile.as_dict() for tile in self.tiles],
            "selected_tiles": selected_payload,
        }
