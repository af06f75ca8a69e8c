"""Per-tile exponential smoothing of attention scores."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class TileKey:
    """Identity of a spatial tile location.

    Attributes:
        image_id: Image identity; empty when keys are shared across images.
        x: Top-left x-coordinate.
        y: Top-left y-coordinate.
    """

    image_id: str
    x: int
    y: int

    def __str__(self) -> str:
        return f"{self.image_id}_{self.x}_{self.y}"


def make_tile_key(image_id: str, x: int, y: int, namespace_by_image: bool = True) -> TileKey:
    """Build the tile key for a location.

    Args:
        image_id: Image identity (e.g. the file name).
        x: Top-left x-coordinate.
        y: Top-left y-coordinate.
        namespace_by_image: If false, the key ignores the image identity.
    """

    return TileKey(image_id=image_id if namespace_by_image else "", x=int(x), y=int(y))


class TileStateTracker:
    """Keep an exponentially smoothed attention score per tile key.

    ``smoothed = alpha * score + (1 - alpha) * previous`` where the first
    observation of a key is smoothed against 0. The table lives as long as the
    tracker; use :meth:`clear` or :meth:`evict` to bound it.
    """

    def __init__(self, alpha: float = 0.2) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = float(alpha)
        self._scores: dict[TileKey, float] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(f"tilescope.{self.__class__.__name__}")

    def update(self, key: TileKey, score: float) -> float:
        """Fold a new combined score into the key's smoothed value.

        Returns:
            The new smoothed score.
        """

        with self._lock:
            previous = self._scores.get(key, 0.0)
            smoothed = self.alpha * float(score) + (1.0 - self.alpha) * previous
            self._scores[key] = smoothed
        return smoothed

    def get(self, key: TileKey, default: float | None = None) -> float | None:
        with self._lock:
            return self._scores.get(key, default)

    def evict(self, key: TileKey) -> bool:
        """Drop one key. Returns True if it was present."""

        with self._lock:
            return self._scores.pop(key, None) is not None

    def evict_image(self, image_id: str) -> int:
        """Drop every key belonging to an image. Returns the number removed."""

        with self._lock:
            keys = [key for key in self._scores if key.image_id == image_id]
            for key in keys:
                del self._scores[key]
        if keys:
            self.logger.debug("Evicted %d tile states for %s", len(keys), image_id)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._scores.clear()

    def snapshot(self) -> dict[TileKey, float]:
        """Return a copy of the current table."""

        with self._lock:
            return dict(self._scores)

    def __len__(self) -> int:
        with self._lock:
            return len(self._scores)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._scores
