"""Epsilon-greedy tile selection."""

from __future__ import annotations

import logging
import random
from typing import Sequence

from tilescope.attention.tiles import ScoredTile, SelectedTile, SelectionReason


class EpsilonGreedySelector:
    """Pick a bounded, duplicate-free subset of tiles.

    Each pick explores with probability ``epsilon`` (uniform over the tiles not
    yet picked) and otherwise exploits the highest smoothed score, earliest pool
    position winning ties. Picks are removed from the pool, so the i-th pick
    depends on the earlier ones; selection stops early once the pool is empty.

    With ``epsilon == 0`` no random numbers are drawn. With ``epsilon == 1`` the
    explore/exploit draw is skipped and every pick is uniform.
    """

    def __init__(self, epsilon: float = 0.2, selection_size: int = 5, rng: random.Random | None = None) -> None:
        if not 0.0 <= epsilon <= 1.0:
            raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")
        if selection_size < 0:
            raise ValueError(f"selection_size must be non-negative, got {selection_size}")
        self.epsilon = float(epsilon)
        self.selection_size = int(selection_size)
        self.rng = rng if rng is not None else random.Random()
        self.logger = logging.getLogger(f"tilescope.{self.__class__.__name__}")

    def select(self, tiles: Sequence[ScoredTile]) -> tuple[SelectedTile, ...]:
        """Select tiles from a scored pool.

        Args:
            tiles: Scored tiles in pool order. Every tile needs a smoothed score.

        Returns:
            Selected tiles in pick order (at most ``selection_size``).
        """

        for tile in tiles:
            if tile.smoothed_score is None:
                raise ValueError(f"Tile ({tile.x}, {tile.y}) has no smoothed score and cannot be selected")

        # Pool positions still eligible, kept in pool order.
        remaining = list(range(len(tiles)))
        selected: list[SelectedTile] = []

        for _ in range(self.selection_size):
            if not remaining:
                break

            if self._explore():
                position = self.rng.randrange(len(remaining))
                reason = SelectionReason.EXPLORE
            else:
                position = _argmax_first(tiles, remaining)
                reason = SelectionReason.EXPLOIT

            index = remaining.pop(position)
            selected.append(SelectedTile(tile=tiles[index], reason=reason))

        if len(selected) < self.selection_size:
            self.logger.debug(
                "Tile pool exhausted: selected %d of %d requested", len(selected), self.selection_size
            )
        return tuple(selected)

    def _explore(self) -> bool:
        if self.epsilon <= 0.0:
            return False
        if self.epsilon >= 1.0:
            return True
        return self.rng.random() < self.epsilon


def _argmax_first(tiles: Sequence[ScoredTile], remaining: list[int]) -> int:
    """Position in ``remaining`` of the highest smoothed score (first wins ties)."""

    best_position = 0
    best_score = tiles[remaining[0]].smoothed_score
    for position in range(1, len(remaining)):
        score = tiles[remaining[position]].smoothed_score
        if score > best_score:
            best_position = position
            best_score = score
    return best_position
