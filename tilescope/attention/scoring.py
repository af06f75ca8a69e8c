"""Attention score combination."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Sequence

import numpy as np


class AttentionMode(str, Enum):
    """Which signals contribute to the attention score."""

    CNN_ONLY = "cnn_only"
    CNN_JSD = "cnn_jsd"
    CNN_ENTROPY = "cnn_entropy"
    FULL = "full"


def unhealthy_probability(probs: Sequence[float] | np.ndarray) -> float:
    """Aggregate the probability mass assigned to non-background classes.

    With exactly two classes this is the second class's probability; with more
    classes it is the sum of every class except the first (background/healthy).

    Args:
        probs: Class probability vector.

    Returns:
        Unhealthy probability clipped to [0, 1].
    """

    probs = np.asarray(probs, dtype=np.float64).ravel()
    if probs.size < 2:
        raise ValueError(f"Need at least two class probabilities, got {probs.size}")
    if probs.size == 2:
        value = float(probs[1])
    else:
        value = float(probs[1:].sum())
    return float(np.clip(value, 0.0, 1.0))


_Combiner = Callable[[float, float, float], float]


class AttentionScorer:
    """Combine divergence, unhealthy probability and entropy into one score.

    The weighting formula is chosen once from ``mode`` when the scorer is built.
    ``lambda_weights`` is applied as given; no normalization is imposed.
    """

    def __init__(self, mode: AttentionMode | str = AttentionMode.FULL, lambda_weights: Sequence[float] = (0.3, 0.4, 0.3)) -> None:
        if len(lambda_weights) != 3:
            raise ValueError(f"lambda_weights must have 3 entries, got {len(lambda_weights)}")
        self.mode = AttentionMode(mode)
        self.lambda_weights = tuple(float(weight) for weight in lambda_weights)
        self._combine = self._resolve(self.mode)

    def _resolve(self, mode: AttentionMode) -> _Combiner:
        l0, l1, l2 = self.lambda_weights
        if mode is AttentionMode.CNN_ONLY:
            return lambda divergence, unhealthy, entropy: unhealthy
        if mode is AttentionMode.CNN_JSD:
            return lambda divergence, unhealthy, entropy: l0 * divergence + l1 * unhealthy
        if mode is AttentionMode.CNN_ENTROPY:
            return lambda divergence, unhealthy, entropy: l1 * unhealthy + l2 * entropy
        return lambda divergence, unhealthy, entropy: l0 * divergence + l1 * unhealthy + l2 * entropy

    def score(self, divergence: float, unhealthy_prob: float, entropy: float) -> float:
        """Return the combined attention score for one tile."""

        return float(self._combine(float(divergence), float(unhealthy_prob), float(entropy)))
