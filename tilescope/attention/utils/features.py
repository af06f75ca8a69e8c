"""Feature extraction for attention scoring."""

from __future__ import annotations

import numpy as np

from tilescope.errors import ShapeMismatchError


def compute_color_histogram(patch: np.ndarray, bins: int = 64, epsilon: float = 1e-8) -> np.ndarray:
    """Compute normalized per-channel color histograms for an RGB patch.

    Args:
        patch: RGB patch array with values in [0, 1].
        bins: Number of histogram bins per channel.
        epsilon: Added to the pixel count so empty input does not divide by zero.

    Returns:
        Concatenated (R, G, B) histogram vector of length ``3 * bins``.
    """

    if bins <= 0:
        raise ValueError(f"bins must be positive, got {bins}")
    if patch.ndim != 3 or patch.shape[2] != 3:
        raise ValueError(f"Expected RGB patch with shape (H, W, 3), got {patch.shape}")

    histograms = [_channel_histogram(patch[..., channel], bins, epsilon) for channel in range(3)]
    return np.concatenate(histograms)


def _channel_histogram(channel: np.ndarray, bins: int, epsilon: float) -> np.ndarray:
    """Bin a single channel with ``floor(value * bins)`` clamped to the last bin.

    Args:
        channel: 2D channel array.
        bins: Number of bins.
        epsilon: Denominator epsilon.

    Returns:
        Normalized histogram vector.
    """

    values = np.asarray(channel, dtype=np.float64).ravel()
    indices = np.clip(np.floor(values * bins), 0, bins - 1).astype(np.int64)
    counts = np.bincount(indices, minlength=bins).astype(np.float64)
    return counts / (values.size + epsilon)


def jensen_shannon_divergence(p: np.ndarray, q: np.ndarray, epsilon: float = 1e-8) -> float:
    """Compute the Jensen-Shannon divergence between two histograms.

    Args:
        p: Reference histogram.
        q: Candidate histogram.
        epsilon: Added to every component of both inputs to avoid log(0).

    Returns:
        Non-negative divergence (natural log); 0.0 for identical inputs.

    Raises:
        ShapeMismatchError: If the histograms differ in length.
    """

    p = np.asarray(p, dtype=np.float64).ravel()
    q = np.asarray(q, dtype=np.float64).ravel()
    if p.shape != q.shape:
        raise ShapeMismatchError(f"Histogram lengths differ: {p.size} vs {q.size}")

    p_safe = p + epsilon
    q_safe = q + epsilon
    m = (p_safe + q_safe) / 2.0
    divergence = (_kl_divergence(p_safe, m) + _kl_divergence(q_safe, m)) / 2.0
    return max(0.0, float(divergence))


def _kl_divergence(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.sum(a * np.log(a / b)))


def compute_entropy(probs: np.ndarray, epsilon: float = 1e-8) -> float:
    """Compute the Shannon entropy of a probability vector.

    Args:
        probs: Class probabilities (need not sum exactly to 1).
        epsilon: Added inside the log.

    Returns:
        Non-negative entropy in nats.
    """

    probs = np.asarray(probs, dtype=np.float64).ravel()
    entropy = -float(np.sum(probs * np.log(probs + epsilon)))
    return max(0.0, entropy)
