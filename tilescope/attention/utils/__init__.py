"""Feature and I/O utilities for attention scoring."""

from .features import compute_color_histogram, compute_entropy, jensen_shannon_divergence

__all__ = [
    "compute_color_histogram",
    "compute_entropy",
    "jensen_shannon_divergence",
]
