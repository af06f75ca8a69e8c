"""Healthy reference histogram construction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

import numpy as np
from tqdm import tqdm

from tilescope.attention.config import AttentionSelectorConfig
from tilescope.attention.sampling import SlidingWindowSampler
from tilescope.attention.utils.features import compute_color_histogram
from tilescope.attention.utils.io import DecodedImage, load_normalized_image
from tilescope.errors import EmptyReferenceSetError

ImageLoader = Callable[[Path], np.ndarray]


class ReferenceHistogramBuilder:
    """Average the center-patch histograms of healthy reference images.

    For every image the patch at index ``len(patches) // 2`` of the row-major
    patch sequence is histogrammed; the result is the element-wise mean.
    """

    def __init__(self, config: AttentionSelectorConfig, loader: ImageLoader | None = None) -> None:
        self.config = config
        self.sampler = SlidingWindowSampler(config.patch_size, config.stride)
        self.loader = loader if loader is not None else self._load
        self.logger = logging.getLogger(f"tilescope.{self.__class__.__name__}")

    def _load(self, image_path: Path) -> np.ndarray:
        decoded: DecodedImage = load_normalized_image(image_path, self.config.image_size)
        return decoded.array

    def center_histogram(self, image: np.ndarray) -> np.ndarray:
        """Histogram of the center patch of one image."""

        patches = self.sampler.partition(image)
        center = patches[len(patches) // 2]
        return compute_color_histogram(
            center.patch,
            bins=self.config.bins,
            epsilon=self.config.feature_config.histogram_epsilon,
        )

    def build(self, image_paths: Iterable[Path]) -> np.ndarray:
        """Build the reference histogram.

        Args:
            image_paths: Healthy reference images.

        Returns:
            Read-only histogram of length ``3 * bins``.

        Raises:
            EmptyReferenceSetError: If no images are given.
        """

        image_paths = [Path(path) for path in image_paths]
        if not image_paths:
            raise EmptyReferenceSetError("Cannot build a reference histogram from an empty image set.")

        histograms = [
            self.center_histogram(self.loader(image_path))
            for image_path in tqdm(image_paths, desc="Reference histograms")
        ]
        return self._average(histograms, len(image_paths))

    def build_from_arrays(self, images: Iterable[np.ndarray]) -> np.ndarray:
        """Build the reference histogram from already decoded images."""

        histograms = [self.center_histogram(image) for image in images]
        if not histograms:
            raise EmptyReferenceSetError("Cannot build a reference histogram from an empty image set.")
        return self._average(histograms, len(histograms))

    def _average(self, histograms: list[np.ndarray], count: int) -> np.ndarray:
        reference = np.stack(histograms).mean(axis=0)
        reference.flags.writeable = False
        self.logger.info("Reference histogram built from %d images (%d bins).", count, reference.size)
        return reference
