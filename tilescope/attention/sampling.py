"""Patch partitioning for attention scoring.

Images are cut into a deterministic grid of overlapping square patches. The
row-major order produced here (y outer, x inner) is the pool order used for
tie-breaking during selection and for the center patch of reference images.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from tilescope.errors import InvalidDimensionsError


@dataclass(frozen=True)
class PatchSample:
    """A sampled patch with its top-left coordinates."""

    x: int
    y: int
    patch: np.ndarray


class SlidingWindowSampler:
    """Generate candidate patches using a sliding window.

    Remainders narrower than ``patch_size`` at the bottom and right borders are
    dropped rather than padded.
    """

    def __init__(self, patch_size: int, stride: int) -> None:
        if patch_size <= 0 or stride <= 0:
            raise InvalidDimensionsError(
                f"patch_size and stride must be positive, got patch_size={patch_size} stride={stride}"
            )
        self.patch_size = int(patch_size)
        self.stride = int(stride)

    def validate(self, image: np.ndarray) -> None:
        """Check that the image can be partitioned.

        Args:
            image: RGB image array with shape (H, W, 3).

        Raises:
            InvalidDimensionsError: If the image is not (H, W, 3) or smaller than one patch.
        """

        if image.ndim != 3 or image.shape[2] != 3:
            raise InvalidDimensionsError(f"Expected RGB image with shape (H, W, 3), got {image.shape}")

        height, width, _ = image.shape
        if self.patch_size > height or self.patch_size > width:
            raise InvalidDimensionsError(
                f"patch_size={self.patch_size} exceeds image size {width}x{height}"
            )

    def grid_shape(self, image: np.ndarray) -> tuple[int, int]:
        """Return the number of patch rows and columns for an image."""

        self.validate(image)
        height, width, _ = image.shape
        rows = (height - self.patch_size) // self.stride + 1
        cols = (width - self.patch_size) // self.stride + 1
        return rows, cols

    def iter_patches(self, image: np.ndarray) -> Iterator[PatchSample]:
        """Iterate over patch candidates in an image.

        Args:
            image: RGB image array with shape (H, W, 3).

        Yields:
            PatchSample objects in row-major order.
        """

        self.validate(image)
        height, width, _ = image.shape
        size = self.patch_size

        for y in range(0, height - size + 1, self.stride):
            for x in range(0, width - size + 1, self.stride):
                yield PatchSample(x=x, y=y, patch=image[y : y + size, x : x + size, :])

    def partition(self, image: np.ndarray) -> list[PatchSample]:
        """Return all patches of an image as a list."""

        return list(self.iter_patches(image))
