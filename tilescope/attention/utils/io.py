"""I/O helpers for image decoding and artifact persistence."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class DecodedImage:
    """A decoded, resized and normalized image.

    Attributes:
        array: Float array with shape (H, W, 3) and values in [0, 1].
        original_size: (width, height) of the image before resizing.
    """

    array: np.ndarray
    original_size: tuple[int, int]

    @property
    def scale(self) -> tuple[float, float]:
        """(scale_x, scale_y) from original to resized pixel space."""

        height, width = self.array.shape[:2]
        return width / self.original_size[0], height / self.original_size[1]


def decode_image(data: bytes, image_size: int = 512) -> DecodedImage:
    """Decode image bytes into a normalized RGB array.

    Args:
        data: Encoded image bytes (PNG, JPEG, ...).
        image_size: Side length to resize to (bilinear).

    Returns:
        DecodedImage with an (image_size, image_size, 3) float32 array in [0, 1].
    """

    with Image.open(io.BytesIO(data)) as image:
        rgb_image = image.convert("RGB")
    original_size = rgb_image.size
    resized = rgb_image.resize((image_size, image_size), Image.Resampling.BILINEAR)
    array = np.asarray(resized, dtype=np.float32) / 255.0
    return DecodedImage(array=array, original_size=original_size)


def load_normalized_image(image_path: Path, image_size: int = 512) -> DecodedImage:
    """Load an image file as a normalized RGB array.

    Args:
        image_path: Path to the image file.
        image_size: Side length to resize to.

    Returns:
        DecodedImage for the file.
    """

    return decode_image(Path(image_path).read_bytes(), image_size=image_size)


def list_image_files(image_dir: Path, extensions: set[str]) -> list[Path]:
    """List image files under a directory.

    Args:
        image_dir: Root directory containing images.
        extensions: Lowercase extensions to include.

    Returns:
        Sorted list of image file paths.
    """

    image_files: list[Path] = []
    for file_path in Path(image_dir).rglob("*"):
        if file_path.is_file() and file_path.suffix.lower() in extensions:
            image_files.append(file_path)
    return sorted(image_files)


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Convert a [0, 1] float image to uint8."""

    return (np.clip(image, 0.0, 1.0) * 255.0).round().astype(np.uint8)


def save_image_uint8(image: np.ndarray, output_path: Path) -> None:
    """Save a uint8 image array to disk.

    Args:
        image: Image array with dtype uint8.
        output_path: Output file path.
    """

    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(image).save(output_path)


def save_reference_histogram(histogram: np.ndarray, output_path: Path) -> Path:
    """Persist a reference histogram as ``.npy``."""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    np.save(output_path, np.asarray(histogram, dtype=np.float64))
    return output_path


def load_reference_histogram(path: Path) -> np.ndarray:
    """Load a persisted reference histogram (read-only)."""

    histogram = np.load(Path(path))
    histogram.flags.writeable = False
    return histogram


def compute_report_path(output_dir: Path, name: str) -> Path:
    """Compute a report path under the output directory.

    Args:
        output_dir: Output root directory.
        name: Base filename for the report.

    Returns:
        Path to the report file.
    """

    return output_dir / "reports" / name
