"""Overlay rendering for selected tiles."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from tilescope.attention.overlap import GroundTruthBox
from tilescope.attention.tiles import SelectedTile
from tilescope.attention.utils.io import save_image_uint8, to_uint8

logger = logging.getLogger(__name__)

GT_COLOR = (0, 0, 255, 255)
TILE_FILL = (255, 0, 0, 89)
TEXT_COLOR = (0, 0, 0, 255)


def render_overlay(
    image: np.ndarray,
    selected: Sequence[SelectedTile],
    patch_size: int,
    ground_truth: GroundTruthBox | None = None,
    top_k: int = 5,
) -> Image.Image:
    """Draw the ground-truth box and the selected tiles onto an image.

    Args:
        image: RGB array (H, W, 3) in [0, 1].
        selected: Selected tiles in pick order; the first ``top_k`` are drawn.
        patch_size: Side length of each tile rectangle.
        ground_truth: Optional box drawn in blue with a "GT Box" caption.
        top_k: Maximum number of tiles drawn.

    Returns:
        RGB Pillow image.
    """

    base = Image.fromarray(to_uint8(image)).convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = ImageFont.load_default()

    for item in list(selected)[:top_k]:
        x, y = item.tile.x, item.tile.y
        draw.rectangle([x, y, x + patch_size - 1, y + patch_size - 1], fill=TILE_FILL)
        draw.text((x + 6, y + 6), f"A={item.display_score:.3f}", fill=TEXT_COLOR, font=font)

    if ground_truth is not None and ground_truth.width > 0 and ground_truth.height > 0:
        draw.rectangle(
            [ground_truth.x, ground_truth.y, ground_truth.x2, ground_truth.y2],
            outline=GT_COLOR,
            width=2,
        )
        draw.text((ground_truth.x + 6, ground_truth.y + 4), "GT Box", fill=GT_COLOR, font=font)

    return Image.alpha_composite(base, overlay).convert("RGB")


def overlay_filename(stem: str, lambda_weights: Sequence[float] | None, epsilon: float) -> str:
    """``<stem>_lam<l0-l1-l2>_eps<epsilon>.png``"""

    lambda_str = "-".join(f"{weight:.2f}" for weight in lambda_weights) if lambda_weights else "na"
    return f"{stem}_lam{lambda_str}_eps{epsilon:g}.png"


def save_overlay(
    canvas: Image.Image,
    output_dir: Path,
    stem: str,
    lambda_weights: Sequence[float] | None,
    epsilon: float,
) -> Path:
    """Write a rendered overlay and return its path."""

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / overlay_filename(stem, lambda_weights, epsilon)
    canvas.save(output_path)
    logger.info("Visualization saved to %s", output_path)
    return output_path


def save_selected_tiles(
    image: np.ndarray,
    selected: Sequence[SelectedTile],
    output_dir: Path,
    stem: str,
) -> list[Path]:
    """Save the pixel content of each selected tile.

    Args:
        image: RGB array (H, W, 3) in [0, 1].
        selected: Selected tiles.
        output_dir: Directory for the tile images.
        stem: Image stem used in the file names.

    Returns:
        Saved paths in selection order.
    """

    paths: list[Path] = []
    for item in selected:
        tile = item.tile
        patch = image[tile.y : tile.y + tile.size, tile.x : tile.x + tile.size, :]
        path = Path(output_dir) / f"tile_{stem}_{tile.x}_{tile.y}.png"
        save_image_uint8(to_uint8(patch), path)
        paths.append(path)
    return paths
