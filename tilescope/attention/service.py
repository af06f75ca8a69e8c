"""Batch façade for serving attention results.

Each uploaded image is processed independently: a failure produces an error
entry for that image and the rest of the batch continues.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from tilescope.attention.classifier import validate_probabilities
from tilescope.attention.inference import TileAttentionEngine
from tilescope.attention.overlap import GroundTruthBox
from tilescope.attention.tiles import AttentionResult
from tilescope.attention.utils.io import DecodedImage, decode_image
from tilescope.attention.visualize import save_selected_tiles


class AttentionService:
    """Process batches of encoded images with a shared engine."""

    def __init__(self, engine: TileAttentionEngine, tiles_dir: Path | None = None, tiles_url_prefix: str = "/tiles") -> None:
        self.engine = engine
        self.config = engine.config
        self.tiles_dir = Path(tiles_dir) if tiles_dir is not None else self.config.output_dir / "tiles"
        self.tiles_url_prefix = tiles_url_prefix.rstrip("/")
        self.logger = logging.getLogger(f"tilescope.{self.__class__.__name__}")

    def predict_batch(
        self,
        uploads: Sequence[tuple[str, bytes]],
        ground_truths: Mapping[str, GroundTruthBox] | None = None,
    ) -> list[dict[str, Any]]:
        """Process a batch of uploads.

        Args:
            uploads: (file name, encoded bytes) pairs.
            ground_truths: Optional boxes per file name, in original pixel space.

        Returns:
            One entry per upload: ``{file, predictions, tiles}`` or ``{file, error}``.
        """

        if not uploads:
            raise ValueError("No images uploaded.")

        results: list[dict[str, Any]] = []
        for name, data in uploads:
            try:
                box = (ground_truths or {}).get(name)
                results.append(self._predict_one(name, data, box))
            except Exception as exc:
                self.logger.error("Error predicting %s: %s", name, exc, exc_info=True)
                results.append({"file": name, "error": "Prediction failed"})
        return results

    def _predict_one(self, name: str, data: bytes, ground_truth: GroundTruthBox | None) -> dict[str, Any]:
        decoded: DecodedImage = decode_image(data, self.config.image_size)
        scaled_box = ground_truth.scaled(*decoded.scale) if ground_truth is not None else None

        # Whole-image prediction runs first so a failure leaves the tracker and tiles_dir untouched.
        probs = validate_probabilities(
            self.engine.classifier.predict(decoded.array),
            self.config.probability_tolerance,
        )
        result = self.engine.process_image(decoded.array, name, ground_truth=scaled_box)

        if self.config.save_tiles and result.selected:
            result = self._attach_tile_files(decoded, result)

        return {
            "file": name,
            "predictions": [round(float(p) * 100.0, 2) for p in probs],
            "tiles": result.to_payload()["selected_tiles"],
        }

    def _attach_tile_files(self, decoded: DecodedImage, result: AttentionResult) -> AttentionResult:
        stem = Path(result.image_id).stem
        paths = save_selected_tiles(decoded.array, result.selected, self.tiles_dir, stem)
        files = tuple(f"{self.tiles_url_prefix}/{path.name}" for path in paths)
        return dataclasses.replace(result, tile_files=files)
