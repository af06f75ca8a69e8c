"""Attention-guided tile selection pipeline."""

from __future__ import annotations

import logging
import random
import threading
from pathlib import Path
from typing import Sequence

import numpy as np

from tilescope.attention.classifier import BatchPatchClassifier, PatchClassifier, validate_probabilities
from tilescope.attention.config import AttentionSelectorConfig
from tilescope.attention.overlap import GroundTruthBox, TileFootprint, compute_overlap_ratio, label_overlap
from tilescope.attention.sampling import PatchSample, SlidingWindowSampler
from tilescope.attention.scoring import AttentionScorer, unhealthy_probability
from tilescope.attention.selection import EpsilonGreedySelector
from tilescope.attention.state import TileStateTracker, make_tile_key
from tilescope.attention.tiles import AttentionResult, ScoredTile
from tilescope.attention.utils.features import compute_color_histogram, compute_entropy, jensen_shannon_divergence
from tilescope.attention.utils.io import load_normalized_image
from tilescope.errors import ClassifierFailureError, ProcessingCancelledError, ShapeMismatchError


class TileAttentionEngine:
    """Score every patch of an image and select the most interesting ones.

    The engine owns no global state: smoothed scores live in the
    :class:`TileStateTracker` passed in (or created per engine), and selector
    randomness comes from the ``rng`` passed in (or one seeded from
    ``config.seed``). Callers processing images concurrently must give each
    worker its own tracker or keep tile keys disjoint.
    """

    def __init__(
        self,
        config: AttentionSelectorConfig,
        classifier: PatchClassifier,
        reference_histogram: np.ndarray,
        tracker: TileStateTracker | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.logger = logging.getLogger(f"tilescope.{self.__class__.__name__}")

        reference = np.array(reference_histogram, dtype=np.float64).ravel()
        expected = 3 * config.bins
        if reference.size != expected:
            raise ShapeMismatchError(
                f"Reference histogram has {reference.size} entries, expected {expected} (3 x {config.bins} bins)"
            )
        reference.flags.writeable = False
        self.reference_histogram = reference

        self.classifier = classifier
        self.sampler = SlidingWindowSampler(config.patch_size, config.stride)
        self.scorer = AttentionScorer(config.mode, config.lambda_weights)
        self.tracker = tracker if tracker is not None else TileStateTracker(alpha=config.alpha)
        self.selector = EpsilonGreedySelector(
            epsilon=config.epsilon,
            selection_size=config.selection_size,
            rng=rng if rng is not None else random.Random(config.seed),
        )

    def process_path(
        self,
        image_path: Path,
        ground_truth: GroundTruthBox | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AttentionResult:
        """Load an image file and process it.

        Args:
            image_path: Image file; its name is the image identity.
            ground_truth: Optional box in the *original* image's pixel space.
            cancel_event: Optional cancellation token.

        Returns:
            Attention result for the image.
        """

        image_path = Path(image_path)
        decoded = load_normalized_image(image_path, self.config.image_size)
        scaled_box = ground_truth.scaled(*decoded.scale) if ground_truth is not None else None
        return self.process_image(decoded.array, image_path.name, ground_truth=scaled_box, cancel_event=cancel_event)

    def process_image(
        self,
        image: np.ndarray,
        image_id: str,
        ground_truth: GroundTruthBox | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AttentionResult:
        """Score, smooth, label and select the tiles of one image.

        Args:
            image: RGB array (H, W, 3) in [0, 1].
            image_id: Image identity used to namespace tile keys.
            ground_truth: Optional box in the image's pixel space.
            cancel_event: Checked between classifier calls; when set,
                ProcessingCancelledError is raised. Smoothed scores already
                updated for earlier patches are kept.

        Returns:
            AttentionResult with all tiles and the selection.

        Raises:
            InvalidDimensionsError: If the image cannot be partitioned.
            ProcessingCancelledError: If ``cancel_event`` is set.
        """

        samples = self.sampler.partition(image)
        batch_size = int(self.config.batch_size)

        tiles: list[ScoredTile] = []
        for start in range(0, len(samples), batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise ProcessingCancelledError(
                    f"Processing of {image_id} cancelled after {start} of {len(samples)} patches"
                )
            chunk = samples[start : start + batch_size]
            outcomes = self._classify(chunk)
            for sample, outcome in zip(chunk, outcomes):
                tiles.append(self._score_tile(sample, outcome, image_id, ground_truth))

        eligible = [tile for tile in tiles if not tile.excluded]
        excluded_count = len(tiles) - len(eligible)
        if excluded_count:
            self.logger.warning("%d of %d patches excluded for %s", excluded_count, len(tiles), image_id)

        selected = self.selector.select(eligible)
        self.logger.info(
            "Selected %d tiles for %s (%d scored, mode=%s, epsilon=%.2f)",
            len(selected),
            image_id,
            len(eligible),
            self.scorer.mode.value,
            self.selector.epsilon,
        )
        return AttentionResult(image_id=image_id, tiles=tuple(tiles), selected=selected)

    def _classify(self, chunk: Sequence[PatchSample]) -> list[np.ndarray | ClassifierFailureError]:
        """Run the classifier on a chunk of patches.

        Each entry is either a validated probability vector or the failure
        that excludes that patch.
        """

        tolerance = self.config.probability_tolerance
        if len(chunk) > 1 and isinstance(self.classifier, BatchPatchClassifier):
            try:
                batch = self.classifier.predict_batch([sample.patch for sample in chunk])
            except Exception as exc:
                failure = ClassifierFailureError(f"Batch prediction failed: {exc}")
                return [failure for _ in chunk]
            if len(batch) != len(chunk):
                failure = ClassifierFailureError(f"Batch prediction returned {len(batch)} rows for {len(chunk)} patches")
                return [failure for _ in chunk]
            return [self._validate(row, tolerance) for row in batch]

        outcomes: list[np.ndarray | ClassifierFailureError] = []
        for sample in chunk:
            try:
                raw = self.classifier.predict(sample.patch)
            except Exception as exc:
                outcomes.append(ClassifierFailureError(f"Prediction failed: {exc}"))
                continue
            outcomes.append(self._validate(raw, tolerance))
        return outcomes

    @staticmethod
    def _validate(raw: object, tolerance: float) -> np.ndarray | ClassifierFailureError:
        try:
            return validate_probabilities(raw, tolerance)
        except ClassifierFailureError as exc:
            return exc

    def _score_tile(
        self,
        sample: PatchSample,
        outcome: np.ndarray | ClassifierFailureError,
        image_id: str,
        ground_truth: GroundTruthBox | None,
    ) -> ScoredTile:
        features = self.config.feature_config
        histogram = compute_color_histogram(sample.patch, bins=features.bins, epsilon=features.histogram_epsilon)
        divergence = jensen_shannon_divergence(self.reference_histogram, histogram, epsilon=features.divergence_epsilon)

        size = self.sampler.patch_size
        overlap_ratio: float | None = None
        label: int | None = None
        if ground_truth is not None:
            footprint = TileFootprint(x=sample.x, y=sample.y, w=size, h=size)
            overlap_ratio = compute_overlap_ratio(footprint, ground_truth)
            label = label_overlap(overlap_ratio, self.config.overlap_threshold)

        if isinstance(outcome, ClassifierFailureError):
            self.logger.warning("Patch (%d, %d) of %s excluded: %s", sample.x, sample.y, image_id, outcome)
            return ScoredTile(
                x=sample.x,
                y=sample.y,
                size=size,
                histogram=histogram,
                divergence=divergence,
                overlap_ratio=overlap_ratio,
                label=label,
                excluded=True,
                error=str(outcome),
            )

        unhealthy = unhealthy_probability(outcome)
        entropy = compute_entropy(outcome, epsilon=features.entropy_epsilon)
        combined = self.scorer.score(divergence, unhealthy, entropy)

        key = make_tile_key(image_id, sample.x, sample.y, self.config.namespace_keys_by_image)
        smoothed = self.tracker.update(key, combined)

        return ScoredTile(
            x=sample.x,
            y=sample.y,
            size=size,
            histogram=histogram,
            divergence=divergence,
            class_probs=tuple(float(p) for p in outcome),
            unhealthy_prob=unhealthy,
            entropy=entropy,
            combined_score=combined,
            smoothed_score=smoothed,
            overlap_ratio=overlap_ratio,
            label=label,
        )
