import threading

import numpy as np
import pytest
from PIL import Image

from tilescope.attention.inference import TileAttentionEngine
from tilescope.attention.overlap import GroundTruthBox
from tilescope.attention.report import summarize_selection
from tilescope.attention.state import TileStateTracker
from tilescope.errors import InvalidDimensionsError, ProcessingCancelledError, ShapeMismatchError

from helpers import FakeBatchClassifier, FakeClassifier, make_lesion_image


def intersects_block(tile, start=160, end=360):
    return tile.x + tile.size > start and tile.x < end and tile.y + tile.size > start and tile.y < end


@pytest.fixture
def engine(attention_config, fake_classifier, healthy_reference):
    return TileAttentionEngine(attention_config, fake_classifier, healthy_reference)


def test_divergence_separates_lesion_tiles(engine, lesion_image):
    result = engine.process_image(lesion_image, "leaf.jpg")

    inside = [tile for tile in result.tiles if intersects_block(tile)]
    outside = [tile for tile in result.tiles if not intersects_block(tile)]

    assert len(result.tiles) == 49
    assert inside and outside
    assert all(tile.divergence == 0.0 for tile in outside)
    assert min(tile.divergence for tile in inside) > max(tile.divergence for tile in outside)


def test_greedy_selection_prefers_lesion_tiles(engine, lesion_image):
    result = engine.process_image(lesion_image, "leaf.jpg")

    assert len(result.selected) == 5
    assert all(intersects_block(item.tile) for item in result.selected)

    smoothed = sorted((tile.smoothed_score for tile in result.tiles), reverse=True)
    assert [item.tile.smoothed_score for item in result.selected] == smoothed[:5]


def test_tile_scores_follow_the_configured_formula(engine, lesion_image):
    result = engine.process_image(lesion_image, "leaf.jpg")
    l0, l1, l2 = engine.config.lambda_weights

    for tile in result.tiles:
        assert tile.class_probs is not None and sum(tile.class_probs) == pytest.approx(1.0)
        expected = l0 * tile.divergence + l1 * tile.unhealthy_prob + l2 * tile.entropy
        assert tile.combined_score == pytest.approx(expected)
        assert tile.smoothed_score == pytest.approx(engine.config.alpha * tile.combined_score)


def test_smoothed_scores_accumulate_across_calls(engine, lesion_image):
    alpha = engine.config.alpha
    first = engine.process_image(lesion_image, "leaf.jpg")
    second = engine.process_image(lesion_image, "leaf.jpg")

    for before, after in zip(first.tiles, second.tiles):
        c = before.combined_score
        assert after.smoothed_score == pytest.approx(alpha * c + (1 - alpha) * alpha * c)


def test_images_do_not_share_state(engine, lesion_image):
    engine.process_image(lesion_image, "a.jpg")
    engine.process_image(lesion_image, "b.jpg")
    assert len(engine.tracker) == 98


def test_shared_tracker_without_namespacing(attention_config, fake_classifier, healthy_reference, lesion_image):
    config = attention_config.model_copy(update={"namespace_keys_by_image": False})
    tracker = TileStateTracker(alpha=config.alpha)
    engine = TileAttentionEngine(config, fake_classifier, healthy_reference, tracker=tracker)

    engine.process_image(lesion_image, "a.jpg")
    engine.process_image(lesion_image, "b.jpg")

    assert len(tracker) == 49


class FailingClassifier(FakeClassifier):
    def __init__(self, failing_calls):
        super().__init__()
        self.failing_calls = set(failing_calls)

    def predict(self, patch):
        call = self.calls
        probs = super().predict(patch)
        if call in self.failing_calls:
            raise RuntimeError("model exploded")
        return probs


def test_classifier_failures_exclude_tiles(attention_config, healthy_reference, lesion_image):
    config = attention_config.model_copy(update={"selection_size": 49})
    engine = TileAttentionEngine(config, FailingClassifier({0, 5}), healthy_reference)

    result = engine.process_image(lesion_image, "leaf.jpg")

    assert [(tile.x, tile.y) for tile in result.excluded] == [(0, 0), (320, 0)]
    for tile in result.excluded:
        assert tile.smoothed_score is None and tile.combined_score is None
        assert "model exploded" in tile.error
    assert len(result.selected) == 47
    assert all(not item.tile.excluded for item in result.selected)
    assert len(engine.tracker) == 47


class MalformedClassifier(FakeClassifier):
    def predict(self, patch):
        self.calls += 1
        if self.calls == 1:
            return np.array([0.9, 0.9])
        return np.array([0.5, 0.5])


def test_malformed_probabilities_exclude_tiles(attention_config, healthy_reference, lesion_image):
    engine = TileAttentionEngine(attention_config, MalformedClassifier(), healthy_reference)

    result = engine.process_image(lesion_image, "leaf.jpg")

    assert len(result.excluded) == 1
    assert "sum" in result.excluded[0].error


def test_invalid_image_leaves_state_untouched(engine):
    with pytest.raises(InvalidDimensionsError):
        engine.process_image(np.zeros((100, 100, 3)), "tiny.jpg")
    assert len(engine.tracker) == 0


def test_reference_length_must_match_bins(attention_config, fake_classifier):
    with pytest.raises(ShapeMismatchError):
        TileAttentionEngine(attention_config, fake_classifier, np.zeros(10))


def test_cancel_before_start(engine, lesion_image):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ProcessingCancelledError):
        engine.process_image(lesion_image, "leaf.jpg", cancel_event=cancel)
    assert engine.classifier.calls == 0
    assert len(engine.tracker) == 0


class CancellingClassifier(FakeClassifier):
    def __init__(self, event, after):
        super().__init__()
        self.event = event
        self.after = after

    def predict(self, patch):
        probs = super().predict(patch)
        if self.calls == self.after:
            self.event.set()
        return probs


def test_cancel_midway_keeps_earlier_updates(attention_config, healthy_reference, lesion_image):
    cancel = threading.Event()
    engine = TileAttentionEngine(attention_config, CancellingClassifier(cancel, after=3), healthy_reference)

    with pytest.raises(ProcessingCancelledError):
        engine.process_image(lesion_image, "leaf.jpg", cancel_event=cancel)
    assert len(engine.tracker) == 3


def test_batch_inference_matches_single_patch(attention_config, healthy_reference, lesion_image):
    single = TileAttentionEngine(attention_config, FakeClassifier(), healthy_reference)
    batch_classifier = FakeBatchClassifier()
    batched = TileAttentionEngine(
        attention_config.model_copy(update={"batch_size": 8}), batch_classifier, healthy_reference
    )

    expected = single.process_image(lesion_image, "leaf.jpg")
    result = batched.process_image(lesion_image, "leaf.jpg")

    assert [tile.smoothed_score for tile in result.tiles] == pytest.approx(
        [tile.smoothed_score for tile in expected.tiles]
    )
    # 49 patches in chunks of 8: six full batches and one single patch.
    assert batch_classifier.batch_calls == 6
    assert batch_classifier.calls == 49


def test_ground_truth_labels(engine, lesion_image):
    box = GroundTruthBox(x=160, y=160, width=200, height=200)
    result = engine.process_image(lesion_image, "leaf.jpg", ground_truth=box)

    by_position = {(tile.x, tile.y): tile for tile in result.tiles}
    assert by_position[(192, 192)].overlap_ratio == 1.0
    assert by_position[(192, 192)].label == 1
    assert by_position[(0, 0)].label == 0

    summary = summarize_selection(result)
    assert summary is not None
    assert summary.selected_count == 5
    assert summary.positive_count == sum(1 for tile in result.tiles if tile.label == 1)


def test_process_path_scales_ground_truth(engine, tmp_path):
    image = make_lesion_image(size=256, block=(80, 80, 100, 100))
    path = tmp_path / "leaf.png"
    Image.fromarray((image * 255).round().astype(np.uint8)).save(path)

    result = engine.process_path(path, ground_truth=GroundTruthBox(x=80, y=80, width=100, height=100))

    assert result.image_id == "leaf.png"
    by_position = {(tile.x, tile.y): tile for tile in result.tiles}
    assert by_position[(192, 192)].label == 1
    assert by_position[(384, 384)].label == 0


def test_payload_shape(engine, lesion_image):
    payload = engine.process_image(lesion_image, "leaf.jpg").to_payload()

    assert payload["image"] == "leaf.jpg"
    assert len(payload["all_tiles"]) == 49
    assert len(payload["selected_tiles"]) == 5
    first = payload["selected_tiles"][0]
    assert set(first) == {"x", "y", "smoothed_score", "combined_score", "unhealthy_prob", "reason"}
    assert first["reason"] == "exploit"
