import numpy as np
import pytest

from helpers import BACKGROUND, FakeClassifier, make_lesion_image
from tilescope.attention.config import AttentionSelectorConfig
from tilescope.attention.utils.features import compute_color_histogram


@pytest.fixture
def attention_config(tmp_path):
    return AttentionSelectorConfig(
        epsilon=0.0,
        selection_size=5,
        seed=0,
        output_dir=tmp_path / "output",
        reference_histogram_path=tmp_path / "output" / "reference.npy",
    )


@pytest.fixture
def lesion_image():
    return make_lesion_image()


@pytest.fixture
def healthy_reference(attention_config):
    patch = np.empty((attention_config.patch_size, attention_config.patch_size, 3), dtype=np.float32)
    patch[...] = BACKGROUND
    return compute_color_histogram(patch, bins=attention_config.bins)


@pytest.fixture
def fake_classifier():
    return FakeClassifier()
