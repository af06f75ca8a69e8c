import numpy as np
import pytest

from tilescope.attention.sampling import SlidingWindowSampler
from tilescope.errors import InvalidDimensionsError


def test_default_grid_on_512_image():
    sampler = SlidingWindowSampler(patch_size=128, stride=64)
    image = np.zeros((512, 512, 3), dtype=np.float32)

    patches = sampler.partition(image)

    assert len(patches) == 49
    assert sampler.grid_shape(image) == (7, 7)
    for sample in patches:
        assert sample.patch.shape == (128, 128, 3)
        assert sample.x + 128 <= 512
        assert sample.y + 128 <= 512


def test_row_major_order():
    sampler = SlidingWindowSampler(patch_size=128, stride=64)
    patches = sampler.partition(np.zeros((512, 512, 3)))

    coords = [(p.x, p.y) for p in patches]
    assert coords[:7] == [(x, 0) for x in range(0, 385, 64)]
    assert coords[7] == (0, 64)
    assert coords[-1] == (384, 384)


def test_patch_views_match_image_content():
    image = np.random.default_rng(0).random((256, 256, 3))
    sampler = SlidingWindowSampler(patch_size=128, stride=64)

    for sample in sampler.iter_patches(image):
        np.testing.assert_array_equal(sample.patch, image[sample.y : sample.y + 128, sample.x : sample.x + 128])


def test_border_remainder_is_dropped():
    sampler = SlidingWindowSampler(patch_size=128, stride=64)
    patches = sampler.partition(np.zeros((300, 200, 3)))

    assert [(p.x, p.y) for p in patches] == [(0, 0), (64, 0), (0, 64), (64, 64), (0, 128), (64, 128)]


@pytest.mark.parametrize("shape", [(100, 512, 3), (512, 100, 3), (512, 512), (512, 512, 4)])
def test_invalid_dimensions(shape):
    sampler = SlidingWindowSampler(patch_size=128, stride=64)
    with pytest.raises(InvalidDimensionsError):
        sampler.partition(np.zeros(shape))


def test_invalid_dimensions_is_a_value_error():
    with pytest.raises(ValueError):
        SlidingWindowSampler(patch_size=0, stride=64)
