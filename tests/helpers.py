"""Shared fakes and synthetic images for the test-suite."""

import io

import numpy as np
from PIL import Image

BACKGROUND = (0.2, 0.6, 0.2)
LESION = (1.0, 0.0, 1.0)


class FakeClassifier:
    """Two-class classifier whose 'unhealthy' probability is the patch's mean red value."""

    def __init__(self):
        self.calls = 0

    def predict(self, patch):
        self.calls += 1
        red = float(np.clip(np.mean(patch[..., 0]), 0.0, 1.0))
        return np.array([1.0 - red, red])


class FakeBatchClassifier(FakeClassifier):
    def __init__(self):
        super().__init__()
        self.batch_calls = 0

    def predict_batch(self, patches):
        self.batch_calls += 1
        return np.stack([self.predict(patch) for patch in patches])


def make_lesion_image(size=512, block=(160, 160, 200, 200)):
    """Uniform leaf-green image with one block of extreme color."""

    image = np.empty((size, size, 3), dtype=np.float32)
    image[...] = BACKGROUND
    x, y, w, h = block
    image[y : y + h, x : x + w] = LESION
    return image


def encode_png(image):
    buffer = io.BytesIO()
    Image.fromarray((np.clip(image, 0, 1) * 255).round().astype(np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()
