"""Patch classifier boundary.

The engine only needs ``predict(patch) -> probabilities``. ``TorchPatchClassifier``
adapts a torch module to that contract; torch is imported lazily so the
scoring and selection code stays usable without it.
"""

from __future__ import annotations

import logging
import pickle
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

import numpy as np

from tilescope.errors import ClassifierFailureError

logger = logging.getLogger(__name__)


@runtime_checkable
class PatchClassifier(Protocol):
    """Maps an (H, W, 3) patch in [0, 1] to a class probability vector."""

    def predict(self, patch: np.ndarray) -> np.ndarray: ...


@runtime_checkable
class BatchPatchClassifier(PatchClassifier, Protocol):
    """A classifier that can also score several patches per call."""

    def predict_batch(self, patches: Sequence[np.ndarray]) -> np.ndarray: ...


def validate_probabilities(probs: Any, tolerance: float = 1e-3) -> np.ndarray:
    """Check a classifier output and return it as a float vector.

    Args:
        probs: Raw classifier output.
        tolerance: Allowed deviation of the sum from 1.

    Returns:
        1D float64 probability vector.

    Raises:
        ClassifierFailureError: If the output is not a usable probability vector.
    """

    if probs is None:
        raise ClassifierFailureError("Classifier returned no output")
    try:
        vector = np.asarray(probs, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ClassifierFailureError(f"Classifier output is not numeric: {exc}") from exc

    vector = np.squeeze(vector)
    if vector.ndim != 1:
        raise ClassifierFailureError(f"Expected a 1D probability vector, got shape {vector.shape}")
    if vector.size < 2:
        raise ClassifierFailureError(f"Expected at least 2 classes, got {vector.size}")
    if not np.all(np.isfinite(vector)):
        raise ClassifierFailureError("Classifier output contains non-finite values")
    if np.any(vector < 0.0):
        raise ClassifierFailureError("Classifier output contains negative probabilities")
    total = float(vector.sum())
    if abs(total - 1.0) > tolerance:
        raise ClassifierFailureError(f"Classifier probabilities sum to {total:.6f}, expected 1")
    return vector


class TorchPatchClassifier:
    """Run a torch classification module on numpy patches.

    Patches are resized (bilinear) to ``input_size`` and fed as NCHW float
    tensors in [0, 1]. Outputs that are not already a probability distribution
    are passed through softmax unless ``apply_softmax`` says otherwise.
    """

    def __init__(self, model: Any, input_size: int = 224, device: str = "cpu", apply_softmax: bool | None = None) -> None:
        import torch

        self.device = torch.device(device)
        self.model = model.to(self.device)
        self.model.eval()
        self.input_size = int(input_size)
        self.apply_softmax = apply_softmax

    def _to_tensor(self, patches: Sequence[np.ndarray]):
        import torch
        from torch.nn import functional as F

        batch = np.stack([np.asarray(patch, dtype=np.float32) for patch in patches])
        tensor = torch.from_numpy(batch).permute(0, 3, 1, 2).contiguous()
        if tensor.shape[-2:] != (self.input_size, self.input_size):
            tensor = F.interpolate(tensor, size=(self.input_size, self.input_size), mode="bilinear", align_corners=False)
        return tensor.to(self.device)

    def _to_probabilities(self, outputs):
        import torch

        if self.apply_softmax is True:
            return torch.softmax(outputs, dim=1)
        if self.apply_softmax is False:
            return outputs
        sums = outputs.sum(dim=1)
        is_distribution = bool(torch.all(outputs >= 0)) and bool(torch.allclose(sums, torch.ones_like(sums), atol=1e-4))
        return outputs if is_distribution else torch.softmax(outputs, dim=1)

    def predict_batch(self, patches: Sequence[np.ndarray]) -> np.ndarray:
        """Return an (N, num_classes) probability array."""

        import torch

        with torch.no_grad():
            outputs = self.model(self._to_tensor(patches))
            if isinstance(outputs, (tuple, list)):
                outputs = outputs[0]
            probs = self._to_probabilities(outputs.float())
        return probs.cpu().numpy().astype(np.float64)

    def predict(self, patch: np.ndarray) -> np.ndarray:
        return self.predict_batch([patch])[0]


def _torch_load_compat(path: Path, map_location: str = "cpu") -> object:
    """Load a torch checkpoint across PyTorch versions.

    PyTorch 2.6 changed the ``torch.load`` default to ``weights_only=True``;
    checkpoints holding whole modules need ``weights_only=False``.
    """

    import torch

    try:
        return torch.load(path, map_location=map_location)
    except pickle.UnpicklingError as e:
        try:
            return torch.load(path, map_location=map_location, weights_only=False)
        except TypeError:
            raise e


def load_torch_patch_classifier(model_path: Path, *, input_size: int | None = None, device: str = "cpu") -> TorchPatchClassifier:
    """Load a trained patch classifier checkpoint.

    Accepts either a pickled ``nn.Module`` or a dict with ``state_dict`` (or
    ``model_state``), optional ``num_classes`` and optional ``input_size``.

    Args:
        model_path: Checkpoint path.
        input_size: Overrides the checkpoint's input size.
        device: Torch device string.

    Returns:
        TorchPatchClassifier ready for inference.
    """

    import torch

    from tilescope.attention.classifier_net import build_patch_classifier_net

    model_path = Path(model_path).expanduser()
    if not model_path.exists():
        raise FileNotFoundError(f"Patch classifier checkpoint not found: {model_path}")

    payload = _torch_load_compat(model_path, map_location="cpu")
    if isinstance(payload, torch.nn.Module):
        model = payload
        stored_size = None
    elif isinstance(payload, dict):
        state = payload.get("state_dict") or payload.get("model_state")
        if not isinstance(state, dict):
            raise ValueError("Unexpected checkpoint format (expected dict with state_dict/model_state)")
        num_classes = int(payload.get("num_classes") or state["classifier.3.weight"].shape[0])
        model = build_patch_classifier_net(num_classes=num_classes, pretrained=False)
        model.load_state_dict(state, strict=True)
        stored_size = payload.get("input_size")
    else:
        raise ValueError(f"Unsupported checkpoint payload type: {type(payload).__name__}")

    resolved_size = int(input_size or stored_size or 224)
    logger.info("Patch classifier loaded from %s (input_size=%d, device=%s)", model_path, resolved_size, device)
    return TorchPatchClassifier(model, input_size=resolved_size, device=device)
