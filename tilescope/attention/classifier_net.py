"""MobileNetV3-based patch classification network."""

from __future__ import annotations

import torch
from torch import nn
from torchvision.models import MobileNet_V3_Small_Weights, mobilenet_v3_small


class PatchClassifierNet(nn.Module):
    """MobileNetV3-Small patch classifier (healthy vs. diseased classes)."""

    def __init__(self, num_classes: int = 2, pretrained: bool = False) -> None:
        super().__init__()
        weights = MobileNet_V3_Small_Weights.IMAGENET1K_V1 if pretrained else None
        base = mobilenet_v3_small(weights=weights)
        self.features = base.features
        self.avgpool = base.avgpool

        classifier_layers = list(base.classifier)
        classifier_layers[-1] = nn.Linear(classifier_layers[-1].in_features, num_classes)
        self.classifier = nn.Sequential(*classifier_layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Forward pass.

        Args:
            x: Input image tensor (N, 3, H, W) in [0, 1].

        Returns:
            Logits tensor.
        """

        x = self.features(x)
        x = self.avgpool(x)
        x = torch.flatten(x, 1)
        return self.classifier(x)


def build_patch_classifier_net(num_classes: int = 2, pretrained: bool = False) -> PatchClassifierNet:
    """Instantiate the default patch classifier architecture."""

    return PatchClassifierNet(num_classes=num_classes, pretrained=pretrained)
