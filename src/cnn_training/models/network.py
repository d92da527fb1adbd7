"""Small convolutional backbone shared by every architecture variant."""

from __future__ import annotations

import torch
from torch import nn

# (filters, dropout) per convolutional block
_BLOCKS: tuple[tuple[int, float], ...] = ((32, 0.1), (64, 0.1), (128, 0.5))
_HIDDEN_UNITS = 128
_HEAD_DROPOUT = 0.3
_LEAKY_SLOPE = 0.1


def _conv_block(in_channels: int, filters: int, dropout: float) -> nn.Sequential:
    return nn.Sequential(
        nn.Conv2d(in_channels, filters, kernel_size=3, padding=1, bias=False),
        nn.BatchNorm2d(filters),
        nn.LeakyReLU(_LEAKY_SLOPE),
        nn.MaxPool2d(2),
        nn.Dropout(dropout),
    )


class SmallConvNet(nn.Module):
    """Three conv-BN-LeakyReLU-pool blocks, global average pool, dense head.

    Produces raw outputs (logits for classifiers, values for regressors);
    the architecture variant decides how to activate them. Inputs must be at
    least 8x8 so three 2x poolings leave a non-empty feature map.

    Args:
        in_channels: 1 for grayscale, 3 for RGB inputs.
        out_features: Width of the final layer.
    """

    def __init__(self, in_channels: int, out_features: int) -> None:
        super().__init__()
        blocks = []
        channels = in_channels
        for filters, dropout in _BLOCKS:
            blocks.append(_conv_block(channels, filters, dropout))
            channels = filters
        self.features = nn.Sequential(*blocks)
        self.pool = nn.AdaptiveAvgPool2d(1)
        self.head = nn.Sequential(
            nn.Flatten(),
            nn.Linear(channels, _HIDDEN_UNITS),
            nn.LeakyReLU(_LEAKY_SLOPE),
            nn.Dropout(_HEAD_DROPOUT),
            nn.Linear(_HIDDEN_UNITS, out_features),
        )

    def forward(self, images: torch.Tensor) -> torch.Tensor:
        return self.head(self.pool(self.features(images)))  # type: ignore[no-any-return]
