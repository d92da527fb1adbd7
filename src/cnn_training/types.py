"""Records and TypedDicts shared between cnn_training modules."""

from pathlib import Path
from typing import TypedDict

import torch
from pydantic import BaseModel


class Sample(BaseModel, frozen=True):
    """One image/label pair.

    Identity is the image file; the label file is only a reference and may
    not exist until the sample is consumed.
    """

    id: str
    image_path: Path
    label_path: Path


class Batch(TypedDict):
    """A single batch from a sample stream.

    images: Float tensor of shape (B, C, H, W) scaled to [0, 1].
    labels: Float tensor of shape (B, *label_shape).
    sample_ids: Ids of the samples in batch order.
    """

    images: torch.Tensor
    labels: torch.Tensor
    sample_ids: list[str]


class Checkpoint(BaseModel, frozen=True):
    """A persisted model snapshot tagged with its epoch and metrics."""

    epoch: int
    path: Path
    metrics: dict[str, float]
