"""Model variants and the trainable model implementation."""

from cnn_training.models.architectures import (
    Architecture,
    ClassifierArchitecture,
    RegressorArchitecture,
    parse_architecture,
)
from cnn_training.models.base import ImageModel, TrainableModel
from cnn_training.models.network import SmallConvNet

__all__ = [
    "Architecture",
    "ClassifierArchitecture",
    "ImageModel",
    "RegressorArchitecture",
    "SmallConvNet",
    "TrainableModel",
    "parse_architecture",
]
