"""Image decode transforms feeding the training pipeline."""

from cnn_training.transforms.decode import ImageDecoder

__all__ = ["ImageDecoder"]
