"""Raw image bytes to fixed-shape float tensors."""

from __future__ import annotations

import io

import torch
from PIL import Image
from torchvision.transforms import InterpolationMode, v2

from cnn_training.errors import DecodeError


class ImageDecoder:
    """Decode, resize and scale one image.

    Pure function of its input: the same bytes always produce the same
    tensor. Single-channel shapes decode to grayscale, three-channel shapes
    to RGB. Resizing uses nearest-neighbour sampling and values are scaled to
    ``[0.0, 1.0]``.

    Args:
        image_shape: Target (height, width, channels).
    """

    def __init__(self, image_shape: tuple[int, int, int]) -> None:
        height, width, channels = image_shape
        if channels not in (1, 3):
            raise ValueError(f"channels must be 1 or 3, got {channels}")
        self.image_shape = image_shape
        self._mode = "L" if channels == 1 else "RGB"
        self._pipeline = v2.Compose([
            v2.Resize((height, width), interpolation=InterpolationMode.NEAREST),
            v2.ToImage(),
            v2.ToDtype(torch.float32, scale=True),
        ])

    @property
    def output_shape(self) -> tuple[int, int, int]:
        """Channels-first shape of decoded tensors."""
        height, width, channels = self.image_shape
        return (channels, height, width)

    def __call__(self, raw: bytes) -> torch.Tensor:
        try:
            with Image.open(io.BytesIO(raw)) as img:
                converted = img.convert(self._mode)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            # PIL.UnidentifiedImageError and truncated-file errors are OSErrors
            raise DecodeError(f"Cannot decode image: {e}") from e
        # ToImage yields a tv_tensors.Image; downstream code wants a plain tensor
        return self._pipeline(converted).as_subclass(torch.Tensor)  # type: ignore[no-any-return]
