"""Sample enumeration: pairs image files with their (lazily resolved) labels."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

from loguru import logger

from cnn_training.data.utils import get_files
from cnn_training.errors import SampleIndexError
from cnn_training.types import Sample


class SampleIndex(Sequence[Sample]):
    """Ordered, immutable sequence of samples built once per run.

    Base order is the sorted directory listing. Label files are never opened
    here: a missing or malformed label only surfaces when the sample is
    consumed by the batch assembler.
    """

    def __init__(self, samples: Sequence[Sample]) -> None:
        self._samples: tuple[Sample, ...] = tuple(samples)

    @classmethod
    def build(
        cls,
        image_dir: Path,
        label_dir: Path,
        extensions: tuple[str, ...] = (".jpg", ".jpeg", ".png"),
        label_suffix: str = ".json",
    ) -> SampleIndex:
        """List image_dir and build one Sample per eligible image.

        Raises:
            SampleIndexError: image_dir cannot be listed or has no eligible images.
        """
        image_dir = Path(image_dir)
        label_dir = Path(label_dir)
        try:
            image_files = get_files(image_dir, extensions)
        except OSError as e:
            raise SampleIndexError(f"Cannot read image directory {image_dir}: {e}") from e

        if not image_files:
            raise SampleIndexError(
                f"No images with extensions {extensions} found in {image_dir}"
            )

        samples = [
            Sample(
                id=path.stem,
                image_path=path,
                label_path=label_dir / f"{path.stem}{label_suffix}",
            )
            for path in image_files
        ]
        logger.info(f"Indexed {len(samples)} samples from {image_dir}")
        return cls(samples)

    def size(self) -> int:
        return len(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __getitem__(self, idx):  # type: ignore[no-untyped-def, override]
        return self._samples[idx]

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)
