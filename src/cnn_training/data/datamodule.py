"""Streaming data module: index -> split -> batches -> prefetch."""

from collections.abc import Callable
from pathlib import Path

import torch
from loguru import logger

from cnn_training.config import DataConfig, TrainingConfig
from cnn_training.data.batching import BatchAssembler
from cnn_training.data.index import SampleIndex
from cnn_training.data.labels import LabelSource
from cnn_training.data.prefetch import Prefetcher
from cnn_training.data.split import ShuffleSplitter, Split
from cnn_training.data.utils import num_batches
from cnn_training.transforms import ImageDecoder
from cnn_training.types import Batch, Sample


class ImageStreamDataModule:
    """Builds the per-run train/validation batch streams.

    The index and split are computed once in :meth:`setup` and then reused
    for every epoch. Each call to :meth:`train_batches` or
    :meth:`val_batches` returns a fresh one-shot :class:`Prefetcher`.

    When ``reshuffle_each_epoch`` is enabled, the train split (never the
    validation split) is re-permuted per epoch with a seed derived from
    ``(seed, epoch)``. Otherwise the split order is used as-is every epoch.

    Args:
        data_config: Dataset location, split ratio and seed.
        training_config: Batch size, image/label shapes and prefetch depth.
        label_source: Resolves label vectors; its ``label_shape`` must match
            ``training_config.label_shape``.
        decoder: Optional override of the image decoder (bytes -> tensor).
    """

    def __init__(
        self,
        data_config: DataConfig,
        training_config: TrainingConfig,
        label_source: LabelSource,
        decoder: Callable[[bytes], torch.Tensor] | None = None,
    ) -> None:
        if tuple(label_source.label_shape) != training_config.label_shape:
            raise ValueError(
                f"label source shape {label_source.label_shape} does not match "
                f"configured label_shape {training_config.label_shape}"
            )
        self._data_config = data_config
        self._training_config = training_config
        self._assembler = BatchAssembler(
            decoder=decoder or ImageDecoder(training_config.image_shape),
            label_source=label_source,
            batch_size=training_config.batch_size,
        )
        self._index: SampleIndex | None = None
        self._split: Split | None = None

    def setup(self) -> None:
        """Index the image directory and partition it into train/val."""
        self._index = SampleIndex.build(
            Path(self._data_config.image_dir),
            Path(self._data_config.label_dir),
            extensions=self._data_config.image_extensions,
            label_suffix=self._data_config.label_suffix,
        )
        self._split = ShuffleSplitter.split(
            self._index, self._data_config.split_ratio, self._data_config.seed
        )
        logger.info(
            f"Setup fit: train={len(self._split.train)}, "
            f"val={len(self._split.val)} samples "
            f"(ratio={self._data_config.split_ratio}, seed={self._data_config.seed})"
        )
        if not self._split.val:
            logger.warning("Validation split is empty; validation metrics will be skipped")

    @property
    def split(self) -> Split:
        if self._split is None:
            raise RuntimeError("Call setup() first")
        return self._split

    @property
    def num_train_batches(self) -> int:
        return num_batches(len(self.split.train), self._training_config.batch_size)

    @property
    def num_val_batches(self) -> int:
        return num_batches(len(self.split.val), self._training_config.batch_size)

    def train_samples(self, epoch: int) -> tuple[Sample, ...]:
        """Train stream order for a 1-based epoch."""
        if self._data_config.reshuffle_each_epoch:
            return ShuffleSplitter.epoch_order(
                self.split.train, self._data_config.seed, epoch
            )
        return self.split.train

    def train_batches(self, epoch: int) -> Prefetcher[Batch]:
        """Fresh prefetched train stream for a 1-based epoch."""
        return Prefetcher(
            self._assembler.assemble(self.train_samples(epoch)),
            depth=self._training_config.prefetch_depth,
            name=f"prefetch-train-{epoch}",
        )

    def val_batches(self) -> Prefetcher[Batch]:
        """Fresh prefetched validation stream (always in split order)."""
        return Prefetcher(
            self._assembler.assemble(self.split.val),
            depth=self._training_config.prefetch_depth,
            name="prefetch-val",
        )
