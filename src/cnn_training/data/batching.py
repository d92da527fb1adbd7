"""Lazy grouping of an ordered sample stream into fixed-size batches."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

import numpy as np
import torch

from cnn_training.data.labels import LabelSource
from cnn_training.errors import DecodeError, SampleError
from cnn_training.types import Batch, Sample


class BatchAssembler:
    """Read, decode and label samples batch by batch.

    Nothing is loaded until the batch containing a sample is requested, so
    memory stays bounded by one batch (plus whatever the prefetcher holds).
    Every batch has ``batch_size`` samples except possibly the last one.

    Per-sample failures propagate: a missing label or undecodable image
    aborts the stream at the batch that contains it, with the sample id
    attached to the error.

    Args:
        decoder: ``bytes -> Tensor`` of shape (C, H, W).
        label_source: Resolves each sample's label vector.
        batch_size: Samples per batch.
    """

    def __init__(
        self,
        decoder: Callable[[bytes], torch.Tensor],
        label_source: LabelSource,
        batch_size: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.decoder = decoder
        self.label_source = label_source
        self.batch_size = batch_size

    def assemble(self, samples: Iterable[Sample]) -> Iterator[Batch]:
        """Return a one-shot iterator of batches over samples, in order."""
        pending: list[Sample] = []
        for sample in samples:
            pending.append(sample)
            if len(pending) == self.batch_size:
                yield self._build(pending)
                pending = []
        if pending:
            yield self._build(pending)

    def _build(self, samples: list[Sample]) -> Batch:
        images: list[torch.Tensor] = []
        labels: list[np.ndarray] = []
        for sample in samples:
            try:
                images.append(self._decode(sample))
                labels.append(self.label_source.load(sample))
            except SampleError as e:
                if e.sample_id is None:
                    e.sample_id = sample.id
                raise
        return {
            "images": torch.stack(images),
            "labels": torch.from_numpy(np.stack(labels)),
            "sample_ids": [s.id for s in samples],
        }

    def _decode(self, sample: Sample) -> torch.Tensor:
        try:
            raw = sample.image_path.read_bytes()
        except OSError as e:
            raise DecodeError(f"Cannot read {sample.image_path}: {e}", sample.id) from e
        return self.decoder(raw)
