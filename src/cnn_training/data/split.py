"""Deterministic shuffled train/validation partitioning."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
from pydantic import BaseModel

from cnn_training.errors import SampleIndexError
from cnn_training.types import Sample


class Split(BaseModel, frozen=True):
    """Train/validation partition of a sample index.

    Disjoint, and together they cover the index exactly once.
    """

    train: tuple[Sample, ...]
    val: tuple[Sample, ...]


class ShuffleSplitter:
    """Seeded shuffle followed by a head/tail cut.

    The permutation comes from ``numpy.random.default_rng(seed)``, so the same
    (index order, ratio, seed) always yields the same split, across processes
    and platforms. Nothing is persisted: the split is rebuilt every run.
    """

    @staticmethod
    def split(index: Sequence[Sample], ratio: float, seed: int) -> Split:
        """Partition index into floor(N * ratio) train samples and the rest.

        Raises:
            SampleIndexError: index is empty.
            ValueError: ratio is outside (0, 1].
        """
        if not 0.0 < ratio <= 1.0:
            raise ValueError(f"split ratio must be in (0, 1], got {ratio}")
        n = len(index)
        if n == 0:
            raise SampleIndexError("Cannot split an empty sample index")

        perm = np.random.default_rng(seed).permutation(n)
        train_size = math.floor(n * ratio)
        train = tuple(index[int(i)] for i in perm[:train_size])
        val = tuple(index[int(i)] for i in perm[train_size:])
        return Split(train=train, val=val)

    @staticmethod
    def epoch_order(
        samples: Sequence[Sample], seed: int, epoch: int
    ) -> tuple[Sample, ...]:
        """Per-epoch reshuffle of an already split stream.

        Seeded from (seed, epoch) so every epoch gets its own order and a
        rerun reproduces all of them.
        """
        rng = np.random.default_rng([seed, epoch])
        perm = rng.permutation(len(samples))
        return tuple(samples[int(i)] for i in perm)
