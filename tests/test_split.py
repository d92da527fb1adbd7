"""Tests for ShuffleSplitter."""

from pathlib import Path

import pytest

from cnn_training.data import ShuffleSplitter
from cnn_training.errors import SampleIndexError
from cnn_training.types import Sample


def _samples(n: int) -> list[Sample]:
    return [
        Sample(id=f"s{i}", image_path=Path(f"s{i}.jpg"), label_path=Path(f"s{i}.json"))
        for i in range(n)
    ]


class TestShuffleSplitter:
    @pytest.mark.parametrize(
        ("n", "ratio", "expected_train"),
        [(10, 0.8, 8), (7, 0.5, 3), (3, 0.9, 2), (1, 0.5, 0)],
    )
    def test_train_size_is_floor(self, n: int, ratio: float, expected_train: int) -> None:
        split = ShuffleSplitter.split(_samples(n), ratio, seed=0)
        assert len(split.train) == expected_train
        assert len(split.val) == n - expected_train

    def test_partition_is_disjoint_and_complete(self) -> None:
        samples = _samples(25)
        split = ShuffleSplitter.split(samples, 0.8, seed=7)
        train_ids = {s.id for s in split.train}
        val_ids = {s.id for s in split.val}
        assert train_ids.isdisjoint(val_ids)
        assert train_ids | val_ids == {s.id for s in samples}

    def test_same_seed_same_split(self) -> None:
        samples = _samples(30)
        first = ShuffleSplitter.split(samples, 0.8, seed=123)
        second = ShuffleSplitter.split(samples, 0.8, seed=123)
        assert first == second

    def test_different_seed_changes_order(self) -> None:
        samples = _samples(30)
        first = ShuffleSplitter.split(samples, 0.8, seed=1)
        second = ShuffleSplitter.split(samples, 0.8, seed=2)
        assert [s.id for s in first.train] != [s.id for s in second.train]

    def test_ratio_one_leaves_validation_empty(self) -> None:
        split = ShuffleSplitter.split(_samples(5), 1.0, seed=0)
        assert len(split.train) == 5
        assert split.val == ()

    def test_empty_index_raises(self) -> None:
        with pytest.raises(SampleIndexError):
            ShuffleSplitter.split([], 0.8, seed=0)

    @pytest.mark.parametrize("ratio", [0.0, 1.2])
    def test_invalid_ratio_raises(self, ratio: float) -> None:
        with pytest.raises(ValueError, match="split ratio"):
            ShuffleSplitter.split(_samples(3), ratio, seed=0)


class TestEpochOrder:
    def test_is_permutation_of_input(self) -> None:
        samples = tuple(_samples(12))
        ordered = ShuffleSplitter.epoch_order(samples, seed=5, epoch=1)
        assert sorted(s.id for s in ordered) == sorted(s.id for s in samples)

    def test_reproducible_per_epoch(self) -> None:
        samples = tuple(_samples(12))
        assert ShuffleSplitter.epoch_order(samples, 5, 2) == ShuffleSplitter.epoch_order(
            samples, 5, 2
        )

    def test_differs_between_epochs(self) -> None:
        samples = tuple(_samples(20))
        assert ShuffleSplitter.epoch_order(samples, 5, 1) != ShuffleSplitter.epoch_order(
            samples, 5, 2
        )
