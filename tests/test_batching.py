"""Tests for BatchAssembler."""

from pathlib import Path

import pytest
import torch

from cnn_training.data import BatchAssembler, JsonLabelSource, SampleIndex
from cnn_training.errors import DecodeError, LabelNotFoundError
from cnn_training.transforms import ImageDecoder

from conftest import IMAGE_SHAPE, LABEL_SHAPE, DatasetFactory, sample_id


def _assembler(batch_size: int) -> BatchAssembler:
    return BatchAssembler(
        decoder=ImageDecoder(IMAGE_SHAPE),
        label_source=JsonLabelSource(LABEL_SHAPE),
        batch_size=batch_size,
    )


class TestBatchAssembler:
    def test_batch_sizes_with_partial_tail(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(10)
        index = SampleIndex.build(image_dir, label_dir)
        batches = list(_assembler(4).assemble(index))
        assert [len(b["sample_ids"]) for b in batches] == [4, 4, 2]

    def test_tensor_shapes(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(5)
        index = SampleIndex.build(image_dir, label_dir)
        batch = next(iter(_assembler(4).assemble(index)))
        assert batch["images"].shape == (4, 1, 16, 16)
        assert batch["images"].dtype == torch.float32
        assert batch["labels"].shape == (4, 2)

    def test_preserves_order_and_covers_every_sample(
        self, make_dataset: DatasetFactory
    ) -> None:
        image_dir, label_dir = make_dataset(7)
        index = SampleIndex.build(image_dir, label_dir)
        ids = [sid for b in _assembler(3).assemble(index) for sid in b["sample_ids"]]
        assert ids == [sample_id(i) for i in range(7)]

    def test_labels_match_their_images(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(3)
        index = SampleIndex.build(image_dir, label_dir)
        batch = next(iter(_assembler(3).assemble(index)))
        torch.testing.assert_close(batch["labels"][2], torch.tensor([2.0, 0.2]))

    def test_empty_input_yields_nothing(self) -> None:
        assert list(_assembler(4).assemble([])) == []

    def test_is_lazy(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(8, missing_labels=[sample_id(6)])
        index = SampleIndex.build(image_dir, label_dir)
        stream = _assembler(4).assemble(index)
        # The first batch is fine; the broken sample only surfaces in the second.
        assert len(next(stream)["sample_ids"]) == 4
        with pytest.raises(LabelNotFoundError):
            next(stream)

    def test_missing_label_carries_sample_id(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(5, missing_labels=[sample_id(3)])
        index = SampleIndex.build(image_dir, label_dir)
        with pytest.raises(LabelNotFoundError) as exc_info:
            list(_assembler(4).assemble(index))
        assert exc_info.value.sample_id == sample_id(3)

    def test_corrupt_image_carries_sample_id(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(3, corrupt_images=[sample_id(1)])
        index = SampleIndex.build(image_dir, label_dir)
        with pytest.raises(DecodeError) as exc_info:
            list(_assembler(4).assemble(index))
        assert exc_info.value.sample_id == sample_id(1)

    def test_unreadable_image_is_decode_error(self, make_dataset: DatasetFactory) -> None:
        image_dir, label_dir = make_dataset(2)
        index = SampleIndex.build(image_dir, label_dir)
        Path(index[0].image_path).unlink()
        with pytest.raises(DecodeError, match="Cannot read"):
            list(_assembler(2).assemble(index))

    def test_rejects_non_positive_batch_size(self) -> None:
        with pytest.raises(ValueError):
            _assembler(0)
