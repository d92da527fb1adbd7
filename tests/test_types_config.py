"""Unit tests for cnn_training.config and cnn_training.types."""

from pathlib import Path

import pytest
import torch
from pydantic import ValidationError

from cnn_training.config import DEFAULT_RUN_NAME, DataConfig, RunConfig, TrainingConfig
from cnn_training.types import Batch, Checkpoint, Sample

# Dummy paths: satisfy str fields; never accessed on the filesystem.
_DUMMY_IMAGES = "/data/images"
_DUMMY_LABELS = "/data/labels"


class TestTrainingConfig:
    def test_defaults(self) -> None:
        cfg = TrainingConfig()
        assert cfg.epochs == 30
        assert cfg.batch_size == 32
        assert cfg.learning_rate == pytest.approx(1e-3)
        assert cfg.image_shape == (200, 200, 1)
        assert cfg.prefetch_depth == 2

    def test_frozen_raises_on_mutation(self) -> None:
        cfg = TrainingConfig()
        with pytest.raises(ValidationError):
            cfg.learning_rate = 0.1  # type: ignore[misc]

    @pytest.mark.parametrize("channels", [2, 4])
    def test_rejects_unsupported_channel_counts(self, channels: int) -> None:
        with pytest.raises(ValidationError, match="channels must be 1 or 3"):
            TrainingConfig(image_shape=(32, 32, channels))

    def test_rejects_non_positive_batch_size(self) -> None:
        with pytest.raises(ValidationError):
            TrainingConfig(batch_size=0)

    def test_rejects_zero_prefetch_depth(self) -> None:
        with pytest.raises(ValidationError):
            TrainingConfig(prefetch_depth=0)

    def test_rejects_empty_label_shape(self) -> None:
        with pytest.raises(ValidationError):
            TrainingConfig(label_shape=())


class TestDataConfig:
    def test_defaults(self) -> None:
        cfg = DataConfig(image_dir=_DUMMY_IMAGES, label_dir=_DUMMY_LABELS)
        assert cfg.split_ratio == pytest.approx(0.8)
        assert cfg.seed == 42
        assert cfg.reshuffle_each_epoch is False
        assert cfg.label_suffix == ".json"

    @pytest.mark.parametrize("ratio", [0.0, -0.1, 1.5])
    def test_split_ratio_bounds(self, ratio: float) -> None:
        with pytest.raises(ValidationError):
            DataConfig(image_dir=_DUMMY_IMAGES, label_dir=_DUMMY_LABELS, split_ratio=ratio)

    def test_ratio_one_is_allowed(self) -> None:
        cfg = DataConfig(image_dir=_DUMMY_IMAGES, label_dir=_DUMMY_LABELS, split_ratio=1.0)
        assert cfg.split_ratio == 1.0

    def test_extensions_lowercased(self) -> None:
        cfg = DataConfig(
            image_dir=_DUMMY_IMAGES, label_dir=_DUMMY_LABELS, image_extensions=(".JPG",)
        )
        assert cfg.image_extensions == (".jpg",)


class TestRunConfig:
    def test_explicit_run_name_wins(self) -> None:
        cfg = RunConfig(run_name="mine", resume_from="cnn-models/other")
        assert cfg.resolved_run_name == "mine"

    def test_run_name_from_resume_path(self) -> None:
        cfg = RunConfig(resume_from="cnn-models/classifier")
        assert cfg.resolved_run_name == "classifier"

    def test_fallback_run_name(self) -> None:
        assert RunConfig().resolved_run_name == DEFAULT_RUN_NAME


class TestTypes:
    def test_sample_is_frozen(self) -> None:
        sample = Sample(id="a", image_path=Path("a.jpg"), label_path=Path("a.json"))
        with pytest.raises(ValidationError):
            sample.id = "b"  # type: ignore[misc]

    def test_batch_typed_dict_keys(self) -> None:
        batch: Batch = {
            "images": torch.zeros(4, 1, 16, 16),
            "labels": torch.zeros(4, 2),
            "sample_ids": ["a", "b", "c", "d"],
        }
        assert batch["images"].shape == (4, 1, 16, 16)
        assert len(batch["sample_ids"]) == 4

    def test_checkpoint_roundtrips_metrics(self) -> None:
        ckpt = Checkpoint(epoch=2, path=Path("/tmp/x"), metrics={"loss": 0.5})
        assert ckpt.metrics["loss"] == 0.5
