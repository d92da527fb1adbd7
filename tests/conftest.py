"""Shared pytest fixtures for cnn_training tests."""

import json
from collections.abc import Callable, Iterable
from pathlib import Path

import lightning as L
import pytest
import torch
from PIL import Image

from cnn_training.config import DataConfig, TrainingConfig

IMAGE_SHAPE = (16, 16, 1)
LABEL_SHAPE = (2,)

DatasetFactory = Callable[..., tuple[Path, Path]]


def sample_id(i: int) -> str:
    return f"sample_{i:03d}"


@pytest.fixture()
def make_dataset(tmp_path: Path) -> DatasetFactory:
    """Factory writing ``n`` grayscale JPEGs and one JSON label list per image.

    Label of sample i is ``[i, i / 10]``. Ids listed in ``missing_labels`` get
    no label file; ids in ``corrupt_images`` get garbage bytes instead of a JPEG.
    Returns ``(image_dir, label_dir)``.
    """

    def _make(
        n: int,
        missing_labels: Iterable[str] = (),
        corrupt_images: Iterable[str] = (),
        name: str = "dataset",
    ) -> tuple[Path, Path]:
        image_dir = tmp_path / name / "images"
        label_dir = tmp_path / name / "labels"
        image_dir.mkdir(parents=True)
        label_dir.mkdir(parents=True)
        missing = set(missing_labels)
        corrupt = set(corrupt_images)
        for i in range(n):
            sid = sample_id(i)
            if sid in corrupt:
                (image_dir / f"{sid}.jpg").write_bytes(b"not an image")
            else:
                Image.new("L", (20, 24), color=(i * 25) % 256).save(image_dir / f"{sid}.jpg")
            if sid not in missing:
                (label_dir / f"{sid}.json").write_text(json.dumps([float(i), i / 10]))
        return image_dir, label_dir

    return _make


@pytest.fixture()
def training_config() -> TrainingConfig:
    return TrainingConfig(
        epochs=3,
        batch_size=4,
        learning_rate=1e-3,
        image_shape=IMAGE_SHAPE,
        label_shape=LABEL_SHAPE,
        prefetch_depth=2,
    )


@pytest.fixture()
def data_config_for() -> Callable[[Path, Path], DataConfig]:
    def _build(image_dir: Path, label_dir: Path, **kwargs: object) -> DataConfig:
        return DataConfig(image_dir=str(image_dir), label_dir=str(label_dir), **kwargs)  # type: ignore[arg-type]

    return _build


@pytest.fixture()
def cpu_fabric() -> L.Fabric:
    return L.Fabric(accelerator="cpu", devices=1)


class RecordingModel:
    """Deterministic stand-in for a trainable model.

    Loss after step k is ``1 / k``; evaluation loss is fixed. Records every
    batch it sees and every save, so tests can assert on ordering.
    """

    def __init__(self, image_shape: tuple[int, int, int] = IMAGE_SHAPE) -> None:
        height, width, channels = image_shape
        self._input_shape = (channels, height, width)
        self.steps = 0
        self.train_batch_sizes: list[int] = []
        self.eval_batch_sizes: list[int] = []
        self.events: list[str] = []
        self.fail_on_save = False

    @property
    def input_shape(self) -> tuple[int, ...]:
        return self._input_shape

    @property
    def output_shape(self) -> tuple[int, ...]:
        return LABEL_SHAPE

    @property
    def learning_rate(self) -> float:
        return 1e-3

    def predict(self, images: torch.Tensor) -> torch.Tensor:
        return torch.zeros(images.shape[0], *LABEL_SHAPE)

    def train_step(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]:
        self.steps += 1
        self.events.append("train")
        self.train_batch_sizes.append(images.shape[0])
        return {"loss": 1.0 / self.steps}

    def evaluate(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]:
        self.events.append("eval")
        self.eval_batch_sizes.append(images.shape[0])
        return {"loss": 0.25}

    def save(self, path: Path) -> None:
        if self.fail_on_save:
            raise OSError("disk full")
        self.events.append("save")
        (Path(path) / "weights.json").write_text(json.dumps({"steps": self.steps}))


@pytest.fixture()
def recording_model() -> RecordingModel:
    return RecordingModel()
