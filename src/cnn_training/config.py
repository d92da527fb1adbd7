"""Pydantic frozen configuration models for cnn_training."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_RUN_NAME = "default-model"


class TrainingConfig(BaseModel, frozen=True):
    """Hyperparameters for one training run.

    Immutable for the lifetime of a run. ``learning_rate`` is the only value
    expected to differ between an initial run and a resumed one.

    image_shape is (height, width, channels); tensors fed to the model are
    channels-first.
    """

    epochs: int = Field(default=30, ge=1)
    batch_size: int = Field(default=32, ge=1)
    learning_rate: float = Field(default=1e-3, gt=0.0)
    image_shape: tuple[int, int, int] = (200, 200, 1)
    label_shape: tuple[int, ...] = (7,)
    prefetch_depth: int = Field(default=2, ge=1)

    @field_validator("image_shape")
    @classmethod
    def _check_image_shape(cls, value: tuple[int, int, int]) -> tuple[int, int, int]:
        height, width, channels = value
        if height < 1 or width < 1:
            raise ValueError(f"image height and width must be positive, got {value}")
        if channels not in (1, 3):
            raise ValueError(f"image channels must be 1 or 3, got {channels}")
        return value

    @field_validator("label_shape")
    @classmethod
    def _check_label_shape(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value or any(dim < 1 for dim in value):
            raise ValueError(f"label_shape must be non-empty and positive, got {value}")
        return value


class DataConfig(BaseModel, frozen=True):
    """Dataset location and partitioning.

    The split is rebuilt from these values on every run; nothing about it is
    persisted. Same directory contents + split_ratio + seed give the same split.
    """

    image_dir: str
    label_dir: str
    split_ratio: float = Field(default=0.8, gt=0.0, le=1.0)
    seed: int = 42
    reshuffle_each_epoch: bool = False
    image_extensions: tuple[str, ...] = (".jpg", ".jpeg", ".png")
    label_suffix: str = ".json"

    @field_validator("image_extensions")
    @classmethod
    def _lowercase_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(ext.lower() for ext in value)


class RunConfig(BaseModel, frozen=True):
    """Where a run reads its starting weights from and writes checkpoints to."""

    run_name: str | None = None
    resume_from: str | None = None
    temp_root: str = "cnn-temp"
    model_root: str = "cnn-models"

    @property
    def resolved_run_name(self) -> str:
        """Explicit name, else the resumed checkpoint's directory name."""
        if self.run_name:
            return self.run_name
        if self.resume_from:
            return Path(self.resume_from).name
        return DEFAULT_RUN_NAME
