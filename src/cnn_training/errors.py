"""Exception hierarchy for the training pipeline."""

from __future__ import annotations


class TrainingPipelineError(Exception):
    """Base class for every error raised by cnn_training."""


class SampleIndexError(TrainingPipelineError):
    """The image directory is unreadable or holds no usable samples."""


class SampleError(TrainingPipelineError):
    """A single sample could not be turned into a training example.

    ``sample_id`` is filled in by whoever knows which sample failed; the
    batch assembler attaches it when the error surfaces while a batch is
    being built.
    """

    def __init__(self, message: str, sample_id: str | None = None) -> None:
        super().__init__(message)
        self.sample_id = sample_id

    def __str__(self) -> str:
        message = super().__str__()
        if self.sample_id is None:
            return message
        return f"[sample {self.sample_id}] {message}"


class LabelNotFoundError(SampleError):
    """No label artifact exists for the sample."""


class LabelParseError(SampleError):
    """The label artifact exists but cannot be parsed into a label vector."""


class DecodeError(SampleError):
    """The raw image bytes cannot be decoded."""


class CheckpointWriteError(TrainingPipelineError):
    """A checkpoint could not be persisted."""


class CheckpointLoadError(TrainingPipelineError):
    """A checkpoint could not be read back."""


class ReporterError(TrainingPipelineError):
    """A progress reporter failed. Never fatal."""
