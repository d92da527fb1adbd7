"""Training loop, checkpointing and progress reporting."""

from cnn_training.training.checkpoint import CheckpointManager, read_checkpoint
from cnn_training.training.loop import LoopState, MetricAccumulator, TrainingLoop
from cnn_training.training.progress import (
    IsolatedReporter,
    LoggingProgressReporter,
    ProgressReporter,
    RichProgressReporter,
)

__all__ = [
    "CheckpointManager",
    "IsolatedReporter",
    "LoggingProgressReporter",
    "LoopState",
    "MetricAccumulator",
    "ProgressReporter",
    "RichProgressReporter",
    "TrainingLoop",
    "read_checkpoint",
]
