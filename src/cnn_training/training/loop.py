"""Epoch-driven training loop.

State machine::

    IDLE -> EPOCH_RUNNING -> EPOCH_ENDING -> (EPOCH_RUNNING | DONE)
    any  -> FAILED

EPOCH_RUNNING streams the train split through ``model.train_step``.
EPOCH_ENDING runs a full validation pass, writes the epoch checkpoint and
only then tells the reporter the epoch is over. After the last epoch the
final model is written and the loop is DONE. Any exception moves the loop
to FAILED and is re-raised; nothing after the failing batch runs.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from loguru import logger

from cnn_training.config import TrainingConfig
from cnn_training.data.datamodule import ImageStreamDataModule
from cnn_training.errors import SampleIndexError
from cnn_training.models.base import TrainableModel
from cnn_training.training.checkpoint import CheckpointManager
from cnn_training.training.progress import (
    IsolatedReporter,
    LoggingProgressReporter,
    ProgressReporter,
    format_metrics,
)
from cnn_training.types import Checkpoint

VAL_PREFIX = "val_"


class LoopState(str, Enum):
    IDLE = "idle"
    EPOCH_RUNNING = "epoch_running"
    EPOCH_ENDING = "epoch_ending"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[LoopState, frozenset[LoopState]] = {
    LoopState.IDLE: frozenset({LoopState.EPOCH_RUNNING}),
    LoopState.EPOCH_RUNNING: frozenset({LoopState.EPOCH_ENDING}),
    LoopState.EPOCH_ENDING: frozenset({LoopState.EPOCH_RUNNING, LoopState.DONE}),
    LoopState.DONE: frozenset(),
    LoopState.FAILED: frozenset(),
}


class MetricAccumulator:
    """Sample-weighted running mean of per-batch metrics."""

    def __init__(self) -> None:
        self._sums: dict[str, float] = {}
        self._count = 0

    def update(self, metrics: Mapping[str, float], num_samples: int) -> None:
        for key, value in metrics.items():
            self._sums[key] = self._sums.get(key, 0.0) + float(value) * num_samples
        self._count += num_samples

    def compute(self) -> dict[str, float]:
        if self._count == 0:
            return {}
        return {key: total / self._count for key, total in self._sums.items()}


class TrainingLoop:
    """Drives epochs over a data module against an opaque trainable model.

    Args:
        config: Run hyperparameters; ``epochs`` is the number of epochs to
            run in this invocation.
        datamodule: Provides the split and fresh batch streams per epoch.
        model: The model being trained. Only this loop mutates it.
        checkpoints: Where epoch and final checkpoints go.
        reporter: Progress observer. Wrapped so its failures are ignored.
        start_epoch: Epochs already completed by the checkpoint being resumed
            (0 for a fresh run). This run's epochs are numbered
            ``start_epoch + 1 .. start_epoch + config.epochs``.
    """

    def __init__(
        self,
        config: TrainingConfig,
        datamodule: ImageStreamDataModule,
        model: TrainableModel,
        checkpoints: CheckpointManager,
        reporter: ProgressReporter | None = None,
        start_epoch: int = 0,
    ) -> None:
        if start_epoch < 0:
            raise ValueError(f"start_epoch must be >= 0, got {start_epoch}")
        self.config = config
        self.datamodule = datamodule
        self.model = model
        self.checkpoints = checkpoints
        self.reporter = IsolatedReporter(reporter or LoggingProgressReporter())
        self.start_epoch = start_epoch
        self.last_epoch = start_epoch + config.epochs

        self.state = LoopState.IDLE
        self.current_epoch: int | None = None
        self.current_batch: int | None = None
        self.history: list[dict[str, float]] = []
        self.saved: list[Checkpoint] = []

    def _transition(self, new_state: LoopState) -> None:
        if new_state is not LoopState.FAILED and new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal loop transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Loop state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> Checkpoint:
        """Run every epoch and return the final checkpoint.

        Raises:
            RuntimeError: The loop was already run.
            Exception: Whatever a collaborator raised; the state is FAILED.
        """
        if self.state is not LoopState.IDLE:
            raise RuntimeError(f"TrainingLoop already ran (state={self.state.value})")

        try:
            self._prepare()
            metrics: dict[str, float] = {}
            for epoch in range(self.start_epoch + 1, self.last_epoch + 1):
                self._transition(LoopState.EPOCH_RUNNING)
                self.current_epoch = epoch
                train_metrics = self._train_epoch(epoch)

                self._transition(LoopState.EPOCH_ENDING)
                metrics = {**train_metrics, **self._validate()}
                self.saved.append(self.checkpoints.save_epoch(epoch, self.model, metrics))
                self.history.append(metrics)
                self.reporter.on_epoch_complete(epoch, metrics)

            final = self.checkpoints.save_final(self.model, metrics, epoch=self.last_epoch)
            self._transition(LoopState.DONE)
            logger.info(
                f"Training complete after epoch {self.last_epoch}: {format_metrics(metrics)}"
            )
            return final
        except BaseException as e:
            failed_in = self.state
            self._transition(LoopState.FAILED)
            where = "before training" if self.current_epoch is None else (
                f"in epoch {self.current_epoch} ({failed_in.value}"
                + (f", batch {self.current_batch}" if self.current_batch else "")
                + ")"
            )
            logger.error(f"Training failed {where}: {type(e).__name__}: {e}")
            raise
        finally:
            self.reporter.close()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _prepare(self) -> None:
        """Pre-flight checks; nothing here touches the model or writes checkpoints."""
        expected_input = (
            self.config.image_shape[2],
            self.config.image_shape[0],
            self.config.image_shape[1],
        )
        if tuple(self.model.input_shape) != expected_input:
            raise ValueError(
                f"Model input shape {tuple(self.model.input_shape)} does not match "
                f"configured image shape {expected_input}"
            )
        if tuple(self.model.output_shape) != self.config.label_shape:
            raise ValueError(
                f"Model output shape {tuple(self.model.output_shape)} does not match "
                f"configured label shape {self.config.label_shape}"
            )

        self.datamodule.setup()
        if not self.datamodule.split.train:
            raise SampleIndexError(
                "Training split is empty; add samples or raise split_ratio"
            )
        self.checkpoints.ensure_available(self.start_epoch + 1, self.last_epoch)
        logger.info(
            f"Training epochs {self.start_epoch + 1}..{self.last_epoch} with "
            f"batch_size={self.config.batch_size}, "
            f"learning_rate={self.model.learning_rate}, "
            f"{self.datamodule.num_train_batches} train / "
            f"{self.datamodule.num_val_batches} val batches per epoch"
        )

    def _train_epoch(self, epoch: int) -> dict[str, float]:
        self.reporter.on_epoch_start(epoch, self.last_epoch, self.datamodule.num_train_batches)
        accumulator = MetricAccumulator()
        with self.datamodule.train_batches(epoch) as batches:
            for batch_index, batch in enumerate(batches, start=1):
                self.current_batch = batch_index
                step_metrics = self.model.train_step(batch["images"], batch["labels"])
                accumulator.update(step_metrics, len(batch["sample_ids"]))
                self.reporter.on_batch_complete(batch_index)
        self.current_batch = None
        return accumulator.compute()

    def _validate(self) -> dict[str, float]:
        """Full pass over the validation split, no weight updates."""
        accumulator = MetricAccumulator()
        with self.datamodule.val_batches() as batches:
            for batch in batches:
                batch_metrics = self.model.evaluate(batch["images"], batch["labels"])
                accumulator.update(batch_metrics, len(batch["sample_ids"]))
        return {f"{VAL_PREFIX}{key}": value for key, value in accumulator.compute().items()}
