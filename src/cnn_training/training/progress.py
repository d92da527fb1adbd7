"""Two-level (epoch, batch) progress reporting.

Reporters are observers only. The training loop always talks to them
through :class:`IsolatedReporter`, so a broken display can never stop or
reorder training.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from loguru import logger
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from cnn_training.errors import ReporterError


def format_metrics(metrics: Mapping[str, float]) -> str:
    return ", ".join(f"{k}={v:.4f}" for k, v in metrics.items())


class ProgressReporter(Protocol):
    """Receives epoch/batch lifecycle events from the training loop.

    ``batch_index`` is 1-based: the number of batches completed so far in
    the current epoch.
    """

    def on_epoch_start(self, epoch: int, total_epochs: int, total_batches: int) -> None: ...

    def on_batch_complete(self, batch_index: int) -> None: ...

    def on_epoch_complete(self, epoch: int, metrics: Mapping[str, float]) -> None: ...

    def close(self) -> None: ...


class RichProgressReporter:
    """An overall epoch bar plus a per-epoch batch bar with ETA."""

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("ETA"),
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._epoch_task: TaskID | None = None
        self._batch_task: TaskID | None = None
        self._started = False

    def on_epoch_start(self, epoch: int, total_epochs: int, total_batches: int) -> None:
        if not self._started:
            self._progress.start()
            self._started = True
        if self._epoch_task is None:
            self._epoch_task = self._progress.add_task("Epochs", total=total_epochs)
        if self._batch_task is not None:
            self._progress.remove_task(self._batch_task)
        self._batch_task = self._progress.add_task(
            f"Epoch {epoch}/{total_epochs}", total=total_batches
        )

    def on_batch_complete(self, batch_index: int) -> None:
        if self._batch_task is not None:
            self._progress.update(self._batch_task, completed=batch_index)

    def on_epoch_complete(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if self._epoch_task is not None:
            self._progress.advance(self._epoch_task)
        self._progress.console.print(f"[Epoch {epoch}] {format_metrics(metrics)}")

    def close(self) -> None:
        if self._started:
            self._progress.stop()
            self._started = False


class LoggingProgressReporter:
    """Plain log lines; suited to non-interactive runs.

    Args:
        log_every: Log batch progress every N batches (and at the last one).
    """

    def __init__(self, log_every: int = 50) -> None:
        self.log_every = max(1, log_every)
        self._epoch = 0
        self._total_batches = 0

    def on_epoch_start(self, epoch: int, total_epochs: int, total_batches: int) -> None:
        self._epoch = epoch
        self._total_batches = total_batches
        logger.info(f"Epoch {epoch}/{total_epochs}: {total_batches} batches")

    def on_batch_complete(self, batch_index: int) -> None:
        if batch_index % self.log_every == 0 or batch_index == self._total_batches:
            logger.info(f"Epoch {self._epoch} batch {batch_index}/{self._total_batches}")

    def on_epoch_complete(self, epoch: int, metrics: Mapping[str, float]) -> None:
        logger.info(f"Epoch {epoch} complete: {format_metrics(metrics)}")

    def close(self) -> None:
        pass


class IsolatedReporter:
    """Wraps a reporter so that none of its failures reach the caller.

    Each failure is logged as a :class:`ReporterError` warning and dropped.
    """

    def __init__(self, reporter: ProgressReporter) -> None:
        self._reporter = reporter
        self.failures = 0

    def _call(self, event: str, *args: object) -> None:
        try:
            getattr(self._reporter, event)(*args)
        except Exception as e:
            self.failures += 1
            error = ReporterError(f"{type(self._reporter).__name__}.{event} failed: {e}")
            logger.warning(f"Ignoring progress reporter failure: {error}")

    def on_epoch_start(self, epoch: int, total_epochs: int, total_batches: int) -> None:
        self._call("on_epoch_start", epoch, total_epochs, total_batches)

    def on_batch_complete(self, batch_index: int) -> None:
        self._call("on_batch_complete", batch_index)

    def on_epoch_complete(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self._call("on_epoch_complete", epoch, dict(metrics))

    def close(self) -> None:
        self._call("close")
