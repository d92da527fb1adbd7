"""Per-epoch and final checkpoint persistence, plus reload for fine-tuning.

Layout::

    {temp_root}/{run_name}/epoch-{n}/   one directory per completed epoch
    {model_root}/{run_name}/            the final model, replaced per run

Each checkpoint directory holds whatever the model writes (weights and
topology) plus ``metadata.json`` with the epoch and its metrics. Directories
are filled under a hidden temporary name and renamed into place, so a crash
never leaves a half-written checkpoint behind under its real name.
"""

from __future__ import annotations

import math
import os
import re
import shutil
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

import lightning as L
import orjson
from loguru import logger

from cnn_training.errors import CheckpointLoadError, CheckpointWriteError
from cnn_training.models.base import ImageModel, TrainableModel
from cnn_training.types import Checkpoint

METADATA_FILENAME = "metadata.json"
_EPOCH_DIR_RE = re.compile(r"^epoch-(\d+)$")

# JSON has no NaN or infinity; they are stored as these strings.
_NON_FINITE = {"nan": math.nan, "inf": math.inf, "-inf": -math.inf}


def epoch_dirname(epoch: int) -> str:
    return f"epoch-{epoch}"


def encode_metrics(metrics: Mapping[str, float]) -> dict[str, float | str]:
    """Metrics as JSON-safe values; NaN and infinities become strings."""
    encoded: dict[str, float | str] = {}
    for key, value in metrics.items():
        value = float(value)
        encoded[key] = value if math.isfinite(value) else str(value)
    return encoded


def decode_metrics(raw: Mapping[str, object]) -> dict[str, float]:
    """Inverse of :func:`encode_metrics`.

    Raises:
        ValueError: A value is neither a number nor a known non-finite marker.
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"metrics must be an object, got {type(raw).__name__}")
    decoded: dict[str, float] = {}
    for key, value in raw.items():
        if isinstance(value, str) and value in _NON_FINITE:
            decoded[key] = _NON_FINITE[value]
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            decoded[key] = float(value)
        else:
            raise ValueError(f"metric {key!r} has invalid value {value!r}")
    return decoded


def _colocate(staging: Path, parent: Path) -> Path:
    """Return staging, or a copy of it under parent if parent is on another filesystem.

    ``os.rename`` cannot cross filesystems, so a staged directory must live on
    the same device as its final location before it is swapped in.
    """
    parent.mkdir(parents=True, exist_ok=True)
    if os.stat(staging).st_dev == os.stat(parent).st_dev:
        return staging
    local = parent / staging.name
    try:
        shutil.copytree(staging, local)
    except OSError:
        shutil.rmtree(local, ignore_errors=True)
        raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return local


def read_checkpoint(path: Path) -> Checkpoint:
    """Read ``metadata.json`` from a checkpoint directory."""
    path = Path(path)
    try:
        meta = orjson.loads((path / METADATA_FILENAME).read_bytes())
        metrics = decode_metrics(meta.get("metrics", {}))
        return Checkpoint(epoch=meta["epoch"], path=path, metrics=metrics)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CheckpointLoadError(f"Cannot read checkpoint metadata in {path}: {e}") from e


class CheckpointManager:
    """Writes epoch checkpoints and the final model for one run.

    Epoch checkpoints are append-only: writing an epoch whose directory
    already exists is an error. The final slot is the only location that is
    ever replaced, and only after the new content is complete.

    Args:
        temp_root: Root of the per-epoch checkpoint area.
        model_root: Root of the stable final-model area.
        run_name: Subdirectory used under both roots.
    """

    def __init__(self, temp_root: Path, model_root: Path, run_name: str) -> None:
        self.run_name = run_name
        self.run_dir = Path(temp_root) / run_name
        self.final_dir = Path(model_root) / run_name

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def epoch_path(self, epoch: int) -> Path:
        return self.run_dir / epoch_dirname(epoch)

    def epoch_checkpoints(self) -> list[Checkpoint]:
        """Existing epoch checkpoints of this run, in epoch order."""
        if not self.run_dir.is_dir():
            return []
        found: list[Checkpoint] = []
        for child in self.run_dir.iterdir():
            match = _EPOCH_DIR_RE.match(child.name)
            if match and child.is_dir():
                found.append(read_checkpoint(child))
        return sorted(found, key=lambda c: c.epoch)

    def ensure_available(self, first_epoch: int, last_epoch: int) -> None:
        """Fail before training if any epoch slot in the range is taken.

        Raises:
            CheckpointWriteError: an ``epoch-{n}`` directory already exists.
        """
        taken = [
            e for e in range(first_epoch, last_epoch + 1) if self.epoch_path(e).exists()
        ]
        if taken:
            raise CheckpointWriteError(
                f"Run '{self.run_name}' already has checkpoints for epochs {taken} "
                f"under {self.run_dir}; choose another run_name or remove them"
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_epoch(
        self, epoch: int, model: TrainableModel, metrics: Mapping[str, float]
    ) -> Checkpoint:
        """Persist the model after a completed epoch.

        Raises:
            CheckpointWriteError: the slot is taken or the write failed.
        """
        target = self.epoch_path(epoch)
        if target.exists():
            raise CheckpointWriteError(f"Checkpoint already exists: {target}")
        staging = self._write_staging(self.run_dir, model, epoch, metrics)
        try:
            os.rename(staging, target)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CheckpointWriteError(f"Cannot move checkpoint into {target}: {e}") from e
        logger.info(f"Saved epoch {epoch} checkpoint -> {target}")
        return Checkpoint(epoch=epoch, path=target, metrics=dict(metrics))

    def save_final(
        self, model: TrainableModel, metrics: Mapping[str, float], epoch: int
    ) -> Checkpoint:
        """Write the final model, replacing the previous run's final model.

        The model is staged under the run's temp directory, so an interrupted
        write never leaves anything under ``model_root``.
        """
        staging = self._write_staging(self.run_dir, model, epoch, metrics)
        retired = self.final_dir.with_name(f".{self.final_dir.name}.old-{uuid.uuid4().hex[:8]}")
        try:
            staging = _colocate(staging, self.final_dir.parent)
            if self.final_dir.exists():
                os.rename(self.final_dir, retired)
            os.rename(staging, self.final_dir)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            if retired.exists() and not self.final_dir.exists():
                os.rename(retired, self.final_dir)
            raise CheckpointWriteError(
                f"Cannot move final model into {self.final_dir}: {e}"
            ) from e
        shutil.rmtree(retired, ignore_errors=True)
        logger.info(f"Saved final model -> {self.final_dir}")
        return Checkpoint(epoch=epoch, path=self.final_dir, metrics=dict(metrics))

    def _write_staging(
        self,
        parent: Path,
        model: TrainableModel,
        epoch: int,
        metrics: Mapping[str, float],
    ) -> Path:
        staging = parent / f".staging-{uuid.uuid4().hex}"
        try:
            staging.mkdir(parents=True)
            model.save(staging)
            metadata = {
                "epoch": epoch,
                "run_name": self.run_name,
                "metrics": encode_metrics(metrics),
                "learning_rate": model.learning_rate,
                "input_shape": list(model.input_shape),
                "output_shape": list(model.output_shape),
                "saved_at": datetime.now(timezone.utc).isoformat(),
            }
            (staging / METADATA_FILENAME).write_bytes(
                orjson.dumps(metadata, option=orjson.OPT_INDENT_2)
            )
        except Exception as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CheckpointWriteError(
                f"Failed to write checkpoint for epoch {epoch} under {parent}: {e}"
            ) from e
        return staging

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def load_for_resume(
        path: Path,
        learning_rate: float,
        fabric: L.Fabric | None = None,
    ) -> tuple[ImageModel, Checkpoint]:
        """Load weights from ``path`` and bind a fresh optimizer at learning_rate.

        This is fine-tuning from weights, not an exact resume: optimizer
        moments from the earlier run are not restored.

        Raises:
            CheckpointLoadError: ``path`` is not a readable checkpoint.
        """
        path = Path(path)
        checkpoint = read_checkpoint(path)
        try:
            model = ImageModel.load(path, learning_rate=learning_rate, fabric=fabric)
        except (OSError, ValueError, KeyError, RuntimeError) as e:
            raise CheckpointLoadError(f"Cannot load model from {path}: {e}") from e
        logger.info(
            f"Resuming from {path} (epoch {checkpoint.epoch}) with learning rate "
            f"{learning_rate}; optimizer state discarded"
        )
        return model, checkpoint
