"""Batch prediction over an image directory with a saved checkpoint."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

import lightning as L
import orjson
import torch
from loguru import logger
from pydantic import ValidationError

from cnn_training.data.utils import get_files
from cnn_training.errors import CheckpointLoadError, DecodeError
from cnn_training.models.base import ImageModel
from cnn_training.schemas.prediction import (
    CategoryResult,
    ExpectationCase,
    OutputEvaluation,
)
from cnn_training.transforms import ImageDecoder

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png")


def evaluate_outputs(
    scores: Sequence[float],
    expects: Sequence[int] | None = None,
    threshold: float = 0.5,
) -> OutputEvaluation:
    """Threshold each output score and compare with the expected 0/1 values.

    Raises:
        ValueError: ``expects`` has a different length than ``scores``.
    """
    if expects is not None and len(expects) != len(scores):
        raise ValueError(
            f"Got {len(expects)} expected values for {len(scores)} outputs"
        )
    results = []
    for idx, score in enumerate(scores):
        actual = 1 if score >= threshold else 0
        expected = None if expects is None else int(expects[idx])
        results.append(
            CategoryResult(
                category=idx + 1,
                actual=actual,
                expected=expected,
                passed=None if expected is None else actual == expected,
                confidence=float(score) * 100.0,
            )
        )
    overall = None if expects is None else all(r.passed for r in results)
    return OutputEvaluation(results=results, overall=overall)


def load_expectations(path: Path, key: str | None = None) -> dict[str, list[int]]:
    """Read an expectations file into ``{image name: expected values}``.

    The file is a JSON array of ``{"name": ..., "expects": [...]}``. When
    ``expects`` is an object holding several output groups, ``key`` picks one.

    Raises:
        ValueError: The file is not an array of valid entries.
    """
    raw = orjson.loads(Path(path).read_bytes())
    if not isinstance(raw, list):
        raise ValueError("Expectations file must be a JSON array of {name, expects} objects")
    cases: dict[str, list[int]] = {}
    for entry in raw:
        if key is not None and isinstance(entry, dict) and isinstance(entry.get("expects"), dict):
            entry = {**entry, "expects": entry["expects"].get(key)}
        try:
            case = ExpectationCase.model_validate(entry)
        except ValidationError as e:
            raise ValueError(f"Invalid expectations entry {entry!r}: {e}") from e
        cases[case.name] = case.expects
    return cases


class CheckpointPredictor:
    """Loads an epoch or final checkpoint and predicts images in batches.

    Images are decoded with the same transform used for training, sized
    from the checkpoint's own topology.

    Args:
        path: Checkpoint directory (``epoch-{n}`` or the final model dir).
        fabric: Optional Fabric; defaults to a single auto-selected device.
    """

    def __init__(self, path: Path, fabric: L.Fabric | None = None) -> None:
        try:
            # Learning rate is irrelevant for inference.
            self.model = ImageModel.load(Path(path), learning_rate=1e-3, fabric=fabric)
        except (OSError, ValueError, KeyError, RuntimeError) as e:
            raise CheckpointLoadError(f"Cannot load model from {path}: {e}") from e
        self.decoder = ImageDecoder(self.model.image_shape)  # type: ignore[arg-type]
        logger.info(
            f"Model loaded from {path}: input {self.model.input_shape}, "
            f"output {self.model.output_shape}"
        )

    def predict_files(self, files: Sequence[Path]) -> torch.Tensor:
        """Outputs for files, one row per file, in order.

        Raises:
            DecodeError: A file cannot be read or decoded; its name is attached.
        """
        images = torch.stack([self._load(Path(f)) for f in files])
        return self.model.predict(images)

    def _load(self, file: Path) -> torch.Tensor:
        try:
            raw = file.read_bytes()
        except OSError as e:
            raise DecodeError(f"Cannot read {file}: {e}", file.name) from e
        try:
            return self.decoder(raw)
        except DecodeError as e:
            e.sample_id = e.sample_id or file.name
            raise

    def predict_directory(
        self, image_dir: Path, batch_size: int = 1
    ) -> Iterator[tuple[Path, list[float]]]:
        """Yield ``(file, scores)`` for every image in image_dir, sorted by name.

        Raises:
            DecodeError: A file cannot be decoded; the file name is attached.
        """
        files = get_files(Path(image_dir), IMAGE_EXTENSIONS)
        for start in range(0, len(files), batch_size):
            chunk = files[start:start + batch_size]
            outputs = self.predict_files(chunk)
            for file, row in zip(chunk, outputs.tolist()):
                yield file, row
