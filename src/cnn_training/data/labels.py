"""Label sources: turn a sample into its label vector on demand."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np
import orjson

from cnn_training.errors import LabelNotFoundError, LabelParseError
from cnn_training.types import Sample


class LabelSource(ABC):
    """Base class for label sources.

    Subclasses must implement ``load``. Failures are reported with
    :class:`LabelNotFoundError` or :class:`LabelParseError` and are only ever
    raised while the sample is being streamed, never while indexing.
    """

    label_shape: tuple[int, ...]

    @abstractmethod
    def load(self, sample: Sample) -> np.ndarray:
        """Return the float32 label vector of ``sample`` with shape ``label_shape``."""


class JsonLabelSource(LabelSource):
    """Labels stored as one JSON file per sample.

    A JSON list is used as the label vector directly. A JSON object is
    flattened by concatenating the values of ``keys`` in order, where each
    value is a number or a list of numbers, e.g. ``keys=["averageCharMetrics",
    "averageLineMetrics"]`` for a regression target built from two metric
    groups.

    Args:
        label_shape: Expected shape of the resulting vector.
        keys: Object keys to concatenate. Required for object-valued files.
    """

    def __init__(
        self,
        label_shape: Sequence[int],
        keys: Sequence[str] | None = None,
    ) -> None:
        self.label_shape = tuple(label_shape)
        self.keys = list(keys) if keys is not None else None

    def load(self, sample: Sample) -> np.ndarray:
        try:
            raw = sample.label_path.read_bytes()
        except FileNotFoundError as e:
            raise LabelNotFoundError(
                f"Label file not found: {sample.label_path}", sample.id
            ) from e
        except OSError as e:
            raise LabelParseError(
                f"Cannot read label file {sample.label_path}: {e}", sample.id
            ) from e

        try:
            record = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise LabelParseError(
                f"Invalid JSON in {sample.label_path}: {e}", sample.id
            ) from e

        values = self._flatten(record, sample)
        try:
            vector = np.asarray(values, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise LabelParseError(
                f"Non-numeric label values in {sample.label_path}", sample.id
            ) from e

        if vector.size != int(np.prod(self.label_shape)):
            raise LabelParseError(
                f"Label in {sample.label_path} has {vector.size} values, "
                f"expected shape {self.label_shape}",
                sample.id,
            )
        return vector.reshape(self.label_shape)

    def _flatten(self, record: object, sample: Sample) -> list[object]:
        if isinstance(record, list):
            return record
        if not isinstance(record, dict):
            raise LabelParseError(
                f"Label in {sample.label_path} must be a list or an object, "
                f"got {type(record).__name__}",
                sample.id,
            )
        if self.keys is None:
            raise LabelParseError(
                f"Label in {sample.label_path} is an object but no keys were configured",
                sample.id,
            )

        values: list[object] = []
        for key in self.keys:
            if key not in record:
                raise LabelParseError(
                    f"Key {key!r} missing from {sample.label_path}", sample.id
                )
            value = record[key]
            if isinstance(value, list):
                values.extend(value)
            else:
                values.append(value)
        return values


class FilenameLabelSource(LabelSource):
    """Class label encoded in the image file name, e.g. ``1718000000123_4.jpg``.

    The ``field``-th ``separator``-delimited token of the sample id is the
    class index. Emits a one-hot vector of length ``num_classes``.
    """

    def __init__(self, num_classes: int, field: int = 1, separator: str = "_") -> None:
        if num_classes < 1:
            raise ValueError(f"num_classes must be positive, got {num_classes}")
        self.num_classes = num_classes
        self.field = field
        self.separator = separator
        self.label_shape = (num_classes,)

    def load(self, sample: Sample) -> np.ndarray:
        tokens = sample.id.split(self.separator)
        if self.field >= len(tokens):
            raise LabelNotFoundError(
                f"No label token at position {self.field} in {sample.id!r}", sample.id
            )
        token = tokens[self.field]
        try:
            class_idx = int(token)
        except ValueError as e:
            raise LabelParseError(
                f"Label token {token!r} is not an integer", sample.id
            ) from e
        if not 0 <= class_idx < self.num_classes:
            raise LabelParseError(
                f"Class index {class_idx} out of range [0, {self.num_classes})",
                sample.id,
            )

        one_hot = np.zeros(self.num_classes, dtype=np.float32)
        one_hot[class_idx] = 1.0
        return one_hot
