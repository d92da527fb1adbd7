"""Data pipeline for cnn_training."""

from cnn_training.data.batching import BatchAssembler
from cnn_training.data.datamodule import ImageStreamDataModule
from cnn_training.data.index import SampleIndex
from cnn_training.data.labels import FilenameLabelSource, JsonLabelSource, LabelSource
from cnn_training.data.prefetch import Prefetcher
from cnn_training.data.split import ShuffleSplitter, Split

__all__ = [
    "BatchAssembler",
    "FilenameLabelSource",
    "ImageStreamDataModule",
    "JsonLabelSource",
    "LabelSource",
    "Prefetcher",
    "SampleIndex",
    "ShuffleSplitter",
    "Split",
]
