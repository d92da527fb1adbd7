"""Inference on saved checkpoints."""

from cnn_training.inference.predictor import (
    CheckpointPredictor,
    evaluate_outputs,
    load_expectations,
)

__all__ = ["CheckpointPredictor", "evaluate_outputs", "load_expectations"]
