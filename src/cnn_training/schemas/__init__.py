"""Pydantic schemas for model evaluation output."""

from cnn_training.schemas.prediction import (
    CategoryResult,
    ExpectationCase,
    OutputEvaluation,
)

__all__ = [
    "CategoryResult",
    "ExpectationCase",
    "OutputEvaluation",
]
