"""Per-image evaluation of model outputs against expected categories.

Each output unit is treated as an independent yes/no category: a score at or
above the threshold means "yes". Expectations, when given, are 0/1 per
category.
"""

from __future__ import annotations

from pydantic import BaseModel


class CategoryResult(BaseModel, frozen=True):
    """Verdict for one output unit. ``category`` is 1-based."""

    category: int
    actual: int
    expected: int | None = None
    passed: bool | None = None
    confidence: float


class OutputEvaluation(BaseModel, frozen=True):
    """All categories of one image; ``overall`` is None without expectations."""

    results: list[CategoryResult]
    overall: bool | None = None


class ExpectationCase(BaseModel, frozen=True):
    """One entry of an expectations file: ``{"name": "img.jpg", "expects": [...]}``."""

    name: str
    expects: list[int]
