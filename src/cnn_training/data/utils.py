"""Utility functions for the data pipeline."""

import math
from pathlib import Path


def get_files(root: Path, extensions: tuple[str, ...]) -> list[Path]:
    """Find files directly under root whose suffix matches extensions.

    Args:
        root: Directory to list (not searched recursively).
        extensions: Tuple of lowercase extensions including dot
            (e.g., (".jpg", ".png")).

    Returns:
        Sorted list of matching file paths.
    """
    files = []
    for p in root.iterdir():
        if p.is_file() and p.suffix.lower() in extensions:
            files.append(p)
    return sorted(files)


def num_batches(num_samples: int, batch_size: int) -> int:
    """Number of batches a stream of num_samples yields, last one possibly short."""
    return math.ceil(num_samples / batch_size)
