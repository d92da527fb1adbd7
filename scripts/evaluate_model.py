#!/usr/bin/env python3
"""Run a saved checkpoint over a directory of images.

Review mode prints per-category verdicts for every image. Test mode compares
them against an expectations file and prints a pass summary.

Usage::

    # Review mode
    python scripts/evaluate_model.py \\
        --model cnn-temp/classifier/epoch-1 \\
        --image-dir conv-test-data \\
        --batch-size 10

    # Test mode
    python scripts/evaluate_model.py \\
        --model cnn-temp/classifier/epoch-1 \\
        --image-dir conv-test-data \\
        --batch-size 10 \\
        --run-tests usemodel-json-tests/classifier.json \\
        --expects-key fontCatOutput
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.table import Table

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from cnn_training.errors import TrainingPipelineError  # noqa: E402
from cnn_training.inference import (  # noqa: E402
    CheckpointPredictor,
    evaluate_outputs,
    load_expectations,
)
from cnn_training.schemas import OutputEvaluation  # noqa: E402


def render(console: Console, name: str, evaluation: OutputEvaluation) -> None:
    table = Table(title=f"Image: {name}", header_style="bold magenta")
    table.add_column("Category", justify="right", style="cyan")
    table.add_column("Verdict")
    table.add_column("Confidence", justify="right", style="yellow")
    table.add_column("Expected")
    for r in evaluation.results:
        verdict = "[green]yes[/green]" if r.actual == 1 else "[red]no[/red]"
        expected = ""
        if r.expected is not None:
            expected = ("yes" if r.expected == 1 else "no") + ("" if r.passed else " (mismatch)")
        table.add_row(str(r.category), verdict, f"{r.confidence:.2f}%", expected)
    console.print(table)
    if evaluation.overall is not None:
        console.print("  Test passed" if evaluation.overall else "  Test FAILED")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("--model", required=True, type=Path, help="Checkpoint directory")
    parser.add_argument("--image-dir", required=True, type=Path, help="Directory of test images")
    parser.add_argument("--batch-size", type=int, default=1)
    parser.add_argument("--threshold", type=float, default=0.5)
    parser.add_argument("--run-tests", type=Path, default=None, help="Expectations JSON file")
    parser.add_argument(
        "--expects-key",
        default=None,
        help="Output group to read when 'expects' entries are objects",
    )
    args = parser.parse_args()

    expectations: dict[str, list[int]] | None = None
    if args.run_tests is not None:
        try:
            expectations = load_expectations(args.run_tests, key=args.expects_key)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot read expectations file {args.run_tests}: {e}")
            return 1

    try:
        predictor = CheckpointPredictor(args.model)
        predictions = list(predictor.predict_directory(args.image_dir, args.batch_size))
    except (TrainingPipelineError, OSError) as e:
        logger.error(str(e))
        return 1
    if not predictions:
        logger.error(f"No .jpg/.jpeg/.png images in {args.image_dir}")
        return 1

    console = Console()
    total = passed = 0
    for path, scores in predictions:
        expects = expectations.get(path.name) if expectations is not None else None
        evaluation = evaluate_outputs(scores, expects, threshold=args.threshold)
        render(console, path.name, evaluation)
        if evaluation.overall is not None:
            total += 1
            passed += int(evaluation.overall)

    if expectations is not None:
        pct = passed / total * 100 if total else 0.0
        if total and passed == total:
            console.print(f"[green]All {total} tests passed[/green]")
        else:
            console.print(f"[yellow]{passed}/{total} tests passed ({pct:.2f}%)[/yellow]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
