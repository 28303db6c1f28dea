"""Merging partial containers with an external tool, plus result verification."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from ..constants import DEFAULT_MERGE_TOLERANCE
from . import toolkit
from .errors import MergeFailure, ToolkitError

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of a verified merge."""

    path: str
    size: int
    elapsed_seconds: float
    expected_count: int | None = None
    actual_count: int | None = None
    missing_reads: bool = False


def _verify_counts(
    input_paths: list[str], output_path: str, tolerance: float
) -> tuple[int | None, int | None, bool]:
    """Cross-check merged record count against the inputs' total.

    Compression changes byte sizes but not record counts, so counts are the
    only meaningful comparison. A shortfall is reported, never raised.
    """
    try:
        input_counts = [toolkit.count_records(p) for p in input_paths]
        actual = toolkit.count_records(output_path)
    except ToolkitError as e:
        logger.warning("Could not verify read counts: %s", e)
        return None, None, False

    for path, count in zip(input_paths, input_counts, strict=True):
        logger.info("  %s: %d reads", path, count)
    expected = sum(input_counts)
    logger.info("  Merged total: %d", actual)

    if actual < expected * tolerance:
        logger.warning(
            "Merged file missing reads: expected ~%d, got %d (tolerance %.0f%%)",
            expected,
            actual,
            tolerance * 100,
        )
        return expected, actual, True

    logger.info("Read count verification passed")
    return expected, actual, False


def merge_containers(
    input_paths: list[str],
    output_path: str,
    tolerance: float = DEFAULT_MERGE_TOLERANCE,
    verify_counts: bool = True,
) -> MergeResult:
    """Merge two or more valid BAM containers into ``output_path``.

    Args:
        input_paths: Containers to merge; at least two.
        output_path: Destination, overwritten if present.
        tolerance: Fraction of the inputs' total record count the output
            must reach before a missing-reads warning is logged.
        verify_counts: Whether to run the record-count cross-check.

    Raises:
        ValueError: If fewer than two inputs are given.
        MergeFailure: If the merge tool fails or the output is missing or empty.
    """
    if not input_paths or len(input_paths) < 2:
        raise ValueError("merge_containers requires at least 2 input files")

    start = time.perf_counter()
    logger.info("Merging %d BAM files into %s", len(input_paths), output_path)

    try:
        toolkit.merge_files(input_paths, output_path)
    except ToolkitError as e:
        raise MergeFailure(f"Failed to merge BAM files: {e}") from e

    out = Path(output_path)
    if not out.exists():
        raise MergeFailure(f"Merged BAM {output_path} was not created")
    size = out.stat().st_size
    if size == 0:
        raise MergeFailure(f"Merged BAM {output_path} is empty")

    expected = actual = None
    missing = False
    if verify_counts:
        expected, actual, missing = _verify_counts(input_paths, output_path, tolerance)

    elapsed = time.perf_counter() - start
    logger.info("Merged: %.2f MB in %.2fs", size / 1024 / 1024, elapsed)
    return MergeResult(
        path=output_path,
        size=size,
        elapsed_seconds=elapsed,
        expected_count=expected,
        actual_count=actual,
        missing_reads=missing,
    )
