"""Thin wrappers over the samtools commands bundled with pysam.

These are the conventional tools the engine delegates to: region subsets,
merging, record counting and index construction.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pysam

from .errors import ToolkitError

logger = logging.getLogger(__name__)


def _run(command: str, *args: str, capture: bool = True) -> str:
    dispatcher = getattr(pysam, command)
    logger.debug("samtools %s %s", command, " ".join(args))
    try:
        output = dispatcher(*args, catch_stdout=capture)
    except pysam.utils.SamtoolsError as e:
        raise ToolkitError(f"samtools {command} failed: {e}") from e
    return output or ""


def merge_files(input_paths: list[str], output_path: str) -> None:
    """``samtools merge -f`` the inputs into ``output_path``."""
    _run("merge", "-f", output_path, *input_paths, capture=False)


def count_records(path: str) -> int:
    """Record count as reported by ``samtools view -c``."""
    output = _run("view", "-c", path).strip()
    try:
        return int(output)
    except ValueError as e:
        raise ToolkitError(f"Unexpected samtools view -c output for {path}: {output!r}") from e


def extract_region(bam_path: str, region: str, output_path: str) -> str:
    """Write the records overlapping ``region`` to a new BAM.

    Raises:
        ToolkitError: If samtools fails or the subset is missing or empty.
    """
    _run("view", "-b", "-o", output_path, bam_path, region, capture=False)
    out = Path(output_path)
    if not out.exists() or out.stat().st_size == 0:
        raise ToolkitError(
            f"Subset BAM {output_path} was not created or is empty. "
            f"No reads found in region {region}."
        )
    logger.info("Extracted region %s to %s (%d bytes)", region, output_path, out.stat().st_size)
    return output_path


def index_file(bam_path: str) -> str:
    """Build ``<bam_path>.bai`` and return its path.

    Raises:
        ToolkitError: If samtools fails or the index is missing or empty.
    """
    _run("index", bam_path, capture=False)
    bai = Path(f"{bam_path}.bai")
    if not bai.exists() or bai.stat().st_size == 0:
        raise ToolkitError(f"Index BAI file {bai} was not created or is empty.")
    logger.info("Indexed %s", bam_path)
    return str(bai)
