"""Region subset pipeline with optional unmapped-read recovery.

Fast mode only subsets the region. Normal mode also extracts the unmapped
reads past the last indexed chunk and merges them into the subset; any
failure there degrades to the region-only output instead of aborting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..config import BamtailConfig
from ..constants import (
    MODE_FAST,
    MODE_NORMAL_FAILED,
    MODE_NORMAL_MERGED,
    MODE_NORMAL_NO_UNMAPPED,
)
from . import toolkit
from .errors import BamtailError
from .extract import ExtractionResult, extract_unmapped
from .merge import MergeResult, merge_containers

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Final BAM/BAI pair plus what happened along the way."""

    final_path: str
    index_path: str
    processing_mode: str
    subset_path: str
    unmapped: ExtractionResult | None = None
    merge: MergeResult | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def includes_unmapped(self) -> bool:
        return self.processing_mode == MODE_NORMAL_MERGED


def process_pair(
    bam_path: str,
    bai_path: str,
    region: str,
    work_dir: str | Path,
    normal_mode: bool = False,
    config: BamtailConfig | None = None,
) -> PipelineResult:
    """Subset ``region`` from a BAM and index it, optionally adding unmapped reads.

    Args:
        bam_path: Local coordinate-sorted BAM.
        bai_path: Its BAI index.
        region: Region string understood by samtools, e.g. ``chr1:1000-2000``.
        work_dir: Directory for intermediate and final files.
        normal_mode: Also recover trailing unmapped reads.
        config: Engine configuration; defaults when omitted.

    Raises:
        ToolkitError: If the region subset is empty or indexing fails.
    """
    config = config or BamtailConfig()
    work = Path(work_dir)
    work.mkdir(parents=True, exist_ok=True)
    name = Path(bam_path).name

    subset_path = str(work / f"subset_{name}")
    toolkit.extract_region(bam_path, region, subset_path)

    final_path = subset_path
    mode = MODE_FAST
    unmapped: ExtractionResult | None = None
    merge: MergeResult | None = None
    warnings: list[str] = []

    if normal_mode:
        logger.info("Normal mode: extracting unmapped reads and merging with the region subset")
        try:
            unmapped = extract_unmapped(
                bam_path, bai_path, work / f"unmapped_{name}", config=config
            )
            if unmapped.is_empty:
                logger.warning("No unmapped reads found in this BAM file.")
                mode = MODE_NORMAL_NO_UNMAPPED
            else:
                logger.info("Found %d unmapped reads", unmapped.count)
                merge = merge_containers(
                    [subset_path, unmapped.path],
                    str(work / f"merged_{name}"),
                    tolerance=config.merge_tolerance,
                    verify_counts=config.verify_merge_counts,
                )
                if merge.missing_reads:
                    warnings.append(
                        f"Merged file missing reads: expected ~{merge.expected_count}, "
                        f"got {merge.actual_count}"
                    )
                final_path = merge.path
                mode = MODE_NORMAL_MERGED
        except BamtailError as e:
            logger.warning("Normal mode processing failed: %s", e)
            logger.warning("Falling back to fast mode (region subset only).")
            warnings.append(f"Unmapped read recovery failed: {e}")
            mode = MODE_NORMAL_FAILED
            final_path = subset_path

    index_path = toolkit.index_file(final_path)
    logger.info("Final BAM %s (%s)", final_path, mode)
    return PipelineResult(
        final_path=final_path,
        index_path=index_path,
        processing_mode=mode,
        subset_path=subset_path,
        unmapped=unmapped,
        merge=merge,
        warnings=warnings,
    )
