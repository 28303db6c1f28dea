"""JSON-compatible views of engine results for tool responses."""

from __future__ import annotations

from typing import Any

from .bgzf import VirtualOffset
from .extract import ExtractionResult
from .index import IndexSummary
from .merge import MergeResult
from .pipeline import PipelineResult


def format_size(size: int) -> str:
    """Byte count as megabytes with two decimals, e.g. ``1.25 MB``."""
    return f"{size / 1024 / 1024:.2f} MB"


def serialize_extraction(result: ExtractionResult) -> dict:
    d: dict[str, Any] = {
        "path": result.path,
        "size": result.size,
        "size_formatted": format_size(result.size),
        "count": result.count,
        "records_scanned": result.records_scanned,
        "is_empty": result.is_empty,
        "elapsed_time": f"{result.elapsed_seconds:.2f}s",
        "full_scan": result.full_scan,
    }
    if result.virtual_offset is not None:
        vo = VirtualOffset.from_int(result.virtual_offset)
        d["virtual_offset"] = {
            "value": result.virtual_offset,
            "coffset": vo.coffset,
            "uoffset": vo.uoffset,
        }
    return d


def serialize_merge(result: MergeResult) -> dict:
    d: dict[str, Any] = {
        "path": result.path,
        "size": result.size,
        "size_formatted": format_size(result.size),
        "elapsed_time": f"{result.elapsed_seconds:.2f}s",
        "missing_reads": result.missing_reads,
    }
    # Counts are only present when verification ran and succeeded
    if result.actual_count is not None:
        d["expected_count"] = result.expected_count
        d["count"] = result.actual_count
    return d


def serialize_index_summary(summary: IndexSummary) -> dict:
    seek = summary.seek_offset
    return {
        "n_references": summary.n_references,
        "n_bins": summary.n_bins,
        "n_chunks": summary.n_chunks,
        "max_virtual_offset": summary.max_virtual_offset,
        "seek_offset": (
            {"coffset": seek.coffset, "uoffset": seek.uoffset} if seek is not None else None
        ),
        "mapped": sum(s.n_mapped for s in summary.reference_stats.values()),
        "unmapped_placed": sum(s.n_unmapped for s in summary.reference_stats.values()),
        "unmapped_unplaced": summary.n_no_coor,
    }


def serialize_pipeline(result: PipelineResult) -> dict:
    return {
        "final_path": result.final_path,
        "index_path": result.index_path,
        "processing_mode": result.processing_mode,
        "subset_path": result.subset_path,
        "includes_unmapped": result.includes_unmapped,
        "unmapped": serialize_extraction(result.unmapped) if result.unmapped else None,
        "merge": serialize_merge(result.merge) if result.merge else None,
        "warnings": result.warnings,
    }
