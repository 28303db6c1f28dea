"""Unit tests for bamtail.core.serialization module."""

import pytest

from bamtail.core.extract import ExtractionResult
from bamtail.core.index import IndexSummary, ReferenceStats
from bamtail.core.merge import MergeResult
from bamtail.core.pipeline import PipelineResult
from bamtail.core.serialization import (
    format_size,
    serialize_extraction,
    serialize_index_summary,
    serialize_merge,
    serialize_pipeline,
)


class TestSerialization:
    """Tests for the JSON views of engine results."""

    @pytest.mark.unit
    def test_format_size(self):
        assert format_size(0) == "0.00 MB"
        assert format_size(1024 * 1024 * 3 // 2) == "1.50 MB"

    @pytest.mark.unit
    def test_extraction(self):
        result = ExtractionResult(
            path="/w/u.bam",
            size=2048,
            count=4,
            records_scanned=9,
            elapsed_seconds=1.234,
            virtual_offset=(70 << 16) | 5,
        )
        d = serialize_extraction(result)
        assert d["count"] == 4
        assert d["is_empty"] is False
        assert d["elapsed_time"] == "1.23s"
        assert d["virtual_offset"] == {"value": (70 << 16) | 5, "coffset": 70, "uoffset": 5}

    @pytest.mark.unit
    def test_full_scan_extraction_has_no_offset(self):
        result = ExtractionResult("/w/u.bam", 10, 0, 0, 0.0, full_scan=True)
        d = serialize_extraction(result)
        assert "virtual_offset" not in d
        assert d["full_scan"] is True
        assert d["is_empty"] is True

    @pytest.mark.unit
    def test_merge_without_verification(self):
        d = serialize_merge(MergeResult(path="/w/m.bam", size=10, elapsed_seconds=0.5))
        assert "count" not in d
        assert d["missing_reads"] is False

    @pytest.mark.unit
    def test_merge_with_counts(self):
        result = MergeResult(
            "/w/m.bam", 10, 0.5, expected_count=10, actual_count=8, missing_reads=True
        )
        d = serialize_merge(result)
        assert d["expected_count"] == 10
        assert d["count"] == 8
        assert d["missing_reads"] is True

    @pytest.mark.unit
    def test_index_summary(self):
        summary = IndexSummary(
            n_references=2,
            n_bins=5,
            n_chunks=7,
            max_virtual_offset=(3 << 16) | 1,
            reference_stats={0: ReferenceStats(10, 1), 1: ReferenceStats(5, 2)},
            n_no_coor=4,
        )
        d = serialize_index_summary(summary)
        assert d["seek_offset"] == {"coffset": 3, "uoffset": 1}
        assert d["mapped"] == 15
        assert d["unmapped_placed"] == 3
        assert d["unmapped_unplaced"] == 4

    @pytest.mark.unit
    def test_empty_index_summary(self):
        d = serialize_index_summary(IndexSummary(0, 0, 0, None))
        assert d["seek_offset"] is None
        assert d["mapped"] == 0

    @pytest.mark.unit
    def test_pipeline(self):
        result = PipelineResult(
            final_path="/w/subset.bam",
            index_path="/w/subset.bam.bai",
            processing_mode="fast",
            subset_path="/w/subset.bam",
        )
        d = serialize_pipeline(result)
        assert d["includes_unmapped"] is False
        assert d["unmapped"] is None
        assert d["merge"] is None
        assert d["warnings"] == []
