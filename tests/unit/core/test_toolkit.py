"""Tests for bamtail.core.toolkit samtools wrappers."""

from pathlib import Path

import pytest

from bamtail.core import toolkit
from bamtail.core.errors import ToolkitError


class TestCountRecords:
    """Tests for count_records."""

    @pytest.mark.integration
    def test_counts_all_records(self, sorted_bam_path):
        assert toolkit.count_records(sorted_bam_path) == 25

    @pytest.mark.integration
    def test_missing_file(self, tmp_path):
        with pytest.raises(ToolkitError, match="samtools view failed"):
            toolkit.count_records(str(tmp_path / "missing.bam"))

    @pytest.mark.unit
    def test_unexpected_output(self, monkeypatch):
        monkeypatch.setattr(toolkit, "_run", lambda *args, **kwargs: "not a number\n")
        with pytest.raises(ToolkitError, match="Unexpected"):
            toolkit.count_records("x.bam")


class TestExtractRegion:
    """Tests for extract_region."""

    @pytest.mark.integration
    def test_subset(self, tmp_path, sorted_bam_path):
        out = str(tmp_path / "subset.bam")
        assert toolkit.extract_region(sorted_bam_path, "chr1:1-100", out) == out
        # Reads start every 20bp from 10 and span 50bp
        assert toolkit.count_records(out) == 5

    @pytest.mark.unit
    def test_empty_output_raises(self, tmp_path, monkeypatch):
        monkeypatch.setattr(toolkit, "_run", lambda *args, **kwargs: "")
        with pytest.raises(ToolkitError, match="No reads found in region chr1:1-2"):
            toolkit.extract_region("in.bam", "chr1:1-2", str(tmp_path / "out.bam"))


class TestIndexFile:
    """Tests for index_file."""

    @pytest.mark.integration
    def test_builds_bai(self, tmp_path, merge_inputs):
        bai = toolkit.index_file(merge_inputs[0])
        assert bai == merge_inputs[0] + ".bai"
        assert Path(bai).stat().st_size > 0

    @pytest.mark.unit
    def test_missing_bai_raises(self, tmp_path, monkeypatch):
        monkeypatch.setattr(toolkit, "_run", lambda *args, **kwargs: "")
        with pytest.raises(ToolkitError, match="was not created or is empty"):
            toolkit.index_file(str(tmp_path / "x.bam"))
