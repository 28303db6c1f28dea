"""Shared test fixtures for bamtail tests."""

import os

import pytest
from create_fixtures import create_merge_pair, create_sorted_bam, synthetic_bam

from bamtail.config import BamtailConfig
from bamtail.core import tools as _tools_module

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture(autouse=True)
def _reset_cache_singleton():
    """Reset the module-level index cache between tests."""
    yield
    _tools_module._cache_instance = None


@pytest.fixture
def config(tmp_path):
    """Default config with cache and work directories under tmp_path."""
    return BamtailConfig(
        cache_dir=str(tmp_path / "cache"),
        work_dir=str(tmp_path / "work"),
    )


@pytest.fixture
def synthetic():
    """Bytes of a two-block BAM, its BAI, and where the unmapped tail lies."""
    return synthetic_bam()


@pytest.fixture
def synthetic_bam_path(tmp_path, synthetic):
    """The synthetic BAM written to disk with its index alongside."""
    data, bai, _ = synthetic
    bam_path = tmp_path / "synthetic.bam"
    bam_path.write_bytes(data)
    (tmp_path / "synthetic.bam.bai").write_bytes(bai)
    return str(bam_path)


@pytest.fixture
def sorted_bam_path(tmp_path):
    """A pysam-written sorted BAM (20 mapped, 5 unmapped) with its index."""
    return create_sorted_bam(str(tmp_path / "sorted.bam"))


@pytest.fixture
def mapped_only_bam_path(tmp_path):
    """A pysam-written sorted BAM with no unmapped reads."""
    return create_sorted_bam(str(tmp_path / "mapped_only.bam"), n_mapped=10, n_unmapped=0)


@pytest.fixture
def merge_inputs(tmp_path):
    """Two small BAMs holding 2 and 3 reads."""
    directory = tmp_path / "inputs"
    directory.mkdir()
    return create_merge_pair(str(directory))
