"""Shared constants for bamtail: wire-format layout, flag bits and runtime defaults.

This module is the single source of truth for the binary layout constants
used by the block reader, record parser and container builder, and for the
default values consumed by configuration loading.
"""

from __future__ import annotations

from pathlib import Path

# -- BGZF block framing ------------------------------------------------------

# ID1, ID2, CM (deflate), FLG (FEXTRA set)
BGZF_MAGIC = b"\x1f\x8b\x08\x04"
GZIP_ID1 = 0x1F
GZIP_ID2 = 0x8B
GZIP_CM_DEFLATE = 8
GZIP_FLAG_FEXTRA = 0x04

# Fixed header: ID1 ID2 CM FLG MTIME(4) XFL OS XLEN(2) SI1 SI2 SLEN(2) BSIZE(2)
BGZF_HEADER_SIZE = 18
BGZF_XLEN_OFFSET = 10
BGZF_SUBFIELD_OFFSET = 12
BGZF_SUBFIELD_ID = b"BC"
BGZF_BSIZE_OFFSET = 16
# CRC32 + ISIZE trailer
BGZF_FOOTER_SIZE = 8
BGZF_MAX_BLOCK_SIZE = 65_536
# BSIZE field value (total size - 1) of the canonical 28-byte empty EOF block
BGZF_EOF_BSIZE = 27
BGZF_EOF_BLOCK = (
    b"\x1f\x8b\x08\x04\x00\x00\x00\x00\x00\xff\x06\x00\x42\x43"
    b"\x02\x00\x1b\x00\x03\x00\x00\x00\x00\x00\x00\x00\x00\x00"
)

# -- Virtual offsets ---------------------------------------------------------

VIRTUAL_OFFSET_SHIFT = 16
UOFFSET_MASK = 0xFFFF
COFFSET_MAX = (1 << 48) - 1

# -- BAM container -----------------------------------------------------------

BAM_MAGIC = b"BAM\x01"
BAM_RECORD_SIZE_PREFIX = 4
# Offset of the uint16 flag word within a record body (after block_size)
BAM_FLAG_OFFSET = 14
# Smallest record body whose flag word can be read
BAM_MIN_RECORD_SIZE = BAM_FLAG_OFFSET + 2

# -- BAI index ---------------------------------------------------------------

BAI_MAGIC = b"BAI\x01"
# Metadata pseudo-bin holding (ref_beg, ref_end) and (n_mapped, n_unmapped)
BAI_PSEUDO_BIN = 37_450

# -- SAM flag bits -----------------------------------------------------------

FLAG_PAIRED = 0x1  # template has multiple segments
FLAG_PROPER_PAIR = 0x2  # each segment properly aligned
FLAG_UNMAPPED = 0x4  # segment unmapped
FLAG_MATE_UNMAPPED = 0x8  # next segment unmapped
FLAG_REVERSE = 0x10  # sequence reverse complemented
FLAG_MATE_REVERSE = 0x20  # next segment reverse complemented
FLAG_READ1 = 0x40  # first segment in template
FLAG_READ2 = 0x80  # last segment in template
FLAG_SECONDARY = 0x100  # secondary alignment
FLAG_QC_FAIL = 0x200  # not passing quality controls
FLAG_DUPLICATE = 0x400  # PCR or optical duplicate
FLAG_SUPPLEMENTARY = 0x800  # supplementary alignment
FLAG_MAX = 0xFFFF

# -- Runtime defaults --------------------------------------------------------

DEFAULT_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_PORT = 8000
DEFAULT_TRANSPORT = "stdio"
DEFAULT_LOG_LEVEL = "INFO"
# Project root is 3 levels up from this file: src/bamtail/constants.py -> root
_PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CACHE_DIR = _PROJECT_ROOT / ".cache"
DEFAULT_WORK_DIR = _PROJECT_ROOT / ".work"

# Decompressed bytes read from offset 0 to capture the container header
DEFAULT_HEADER_READ_BYTES = 500_000
# Merged record count must reach this fraction of the inputs' total
DEFAULT_MERGE_TOLERANCE = 0.9
EMPTY_INDEX_POLICIES = ("fail", "full-scan")
DEFAULT_EMPTY_INDEX_POLICY = "fail"

# Cache behavior
DEFAULT_CACHE_TTL_SECONDS = 86_400  # 24 hours
CACHE_SESSION_ID_LENGTH = 8
REMOTE_FILE_SCHEMES = ("http://", "https://")

# Timeouts (seconds)
EXTRACTION_TIMEOUT_SECONDS = 600.0
HTTP_TIMEOUT_SECONDS = 60.0

# Progress logging cadence
BLOCK_PROGRESS_INTERVAL = 100
RECORD_PROGRESS_INTERVAL = 50_000

# Pipeline processing modes
MODE_FAST = "fast"
MODE_NORMAL_MERGED = "normal-merged"
MODE_NORMAL_NO_UNMAPPED = "normal-no-unmapped"
MODE_NORMAL_FAILED = "normal-failed"
