"""BAI index reader.

Only the information needed to seek past the indexed records is extracted:
the largest chunk end virtual offset over every bin of every reference.
Records after that offset are not covered by any bin, which in a
coordinate-sorted BAM means the trailing unmapped reads.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path

from ..constants import BAI_MAGIC, BAI_PSEUDO_BIN
from .bgzf import VirtualOffset
from .errors import FormatError, IndexEmptyError

logger = logging.getLogger(__name__)

_INT32 = struct.Struct("<i")
_UINT32 = struct.Struct("<I")
_UINT64 = struct.Struct("<Q")
_CHUNK = struct.Struct("<QQ")


@dataclass
class ReferenceStats:
    """Per-reference counts from the BAI metadata pseudo-bin."""

    n_mapped: int
    n_unmapped: int


@dataclass
class IndexSummary:
    """What the index says about where indexed records end."""

    n_references: int
    n_bins: int
    n_chunks: int
    max_virtual_offset: int | None
    reference_stats: dict[int, ReferenceStats] = field(default_factory=dict)
    n_no_coor: int | None = None

    @property
    def seek_offset(self) -> VirtualOffset | None:
        if self.max_virtual_offset is None:
            return None
        return VirtualOffset.from_int(self.max_virtual_offset)


class _IndexCursor:
    """Bounds-checked little-endian reads over the index buffer."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def _unpack(self, fmt: struct.Struct, what: str) -> tuple:
        if self.pos + fmt.size > len(self.data):
            raise FormatError(f"Truncated BAI index reading {what} at byte {self.pos}")
        values = fmt.unpack_from(self.data, self.pos)
        self.pos += fmt.size
        return values

    def count(self, what: str) -> int:
        (value,) = self._unpack(_INT32, what)
        if value < 0:
            raise FormatError(f"Negative {what} in BAI index at byte {self.pos - 4}: {value}")
        return value

    def uint32(self, what: str) -> int:
        return self._unpack(_UINT32, what)[0]

    def uint64(self, what: str) -> int:
        return self._unpack(_UINT64, what)[0]

    def chunk(self) -> tuple[int, int]:
        return self._unpack(_CHUNK, "chunk")

    def skip(self, n_bytes: int, what: str) -> None:
        if self.pos + n_bytes > len(self.data):
            raise FormatError(f"Truncated BAI index skipping {what} at byte {self.pos}")
        self.pos += n_bytes

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos


def read_index_summary(data: bytes) -> IndexSummary:
    """Parse a BAI index and summarise its chunk coverage.

    Args:
        data: Full contents of a ``.bai`` file.

    Returns:
        IndexSummary whose ``max_virtual_offset`` is None when the index has
        no references or no chunks.

    Raises:
        FormatError: If the magic is wrong, a count is negative or the
            buffer ends early.
    """
    if data[:4] != BAI_MAGIC:
        raise FormatError(f"Invalid BAI magic: {bytes(data[:4])!r}")

    cur = _IndexCursor(data)
    cur.skip(4, "magic")
    n_ref = cur.count("reference count")

    max_vo: int | None = None
    n_bins = 0
    n_chunks = 0
    stats: dict[int, ReferenceStats] = {}

    for ref_id in range(n_ref):
        ref_bins = cur.count("bin count")
        n_bins += ref_bins
        for _ in range(ref_bins):
            bin_id = cur.uint32("bin id")
            bin_chunks = cur.count("chunk count")
            if bin_id == BAI_PSEUDO_BIN:
                # (ref_beg, ref_end) then (n_mapped, n_unmapped): metadata, not chunks
                if bin_chunks != 2:
                    raise FormatError(
                        f"Metadata pseudo-bin of reference {ref_id} has {bin_chunks} pairs"
                    )
                cur.chunk()
                n_mapped, n_unmapped = cur.chunk()
                stats[ref_id] = ReferenceStats(n_mapped=n_mapped, n_unmapped=n_unmapped)
                continue
            for _ in range(bin_chunks):
                _beg, end = cur.chunk()
                n_chunks += 1
                if max_vo is None or end > max_vo:
                    max_vo = end
        n_intv = cur.count("linear index size")
        cur.skip(n_intv * 8, "linear index")

    n_no_coor = cur.uint64("unplaced read count") if cur.remaining >= 8 else None

    if max_vo is None:
        logger.warning("[BAI] No chunks in %d references; no seek point available", n_ref)
    else:
        logger.info(
            "[BAI] Max virtual offset = 0x%x (%s)", max_vo, VirtualOffset.from_int(max_vo)
        )

    return IndexSummary(
        n_references=n_ref,
        n_bins=n_bins,
        n_chunks=n_chunks,
        max_virtual_offset=max_vo,
        reference_stats=stats,
        n_no_coor=n_no_coor,
    )


def find_max_virtual_offset(data: bytes) -> int | None:
    """Largest chunk end virtual offset in the index, or None if there are no chunks."""
    return read_index_summary(data).max_virtual_offset


def require_seek_offset(data: bytes) -> VirtualOffset:
    """Seek point after the last indexed record.

    Raises:
        IndexEmptyError: If the index references no chunks.
        FormatError: If the index is malformed.
    """
    max_vo = find_max_virtual_offset(data)
    if max_vo is None:
        raise IndexEmptyError("Index has no chunks; cannot determine a safe seek point")
    return VirtualOffset.from_int(max_vo)


def load_index(path: str | Path) -> bytes:
    """Read a local index file into memory."""
    return Path(path).read_bytes()
