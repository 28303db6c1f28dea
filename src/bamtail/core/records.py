"""BAM container header and alignment record parsing.

Parsing functions are pure: they take ``(buffer, cursor)`` and return
``(value, new_cursor)``. Records are never copied or decoded beyond their
flag word; each one is a ``(offset, length)`` span into the decompressed
buffer it was found in.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from ..constants import (
    BAM_FLAG_OFFSET,
    BAM_MAGIC,
    BAM_MIN_RECORD_SIZE,
    BAM_RECORD_SIZE_PREFIX,
    FLAG_UNMAPPED,
    RECORD_PROGRESS_INTERVAL,
)
from .errors import FormatError

logger = logging.getLogger(__name__)

_INT32 = struct.Struct("<i")
_UINT16 = struct.Struct("<H")

Buffer = bytes | bytearray | memoryview


@dataclass(frozen=True)
class Reference:
    """A reference sequence entry from the container header."""

    name: str
    length: int


@dataclass(frozen=True)
class ContainerHeader:
    """Header text and reference list of a BAM container.

    ``raw_text`` is kept verbatim so a rebuilt container is byte-identical.
    """

    raw_text: bytes
    references: tuple[Reference, ...]

    @property
    def text(self) -> str:
        return self.raw_text.decode("utf-8", errors="replace")

    @classmethod
    def from_text(cls, text: str, references: list[tuple[str, int]]) -> ContainerHeader:
        return cls(
            raw_text=text.encode("utf-8"),
            references=tuple(Reference(name, length) for name, length in references),
        )


@dataclass(frozen=True)
class Record:
    """Location and flag word of one alignment record."""

    offset: int
    length: int  # size prefix + block_size
    flag: int

    @property
    def is_unmapped(self) -> bool:
        return bool(self.flag & FLAG_UNMAPPED)

    def raw(self, buffer: Buffer) -> memoryview:
        """Zero-copy view of the record bytes, size prefix included."""
        return memoryview(buffer)[self.offset : self.offset + self.length]


def _read_int32(buffer: Buffer, cursor: int, what: str) -> tuple[int, int]:
    if cursor + 4 > len(buffer):
        raise FormatError(f"Truncated BAM header reading {what} at byte {cursor}")
    return _INT32.unpack_from(buffer, cursor)[0], cursor + 4


def _read_bytes(buffer: Buffer, cursor: int, length: int, what: str) -> tuple[bytes, int]:
    if length < 0:
        raise FormatError(f"Negative {what} length in BAM header at byte {cursor}: {length}")
    if cursor + length > len(buffer):
        raise FormatError(f"Truncated BAM header reading {what} at byte {cursor}")
    return bytes(buffer[cursor : cursor + length]), cursor + length


def parse_header(buffer: Buffer, cursor: int = 0) -> tuple[ContainerHeader, int]:
    """Parse the container magic, header text and reference list.

    Args:
        buffer: Decompressed container bytes.
        cursor: Where the container starts inside ``buffer``.

    Returns:
        Tuple of (ContainerHeader, offset of the first record).

    Raises:
        FormatError: On a magic mismatch, a negative length or truncation.
    """
    magic = bytes(buffer[cursor : cursor + 4])
    if magic != BAM_MAGIC:
        raise FormatError(f"Invalid BAM magic: {magic!r}")
    cursor += 4

    l_text, cursor = _read_int32(buffer, cursor, "header text length")
    raw_text, cursor = _read_bytes(buffer, cursor, l_text, "header text")

    n_ref, cursor = _read_int32(buffer, cursor, "reference count")
    if n_ref < 0:
        raise FormatError(f"Negative reference count in BAM header: {n_ref}")

    references = []
    for _ in range(n_ref):
        l_name, cursor = _read_int32(buffer, cursor, "reference name length")
        name, cursor = _read_bytes(buffer, cursor, l_name, "reference name")
        l_ref, cursor = _read_int32(buffer, cursor, "reference length")
        references.append(Reference(name.rstrip(b"\x00").decode("ascii", errors="replace"), l_ref))

    return ContainerHeader(raw_text=raw_text, references=tuple(references)), cursor


def parse_record(buffer: Buffer, cursor: int) -> tuple[Record | None, int]:
    """Parse the alignment record at ``cursor``.

    Returns ``(None, cursor)`` when no complete record remains: fewer than
    four bytes left, a non-positive block size, or a block that runs past
    the end of the buffer. This is the normal way a stream ends, since a
    read that stops at a block boundary usually cuts the last record.

    A record shorter than the full fixed-field block is still returned as
    long as its flag word is present; only the flag is ever decoded.

    Raises:
        FormatError: If the block is too small to hold the flag word.
    """
    if cursor + BAM_RECORD_SIZE_PREFIX > len(buffer):
        return None, cursor

    (block_size,) = _INT32.unpack_from(buffer, cursor)
    end = cursor + BAM_RECORD_SIZE_PREFIX + block_size
    if block_size <= 0 or end > len(buffer):
        return None, cursor
    if block_size < BAM_MIN_RECORD_SIZE:
        raise FormatError(
            f"Record at byte {cursor} is {block_size} bytes, too short to hold a flag word"
        )

    (flag,) = _UINT16.unpack_from(buffer, cursor + BAM_RECORD_SIZE_PREFIX + BAM_FLAG_OFFSET)
    return Record(offset=cursor, length=end - cursor, flag=flag), end


def iter_records(buffer: Buffer, cursor: int = 0) -> Iterator[Record]:
    """Yield records from ``cursor`` until the stream ends."""
    while True:
        record, cursor = parse_record(buffer, cursor)
        if record is None:
            return
        yield record


class RecordTable:
    """Record spans over a single backing buffer.

    Offsets, lengths and flags are held in numpy arrays so filtering
    millions of records is a vectorised mask, not a Python loop of copies.
    """

    def __init__(
        self,
        buffer: Buffer,
        offsets: np.ndarray,
        lengths: np.ndarray,
        flags: np.ndarray,
    ):
        if not len(offsets) == len(lengths) == len(flags):
            raise ValueError("offsets, lengths and flags must have the same length")
        self.buffer = buffer
        self.offsets = offsets
        self.lengths = lengths
        self.flags = flags

    @classmethod
    def empty(cls, buffer: Buffer = b"") -> RecordTable:
        return cls(
            buffer,
            np.empty(0, dtype=np.int64),
            np.empty(0, dtype=np.int64),
            np.empty(0, dtype=np.uint16),
        )

    def __len__(self) -> int:
        return len(self.offsets)

    def __iter__(self) -> Iterator[Record]:
        for offset, length, flag in zip(
            self.offsets.tolist(), self.lengths.tolist(), self.flags.tolist(), strict=True
        ):
            yield Record(offset=offset, length=length, flag=flag)

    @property
    def total_bytes(self) -> int:
        return int(self.lengths.sum())

    def take(self, mask: np.ndarray) -> RecordTable:
        """Sub-table of the rows selected by a boolean mask, sharing the buffer."""
        return RecordTable(self.buffer, self.offsets[mask], self.lengths[mask], self.flags[mask])

    def raw_spans(self) -> Iterator[memoryview]:
        """Zero-copy views of each record's bytes, in table order."""
        view = memoryview(self.buffer)
        for offset, length in zip(self.offsets.tolist(), self.lengths.tolist(), strict=True):
            yield view[offset : offset + length]


def scan_records(buffer: Buffer, cursor: int = 0) -> RecordTable:
    """Walk every complete record from ``cursor`` into a RecordTable."""
    offsets: list[int] = []
    lengths: list[int] = []
    flags: list[int] = []

    for record in iter_records(buffer, cursor):
        offsets.append(record.offset)
        lengths.append(record.length)
        flags.append(record.flag)
        if len(offsets) % RECORD_PROGRESS_INTERVAL == 0:
            logger.debug("Scanned %d records", len(offsets))

    consumed = offsets[-1] + lengths[-1] if offsets else cursor
    if consumed < len(buffer):
        logger.debug(
            "Record scan stopped with %d trailing bytes (truncated record)",
            len(buffer) - consumed,
        )

    return RecordTable(
        buffer,
        np.asarray(offsets, dtype=np.int64),
        np.asarray(lengths, dtype=np.int64),
        np.asarray(flags, dtype=np.uint16),
    )
