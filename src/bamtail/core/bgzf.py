"""BGZF block stream reader and virtual offset arithmetic.

A BGZF file is a series of gzip members, each carrying a ``BC`` extra
subfield with the member's total size. Blocks are decompressed one at a
time; block N+1's address is only known once block N's header is parsed.
"""

from __future__ import annotations

import logging
import struct
import zlib
from collections.abc import Iterator
from dataclasses import dataclass

from ..constants import (
    BGZF_BSIZE_OFFSET,
    BGZF_EOF_BSIZE,
    BGZF_FOOTER_SIZE,
    BGZF_HEADER_SIZE,
    BGZF_MAX_BLOCK_SIZE,
    BGZF_SUBFIELD_ID,
    BGZF_SUBFIELD_OFFSET,
    BGZF_XLEN_OFFSET,
    BLOCK_PROGRESS_INTERVAL,
    COFFSET_MAX,
    GZIP_CM_DEFLATE,
    GZIP_FLAG_FEXTRA,
    GZIP_ID1,
    GZIP_ID2,
    UOFFSET_MASK,
    VIRTUAL_OFFSET_SHIFT,
)
from .errors import FormatError
from .sources import ByteSource

logger = logging.getLogger(__name__)

_UINT16 = struct.Struct("<H")


@dataclass(frozen=True)
class VirtualOffset:
    """A BGZF virtual file offset.

    ``coffset`` is the byte address of a compressed block in the file and
    ``uoffset`` the byte address inside that block's decompressed payload.
    """

    coffset: int
    uoffset: int

    def __post_init__(self) -> None:
        if not 0 <= self.coffset <= COFFSET_MAX:
            raise ValueError(f"coffset must fit in 48 bits, got {self.coffset}")
        if not 0 <= self.uoffset <= UOFFSET_MASK:
            raise ValueError(f"uoffset must fit in 16 bits, got {self.uoffset}")

    @classmethod
    def from_int(cls, value: int) -> VirtualOffset:
        if not 0 <= value < 1 << 64:
            raise ValueError(f"virtual offset must be an unsigned 64-bit value, got {value}")
        return cls(value >> VIRTUAL_OFFSET_SHIFT, value & UOFFSET_MASK)

    def __int__(self) -> int:
        return (self.coffset << VIRTUAL_OFFSET_SHIFT) | self.uoffset

    def __str__(self) -> str:
        return f"{self.coffset}:{self.uoffset}"


@dataclass(frozen=True)
class BGZFBlock:
    """One decompressed BGZF block."""

    offset: int
    block_size: int
    data: bytes
    is_eof: bool = False

    @property
    def next_offset(self) -> int:
        return self.offset + self.block_size


def parse_block_header(header: bytes, offset: int = 0) -> int:
    """Validate a fixed 18-byte BGZF header and return the total block size.

    Raises:
        FormatError: If the header is short, is not gzip/deflate, lacks the
            FEXTRA flag or the ``BC`` subfield, or declares an impossible size.
    """
    if len(header) < BGZF_HEADER_SIZE:
        raise FormatError(
            f"Truncated BGZF header at offset {offset}: {len(header)} of {BGZF_HEADER_SIZE} bytes"
        )
    if header[0] != GZIP_ID1 or header[1] != GZIP_ID2:
        raise FormatError(f"Invalid GZIP magic at offset {offset}")
    if header[2] != GZIP_CM_DEFLATE:
        raise FormatError(f"Invalid compression method at offset {offset}: {header[2]}")
    if not header[3] & GZIP_FLAG_FEXTRA:
        raise FormatError(f"BGZF block at offset {offset} is missing the FEXTRA flag")
    if header[BGZF_SUBFIELD_OFFSET : BGZF_SUBFIELD_OFFSET + 2] != BGZF_SUBFIELD_ID:
        raise FormatError(f"Invalid BGZF subfield signature at offset {offset}")

    (bsize,) = _UINT16.unpack_from(header, BGZF_BSIZE_OFFSET)
    block_size = bsize + 1
    (xlen,) = _UINT16.unpack_from(header, BGZF_XLEN_OFFSET)
    if block_size < BGZF_XLEN_OFFSET + 2 + xlen + BGZF_FOOTER_SIZE:
        raise FormatError(f"Invalid BGZF block size at offset {offset}: {block_size}")
    if block_size > BGZF_MAX_BLOCK_SIZE:
        raise FormatError(f"Invalid BGZF block size at offset {offset}: {block_size}")
    return block_size


def is_eof_header(header: bytes) -> bool:
    """True when a block header carries the end-of-stream BSIZE value."""
    if len(header) < BGZF_HEADER_SIZE:
        return False
    (bsize,) = _UINT16.unpack_from(header, BGZF_BSIZE_OFFSET)
    return bsize == BGZF_EOF_BSIZE


class BGZFReader:
    """Sequential BGZF block reader over a random-access byte source."""

    def __init__(self, source: ByteSource):
        self.source = source

    def read_block(self, offset: int) -> BGZFBlock:
        """Read and decompress the block starting at ``offset``.

        The end-of-stream marker is returned as an empty block with
        ``is_eof`` set, without being inflated.

        Raises:
            FormatError: If the block header or payload is invalid.
        """
        header = self.source.read_at(offset, BGZF_HEADER_SIZE)
        block_size = parse_block_header(header, offset)

        if is_eof_header(header):
            return BGZFBlock(offset=offset, block_size=block_size, data=b"", is_eof=True)

        raw = self.source.read_at(offset, block_size)
        if len(raw) < block_size:
            raise FormatError(
                f"Truncated BGZF block at offset {offset}: {len(raw)} of {block_size} bytes"
            )

        (xlen,) = _UINT16.unpack_from(raw, BGZF_XLEN_OFFSET)
        payload_start = BGZF_XLEN_OFFSET + 2 + xlen
        # The CRC32/ISIZE footer is stripped, not checked against the output.
        compressed = raw[payload_start : block_size - BGZF_FOOTER_SIZE]
        try:
            data = zlib.decompress(compressed, wbits=-zlib.MAX_WBITS)
        except zlib.error as e:
            raise FormatError(f"Failed to decompress BGZF block at offset {offset}: {e}") from e

        return BGZFBlock(offset=offset, block_size=block_size, data=data)

    def iter_blocks(self, offset: int = 0) -> Iterator[BGZFBlock]:
        """Yield data blocks from ``offset`` until the source or the EOF marker ends."""
        current = offset
        while current < self.source.size:
            block = self.read_block(current)
            if block.is_eof:
                logger.debug("BGZF EOF marker at offset %d", current)
                return
            yield block
            current = block.next_offset

    def read_from(self, offset: int = 0, max_bytes: int | None = None) -> bytes:
        """Decompress consecutive blocks starting at ``offset`` into one buffer.

        Stops once ``max_bytes`` have been gathered (block granularity, so the
        result may exceed it), at source exhaustion or at the EOF marker. A
        malformed block stops the read and the bytes gathered so far are
        returned.
        """
        chunks: list[bytes] = []
        total = 0
        blocks_read = 0
        blocks = self.iter_blocks(offset)

        while max_bytes is None or total < max_bytes:
            try:
                block = next(blocks)
            except StopIteration:
                break
            except FormatError as e:
                logger.warning("[BGZF] Stopped: %s", e)
                break

            chunks.append(block.data)
            total += len(block.data)
            blocks_read += 1
            if blocks_read % BLOCK_PROGRESS_INTERVAL == 0:
                logger.debug(
                    "[BGZF] Read %d blocks, %.2f MB", blocks_read, total / 1024 / 1024
                )

        logger.info("[BGZF] Complete: %d blocks, %.2f MB", blocks_read, total / 1024 / 1024)
        return b"".join(chunks)

    def read_virtual(self, vo: VirtualOffset, max_bytes: int | None = None) -> bytes:
        """Decompress from a virtual offset, dropping the first ``uoffset`` bytes.

        Raises:
            FormatError: If ``uoffset`` lies beyond the decompressed stream.
        """
        data = self.read_from(vo.coffset, max_bytes)
        if vo.uoffset > len(data):
            raise FormatError(
                f"Virtual offset {vo} points past the {len(data)} bytes decompressed "
                f"from offset {vo.coffset}"
            )
        return data[vo.uoffset :] if vo.uoffset else data
