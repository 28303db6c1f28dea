"""Record filtering and BAM container reconstruction."""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pysam

from ..constants import BAM_MAGIC, FLAG_MAX, FLAG_UNMAPPED
from .errors import FormatError
from .records import Buffer, ContainerHeader, RecordTable

logger = logging.getLogger(__name__)

_INT32 = struct.Struct("<i")


@dataclass(frozen=True)
class FlagFilter:
    """Flag predicate with samtools ``-f``/``-F`` semantics.

    A record passes when every ``require`` bit is set and no ``exclude``
    bit is set.
    """

    require: int = 0
    exclude: int = 0

    def __post_init__(self) -> None:
        for name, bits in (("require", self.require), ("exclude", self.exclude)):
            if not 0 <= bits <= FLAG_MAX:
                raise ValueError(f"{name} must be a 16-bit flag mask, got {bits}")
        if self.require & self.exclude:
            raise ValueError(
                f"Flag bits 0x{self.require & self.exclude:x} are both required and excluded"
            )

    def matches(self, flag: int) -> bool:
        return (flag & self.require) == self.require and not flag & self.exclude

    def mask(self, flags: np.ndarray) -> np.ndarray:
        """Vectorised ``matches`` over an array of flag words."""
        return ((flags & self.require) == self.require) & ((flags & self.exclude) == 0)

    def complement(self) -> FlagFilter:
        """The filter selecting exactly the records this one rejects.

        Only single-bit filters have a FlagFilter complement.
        """
        if self.require and not self.exclude and self.require.bit_count() == 1:
            return FlagFilter(exclude=self.require)
        if self.exclude and not self.require and self.exclude.bit_count() == 1:
            return FlagFilter(require=self.exclude)
        raise ValueError(f"{self} has no single-bit complement")


UNMAPPED_ONLY = FlagFilter(require=FLAG_UNMAPPED)
MAPPED_ONLY = FlagFilter(exclude=FLAG_UNMAPPED)

Predicate = FlagFilter | Callable[[int], bool]


def select_records(table: RecordTable, predicate: Predicate) -> RecordTable:
    """Keep the records whose flag word satisfies ``predicate``, in order."""
    if isinstance(predicate, FlagFilter):
        mask = predicate.mask(table.flags)
    else:
        mask = np.fromiter(
            (bool(predicate(flag)) for flag in table.flags.tolist()),
            dtype=bool,
            count=len(table),
        )
    return table.take(mask)


def container_size(header: ContainerHeader, record_bytes: int) -> int:
    """Exact byte size of a container holding ``record_bytes`` of records."""
    size = len(BAM_MAGIC) + 4 + len(header.raw_text) + 4
    for ref in header.references:
        size += 4 + len(ref.name.encode("ascii")) + 1 + 4
    return size + record_bytes


def build_container(
    header: ContainerHeader, records: RecordTable | Iterable[Buffer]
) -> bytes:
    """Serialize a header and record spans into an uncompressed BAM container.

    The output is sized exactly, allocated once, and laid out as in any
    source container: magic, header text, reference list, then each record
    verbatim in the given order.

    Args:
        header: Header copied from the source container.
        records: A RecordTable, or raw record spans including their size prefix.
    """
    spans = list(records.raw_spans() if isinstance(records, RecordTable) else records)
    record_bytes = sum(len(span) for span in spans)
    out = bytearray(container_size(header, record_bytes))

    pos = 0
    out[pos : pos + 4] = BAM_MAGIC
    pos += 4
    _INT32.pack_into(out, pos, len(header.raw_text))
    pos += 4
    out[pos : pos + len(header.raw_text)] = header.raw_text
    pos += len(header.raw_text)
    _INT32.pack_into(out, pos, len(header.references))
    pos += 4

    for ref in header.references:
        name = ref.name.encode("ascii") + b"\x00"
        _INT32.pack_into(out, pos, len(name))
        pos += 4
        out[pos : pos + len(name)] = name
        pos += len(name)
        _INT32.pack_into(out, pos, ref.length)
        pos += 4

    for span in spans:
        out[pos : pos + len(span)] = span
        pos += len(span)

    if pos != len(out):
        raise FormatError(f"Container layout mismatch: wrote {pos} of {len(out)} bytes")
    return bytes(out)


def write_container(path: str | Path, data: bytes, compress: bool = True) -> int:
    """Write container bytes to ``path`` and return the size on disk.

    With ``compress`` the data is written as BGZF (with an EOF marker) so
    any htslib reader accepts it; otherwise the raw uncompressed container
    is written, which htslib also reads.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if compress:
        out = pysam.BGZFile(str(path), "wb")
        try:
            out.write(data)
        finally:
            out.close()
    else:
        path.write_bytes(data)

    size = path.stat().st_size
    logger.info("Wrote %.2f MB to %s", size / 1024 / 1024, path)
    return size
