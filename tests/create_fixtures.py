"""Builders for synthetic BGZF/BAM/BAI bytes and pysam-written BAM fixtures.

The byte builders use only struct and zlib so the block reader, record
parser and index reader can be tested against hand-laid-out input. The
pysam builders write real sorted, indexed BAMs for the integration tests.
Run as a script to write the pysam fixtures into tests/fixtures.
"""

import os
import struct
import zlib

import pysam

from bamtail.constants import BGZF_EOF_BLOCK

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")

HEADER_TEXT = "@HD\tVN:1.6\tSO:coordinate\n@SQ\tSN:chr1\tLN:1000\n@SQ\tSN:chr2\tLN:500\n"
REFERENCES = [("chr1", 1000), ("chr2", 500)]

# Bin used by htslib for records with no coordinate
UNPLACED_BIN = 4680

# -- Byte builders -----------------------------------------------------------


def bgzf_block(payload: bytes) -> bytes:
    """Compress ``payload`` into one BGZF block."""
    compressor = zlib.compressobj(6, zlib.DEFLATED, -zlib.MAX_WBITS)
    cdata = compressor.compress(payload) + compressor.flush()
    bsize = 18 + len(cdata) + 8 - 1
    header = struct.pack(
        "<BBBBIBBHBBHH", 0x1F, 0x8B, 8, 4, 0, 0, 0xFF, 6, ord("B"), ord("C"), 2, bsize
    )
    footer = struct.pack("<II", zlib.crc32(payload) & 0xFFFFFFFF, len(payload))
    return header + cdata + footer


def eof_block() -> bytes:
    return BGZF_EOF_BLOCK


def virtual_offset(coffset: int, uoffset: int) -> int:
    return (coffset << 16) | uoffset


def bam_header(text: str = HEADER_TEXT, references=None) -> bytes:
    """Uncompressed BAM magic, header text and reference list."""
    references = REFERENCES if references is None else references
    raw_text = text.encode()
    parts = [
        b"BAM\x01",
        struct.pack("<i", len(raw_text)),
        raw_text,
        struct.pack("<i", len(references)),
    ]
    for name, length in references:
        encoded = name.encode() + b"\x00"
        parts.append(struct.pack("<i", len(encoded)) + encoded + struct.pack("<i", length))
    return b"".join(parts)


def bam_record(
    name: str,
    flag: int,
    ref_id: int = -1,
    pos: int = -1,
    seq: str = "ACGT",
) -> bytes:
    """One uncompressed alignment record, size prefix included."""
    read_name = name.encode() + b"\x00"
    l_seq = len(seq)
    packed_seq = bytes((l_seq + 1) // 2)
    qual = b"\xff" * l_seq
    bin_ = UNPLACED_BIN if ref_id < 0 else 4681
    body = (
        struct.pack(
            "<iiBBHHHIiii",
            ref_id,
            pos,
            len(read_name),
            0,
            bin_,
            0,
            flag,
            l_seq,
            -1,
            -1,
            0,
        )
        + read_name
        + packed_seq
        + qual
    )
    return struct.pack("<i", len(body)) + body


def bai_index(references, n_no_coor=None) -> bytes:
    """BAI bytes from per-reference ``{"bins": [(bin, [(beg, end), ...])], "n_intv": n}``.

    A reference may also carry ``"meta": (n_mapped, n_unmapped)`` to emit the
    metadata pseudo-bin.
    """
    parts = [b"BAI\x01", struct.pack("<i", len(references))]
    for ref in references:
        bins = list(ref.get("bins", []))
        meta = ref.get("meta")
        parts.append(struct.pack("<i", len(bins) + (1 if meta else 0)))
        for bin_id, chunks in bins:
            parts.append(struct.pack("<Ii", bin_id, len(chunks)))
            for beg, end in chunks:
                parts.append(struct.pack("<QQ", beg, end))
        if meta:
            parts.append(struct.pack("<Ii", 37450, 2))
            parts.append(struct.pack("<QQ", 0, 0))
            parts.append(struct.pack("<QQ", meta[0], meta[1]))
        n_intv = ref.get("n_intv", 0)
        parts.append(struct.pack("<i", n_intv))
        parts.append(b"\x00" * (8 * n_intv))
    if n_no_coor is not None:
        parts.append(struct.pack("<Q", n_no_coor))
    return b"".join(parts)


def synthetic_bam(n_mapped_first=3, n_mapped_second=2, n_unmapped=3):
    """A two-block BAM whose unmapped tail starts mid-way through block two.

    Returns:
        Tuple of (bam_bytes, bai_bytes, layout) where ``layout`` holds the
        header bytes, the unmapped record bytes and the seek coordinates.
    """
    header = bam_header()
    first = b"".join(
        bam_record(f"m{i}", 0, ref_id=0, pos=100 + i) for i in range(n_mapped_first)
    )
    second_mapped = b"".join(
        bam_record(f"n{i}", 16, ref_id=1, pos=10 + i) for i in range(n_mapped_second)
    )
    unmapped = b"".join(bam_record(f"u{i}", 4) for i in range(n_unmapped))

    block1 = bgzf_block(header + first)
    block2 = bgzf_block(second_mapped + unmapped)
    data = block1 + block2 + eof_block()

    seek_coffset = len(block1)
    seek_uoffset = len(second_mapped)
    bai = bai_index(
        [
            {
                "bins": [
                    (4681, [(virtual_offset(0, len(header)), virtual_offset(seek_coffset, 0))])
                ],
                "meta": (n_mapped_first, 0),
                "n_intv": 1,
            },
            {
                "bins": [
                    (
                        4681,
                        [
                            (
                                virtual_offset(seek_coffset, 0),
                                virtual_offset(seek_coffset, seek_uoffset),
                            )
                        ],
                    )
                ],
                "n_intv": 1,
            },
        ],
        n_no_coor=n_unmapped,
    )
    layout = {
        "header": header,
        "unmapped": unmapped,
        "coffset": seek_coffset,
        "uoffset": seek_uoffset,
    }
    return data, bai, layout


# -- pysam builders ----------------------------------------------------------


def _segment(name: str, flag: int, ref_id: int = -1, pos: int = -1) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = "ACGTACGTAC" * 5
    a.flag = flag
    a.reference_id = ref_id
    a.reference_start = pos
    a.query_qualities = pysam.qualitystring_to_array("I" * 50)
    if not flag & 4:
        a.mapping_quality = 60
        a.cigartuples = [(0, 50)]
    return a


def create_sorted_bam(path: str, n_mapped: int = 20, n_unmapped: int = 5) -> str:
    """Write and index a coordinate-sorted BAM with trailing unplaced unmapped reads."""
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": length} for name, length in REFERENCES],
    }
    with pysam.AlignmentFile(path, "wb", header=header) as outf:
        for i in range(n_mapped):
            outf.write(_segment(f"mapped{i}", 0, ref_id=0, pos=10 + i * 20))
        for i in range(n_unmapped):
            outf.write(_segment(f"unmapped{i}", 4))
    pysam.index(path)
    return path


def create_merge_pair(directory: str) -> tuple[str, str]:
    """Two small BAMs with disjoint reads and a shared header, for merge tests."""
    first = create_sorted_bam(os.path.join(directory, "first.bam"), n_mapped=2, n_unmapped=0)
    second = create_sorted_bam(os.path.join(directory, "second.bam"), n_mapped=3, n_unmapped=0)
    return first, second


if __name__ == "__main__":
    os.makedirs(FIXTURES_DIR, exist_ok=True)
    bam_path = create_sorted_bam(os.path.join(FIXTURES_DIR, "tail.bam"))
    print(f"Created {bam_path}")
