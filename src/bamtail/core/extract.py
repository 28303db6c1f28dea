"""Index-guided extraction of trailing records into a new container.

One extraction walks ``idle -> index-parsed -> header-read -> tail-read ->
records-filtered -> container-built -> done``. No state is re-entered, and
any failure is reported with the stage that was being attempted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..config import BamtailConfig
from ..constants import DEFAULT_EMPTY_INDEX_POLICY, DEFAULT_HEADER_READ_BYTES
from .bgzf import BGZFReader, VirtualOffset
from .container import UNMAPPED_ONLY, FlagFilter, build_container, select_records, write_container
from .errors import BamtailError, ExtractionError, IndexEmptyError
from .index import load_index, require_seek_offset
from .records import parse_header, scan_records
from .sources import ByteSource, open_source

logger = logging.getLogger(__name__)


class ExtractionState(str, Enum):
    IDLE = "idle"
    INDEX_PARSED = "index-parsed"
    HEADER_READ = "header-read"
    TAIL_READ = "tail-read"
    RECORDS_FILTERED = "records-filtered"
    CONTAINER_BUILT = "container-built"
    DONE = "done"


# Stage reported when leaving a state fails
FAILED_STAGE = {
    ExtractionState.IDLE: "index",
    ExtractionState.INDEX_PARSED: "header",
    ExtractionState.HEADER_READ: "tail-read",
    # Record parsing is part of consuming the tail
    ExtractionState.TAIL_READ: "tail-read",
    ExtractionState.RECORDS_FILTERED: "build",
    ExtractionState.CONTAINER_BUILT: "write",
}


@dataclass
class ExtractionResult:
    """Summary of a finished extraction."""

    path: str
    size: int
    count: int
    records_scanned: int
    elapsed_seconds: float
    virtual_offset: int | None = None
    full_scan: bool = False

    @property
    def is_empty(self) -> bool:
        return self.count == 0


def extract_records(
    source: ByteSource,
    index_data: bytes,
    output_path: str | Path,
    flag_filter: FlagFilter = UNMAPPED_ONLY,
    header_read_bytes: int = DEFAULT_HEADER_READ_BYTES,
    empty_index_policy: str = DEFAULT_EMPTY_INDEX_POLICY,
    compress: bool = True,
) -> ExtractionResult:
    """Extract the records after the last indexed chunk that pass ``flag_filter``.

    Args:
        source: Byte source over the BAM file.
        index_data: Contents of the matching BAI index.
        output_path: Where the rebuilt container is written.
        flag_filter: Predicate on the flag word; unmapped reads by default.
        header_read_bytes: Decompressed bytes read from the start of the file
            to capture the container header.
        empty_index_policy: ``"fail"`` to abort when the index has no chunks,
            ``"full-scan"`` to read every record instead.
        compress: Write the output BGZF-compressed.

    Returns:
        ExtractionResult describing the written container.

    Raises:
        ExtractionError: With ``stage`` set to the step that failed.
    """
    start = time.perf_counter()
    state = ExtractionState.IDLE

    def advance(new_state: ExtractionState) -> ExtractionState:
        logger.debug("Extraction %s -> %s", state.value, new_state.value)
        return new_state

    try:
        logger.info("Step 1/4: Parsing BAI index...")
        seek: VirtualOffset | None
        try:
            seek = require_seek_offset(index_data)
            logger.info("coffset=%d, uoffset=%d", seek.coffset, seek.uoffset)
        except IndexEmptyError:
            if empty_index_policy != "full-scan":
                raise
            logger.warning("Index has no chunks; falling back to a full scan")
            seek = None
        state = advance(ExtractionState.INDEX_PARSED)

        logger.info("Step 2/4: Reading BAM header...")
        reader = BGZFReader(source)
        header_buffer = reader.read_from(0, header_read_bytes)
        header, records_start = parse_header(header_buffer)
        logger.info("%d references", len(header.references))
        state = advance(ExtractionState.HEADER_READ)

        logger.info("Step 3/4: Seeking to offset and reading...")
        if seek is None:
            tail = reader.read_from(0)
            cursor = records_start
        else:
            tail = reader.read_virtual(seek)
            # A seek point inside the header block must not reparse the header
            cursor = max(0, records_start - seek.uoffset) if seek.coffset == 0 else 0
        logger.info("%.2f MB after offset", (len(tail) - cursor) / 1024 / 1024)
        state = advance(ExtractionState.TAIL_READ)

        logger.info("Step 4/4: Parsing and filtering records...")
        table = scan_records(tail, cursor)
        selected = select_records(table, flag_filter)
        logger.info("Found %d matching of %d total", len(selected), len(table))
        state = advance(ExtractionState.RECORDS_FILTERED)

        data = build_container(header, selected)
        state = advance(ExtractionState.CONTAINER_BUILT)

        size = write_container(output_path, data, compress=compress)
        state = advance(ExtractionState.DONE)
    except (BamtailError, OSError) as e:
        stage = FAILED_STAGE[state]
        logger.error("Extraction failed at %s stage: %s", stage, e)
        raise ExtractionError(stage, str(e)) from e

    elapsed = time.perf_counter() - start
    logger.info("Completed in %.2fs", elapsed)
    return ExtractionResult(
        path=str(output_path),
        size=size,
        count=len(selected),
        records_scanned=len(table),
        elapsed_seconds=elapsed,
        virtual_offset=int(seek) if seek is not None else None,
        full_scan=seek is None,
    )


def extract_unmapped(
    bam_location: str,
    index_location: str,
    output_path: str | Path,
    config: BamtailConfig | None = None,
) -> ExtractionResult:
    """Extract unmapped reads from a local or remote BAM using its local index."""
    return extract_from_files(bam_location, index_location, output_path, UNMAPPED_ONLY, config)


def extract_from_files(
    bam_location: str,
    index_location: str,
    output_path: str | Path,
    flag_filter: FlagFilter = UNMAPPED_ONLY,
    config: BamtailConfig | None = None,
) -> ExtractionResult:
    """Open a BAM and its index and extract the trailing records matching ``flag_filter``.

    Raises:
        ExtractionError: Stage ``index`` if the index cannot be read, stage
            ``header`` if the BAM cannot be opened, otherwise as
            :func:`extract_records`.
    """
    config = config or BamtailConfig()
    try:
        index_data = load_index(index_location)
    except OSError as e:
        raise ExtractionError("index", f"Cannot read index '{index_location}': {e}") from e

    try:
        source = open_source(bam_location, timeout=config.http_timeout)
    except BamtailError as e:
        raise ExtractionError("header", str(e)) from e

    with source:
        return extract_records(
            source,
            index_data,
            output_path,
            flag_filter=flag_filter,
            header_read_bytes=config.header_read_bytes,
            empty_index_policy=config.empty_index_policy,
            compress=config.compress_output,
        )
