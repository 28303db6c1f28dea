"""Core BGZF/BAM extraction and reconstruction modules."""

from .bgzf import BGZFBlock, BGZFReader, VirtualOffset
from .cache import IndexCache
from .container import (
    MAPPED_ONLY,
    UNMAPPED_ONLY,
    FlagFilter,
    build_container,
    select_records,
    write_container,
)
from .errors import (
    BamtailError,
    ExtractionError,
    FormatError,
    IndexEmptyError,
    MergeFailure,
    SourceError,
    ToolkitError,
)
from .extract import ExtractionResult, extract_from_files, extract_records, extract_unmapped
from .index import IndexSummary, find_max_virtual_offset, read_index_summary
from .merge import MergeResult, merge_containers
from .pipeline import PipelineResult, process_pair
from .records import ContainerHeader, Record, RecordTable, parse_header, scan_records
from .sources import BytesSource, FileSource, HttpSource, open_source
from .tools import (
    get_cache,
    handle_extract_records,
    handle_extract_unmapped,
    handle_inspect_index,
    handle_merge,
    handle_subset_region,
)

__all__ = [
    "MAPPED_ONLY",
    "UNMAPPED_ONLY",
    "BGZFBlock",
    "BGZFReader",
    "BamtailError",
    "BytesSource",
    "ContainerHeader",
    "ExtractionError",
    "ExtractionResult",
    "FileSource",
    "FlagFilter",
    "FormatError",
    "HttpSource",
    "IndexCache",
    "IndexEmptyError",
    "IndexSummary",
    "MergeFailure",
    "MergeResult",
    "PipelineResult",
    "Record",
    "RecordTable",
    "SourceError",
    "ToolkitError",
    "VirtualOffset",
    "build_container",
    "extract_from_files",
    "extract_records",
    "extract_unmapped",
    "find_max_virtual_offset",
    "get_cache",
    "handle_extract_records",
    "handle_extract_unmapped",
    "handle_inspect_index",
    "handle_merge",
    "handle_subset_region",
    "merge_containers",
    "open_source",
    "parse_header",
    "process_pair",
    "read_index_summary",
    "scan_records",
    "select_records",
    "write_container",
]
