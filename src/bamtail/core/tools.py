"""MCP tool handlers for bamtail."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import httpx

from ..config import BamtailConfig
from ..constants import REMOTE_FILE_SCHEMES
from .cache import IndexCache
from .container import FlagFilter
from .errors import ExtractionError, FormatError, MergeFailure, ToolkitError
from .extract import extract_from_files, extract_unmapped
from .index import load_index, read_index_summary
from .merge import merge_containers
from .pipeline import process_pair
from .serialization import (
    serialize_extraction,
    serialize_index_summary,
    serialize_merge,
    serialize_pipeline,
)
from .validation import (
    INDEX_EXTENSIONS,
    validate_directory,
    validate_flag_mask,
    validate_output_path,
    validate_path,
    validate_region,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Module-level singleton for a consistent session ID across tool calls
_cache_instance: IndexCache | None = None


def get_cache(config: BamtailConfig) -> IndexCache:
    """Get or create the session index cache."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = IndexCache(config.cache_dir, config.cache_ttl)
    return _cache_instance


def _index_candidates(file_path: str) -> list[str]:
    # BAM files: try .bam.bai first, then .bai
    return [file_path + ".bai", file_path.rsplit(".", 1)[0] + ".bai"]


async def _ensure_cached_index(file_path: str, config: BamtailConfig) -> str | None:
    """Download a remote BAM's index into the session cache if not already there.

    Returns:
        Path to the cached index, or None for local files or when every
        download attempt failed.
    """
    cache = get_cache(config)
    index_path = cache.get_index_path(file_path)

    if index_path is None:
        return None

    if cache.is_valid(index_path):
        logger.debug("Using cached index: %s", index_path)
        return index_path

    logger.info("Downloading index for remote BAM: %s", file_path)

    async with httpx.AsyncClient(timeout=config.http_timeout, follow_redirects=True) as client:
        for index_url in _index_candidates(file_path):
            try:
                resp = await client.get(index_url)
                if resp.status_code == 200:
                    Path(index_path).write_bytes(resp.content)
                    logger.info("Cached index (%d bytes): %s", len(resp.content), index_path)
                    return index_path
                elif resp.status_code == 404:
                    logger.debug("Index not found at %s, trying next", index_url)
                    continue
                else:
                    logger.warning("Index download failed (%d): %s", resp.status_code, index_url)
            except (httpx.RequestError, OSError) as e:
                logger.warning("Index download error for %s: %s", index_url, e)
                continue

    logger.warning("Could not download index for %s", file_path)
    return None


async def _resolve_index(file_path: str, index_path: str | None, config: BamtailConfig) -> str:
    """Find the index to use for ``file_path``.

    Raises:
        ValueError: If no index was given and none can be found or downloaded.
    """
    if index_path:
        validate_path(index_path, config, extensions=INDEX_EXTENSIONS, allow_remote=False)
        return index_path

    if file_path.startswith(REMOTE_FILE_SCHEMES):
        cached = await _ensure_cached_index(file_path, config)
        if cached is None:
            raise ValueError(f"Could not download an index for {file_path}")
        return cached

    for candidate in _index_candidates(file_path):
        if Path(candidate).is_file():
            return candidate
    raise ValueError(f"No index found next to {file_path}; pass index_path explicitly")


def _default_output(config: BamtailConfig, file_path: str, prefix: str) -> str:
    return str(Path(config.work_dir) / f"{prefix}_{Path(file_path).name}")


def _text_result(payload: dict) -> dict:
    return {"content": [{"type": "text", "text": json.dumps(payload)}]}


async def _run_blocking(config: BamtailConfig, func: Callable[..., T], *args: Any) -> T:
    """Run blocking engine work off the event loop, bounded by the extraction timeout."""
    return await asyncio.wait_for(
        asyncio.to_thread(func, *args),
        timeout=config.extraction_timeout,
    )


# -- Tool Handlers -----------------------------------------------------------


async def handle_extract_unmapped(args: dict[str, Any], config: BamtailConfig) -> dict:
    """Extract unmapped reads past the last indexed chunk into a new BAM."""
    file_path = args["file_path"]
    validate_path(file_path, config)
    index_path = await _resolve_index(file_path, args.get("index_path"), config)
    output_path = args.get("output_path") or _default_output(config, file_path, "unmapped")
    validate_output_path(output_path, config)

    try:
        result = await _run_blocking(
            config, extract_unmapped, file_path, index_path, output_path, config
        )
    except ExtractionError as e:
        return _text_result({"success": False, "stage": e.stage, "error": e.message})

    return _text_result({"success": True, **serialize_extraction(result)})


async def handle_extract_records(args: dict[str, Any], config: BamtailConfig) -> dict:
    """Extract trailing records matching arbitrary required/excluded flag bits."""
    file_path = args["file_path"]
    validate_path(file_path, config)
    require = args.get("require_flags", 0)
    exclude = args.get("exclude_flags", 0)
    validate_flag_mask(require, "require_flags")
    validate_flag_mask(exclude, "exclude_flags")
    flag_filter = FlagFilter(require=require, exclude=exclude)

    index_path = await _resolve_index(file_path, args.get("index_path"), config)
    output_path = args.get("output_path") or _default_output(config, file_path, "filtered")
    validate_output_path(output_path, config)

    try:
        result = await _run_blocking(
            config,
            extract_from_files,
            file_path,
            index_path,
            output_path,
            flag_filter,
            config,
        )
    except ExtractionError as e:
        return _text_result({"success": False, "stage": e.stage, "error": e.message})

    return _text_result({"success": True, **serialize_extraction(result)})


async def handle_merge(args: dict[str, Any], config: BamtailConfig) -> dict:
    """Merge two or more BAM files and verify the record count."""
    input_paths: list[str] = args["input_paths"]
    for path in input_paths:
        validate_path(path, config, allow_remote=False)
    output_path = args.get("output_path") or _default_output(config, input_paths[0], "merged")
    validate_output_path(output_path, config)

    try:
        result = await _run_blocking(
            config,
            merge_containers,
            input_paths,
            output_path,
            config.merge_tolerance,
            config.verify_merge_counts,
        )
    except MergeFailure as e:
        return _text_result({"success": False, "stage": "merge", "error": str(e)})

    return _text_result({"success": True, **serialize_merge(result)})


async def handle_inspect_index(args: dict[str, Any], config: BamtailConfig) -> dict:
    """Summarise a BAI index: seek point and mapped/unmapped counts."""
    index_path = args.get("index_path")
    if not index_path:
        file_path = args["file_path"]
        validate_path(file_path, config)
        index_path = await _resolve_index(file_path, None, config)
    else:
        validate_path(index_path, config, extensions=INDEX_EXTENSIONS, allow_remote=False)

    try:
        data = await asyncio.to_thread(load_index, index_path)
        summary = read_index_summary(data)
    except (FormatError, OSError) as e:
        return _text_result({"success": False, "stage": "index", "error": str(e)})

    return _text_result(
        {"success": True, "index_path": index_path, **serialize_index_summary(summary)}
    )


async def handle_subset_region(args: dict[str, Any], config: BamtailConfig) -> dict:
    """Subset a region, optionally recovering unmapped reads, and index the result."""
    file_path = args["file_path"]
    validate_path(file_path, config, allow_remote=False)
    region = args["region"]
    validate_region(region)
    normal_mode = bool(args.get("normal_mode", False))
    index_path = await _resolve_index(file_path, args.get("index_path"), config)
    work_dir = args.get("work_dir") or config.work_dir
    validate_directory(work_dir, config)

    try:
        result = await _run_blocking(
            config, process_pair, file_path, index_path, region, work_dir, normal_mode, config
        )
    except ToolkitError as e:
        return _text_result({"success": False, "stage": "region", "error": str(e)})

    return _text_result({"success": True, **serialize_pipeline(result)})
