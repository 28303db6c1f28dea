"""MCP server setup for bamtail using FastMCP."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from .config import BamtailConfig
from .core.tools import (
    get_cache,
    handle_extract_records,
    handle_extract_unmapped,
    handle_inspect_index,
    handle_merge,
    handle_subset_region,
)


def create_server(config: BamtailConfig | None = None) -> FastMCP:
    """Create and configure the bamtail MCP server."""
    if config is None:
        config = BamtailConfig.from_env()

    mcp = FastMCP(name="bamtail", host=config.host, port=config.port)

    # -- Tools ---------------------------------------------------------------
    # Thin wrappers delegate to the handlers in core/tools.py.
    # FastMCP derives the JSON-Schema from the function signature.

    @mcp.tool(
        description=(
            "Extract the unmapped reads stored after the last indexed chunk of a "
            "coordinate-sorted BAM into a new BAM, without scanning the mapped reads. "
            "Returns the output path, read count and seek point used."
        ),
    )
    async def extract_unmapped(
        file_path: str,
        index_path: str | None = None,
        output_path: str | None = None,
    ) -> str:
        args: dict = {"file_path": file_path}
        if index_path is not None:
            args["index_path"] = index_path
        if output_path is not None:
            args["output_path"] = output_path
        result = await handle_extract_unmapped(args, config)
        return str(result["content"][0]["text"])

    @mcp.tool(
        description=(
            "Extract trailing records filtered by SAM flag bits, like samtools view -f/-F. "
            "require_flags bits must all be set, exclude_flags bits must all be clear."
        ),
    )
    async def extract_records(
        file_path: str,
        require_flags: int = 0,
        exclude_flags: int = 0,
        index_path: str | None = None,
        output_path: str | None = None,
    ) -> str:
        args: dict = {
            "file_path": file_path,
            "require_flags": require_flags,
            "exclude_flags": exclude_flags,
        }
        if index_path is not None:
            args["index_path"] = index_path
        if output_path is not None:
            args["output_path"] = output_path
        result = await handle_extract_records(args, config)
        return str(result["content"][0]["text"])

    @mcp.tool(description="Merge two or more BAM files and verify the merged read count")
    async def merge_bams(
        input_paths: list[str],
        output_path: str | None = None,
    ) -> str:
        args: dict = {"input_paths": input_paths}
        if output_path is not None:
            args["output_path"] = output_path
        result = await handle_merge(args, config)
        return str(result["content"][0]["text"])

    @mcp.tool(
        description=(
            "Inspect a BAI index: reference count, chunk count, the virtual offset "
            "where trailing unmapped reads start, and mapped/unmapped totals."
        ),
    )
    async def inspect_index(
        file_path: str | None = None,
        index_path: str | None = None,
    ) -> str:
        args: dict = {}
        if file_path is not None:
            args["file_path"] = file_path
        if index_path is not None:
            args["index_path"] = index_path
        result = await handle_inspect_index(args, config)
        return str(result["content"][0]["text"])

    @mcp.tool(
        description=(
            "Subset a region (e.g. chr1:1000-2000) from a local BAM and index it. "
            "With normal_mode the trailing unmapped reads are merged into the subset; "
            "if that fails the region-only subset is returned with a warning."
        ),
    )
    async def subset_region(
        file_path: str,
        region: str,
        normal_mode: bool = False,
        index_path: str | None = None,
        work_dir: str | None = None,
    ) -> str:
        args: dict = {"file_path": file_path, "region": region, "normal_mode": normal_mode}
        if index_path is not None:
            args["index_path"] = index_path
        if work_dir is not None:
            args["work_dir"] = work_dir
        result = await handle_subset_region(args, config)
        return str(result["content"][0]["text"])

    # -- Cache Management Tool -----------------------------------------------

    @mcp.tool(description="Clean up this session's downloaded index cache files")
    async def cleanup_cache() -> str:
        """Remove index files downloaded for remote BAMs during this session.

        Returns:
            Summary of cleanup action.
        """
        cache = get_cache(config)
        removed = cache.cleanup_session()
        return f"Removed {removed} cached index files from session {cache.session_id}"

    return mcp
