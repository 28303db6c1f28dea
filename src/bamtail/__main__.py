"""Entry point for running bamtail as a module: python -m bamtail."""

import atexit
import logging
import sys
from typing import Literal, get_args

from .config import BamtailConfig
from .core.tools import get_cache
from .server import create_server

Transport = Literal["stdio", "sse", "streamable-http"]
VALID_TRANSPORTS: tuple[str, ...] = get_args(Transport)


def main() -> None:
    """Run the bamtail MCP server."""
    config = BamtailConfig.from_env()

    if config.transport not in VALID_TRANSPORTS:
        print(
            f"Invalid BAMTAIL_TRANSPORT={config.transport!r}. "
            f"Must be one of: {', '.join(VALID_TRANSPORTS)}",
            file=sys.stderr,
        )
        sys.exit(1)

    # stdout carries the stdio transport, so logs go to stderr
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Register cleanup on exit to remove this session's cache files
    def cleanup_on_exit() -> None:
        cache = get_cache(config)
        removed = cache.cleanup_session()
        if removed > 0:
            print(f"Cleaned up {removed} cached index files", file=sys.stderr)

    atexit.register(cleanup_on_exit)

    expired, _ = get_cache(config).cleanup_expired_sessions()
    if expired:
        logging.getLogger(__name__).info("Removed %d expired cache sessions", expired)

    transport: Transport = config.transport  # type: ignore[assignment]
    server = create_server(config)

    if transport == "stdio":
        server.run(transport="stdio")
    else:
        import anyio
        import uvicorn

        app = server.sse_app() if transport == "sse" else server.streamable_http_app()

        async def _serve() -> None:
            uvi_config = uvicorn.Config(
                app,
                host=config.host,
                port=config.port,
                log_level=config.log_level.lower(),
            )
            uvi_server = uvicorn.Server(uvi_config)
            await uvi_server.serve()

        anyio.run(_serve)


if __name__ == "__main__":
    main()
