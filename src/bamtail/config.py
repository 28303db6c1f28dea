"""Configuration for bamtail, loaded from environment variables."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_EMPTY_INDEX_POLICY,
    DEFAULT_HEADER_READ_BYTES,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MERGE_TOLERANCE,
    DEFAULT_PORT,
    DEFAULT_TRANSPORT,
    DEFAULT_WORK_DIR,
    EMPTY_INDEX_POLICIES,
    EXTRACTION_TIMEOUT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
)


def _env_list(raw: str) -> list[str] | None:
    return [item.strip() for item in raw.split(",") if item.strip()] or None


@dataclass
class BamtailConfig:
    """Engine and server configuration loaded from environment variables."""

    # Extraction settings
    header_read_bytes: int = DEFAULT_HEADER_READ_BYTES
    empty_index_policy: str = DEFAULT_EMPTY_INDEX_POLICY
    compress_output: bool = True
    work_dir: str = ""  # Defaults to <project>/.work if empty

    # Merge settings
    merge_tolerance: float = DEFAULT_MERGE_TOLERANCE
    verify_merge_counts: bool = True

    # Timeouts
    extraction_timeout: float = EXTRACTION_TIMEOUT_SECONDS
    http_timeout: float = HTTP_TIMEOUT_SECONDS

    # Transport settings
    transport: str = DEFAULT_TRANSPORT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    # Cache settings
    cache_dir: str = ""  # Defaults to <project>/.cache if empty
    cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS

    # Security settings
    allowed_directories: list[str] | None = None
    allow_remote_files: bool = False
    allowed_remote_hosts: list[str] | None = None

    def __post_init__(self) -> None:
        """Validate config values and set defaults."""
        if not self.cache_dir:
            self.cache_dir = str(DEFAULT_CACHE_DIR)
        if not self.work_dir:
            self.work_dir = str(DEFAULT_WORK_DIR)

        if self.header_read_bytes < 1:
            raise ValueError(
                f"header_read_bytes must be at least 1, got {self.header_read_bytes}"
            )

        if self.empty_index_policy not in EMPTY_INDEX_POLICIES:
            raise ValueError(
                f"empty_index_policy must be one of {EMPTY_INDEX_POLICIES}, "
                f"got '{self.empty_index_policy}'"
            )

        if not 0 < self.merge_tolerance <= 1:
            raise ValueError(
                f"merge_tolerance must be in (0, 1], got {self.merge_tolerance}"
            )

        if self.extraction_timeout <= 0:
            raise ValueError(
                f"extraction_timeout must be positive, got {self.extraction_timeout}"
            )

        if self.http_timeout <= 0:
            raise ValueError(f"http_timeout must be positive, got {self.http_timeout}")

        # Validate transport settings
        valid_transports = ("stdio", "sse", "streamable-http")
        if self.transport not in valid_transports:
            raise ValueError(f"transport must be one of {valid_transports}, got '{self.transport}'")

        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"log_level is not a logging level name, got '{self.log_level}'")

        if self.cache_ttl < 0:
            raise ValueError(f"cache_ttl must be non-negative, got {self.cache_ttl}")

    @classmethod
    def from_env(cls) -> "BamtailConfig":
        """Create config from environment variables."""
        env = os.environ

        cache_dir = env.get("BAMTAIL_CACHE_DIR") or str(DEFAULT_CACHE_DIR)
        work_dir = env.get("BAMTAIL_WORK_DIR") or str(DEFAULT_WORK_DIR)

        # Ensure both directories exist
        Path(cache_dir).mkdir(parents=True, exist_ok=True)
        Path(work_dir).mkdir(parents=True, exist_ok=True)

        return cls(
            header_read_bytes=int(
                env.get("BAMTAIL_HEADER_READ_BYTES", str(DEFAULT_HEADER_READ_BYTES))
            ),
            empty_index_policy=env.get("BAMTAIL_EMPTY_INDEX_POLICY", DEFAULT_EMPTY_INDEX_POLICY),
            compress_output=env.get("BAMTAIL_COMPRESS_OUTPUT", "true").lower() == "true",
            work_dir=work_dir,
            merge_tolerance=float(
                env.get("BAMTAIL_MERGE_TOLERANCE", str(DEFAULT_MERGE_TOLERANCE))
            ),
            verify_merge_counts=env.get("BAMTAIL_VERIFY_MERGE_COUNTS", "true").lower() == "true",
            extraction_timeout=float(
                env.get("BAMTAIL_EXTRACTION_TIMEOUT", str(EXTRACTION_TIMEOUT_SECONDS))
            ),
            http_timeout=float(env.get("BAMTAIL_HTTP_TIMEOUT", str(HTTP_TIMEOUT_SECONDS))),
            transport=env.get("BAMTAIL_TRANSPORT", DEFAULT_TRANSPORT),
            host=env.get("BAMTAIL_HOST", DEFAULT_HOST),
            port=int(env.get("BAMTAIL_PORT", str(DEFAULT_PORT))),
            log_level=env.get("BAMTAIL_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            cache_dir=cache_dir,
            cache_ttl=int(env.get("BAMTAIL_CACHE_TTL", str(DEFAULT_CACHE_TTL_SECONDS))),
            allowed_directories=_env_list(env.get("BAMTAIL_ALLOWED_DIRECTORIES", "")),
            allow_remote_files=env.get("BAMTAIL_ALLOW_REMOTE_FILES", "false").lower() == "true",
            allowed_remote_hosts=_env_list(env.get("BAMTAIL_ALLOWED_REMOTE_HOSTS", "")),
        )
