"""Session-scoped cache for BAI indexes of remote BAM files."""

from __future__ import annotations

import contextlib
import hashlib
import uuid
from datetime import datetime
from pathlib import Path

from ..constants import (
    CACHE_SESSION_ID_LENGTH,
    DEFAULT_CACHE_TTL_SECONDS,
    REMOTE_FILE_SCHEMES,
)


class IndexCache:
    """File cache for index files downloaded alongside remote BAMs.

    Remote extraction streams the BAM with range requests but needs the whole
    index up front. Downloaded indexes live in a per-session subdirectory so
    concurrent sessions never share or delete each other's files.
    """

    def __init__(
        self,
        cache_dir: str,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        session_id: str | None = None,
    ):
        self.base_cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self.session_id = session_id or str(uuid.uuid4())[:CACHE_SESSION_ID_LENGTH]
        self.cache_dir = self.base_cache_dir / self.session_id
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def get_index_path(self, bam_location: str) -> str | None:
        """Cache path for a remote BAM's index, or None for local files."""
        if not bam_location.startswith(REMOTE_FILE_SCHEMES):
            return None

        # Hash keeps same-named files from different hosts apart (not security)
        hash_prefix = hashlib.md5(bam_location.encode()).hexdigest()[:8]  # noqa: S324
        basename = Path(bam_location).name
        return str(self.cache_dir / f"{hash_prefix}_{basename}.bai")

    def is_valid(self, cache_path: str) -> bool:
        """True if the cached file exists and is younger than the TTL."""
        path = Path(cache_path)
        if not path.exists():
            return False
        age = datetime.now().timestamp() - path.stat().st_mtime
        return age < self.ttl_seconds

    def cleanup_session(self) -> int:
        """Remove this session's cache directory and return the number of files removed."""
        removed = 0
        if self.cache_dir.exists():
            for cache_file in self.cache_dir.glob("*"):
                if cache_file.is_file():
                    cache_file.unlink()
                    removed += 1
            with contextlib.suppress(OSError):
                self.cache_dir.rmdir()
        return removed

    def cleanup_expired_sessions(self) -> tuple[int, int]:
        """Remove other sessions whose files have all expired.

        Returns:
            Tuple of (sessions_removed, sessions_remaining).
        """
        removed = 0
        remaining = 0
        for session_dir in self.base_cache_dir.iterdir():
            if not session_dir.is_dir() or session_dir.name == self.session_id:
                continue
            files = [f for f in session_dir.glob("*") if f.is_file()]
            if any(self.is_valid(str(f)) for f in files):
                remaining += 1
                continue
            for f in files:
                f.unlink()
            try:
                session_dir.rmdir()
                removed += 1
            except OSError:
                remaining += 1
        return removed, remaining
