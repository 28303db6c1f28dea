"""Input validation for bamtail tool handlers.

Covers file paths (extension and directory allowlist), remote URLs (SSRF
prevention), region strings and flag masks.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from pathlib import Path
from urllib.parse import urlparse

from ..config import BamtailConfig
from ..constants import FLAG_MAX, REMOTE_FILE_SCHEMES

# contig:start-end, contig names as allowed in SAM @SQ SN fields minus the rarer symbols
REGION_PATTERN = re.compile(r"^[A-Za-z0-9_.*+\-|]+:(\d{1,11})-(\d{1,11})$")

MAX_FILE_PATH_LENGTH = 2048
MAX_REGION_LENGTH = 100

BAM_EXTENSIONS = (".bam",)
INDEX_EXTENSIONS = (".bai",)


def _is_private_ip(addr: str) -> bool:
    """Check if an IP address is private, loopback, link-local or reserved."""
    try:
        ip = ipaddress.ip_address(addr)
    except ValueError:
        return True  # Unparseable addresses are blocked

    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved


def validate_remote_url(url: str, config: BamtailConfig) -> None:
    """Validate a remote URL is safe to fetch.

    Raises:
        ValueError: If the host is not allowed or resolves to an internal address.
    """
    parsed = urlparse(url)
    hostname = parsed.hostname

    if not hostname:
        raise ValueError("Remote URL has no hostname")

    if config.allowed_remote_hosts and hostname not in config.allowed_remote_hosts:
        raise ValueError(f"Host '{hostname}' is not in the allowed remote hosts list")

    try:
        addr_infos = socket.getaddrinfo(hostname, parsed.port or 443, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        raise ValueError(f"Cannot resolve hostname '{hostname}': {e}") from e

    if not addr_infos:
        raise ValueError(f"No addresses found for hostname '{hostname}'")

    for addr_info in addr_infos:
        if _is_private_ip(str(addr_info[4][0])):
            raise ValueError("Remote URL resolves to private/internal address (blocked)")


def _check_allowed_directory(file_path: str, config: BamtailConfig) -> None:
    if not config.allowed_directories:
        return
    try:
        abs_path = Path(file_path).resolve()
    except OSError as e:
        raise ValueError(f"Invalid path: {file_path}") from e

    for d in config.allowed_directories:
        try:
            if abs_path.is_relative_to(Path(d).resolve()):
                return
        except OSError:
            continue
    raise ValueError("Path is not in allowed directories")


def validate_path(
    file_path: str,
    config: BamtailConfig,
    extensions: tuple[str, ...] = BAM_EXTENSIONS,
    allow_remote: bool = True,
) -> None:
    """Validate an input path or URL against the configuration.

    Raises:
        ValueError: If the path is too long, has the wrong extension, is remote
            when remote files are disabled, or lies outside allowed directories.
    """
    if len(file_path) > MAX_FILE_PATH_LENGTH:
        raise ValueError(f"File path too long (max {MAX_FILE_PATH_LENGTH} characters)")

    if "://" in file_path:
        if not (allow_remote and config.allow_remote_files):
            raise ValueError("Remote files are disabled")
        if not file_path.startswith(REMOTE_FILE_SCHEMES):
            raise ValueError(f"Scheme not supported for remote file: {file_path}")
        validate_remote_url(file_path, config)
        return

    if not file_path.lower().endswith(extensions):
        raise ValueError(f"Unsupported file type. Allowed extensions: {extensions}")

    _check_allowed_directory(file_path, config)


def validate_output_path(file_path: str, config: BamtailConfig) -> None:
    """Validate a local destination for a written container."""
    validate_path(file_path, config, extensions=BAM_EXTENSIONS, allow_remote=False)


def validate_directory(dir_path: str, config: BamtailConfig) -> None:
    """Validate a local working directory that outputs will be written into.

    Raises:
        ValueError: If the path is too long, is a URL, or lies outside
            allowed directories.
    """
    if len(dir_path) > MAX_FILE_PATH_LENGTH:
        raise ValueError(f"File path too long (max {MAX_FILE_PATH_LENGTH} characters)")
    if "://" in dir_path:
        raise ValueError("Working directory must be a local path")
    _check_allowed_directory(dir_path, config)


def validate_region(region: str) -> None:
    """Validate a ``contig:start-end`` region string.

    Raises:
        ValueError: If the region string is malformed or empty.
    """
    if len(region) > MAX_REGION_LENGTH:
        raise ValueError(f"Region string too long (max {MAX_REGION_LENGTH} characters)")

    match = REGION_PATTERN.match(region.replace(",", ""))
    if not match:
        raise ValueError(f"Invalid region format: '{region}'. Expected format: chr1:1000-2000")

    start, end = int(match.group(1)), int(match.group(2))
    if end < start:
        raise ValueError(f"End position ({end}) must not be less than start ({start})")


def validate_flag_mask(value: int, name: str) -> None:
    """Validate a 16-bit SAM flag mask."""
    if not 0 <= value <= FLAG_MAX:
        raise ValueError(f"{name} must be between 0 and {FLAG_MAX}, got {value}")
