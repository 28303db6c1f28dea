"""Exception hierarchy for the extraction engine."""

from __future__ import annotations


class BamtailError(Exception):
    """Base class for every error raised by the engine."""


class FormatError(BamtailError):
    """Magic, signature or size mismatch in a BGZF block, BAM container or BAI index."""


class IndexEmptyError(BamtailError):
    """The index references no chunks, so no safe seek point exists."""


class TruncatedStreamError(BamtailError):
    """A record runs past the end of the decompressed stream.

    The record parser treats this as normal termination and never raises it;
    it is available to callers that need to reject partial streams.
    """


class SourceError(BamtailError):
    """A byte source could not be opened or read."""


class ToolkitError(BamtailError):
    """An external samtools invocation failed."""


class MergeFailure(BamtailError):
    """Merging containers failed or produced an empty output."""


class ExtractionError(BamtailError):
    """An extraction aborted; ``stage`` names where it failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} stage failed: {message}")
        self.stage = stage
        self.message = message
