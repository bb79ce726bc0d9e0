"""Error taxonomy for the ingest → index → correlate → publish chain.

Each error carries a short ``kind`` string.  Service handlers report it to
the invoking scheduler so that "no work found" (success, zero count) can be
told apart from "work found but not completed".
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every failure a component reports to its caller."""

    kind = "pipeline_error"


class ParseError(PipelineError):
    """One malformed raw unit.  Skipped and counted, never fatal to a batch."""

    kind = "parse_error"

    def __init__(self, reason: str, *, source: str = "", offset: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.source = source
        self.offset = offset


class IndexingError(PipelineError):
    """Searchable-store write failure.  The whole batch is aborted."""

    kind = "index_error"


class FetchError(PipelineError):
    """Threat feed unavailable, rejected the credentials, or timed out."""

    kind = "fetch_error"


class CorrelationError(PipelineError):
    """Window query failed; nothing was committed to the dedup store."""

    kind = "correlation_error"


class DeadlineExceeded(CorrelationError):
    """A scheduled run ran past its deadline and was abandoned."""

    kind = "deadline_exceeded"


class PublishError(PipelineError):
    """Notification delivery failed after matches were found."""

    kind = "publish_error"


class StoreError(PipelineError):
    """A collaborator store rejected or failed a request."""

    kind = "store_error"


class StoreTimeoutError(StoreError):
    kind = "store_timeout"
