"""Error taxonomy shared by the import and real-time pipelines.

Fatal errors abort a workflow run. Transient errors are retried by the
durable executor with backoff. Data-quality errors are counted and the
offending row or field is skipped. Quota exhaustion is a signal to pause,
never a failure.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors."""


class FatalError(PipelineError):
    """Unrecoverable input problem; the run must abort."""


class TransientError(PipelineError):
    """Temporary failure (network, store contention); safe to retry."""


class DataQualityError(PipelineError):
    """Row- or field-level inconsistency in upstream data."""


class InvalidArchiveError(FatalError):
    """Downloaded content is not a readable ZIP archive."""


class MissingRequiredFileError(FatalError):
    """A required GTFS file is missing from the archive."""


class MissingColumnError(FatalError):
    """A required column is missing from a GTFS file header."""


class FeedRejectedError(FatalError):
    """Upstream rejected the request (4xx other than rate limiting)."""


class UnknownFeedSourceError(FatalError):
    """No feed source row exists for the requested source name."""


class FeedDecodeError(FatalError):
    """A real-time feed message could not be decoded."""


class FetchError(TransientError):
    """A fetch failed after all in-place retries."""


class BlobStoreError(TransientError):
    """The blob store could not complete an operation."""


class RowError(DataQualityError):
    """A row is missing a required field or holds an unparsable value in one."""


class QuotaExhausted(PipelineError):
    """Upstream rate limit reached; callers should pause until the window resets."""

    def __init__(self, message: str, reset_sec: int | None = None) -> None:
        super().__init__(message)
        self.reset_sec = reset_sec


class StepRetriesExhausted(PipelineError):
    """A workflow step kept failing transiently until its attempt budget ran out."""

    def __init__(self, step: str, attempts: int) -> None:
        super().__init__(f"Step {step!r} failed after {attempts} attempts")
        self.step = step
        self.attempts = attempts


class WorkflowTimeout(PipelineError):
    """The workflow exceeded its wall-clock budget and stopped at a checkpoint."""


class ImportAlreadyRunning(PipelineError):
    """A static import for the same source is already in progress."""

    def __init__(self, source: str, run_id: str) -> None:
        super().__init__(f"Import for {source!r} already running as {run_id}")
        self.source = source
        self.run_id = run_id
