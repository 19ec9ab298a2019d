"""Error taxonomy for a conversion run.

Transient LLM failures are absorbed by the client's retry loop. Everything
else propagates to the CLI, which prints a diagnostic and exits non-zero.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for run-aborting failures.

    ``raw_response`` carries the offending LLM payload, when there is one,
    so it can be dumped for post-mortem inspection.
    """

    def __init__(self, message: str, *, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class IngestionFailure(PipelineError):
    """The source document could not be read or uploaded."""


class AnalysisFailure(PipelineError):
    """The analysis call produced no usable content."""


class MalformedMetadata(PipelineError):
    """The analysis payload could not be parsed, or listed no chapters."""


class TransientCallFailure(PipelineError):
    """A single LLM call failed in a way that is worth retrying."""


class RetriesExhausted(PipelineError):
    """Every attempt of a single LLM call failed."""

    def __init__(self, call_id: str, attempts: int, last_error: str):
        super().__init__(
            f"[{call_id}] Failed after {attempts} attempts. Last error: {last_error}"
        )
        self.call_id = call_id
        self.attempts = attempts
        self.last_error = last_error


class UnitFatalFailure(PipelineError):
    """A chapter exhausted its retries; the whole run is aborted."""

    def __init__(self, index: int, title: str, reason: str):
        super().__init__(f"Chapter {index} ({title!r}) failed: {reason}")
        self.index = index
        self.title = title
        self.reason = reason
