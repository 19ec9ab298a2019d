"""Executor-side schemas for a conversion run.

Analysis produces a DocumentMetadata; the scheduler turns each
UnitDescriptor into a UnitResult; the assembler merges them into a
CompositeOutput. Progress is reported as ProgressEvents.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

DEFAULT_TITLE = "Unknown"
DEFAULT_AUTHOR = "Unknown"


class BoundaryStrategy(str, Enum):
    """How each chapter's extent is communicated to the model.

    Exactly one strategy is active for a run.
    """
    NEXT_TITLE = "next-title"
    SENTENCES = "sentences"


class DeliveryMode(str, Enum):
    """How chapter results reach the output file."""
    BATCH = "batch"
    STREAMING = "streaming"


class OutputFormat(str, Enum):
    HTML = "html"
    EPUB = "epub"


class CallState(str, Enum):
    """States of a single retried LLM call."""
    PENDING = "pending"
    CALLING = "calling"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED_FATAL = "failed_fatal"


class ProgressPhase(str, Enum):
    STARTED = "started"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceDocument:
    """Uploaded source content, shared read-only by every worker.

    ``handle`` is whatever the backend needs to reference the upload
    (a Gemini file part, an Anthropic document block).
    """

    path: Path
    mime_type: str
    handle: Any


class SentenceBoundary(BaseModel):
    """Chapter delimited by its literal first and last sentences."""

    kind: Literal["sentences"] = "sentences"
    first_sentence: str
    last_sentence: str


class NextTitleBoundary(BaseModel):
    """Chapter runs until the next chapter's title (None for the last one)."""

    kind: Literal["next_title"] = "next_title"
    next_title: Optional[str] = None


class UnitDescriptor(BaseModel):
    """One chapter as reported by analysis."""

    index: int = Field(..., ge=1, description="1-based position in the chapter list")
    title: str
    boundary: Union[SentenceBoundary, NextTitleBoundary] = Field(
        default_factory=NextTitleBoundary,
        discriminator="kind",
    )

    model_config = {"frozen": True}


class DocumentMetadata(BaseModel):
    """Result of the analysis call. Immutable once produced."""

    title: str
    author: str = DEFAULT_AUTHOR
    units: list[UnitDescriptor]

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_units(self) -> "DocumentMetadata":
        if not self.units:
            raise ValueError("units must not be empty")
        for position, unit in enumerate(self.units, start=1):
            if unit.index != position:
                raise ValueError(
                    f"unit indices must be dense and 1-based: "
                    f"position {position} has index {unit.index}"
                )
        return self


class UnitResult(BaseModel):
    """A converted chapter, keyed by index for reassembly."""

    index: int = Field(..., ge=1)
    title: str
    body: str = Field(..., min_length=1, description="HTML fragment for the chapter")
    attempts: int = 1


class ScheduleOutcome(BaseModel):
    """What the scheduler collected: results and recorded failures by index."""

    results: dict[int, UnitResult] = Field(default_factory=dict)
    failures: dict[int, str] = Field(default_factory=dict)

    def ordered_results(self) -> list[UnitResult]:
        return [self.results[i] for i in sorted(self.results)]


class CompositeEntry(BaseModel):
    index: int
    title: str
    body: str = ""
    failed: bool = False


class CompositeOutput(BaseModel):
    """Final ordered document: metadata plus one entry per chapter."""

    title: str
    author: str = DEFAULT_AUTHOR
    entries: list[CompositeEntry] = Field(default_factory=list)

    @property
    def failed_indices(self) -> list[int]:
        return [e.index for e in self.entries if e.failed]


class ProgressEvent(BaseModel):
    """Lifecycle event for one unit of work (upload, analysis or a chapter)."""

    unit_id: str
    phase: ProgressPhase
    label: str = ""
    attempt: Optional[int] = None
    detail: str = ""


class ConversionReport(BaseModel):
    """Summary of a finished run."""

    output_path: str
    output_format: OutputFormat
    title: str
    author: str = DEFAULT_AUTHOR
    total_units: int = 0
    succeeded_units: int = 0
    failed_units: list[int] = Field(default_factory=list)
    total_attempts: int = 0
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed_units
