"""Document analysis: one LLM call for title, author and the chapter list.

The analysis call is the only step before chapter scheduling and is never
concurrent with itself. Its payload is validated here; a present but
unusable payload is a content problem, so it is not retried beyond the
client's own attempts.
"""

import json
import logging
from typing import Annotated, Callable, Optional

from pydantic import BaseModel, StringConstraints, ValidationError

from pdfbook.errors import AnalysisFailure, MalformedMetadata, RetriesExhausted
from pdfbook.executor.prompts import PromptComposer
from pdfbook.executor.schemas import (
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    BoundaryStrategy,
    DocumentMetadata,
    NextTitleBoundary,
    SentenceBoundary,
    UnitDescriptor,
)
from pdfbook.llm.client import TransformClient, parse_llm_json_response

logger = logging.getLogger(__name__)

ANALYSIS_CALL_ID = "analysis"

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _SentenceChapter(BaseModel):
    title: NonBlank
    first_sentence: NonBlank
    last_sentence: NonBlank


class _TitleListPayload(BaseModel):
    title: str = DEFAULT_TITLE
    author: Optional[str] = None
    chapters: list[NonBlank]


class _SentencePayload(BaseModel):
    title: str = DEFAULT_TITLE
    author: Optional[str] = None
    chapters: list[_SentenceChapter]


class DocumentAnalyzer:
    """Obtains DocumentMetadata for the client's source document."""

    def __init__(self, client: TransformClient, composer: Optional[PromptComposer] = None):
        self._client = client
        self._composer = composer or PromptComposer()

    @property
    def strategy(self) -> BoundaryStrategy:
        return self._composer.strategy

    def analyze(self, cancellation_check: Optional[Callable[[], bool]] = None) -> DocumentMetadata:
        """Run the analysis call and parse its payload.

        Raises:
            AnalysisFailure: the call produced no usable content
            MalformedMetadata: the payload is unparseable or lists no chapters
        """
        try:
            raw = self._client.call(
                self._composer.analysis_instructions(),
                self._composer.analysis_schema(),
                call_id=ANALYSIS_CALL_ID,
                label="Chapter analysis",
                cancellation_check=cancellation_check,
            )
        except RetriesExhausted as e:
            raise AnalysisFailure(f"Chapter analysis failed: {e.last_error}") from e

        metadata = self.parse(raw)
        logger.info(
            f"Analysis found {len(metadata.units)} chapters in '{metadata.title}' "
            f"by {metadata.author} (strategy={self.strategy.value})"
        )
        return metadata

    def parse(self, raw: str) -> DocumentMetadata:
        """Turn the raw analysis payload into DocumentMetadata."""
        try:
            data = parse_llm_json_response(raw)
        except (json.JSONDecodeError, ValueError) as e:
            raise MalformedMetadata(f"Error parsing JSON: {e}", raw_response=raw) from e

        payload_model = (
            _SentencePayload if self.strategy == BoundaryStrategy.SENTENCES else _TitleListPayload
        )
        try:
            payload = payload_model.model_validate(data)
        except ValidationError as e:
            raise MalformedMetadata(
                f"Analysis payload has the wrong shape: {e}", raw_response=raw
            ) from e

        if not payload.chapters:
            raise MalformedMetadata("No chapters found in analysis", raw_response=raw)

        if isinstance(payload, _SentencePayload):
            units = [
                UnitDescriptor(
                    index=i,
                    title=chapter.title,
                    boundary=SentenceBoundary(
                        first_sentence=chapter.first_sentence,
                        last_sentence=chapter.last_sentence,
                    ),
                )
                for i, chapter in enumerate(payload.chapters, start=1)
            ]
        else:
            titles = payload.chapters
            units = [
                UnitDescriptor(
                    index=i,
                    title=title,
                    boundary=NextTitleBoundary(
                        next_title=titles[i] if i < len(titles) else None
                    ),
                )
                for i, title in enumerate(titles, start=1)
            ]

        return DocumentMetadata(
            title=payload.title.strip() or DEFAULT_TITLE,
            author=(payload.author or "").strip() or DEFAULT_AUTHOR,
            units=units,
        )
