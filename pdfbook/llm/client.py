"""Retried LLM calls against an uploaded source document.

Every LLM call in a run (the analysis call and one call per chapter)
flows through TransformClient.call(). The client owns:
- The retry state machine (3 attempts, immediate by default)
- Progress events under the caller's call_id
- Cleanup of markdown fences around HTML output
"""

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pdfbook.config import DEFAULT_TEMPERATURE, MAX_ATTEMPTS
from pdfbook.errors import RetriesExhausted, TransientCallFailure
from pdfbook.executor.progress import NullProgressSink, ProgressSink
from pdfbook.executor.schemas import CallState, ProgressEvent, ProgressPhase, SourceDocument
from pdfbook.llm.backends import ModelBackend

logger = logging.getLogger(__name__)

_HTML_FENCE_OPEN = "```html\n"
_FENCE_CLOSE = "\n```"


def strip_html_fences(text: str) -> str:
    """Remove one ```html opening and one closing fence around markup.

    Only literal fences at the very start and end of the (whitespace
    trimmed) text are removed; fences anywhere else are left alone.
    """
    content = text.strip()
    if content.startswith(_HTML_FENCE_OPEN):
        content = content[len(_HTML_FENCE_OPEN):]
    if content.endswith(_FENCE_CLOSE):
        content = content[: -len(_FENCE_CLOSE)]
    return content


def parse_llm_json_response(raw_text: str) -> dict:
    """Parse JSON from LLM response, handling markdown code fences.

    LLMs sometimes wrap JSON in ```json ... ``` fences despite being
    told not to. This function strips those fences before parsing.

    Raises:
        json.JSONDecodeError: If the text cannot be parsed as JSON
        ValueError: If the JSON is not an object
    """
    content = raw_text.strip()

    # Strip leading markdown fence (```json or ```)
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    # Strip trailing fence
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    parsed = json.loads(content.strip())
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


@dataclass
class TransformOutcome:
    """Terminal state of a successful call."""

    text: str
    state: CallState
    attempts: int


class TransformClient:
    """Runs instructions against one source document with retries.

    Safe to share between worker threads: the only per-call state lives
    in local variables of run().
    """

    def __init__(
        self,
        backend: ModelBackend,
        source: SourceDocument,
        *,
        progress: Optional[ProgressSink] = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_jitter_seconds: float = 0.0,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._backend = backend
        self._source = source
        self._progress = progress or NullProgressSink()
        self._max_attempts = max_attempts
        self._retry_jitter_seconds = retry_jitter_seconds
        self._temperature = temperature

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def call(
        self,
        instructions: str,
        schema: Optional[dict] = None,
        *,
        call_id: str,
        label: str = "",
        expect_markup: bool = False,
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> str:
        """Run one call to completion and return its text.

        Raises:
            RetriesExhausted: every attempt failed
            InterruptedError: cancellation_check returned True before an attempt
        """
        return self.run(
            instructions,
            schema,
            call_id=call_id,
            label=label,
            expect_markup=expect_markup,
            cancellation_check=cancellation_check,
        ).text

    def run(
        self,
        instructions: str,
        schema: Optional[dict] = None,
        *,
        call_id: str,
        label: str = "",
        expect_markup: bool = False,
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> TransformOutcome:
        """Same as call(), but also reports the terminal state and attempt count."""
        label = label or call_id
        state = CallState.PENDING
        attempt = 0
        last_error = ""

        self._emit(call_id, ProgressPhase.STARTED, label)

        while True:
            if cancellation_check and cancellation_check():
                raise InterruptedError(f"[{label}] Cancelled before attempt {attempt + 1}")

            attempt += 1
            state = CallState.CALLING
            logger.debug(f"[{label}] {state.value}: attempt {attempt}/{self._max_attempts}")

            try:
                result = self._backend.generate(
                    self._source.handle,
                    instructions,
                    schema=schema,
                    temperature=self._temperature,
                    label=label,
                )
                text = result.content if result is not None else ""
                if expect_markup and text:
                    text = strip_html_fences(text)
                if not text or not text.strip():
                    raise TransientCallFailure("No text content in response")
            except InterruptedError:
                raise  # Don't retry cancellations
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.error(f"[{label}] Attempt {attempt} failed: {last_error}")

                if attempt < self._max_attempts:
                    state = CallState.RETRYING
                    self._emit(
                        call_id,
                        ProgressPhase.RETRYING,
                        label,
                        attempt=attempt + 1,
                        detail=last_error,
                    )
                    self._pause_before_retry(label)
                    continue

                state = CallState.FAILED_FATAL
                self._emit(call_id, ProgressPhase.FAILED, label, attempt=attempt, detail=last_error)
                raise RetriesExhausted(call_id, attempt, last_error) from e

            state = CallState.SUCCEEDED
            self._emit(call_id, ProgressPhase.SUCCEEDED, label, attempt=attempt)
            return TransformOutcome(text=text, state=state, attempts=attempt)

    def _pause_before_retry(self, label: str) -> None:
        if self._retry_jitter_seconds <= 0:
            return
        delay = random.uniform(0, self._retry_jitter_seconds)
        logger.debug(f"[{label}] Sleeping {delay:.2f}s before retry")
        time.sleep(delay)

    def _emit(
        self,
        call_id: str,
        phase: ProgressPhase,
        label: str,
        *,
        attempt: Optional[int] = None,
        detail: str = "",
    ) -> None:
        self._progress.emit(
            ProgressEvent(unit_id=call_id, phase=phase, label=label, attempt=attempt, detail=detail)
        )
