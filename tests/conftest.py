"""Shared fixtures for the conversion test suite.

No network: a scripted FakeBackend stands in for Gemini/Anthropic. Each
call pops the next scripted response (a string, or an exception to raise)
for the analysis call or for the chapter named in the call label.
"""

from __future__ import annotations

import json
import re
import threading
import time
from pathlib import Path
from typing import Any, Optional, Union

import pytest

from pdfbook.executor.schemas import ProgressEvent, SourceDocument
from pdfbook.llm.backends import LLMCallResult

Scripted = Union[str, Exception, None]

_CHAPTER_LABEL = re.compile(r"^Chapter (\d+):")


def analysis_json(chapters: list[Any], title: str = "A Book", author: Optional[str] = "Jane Doe") -> str:
    payload: dict[str, Any] = {"title": title, "chapters": chapters}
    if author is not None:
        payload["author"] = author
    return json.dumps(payload)


def chapter_html(index: int, title: str) -> str:
    return f"<h1>Chapter {index}: {title}</h1>\n<p>Body of {title}.</p>"


class FakeBackend:
    """Scripted stand-in for an LLM backend.

    Args:
        analysis: responses for the analysis call, in order
        chapters: responses per chapter index, in order; when a chapter
            has no script left, a default HTML body is returned
        delays: seconds to sleep inside generate() per chapter index
    """

    model_id = "fake-model"

    def __init__(
        self,
        analysis: Optional[list[Scripted]] = None,
        chapters: Optional[dict[int, list[Scripted]]] = None,
        delays: Optional[dict[int, float]] = None,
        upload_error: Optional[Exception] = None,
    ):
        self._analysis = list(analysis or [])
        self._chapters = {k: list(v) for k, v in (chapters or {}).items()}
        self._delays = delays or {}
        self._upload_error = upload_error
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: list[str] = []
        self.uploads: list[Path] = []

    def upload(self, path: Path, mime_type: str) -> Any:
        if self._upload_error is not None:
            raise self._upload_error
        self.uploads.append(path)
        return {"fake_file": str(path), "mime_type": mime_type}

    def generate(
        self,
        handle: Any,
        instructions: str,
        *,
        schema: Optional[dict] = None,
        temperature: float = 0.3,
        label: str = "",
    ) -> LLMCallResult:
        match = _CHAPTER_LABEL.match(label)
        index = int(match.group(1)) if match and schema is None else None

        with self._lock:
            self.calls.append(label)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            if index is None:
                scripted = self._analysis.pop(0) if self._analysis else None
            else:
                script = self._chapters.get(index, [])
                scripted = script.pop(0) if script else chapter_html(index, label.split(": ", 1)[1])

        try:
            if index is not None and self._delays.get(index):
                time.sleep(self._delays[index])
            if isinstance(scripted, Exception):
                raise scripted
            return LLMCallResult(content=scripted or "", model_id=self.model_id)
        finally:
            with self._lock:
                self.in_flight -= 1

    def chapter_calls(self, index: int) -> int:
        return sum(1 for label in self.calls if label.startswith(f"Chapter {index}:"))


class RecordingProgressSink:
    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    def for_unit(self, unit_id: str) -> list[ProgressEvent]:
        return [e for e in self.events if e.unit_id == unit_id]


@pytest.fixture
def progress() -> RecordingProgressSink:
    return RecordingProgressSink()


@pytest.fixture
def pdf_path(tmp_path: Path) -> Path:
    path = tmp_path / "book.pdf"
    path.write_bytes(b"%PDF-1.4\n% fake test document\n")
    return path


@pytest.fixture
def source(pdf_path: Path) -> SourceDocument:
    return SourceDocument(path=pdf_path, mime_type="application/pdf", handle={"fake_file": "book.pdf"})
