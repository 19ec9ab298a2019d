import pytest

from conftest import FakeBackend, analysis_json
from pdfbook.errors import AnalysisFailure, MalformedMetadata
from pdfbook.executor.analyzer import DocumentAnalyzer
from pdfbook.executor.prompts import PromptComposer
from pdfbook.executor.schemas import (
    BoundaryStrategy,
    DocumentMetadata,
    NextTitleBoundary,
    SentenceBoundary,
    UnitDescriptor,
)
from pdfbook.llm.client import TransformClient


def _analyzer(backend, source, strategy=BoundaryStrategy.NEXT_TITLE, progress=None):
    client = TransformClient(backend, source, progress=progress)
    return DocumentAnalyzer(client, PromptComposer(strategy))


class TestNextTitleAnalysis:
    def test_builds_dense_units_with_next_titles(self, source):
        backend = FakeBackend(analysis=[analysis_json(["Intro", "Body", "End"])])

        metadata = _analyzer(backend, source).analyze()

        assert metadata.title == "A Book"
        assert metadata.author == "Jane Doe"
        assert [u.index for u in metadata.units] == [1, 2, 3]
        assert [u.title for u in metadata.units] == ["Intro", "Body", "End"]
        assert [u.boundary.next_title for u in metadata.units] == ["Body", "End", None]

    def test_author_defaults_to_unknown(self, source):
        backend = FakeBackend(analysis=[analysis_json(["Only"], author=None)])

        metadata = _analyzer(backend, source).analyze()

        assert metadata.author == "Unknown"

    def test_blank_author_defaults_to_unknown(self, source):
        backend = FakeBackend(analysis=[analysis_json(["Only"], author="  ")])

        assert _analyzer(backend, source).analyze().author == "Unknown"

    def test_fenced_payload_accepted(self, source):
        raw = "```json\n" + analysis_json(["One", "Two"]) + "\n```"
        backend = FakeBackend(analysis=[raw])

        assert len(_analyzer(backend, source).analyze().units) == 2

    def test_sends_schema(self, source):
        backend = FakeBackend(analysis=[analysis_json(["One"])])
        seen = {}
        original = backend.generate

        def spy(handle, instructions, *, schema=None, temperature=0.3, label=""):
            seen["schema"] = schema
            seen["instructions"] = instructions
            return original(handle, instructions, schema=schema, temperature=temperature, label=label)

        backend.generate = spy
        _analyzer(backend, source).analyze()

        assert seen["schema"]["properties"]["chapters"]["type"] == "ARRAY"
        assert "FLAT" in seen["instructions"]


class TestSentenceAnalysis:
    def test_builds_sentence_boundaries(self, source):
        chapters = [
            {"title": "Intro", "first_sentence": "It began.", "last_sentence": "So it went."},
            {"title": "End", "first_sentence": "Later.", "last_sentence": "The end."},
        ]
        backend = FakeBackend(analysis=[analysis_json(chapters)])

        metadata = _analyzer(backend, source, BoundaryStrategy.SENTENCES).analyze()

        first = metadata.units[0].boundary
        assert isinstance(first, SentenceBoundary)
        assert first.first_sentence == "It began."
        assert metadata.units[1].boundary.last_sentence == "The end."

    def test_missing_sentence_is_malformed(self, source):
        backend = FakeBackend(analysis=[analysis_json([{"title": "Intro"}])])

        with pytest.raises(MalformedMetadata):
            _analyzer(backend, source, BoundaryStrategy.SENTENCES).analyze()


class TestAnalysisFailures:
    def test_invalid_json_keeps_raw_payload(self, source):
        backend = FakeBackend(analysis=["this is not json"])

        with pytest.raises(MalformedMetadata) as exc_info:
            _analyzer(backend, source).analyze()

        assert exc_info.value.raw_response == "this is not json"

    def test_empty_chapter_list_is_malformed(self, source):
        raw = analysis_json([])
        backend = FakeBackend(analysis=[raw])

        with pytest.raises(MalformedMetadata) as exc_info:
            _analyzer(backend, source).analyze()

        assert exc_info.value.raw_response == raw

    def test_missing_chapters_key_is_malformed(self, source):
        backend = FakeBackend(analysis=['{"title": "No chapters here"}'])

        with pytest.raises(MalformedMetadata):
            _analyzer(backend, source).analyze()

    def test_malformed_payload_is_not_retried(self, source):
        backend = FakeBackend(analysis=["{broken", analysis_json(["Would succeed"])])

        with pytest.raises(MalformedMetadata):
            _analyzer(backend, source).analyze()
        assert len(backend.calls) == 1

    def test_exhausted_retries_are_analysis_failure(self, source):
        backend = FakeBackend(analysis=[RuntimeError("down")] * 3)

        with pytest.raises(AnalysisFailure):
            _analyzer(backend, source).analyze()
        assert len(backend.calls) == 3

    def test_transient_failure_recovers(self, source):
        backend = FakeBackend(analysis=[RuntimeError("blip"), analysis_json(["One"])])

        assert len(_analyzer(backend, source).analyze().units) == 1


class TestDocumentMetadata:
    def test_rejects_empty_units(self):
        with pytest.raises(ValueError):
            DocumentMetadata(title="T", units=[])

    def test_rejects_non_dense_indices(self):
        with pytest.raises(ValueError):
            DocumentMetadata(
                title="T",
                units=[UnitDescriptor(index=1, title="a"), UnitDescriptor(index=3, title="b")],
            )

    def test_default_boundary_is_next_title(self):
        unit = UnitDescriptor(index=1, title="a")
        assert isinstance(unit.boundary, NextTitleBoundary)
        assert unit.boundary.next_title is None
