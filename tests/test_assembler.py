import pytest

from pdfbook.executor.assembler import BatchAssembler, StreamingAssembler
from pdfbook.executor.schemas import (
    CompositeOutput,
    DocumentMetadata,
    UnitDescriptor,
    UnitResult,
)


@pytest.fixture
def metadata() -> DocumentMetadata:
    return DocumentMetadata(
        title="A Book",
        author="Jane Doe",
        units=[
            UnitDescriptor(index=1, title="Intro"),
            UnitDescriptor(index=2, title="Body"),
            UnitDescriptor(index=3, title="End"),
        ],
    )


def _result(index: int, title: str) -> UnitResult:
    return UnitResult(index=index, title=title, body=f"<p>{title}</p>")


class _Recorder:
    def __init__(self):
        self.snapshots: list[CompositeOutput] = []

    def __call__(self, composite: CompositeOutput) -> None:
        self.snapshots.append(composite)


class TestBatchAssembler:
    def test_orders_by_metadata_not_arrival(self, metadata):
        writer = _Recorder()
        assembler = BatchAssembler(metadata, writer)
        for index, title in [(3, "End"), (1, "Intro"), (2, "Body")]:
            assembler.accept(_result(index, title))

        composite = assembler.finalize()

        assert [e.title for e in composite.entries] == ["Intro", "Body", "End"]
        assert [e.body for e in composite.entries] == ["<p>Intro</p>", "<p>Body</p>", "<p>End</p>"]
        assert composite.author == "Jane Doe"

    def test_writes_exactly_once(self, metadata):
        writer = _Recorder()
        assembler = BatchAssembler(metadata, writer)
        for index, title in [(1, "Intro"), (2, "Body"), (3, "End")]:
            assembler.accept(_result(index, title))
        assert writer.snapshots == []

        assembler.finalize()

        assert len(writer.snapshots) == 1

    def test_refuses_incomplete_composite(self, metadata):
        writer = _Recorder()
        assembler = BatchAssembler(metadata, writer)
        assembler.accept(_result(2, "Body"))

        with pytest.raises(RuntimeError):
            assembler.finalize()
        assert writer.snapshots == []

    def test_recorded_failures_become_failed_entries(self, metadata):
        assembler = BatchAssembler(metadata, _Recorder())
        assembler.accept(_result(1, "Intro"))
        assembler.accept(_result(3, "End"))

        composite = assembler.finalize({2: "gave up"})

        assert composite.failed_indices == [2]
        assert composite.entries[1].body == ""

    def test_rejects_duplicates_and_strangers(self, metadata):
        assembler = BatchAssembler(metadata, _Recorder())
        assembler.accept(_result(1, "Intro"))

        with pytest.raises(ValueError):
            assembler.accept(_result(1, "Intro"))
        with pytest.raises(ValueError):
            assembler.accept(_result(9, "Nope"))


class TestStreamingAssembler:
    def test_start_writes_placeholders(self, metadata):
        writer = _Recorder()
        assembler = StreamingAssembler(metadata, writer)

        composite = assembler.start()

        assert len(writer.snapshots) == 1
        assert [e.title for e in composite.entries] == ["Intro", "Body", "End"]
        assert all(e.body == "" for e in composite.entries)

    def test_every_write_is_a_full_ordered_document(self, metadata):
        writer = _Recorder()
        assembler = StreamingAssembler(metadata, writer)
        assembler.start()
        for index, title in [(2, "Body"), (3, "End"), (1, "Intro")]:
            assembler.accept(_result(index, title))

        assert len(writer.snapshots) == 4
        for snapshot in writer.snapshots:
            assert [e.index for e in snapshot.entries] == [1, 2, 3]

        filled = [[bool(e.body) for e in s.entries] for s in writer.snapshots]
        assert filled == [
            [False, False, False],
            [False, True, False],
            [False, True, True],
            [True, True, True],
        ]

    def test_finalize_without_failures_adds_no_write(self, metadata):
        writer = _Recorder()
        assembler = StreamingAssembler(metadata, writer)
        assembler.start()
        for index, title in [(1, "Intro"), (2, "Body"), (3, "End")]:
            assembler.accept(_result(index, title))

        composite = assembler.finalize()

        assert len(writer.snapshots) == 4
        assert composite.failed_indices == []

    def test_finalize_persists_failures(self, metadata):
        writer = _Recorder()
        assembler = StreamingAssembler(metadata, writer)
        assembler.start()
        assembler.accept(_result(1, "Intro"))
        assembler.accept(_result(2, "Body"))

        composite = assembler.finalize({3: "gave up"})

        assert composite.failed_indices == [3]
        assert writer.snapshots[-1].failed_indices == [3]
