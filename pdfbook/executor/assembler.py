"""Ordered assembly of chapter results into the composite output.

Both assemblers order entries by DocumentMetadata.units, never by
completion order, and hand the composite to a writer callable:
- BatchAssembler: writes once, after every chapter is accounted for
- StreamingAssembler: starts from one placeholder per chapter and
  rewrites the whole composite each time a chapter lands

Assemblers are driven from a single thread (the scheduler's collector),
so they hold no locks.
"""

import logging
from typing import Callable, Optional, Protocol

from pdfbook.executor.schemas import (
    CompositeEntry,
    CompositeOutput,
    DocumentMetadata,
    UnitResult,
)

logger = logging.getLogger(__name__)

CompositeWriter = Callable[[CompositeOutput], None]


class Assembler(Protocol):
    def accept(self, result: UnitResult) -> None: ...

    def finalize(self, failures: Optional[dict[int, str]] = None) -> CompositeOutput: ...


class _AssemblerBase:
    def __init__(self, metadata: DocumentMetadata, writer: CompositeWriter):
        self._metadata = metadata
        self._writer = writer
        self._known = {unit.index for unit in metadata.units}
        self._bodies: dict[int, str] = {}
        self._failed: set[int] = set()
        self.writes = 0

    def _check_new(self, result: UnitResult) -> None:
        if result.index not in self._known:
            raise ValueError(f"Chapter {result.index} is not part of this document")
        if result.index in self._bodies:
            raise ValueError(f"Chapter {result.index} was delivered twice")

    def _composite(self) -> CompositeOutput:
        return CompositeOutput(
            title=self._metadata.title,
            author=self._metadata.author,
            entries=[
                CompositeEntry(
                    index=unit.index,
                    title=unit.title,
                    body=self._bodies.get(unit.index, ""),
                    failed=unit.index in self._failed,
                )
                for unit in self._metadata.units
            ],
        )

    def _persist(self, composite: CompositeOutput) -> None:
        self._writer(composite)
        self.writes += 1

    def _mark_failures(self, failures: Optional[dict[int, str]]) -> None:
        for index in failures or {}:
            if index not in self._known:
                raise ValueError(f"Chapter {index} is not part of this document")
            self._failed.add(index)


class BatchAssembler(_AssemblerBase):
    """Collect everything, then write the composite in one go."""

    def accept(self, result: UnitResult) -> None:
        self._check_new(result)
        self._bodies[result.index] = result.body

    def finalize(self, failures: Optional[dict[int, str]] = None) -> CompositeOutput:
        self._mark_failures(failures)
        missing = self._known - set(self._bodies) - self._failed
        if missing:
            raise RuntimeError(
                f"Cannot assemble: chapters {sorted(missing)} have neither a result "
                f"nor a recorded failure"
            )
        composite = self._composite()
        self._persist(composite)
        logger.info(
            f"Assembled '{composite.title}': {len(self._bodies)} chapters, "
            f"{len(self._failed)} failed"
        )
        return composite


class StreamingAssembler(_AssemblerBase):
    """Rewrite the whole composite after every chapter.

    The output is always a complete document; chapters that haven't
    arrived yet are rendered as placeholders. An earlier chapter that
    finishes late simply fills its slot on the next rewrite.
    """

    def start(self) -> CompositeOutput:
        """Persist the placeholder-only composite."""
        composite = self._composite()
        self._persist(composite)
        return composite

    def accept(self, result: UnitResult) -> None:
        self._check_new(result)
        self._bodies[result.index] = result.body
        self._persist(self._composite())
        logger.debug(
            f"Streamed chapter {result.index} ({len(self._bodies)}/{len(self._known)} done)"
        )

    def finalize(self, failures: Optional[dict[int, str]] = None) -> CompositeOutput:
        self._mark_failures(failures)
        composite = self._composite()
        if self._failed:
            self._persist(composite)
        logger.info(
            f"Streaming complete for '{composite.title}': {len(self._bodies)} chapters, "
            f"{len(self._failed)} failed, {self.writes} writes"
        )
        return composite
