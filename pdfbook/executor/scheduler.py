"""Chapter scheduler: bounded fan-out of one retried LLM call per chapter.

All chapters are submitted up front to a thread pool whose size is the
concurrency bound, so no more than min(chapters, max_concurrency) calls
are ever in flight. Workers own their chapter index and only return a
result; collection and the on_result callback both happen in the calling
thread, in completion order.

Failure policy:
- default: the first chapter that exhausts its retries aborts the run.
  Queued chapters are cancelled and in-flight workers stop before their
  next attempt.
- keep_going: the failure is recorded and the other chapters continue.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Optional

from pdfbook.errors import MalformedMetadata, RetriesExhausted, UnitFatalFailure
from pdfbook.executor.prompts import PromptComposer
from pdfbook.executor.schemas import ScheduleOutcome, UnitDescriptor, UnitResult
from pdfbook.llm.client import TransformClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


def unit_call_id(index: int) -> str:
    return f"chapter-{index}"


def unit_label(unit: UnitDescriptor) -> str:
    return f"Chapter {unit.index}: {unit.title}"


class UnitScheduler:
    def __init__(
        self,
        client: TransformClient,
        composer: Optional[PromptComposer] = None,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        keep_going: bool = False,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._client = client
        self._composer = composer or PromptComposer()
        self._max_concurrency = max_concurrency
        self._keep_going = keep_going

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def schedule_all(
        self,
        units: Iterable[UnitDescriptor],
        on_result: Optional[Callable[[UnitResult], None]] = None,
    ) -> ScheduleOutcome:
        """Convert every chapter and collect the results by index.

        Args:
            units: Chapters to convert, in document order
            on_result: Called in this thread as each chapter completes

        Returns:
            ScheduleOutcome with results (and, with keep_going, failures)

        Raises:
            MalformedMetadata: no chapters to schedule (nothing is submitted)
            UnitFatalFailure: a chapter exhausted its retries (default policy)
        """
        units = list(units)
        if not units:
            raise MalformedMetadata("Cannot schedule a run with zero chapters")
        indices = [u.index for u in units]
        if len(set(indices)) != len(indices):
            raise ValueError(f"Duplicate chapter indices: {sorted(indices)}")

        start_time = time.time()
        pool_size = min(len(units), self._max_concurrency)
        logger.info(
            f"Scheduling {len(units)} chapters on {pool_size} workers "
            f"(max_concurrency={self._max_concurrency}, keep_going={self._keep_going})"
        )

        outcome = ScheduleOutcome()
        cancelled = threading.Event()
        executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="chapter")

        try:
            futures = {
                executor.submit(self._run_unit, unit, cancelled.is_set): unit
                for unit in units
            }

            for future in as_completed(futures):
                unit = futures[future]
                try:
                    result = future.result()
                except RetriesExhausted as e:
                    if not self._keep_going:
                        raise UnitFatalFailure(unit.index, unit.title, e.last_error) from e
                    logger.warning(
                        f"[{unit_call_id(unit.index)}] Giving up on '{unit.title}', "
                        f"continuing with the remaining chapters"
                    )
                    outcome.failures[unit.index] = e.last_error
                    continue

                outcome.results[result.index] = result
                if on_result:
                    on_result(result)

        except BaseException:
            cancelled.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        executor.shutdown(wait=True)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Scheduling finished: {len(outcome.results)} converted, "
            f"{len(outcome.failures)} failed, {duration_ms}ms"
        )
        return outcome

    def _run_unit(
        self,
        unit: UnitDescriptor,
        cancellation_check: Callable[[], bool],
    ) -> UnitResult:
        instructions = self._composer.chapter_instructions(unit)
        outcome = self._client.run(
            instructions,
            call_id=unit_call_id(unit.index),
            label=unit_label(unit),
            expect_markup=True,
            cancellation_check=cancellation_check,
        )
        return UnitResult(
            index=unit.index,
            title=unit.title,
            body=outcome.text,
            attempts=outcome.attempts,
        )
