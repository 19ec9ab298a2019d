"""Top-level conversion run.

source path -> upload -> analysis -> chapter fan-out -> ordered assembly

Upload and analysis run exactly once, sequentially; chapter scheduling
starts only after analysis succeeded. Any PipelineError propagates to the
caller. In streaming mode a partially filled page may already be on disk
when that happens; in batch mode nothing is written.
"""

import logging
import time
from typing import Optional

from pdfbook.config import ConversionConfig
from pdfbook.executor.analyzer import DocumentAnalyzer
from pdfbook.executor.assembler import BatchAssembler, CompositeWriter, StreamingAssembler
from pdfbook.executor.ingest import ingest_source
from pdfbook.executor.progress import LoggingProgressSink, ProgressSink
from pdfbook.executor.prompts import PromptComposer
from pdfbook.executor.scheduler import UnitScheduler
from pdfbook.executor.schemas import (
    CompositeOutput,
    ConversionReport,
    DeliveryMode,
    OutputFormat,
)
from pdfbook.llm.backends import ModelBackend
from pdfbook.llm.client import TransformClient
from pdfbook.llm.factory import get_backend
from pdfbook.output.epub_book import write_epub
from pdfbook.output.html_page import write_html_page

logger = logging.getLogger(__name__)


def composite_writer(config: ConversionConfig) -> CompositeWriter:
    """Writer callable for the configured output file."""
    path = config.output_path
    if config.output_format == OutputFormat.EPUB:
        def write(composite: CompositeOutput) -> None:
            write_epub(path, composite.title, composite.author, composite.entries)
    else:
        def write(composite: CompositeOutput) -> None:
            write_html_page(path, composite.title, composite.author, composite.entries)
    return write


def run_conversion(
    config: ConversionConfig,
    *,
    backend: Optional[ModelBackend] = None,
    progress: Optional[ProgressSink] = None,
) -> ConversionReport:
    """Convert config.input_path into config.output_path.

    Args:
        config: Run configuration
        backend: LLM backend; resolved from config.model when omitted
        progress: Sink for per-unit events (default: log them)

    Returns:
        ConversionReport. With keep_going, failed chapters are listed in
        report.failed_units and rendered as placeholders.

    Raises:
        IngestionFailure, AnalysisFailure, MalformedMetadata, UnitFatalFailure
    """
    start_time = time.time()
    progress = progress or LoggingProgressSink()
    backend = backend or get_backend(config.model, config.api_key)
    mode = config.effective_delivery_mode

    logger.info(
        f"Converting {config.input_path} -> {config.output_path} "
        f"(model={backend.model_id}, format={config.output_format.value}, "
        f"mode={mode.value}, boundaries={config.boundary_strategy.value}, "
        f"max_concurrency={config.max_concurrency})"
    )

    source = ingest_source(config.input_path, backend, progress)
    client = TransformClient(
        backend,
        source,
        progress=progress,
        max_attempts=config.max_attempts,
        retry_jitter_seconds=config.retry_jitter_seconds,
        temperature=config.temperature,
    )
    composer = PromptComposer(config.boundary_strategy)

    metadata = DocumentAnalyzer(client, composer).analyze()

    writer = composite_writer(config)
    if mode == DeliveryMode.STREAMING:
        assembler = StreamingAssembler(metadata, writer)
        assembler.start()
    else:
        assembler = BatchAssembler(metadata, writer)

    scheduler = UnitScheduler(
        client,
        composer,
        max_concurrency=config.max_concurrency,
        keep_going=config.keep_going,
    )
    outcome = scheduler.schedule_all(metadata.units, on_result=assembler.accept)
    composite = assembler.finalize(outcome.failures)

    duration_ms = int((time.time() - start_time) * 1000)
    report = ConversionReport(
        output_path=str(config.output_path),
        output_format=config.output_format,
        title=composite.title,
        author=composite.author,
        total_units=len(metadata.units),
        succeeded_units=len(outcome.results),
        failed_units=composite.failed_indices,
        total_attempts=sum(r.attempts for r in outcome.results.values()),
        duration_ms=duration_ms,
    )

    logger.info("=" * 60)
    logger.info("CONVERSION COMPLETE" if report.ok else "CONVERSION FINISHED WITH FAILURES")
    logger.info(f"  Title:     {report.title}")
    logger.info(f"  Author:    {report.author}")
    logger.info(f"  Chapters:  {report.succeeded_units}/{report.total_units} converted")
    logger.info(f"  Attempts:  {report.total_attempts}")
    logger.info(f"  Output:    {report.output_path}")
    logger.info(f"  Runtime:   {duration_ms / 1000:.1f}s")
    if not report.ok:
        for index in report.failed_units:
            logger.warning(f"  - chapter {index}: {outcome.failures[index][:200]}")
    return report
