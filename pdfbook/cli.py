"""CLI entrypoint for the PDF -> chapters -> HTML/EPUB conversion.

Usage:
    python -m pdfbook -i book.pdf -o book.html -k $GEMINI_API_KEY
    python -m pdfbook -i book.pdf -o book.epub
    python -m pdfbook -i book.pdf -o book.html -m claude-sonnet-4-5
    python -m pdfbook -i book.pdf -o book.html --boundaries sentences
    python -m pdfbook -i book.pdf -o book.html --concurrency 3 --keep-going
"""

from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pdfbook.config import DEFAULT_CONCURRENCY, DEFAULT_MODEL, ConversionConfig
from pdfbook.errors import PipelineError
from pdfbook.executor.pipeline import run_conversion
from pdfbook.executor.progress import ConsoleProgressSink, FanoutProgressSink, LoggingProgressSink
from pdfbook.executor.schemas import BoundaryStrategy, DeliveryMode

log = logging.getLogger(__name__)


def _setup_logging(*, verbose: bool, log_file: Path | None) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    root_level = logging.INFO if verbose else logging.WARNING
    root_logger.setLevel(logging.DEBUG if log_file else root_level)

    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    detailed_fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "%(threadName)s | %(filename)s:%(lineno)d | %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(root_level)
    console_handler.setFormatter(logging.Formatter(fmt, "%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(detailed_fmt, "%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="pdfbook",
        description="Convert a PDF book into a reflowable HTML page or EPUB, chapter by chapter",
    )
    parser.add_argument(
        "--input", "-i", type=Path, required=True, help="Input PDF file path"
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        required=True,
        help="Output file path (.epub for an EPUB, anything else for a single HTML page)",
    )
    parser.add_argument(
        "--key",
        "-k",
        default=None,
        help="API key (default: GEMINI_API_KEY or ANTHROPIC_API_KEY from the environment)",
    )
    parser.add_argument(
        "--model",
        "-m",
        default=None,
        help=f"Model identifier (default: $PDFBOOK_MODEL or {DEFAULT_MODEL})",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Chapters converted at once (default: $PDFBOOK_CONCURRENCY or {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--boundaries",
        choices=[s.value for s in BoundaryStrategy],
        default=BoundaryStrategy.NEXT_TITLE.value,
        help="How chapter extents are given to the model (default: next-title)",
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in DeliveryMode],
        default=None,
        help="Rewrite the output after every chapter, or write once at the end "
        "(default: streaming for HTML, batch for EPUB)",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Keep converting when a chapter fails; exit 1 at the end if any failed",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional rotating debug log file",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run one conversion; exit 0 on success, 1 on any fatal error."""
    args = parse_args(argv)
    _setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = ConversionConfig.from_env(
            input_path=args.input,
            output_path=args.output,
            api_key=args.key,
            model=args.model,
            max_concurrency=args.concurrency,
            boundary_strategy=BoundaryStrategy(args.boundaries),
            delivery_mode=DeliveryMode(args.mode) if args.mode else None,
            keep_going=args.keep_going,
        )
    except ValueError as e:
        log.error(f"Invalid configuration: {e}")
        sys.exit(1)

    progress = ConsoleProgressSink()
    if args.verbose or args.log_file:
        progress = FanoutProgressSink(progress, LoggingProgressSink())

    try:
        report = run_conversion(config, progress=progress)
    except PipelineError as e:
        log.error(f"Error: {e}")
        if e.raw_response is not None:
            log.error(f"Raw response: {e.raw_response}")
        sys.exit(1)
    except (ValueError, RuntimeError) as e:
        log.error(f"Error: {e}")
        sys.exit(1)

    if not report.ok:
        log.error(
            f"{len(report.failed_units)} chapter(s) failed: "
            f"{', '.join(str(i) for i in report.failed_units)}"
        )
        sys.exit(1)

    print("Done!")
