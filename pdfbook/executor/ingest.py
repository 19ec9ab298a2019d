"""Source ingestion: upload the input PDF once for the whole run."""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

from pdfbook.errors import IngestionFailure
from pdfbook.executor.progress import NullProgressSink, ProgressSink
from pdfbook.executor.schemas import ProgressEvent, ProgressPhase, SourceDocument
from pdfbook.llm.backends import ModelBackend

logger = logging.getLogger(__name__)

UPLOAD_ID = "upload"
DEFAULT_MIME_TYPE = "application/pdf"


def ingest_source(
    path: Path,
    backend: ModelBackend,
    progress: Optional[ProgressSink] = None,
) -> SourceDocument:
    """Upload ``path`` through the backend and return the shared handle.

    Raises:
        IngestionFailure: the path is missing, not a file, or the upload failed
    """
    progress = progress or NullProgressSink()
    label = "File upload"
    progress.emit(ProgressEvent(unit_id=UPLOAD_ID, phase=ProgressPhase.STARTED, label=label))

    if not path.exists():
        _fail(progress, label, f"Input file not found: {path}")
    if not path.is_file():
        _fail(progress, label, f"Input path is not a file: {path}")

    mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
    try:
        handle = backend.upload(path, mime_type)
    except Exception as e:
        _fail(progress, label, f"Upload of {path.name} failed: {e}", cause=e)

    progress.emit(ProgressEvent(unit_id=UPLOAD_ID, phase=ProgressPhase.SUCCEEDED, label=label))
    logger.info(f"Ingested {path} ({path.stat().st_size:,} bytes, {mime_type})")
    return SourceDocument(path=path, mime_type=mime_type, handle=handle)


def _fail(
    progress: ProgressSink,
    label: str,
    message: str,
    cause: Optional[Exception] = None,
) -> None:
    progress.emit(
        ProgressEvent(unit_id=UPLOAD_ID, phase=ProgressPhase.FAILED, label=label, detail=message)
    )
    raise IngestionFailure(message) from cause
