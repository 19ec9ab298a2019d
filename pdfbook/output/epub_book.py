"""EPUB output using ebooklib.

One XHTML document per chapter, in order, plus the EPUB 3 nav and the
legacy NCX so older readers get a table of contents too.
"""

import html
import logging
import uuid
from pathlib import Path
from typing import Iterable

from ebooklib import epub as ep

from pdfbook.executor.schemas import CompositeEntry

logger = logging.getLogger(__name__)

BOOK_CSS = """\
body { font-family: serif; line-height: 1.5; }
h1, h2 { line-height: 1.2; }
blockquote { margin-left: 1em; font-style: italic; }
.chapter-failed { color: #b91c1c; }
"""


def _book_identifier(title: str, author: str) -> str:
    # Stable across re-runs of the same book
    return f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, f'pdfbook:{author}:{title}')}"


def write_epub(
    path: Path,
    title: str,
    author: str,
    entries: Iterable[CompositeEntry],
    *,
    language: str = "en",
) -> None:
    """Package the chapters into an EPUB at ``path``."""
    book = ep.EpubBook()
    book.set_identifier(_book_identifier(title, author))
    book.set_title(title)
    book.set_language(language)
    book.add_author(author)

    style = ep.EpubItem(
        uid="style",
        file_name="style/book.css",
        media_type="text/css",
        content=BOOK_CSS,
    )
    book.add_item(style)

    chapters = []
    for entry in entries:
        item = ep.EpubHtml(
            title=entry.title,
            file_name=f"chapter-{entry.index}.xhtml",
            lang=language,
        )
        if entry.failed:
            item.content = (
                f'<div class="chapter-failed"><h1>{html.escape(entry.title)}</h1>'
                f"<p>This chapter could not be converted.</p></div>"
            )
        else:
            item.content = entry.body
        item.add_item(style)
        book.add_item(item)
        chapters.append(item)

    book.toc = chapters
    book.add_item(ep.EpubNcx())
    book.add_item(ep.EpubNav())
    book.spine = ["nav", *chapters]

    path.parent.mkdir(parents=True, exist_ok=True)
    ep.write_epub(str(path), book)
    logger.info(f"Wrote EPUB {path} with {len(chapters)} chapters")

