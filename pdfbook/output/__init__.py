"""Output writers: a flat styled HTML page, or an EPUB container."""

from pdfbook.output.epub_book import write_epub
from pdfbook.output.html_page import render_html_page, write_html_page, write_text_atomic

__all__ = [
    "render_html_page",
    "write_html_page",
    "write_text_atomic",
    "write_epub",
]
