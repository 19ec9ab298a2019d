"""pdfbook - chapter-by-chapter PDF to e-book conversion.

This package turns a long PDF into a reflowable document:
- Analysis (one LLM call for title, author and the flat chapter list)
- Per-chapter conversion (bounded fan-out, retried LLM calls)
- Ordered assembly into a single HTML page or an EPUB container
"""

__version__ = "0.1.0"
