"""Flat HTML page output.

One self-contained page: title, author, a table of contents linking to
``#chapter-<n>``, then one ``<div id="chapter-<n>">`` per chapter. A
chapter that hasn't been converted yet shows its title as a placeholder.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from jinja2 import BaseLoader, Environment

from pdfbook.executor.schemas import CompositeEntry

logger = logging.getLogger(__name__)


def chapter_anchor(index: int) -> str:
    return f"chapter-{index}"


PAGE_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <meta name="author" content="{{ author }}">
    <title>{{ title }}</title>
    <style>
        body {
            font-family: 'Crimson Pro', 'Georgia', serif;
            font-size: 1.15rem;
            line-height: 1.6;
            color: #1e293b;
            max-width: 40em;
            margin: 0 auto;
            padding: 2em 1em;
        }
        h1, h2 { line-height: 1.2; color: #0f172a; }
        .author { color: #475569; font-style: italic; }
        nav ul { list-style: none; padding-left: 0; }
        nav li { margin: 0.3em 0; }
        nav a { color: #3b82f6; text-decoration: none; }
        main > div { margin-top: 3em; padding-top: 1em; border-top: 1px solid #e2e8f0; }
        .chapter-pending { color: #94a3b8; }
        .chapter-failed { color: #b91c1c; }
        blockquote { border-left: 4px solid #e2e8f0; margin-left: 0; padding-left: 1em; }
    </style>
</head>
<body>
    <header>
        <h1>{{ title }}</h1>
        <p class="author">{{ author }}</p>
    </header>
    <nav>
        <ul>
{% for entry in entries %}
            <li><a href="#{{ anchor(entry.index) }}">{{ entry.title }}</a></li>
{% endfor %}
        </ul>
    </nav>
    <main>
{% for entry in entries %}
{% if entry.failed %}
        <div id="{{ anchor(entry.index) }}" class="chapter-failed"><h1>{{ entry.title }}</h1><p>This chapter could not be converted.</p></div>
{% elif entry.body %}
        <div id="{{ anchor(entry.index) }}">{{ entry.body | safe }}</div>
{% else %}
        <div id="{{ anchor(entry.index) }}" class="chapter-pending">{{ entry.title }}</div>
{% endif %}
{% endfor %}
    </main>
</body>
</html>
"""

_env = Environment(
    loader=BaseLoader(),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.globals["anchor"] = chapter_anchor
_page = _env.from_string(PAGE_TEMPLATE)


def render_html_page(title: str, author: str, entries: Iterable[CompositeEntry]) -> str:
    """Render the full page. Entries are rendered in the order given."""
    return _page.render(title=title, author=author, entries=list(entries))


def write_text_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers never see a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_html_page(
    path: Path, title: str, author: str, entries: Iterable[CompositeEntry]
) -> None:
    html = render_html_page(title, author, entries)
    write_text_atomic(path, html)
    logger.debug(f"Wrote {path} ({len(html):,} chars)")
