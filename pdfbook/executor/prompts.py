"""Instruction composer using Jinja2 templates.

Two kinds of instructions are sent to the model:
- analysis: one call returning title, author and a flat chapter list
- chapter: one call per chapter returning only that chapter's HTML

Each boundary strategy has its own analysis template and JSON schema;
the chapter template branches on the unit's boundary hint.
"""

from typing import Any, Optional

from jinja2 import BaseLoader, Environment, TemplateError

from pdfbook.executor.schemas import (
    BoundaryStrategy,
    NextTitleBoundary,
    SentenceBoundary,
    UnitDescriptor,
)

_ANALYSIS_COMMON = """\
Examine the provided PDF carefully and return a JSON object describing the work.

- Put the work's title in the "title" property (use "Unknown" if it's not clear).
- Put the author's name in the "author" property (use "Unknown" if it's not clear).
- List the chapters in reading order in the "chapters" property.
- The list must be FLAT: list only the atomic chapters. Do NOT include parts, \
books, sections or any other grouping that contains chapters, even if the \
document uses them.
"""

ANALYSIS_TEMPLATES: dict[BoundaryStrategy, str] = {
    BoundaryStrategy.NEXT_TITLE: _ANALYSIS_COMMON + """\
- Each entry in "chapters" is the chapter title exactly as it is printed in the \
document, so that it can be found verbatim to mark where the previous chapter ends.
""",
    BoundaryStrategy.SENTENCES: _ANALYSIS_COMMON + """\
- Each entry in "chapters" is an object with the chapter "title", its exact \
"first_sentence" and its exact "last_sentence", copied verbatim from the \
document so that the chapter's extent can be located precisely.
""",
}

ANALYSIS_SCHEMAS: dict[BoundaryStrategy, dict[str, Any]] = {
    BoundaryStrategy.NEXT_TITLE: {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "author": {"type": "STRING"},
            "chapters": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
        "required": ["title", "chapters"],
    },
    BoundaryStrategy.SENTENCES: {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "author": {"type": "STRING"},
            "chapters": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "title": {"type": "STRING"},
                        "first_sentence": {"type": "STRING"},
                        "last_sentence": {"type": "STRING"},
                    },
                    "required": ["title", "first_sentence", "last_sentence"],
                },
            },
        },
        "required": ["title", "chapters"],
    },
}

CHAPTER_TEMPLATE = """\
You have been tasked with converting this PDF to an EPUB in a series of steps.

Here are the conversion requirements:

- Retain basic formatting with proper headings, emphasis, and paragraphs for reflowable layout on e-readers.
- Omit extraneous text like page headings, page numbers, footnotes, etc.
- Fix any obvious OCR transcription errors.
- Remove all images. The final output should not contain any images and be text only.
- Remove inline footnote numbers.

For the current step, we want to convert ONLY one chapter: "Chapter {{ index }}: {{ title }}". \
The output should begin with an <h1> tag with the chapter number and title followed \
by the tags containing the chapter content (<p>, <h2>, <ol>, <blockquote>, etc.). \
The chapter MAY contain subchapters, which should be headed with <h2> tags.

Please output only the HTML for this particular chapter, and nothing else, no commentary.
{% if boundary.kind == "sentences" %}
The chapter begins with the sentence "{{ boundary.first_sentence }}" and ends with \
the sentence "{{ boundary.last_sentence }}". Start exactly at the first sentence and \
stop right after the last one.
{% elif boundary.next_title %}
Continue until you reach the next chapter, which is "Chapter {{ index + 1 }}: {{ boundary.next_title }}", then stop.
{% endif %}
"""


class PromptComposer:
    """Renders analysis and chapter instructions.

    Usage:
        composer = PromptComposer(BoundaryStrategy.NEXT_TITLE)
        instructions = composer.analysis_instructions()
        schema = composer.analysis_schema()
        chapter = composer.chapter_instructions(unit)
    """

    def __init__(self, strategy: BoundaryStrategy = BoundaryStrategy.NEXT_TITLE):
        self.strategy = strategy
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,  # plain-text prompts, not HTML
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def analysis_instructions(self) -> str:
        return self._render(ANALYSIS_TEMPLATES[self.strategy])

    def analysis_schema(self) -> dict[str, Any]:
        return ANALYSIS_SCHEMAS[self.strategy]

    def chapter_instructions(self, unit: UnitDescriptor) -> str:
        """Instructions for one chapter, bounded by its boundary hint.

        Raises:
            ValueError: the hint doesn't match the composer's strategy
        """
        expected = (
            SentenceBoundary if self.strategy == BoundaryStrategy.SENTENCES else NextTitleBoundary
        )
        if not isinstance(unit.boundary, expected):
            raise ValueError(
                f"Chapter {unit.index} carries a {unit.boundary.kind} boundary, "
                f"but the run uses the {self.strategy.value} strategy"
            )
        return self._render(
            CHAPTER_TEMPLATE,
            index=unit.index,
            title=unit.title,
            boundary=unit.boundary,
        )

    def _render(self, template_str: str, **context: Optional[Any]) -> str:
        try:
            template = self.env.from_string(template_str)
            rendered = template.render(**context)
        except TemplateError as e:
            raise ValueError(f"Template rendering error: {e}")
        return rendered.strip()
