"""Execution engine for a PDF conversion run.

Architecture (bottom-up):
- ingest: Upload the source PDF once, shared by every call
- prompts: Jinja2 instructions for analysis and per-chapter conversion
- analyzer: Single analysis call -> title, author, flat chapter list
- scheduler: Bounded fan-out, one retried LLM call per chapter
- assembler: Ordered fan-in (batch, or streaming rewrite per chapter)
- pipeline: Top-level run wiring all of the above
- progress: Injected sinks for per-unit lifecycle events
"""
