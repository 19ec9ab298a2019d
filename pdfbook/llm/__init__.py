"""Shared LLM client utilities.

Provides the backends for the providers that read PDFs directly
(Google Gemini, Anthropic Claude) and the retried TransformClient used by
both the analysis step and the per-chapter conversions.
"""

from pdfbook.llm.backends import (
    LLMCallResult,
    ModelBackend,
    AnthropicBackend,
    GeminiBackend,
)
from pdfbook.llm.client import (
    TransformClient,
    TransformOutcome,
    parse_llm_json_response,
    strip_html_fences,
)
from pdfbook.llm.factory import get_backend

__all__ = [
    "LLMCallResult",
    "ModelBackend",
    "AnthropicBackend",
    "GeminiBackend",
    "TransformClient",
    "TransformOutcome",
    "parse_llm_json_response",
    "strip_html_fences",
    "get_backend",
]
