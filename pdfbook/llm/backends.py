"""LLM backend abstraction for multi-model support.

Provides a unified interface for the two providers that can read a PDF
directly (Google Gemini, Anthropic Claude):
- upload(): make the source document referenceable by later calls
- generate(): one call with system instructions against the uploaded source

Each backend handles provider-specific concerns:
- Client creation and timeout configuration
- Document upload (Gemini files API vs inline base64 document block)
- Structured output (native response schema vs schema in the prompt)
- Response parsing and token counting

The TransformClient handles model-agnostic concerns:
- Retry state machine
- Progress events
- Markup fence cleanup
"""

import base64
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from pdfbook.errors import TransientCallFailure

logger = logging.getLogger(__name__)


@dataclass
class LLMCallResult:
    """Normalized response from any LLM backend."""

    content: str
    model_id: str
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0


# Every harm category the Gemini API lets us relax. Books routinely contain
# violence and mature themes that would otherwise get a chapter blocked.
GEMINI_SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
]


@runtime_checkable
class ModelBackend(Protocol):
    """Protocol for LLM backend implementations."""

    @property
    def model_id(self) -> str: ...

    def upload(self, path: Path, mime_type: str) -> Any:
        """Upload the source and return a handle for generate()."""
        ...

    def generate(
        self,
        handle: Any,
        instructions: str,
        *,
        schema: Optional[dict] = None,
        temperature: float = 0.3,
        label: str = "",
    ) -> LLMCallResult: ...


class GeminiBackend:
    """Google Gemini backend.

    Handles:
    - Upload through the files API (the PDF never travels with each call)
    - JSON output via response_schema
    - Safety filters relaxed to BLOCK_NONE

    Requires GEMINI_API_KEY (or an explicit api_key).
    Requires google-genai package: pip install google-genai
    """

    def __init__(self, model_id: str = "gemini-2.5-flash", api_key: Optional[str] = None):
        self._model_id = model_id
        self._api_key = api_key
        self._client = None

    @property
    def model_id(self) -> str:
        return self._model_id

    def _get_client(self):
        """Get a Gemini client. Lazy import to avoid requiring google-genai."""
        if self._client is not None:
            return self._client
        try:
            from google import genai
        except ImportError:
            raise RuntimeError(
                "google-genai package not installed. "
                "Install with: pip install google-genai"
            )

        api_key = self._api_key or os.environ.get("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError(
                "GEMINI_API_KEY not set. Pass --key or set the environment variable."
            )
        self._client = genai.Client(api_key=api_key)
        return self._client

    def upload(self, path: Path, mime_type: str) -> Any:
        from google.genai import types

        client = self._get_client()
        start_time = time.time()
        uploaded = client.files.upload(file=str(path), config={"mime_type": mime_type})
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Uploaded {path.name} to Gemini as {uploaded.name} ({duration_ms}ms)")
        return types.Part.from_uri(file_uri=uploaded.uri, mime_type=mime_type)

    def generate(
        self,
        handle: Any,
        instructions: str,
        *,
        schema: Optional[dict] = None,
        temperature: float = 0.3,
        label: str = "",
    ) -> LLMCallResult:
        from google.genai import types

        client = self._get_client()
        start_time = time.time()

        config_kwargs: dict[str, Any] = {
            "system_instruction": instructions,
            "temperature": temperature,
            "safety_settings": [
                types.SafetySetting(category=category, threshold="BLOCK_NONE")
                for category in GEMINI_SAFETY_CATEGORIES
            ],
        }
        if schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = schema

        logger.debug(
            f"[{label}] Gemini call: model={self._model_id}, "
            f"instructions={len(instructions):,} chars, json={'yes' if schema else 'no'}"
        )

        response = client.models.generate_content(
            model=self._model_id,
            contents=[handle],
            config=types.GenerateContentConfig(**config_kwargs),
        )

        duration_ms = int((time.time() - start_time) * 1000)
        raw_text = response.text or ""
        if not raw_text.strip():
            raise TransientCallFailure(f"[{label}] Empty response from {self._model_id}")

        usage = getattr(response, "usage_metadata", None)
        input_tokens = getattr(usage, "prompt_token_count", 0) or 0
        output_tokens = getattr(usage, "candidates_token_count", 0) or 0

        logger.info(
            f"[{label}] Gemini completed: {input_tokens}+{output_tokens} tokens, "
            f"{duration_ms}ms, {len(raw_text):,} chars"
        )

        return LLMCallResult(
            content=raw_text,
            model_id=self._model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )


class AnthropicBackend:
    """Anthropic Claude backend.

    Handles:
    - PDF sent inline as a base64 document block on every call
    - JSON output requested through the system prompt (no native schema)
    - Long read timeout for whole-chapter outputs
    """

    def __init__(self, model_id: str = "claude-sonnet-4-5", api_key: Optional[str] = None):
        self._model_id = model_id
        self._api_key = api_key
        self._client = None

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def max_output_tokens(self) -> int:
        if "haiku" in self._model_id:
            return 16_000
        return 32_000

    def _get_client(self):
        if self._client is not None:
            return self._client
        import httpx
        from anthropic import Anthropic

        api_key = self._api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise RuntimeError(
                "ANTHROPIC_API_KEY not set. Pass --key or set the environment variable."
            )
        self._client = Anthropic(
            api_key=api_key,
            timeout=httpx.Timeout(
                connect=60.0,
                read=1200.0,  # 20 min for a long chapter
                write=120.0,  # 2 min for a large PDF
                pool=60.0,
            ),
        )
        return self._client

    def upload(self, path: Path, mime_type: str) -> Any:
        data = base64.standard_b64encode(path.read_bytes()).decode("ascii")
        logger.info(f"Prepared {path.name} as inline document block ({len(data):,} b64 chars)")
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": mime_type, "data": data},
        }

    def generate(
        self,
        handle: Any,
        instructions: str,
        *,
        schema: Optional[dict] = None,
        temperature: float = 0.3,
        label: str = "",
    ) -> LLMCallResult:
        client = self._get_client()
        start_time = time.time()

        system_prompt = instructions
        if schema is not None:
            system_prompt += (
                "\n\nRespond with a single JSON object and nothing else. "
                f"It must match this schema:\n{json.dumps(schema, indent=2)}"
            )

        response = client.messages.create(
            model=self._model_id,
            max_tokens=self.max_output_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[
                {
                    "role": "user",
                    "content": [
                        handle,
                        {"type": "text", "text": "Follow the instructions for this document."},
                    ],
                }
            ],
        )

        duration_ms = int((time.time() - start_time) * 1000)

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text

        if not raw_text.strip():
            raise TransientCallFailure(f"[{label}] Empty response from {self._model_id}")

        logger.info(
            f"[{label}] Anthropic completed: {response.usage.input_tokens}+"
            f"{response.usage.output_tokens} tokens, {duration_ms}ms, "
            f"{len(raw_text):,} chars"
        )

        return LLMCallResult(
            content=raw_text,
            model_id=self._model_id,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=duration_ms,
        )
