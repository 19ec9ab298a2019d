"""Run configuration.

Defaults can be overridden through the environment:
- PDFBOOK_MODEL: model identifier (default gemini-2.5-flash)
- PDFBOOK_CONCURRENCY: max chapters converted at once (default 5)
- PDFBOOK_RETRY_JITTER: max seconds of random sleep before a retry (default 0)
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from pdfbook.executor.schemas import BoundaryStrategy, DeliveryMode, OutputFormat

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_CONCURRENCY = 5
MAX_ATTEMPTS = 3
DEFAULT_TEMPERATURE = 0.3


def output_format_for(path: Path) -> OutputFormat:
    """EPUB when the output ends in .epub, a flat HTML page otherwise."""
    if path.suffix.lower() == ".epub":
        return OutputFormat.EPUB
    return OutputFormat.HTML


class ConversionConfig(BaseModel):
    """Everything a conversion run needs besides the backend itself."""

    input_path: Path
    output_path: Path
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = Field(default=None, repr=False)
    max_concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    max_attempts: int = Field(default=MAX_ATTEMPTS, ge=1)
    retry_jitter_seconds: float = Field(default=0.0, ge=0.0)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    boundary_strategy: BoundaryStrategy = BoundaryStrategy.NEXT_TITLE
    delivery_mode: Optional[DeliveryMode] = Field(
        default=None,
        description="None picks streaming for HTML and batch for EPUB",
    )
    keep_going: bool = Field(
        default=False,
        description="Record chapter failures and continue instead of aborting the run",
    )

    @property
    def output_format(self) -> OutputFormat:
        return output_format_for(self.output_path)

    @property
    def effective_delivery_mode(self) -> DeliveryMode:
        if self.delivery_mode is not None:
            return self.delivery_mode
        if self.output_format == OutputFormat.EPUB:
            return DeliveryMode.BATCH
        return DeliveryMode.STREAMING

    @model_validator(mode="after")
    def _check_mode(self) -> "ConversionConfig":
        if (
            self.output_format == OutputFormat.EPUB
            and self.delivery_mode == DeliveryMode.STREAMING
        ):
            raise ValueError("EPUB output only supports batch delivery")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "ConversionConfig":
        """Build a config, filling unset fields from PDFBOOK_* variables."""
        values: dict = {
            "model": os.environ.get("PDFBOOK_MODEL", DEFAULT_MODEL),
            "max_concurrency": int(
                os.environ.get("PDFBOOK_CONCURRENCY", DEFAULT_CONCURRENCY)
            ),
            "retry_jitter_seconds": float(
                os.environ.get("PDFBOOK_RETRY_JITTER", "0")
            ),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
