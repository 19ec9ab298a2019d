from pathlib import Path

import pytest

from pdfbook.config import ConversionConfig, output_format_for
from pdfbook.executor.schemas import DeliveryMode, OutputFormat


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PDFBOOK_MODEL", "PDFBOOK_CONCURRENCY", "PDFBOOK_RETRY_JITTER"):
        monkeypatch.delenv(name, raising=False)


def _config(output: str, **kwargs) -> ConversionConfig:
    return ConversionConfig(input_path=Path("in.pdf"), output_path=Path(output), **kwargs)


class TestOutputFormat:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("book.epub", OutputFormat.EPUB),
            ("BOOK.EPUB", OutputFormat.EPUB),
            ("book.html", OutputFormat.HTML),
            ("book", OutputFormat.HTML),
        ],
    )
    def test_format_follows_suffix(self, name, expected):
        assert output_format_for(Path(name)) == expected

    def test_html_streams_by_default(self):
        assert _config("b.html").effective_delivery_mode == DeliveryMode.STREAMING

    def test_epub_is_batch_by_default(self):
        assert _config("b.epub").effective_delivery_mode == DeliveryMode.BATCH

    def test_explicit_batch_html(self):
        config = _config("b.html", delivery_mode=DeliveryMode.BATCH)
        assert config.effective_delivery_mode == DeliveryMode.BATCH

    def test_streaming_epub_rejected(self):
        with pytest.raises(ValueError):
            _config("b.epub", delivery_mode=DeliveryMode.STREAMING)


class TestFromEnv:
    def test_defaults(self):
        config = ConversionConfig.from_env(input_path=Path("a.pdf"), output_path=Path("b.html"))

        assert config.model == "gemini-2.5-flash"
        assert config.max_concurrency == 5
        assert config.max_attempts == 3
        assert config.retry_jitter_seconds == 0.0
        assert config.keep_going is False

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("PDFBOOK_CONCURRENCY", "2")
        monkeypatch.setenv("PDFBOOK_RETRY_JITTER", "1.5")

        config = ConversionConfig.from_env(input_path=Path("a.pdf"), output_path=Path("b.html"))

        assert config.max_concurrency == 2
        assert config.retry_jitter_seconds == 1.5

    def test_explicit_values_win_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("PDFBOOK_CONCURRENCY", "2")

        config = ConversionConfig.from_env(
            input_path=Path("a.pdf"),
            output_path=Path("b.html"),
            max_concurrency=7,
            model=None,
        )

        assert config.max_concurrency == 7
        assert config.model == "gemini-2.5-flash"

    def test_api_key_hidden_from_repr(self):
        config = _config("b.html", api_key="super-secret")
        assert "super-secret" not in repr(config)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            _config("b.html", max_concurrency=0)
