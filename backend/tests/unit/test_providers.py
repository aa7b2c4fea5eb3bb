"""Tests for providers: selection, the registry and both attachment protocols.

SDK clients are replaced by mocks; no provider is contacted.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.genai import errors as genai_errors
from openai import OpenAIError

from config import settings
from errors import (
    AttachmentUploadError,
    BadRequest,
    ConfigurationError,
    EmptyGenerationError,
    NoAttachmentsError,
    UpstreamError,
)
from exams.prompt import build_exam_prompt
from materials.fetch import StoredMaterialFile
from providers import Attachment, Provider, ProviderRegistry, resolve_model, resolve_provider
from providers.gemini import GeminiProvider
from providers.qwen import QwenProvider


def _attachments() -> list[Attachment]:
    slide = StoredMaterialFile(b"%PDF slides", "application/pdf", "week1.pdf", "u/slides/week1.pdf")
    sample = StoredMaterialFile(b"%PDF sample", None, "midterm.pdf", "u/samples/midterm.pdf")
    return [
        Attachment(label="Course slides (1)", file=slide),
        Attachment(label="Sample exam (1)", file=sample),
    ]


def _prompt():
    return build_exam_prompt("Linear Algebra", None, 20, "medium", None)


async def _collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


class TestResolveProvider:
    def test_explicit_value_wins(self):
        with patch.object(settings, "ai_provider", "qwen"):
            assert resolve_provider("Gemini") is Provider.GEMINI

    def test_env_value(self):
        with patch.object(settings, "ai_provider", "qwen"):
            assert resolve_provider(None) is Provider.QWEN

    def test_default_is_openai(self):
        with patch.object(settings, "ai_provider", None):
            assert resolve_provider("") is Provider.OPENAI

    def test_unknown_value(self):
        with patch.object(settings, "ai_provider", "mistral"):
            with pytest.raises(BadRequest, match="mistral"):
                resolve_provider(None)


class TestResolveModel:
    def test_override(self):
        assert resolve_model(Provider.QWEN, " qwen-long ") == "qwen-long"

    def test_env_default(self):
        with patch.object(settings, "gemini_default_model", "gemini-2.0-flash"):
            assert resolve_model(Provider.GEMINI) == "gemini-2.0-flash"

    def test_fallbacks(self):
        with patch.object(settings, "openai_default_model", None), \
             patch.object(settings, "qwen_default_model", None), \
             patch.object(settings, "gemini_default_model", None):
            assert resolve_model(Provider.OPENAI) == "gpt-4o-mini"
            assert resolve_model(Provider.QWEN) == "qwen-plus"
            assert resolve_model(Provider.GEMINI) == "gemini-1.5-flash"


class TestProviderRegistry:
    def test_openai_cannot_read_attachments(self):
        with pytest.raises(ConfigurationError, match="AI_PROVIDER"):
            ProviderRegistry().get(Provider.OPENAI)

    def test_missing_qwen_key(self, monkeypatch):
        monkeypatch.delenv("QWEN_API_KEY", raising=False)
        monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="QWEN_API_KEY"):
            ProviderRegistry().get(Provider.QWEN)

    def test_missing_gemini_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
            ProviderRegistry().get(Provider.GEMINI)

    def test_qwen_client_is_reused(self, monkeypatch):
        monkeypatch.setenv("QWEN_API_KEY", "sk-test")
        registry = ProviderRegistry()
        first = registry.get(Provider.QWEN)
        second = registry.get(Provider.QWEN, "qwen-long")
        assert isinstance(first, QwenProvider)
        assert first.client is second.client
        assert second.model == "qwen-long"

    def test_gemini_provider(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gm-test")
        provider = ProviderRegistry().get(Provider.GEMINI, "gemini-2.0-flash")
        assert isinstance(provider, GeminiProvider)
        assert provider.model == "gemini-2.0-flash"


def _qwen_client(content: str | None = "# Mock exam\n\n1. Question") -> MagicMock:
    client = MagicMock()
    client.files.create = AsyncMock(side_effect=[
        SimpleNamespace(id="file-slides"),
        SimpleNamespace(id="file-sample"),
    ])
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client.chat.completions.create = AsyncMock(return_value=completion)
    return client


class TestQwenProvider:
    async def test_uploads_then_references_file_ids(self):
        client = _qwen_client()
        provider = QwenProvider(client, "qwen-plus")

        fragments = await _collect(provider.compose(_attachments(), _prompt()))

        assert fragments == ["# Mock exam\n\n1. Question"]
        upload_calls = client.files.create.await_args_list
        assert [c.kwargs["purpose"] for c in upload_calls] == ["file-extract", "file-extract"]
        assert upload_calls[0].kwargs["file"] == ("week1.pdf", b"%PDF slides", "application/pdf")
        assert upload_calls[1].kwargs["file"][2] == "application/octet-stream"

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "qwen-plus"
        assert kwargs["temperature"] == 0.3
        messages = kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "system", "system", "user"]
        assert messages[1]["content"] == "fileid://file-slides"
        assert messages[2]["content"] == "fileid://file-sample"
        assert "Attachment 1 (Course slides (1)): fileid://file-slides" in messages[3]["content"]
        assert "Course name: Linear Algebra" in messages[3]["content"]

    async def test_upload_failure_names_file(self):
        client = _qwen_client()
        client.files.create = AsyncMock(side_effect=OpenAIError("quota exceeded"))
        with pytest.raises(AttachmentUploadError, match="week1.pdf"):
            await _collect(QwenProvider(client, "qwen-plus").compose(_attachments(), _prompt()))
        client.chat.completions.create.assert_not_awaited()

    async def test_no_attachments(self):
        client = _qwen_client()
        with pytest.raises(NoAttachmentsError):
            await _collect(QwenProvider(client, "qwen-plus").compose([], _prompt()))

    async def test_empty_answer(self):
        client = _qwen_client(content="   ")
        with pytest.raises(EmptyGenerationError):
            await _collect(QwenProvider(client, "qwen-plus").compose(_attachments(), _prompt()))

    async def test_generation_failure(self):
        client = _qwen_client()
        client.chat.completions.create = AsyncMock(side_effect=OpenAIError("boom"))
        with pytest.raises(UpstreamError, match="Qwen generation failed"):
            await _collect(QwenProvider(client, "qwen-plus").compose(_attachments(), _prompt()))


async def _stream(*texts):
    for text in texts:
        yield SimpleNamespace(text=text)


def _gemini_client(*texts) -> MagicMock:
    client = MagicMock()
    client.aio.files.upload = AsyncMock(side_effect=[
        SimpleNamespace(uri="https://files.example.com/slides"),
        SimpleNamespace(uri="https://files.example.com/sample"),
    ])
    client.aio.models.generate_content_stream = AsyncMock(return_value=_stream(*texts))
    return client


class TestGeminiProvider:
    async def test_streams_fragments_in_order(self):
        client = _gemini_client("# Mock", None, " exam", "")
        provider = GeminiProvider(client, "gemini-1.5-flash")

        fragments = await _collect(provider.compose(_attachments(), _prompt()))

        assert fragments == ["# Mock", " exam"]
        assert client.aio.files.upload.await_count == 2
        kwargs = client.aio.models.generate_content_stream.await_args.kwargs
        assert kwargs["model"] == "gemini-1.5-flash"
        parts = kwargs["contents"][0].parts
        assert "Attachment 2 (Sample exam (1))" in parts[0].text
        assert [p.file_data.file_uri for p in parts[1:]] == [
            "https://files.example.com/slides",
            "https://files.example.com/sample",
        ]
        assert parts[2].file_data.mime_type == "application/octet-stream"

    async def test_nothing_produced(self):
        client = _gemini_client("", None)
        with pytest.raises(EmptyGenerationError):
            await _collect(GeminiProvider(client, "gemini-1.5-flash").compose(_attachments(), _prompt()))

    async def test_staging_failure(self):
        client = _gemini_client("x")
        client.aio.files.upload = AsyncMock(
            side_effect=genai_errors.APIError(503, {"error": {"message": "unavailable"}})
        )
        with pytest.raises(AttachmentUploadError, match="week1.pdf"):
            await _collect(GeminiProvider(client, "gemini-1.5-flash").compose(_attachments(), _prompt()))

    async def test_no_attachments(self):
        with pytest.raises(NoAttachmentsError):
            await _collect(GeminiProvider(_gemini_client(), "gemini-1.5-flash").compose([], _prompt()))
