"""Provider selection and the capability interface every LLM backend implements."""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

from config import settings
from errors import BadRequest
from exams.prompt import ExamPrompt
from materials.fetch import StoredMaterialFile


class Provider(str, enum.Enum):
    OPENAI = "openai"
    QWEN = "qwen"
    GEMINI = "gemini"


DEFAULT_PROVIDER = Provider.OPENAI

FALLBACK_MODELS = {
    Provider.OPENAI: "gpt-4o-mini",
    Provider.QWEN: "qwen-plus",
    Provider.GEMINI: "gemini-1.5-flash",
}


def resolve_provider(requested: str | None = None) -> Provider:
    """Explicit request value, then AI_PROVIDER, then the hard-coded default.

    Raises:
        BadRequest: If the chosen value is not a known provider.
    """
    raw = (requested or "").strip().lower() or settings.ai_provider
    if not raw:
        return DEFAULT_PROVIDER
    try:
        return Provider(raw)
    except ValueError:
        allowed = ", ".join(p.value for p in Provider)
        raise BadRequest(f"Unknown AI provider: {raw}. Allowed: {allowed}")


def resolve_model(provider: Provider, override: str | None = None) -> str:
    """Explicit override, then the provider's env default, then a fallback id."""
    if override and override.strip():
        return override.strip()
    env_defaults = {
        Provider.OPENAI: settings.openai_default_model,
        Provider.QWEN: settings.qwen_default_model,
        Provider.GEMINI: settings.gemini_default_model,
    }
    return env_defaults[provider] or FALLBACK_MODELS[provider]


@dataclass
class Attachment:
    label: str
    file: StoredMaterialFile

    @property
    def mime_type(self) -> str:
        return self.file.mime_type or "application/octet-stream"


class ExamProvider(ABC):
    """Generates a Markdown exam from attachments and a prompt.

    compose() yields text fragments in generation order; backends that
    cannot stream yield the whole text once.
    """

    provider: Provider

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def compose(self, attachments: list[Attachment], prompt: ExamPrompt) -> AsyncIterator[str]:
        ...
