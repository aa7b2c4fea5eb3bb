"""Process-scoped cache of provider SDK clients and the provider factory."""

import logging

from fastapi import Request
from google import genai
from openai import AsyncOpenAI

from config import settings
from errors import ConfigurationError
from .base import ExamProvider, Provider, resolve_model
from .gemini import GeminiProvider
from .qwen import QwenProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Builds an ExamProvider per job, reusing one SDK client per backend."""

    def __init__(self):
        self._clients: dict[Provider, object] = {}

    def _qwen_client(self) -> AsyncOpenAI:
        client = self._clients.get(Provider.QWEN)
        if client is None:
            api_key = settings.qwen_api_key
            if not api_key:
                raise ConfigurationError(
                    "QWEN_API_KEY or DASHSCOPE_API_KEY is not configured; cannot call Qwen."
                )
            client = AsyncOpenAI(api_key=api_key, base_url=settings.qwen_base_url)
            self._clients[Provider.QWEN] = client
        return client

    def _gemini_client(self) -> genai.Client:
        client = self._clients.get(Provider.GEMINI)
        if client is None:
            api_key = settings.gemini_api_key
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY is not configured; cannot call Gemini.")
            client = genai.Client(api_key=api_key)
            self._clients[Provider.GEMINI] = client
        return client

    def get(self, provider: Provider, model: str | None = None) -> ExamProvider:
        """Return a ready provider for one job.

        Raises:
            ConfigurationError: If the provider cannot read document
                attachments or its credentials are missing.
        """
        if provider is Provider.OPENAI:
            raise ConfigurationError(
                "The configured model cannot read PDF/PPT attachments directly. "
                "Set AI_PROVIDER to qwen or gemini."
            )
        model_name = resolve_model(provider, model)
        if provider is Provider.QWEN:
            return QwenProvider(self._qwen_client(), model_name)
        return GeminiProvider(self._gemini_client(), model_name)


def get_provider_registry(request: Request) -> ProviderRegistry:
    """FastAPI dependency returning the process-scoped provider registry."""
    registry = getattr(request.app.state, "providers", None)
    if registry is None:
        registry = ProviderRegistry()
        request.app.state.providers = registry
    return registry
