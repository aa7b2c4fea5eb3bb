from .base import Attachment, ExamProvider, Provider, resolve_model, resolve_provider
from .registry import ProviderRegistry, get_provider_registry

__all__ = [
    "Attachment",
    "ExamProvider",
    "Provider",
    "ProviderRegistry",
    "get_provider_registry",
    "resolve_model",
    "resolve_provider",
]
