"""Provider adapter layer — model-agnostic completion interface."""

from nodeflow.providers.base import ModelProvider, ProviderAdapter
from nodeflow.providers.factory import create_provider

__all__ = ["ModelProvider", "ProviderAdapter", "create_provider"]
