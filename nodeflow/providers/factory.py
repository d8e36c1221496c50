"""Model strings ("provider/model-name") to completion providers."""

from __future__ import annotations

import importlib

from nodeflow.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from nodeflow.providers.base import ModelProvider, ProviderAdapter

# provider -> (module, adapter class), imported on first use
ADAPTERS = {
    "anthropic": ("nodeflow.providers.anthropic_provider", "AnthropicAdapter"),
    "openai": ("nodeflow.providers.openai_provider", "OpenAIAdapter"),
}

# Bare model names are routed by prefix
MODEL_PREFIXES = (
    ("claude", "anthropic"),
    ("gpt", "openai"),
    ("o1", "openai"),
    ("o3", "openai"),
    ("o4", "openai"),
)

FALLBACK_PROVIDER = "openai"


def parse_model_string(model: str) -> tuple[str, str]:
    """Split 'provider/model-name' into (provider, model); infer the provider for bare names."""
    model = model.strip()
    if not model:
        raise ValueError("Model string is empty")

    if "/" in model:
        provider, model_name = model.split("/", 1)
        if not model_name:
            raise ValueError(f"Model string '{model}' names no model")
        return provider.lower(), model_name

    for prefix, provider in MODEL_PREFIXES:
        if model.startswith(prefix):
            return provider, model
    return FALLBACK_PROVIDER, model


def create_adapter(model: str) -> ProviderAdapter:
    provider, model_name = parse_model_string(model)
    if provider not in ADAPTERS:
        known = ", ".join(f"'{p}/model'" for p in ADAPTERS)
        raise ValueError(f"Unknown provider: {provider}. Use one of {known}.")

    module_name, class_name = ADAPTERS[provider]
    adapter_cls = getattr(importlib.import_module(module_name), class_name)
    return adapter_cls(model=model_name)


def create_provider(
    model: str,
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> ModelProvider:
    """Provider for ``model`` with the given sampling defaults."""
    return ModelProvider(create_adapter(model), temperature=temperature, max_tokens=max_tokens)
