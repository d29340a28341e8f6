"""
Provider adapters and the agent server that exposes them.

Usage:
    from second_opinion.providers import create_adapter

    adapter = create_adapter("openai")
    result = await adapter.query(params)
"""

from .anthropic import AnthropicAdapter
from .base import ModelInfo, ProviderAdapter, QueryResult
from .gemini import GeminiAdapter
from .github import GitHubModelsAdapter
from .openai import OpenAIAdapter

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "gemini": GeminiAdapter,
    "github": GitHubModelsAdapter,
}


def create_adapter(agent_id: str, **kwargs) -> ProviderAdapter:
    """Instantiate the adapter for `agent_id`. Raises KeyError for unknown ids."""
    try:
        adapter_cls = ADAPTERS[agent_id]
    except KeyError:
        raise KeyError(f"Unknown agent: {agent_id}. Available: {', '.join(ADAPTERS)}")
    return adapter_cls(**kwargs)
