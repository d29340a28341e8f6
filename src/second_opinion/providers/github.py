"""
GitHub Models adapter.

Same chat-completions API as OpenAI, hosted behind a GitHub token.
Token order: GITHUB_TOKEN > `gh auth token` > stored local config.
"""

from collections.abc import Mapping
from pathlib import Path

from ..config import get_github_token_from_cli
from .base import ModelInfo
from .openai import OpenAIAdapter


class GitHubModelsAdapter(OpenAIAdapter):
    agent_id = "github"
    provider = "github"
    display_name = "GitHub Models"
    key_env_var = "GITHUB_TOKEN"
    endpoint_env_var = "GITHUB_MODELS_ENDPOINT"
    default_endpoint = "https://models.inference.ai.azure.com"
    timeout_env_var = "GITHUB_MODELS_TIMEOUT"
    default_timeout_ms = 60_000
    default_model_id = "gpt-4o"
    models = (
        ModelInfo("gpt-4o", "GPT-4o", "OpenAI GPT-4o via GitHub"),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", "Faster GPT-4o via GitHub"),
        ModelInfo("o1", "o1", "OpenAI reasoning model via GitHub"),
        ModelInfo("o1-mini", "o1 Mini", "Smaller reasoning model via GitHub"),
        ModelInfo("Llama-3.3-70B-Instruct", "Llama 3.3 70B", "Meta Llama via GitHub"),
        ModelInfo("Mistral-Large-2411", "Mistral Large", "Mistral via GitHub"),
    )

    def _resolve_api_key(
        self, env: Mapping[str, str], cwd: Path | None, home: Path | None
    ) -> tuple[str, str]:
        if env.get(self.key_env_var):
            return env[self.key_env_var], "env"
        token = get_github_token_from_cli()
        if token:
            return token, "gh-cli"
        return super()._resolve_api_key(env, cwd, home)
