"""
Anthropic Messages API adapter, via the anthropic SDK.

The system prompt travels in the top-level `system` field; the reply text
is the concatenation of all text blocks.
"""

from collections.abc import Mapping
from pathlib import Path

import anthropic

from ..errors import ProviderError
from .base import DEFAULT_MAX_TOKENS, ProviderAdapter, QueryResult

# ANTHROPIC_ENDPOINT includes the API version; the SDK adds it to every path.
API_VERSION_SUFFIX = "/v1"


class AnthropicAdapter(ProviderAdapter):
    agent_id = "anthropic"
    provider = "anthropic"
    display_name = "Anthropic"
    key_env_var = "ANTHROPIC_API_KEY"
    endpoint_env_var = "ANTHROPIC_ENDPOINT"
    default_endpoint = "https://api.anthropic.com/v1"
    timeout_env_var = "ANTHROPIC_TIMEOUT"
    default_timeout_ms = 30_000
    model_env_var = "ANTHROPIC_MODEL"
    default_model_id = "claude-sonnet-4-20250514"

    def _resolve_api_key(
        self, env: Mapping[str, str], cwd: Path | None, home: Path | None
    ) -> tuple[str, str]:
        # Environment only; stored keys are not read for this provider.
        if env.get(self.key_env_var):
            return env[self.key_env_var], "env"
        return "", "none"

    def _client(self) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=self._api_key,
            base_url=self._endpoint.removesuffix(API_VERSION_SUFFIX),
            timeout=self._timeout,
            max_retries=0,
            http_client=self._http_client(),
        )

    async def _complete(self, params, model):
        try:
            async with self._client() as client:
                response = await client.messages.create(
                    model=model,
                    max_tokens=DEFAULT_MAX_TOKENS,
                    system=params.system_prompt,
                    messages=[{"role": "user", "content": self.user_content(params)}],
                )
        except anthropic.APIStatusError as e:
            raise self._status_error(e.status_code, e.response.text)
        except anthropic.APITimeoutError:
            raise self._timeout_error()
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"{self.display_name} API request failed: {e}")

        text = "".join(
            getattr(block, "text", "") or ""
            for block in response.content or []
            if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        tokens = (usage.input_tokens or 0) + (usage.output_tokens or 0) if usage else None
        return QueryResult(response=text, model=model, tokens_used=tokens)
