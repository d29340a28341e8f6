"""OpenAI chat-completions adapter, via the openai SDK."""

import openai

from ..errors import ProviderError
from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, ModelInfo, ProviderAdapter, QueryResult


class OpenAIAdapter(ProviderAdapter):
    agent_id = "openai"
    provider = "openai"
    display_name = "OpenAI"
    key_env_var = "OPENAI_API_KEY"
    endpoint_env_var = "OPENAI_ENDPOINT"
    default_endpoint = "https://api.openai.com/v1"
    timeout_env_var = "OPENAI_TIMEOUT"
    default_timeout_ms = 60_000
    default_model_id = "gpt-4o"
    models = (
        ModelInfo("gpt-4o", "GPT-4o", "Most capable GPT-4 model"),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", "Faster, cheaper GPT-4o"),
        ModelInfo("gpt-4-turbo", "GPT-4 Turbo", "Previous generation flagship"),
        ModelInfo("o1", "o1", "Reasoning model"),
        ModelInfo("o1-mini", "o1 Mini", "Smaller reasoning model"),
    )

    def _client(self) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._endpoint,
            timeout=self._timeout,
            max_retries=0,
            http_client=self._http_client(),
        )

    async def _complete(self, params, model):
        messages = [
            {"role": "system", "content": params.system_prompt},
            {"role": "user", "content": self.user_content(params)},
        ]
        try:
            async with self._client() as client:
                response = await client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=DEFAULT_MAX_TOKENS,
                    temperature=DEFAULT_TEMPERATURE,
                )
        except openai.APIStatusError as e:
            raise self._status_error(e.status_code, e.response.text)
        except openai.APITimeoutError:
            raise self._timeout_error()
        except openai.APIConnectionError as e:
            raise ProviderError(f"{self.display_name} API request failed: {e}")

        choices = response.choices or []
        text = (choices[0].message.content or "") if choices else ""
        tokens = response.usage.total_tokens if response.usage else None
        return QueryResult(response=text, model=model, tokens_used=tokens)
