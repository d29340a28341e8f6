"""Google Gemini generateContent adapter, over plain HTTP."""

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, ModelInfo, ProviderAdapter, QueryResult


class GeminiAdapter(ProviderAdapter):
    agent_id = "gemini"
    provider = "google"
    display_name = "Gemini"
    key_env_var = "GOOGLE_API_KEY"
    endpoint_env_var = "GEMINI_ENDPOINT"
    default_endpoint = "https://generativelanguage.googleapis.com/v1beta"
    timeout_env_var = "GEMINI_TIMEOUT"
    default_timeout_ms = 60_000
    default_model_id = "gemini-2.0-flash"
    models = (
        ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash", "Fast multimodal model"),
        ModelInfo(
            "gemini-2.0-flash-thinking-exp",
            "Gemini 2.0 Flash Thinking",
            "Experimental reasoning model",
        ),
        ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", "Long-context model"),
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", "Fast, efficient model"),
    )

    async def _complete(self, params, model):
        body = {
            "systemInstruction": {"parts": [{"text": params.system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": self.user_content(params)}]}],
            "generationConfig": {
                "maxOutputTokens": DEFAULT_MAX_TOKENS,
                "temperature": DEFAULT_TEMPERATURE,
            },
        }
        data = await self._post(
            f"{self._endpoint}/models/{model}:generateContent",
            body,
            headers={"Content-Type": "application/json"},
            query_params={"key": self._api_key},
        )

        text = ""
        candidates = data.get("candidates") or []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            if parts:
                text = parts[0].get("text") or ""
        usage = data.get("usageMetadata") or {}
        return QueryResult(response=text, model=model, tokens_used=usage.get("totalTokenCount"))
