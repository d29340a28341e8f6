"""
ProviderAdapter -- thin shim from the uniform agent contract to one AI backend.

Every adapter:
  - resolves its API key (env var > stored local config; github also asks the gh CLI)
  - reads its endpoint, timeout, and default model from the environment
  - issues exactly one call per query with its own timeout, no retries
  - raises ProviderError on any non-success outcome

Subclasses implement _complete(): the OpenAI and Anthropic backends go
through their SDK clients, others POST JSON with _post().

Usage:
    adapter = OpenAIAdapter()
    if adapter.is_configured():
        result = await adapter.query(QueryParams(query="...", system_prompt="..."))
        print(result.response, result.tokens_used)
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from ..config import read_local_config
from ..errors import ProviderError
from ..models import QueryParams
from ..security import ValidationError, validate_endpoint

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7
MAX_ERROR_BODY = 500


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class QueryResult:
    response: str
    model: str
    tokens_used: int | None = None


def _timeout_seconds(raw: str | None, default_ms: int) -> float:
    """Timeouts are configured in milliseconds, like the agent environment variables."""
    if raw:
        try:
            value = int(raw)
            if value > 0:
                return value / 1000
        except ValueError:
            pass
        logger.warning(f"[Provider] Ignoring invalid timeout '{raw}', using {default_ms}ms")
    return default_ms / 1000


class ProviderAdapter:
    """Base class for provider adapters. Subclasses set the class attributes below."""

    agent_id: str = ""
    provider: str = ""
    display_name: str = ""
    key_env_var: str = ""
    endpoint_env_var: str = ""
    default_endpoint: str = ""
    timeout_env_var: str = ""
    default_timeout_ms: int = 60_000
    model_env_var: str | None = None
    default_model_id: str = ""
    models: tuple[ModelInfo, ...] = ()

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cwd: Path | None = None,
        home: Path | None = None,
    ):
        env = os.environ if environ is None else environ
        self._api_key, self._auth_source = self._resolve_api_key(env, cwd, home)
        self._endpoint = self._resolve_endpoint(env)
        self._timeout = _timeout_seconds(env.get(self.timeout_env_var), self.default_timeout_ms)
        self._default_model = (
            env.get(self.model_env_var) if self.model_env_var else None
        ) or self.default_model_id
        self._transport = transport

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def _resolve_endpoint(self, env: Mapping[str, str]) -> str:
        raw = env.get(self.endpoint_env_var) or self.default_endpoint
        try:
            return validate_endpoint(raw, self.endpoint_env_var or "endpoint")
        except ValidationError as e:
            logger.warning(f"[Provider:{self.agent_id}] {e}; using {self.default_endpoint}")
            return self.default_endpoint

    def _resolve_api_key(
        self, env: Mapping[str, str], cwd: Path | None, home: Path | None
    ) -> tuple[str, str]:
        if env.get(self.key_env_var):
            return env[self.key_env_var], "env"
        stored = ((read_local_config(cwd, home) or {}).get("apiKeys") or {}).get(self.agent_id)
        if stored:
            return stored, "config"
        return "", "none"

    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def auth_source(self) -> str:
        return self._auth_source

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def timeout(self) -> float:
        return self._timeout

    def available_models(self) -> list[ModelInfo]:
        if self.models:
            return list(self.models)
        return [ModelInfo(self._default_model, self._default_model, "Configured model")]


    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    @staticmethod
    def user_content(params: QueryParams) -> str:
        if params.context:
            return f"{params.query}\n\nContext:\n{params.context}"
        return params.query

    def _http_client(self) -> httpx.AsyncClient:
        """HTTP client for one query; also handed to the provider SDKs."""
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _status_error(self, status_code: int, body: str) -> ProviderError:
        logger.error(f"[Provider:{self.agent_id}] HTTP {status_code}: {body[:200]}")
        return ProviderError(
            f"{self.display_name} API error: {status_code} - {body[:MAX_ERROR_BODY]}",
            status_code=status_code,
        )

    def _timeout_error(self) -> ProviderError:
        return ProviderError(f"{self.display_name} API timed out after {self._timeout:g}s")

    async def query(self, params: QueryParams) -> QueryResult:
        """
        One call to the backend. No retries.

        Raises:
            ProviderError: On timeout, transport failure, non-2xx status, or unusable body.
        """
        if not self.is_configured():
            raise ProviderError(f"{self.display_name} API key not configured ({self.key_env_var})")
        return await self._complete(params, params.model or self._default_model)

    async def _complete(self, params: QueryParams, model: str) -> QueryResult:
        raise NotImplementedError

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST JSON for backends without an SDK client."""
        try:
            async with self._http_client() as client:
                response = await client.post(url, json=body, headers=headers, params=query_params)
        except httpx.TimeoutException:
            raise self._timeout_error()
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.display_name} API request failed: {type(e).__name__}: {e}")

        if not response.is_success:
            raise self._status_error(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            raise ProviderError(f"{self.display_name} API returned invalid JSON")
        if not isinstance(data, dict):
            raise ProviderError(f"{self.display_name} API returned unexpected JSON")
        return data
