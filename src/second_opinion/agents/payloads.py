"""
Strict decode of agent tool results.

Agents answer `agent_query` with a single text content block holding JSON:

  success: {"response": str, "tokensUsed"?: int, "provider": str, "model": str}
  failure: {"error": str, "provider": str, "model": str}   (isError = true)

decode_tool_result() turns an MCP CallToolResult into exactly one of
AgentSuccess / AgentFailure, or raises PayloadError. The Consensus Engine
never sees anything that did not pass through here.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import PayloadError

EMPTY_RESPONSE_ERROR = "Empty response from agent"


class AgentSuccess(BaseModel):
    """Validated successful agent answer."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    response: str
    tokens_used: int | None = Field(None, alias="tokensUsed", ge=0)
    provider: str | None = None
    model: str | None = None


class AgentFailure(BaseModel):
    """Validated agent-reported failure."""

    model_config = ConfigDict(extra="ignore")

    error: str
    provider: str | None = None
    model: str | None = None


def _first_text(result: Any) -> str | None:
    for item in getattr(result, "content", None) or []:
        if getattr(item, "type", None) == "text":
            return getattr(item, "text", None)
    return None


def decode_payload(text: str, is_error: bool = False) -> AgentSuccess | AgentFailure:
    """
    Decode the JSON text of one agent reply.

    Raises:
        PayloadError: On empty, non-JSON, or wrongly shaped payloads.
    """
    if not text or not text.strip():
        raise PayloadError(EMPTY_RESPONSE_ERROR)

    try:
        data = json.loads(text)
    except ValueError:
        if is_error:
            return AgentFailure(error=text.strip()[:500])
        raise PayloadError(f"Malformed response from agent: {text[:100]!r}")

    if not isinstance(data, dict):
        raise PayloadError(f"Malformed response from agent: expected object, got {type(data).__name__}")

    try:
        if data.get("error") or is_error:
            if not data.get("error"):
                data = {**data, "error": "Agent reported an error without details"}
            return AgentFailure.model_validate(data)
        success = AgentSuccess.model_validate(data)
    except ValidationError as e:
        raise PayloadError(f"Malformed response from agent: {e.error_count()} invalid field(s)")

    if not success.response.strip():
        raise PayloadError(EMPTY_RESPONSE_ERROR)
    return success


def decode_tool_result(result: Any) -> AgentSuccess | AgentFailure:
    """Decode an MCP CallToolResult from an agent's agent_query tool."""
    text = _first_text(result)
    if text is None:
        raise PayloadError(EMPTY_RESPONSE_ERROR)
    return decode_payload(text, is_error=bool(getattr(result, "isError", False)))
