"""
Agent server -- exposes one ProviderAdapter as an MCP server over stdio.

Tools:
  list_models  -- {"provider", "models", "default"}
  agent_query  -- {"response", "tokensUsed", "provider", "model"} on success,
                  {"error", "provider", "model"} with isError on failure

Usage:
    python -m second_opinion.providers openai
"""

import json
import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from ..models import QueryParams
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

SERVER_VERSION = "1.0.0"


class ToolCallError(Exception):
    """
    Raised from a tool handler to return an isError result.

    The MCP server turns the exception message into the result text, so the
    message is the JSON error payload itself.
    """

    def __init__(self, payload: dict[str, Any]):
        super().__init__(json.dumps(payload))
        self.payload = payload


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================


def _tools(adapter: ProviderAdapter) -> list[types.Tool]:
    return [
        types.Tool(
            name="list_models",
            description=f"List available {adapter.display_name} models for second opinions",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        types.Tool(
            name="agent_query",
            description=f"Query the {adapter.display_name} agent with a question and optional context",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The question or problem to get an opinion on",
                    },
                    "context": {
                        "type": "string",
                        "description": "Code, error messages, or additional context",
                    },
                    "systemPrompt": {
                        "type": "string",
                        "description": "System prompt to guide the response",
                    },
                    "model": {
                        "type": "string",
                        "description": (
                            f"Model to use (optional, defaults to {adapter.default_model}). "
                            "Use list_models to see available options."
                        ),
                    },
                },
                "required": ["query", "systemPrompt"],
            },
        ),
    ]


# =============================================================================
# HANDLERS
# =============================================================================


def handle_list_models(adapter: ProviderAdapter) -> dict[str, Any]:
    return {
        "provider": adapter.provider,
        "models": [m.to_dict() for m in adapter.available_models()],
        "default": adapter.default_model,
    }


async def handle_agent_query(
    adapter: ProviderAdapter, arguments: dict[str, Any]
) -> tuple[dict[str, Any], bool]:
    """Run one query. Returns (payload, is_error); provider failures become data."""
    query = arguments.get("query")
    if not query or not isinstance(query, str):
        return {"error": "query parameter is required"}, True

    system_prompt = arguments.get("systemPrompt")
    if not system_prompt or not isinstance(system_prompt, str):
        return {"error": "systemPrompt parameter is required"}, True

    model = arguments.get("model") or None
    params = QueryParams(
        query=query,
        system_prompt=system_prompt,
        context=arguments.get("context") or None,
        model=model,
    )
    try:
        result = await adapter.query(params)
    except Exception as e:
        logger.warning(f"[AgentServer:{adapter.agent_id}] Query failed: {e}")
        return {
            "error": str(e),
            "provider": adapter.provider,
            "model": model or adapter.default_model,
        }, True

    logger.info(
        f"[AgentServer:{adapter.agent_id}] Answered with {result.model} "
        f"({result.tokens_used if result.tokens_used is not None else '?'} tokens)"
    )
    return {
        "response": result.response,
        "tokensUsed": result.tokens_used,
        "provider": adapter.provider,
        "model": result.model,
    }, False


def build_agent_server(adapter: ProviderAdapter) -> Server:
    server = Server(f"agent-{adapter.agent_id}", version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return _tools(adapter)

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        if name == "list_models":
            payload = handle_list_models(adapter)
        elif name == "agent_query":
            payload, is_error = await handle_agent_query(adapter, arguments or {})
            if is_error:
                raise ToolCallError(payload)
        else:
            raise ValueError(f"Unknown tool: {name}")
        return [types.TextContent(type="text", text=json.dumps(payload))]

    return server


async def run_agent_server(adapter: ProviderAdapter) -> None:
    """Serve until the client closes stdin."""
    server = build_agent_server(adapter)
    logger.info(
        f"[AgentServer:{adapter.agent_id}] Started (model: {adapter.default_model}, "
        f"auth: {adapter.auth_source})"
    )
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
