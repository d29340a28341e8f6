"""
MCP server tests -- agent server and orchestrator server over an in-memory
client session, plus status rendering.
"""

import json

import httpx
import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from second_opinion.agents.payloads import AgentFailure, AgentSuccess, decode_tool_result
from second_opinion.config import OrchestratorConfig
from second_opinion.orchestration import RequestCoordinator
from second_opinion.providers import OpenAIAdapter
from second_opinion.providers.server import build_agent_server
from second_opinion.server import AgentStatus, build_server, render_status


def openai_adapter(tmp_path, status=200, body=None):
    def handler(request):
        return httpx.Response(status, json=body or {"error": {"message": "nope"}})

    return OpenAIAdapter(
        environ={"OPENAI_API_KEY": "sk"},
        transport=httpx.MockTransport(handler),
        cwd=tmp_path,
        home=tmp_path,
    )


class TestAgentServer:
    @pytest.mark.asyncio
    async def test_lists_both_tools(self, tmp_path):
        server = build_agent_server(openai_adapter(tmp_path))
        async with create_connected_server_and_client_session(server) as client:
            tools = await client.list_tools()
        assert {t.name for t in tools.tools} == {"list_models", "agent_query"}

    @pytest.mark.asyncio
    async def test_agent_query_round_trip(self, tmp_path):
        body = {"choices": [{"message": {"content": "Use a pool."}}], "usage": {"total_tokens": 5}}
        server = build_agent_server(openai_adapter(tmp_path, body=body))
        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("agent_query", {"query": "q", "systemPrompt": "s"})
        payload = decode_tool_result(result)
        assert isinstance(payload, AgentSuccess)
        assert payload.response == "Use a pool."
        assert payload.tokens_used == 5

    @pytest.mark.asyncio
    async def test_provider_failure_sets_error_flag(self, tmp_path):
        server = build_agent_server(openai_adapter(tmp_path, status=401))
        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("agent_query", {"query": "q", "systemPrompt": "s"})
        assert result.isError
        payload = decode_tool_result(result)
        assert isinstance(payload, AgentFailure)
        assert payload.error.startswith("OpenAI API error: 401")
        assert payload.provider == "openai"

    @pytest.mark.asyncio
    async def test_list_models(self, tmp_path):
        server = build_agent_server(openai_adapter(tmp_path))
        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("list_models", {})
        data = json.loads(result.content[0].text)
        assert data["provider"] == "openai"
        assert data["default"] == "gpt-4o"


class TestOrchestratorServer:
    @pytest.mark.asyncio
    async def test_second_opinion_tool(self, make_manager):
        cfg = OrchestratorConfig(enabled_agents=["openai"], system_prompt="s")
        manager, _ = make_manager(cfg)
        coordinator = RequestCoordinator(cfg, manager)
        await coordinator.start()

        server = build_server(cfg, coordinator)
        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("second_opinion", {"query": "Pool?"})
            prompts = await client.list_prompts()
        await coordinator.stop()

        assert not result.isError
        assert result.content[0].text == "Use the openai approach for this problem."
        assert {p.name for p in prompts.prompts} == {"setup", "status"}

    @pytest.mark.asyncio
    async def test_no_agents_is_error_result(self, make_manager):
        cfg = OrchestratorConfig(enabled_agents=[], system_prompt="s")
        manager, _ = make_manager(cfg)
        coordinator = RequestCoordinator(cfg, manager)
        await coordinator.start()

        server = build_server(cfg, coordinator)
        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("second_opinion", {"query": "Pool?"})

        assert result.isError
        assert "No agents available to query." in result.content[0].text


class TestStatus:
    def test_labels(self):
        assert AgentStatus("openai", True, False, "env").key_label == "✓ env"
        assert AgentStatus("github", True, False, "gh-cli").key_label == "✓ gh CLI"
        assert AgentStatus("gemini", False, False, None).key_label == "✗ missing"
        host = AgentStatus("anthropic", True, True, "env")
        assert host.enabled_label == "✗ (host)"
        assert host.key_label == "-"

    def test_render_status_table(self, tmp_path):
        cfg = OrchestratorConfig(enabled_agents=["openai"], host="claude-code", config_source="env")
        rows = [
            AgentStatus("openai", True, False, "env"),
            AgentStatus("anthropic", False, True, None),
        ]
        text = render_status(cfg, rows, gh_available=False, config_file=tmp_path / "c.json")
        assert "**Config source:** env" in text
        assert "**Host:** claude-code" in text
        assert "| openai | ✓ | ✓ env |" in text
        assert "| anthropic | ✗ (host) | - |" in text
        assert "✗ not found" in text
