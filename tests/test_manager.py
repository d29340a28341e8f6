"""
ConnectionManager tests -- failure isolation, timeouts, and query modes.

Agents are FakeConnections; no subprocesses are spawned.
"""

import asyncio
import time
from dataclasses import replace

import pytest
from conftest import tool_result

from second_opinion.agents.payloads import EMPTY_RESPONSE_ERROR
from second_opinion.models import QueryMode


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_opens_known_agents(self, make_manager):
        manager, factory = make_manager()
        await manager.initialize(["openai", "gemini", "openai"])
        assert manager.live_agents() == ["openai", "gemini"]
        assert factory.created["openai"].opened

    @pytest.mark.asyncio
    async def test_unknown_agent_skipped(self, make_manager):
        manager, factory = make_manager()
        await manager.initialize(["openai", "mystery"])
        assert manager.live_agents() == ["openai"]
        assert "mystery" not in factory.created

    @pytest.mark.asyncio
    async def test_failed_spawn_excluded(self, make_manager):
        """One agent failing to start never blocks the others."""
        manager, _ = make_manager(gemini={"fail_open": True})
        await manager.initialize(["openai", "gemini", "github"])
        assert manager.live_agents() == ["openai", "github"]
        assert not manager.is_live("gemini")

    @pytest.mark.asyncio
    async def test_api_keys_passed_to_agents(self, make_manager):
        manager, factory = make_manager()
        await manager.initialize(["openai"])
        assert factory.envs["openai"]["OPENAI_API_KEY"] == "sk-test"

    @pytest.mark.asyncio
    async def test_shutdown_continues_after_close_error(self, make_manager):
        manager, factory = make_manager(openai={"fail_close": True})
        await manager.initialize(["openai", "gemini"])
        await manager.shutdown()
        assert factory.created["openai"].closed
        assert factory.created["gemini"].closed
        assert manager.live_agents() == []

    @pytest.mark.asyncio
    async def test_shutdown_twice_is_harmless(self, make_manager):
        manager, _ = make_manager()
        await manager.initialize(["openai"])
        await manager.shutdown()
        await manager.shutdown()
        assert manager.live_agents() == []


class TestQueryOne:
    @pytest.mark.asyncio
    async def test_success(self, make_manager, params):
        manager, factory = make_manager()
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)

        assert response.succeeded
        assert response.agent == "openai"
        assert response.provider == "openai"
        assert response.model == "mock-model"
        assert response.tokens_used == 42
        assert response.latency_ms >= 0
        name, arguments = factory.created["openai"].calls[0]
        assert name == "agent_query"
        assert arguments == {"query": params.query, "systemPrompt": params.system_prompt}

    @pytest.mark.asyncio
    async def test_agent_not_found(self, make_manager, params):
        manager, _ = make_manager()
        response = await manager.query_one("openai", params)
        assert response.error == "Agent not found: openai"
        assert response.latency_ms == 0.0
        assert response.provider == "unknown"

    @pytest.mark.asyncio
    async def test_agent_reported_error(self, make_manager, params):
        reply = tool_result(
            {"error": "OpenAI API error: 429 - rate limited", "provider": "openai", "model": "gpt-4o"},
            is_error=True,
        )
        manager, _ = make_manager(openai={"reply": reply})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert not response.succeeded
        assert response.error == "OpenAI API error: 429 - rate limited"
        assert response.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_malformed_payload_becomes_error(self, make_manager, params):
        manager, _ = make_manager(openai={"reply": tool_result("not json at all")})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert response.error.startswith("Malformed response from agent")

    @pytest.mark.asyncio
    async def test_empty_response_becomes_error(self, make_manager, params):
        reply = tool_result({"response": "   ", "provider": "openai", "model": "gpt-4o"})
        manager, _ = make_manager(openai={"reply": reply})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert response.error == EMPTY_RESPONSE_ERROR

    @pytest.mark.asyncio
    async def test_transport_exception_becomes_error(self, make_manager, params):
        manager, _ = make_manager(openai={"reply": ConnectionResetError("pipe closed")})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert response.error == "pipe closed"

    @pytest.mark.asyncio
    async def test_timeout(self, make_manager, config, params):
        manager, _ = make_manager(replace(config, query_timeout_s=0.05), openai={"delay": 1.0})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert response.error == "Timed out after 0.05s"
        assert 40 <= response.latency_ms < 1000

    @pytest.mark.asyncio
    async def test_response_sanitized(self, make_manager, params):
        reply = tool_result({"response": "Use X\x00 now", "provider": "openai", "model": "m"})
        manager, _ = make_manager(openai={"reply": reply})
        await manager.initialize(["openai"])
        response = await manager.query_one("openai", params)
        assert response.response == "Use X now"


class TestQueryModes:
    @pytest.mark.asyncio
    async def test_sequential_timeout_keeps_going(self, make_manager, config, params):
        """Agent 2 times out; agents 1 and 3 still answer; elapsed time is the sum."""
        cfg = replace(config, query_timeout_s=0.2)
        manager, factory = make_manager(
            cfg,
            openai={"delay": 0.05},
            gemini={"delay": 2.0},
            github={"delay": 0.05},
        )
        await manager.initialize(["openai", "gemini", "github"])

        start = time.perf_counter()
        responses = await manager.query(["openai", "gemini", "github"], params, QueryMode.SEQUENTIAL)
        elapsed = time.perf_counter() - start

        assert [r.agent for r in responses] == ["openai", "gemini", "github"]
        assert responses[0].succeeded
        assert responses[1].error == "Timed out after 0.2s"
        assert responses[2].succeeded
        assert elapsed >= 0.28
        assert elapsed * 1000 >= sum(r.latency_ms for r in responses) * 0.95

    @pytest.mark.asyncio
    async def test_concurrent_latency_is_max(self, make_manager, params):
        manager, _ = make_manager(
            openai={"delay": 0.2}, gemini={"delay": 0.2}, github={"delay": 0.2}
        )
        await manager.initialize(["openai", "gemini", "github"])

        start = time.perf_counter()
        responses = await manager.query(["openai", "gemini", "github"], params, QueryMode.CONCURRENT)
        elapsed = time.perf_counter() - start

        assert all(r.succeeded for r in responses)
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_one_response_per_requested_id(self, make_manager, params):
        manager, _ = make_manager()
        await manager.initialize(["openai"])
        responses = await manager.query(["openai", "gemini"], params)
        assert {r.agent for r in responses} == {"openai", "gemini"}
        by_agent = {r.agent: r for r in responses}
        assert by_agent["gemini"].error == "Agent not found: gemini"

    @pytest.mark.asyncio
    async def test_concurrent_failure_isolated(self, make_manager, params):
        manager, _ = make_manager(gemini={"reply": RuntimeError("crashed")})
        await manager.initialize(["openai", "gemini"])
        responses = await asyncio.wait_for(manager.query(["openai", "gemini"], params), timeout=5)
        by_agent = {r.agent: r for r in responses}
        assert by_agent["openai"].succeeded
        assert by_agent["gemini"].error == "crashed"
