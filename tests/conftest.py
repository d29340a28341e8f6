"""Shared fixtures -- fake agent connections, responses, and an isolated config."""

import asyncio
import json

import pytest
from mcp import types

from second_opinion.agents.manager import ConnectionManager
from second_opinion.agents.registry import AgentInfo
from second_opinion.config import OrchestratorConfig
from second_opinion.models import AgentResponse, QueryParams


def tool_result(payload, is_error=False):
    """MCP CallToolResult with one JSON text block."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def make_response(agent, text, latency_ms=100.0, error=None, provider=None):
    return AgentResponse(
        agent=agent,
        provider=provider or agent,
        model="mock-model",
        response=text,
        latency_ms=latency_ms,
        error=error,
    )


class FakeConnection:
    """In-process stand-in for AgentConnection."""

    def __init__(self, info: AgentInfo, reply=None, delay=0.0, fail_open=False, fail_close=False):
        self._info = info
        self.reply = reply
        self.delay = delay
        self.fail_open = fail_open
        self.fail_close = fail_close
        self.opened = False
        self.closed = False
        self.calls: list[tuple[str, dict]] = []

    @property
    def agent_id(self):
        return self._info.id

    @property
    def provider(self):
        return self._info.provider

    async def open(self):
        if self.fail_open:
            raise RuntimeError(f"{self.agent_id} failed to start")
        self.opened = True

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.reply, Exception):
            raise self.reply
        if self.reply is None:
            return tool_result(
                {
                    "response": f"Use the {self.agent_id} approach for this problem.",
                    "tokensUsed": 42,
                    "provider": self.provider,
                    "model": "mock-model",
                }
            )
        return self.reply

    async def close(self):
        self.closed = True
        if self.fail_close:
            raise RuntimeError(f"{self.agent_id} refused to stop")


class FakeFactory:
    """Connection factory handing out preconfigured FakeConnections by agent id."""

    def __init__(self, **overrides):
        self.overrides = overrides
        self.created: dict[str, FakeConnection] = {}
        self.envs: dict[str, dict[str, str]] = {}

    def __call__(self, info, env):
        conn = FakeConnection(info, **self.overrides.get(info.id, {}))
        self.created[info.id] = conn
        self.envs[info.id] = env
        return conn


@pytest.fixture
def config():
    return OrchestratorConfig(
        enabled_agents=["openai", "gemini", "github"],
        host=None,
        parallel=True,
        system_prompt="Be brief.",
        query_timeout_s=5.0,
        agent_env={"OPENAI_API_KEY": "sk-test"},
    )


@pytest.fixture
def params():
    return QueryParams(query="Should I pool connections?", system_prompt="Be brief.")


@pytest.fixture
def make_manager(config):
    """Build a ConnectionManager over FakeConnections: make_manager(openai={"delay": 0.1})."""

    def _make(cfg=None, **overrides):
        factory = FakeFactory(**overrides)
        manager = ConnectionManager(cfg or config, connection_factory=factory, base_env={})
        return manager, factory

    return _make
