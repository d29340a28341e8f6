"""
AgentConnection lifecycle: a process that cannot start, one that never
answers the handshake, and a real agent subprocess end to end.
"""

import os
import shutil
import time

import pytest

from second_opinion.agents.connection import AgentConnection, ConnectionState
from second_opinion.agents.payloads import AgentFailure, decode_tool_result
from second_opinion.agents.registry import AgentInfo, get_agent_info
from second_opinion.errors import AgentConnectionError

BROKEN = AgentInfo(
    id="broken",
    provider="nowhere",
    key_env_var="BROKEN_KEY",
    command="/nonexistent/second-opinion-agent",
)

SILENT = AgentInfo(
    id="silent",
    provider="nowhere",
    key_env_var="SILENT_KEY",
    command="sleep",
    args=("300",),
)

# Port 9 (discard) refuses connections on loopback.
UNREACHABLE_ENDPOINT = "http://127.0.0.1:9/v1"


class TestAgentConnection:
    def test_launch_command(self):
        info = get_agent_info("openai")
        assert info.launch_args == ["-m", "second_opinion.providers", "openai"]

    @pytest.mark.asyncio
    async def test_spawn_failure_marks_absent(self):
        conn = AgentConnection(BROKEN, env={}, handshake_timeout=5.0)
        with pytest.raises(AgentConnectionError) as exc_info:
            await conn.open()
        assert exc_info.value.agent_id == "broken"
        assert conn.state is ConnectionState.ABSENT
        assert not conn.is_ready

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        conn = AgentConnection(BROKEN, env={})
        await conn.close()
        await conn.close()
        assert conn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_after_failed_open(self):
        conn = AgentConnection(BROKEN, env={}, handshake_timeout=5.0)
        with pytest.raises(AgentConnectionError):
            await conn.open()
        await conn.close()
        await conn.close()
        assert conn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_call_before_open_rejected(self):
        conn = AgentConnection(BROKEN, env={})
        with pytest.raises(AgentConnectionError, match="not ready"):
            await conn.call_tool("agent_query", {})

    @pytest.mark.asyncio
    async def test_cannot_reopen(self):
        conn = AgentConnection(BROKEN, env={})
        await conn.close()
        with pytest.raises(AgentConnectionError, match="cannot open"):
            await conn.open()


class TestHandshakeTimeout:
    @pytest.mark.asyncio
    @pytest.mark.skipif(shutil.which("sleep") is None, reason="needs a POSIX sleep binary")
    async def test_silent_agent_fails_within_handshake_timeout(self):
        conn = AgentConnection(SILENT, env={}, handshake_timeout=0.5)
        start = time.monotonic()
        with pytest.raises(AgentConnectionError, match="handshake did not complete within 0.5s"):
            await conn.open()
        elapsed = time.monotonic() - start

        assert elapsed < 5.0
        assert conn.state is ConnectionState.ABSENT
        assert conn._task.done()
        await conn.close()
        assert conn.state is ConnectionState.CLOSED


class TestRealAgentProcess:
    @pytest.mark.asyncio
    async def test_spawn_query_close(self):
        env = {
            **os.environ,
            "OPENAI_API_KEY": "sk-dummy",
            "OPENAI_ENDPOINT": UNREACHABLE_ENDPOINT,
            "OPENAI_TIMEOUT": "2000",
        }
        conn = AgentConnection(get_agent_info("openai"), env=env, handshake_timeout=30.0)
        await conn.open()
        try:
            assert conn.state is ConnectionState.READY
            result = await conn.call_tool(
                "agent_query", {"query": "Pool?", "systemPrompt": "Be brief."}
            )
            assert conn.state is ConnectionState.READY
        finally:
            await conn.close()

        assert result.isError
        payload = decode_tool_result(result)
        assert isinstance(payload, AgentFailure)
        assert payload.provider == "openai"
        assert payload.error.startswith("OpenAI API")
        assert conn.state is ConnectionState.CLOSED
        assert conn._task.done()
