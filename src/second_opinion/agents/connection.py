"""
AgentConnection -- one agent subprocess plus its MCP client session.

The connection is an owned resource handle: the Connection Manager opens
it, queries it, and closes it. Raw process/session handles never leave
this class.

Lifecycle:

  uninitialized -> connecting -> ready | absent
  ready <-> querying          (a failed query returns to ready)
  ready -> closing -> closed  (close() is idempotent)

The stdio transport and the ClientSession are entered and exited inside a
single lifecycle task. anyio cancel scopes must be exited by the task that
entered them, so open() starts that task and close() signals it to unwind,
which terminates the subprocess and releases its pipes.
"""

import asyncio
import logging
from enum import Enum
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from ..errors import AgentConnectionError
from .registry import AgentInfo

logger = logging.getLogger(__name__)

DEFAULT_HANDSHAKE_TIMEOUT_S = 30.0
CLOSE_TIMEOUT_S = 10.0
CLIENT_NAME_PREFIX = "orchestrator"


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    QUERYING = "querying"
    ABSENT = "absent"
    CLOSING = "closing"
    CLOSED = "closed"


class AgentConnection:
    """
    Live MCP connection to one agent subprocess.

    Usage:
        conn = AgentConnection(get_agent_info("openai"), env={"OPENAI_API_KEY": key})
        await conn.open()
        result = await conn.call_tool("agent_query", {"query": "...", "systemPrompt": "..."})
        await conn.close()
    """

    def __init__(
        self,
        info: AgentInfo,
        env: dict[str, str] | None = None,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT_S,
    ):
        self._info = info
        self._env = env
        self._handshake_timeout = handshake_timeout
        self._session: ClientSession | None = None
        self._task: asyncio.Task | None = None
        self._started: asyncio.Future | None = None
        self._closing = asyncio.Event()
        self._in_flight = 0
        self.state = ConnectionState.UNINITIALIZED

    @property
    def agent_id(self) -> str:
        return self._info.id

    @property
    def provider(self) -> str:
        return self._info.provider

    @property
    def is_ready(self) -> bool:
        return self.state in (ConnectionState.READY, ConnectionState.QUERYING)

    def _server_parameters(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self._info.command,
            args=self._info.launch_args,
            env=self._env,
        )

    async def open(self) -> None:
        """
        Spawn the agent and complete the MCP handshake.

        Raises:
            AgentConnectionError: If the process could not start, the handshake
                failed, or it did not finish within the handshake timeout.
        """
        if self.state is not ConnectionState.UNINITIALIZED:
            raise AgentConnectionError(
                self.agent_id, f"cannot open from state '{self.state.value}'"
            )

        self.state = ConnectionState.CONNECTING
        self._started = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run(), name=f"agent-{self.agent_id}")

        try:
            await asyncio.wait_for(
                asyncio.shield(self._started), timeout=self._handshake_timeout
            )
        except asyncio.TimeoutError as e:
            self.state = ConnectionState.ABSENT
            await self._cancel_task()
            raise AgentConnectionError(
                self.agent_id,
                f"handshake did not complete within {self._handshake_timeout:g}s",
            ) from e
        except Exception as e:
            self.state = ConnectionState.ABSENT
            await self._cancel_task()
            reason = str(e) or type(e).__name__
            raise AgentConnectionError(self.agent_id, reason) from e

        self.state = ConnectionState.READY
        logger.info(f"[AgentConnection:{self.agent_id}] Spawned agent")

    async def _run(self) -> None:
        """Own the transport and session for the whole connection lifetime."""
        try:
            async with stdio_client(self._server_parameters()) as (read, write):
                async with ClientSession(read, write) as session:
                    await session.initialize()
                    self._session = session
                    self._started.set_result(None)
                    await self._closing.wait()
        except Exception as e:
            if not self._started.done():
                self._started.set_exception(e)
            else:
                logger.warning(f"[AgentConnection:{self.agent_id}] Agent exited: {e}")
        finally:
            self._session = None

        if not self._closing.is_set():
            logger.warning(f"[AgentConnection:{self.agent_id}] Agent process ended unexpectedly")

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Call a tool on the agent. Returns the raw MCP CallToolResult.

        Raises:
            AgentConnectionError: If the connection is not ready.
        """
        session = self._session
        if not self.is_ready or session is None:
            raise AgentConnectionError(self.agent_id, "connection is not ready")

        self._in_flight += 1
        self.state = ConnectionState.QUERYING
        try:
            return await session.call_tool(name, arguments=arguments)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self.state is ConnectionState.QUERYING:
                self.state = ConnectionState.READY

    async def close(self) -> None:
        """Terminate the agent process. Safe to call more than once."""
        if self.state is ConnectionState.CLOSED:
            return
        if self.state in (ConnectionState.UNINITIALIZED, ConnectionState.ABSENT):
            self.state = ConnectionState.CLOSED
            return

        self.state = ConnectionState.CLOSING
        try:
            await self._stop_task()
        finally:
            self.state = ConnectionState.CLOSED
        logger.info(f"[AgentConnection:{self.agent_id}] Stopped agent")

    async def _stop_task(self) -> None:
        self._closing.set()
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, timeout=CLOSE_TIMEOUT_S)
        except asyncio.TimeoutError:
            raise AgentConnectionError(
                self.agent_id, f"did not stop within {CLOSE_TIMEOUT_S:.0f}s"
            )

    async def _cancel_task(self) -> None:
        """Tear down a lifecycle task that may still be blocked in the handshake."""
        self._closing.set()
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task}, timeout=CLOSE_TIMEOUT_S)
        if not task.done():
            logger.error(
                f"[AgentConnection:{self.agent_id}] Agent did not stop within {CLOSE_TIMEOUT_S:.0f}s"
            )
