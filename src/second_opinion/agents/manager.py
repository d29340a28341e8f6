"""
ConnectionManager -- one live connection per configured agent, with
per-agent failure isolation.

  initialize(ids)            -- open connections concurrently; failures are excluded, never raised
  query(ids, params, mode)   -- fan out concurrently or sequentially
  query_one(id, params)      -- one timed call; every failure becomes AgentResponse.error
  shutdown()                 -- close everything, log close failures, empty the map

The id -> connection map is written only by initialize() and shutdown().
Queries only read it, so callers must not run initialize/shutdown while a
query phase is in flight.
"""

import asyncio
import logging
import os
import time
from collections.abc import Callable
from typing import Any, Protocol

from ..config import OrchestratorConfig
from ..errors import PayloadError
from ..models import AgentResponse, QueryMode, QueryParams
from ..security import detect_injection_attempt, sanitize_for_prompt
from .connection import AgentConnection
from .payloads import AgentFailure, decode_tool_result
from .registry import AgentInfo, get_agent_info

logger = logging.getLogger(__name__)

AGENT_QUERY_TOOL = "agent_query"
UNKNOWN = "unknown"
MAX_RESPONSE_CHARS = 50_000


class Connection(Protocol):
    """What the manager needs from a connection (AgentConnection or a test double)."""

    @property
    def agent_id(self) -> str: ...

    @property
    def provider(self) -> str: ...

    async def open(self) -> None: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[[AgentInfo, dict[str, str]], Connection]


def _default_factory(info: AgentInfo, env: dict[str, str]) -> Connection:
    return AgentConnection(info, env=env)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ConnectionManager:
    """
    Owns every agent connection for one orchestrator instance.

    Usage:
        manager = ConnectionManager(config)
        await manager.initialize(config.enabled_agents)
        responses = await manager.query(["openai", "gemini"], params, QueryMode.CONCURRENT)
        await manager.shutdown()
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        connection_factory: ConnectionFactory | None = None,
        base_env: dict[str, str] | None = None,
    ):
        self._config = config
        self._factory = connection_factory or _default_factory
        self._base_env = base_env
        self._connections: dict[str, Connection] = {}

    def _agent_env(self) -> dict[str, str]:
        """Environment for agent subprocesses: inherited env plus resolved API keys."""
        env = dict(os.environ if self._base_env is None else self._base_env)
        env.update(self._config.agent_env)
        return env

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, agent_ids: list[str]) -> None:
        """Open one connection per known id, concurrently. Never raises."""
        env = self._agent_env()
        pending: list[Connection] = []
        for agent_id in dict.fromkeys(agent_ids):
            if agent_id in self._connections:
                continue
            info = get_agent_info(agent_id)
            if info is None:
                logger.error(f"[ConnectionManager] Unknown agent: {agent_id}")
                continue
            pending.append(self._factory(info, env))

        results = await asyncio.gather(
            *[conn.open() for conn in pending], return_exceptions=True
        )
        for conn, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[ConnectionManager] Failed to spawn agent {conn.agent_id}: {result}"
                )
                continue
            self._connections[conn.agent_id] = conn

        logger.info(
            f"[ConnectionManager] {len(self._connections)}/{len(pending)} agents live: "
            f"{', '.join(self._connections) or 'none'}"
        )

    async def shutdown(self) -> None:
        """Close every live connection. One failure never stops the rest."""
        for agent_id, conn in list(self._connections.items()):
            try:
                await conn.close()
                logger.info(f"[ConnectionManager] Stopped agent: {agent_id}")
            except Exception as e:
                logger.error(f"[ConnectionManager] Error stopping agent {agent_id}: {e}")
        self._connections.clear()

    def live_agents(self) -> list[str]:
        return list(self._connections)

    def is_live(self, agent_id: str) -> bool:
        return agent_id in self._connections

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query(
        self,
        agent_ids: list[str],
        params: QueryParams,
        mode: QueryMode = QueryMode.CONCURRENT,
    ) -> list[AgentResponse]:
        """One AgentResponse per requested id. Correlate by `agent`, not position."""
        if mode is QueryMode.SEQUENTIAL:
            responses = []
            for agent_id in agent_ids:
                responses.append(await self.query_one(agent_id, params))
            return responses

        return list(
            await asyncio.gather(*[self.query_one(a, params) for a in agent_ids])
        )

    async def query_one(self, agent_id: str, params: QueryParams) -> AgentResponse:
        """Query one agent with its own timeout. Never raises."""
        conn = self._connections.get(agent_id)
        if conn is None:
            return AgentResponse(
                agent=agent_id,
                provider=UNKNOWN,
                model=UNKNOWN,
                latency_ms=0.0,
                error=f"Agent not found: {agent_id}",
            )

        timeout = self._config.query_timeout_s
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                conn.call_tool(AGENT_QUERY_TOOL, params.to_arguments()),
                timeout=timeout,
            )
            latency_ms = _elapsed_ms(start)
            payload = decode_tool_result(result)
        except asyncio.TimeoutError:
            logger.warning(f"[ConnectionManager] {agent_id} timed out after {timeout:g}s")
            return self._failure(conn, _elapsed_ms(start), f"Timed out after {timeout:g}s")
        except PayloadError as e:
            logger.warning(f"[ConnectionManager] {agent_id} returned bad payload: {e}")
            return self._failure(conn, _elapsed_ms(start), str(e))
        except Exception as e:
            logger.error(f"[ConnectionManager] {agent_id} query failed: {e}")
            return self._failure(conn, _elapsed_ms(start), str(e) or type(e).__name__)

        if isinstance(payload, AgentFailure):
            logger.warning(f"[ConnectionManager] {agent_id} reported error: {payload.error}")
            return AgentResponse(
                agent=agent_id,
                provider=payload.provider or conn.provider,
                model=payload.model or UNKNOWN,
                latency_ms=latency_ms,
                error=payload.error,
            )

        text = sanitize_for_prompt(payload.response, max_length=MAX_RESPONSE_CHARS)
        if detect_injection_attempt(text):
            logger.warning(f"[ConnectionManager] {agent_id} response contains injection patterns")

        logger.debug(
            f"[ConnectionManager] {agent_id}: {len(text)} chars, "
            f"{payload.tokens_used or 0}tok ({latency_ms:.0f}ms)"
        )
        return AgentResponse(
            agent=agent_id,
            provider=payload.provider or conn.provider,
            model=payload.model or UNKNOWN,
            response=text,
            latency_ms=latency_ms,
            tokens_used=payload.tokens_used,
        )

    @staticmethod
    def _failure(conn: Connection, latency_ms: float, error: str) -> AgentResponse:
        return AgentResponse(
            agent=conn.agent_id,
            provider=conn.provider,
            model=UNKNOWN,
            latency_ms=latency_ms,
            error=error,
        )
