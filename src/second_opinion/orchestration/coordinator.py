"""
RequestCoordinator -- top-level entry point for a second-opinion request.

  1. Validate the request ({query, context?, agents?})
  2. Resolve agents: (requested or all live) ∩ live, minus the host's own agent
  3. Fan out through the ConnectionManager
  4. Aggregate with the ConsensusEngine
  5. Render the Decision as text for the host

An empty agent set is a configuration problem, reported as an error
result; the Consensus Engine is not invoked for it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..agents.manager import ConnectionManager
from ..agents.registry import get_agent_id_from_host
from ..config import OrchestratorConfig
from ..consensus import ConsensusEngine
from ..models import AgentResponse, Decision, Outcome, QueryParams
from ..security import validate_identifier, validate_length, validate_list_size

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 50_000
MAX_CONTEXT_LENGTH = 200_000
QUERY_REQUIRED_MESSAGE = "Error: query parameter is required"


class SecondOpinionRequest(BaseModel):
    """Arguments of the second_opinion tool."""

    query: str = Field(..., description="The question or problem to get opinions on")
    context: str | None = Field(None, description="Code, error messages, or additional context")
    agents: list[str] | None = Field(
        None, description="Specific agents to query (default: all enabled except host)"
    )

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query cannot be empty")
        return validate_length(value, "query", MAX_QUERY_LENGTH)

    @field_validator("context")
    @classmethod
    def _context_size(cls, value: str | None) -> str | None:
        return validate_length(value, "context", MAX_CONTEXT_LENGTH) if value else value

    @field_validator("agents")
    @classmethod
    def _agents_valid(cls, value: list[str] | None) -> list[str] | None:
        if not value:
            return value
        validate_list_size(value, "agents")
        return [validate_identifier(a.strip().lower(), "agent id") for a in value]


@dataclass
class CoordinatorResult:
    """What the host gets back: rendered text plus the structured decision."""

    text: str
    is_error: bool = False
    decision: Decision | None = None
    responses: list[AgentResponse] = field(default_factory=list)
    duration_seconds: float = 0.0


def render_decision(decision: Decision) -> str:
    """Render a Decision for the host assistant."""
    if decision.outcome in (Outcome.CONSENSUS, Outcome.DECIDED):
        output = decision.action
        if decision.rationale:
            output += f"\n\n_{decision.rationale}_"
        return output

    lines = ["Need your input on this one:\n"]
    for opt in decision.options:
        lines.append(f"- **{opt.option}**: {opt.tradeoff}")
    if not decision.options:
        lines.append(decision.action)
    return "\n".join(lines)


class RequestCoordinator:
    """
    Compose agent selection, fan-out, and aggregation.

    Usage:
        coordinator = RequestCoordinator(config, ConnectionManager(config))
        await coordinator.start()
        result = await coordinator.handle({"query": "Should I use a pool here?"})
        print(result.text)
        await coordinator.stop()
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        manager: ConnectionManager,
        engine: ConsensusEngine | None = None,
    ):
        self._config = config
        self._manager = manager
        self._engine = engine or ConsensusEngine()
        self._excluded_agent = get_agent_id_from_host(config.host)

    @property
    def excluded_agent(self) -> str | None:
        return self._excluded_agent

    @property
    def configured_agents(self) -> list[str]:
        """Agents with a live connection."""
        return self._manager.live_agents()

    async def start(self) -> None:
        await self._manager.initialize(self._config.enabled_agents)
        logger.info(
            f"[Coordinator] Host: {self._config.host or 'not set'}, "
            f"excluded agent: {self._excluded_agent or 'none'}, "
            f"available: {', '.join(self.resolve_agents()) or 'none'}"
        )

    async def stop(self) -> None:
        await self._manager.shutdown()

    def resolve_agents(self, requested: list[str] | None = None) -> list[str]:
        """(requested or all live) ∩ live, minus the excluded host agent."""
        candidates = requested if requested is not None else self._manager.live_agents()
        return [
            agent_id
            for agent_id in dict.fromkeys(candidates)
            if agent_id != self._excluded_agent and self._manager.is_live(agent_id)
        ]

    def _no_agents_message(self) -> str:
        configured = ", ".join(self.configured_agents) or "none"
        return (
            "No agents available to query.\n\n"
            f"Configured: {configured}\n"
            f"Excluded (host): {self._excluded_agent or 'none'}\n\n"
            "Check API keys in environment variables and ensure agent servers can start."
        )

    async def handle(self, arguments: dict[str, Any] | SecondOpinionRequest) -> CoordinatorResult:
        """Run one second-opinion request. Never raises for agent failures."""
        start = time.perf_counter()
        if isinstance(arguments, SecondOpinionRequest):
            request = arguments
        else:
            arguments = arguments or {}
            query = arguments.get("query")
            if not isinstance(query, str) or not query.strip():
                return CoordinatorResult(text=QUERY_REQUIRED_MESSAGE, is_error=True)
            try:
                request = SecondOpinionRequest.model_validate(arguments)
            except ValidationError as e:
                first = e.errors()[0]
                field_name = ".".join(str(p) for p in first["loc"]) or "request"
                logger.warning(f"[Coordinator] Invalid request: {e.error_count()} error(s)")
                return CoordinatorResult(
                    text=f"Error: invalid {field_name}: {first['msg']}", is_error=True
                )

        agent_ids = self.resolve_agents(request.agents)
        if not agent_ids:
            logger.warning("[Coordinator] No agents available for request")
            return CoordinatorResult(text=self._no_agents_message(), is_error=True)

        params = QueryParams(
            query=request.query,
            context=request.context,
            system_prompt=self._config.system_prompt,
        )
        logger.info(
            f"[Coordinator] Querying {len(agent_ids)} agent(s) "
            f"({self._config.query_mode.value}): {', '.join(agent_ids)}"
        )
        responses = await self._manager.query(agent_ids, params, self._config.query_mode)
        decision = self._engine.aggregate(responses)
        duration = time.perf_counter() - start

        logger.info(
            f"[Coordinator] Outcome: {decision.outcome.value} "
            f"({sum(r.succeeded for r in responses)}/{len(responses)} agents, {duration:.1f}s)"
        )
        return CoordinatorResult(
            text=render_decision(decision),
            decision=decision,
            responses=responses,
            duration_seconds=duration,
        )
