"""
Shared data contracts -- what flows between the Connection Manager,
the Consensus Engine, and the Request Coordinator.

  QueryParams    -- the question sent to every agent
  AgentResponse  -- one agent's answer (or failure), created once per query
  AnalysisResult -- Consensus Engine internals, computed per aggregation
  Decision       -- the outcome handed back to the host

AgentResponse is frozen: the Connection Manager creates it, the Consensus
Engine only reads it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Outcome(str, Enum):
    CONSENSUS = "consensus"
    DECIDED = "decided"
    NEEDS_INPUT = "needs_input"


class ConsensusStrength(str, Enum):
    STRONG = "strong"
    WEAK = "weak"
    NONE = "none"


class QueryMode(str, Enum):
    """How the Connection Manager fans a query out to agents."""

    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


# =============================================================================
# AGENT I/O
# =============================================================================


@dataclass
class QueryParams:
    """Uniform request sent to every agent's agent_query tool."""

    query: str
    system_prompt: str
    context: str | None = None
    model: str | None = None

    def to_arguments(self) -> dict[str, Any]:
        """Tool arguments in the agent wire format (camelCase keys)."""
        arguments: dict[str, Any] = {
            "query": self.query,
            "systemPrompt": self.system_prompt,
        }
        if self.context:
            arguments["context"] = self.context
        if self.model:
            arguments["model"] = self.model
        return arguments


@dataclass(frozen=True)
class AgentResponse:
    """One agent's answer to one query attempt."""

    agent: str
    provider: str
    model: str
    response: str = ""
    latency_ms: float = 0.0
    tokens_used: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return not self.error and bool(self.response)


# =============================================================================
# DECISION
# =============================================================================


@dataclass
class DecisionOption:
    """One choice presented to the human when agents disagree on something critical."""

    option: str
    tradeoff: str


@dataclass
class DecisionMeta:
    agents_count: int
    consensus_strength: ConsensusStrength
    time_ms: float


@dataclass
class AnalysisResult:
    """Intermediate classification of two or more successful responses."""

    consensus_strength: ConsensusStrength
    consensus_action: str = ""
    can_decide: bool = False
    best_action: str = ""
    rationale: str = ""
    options: list[DecisionOption] = field(default_factory=list)


@dataclass
class Decision:
    """Final outcome of a second-opinion request."""

    outcome: Outcome
    action: str
    rationale: str | None = None
    options: list[DecisionOption] = field(default_factory=list)
    meta: DecisionMeta | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible shape (options only for needs_input, _meta when known)."""
        data: dict[str, Any] = {"outcome": self.outcome.value, "action": self.action}
        if self.rationale:
            data["rationale"] = self.rationale
        if self.outcome is Outcome.NEEDS_INPUT:
            data["options"] = [
                {"option": o.option, "tradeoff": o.tradeoff} for o in self.options
            ]
        if self.meta is not None:
            data["_meta"] = {
                "agentsCount": self.meta.agents_count,
                "consensusStrength": self.meta.consensus_strength.value,
                "timeMs": round(self.meta.time_ms),
            }
        return data
