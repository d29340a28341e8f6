"""
Agent registry -- the fixed set of agents this orchestrator knows how to spawn.

Each agent is a provider adapter served over MCP stdio by
`python -m second_opinion.providers <id>`. The registry maps agent ids to
that launch command and to the provider label reported before the agent
has answered anything.

Usage:
    info = get_agent_info("openai")
    info.command, info.args  # -> sys.executable, ["-m", "second_opinion.providers", "openai"]
"""

import sys
from dataclasses import dataclass, field

AGENT_MODULE = "second_opinion.providers"

# Host assistant name -> the agent id that host itself runs on.
HOST_AGENT_MAP: dict[str, str] = {
    "claude-code": "anthropic",
    "gemini": "gemini",
    "codex": "openai",
    "copilot": "github",
}


@dataclass(frozen=True)
class AgentInfo:
    """Launch and identity information for one agent."""

    id: str
    provider: str
    key_env_var: str
    command: str = sys.executable
    args: tuple[str, ...] = field(default=())

    @property
    def launch_args(self) -> list[str]:
        return list(self.args) if self.args else ["-m", AGENT_MODULE, self.id]


AGENT_REGISTRY: dict[str, AgentInfo] = {
    "openai": AgentInfo(id="openai", provider="openai", key_env_var="OPENAI_API_KEY"),
    "anthropic": AgentInfo(id="anthropic", provider="anthropic", key_env_var="ANTHROPIC_API_KEY"),
    "gemini": AgentInfo(id="gemini", provider="google", key_env_var="GOOGLE_API_KEY"),
    "github": AgentInfo(id="github", provider="github", key_env_var="GITHUB_TOKEN"),
}


def get_available_agent_ids() -> list[str]:
    """All agent ids in registry order."""
    return list(AGENT_REGISTRY)


def get_agent_info(agent_id: str) -> AgentInfo | None:
    return AGENT_REGISTRY.get(agent_id)


def get_agent_id_from_host(host: str | None) -> str | None:
    """Map a host assistant name (e.g. 'claude-code') to the agent it must not consult."""
    if not host:
        return None
    return HOST_AGENT_MAP.get(host.strip().lower())
