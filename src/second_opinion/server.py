"""
Orchestrator MCP server -- the host assistant's view of second-opinion.

Tool:
  second_opinion  -- {query, context?, agents?} -> rendered Decision text

Prompts:
  status  -- config source, host, and per-agent enabled / key status
  setup   -- guide for choosing agents and storing keys

Agent processes are spawned before the server starts accepting requests
and closed when the host disconnects.

Usage:
    second-opinion serve
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from . import __version__
from .agents.manager import ConnectionManager
from .agents.registry import get_available_agent_ids
from .config import (
    OrchestratorConfig,
    get_config_file_path,
    get_key_source,
    is_github_cli_available,
)
from .errors import SecondOpinionError
from .orchestration import RequestCoordinator

logger = logging.getLogger(__name__)

SERVER_NAME = "second-opinion"

SECOND_OPINION_TOOL = types.Tool(
    name="second_opinion",
    description=(
        "Query external AI coding agents for a second opinion.\n"
        "Automatically excludes the current host agent.\n"
        "Returns actionable guidance based on consensus analysis.\n\n"
        "- Consensus: Proceeds with agreed approach\n"
        "- No consensus (decidable): Picks best option and proceeds\n"
        "- No consensus (critical): Asks for user input (rare)"
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The question or problem to get opinions on",
            },
            "context": {
                "type": "string",
                "description": "Code, error messages, or additional context",
            },
            "agents": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Specific agents to query (default: all enabled except host)",
            },
        },
        "required": ["query"],
    },
)

PROMPTS = [
    types.Prompt(name="setup", description="Configure which AI agents to use for second opinions"),
    types.Prompt(name="status", description="Show current second-opinion configuration and enabled agents"),
]

KEY_SOURCE_LABELS = {"env": "✓ env", "stored": "✓ stored", "gh-cli": "✓ gh CLI"}


# =============================================================================
# STATUS
# =============================================================================


@dataclass
class AgentStatus:
    agent: str
    enabled: bool
    excluded: bool
    key_source: str | None

    @property
    def enabled_label(self) -> str:
        if self.excluded:
            return "✗ (host)"
        return "✓" if self.enabled else "✗"

    @property
    def key_label(self) -> str:
        if self.excluded:
            return "-"
        return KEY_SOURCE_LABELS.get(self.key_source or "", "✗ missing")


def collect_agent_status(
    live_agents: list[str],
    excluded_agent: str | None,
    cwd: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[AgentStatus]:
    """One row per registered agent."""
    return [
        AgentStatus(
            agent=agent_id,
            enabled=agent_id in live_agents,
            excluded=agent_id == excluded_agent,
            key_source=get_key_source(agent_id, cwd=cwd, environ=environ),
        )
        for agent_id in get_available_agent_ids()
    ]


def render_status(
    config: OrchestratorConfig, rows: list[AgentStatus], gh_available: bool, config_file: Path
) -> str:
    table = "\n".join(f"| {r.agent} | {r.enabled_label} | {r.key_label} |" for r in rows)
    return (
        "# Second Opinion Status\n\n"
        f"**Config source:** {config.config_source}\n"
        f"**Config file:** {config_file}\n"
        f"**Host:** {config.host or 'not set'}\n"
        f"**Query mode:** {config.query_mode.value}\n"
        f"**GitHub CLI:** {'✓ installed' if gh_available else '✗ not found'}\n\n"
        "## Agent Status\n\n"
        "| Agent | Enabled | API Key |\n"
        "|-------|---------|---------|\n"
        f"{table}\n\n"
        "## To Change Configuration\n\n"
        "Run `second-opinion setup` to reconfigure agents interactively."
    )


def render_setup(
    config: OrchestratorConfig, rows: list[AgentStatus], gh_available: bool, config_file: Path
) -> str:
    def key_label(row: AgentStatus) -> str:
        if row.key_source == "gh-cli":
            return "✓ (gh CLI)"
        return "✓" if row.key_source else "✗"

    table = "\n".join(f"| {r.agent} | {key_label(r)} |" for r in rows)
    gh_line = (
        "✓ Token will be auto-detected" if gh_available else "✗ Not installed (manual token needed)"
    )
    return (
        "# Second Opinion Setup\n\n"
        "Interactive configuration - no file editing required.\n\n"
        "## Available Agents\n\n"
        "| Agent | Key Available |\n"
        "|-------|---------------|\n"
        f"{table}\n\n"
        f"**GitHub CLI:** {gh_line}\n\n"
        "## Current Configuration\n\n"
        f"- **Enabled agents:** {', '.join(config.enabled_agents) or 'none'}\n"
        f"- **Config source:** {config.config_source}\n\n"
        "## Setup Flow\n\n"
        "1. Ask the user which agents to enable\n"
        "2. For each selected agent without a key:\n"
        "   - GitHub: Auto-detect from `gh auth token` if available\n"
        "   - Others: Ask the user to paste their API key\n"
        f"3. Save to: {config_file}\n"
        "4. Keys are stored locally - user never edits files\n\n"
        "### Key Format Hints\n"
        "- OpenAI: starts with `sk-`\n"
        "- Anthropic: starts with `sk-ant-`\n"
        "- Google: alphanumeric string\n"
        "- GitHub: `ghp_` or `gho_` (or auto-detected from gh CLI)\n\n"
        "### Important\n"
        "- Remind user to add `.claude/` to `.gitignore`\n"
        "- The host's own agent is excluded automatically (set SECOND_OPINION_HOST)"
    )


# =============================================================================
# SERVER
# =============================================================================


def build_server(config: OrchestratorConfig, coordinator: RequestCoordinator) -> Server:
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [SECOND_OPINION_TOOL]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        if name != SECOND_OPINION_TOOL.name:
            raise ValueError(f"Unknown tool: {name}")
        result = await coordinator.handle(arguments or {})
        if result.is_error:
            # Raised errors come back to the host as isError results.
            raise SecondOpinionError(result.text)
        return [types.TextContent(type="text", text=result.text)]

    @server.list_prompts()
    async def list_prompts() -> list[types.Prompt]:
        return PROMPTS

    @server.get_prompt()
    async def get_prompt(name: str, arguments: dict[str, str] | None) -> types.GetPromptResult:
        rows = collect_agent_status(coordinator.configured_agents, coordinator.excluded_agent)
        gh_available = is_github_cli_available()
        config_file = get_config_file_path()
        if name == "status":
            text = render_status(config, rows, gh_available, config_file)
        elif name == "setup":
            text = render_setup(config, rows, gh_available, config_file)
        else:
            raise ValueError(f"Unknown prompt: {name}")
        return types.GetPromptResult(
            messages=[
                types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))
            ]
        )

    return server


async def run_server(config: OrchestratorConfig) -> None:
    """Spawn agents, serve the host over stdio, then shut every agent down."""
    coordinator = RequestCoordinator(config, ConnectionManager(config))
    await coordinator.start()
    logger.info(
        f"[Server] Started (config: {config.config_source}, host: {config.host or 'not set'}, "
        f"enabled: {', '.join(config.enabled_agents) or 'none'}, "
        f"live: {', '.join(coordinator.configured_agents) or 'none'})"
    )
    try:
        server = build_server(config, coordinator)
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        logger.info("[Server] Shutting down...")
        await coordinator.stop()
