"""
second-opinion CLI.

Commands:
    second-opinion serve               Run the orchestrator MCP server on stdio
    second-opinion ask "question"      One-shot second opinion from the terminal
    second-opinion status              Show configuration and agent key status
    second-opinion setup               Choose agents and store API keys
    second-opinion agent <id>          Run a single agent MCP server on stdio
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .agents.manager import ConnectionManager
from .agents.registry import AGENT_REGISTRY, get_available_agent_ids, get_agent_id_from_host
from .config import (
    get_config_file_path,
    is_github_cli_available,
    load_config,
    save_config,
)
from .errors import ConfigError
from .logging_setup import configure_logging
from .models import Outcome
from .orchestration import RequestCoordinator
from .security import ValidationError, validate_in_choices, validate_not_empty
from .server import collect_agent_status

app = typer.Typer(help="Get a second opinion from other AI coding agents")
# stdout belongs to the MCP protocol when serving
console = Console(stderr=True)


def _load_config_or_exit():
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    log_level: str = typer.Option(
        None, "--log-level", envvar="SECOND_OPINION_LOG_LEVEL", help="DEBUG, INFO, WARNING, ERROR"
    ),
):
    """Configure logging for every command."""
    configure_logging(log_level)


# =============================================================================
# SERVE
# =============================================================================


@app.command()
def serve():
    """Run the orchestrator MCP server over stdio."""
    from .server import run_server

    config = _load_config_or_exit()
    asyncio.run(run_server(config))


@app.command()
def agent(
    agent_id: str = typer.Argument(..., help=f"One of: {', '.join(get_available_agent_ids())}"),
):
    """Run a single agent MCP server over stdio."""
    from .providers.__main__ import main as agent_main

    raise typer.Exit(agent_main([agent_id]))


# =============================================================================
# ASK
# =============================================================================


async def _ask(query: str, context: str | None, agents: list[str] | None):
    config = _load_config_or_exit()
    coordinator = RequestCoordinator(config, ConnectionManager(config))
    await coordinator.start()
    try:
        arguments = {"query": query, "context": context}
        if agents:
            arguments["agents"] = agents
        return await coordinator.handle(arguments)
    finally:
        await coordinator.stop()


@app.command()
def ask(
    query: str = typer.Argument(..., help="The question or problem to get opinions on"),
    context: str = typer.Option(None, "--context", "-c", help="Code, error messages, or additional context"),
    context_file: Path = typer.Option(
        None, "--context-file", "-f", exists=True, dir_okay=False, help="Read context from a file"
    ),
    agents: list[str] = typer.Option(None, "--agent", "-a", help="Agent to query (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print the decision as JSON on stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show each agent's raw answer"),
):
    """Ask the enabled agents once and print the decision."""
    if context_file:
        context = "\n\n".join(filter(None, [context, context_file.read_text()]))
    result = asyncio.run(_ask(query, context, agents))

    if as_json:
        data = result.decision.to_dict() if result.decision else {"error": result.text}
        data["agents"] = [
            {
                "agent": r.agent,
                "model": r.model,
                "latencyMs": round(r.latency_ms),
                "tokensUsed": r.tokens_used,
                "error": r.error,
            }
            for r in result.responses
        ]
        typer.echo(json.dumps(data, indent=2))
        raise typer.Exit(1 if result.is_error else 0)

    if result.is_error:
        console.print(f"[bold red]{result.text}[/bold red]")
        raise typer.Exit(1)

    outcome = result.decision.outcome if result.decision else Outcome.NEEDS_INPUT
    style = {"consensus": "green", "decided": "blue", "needs_input": "yellow"}[outcome.value]
    console.print(Panel(result.text, title=f"[bold]{outcome.value}[/bold]", border_style=style))

    table = Table(title=f"Agents ({result.duration_seconds:.1f}s)")
    table.add_column("Agent", style="cyan")
    table.add_column("Model")
    table.add_column("Latency", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Result")
    for r in result.responses:
        table.add_row(
            r.agent,
            r.model,
            f"{r.latency_ms:.0f}ms",
            str(r.tokens_used) if r.tokens_used is not None else "-",
            "[green]ok[/green]" if r.succeeded else f"[red]{r.error}[/red]",
        )
    console.print(table)

    if verbose:
        for r in result.responses:
            if r.succeeded:
                console.print(Panel(r.response, title=r.agent, border_style="dim"))


# =============================================================================
# STATUS
# =============================================================================


@app.command()
def status():
    """Show configuration source, host, and per-agent key status."""
    config = _load_config_or_exit()
    excluded = get_agent_id_from_host(config.host)
    rows = collect_agent_status(config.enabled_agents, excluded)

    console.print(f"\n[bold blue]second-opinion {__version__}[/bold blue]")
    console.print(f"Config source: {config.config_source}")
    console.print(f"Config file:   {get_config_file_path()}")
    console.print(f"Host:          {config.host or 'not set'}")
    console.print(f"Query mode:    {config.query_mode.value} (timeout {config.query_timeout_s:g}s)")
    console.print(f"GitHub CLI:    {'installed' if is_github_cli_available() else 'not found'}\n")

    table = Table(title="Agents")
    table.add_column("Agent", style="cyan")
    table.add_column("Provider")
    table.add_column("Enabled")
    table.add_column("API Key")
    for row in rows:
        table.add_row(row.agent, AGENT_REGISTRY[row.agent].provider, row.enabled_label, row.key_label)
    console.print(table)


# =============================================================================
# SETUP
# =============================================================================


def _parse_key(pair: str, all_agents: list[str]) -> tuple[str, str]:
    agent_id, sep, key = pair.partition("=")
    if not sep:
        raise ValidationError("--key must look like AGENT=KEY")
    agent_id = validate_in_choices(agent_id.strip().lower(), all_agents, "agent")
    return agent_id, validate_not_empty(key, f"key for {agent_id}").strip()


@app.command()
def setup(
    enable: list[str] = typer.Option(None, "--enable", "-e", help="Agent to enable (repeatable)"),
    keys: list[str] = typer.Option(None, "--key", "-k", help="Store a key: AGENT=KEY (repeatable)"),
):
    """Choose which agents to enable and store any missing API keys locally."""
    config = _load_config_or_exit()
    all_agents = get_available_agent_ids()
    rows = {r.agent: r for r in collect_agent_status(config.enabled_agents, None)}
    interactive = not enable and not keys

    try:
        api_keys = dict(_parse_key(pair, all_agents) for pair in keys or [])
        agents = [validate_in_choices(a.strip().lower(), all_agents, "agent") for a in enable or []]
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if interactive:
        console.print("\n[bold blue]second-opinion setup[/bold blue]\n")
        agents = [
            agent_id
            for agent_id in all_agents
            if typer.confirm(
                f"Enable {agent_id} ({rows[agent_id].key_label})?",
                default=agent_id in config.enabled_agents,
            )
        ]
        for agent_id in agents:
            if rows[agent_id].key_source:
                continue
            key = typer.prompt(
                f"{AGENT_REGISTRY[agent_id].key_env_var} for {agent_id} (blank to skip)",
                default="",
                hide_input=True,
                show_default=False,
            )
            if key.strip():
                api_keys[agent_id] = key.strip()

    path = save_config(enabled_agents=agents if interactive or enable else None, api_keys=api_keys)
    console.print(f"\n[bold green]Saved:[/bold green] {path}")
    if agents:
        console.print(f"Enabled agents: {', '.join(agents)}")
    if api_keys:
        console.print(f"Stored keys for: {', '.join(api_keys)}")
        console.print("[yellow]API keys are stored in plain text. Add .claude/ to .gitignore.[/yellow]")


if __name__ == "__main__":
    app()
