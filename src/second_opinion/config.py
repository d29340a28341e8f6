"""
Configuration -- built once at startup and passed into the Coordinator
and Connection Manager. Nothing downstream reads the environment.

Priority for enabled agents:
  1. Local config file (.claude/second-opinion.json in cwd, then home)
  2. ENABLED_AGENTS environment variable (comma separated)
  3. Every registered agent

Other settings come from the environment:
  SECOND_OPINION_HOST           -- host assistant name (its agent is excluded)
  SECOND_OPINION_PARALLEL       -- "false" switches to sequential fan-out
  SECOND_OPINION_SYSTEM_PROMPT  -- overrides the default system prompt
  SECOND_OPINION_TIMEOUT        -- per-agent query timeout in seconds

API keys for agent subprocesses resolve as: environment variable >
stored key in the local config file > `gh auth token` (github only).
"""

import json
import logging
import os
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .agents.registry import AGENT_REGISTRY, get_available_agent_ids
from .errors import ConfigError
from .models import QueryMode

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".claude"
CONFIG_FILE_NAME = "second-opinion.json"
DEFAULT_QUERY_TIMEOUT_S = 60.0
GH_CLI_TIMEOUT_S = 5

DEFAULT_SYSTEM_PROMPT = """You are providing a second opinion on a coding question.
Be concise. Focus on:
1. Direct answer to the question
2. Key considerations or tradeoffs
3. Potential issues with the proposed approach
4. Alternative approaches if relevant

Keep response under 300 words. Be direct and actionable."""


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class OrchestratorConfig:
    """Explicit configuration value for one orchestrator instance."""

    enabled_agents: list[str] = field(default_factory=get_available_agent_ids)
    host: str | None = None
    parallel: bool = True
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    query_timeout_s: float = DEFAULT_QUERY_TIMEOUT_S
    config_source: str = "default"  # local | env | default
    agent_env: dict[str, str] = field(default_factory=dict)

    @property
    def query_mode(self) -> QueryMode:
        return QueryMode.CONCURRENT if self.parallel else QueryMode.SEQUENTIAL


def _config_paths(cwd: Path | None = None, home: Path | None = None) -> list[Path]:
    cwd = cwd or Path.cwd()
    home = home or Path.home()
    return [
        cwd / CONFIG_DIR_NAME / CONFIG_FILE_NAME,
        home / CONFIG_DIR_NAME / CONFIG_FILE_NAME,
    ]


def get_config_file_path(cwd: Path | None = None) -> Path:
    """Where `save_config` writes: the project-local file."""
    return (cwd or Path.cwd()) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def read_local_config(cwd: Path | None = None, home: Path | None = None) -> dict | None:
    """Read the first parseable local config file, or None."""
    for path in _config_paths(cwd, home):
        if not path.exists():
            continue
        try:
            with open(path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            logger.info(f"[Config] Loaded config from: {path}")
            return data
        except (OSError, ValueError) as e:
            logger.warning(f"[Config] Failed to parse config at {path}: {e}")
    return None


def _parse_timeout(raw: str | None) -> float:
    if not raw:
        return DEFAULT_QUERY_TIMEOUT_S
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"SECOND_OPINION_TIMEOUT must be a number (got '{raw}')")
    if value <= 0:
        raise ConfigError(f"SECOND_OPINION_TIMEOUT must be positive (got {value})")
    return value


def load_config(
    cwd: Path | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> OrchestratorConfig:
    """
    Load orchestrator configuration.

    Priority: local config file > environment variables > defaults.

    Raises:
        ConfigError: If a numeric setting is malformed.
    """
    env = os.environ if environ is None else environ
    all_agents = get_available_agent_ids()

    local = read_local_config(cwd, home)
    if local and local.get("enabledAgents"):
        enabled = [a for a in local["enabledAgents"] if a in all_agents]
        source = "local"
    elif env.get("ENABLED_AGENTS"):
        enabled = [
            a.strip().lower()
            for a in env["ENABLED_AGENTS"].split(",")
            if a.strip().lower() in all_agents
        ]
        source = "env"
    else:
        enabled = all_agents
        source = "default"

    return OrchestratorConfig(
        enabled_agents=enabled,
        host=env.get("SECOND_OPINION_HOST") or None,
        parallel=env.get("SECOND_OPINION_PARALLEL") != "false",
        system_prompt=env.get("SECOND_OPINION_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
        query_timeout_s=_parse_timeout(env.get("SECOND_OPINION_TIMEOUT")),
        config_source=source,
        agent_env=get_api_keys_for_agents(enabled, cwd=cwd, home=home, environ=env),
    )


def save_config(
    enabled_agents: list[str] | None = None,
    api_keys: dict[str, str] | None = None,
    path: Path | None = None,
) -> Path:
    """Merge settings into the project-local config file and return its path."""
    path = path or get_config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                existing = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[Config] Overwriting unreadable config at {path}: {e}")

    merged = dict(existing)
    if enabled_agents is not None:
        merged["enabledAgents"] = enabled_agents
    if api_keys:
        merged["apiKeys"] = {**existing.get("apiKeys", {}), **api_keys}
    merged["updatedAt"] = datetime.now(timezone.utc).isoformat()

    with open(path, "w") as f:
        json.dump(merged, f, indent=2)
        f.write("\n")
    logger.info(f"[Config] Saved config to {path}")
    return path


# =============================================================================
# API KEYS
# =============================================================================


def get_github_token_from_cli() -> str | None:
    """Ask the GitHub CLI for its OAuth token, if it is installed and logged in."""
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=GH_CLI_TIMEOUT_S,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    return result.stdout.strip() or None


def get_api_keys_for_agents(
    agent_ids: list[str],
    cwd: Path | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Resolve {ENV_VAR: key} for each agent that has a key available.

    Priority: environment variable > stored config > GitHub CLI (github only).
    """
    env = os.environ if environ is None else environ
    local = read_local_config(cwd, home) or {}
    stored = local.get("apiKeys", {}) or {}
    keys: dict[str, str] = {}

    for agent_id in agent_ids:
        info = AGENT_REGISTRY.get(agent_id)
        if info is None:
            continue
        if env.get(info.key_env_var):
            keys[info.key_env_var] = env[info.key_env_var]
        elif stored.get(agent_id):
            keys[info.key_env_var] = stored[agent_id]
        elif agent_id == "github":
            token = get_github_token_from_cli()
            if token:
                keys[info.key_env_var] = token

    return keys


def get_key_source(
    agent_id: str,
    cwd: Path | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Where an agent's key would come from: "env", "stored", "gh-cli", or None."""
    info = AGENT_REGISTRY.get(agent_id)
    if info is None:
        return None
    env = os.environ if environ is None else environ
    if env.get(info.key_env_var):
        return "env"
    stored = (read_local_config(cwd, home) or {}).get("apiKeys", {}) or {}
    if stored.get(agent_id):
        return "stored"
    if agent_id == "github" and get_github_token_from_cli():
        return "gh-cli"
    return None


def is_github_cli_available() -> bool:
    return shutil.which("gh") is not None
