"""
Agent process entry point: `python -m second_opinion.providers <agent-id>`.

The Connection Manager spawns one of these per enabled agent.
"""

import asyncio
import logging
import sys

from ..logging_setup import configure_logging
from . import ADAPTERS, create_adapter
from .server import run_agent_server

logger = logging.getLogger("second_opinion.providers")


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()

    if len(argv) != 1 or argv[0] not in ADAPTERS:
        logger.error(f"Usage: python -m second_opinion.providers <{'|'.join(ADAPTERS)}>")
        return 2

    adapter = create_adapter(argv[0])
    if not adapter.is_configured():
        logger.error(
            f"[AgentServer:{adapter.agent_id}] {adapter.display_name} API key not found "
            f"({adapter.key_env_var}). Run `second-opinion setup` to configure."
        )
        return 1

    asyncio.run(run_agent_server(adapter))
    return 0


if __name__ == "__main__":
    sys.exit(main())
