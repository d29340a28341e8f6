"""
Agent connections.

- registry.py: Known agents and how to launch them
- connection.py: AgentConnection, one MCP stdio subprocess + client session
- payloads.py: Strict decode of agent tool results
- manager.py: ConnectionManager, fan-out with per-agent failure isolation
"""
