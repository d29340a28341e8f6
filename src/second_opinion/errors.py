"""
Exception hierarchy.

These are raised inside components and converted into data at the
Connection Manager and Request Coordinator boundaries. Nothing here
should escape a second-opinion request.
"""


class SecondOpinionError(Exception):
    """Base class for all second-opinion errors."""


class ConfigError(SecondOpinionError):
    """Configuration could not be loaded or is inconsistent."""


class AgentConnectionError(SecondOpinionError):
    """An agent process failed to start or complete its handshake."""

    def __init__(self, agent_id: str, reason: str):
        super().__init__(f"Failed to connect agent '{agent_id}': {reason}")
        self.agent_id = agent_id
        self.reason = reason


class PayloadError(SecondOpinionError):
    """An agent returned a payload that does not match the agent contract."""


class ProviderError(SecondOpinionError):
    """A provider API call failed (non-success status or unusable body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
