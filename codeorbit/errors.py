"""Exception taxonomy for the dispatch core."""

from __future__ import annotations


class CodeOrbitError(Exception):
    """Base class for all dispatch errors."""

    pass


class InvalidIdentifierError(CodeOrbitError, ValueError):
    """Raised when an agent identifier is empty or not a string."""

    pass


class DuplicateAgentError(CodeOrbitError):
    """Raised when an agent id is registered twice."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent with ID '{agent_id}' is already registered")
        self.agent_id = agent_id


class AgentNotFoundError(CodeOrbitError):
    """Raised (and usually only logged) when a lookup misses."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class AgentExecutionError(CodeOrbitError):
    """Wraps a fault raised by an agent's own logic."""

    def __init__(self, agent_id: str, cause: BaseException):
        super().__init__(str(cause) or cause.__class__.__name__)
        self.agent_id = agent_id
        self.cause = cause


class RateLimitedError(CodeOrbitError):
    """Raised when a prompt arrives inside the throttle window."""

    def __init__(self, retry_after: float):
        super().__init__(f"Rate limit exceeded, retry in {retry_after:.3f}s")
        self.retry_after = retry_after


class PersistenceError(CodeOrbitError):
    """Raised when context memory cannot be loaded or saved."""

    pass
