"""Agent capability contract."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Iterable, Protocol, runtime_checkable

from codeorbit.schemas import AgentResult


@runtime_checkable
class AgentProtocol(Protocol):
    """Shape every registered agent must satisfy."""

    agent_id: str
    capabilities: frozenset[str]

    def run(
        self, input: str, context: dict[str, Any] | None = None
    ) -> AgentResult | str | Awaitable[AgentResult | str]: ...


class Agent(ABC):
    """Convenience base class for agents.

    Subclasses implement ``run``; the subtask hook and lifecycle hooks are
    optional and default to no-ops.
    """

    def __init__(self, agent_id: str, capabilities: Iterable[str] = ()):
        self.agent_id = agent_id
        self.capabilities = frozenset(capabilities)

    @abstractmethod
    async def run(self, input: str, context: dict[str, Any] | None = None) -> AgentResult:
        """Execute the agent against ``input``."""

    async def on_subtask_result(self, result: AgentResult, context: dict[str, Any]) -> None:
        return None

    async def initialize(self) -> None:
        return None

    async def shutdown(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(agent_id={self.agent_id!r})"


async def maybe_await(value: Any) -> Any:
    """Resolve ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def coerce_result(value: Any) -> AgentResult:
    """Normalize an agent's return value into an AgentResult."""
    if isinstance(value, AgentResult):
        return value
    if isinstance(value, str):
        return AgentResult.ok(value)
    raise TypeError(f"Agent returned unsupported type: {type(value).__name__}")
