"""Template agents standing in for specialized workers.

They do no real generation: each waits briefly to simulate async work and
echoes the task back with its own label.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from codeorbit.agent import Agent
from codeorbit.schemas import AgentResult

logger = logging.getLogger(__name__)

# Simulated processing time
DEFAULT_DELAY = 0.1  # seconds


class TemplateAgent(Agent):
    """Agent answering ``"<label> response for: <task>"``."""

    label = "Agent"

    def __init__(
        self,
        agent_id: str,
        capabilities: Iterable[str] = (),
        delay: float = DEFAULT_DELAY,
    ):
        super().__init__(agent_id, capabilities)
        self.delay = delay
        self.runs = 0

    async def run(self, input: str, context: dict[str, Any] | None = None) -> AgentResult:
        logger.debug(f"[{self.agent_id}] processing: {input}")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.runs += 1
        return AgentResult.ok(f"{self.label} response for: {input}")


class FrontendAgent(TemplateAgent):
    label = "Frontend"

    def __init__(self, delay: float = DEFAULT_DELAY):
        super().__init__("frontend", ["ui-planning", "component-generation"], delay)


class BackendAgent(TemplateAgent):
    label = "Backend"

    def __init__(self, delay: float = DEFAULT_DELAY):
        super().__init__("backend", ["api-design", "server-logic"], delay)


class DatabaseAgent(TemplateAgent):
    label = "Database"

    def __init__(self, delay: float = DEFAULT_DELAY):
        super().__init__("database", ["schema-design", "query-optimization"], delay)


class DevopsAgent(TemplateAgent):
    label = "Devops"

    def __init__(self, delay: float = DEFAULT_DELAY):
        super().__init__("devops", ["deployment", "ci-cd"], delay)


class DocsAgent(TemplateAgent):
    label = "Docs"

    def __init__(self, delay: float = DEFAULT_DELAY):
        super().__init__("docs", ["documentation"], delay)


def builtin_agents(delay: float = DEFAULT_DELAY) -> list[TemplateAgent]:
    """Fresh instances of every built-in agent, in routing-table order."""
    return [
        FrontendAgent(delay),
        BackendAgent(delay),
        DatabaseAgent(delay),
        DevopsAgent(delay),
        DocsAgent(delay),
    ]
