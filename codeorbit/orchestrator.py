"""Prompt orchestrator: throttle, sanitize, route, dispatch and aggregate."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from threading import Lock
from typing import Any, Callable

from codeorbit.agent import AgentProtocol
from codeorbit.errors import AgentNotFoundError, RateLimitedError
from codeorbit.memory import ContextMemory
from codeorbit.registry import AgentRegistry
from codeorbit.routing import DEFAULT_AGENT, DEFAULT_ROUTES, RoutingRule, match_routes
from codeorbit.schemas import Subtask

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_WINDOW = 1.0  # seconds
RATE_LIMIT_MESSAGE = "Rate limit exceeded"

# Memory keys written for every reported agent
LAST_TASK_KEY = "last_task"
LAST_RESULT_KEY = "last_result"

_MARKUP_BLOCK = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_MARKUP_TAG = re.compile(r"<[^>]*>")
_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?/-]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_prompt(prompt: str) -> str:
    """Reduce a prompt to word characters, whitespace and ``. , ! ? - /``.

    Script and style elements are dropped with their content, other markup
    tags are dropped, and whitespace runs collapse to a single space.
    """
    text = _MARKUP_BLOCK.sub(" ", prompt)
    text = _MARKUP_TAG.sub(" ", text)
    text = _DISALLOWED_CHARS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


class RateLimiter:
    """Process-wide throttle keyed on the last accepted call."""

    def __init__(
        self,
        window: float = DEFAULT_RATE_LIMIT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self._clock = clock
        self._last_accepted: float | None = None
        self._lock = Lock()

    def acquire(self) -> None:
        """Accept a call or raise.

        Raises:
            RateLimitedError: If the previous accepted call is inside the window
        """
        with self._lock:
            now = self._clock()
            if self._last_accepted is not None and self.window > 0:
                elapsed = now - self._last_accepted
                if elapsed < self.window:
                    raise RateLimitedError(self.window - elapsed)
            self._last_accepted = now

    def reset(self) -> None:
        with self._lock:
            self._last_accepted = None


class DispatchChain:
    """Agents already invoked along one subtask's call chain.

    Passed to agents as ``context["chain"]`` so they can delegate to other
    agents without re-entering themselves.
    """

    def __init__(self, orchestrator: Orchestrator, prompt: str):
        self._orchestrator = orchestrator
        self.prompt = prompt
        self.visited: set[str] = set()

    def enter(self, agent_id: str) -> bool:
        """Mark ``agent_id`` visited. Returns False if it already was."""
        if agent_id in self.visited:
            return False
        self.visited.add(agent_id)
        return True

    async def dispatch(self, agent_id: str, task: str) -> str:
        """Run another agent inside this chain and return its text."""
        return await self._orchestrator.dispatch(agent_id, task, self) or ""


class Orchestrator:
    """Single entry point turning a prompt into aggregated agent output."""

    def __init__(
        self,
        registry: AgentRegistry | None = None,
        memory: ContextMemory | None = None,
        routes: list[RoutingRule] | None = None,
        default_agent: str = DEFAULT_AGENT,
        rate_limit_window: float = DEFAULT_RATE_LIMIT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry if registry is not None else AgentRegistry()
        self.memory = memory if memory is not None else ContextMemory()
        self.routes = list(routes) if routes is not None else list(DEFAULT_ROUTES)
        self.default_agent = default_agent
        self.rate_limiter = RateLimiter(rate_limit_window, clock)

    def register_agent(self, agent: AgentProtocol) -> None:
        self.registry.register(agent)

    async def receive_prompt(self, prompt: str) -> str:
        """Dispatch a prompt and return one ``"<agent>: <text>"`` line per agent.

        Lines follow decomposition order. A throttled call returns
        ``RATE_LIMIT_MESSAGE`` without touching history or memory.
        """
        try:
            return await self.handle_prompt(prompt)
        except RateLimitedError:
            return RATE_LIMIT_MESSAGE

    async def handle_prompt(self, prompt: str) -> str:
        """Same as ``receive_prompt`` but signals throttling by raising.

        Raises:
            RateLimitedError: If the previous prompt is inside the rate limit window
        """
        try:
            self.rate_limiter.acquire()
        except RateLimitedError as e:
            logger.warning(f"Prompt rejected: {e}")
            raise

        sanitized = sanitize_prompt(prompt)
        logger.info(f"Received prompt: {sanitized}")
        self.memory.record_prompt(sanitized)

        subtasks = self.break_into_subtasks(sanitized)
        tasks = [
            asyncio.create_task(self._run_subtask(subtask), name=f"dispatch-{subtask.agent_id}")
            for subtask in subtasks
        ]
        try:
            outputs = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        lines = [
            f"{subtask.agent_id}: {output}"
            for subtask, output in zip(subtasks, outputs)
            if output
        ]
        return "\n".join(lines)

    def break_into_subtasks(self, prompt: str) -> list[Subtask]:
        """Route ``prompt`` through the rule table; never returns an empty list."""
        agent_ids = list(dict.fromkeys(match_routes(prompt, self.routes)))
        if not agent_ids:
            logger.info(f"No route matched, falling back to {self.default_agent}")
            agent_ids = [self.default_agent]
        return [Subtask(agent_id=agent_id, input=prompt) for agent_id in agent_ids]

    async def dispatch(self, agent_id: str, task: str, chain: DispatchChain) -> str | None:
        """Run one agent under the cycle guard.

        Returns:
            The agent's output, ``"error from <agent_id>"`` on failure, an
            empty string for a detected cycle, or None if the agent is missing
        """
        if self.registry.get(agent_id) is None:
            logger.error(f"Skipping subtask: {AgentNotFoundError(agent_id)}")
            return None

        if not chain.enter(agent_id):
            logger.warning(f"Circular call detected for {agent_id}")
            return ""

        context: dict[str, Any] = {
            "chain": chain,
            "prompt": chain.prompt,
            "memory": self.memory.get_all(agent_id),
        }
        try:
            result = await self.registry.execute_with_agent(agent_id, task, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Agent {agent_id} failed: {e}", exc_info=True)
            return f"error from {agent_id}"

        if not result.success:
            logger.error(f"Agent {agent_id} failed: {result.error}")
            return f"error from {agent_id}"
        return result.output

    async def _run_subtask(self, subtask: Subtask) -> str | None:
        chain = DispatchChain(self, subtask.input)
        output = await self.dispatch(subtask.agent_id, subtask.input, chain)
        if output:
            self.memory.save(subtask.agent_id, LAST_TASK_KEY, subtask.input)
            self.memory.save(subtask.agent_id, LAST_RESULT_KEY, output)
        return output
