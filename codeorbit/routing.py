"""Keyword routing table mapping prompts to agent ids."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "frontend"


@dataclass(frozen=True)
class RoutingRule:
    """Route prompts matching ``pattern`` to ``agent_id``."""

    agent_id: str
    pattern: str
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.agent_id, str) or not self.agent_id:
            raise ValueError("agent_id must be a non-empty string")
        if not isinstance(self.pattern, str):
            raise ValueError("pattern must be a string")
        # Fail on registration rather than at first prompt
        re.compile(self.pattern, re.IGNORECASE)

    def matches(self, prompt: str) -> bool:
        return re.search(self.pattern, prompt, re.IGNORECASE) is not None


# Evaluated in order; every matching rule contributes one subtask
DEFAULT_ROUTES: list[RoutingRule] = [
    RoutingRule(
        agent_id="frontend",
        pattern=r"\b(?:ui|ux|frontend|react|components?|css|layout|page)\b",
        description="User interface and component work",
    ),
    RoutingRule(
        agent_id="backend",
        pattern=r"\b(?:api|apis|server|backend|endpoints?|service)\b",
        description="API and server work",
    ),
    RoutingRule(
        agent_id="database",
        pattern=r"\b(?:db|database|databases|schemas?|sql|migrations?|tables?)\b",
        description="Data model and schema work",
    ),
    RoutingRule(
        agent_id="devops",
        pattern=r"\b(?:deploy\w*|ci|cd|docker\w*|infrastructure|kubernetes|pipeline)\b",
        description="Deployment and infrastructure work",
    ),
    RoutingRule(
        agent_id="docs",
        pattern=r"\b(?:docs?|documentation|readme)\b",
        description="Documentation work",
    ),
]


def match_routes(prompt: str, routes: list[RoutingRule]) -> list[str]:
    """Return agent ids of every rule matching ``prompt``, in table order."""
    return [rule.agent_id for rule in routes if rule.matches(prompt)]


def load_routes(path: Path | str) -> list[RoutingRule]:
    """Build a routing table from a JSON list of rule objects.

    Each object needs ``agent`` and ``pattern`` keys and may carry a
    ``description``.

    Raises:
        ValueError: If the document is not a list of valid rule objects
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError("routes file must contain a JSON list")

    routes = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or "agent" not in item or "pattern" not in item:
            raise ValueError(f"route #{i} needs 'agent' and 'pattern'")
        try:
            routes.append(
                RoutingRule(
                    agent_id=item["agent"],
                    pattern=item["pattern"],
                    description=item.get("description", ""),
                )
            )
        except re.error as e:
            raise ValueError(f"route #{i} has an invalid pattern: {e}") from e
        except ValueError as e:
            raise ValueError(f"route #{i} is invalid: {e}") from e

    logger.info(f"Loaded {len(routes)} routes from {path}")
    return routes
