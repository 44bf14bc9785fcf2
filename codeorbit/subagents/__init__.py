"""Built-in stand-in agents."""

from codeorbit.subagents.builtin import (
    BackendAgent,
    DatabaseAgent,
    DevopsAgent,
    DocsAgent,
    FrontendAgent,
    TemplateAgent,
    builtin_agents,
)

__all__ = [
    "BackendAgent",
    "DatabaseAgent",
    "DevopsAgent",
    "DocsAgent",
    "FrontendAgent",
    "TemplateAgent",
    "builtin_agents",
]
