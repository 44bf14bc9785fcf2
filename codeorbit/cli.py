"""CLI for CodeOrbit - run the broker or dispatch prompts."""

from __future__ import annotations

import asyncio

import click

from codeorbit import __version__

DEFAULT_BROKER_URL = "http://127.0.0.1:8000"


@click.group()
@click.version_option(version=__version__, prog_name="codeorbit")
def main() -> None:
    """CodeOrbit - route prompts to specialized agents.

    Prompts are sanitized, matched against a keyword routing table and
    dispatched to the registered agents in parallel.
    """
    pass


@main.command()
@click.option("--port", default=8000, help="Port to run the broker on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(port: int, host: str, reload: bool) -> None:
    """Start the CodeOrbit HTTP broker server."""
    import uvicorn

    click.echo(f"Starting CodeOrbit broker on {host}:{port}")
    uvicorn.run(
        "codeorbit.broker:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
@click.argument("text")
@click.option("--save", is_flag=True, help="Persist context memory after the run")
def prompt(text: str, save: bool) -> None:
    """Dispatch a prompt in-process and print the aggregated output.

    \b
    Example:
        codeorbit prompt "build a login page and its api"
    """
    from codeorbit.config import build_orchestrator

    orchestrator = build_orchestrator()
    output = asyncio.run(orchestrator.receive_prompt(text))
    click.echo(output)

    if save and not orchestrator.memory.persist():
        raise click.ClickException("Failed to persist context memory")


@main.command()
@click.argument("text")
@click.option("--url", default=DEFAULT_BROKER_URL, help="Broker base URL")
@click.option("--timeout", default=30.0, help="Request timeout in seconds")
def send(text: str, url: str, timeout: float) -> None:
    """Send a prompt to a running broker.

    \b
    Example:
        codeorbit send "write the readme" --url http://localhost:8000
    """
    import httpx

    try:
        response = httpx.post(f"{url.rstrip('/')}/prompt", json={"prompt": text}, timeout=timeout)
    except httpx.HTTPError as e:
        raise click.ClickException(f"Broker unreachable at {url}: {e}") from e

    if response.status_code == 429:
        raise click.ClickException(response.json().get("output", "Rate limit exceeded"))
    if response.status_code != 200:
        raise click.ClickException(f"Broker returned {response.status_code}: {response.text}")

    click.echo(response.json()["output"])


@main.command()
def agents() -> None:
    """List the built-in agents and their capabilities."""
    from codeorbit.subagents import builtin_agents

    for agent in builtin_agents(delay=0):
        click.echo(f"  - {agent.agent_id}: {', '.join(sorted(agent.capabilities))}")


if __name__ == "__main__":
    main()
