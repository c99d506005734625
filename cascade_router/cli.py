# cascade_router/cli.py
"""
CLI entry point for cascade-router.

Available commands:
  cascade-router init [--path cascade-router.yaml] [--force]
  cascade-router route PROMPT [--config ...] [--strategy ...] [--stream]
  cascade-router status [--config ...]
  cascade-router providers [--config ...]
  cascade-router config --show [--config ...]

Global option --verbose switches logging to DEBUG.

Requires: pip install "cascade-router[cli]"
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

try:
    import typer
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.markup import escape
    from rich.table import Table
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "CLI dependencies missing. Install with: pip install 'cascade-router[cli]'"
    ) from exc

import yaml
from pydantic import ValidationError

from .config import RouterConfig
from .constants import DEFAULT_CONFIG_FILENAME, DEFAULT_OUTPUT_TOKENS
from .exceptions import CascadeRouterError
from .models import ChatRequest, RouterMetrics, RouterStatus, RoutingResult, Strategy
from .router import CascadeRouter

app = typer.Typer(
    name="cascade-router",
    help="Cost-aware LLM routing with fallback and speculative racing.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

_options: dict[str, Any] = {"verbose": False}

_MASK = "********"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Cost-aware LLM routing with fallback and speculative racing."""
    _options["verbose"] = verbose


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level="DEBUG" if _options["verbose"] else level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_config(path: str) -> RouterConfig:
    if not Path(path).exists():
        err_console.print(f"[red]Config file not found: {path}[/red]")
        err_console.print("Run 'cascade-router init' to create one.")
        raise typer.Exit(1)
    try:
        cfg = RouterConfig.from_yaml(path)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        err_console.print(f"[red]Invalid config {path}:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    _configure_logging(cfg.log_level)
    return cfg


def _build_router(cfg: RouterConfig) -> CascadeRouter:
    return CascadeRouter(cfg)


def _masked(cfg: RouterConfig) -> dict[str, Any]:
    data = cfg.model_dump(mode="json", exclude_none=True)
    for endpoint in data.get("endpoints", []):
        if endpoint.get("api_key"):
            endpoint["api_key"] = _MASK
    return data


def _result_table(result: RoutingResult, metrics: RouterMetrics) -> Table:
    response = result.response
    table = Table(title="Response Details", show_header=False)
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Endpoint", result.endpoint)
    table.add_row("Model", response.model)
    table.add_row("Tokens", f"{response.tokens.total:,}")
    table.add_row("Cost", f"[green]${response.cost:.4f}[/green]")
    table.add_row("Duration", f"{result.total_duration_ms:.0f}ms")
    table.add_row("Strategy", result.decision.strategy.value)
    table.add_row("Reasoning", result.decision.reasoning)
    if result.decision.fallback_triggered:
        table.add_row("Fallback", "[yellow]triggered[/yellow]")
    table.add_row("Total Requests", str(metrics.total_requests))
    table.add_row("Total Cost", f"${metrics.total_cost:.4f}")
    return table


def _status_table(status: RouterStatus) -> Table:
    table = Table(title="Endpoint Status")
    table.add_column("Endpoint", style="bold cyan", no_wrap=True)
    table.add_column("Available")
    for endpoint_id in status.available_endpoints:
        table.add_row(endpoint_id, "[green]yes ✓[/green]")
    for endpoint_id in status.unavailable_endpoints:
        table.add_row(endpoint_id, "[red]no ✗[/red]")
    return table


def _budget_table(status: RouterStatus) -> Table:
    budget = status.budget
    table = Table(title="Budget Usage")
    table.add_column("Window", style="bold")
    table.add_column("Tokens")
    table.add_column("Cost")
    table.add_column("Used")
    table.add_row(
        "Daily", f"{budget.daily_tokens:,}", f"${budget.daily_cost:.4f}", f"{budget.daily_percentage:.1f}%"
    )
    table.add_row(
        "Monthly",
        f"{budget.monthly_tokens:,}",
        f"${budget.monthly_cost:.4f}",
        f"{budget.monthly_percentage:.1f}%",
    )
    return table


async def _route(
    router: CascadeRouter,
    request: ChatRequest,
    strategy: Strategy | None,
) -> tuple[RoutingResult, RouterMetrics]:
    async with router:
        if request.stream:
            result = await router.route_stream(
                request,
                lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
                strategy=strategy,
            )
            console.print()
        else:
            result = await router.route(request, strategy=strategy)
        return result, router.get_metrics()


async def _status(router: CascadeRouter) -> RouterStatus:
    async with router:
        return await router.get_status()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    path: str = typer.Option(DEFAULT_CONFIG_FILENAME, "--path", "-p", help="Where to write the config"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
    strategy: Strategy = typer.Option(Strategy.BALANCED, "--strategy", "-s", help="Routing strategy"),
    openai: bool = typer.Option(True, "--openai/--no-openai", help="Include an OpenAI endpoint"),
    anthropic: bool = typer.Option(False, "--anthropic/--no-anthropic", help="Include an Anthropic endpoint"),
    ollama: bool = typer.Option(True, "--ollama/--no-ollama", help="Include a local Ollama endpoint"),
    fallback: bool = typer.Option(True, "--fallback/--no-fallback", help="Fall back to the next endpoint on failure"),
    daily_budget: float = typer.Option(10.0, "--daily-budget", help="Daily cost budget in USD, 0 for unlimited"),
) -> None:
    """Write a starter YAML configuration."""
    target = Path(path)
    if target.exists() and not force:
        console.print("[yellow]Config file already exists. Use --force to overwrite.[/yellow]")
        return

    data = RouterConfig.default_dict(
        openai_api_key="${OPENAI_API_KEY}" if openai else None,
        anthropic_api_key="${ANTHROPIC_API_KEY}" if anthropic else None,
        include_ollama=ollama,
        daily_cost=daily_budget,
        strategy=strategy.value,
        fallback_enabled=fallback,
    )
    target.write_text(yaml.safe_dump(data, sort_keys=False))
    console.print(f"[green]Configuration saved to {target}[/green]")
    console.print("Edit this file to customise your routing configuration.")


@app.command()
def route(
    prompt: str = typer.Argument(..., help="The prompt to route"),
    config: str = typer.Option(DEFAULT_CONFIG_FILENAME, "--config", "-c", help="Path to the YAML config"),
    strategy: Optional[Strategy] = typer.Option(None, "--strategy", "-s", help="Override the routing strategy"),
    max_tokens: int = typer.Option(DEFAULT_OUTPUT_TOKENS, "--max-tokens", "-t", help="Max output tokens"),
    temperature: float = typer.Option(0.7, "--temperature", help="Sampling temperature"),
    stream: bool = typer.Option(False, "--stream", help="Stream the response"),
) -> None:
    """Route a prompt to the best endpoint and print the response."""
    cfg = _load_config(config)
    request = ChatRequest(prompt=prompt, max_tokens=max_tokens, temperature=temperature, stream=stream)
    try:
        result, metrics = asyncio.run(_route(_build_router(cfg), request, strategy))
    except CascadeRouterError as exc:
        err_console.print(f"[red]Error routing request:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    if not stream:
        console.print(result.response.content, markup=False, highlight=False)
    console.print(_result_table(result, metrics))


@app.command()
def status(
    config: str = typer.Option(DEFAULT_CONFIG_FILENAME, "--config", "-c", help="Path to the YAML config"),
) -> None:
    """Probe every endpoint and show availability and budget usage."""
    cfg = _load_config(config)
    try:
        st = asyncio.run(_status(_build_router(cfg)))
    except CascadeRouterError as exc:
        err_console.print(f"[red]Error checking status:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    if st.healthy:
        console.print("[green]Router is healthy[/green]")
    else:
        console.print("[red]Router is unhealthy[/red]")
    console.print(_status_table(st))
    console.print(_budget_table(st))


@app.command()
def providers(
    config: str = typer.Option(DEFAULT_CONFIG_FILENAME, "--config", "-c", help="Path to the YAML config"),
) -> None:
    """List the endpoints declared in the config."""
    cfg = _load_config(config)
    table = Table(title="Configured Endpoints")
    table.add_column("Id", style="bold cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Cost ($/M)")
    table.add_column("Latency")
    table.add_column("Model")
    for endpoint in cfg.endpoints:
        table.add_row(
            endpoint.id,
            endpoint.type,
            "[green]enabled[/green]" if endpoint.enabled else "[red]disabled[/red]",
            f"P{endpoint.priority}",
            f"{endpoint.cost_per_million_tokens:g}",
            f"{endpoint.latency_ms:g}ms",
            endpoint.model or "default",
        )
    console.print(table)


@app.command("config")
def show_config(
    config: str = typer.Option(DEFAULT_CONFIG_FILENAME, "--config", "-c", help="Path to the YAML config"),
    show: bool = typer.Option(False, "--show", help="Print the resolved configuration"),
) -> None:
    """Inspect the router configuration."""
    if not show:
        console.print("Use --show to display the current configuration.")
        return
    cfg = _load_config(config)
    console.print(yaml.safe_dump(_masked(cfg), sort_keys=False), markup=False, highlight=False)
