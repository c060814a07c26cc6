"""Command-line interface for Wanderer."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wanderer import __version__
from wanderer.config import Config, load_config
from wanderer.container import DependencyContainer
from wanderer.exceptions import ConfigError
from wanderer.modes import MODE_PROFILES
from wanderer.observability import MetricsManager, configure_logging
from wanderer.observability.metrics import set_metrics_manager
from wanderer.seeds import AVAILABLE_TOPICS, seeds_for_topics

console = Console()
logger = structlog.get_logger(__name__)

CONFIG_ERROR_EXIT_CODE = 2


def _load(ctx: click.Context) -> Config:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(CONFIG_ERROR_EXIT_CODE)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """Wanderer - two-mode web crawler."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--mode", "-m", type=str, default=None, help="Crawl mode: wander or strict")
@click.option("--target", "-t", "targets", multiple=True, help="Seed URL (can be used multiple times)")
@click.option(
    "--topic",
    "topics",
    multiple=True,
    help=f"Add a topic's starting points as seeds ({', '.join(AVAILABLE_TOPICS)})",
)
@click.option("--max-requests", type=int, default=None, help="Override the mode's request budget")
@click.option("--max-depth", type=int, default=None, help="Override the mode's maximum crawl depth")
@click.option("--dry-run", is_flag=True, help="Validate configuration and print the plan without crawling")
@click.pass_context
def run(
    ctx: click.Context,
    mode: Optional[str],
    targets: tuple[str, ...],
    topics: tuple[str, ...],
    max_requests: Optional[int],
    max_depth: Optional[int],
    dry_run: bool,
) -> None:
    """Run a crawl in wander or strict mode."""
    config = _load(ctx)
    if mode is not None:
        config.crawler.mode = mode
    overrides: Dict[str, Any] = dict(config.crawler.profile_overrides)
    if max_requests is not None:
        overrides["max_requests"] = max_requests
    if max_depth is not None:
        overrides["max_depth"] = max_depth
    config.crawler.profile_overrides = overrides
    if ctx.obj["log_level"]:
        config.monitoring.log_level = ctx.obj["log_level"]

    try:
        profile = config.mode_profile()
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(CONFIG_ERROR_EXIT_CODE)

    seeds: List[str] = list(targets) or list(config.crawler.targets)
    seeds.extend(seeds_for_topics(topics or config.crawler.topics))
    seeds = list(dict.fromkeys(seeds))
    if not seeds:
        console.print("[red]Error: no seed URLs. Use --target, --topic or crawler.targets in the config.[/red]")
        sys.exit(1)

    console.print(
        Panel.fit(
            f"[bold blue]{profile.mode.value.upper()} mode[/bold blue]\n"
            f"Seeds: {len(seeds)}\n"
            f"Max requests: {profile.max_requests}\n"
            f"Max concurrency: {profile.max_concurrency}\n"
            f"Max depth: {profile.max_depth}\n"
            f"Link strategy: {profile.link_strategy.value}",
            title="Starting Crawl",
        )
    )
    if dry_run:
        console.print_json(json.dumps({"profile": profile.to_dict(), "seeds": seeds}))
        return

    configure_logging(config.monitoring)
    if config.monitoring.prometheus_port:
        manager = MetricsManager(config.monitoring)
        manager.start()
        set_metrics_manager(manager)

    async def run_crawl() -> Dict[str, Any]:
        container = DependencyContainer(config, ctx.obj["config_path"])
        async with container.lifecycle():
            orchestrator = await container.build_orchestrator()
            await orchestrator.run(seeds, handle_signals=True)
            return orchestrator.summary()

    summary = asyncio.run(run_crawl())
    console.print(_crawl_table(summary))


def _crawl_table(summary: Dict[str, Any]) -> Table:
    table = Table(title=f"Crawl {summary['crawl_id']} ({summary['mode']})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta", justify="right")
    for key in (
        "dispatched",
        "succeeded",
        "failed",
        "retried",
        "skipped",
        "links_enqueued",
        "links_rejected",
        "budget_exhausted",
        "stopped",
        "success_rate",
        "duration",
    ):
        table.add_row(key.replace("_", " "), str(summary[key]))
    batcher = summary.get("batcher", {})
    table.add_row("persisted", str(batcher.get("persisted", 0)))
    table.add_row("rejected by datastore", str(batcher.get("rejected", 0)))
    sessions = summary.get("sessions", {})
    table.add_row("sessions evicted", str(sessions.get("evicted", 0)))
    return table


@cli.command()
@click.option("--mode", "-m", type=click.Choice(["wander", "strict"]), default=None, help="Only this mode")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def stats(ctx: click.Context, mode: Optional[str], as_json: bool) -> None:
    """Summarize what is stored in the datastore."""
    config = _load(ctx)

    async def collect() -> Dict[str, Any]:
        container = DependencyContainer(config, ctx.obj["config_path"])
        async with container.lifecycle():
            datastore = await container.get_datastore()
            return await datastore.crawl_summary(mode)

    summary = asyncio.run(collect())
    if as_json:
        console.print_json(json.dumps(summary))
        return

    table = Table(title=f"Stored records ({mode or 'all modes'})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta", justify="right")
    labels = {
        "total": "Total items scraped",
        "total_links": "Total links discovered",
        "avg_depth": "Average crawl depth",
        "total_products": "Products found",
        "total_headings": "Headings extracted",
        "success_rate": "Success rate (%)",
        "failed": "Failed requests",
    }
    for key, label in labels.items():
        if key in summary:
            table.add_row(label, str(summary[key]))
    console.print(table)

    if summary["categories"]:
        categories = Table(title="By category")
        categories.add_column("Category", style="cyan")
        categories.add_column("Count", justify="right")
        for category, count in summary["categories"].items():
            categories.add_row(category, str(count))
        console.print(categories)


@cli.command()
def modes() -> None:
    """Show the built-in mode profiles."""
    table = Table(title="Mode profiles")
    table.add_column("Field", style="cyan")
    for mode in MODE_PROFILES:
        table.add_column(mode.value, style="magenta")
    rows = [profile.to_dict() for profile in MODE_PROFILES.values()]
    for field_name in rows[0]:
        if field_name == "mode":
            continue
        values = []
        for row in rows:
            value = row[field_name]
            values.append(" ".join(value) if isinstance(value, list) else str(value))
        table.add_row(field_name, *values)
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
