#!/usr/bin/env python3
"""
Command line interface for Affinity.

Usage:
    aff index PATH          - Generate keywords for one note
    aff index-all           - Generate keywords for every unindexed note
    aff reindex             - Regenerate keywords for notes edited since indexing
    aff remove-keywords     - Delete keyword indexes from all notes
    aff related PATH        - Show notes related to PATH
"""

import asyncio
from pathlib import Path
from typing import Optional

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from ..engine.bus import Event
from ..engine.config import Config
from ..engine.indexing import BatchReport
from ..engine.main import AffinityService, configure_logging

console = Console()


def _load_config(ctx: click.Context) -> Config:
    options = ctx.obj or {}
    try:
        config = Config.load(Path(options["config"]) if options.get("config") else None)
    except FileNotFoundError as e:
        raise click.ClickException(str(e))
    if options.get("vault"):
        config = config.model_copy(update={"vault_path": Path(options["vault"]).expanduser().resolve()})
    return config


def _relative(config: Config, path: str) -> str:
    """Accept vault-relative or filesystem paths."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute() or candidate.exists():
        try:
            return candidate.resolve().relative_to(config.vault_path).as_posix()
        except ValueError:
            raise click.BadParameter(f"{path} is not inside the vault {config.vault_path}")
    return Path(path).as_posix()


def _on_retry(event: Event) -> None:
    data = event.data
    console.print(
        f"[yellow]Retrying[/yellow] {data['path']} "
        f"({data['attempt']}/{data['max_attempts']}): {data['error']}"
    )


def _on_progress(event: Event) -> None:
    data = event.data
    console.print(f"[dim]{data['processed']}/{data['total']} {data['path']}[/dim]")


async def _with_service(config: Config, action):
    service = AffinityService(config)
    service.event_bus.subscribe("index.retry", _on_retry)
    service.event_bus.subscribe("batch.progress", _on_progress)
    await service.start()
    try:
        return await action(service)
    finally:
        await service.stop()


def display_report(report: BatchReport) -> None:
    color = "green" if report.failed == 0 else "yellow"
    console.print(
        f"[{color}]{report.operation} finished[/{color}]: "
        f"processed {report.processed}/{report.total}, "
        f"success {report.succeeded}, failed {report.failed}, skipped {report.skipped}"
        + (" [red](cancelled)[/red]" if report.cancelled else "")
    )
    for path, error in report.failures.items():
        console.print(f"  [red]✗[/red] {path}: {error}")


def display_related(focal: str, results) -> None:
    if not results:
        console.print("[yellow]No related notes found[/yellow]")
        return

    table = Table(title=f"Notes related to {focal}")
    table.add_column("Title", style="cyan", no_wrap=False)
    table.add_column("Score", justify="right")
    table.add_column("Keywords", style="magenta", no_wrap=False)
    table.add_column("Excerpt", no_wrap=False)

    for r in results:
        table.add_row(
            r.title,
            f"{r.score * 100:.1f}%",
            ", ".join(r.keywords[:8]),
            r.excerpt
        )

    console.print(table)


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--vault", type=click.Path(exists=True, file_okay=False), help="Override vault path")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config: Optional[str], vault: Optional[str], verbose: bool):
    """Affinity - keyword indexes and related notes for a markdown vault."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["vault"] = vault
    configure_logging("DEBUG" if verbose else "WARNING")


@cli.command()
@click.argument("path")
@click.pass_context
def index(ctx, path: str):
    """Generate keywords for one note."""
    config = _load_config(ctx)
    note_path = _relative(config, path)
    outcome = asyncio.run(_with_service(config, lambda s: s.index_one(note_path)))

    if outcome.succeeded:
        console.print(f"[green]✓[/green] {note_path}: {', '.join(outcome.keywords)}")
    else:
        console.print(f"[red]✗ {note_path}[/red] after {outcome.attempts} attempt(s): {outcome.error}")
        ctx.exit(1)


@cli.command(name="index-all")
@click.pass_context
def index_all(ctx):
    """Generate keywords for every unindexed note."""
    config = _load_config(ctx)
    report = asyncio.run(_with_service(config, lambda s: s.index_all()))
    display_report(report)


@cli.command()
@click.pass_context
def reindex(ctx):
    """Regenerate keywords for notes edited since they were indexed."""
    config = _load_config(ctx)
    report = asyncio.run(_with_service(config, lambda s: s.reindex_stale()))
    display_report(report)


@cli.command(name="remove-keywords")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def remove_keywords(ctx, yes: bool):
    """Delete keyword indexes from every note."""
    config = _load_config(ctx)
    if not yes and not click.confirm(
        "Remove keyword indexes from all notes? This cannot be undone."
    ):
        console.print("[yellow]Aborted[/yellow]")
        return
    report = asyncio.run(_with_service(config, lambda s: s.remove_all_keywords()))
    display_report(report)


@cli.command()
@click.argument("path")
@click.pass_context
def related(ctx, path: str):
    """Show notes related to PATH."""
    config = _load_config(ctx)
    note_path = _relative(config, path)
    try:
        results = asyncio.run(_with_service(config, lambda s: s.query_related(note_path)))
    except Exception as e:
        logger.exception("Related-notes query failed")
        raise click.ClickException(str(e))
    display_related(note_path, results)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
