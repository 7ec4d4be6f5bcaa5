"""
cli.py: operator commands for the generation pipeline.

Usage:
    tourgen start --max-locations 20 --skip-plans
    tourgen status
    tourgen cancel
    tourgen reset
    tourgen stats
"""

import json
import logging

import click

from tourgen.config import StartOptions
from tourgen.database import SessionLocal
from tourgen.services.content_stats import content_stats
from tourgen.services.run_state import STATUS_FAILED, GenerationRunStore
from tourgen.worker import GenerationWorker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@click.group()
@click.pass_context
def cli(ctx: click.Context):
    """Autonomous tourism content generation."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("session_factory", SessionLocal)
    ctx.obj.setdefault("worker_factory", lambda: GenerationWorker(session_factory=ctx.obj["session_factory"]))


@cli.command("start")
@click.option("--max-locations", type=click.IntRange(min=0), default=None, help="Location quota (0 = unlimited)")
@click.option("--max-experiences", type=click.IntRange(min=0), default=None, help="Experience quota (0 = unlimited)")
@click.option("--max-plans", type=click.IntRange(min=0), default=None, help="Plan quota (0 = unlimited)")
@click.option("--skip-locations", is_flag=True, help="Do not fetch new places")
@click.option("--skip-experiences", is_flag=True, help="Do not create experiences")
@click.option("--skip-plans", is_flag=True, help="Do not create plans")
@click.pass_context
def start(ctx: click.Context, **options):
    """Run one generation in the foreground."""
    worker = ctx.obj["worker_factory"]()
    snapshot = worker.start_foreground(StartOptions(**options))

    if snapshot is None:
        click.echo("✗ A generation run is already in progress.", err=True)
        raise SystemExit(1)

    click.echo(f"{snapshot['status']}: {snapshot['message']}")
    click.echo(json.dumps(snapshot["results"], indent=2, default=str))
    if snapshot["status"] == STATUS_FAILED:
        raise SystemExit(1)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show the current run record."""
    snapshot = GenerationRunStore(ctx.obj["session_factory"]).snapshot()
    click.echo(json.dumps(snapshot, indent=2, default=str))


@cli.command("cancel")
@click.pass_context
def cancel(ctx: click.Context):
    """Ask the active run to stop at its next checkpoint."""
    if GenerationRunStore(ctx.obj["session_factory"]).request_cancel():
        click.echo("✓ Cancellation requested.")
    else:
        click.echo("No generation run in progress.")


@cli.command("reset")
@click.pass_context
def reset(ctx: click.Context):
    """Force the run record back to idle."""
    GenerationRunStore(ctx.obj["session_factory"]).force_reset()
    click.echo("✓ Generation status reset to idle.")


@cli.command("stats")
@click.pass_context
def stats(ctx: click.Context):
    """Show content counts per city."""
    with ctx.obj["session_factory"]() as session:
        click.echo(json.dumps(content_stats(session), indent=2))


if __name__ == "__main__":
    cli()
