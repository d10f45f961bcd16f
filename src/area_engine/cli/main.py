"""area-engine CLI - Main entry point."""

from __future__ import annotations

import json
import time
from typing import Annotated

import typer
from rich.table import Table

from area_engine import __version__
from area_engine.cache import RedisCache

from .helpers import console, get_engine

app = typer.Typer(
    name="area-engine",
    help="Trigger and orchestration core for AREA automations.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]area-engine[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
):
    """AREA engine - cron, webhook and chained activations for areas.

    [bold]Quick Start:[/bold]

        area-engine init-db            Create the database schema
        area-engine run                Start cron activations
        area-engine trigger INSTANCE   Manually trigger an action instance
        area-engine stats              Show activation statistics
    """


@app.command("init-db")
def init_db():
    """Create the database schema."""
    engine = get_engine()
    console.print(f"[green]Schema ready[/green] ({engine.settings.database_url})")
    engine.backend.close()


@app.command()
def stats(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show activation statistics."""
    engine = get_engine()
    try:
        data = engine.orchestrator.get_activation_statistics()
    finally:
        engine.backend.close()

    if json_output:
        print(json.dumps(data, indent=2))
        return

    if data.get("system_status") == "error":
        console.print(f"[red]{data['error']}:[/red] {data.get('message')}")
        raise typer.Exit(1)

    table = Table(title="Activation Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Areas", str(data["total_areas"]))
    table.add_row("Enabled areas", str(data["enabled_areas"]))
    for mode_type, count in data["activation_modes"].items():
        table.add_row(f"{mode_type} modes", str(count))
    table.add_row("Active cron tasks", str(data["active_cron_tasks"]))
    console.print(table)


@app.command()
def trigger(
    instance_id: str = typer.Argument(..., help="Action instance ID"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    follow_links: bool = typer.Option(
        False, "--follow-links", "-f", help="Also trigger linked actions"
    ),
):
    """Manually trigger an action instance."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON payload:[/red] {e}")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print("[red]Payload must be a JSON object[/red]")
        raise typer.Exit(1)

    from area_engine.errors import AreaEngineError
    from area_engine.models import ActivationModeType

    engine = get_engine()
    try:
        instance = engine.instances.get(instance_id)
        if instance is None:
            console.print(f"[red]Action instance not found:[/red] {instance_id}")
            raise typer.Exit(1)

        if follow_links:
            execution = engine.trigger.trigger_area_execution(
                instance, ActivationModeType.MANUAL, data
            )
        else:
            execution = engine.trigger.trigger_manual_execution(instance, data)
    except AreaEngineError as e:
        console.print(f"[red]Trigger failed:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        engine.backend.close()

    if execution is None:
        console.print(f"[yellow]No execution created for {instance.name}[/yellow]")
        return
    console.print(
        f"[green]Queued execution[/green] {execution.id} "
        f"(correlation {execution.correlation_id})"
    )


@app.command()
def run():
    """Start the engine and fire cron activations until interrupted."""
    engine = get_engine()
    engine.start()
    console.print(
        f"[green]AREA engine running[/green] with "
        f"{engine.scheduler.get_active_tasks_count()} cron activations. Press Ctrl+C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping...[/yellow]")
    finally:
        engine.shutdown()


@app.command("dedup-clear")
def dedup_clear(
    provider: str = typer.Argument(..., help="Provider key, e.g. github"),
):
    """Forget every recorded webhook event of a provider."""
    engine = get_engine()
    if not isinstance(engine.cache, RedisCache):
        console.print(
            "[yellow]No Redis configured (AREA_REDIS_URL): dedup keys live in each "
            "process, so only this process's store is cleared.[/yellow]"
        )
    try:
        removed = engine.dedup.clear_provider_events(provider)
    finally:
        engine.backend.close()
    console.print(f"Removed [cyan]{removed}[/cyan] dedup keys for {provider}")


if __name__ == "__main__":
    app()
