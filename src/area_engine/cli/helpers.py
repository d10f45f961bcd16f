"""Shared helpers for CLI modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.console import Console

if TYPE_CHECKING:
    from area_engine.engine import AreaEngine

console = Console()


def get_engine() -> AreaEngine:
    """Build the engine from settings, configuring logging first."""
    try:
        from area_engine.config import configure_logging, get_settings
        from area_engine.engine import AreaEngine

        settings = get_settings()
        configure_logging(settings.log_level, settings.log_format, settings.sanitize_logs)
        return AreaEngine.from_settings()
    except Exception as e:
        console.print(f"[red]Failed to initialize engine:[/red] {e}")
        raise typer.Exit(1)
