"""``lattice plugins`` -- list plugin definitions found in the project."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError

console = Console()


def plugins_cmd(ctx: typer.Context) -> None:
    """Validate and list plugin modules under ``.lattice/modules``."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings, load_plugins=False)
        loaded = runtime.loader.discover()
    except LatticeError as exc:
        abort(console, str(exc))

    if not loaded:
        console.print(f"[dim]No plugins in {runtime.loader.modules_dir}[/dim]", soft_wrap=True)
        return

    table = Table(title="Plugin Modules")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Version", style="green")
    table.add_column("Skill")
    table.add_column("Source", style="dim")
    for item in loaded:
        definition = item.definition
        table.add_row(
            definition.id,
            definition.version,
            definition.skill.slug or definition.skill.path,
            item.source,
        )
    console.print(table)
