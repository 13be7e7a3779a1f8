"""``lattice modules`` -- list registered modules and their artifacts."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError

console = Console()


def modules_cmd(ctx: typer.Context) -> None:
    """List built-in and plugin modules with their inputs and outputs."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        modules = [runtime.registry.resolve(module_id) for module_id in runtime.registry.ids()]
    except LatticeError as exc:
        abort(console, str(exc))

    table = Table(title="Registered Modules", show_lines=False)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Version", style="green")
    table.add_column("Slots", justify="right")
    table.add_column("Inputs")
    table.add_column("Outputs")

    for module in modules:
        info = module.info()
        slots = str(info.concurrency.slots)
        if info.concurrency.exclusive:
            slots += " [bold red]excl[/bold red]"
        table.add_row(
            info.id,
            info.version,
            slots,
            ", ".join(ref.label for ref in module.inputs()) or "[dim]-[/dim]",
            ", ".join(ref.label for ref in module.outputs()),
        )
    console.print(table)
