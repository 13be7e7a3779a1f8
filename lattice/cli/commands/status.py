"""``lattice status`` -- show the current run.

Re-resolves artifacts, persists the refreshed snapshot, and renders it.
``--live`` keeps refreshing until Ctrl+C; ``--json`` prints the snapshot.
"""

from __future__ import annotations

import typer
from rich.console import Console

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError, SnapshotNotFoundError
from lattice.monitor.renderer import SnapshotRenderer

console = Console()


def status_cmd(
    ctx: typer.Context,
    live: bool = typer.Option(
        False,
        "--live",
        "-L",
        help="Keep refreshing the display (Ctrl+C to exit).",
    ),
    refresh_hz: float = typer.Option(
        1.0,
        "--refresh",
        "-r",
        help="Refresh rate in Hz for live mode.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the snapshot as JSON.",
    ),
) -> None:
    """Show the engine snapshot for the current run."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        snapshot = runtime.engine.resume(runtime.context)
    except SnapshotNotFoundError as exc:
        abort(console, str(exc), "Start a run first with: lattice start")
    except LatticeError as exc:
        abort(console, str(exc))

    if as_json:
        console.print_json(snapshot.model_dump_json())
        return

    renderer = SnapshotRenderer(console=console)
    if live:
        console.print(f"[dim]Live status at {refresh_hz} Hz. Press Ctrl+C to exit.[/dim]")
        renderer.render_live(
            lambda: runtime.engine.refresh(runtime.context),
            refresh_hz=refresh_hz,
        )
    else:
        renderer.print_snapshot(snapshot)
