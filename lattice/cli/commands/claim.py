"""``lattice claim`` -- reserve runnable modules for a worker.

Prints one line per granted claim (``instance-id  module-id``), then the
modules that were passed over and why.  An empty result is not an error.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError, SnapshotNotFoundError
from lattice.models.engine import ClaimRequest, SkipReason

console = Console()


def claim_cmd(
    ctx: typer.Context,
    worker: str = typer.Option(..., "--worker", "-w", help="Worker id taking the claims."),
    limit: int = typer.Option(0, "--limit", "-n", min=0, help="Maximum claims (0 = no limit)."),
    only: list[str] = typer.Option(
        None,
        "--only",
        help="Restrict claims to these instance ids (repeatable).",
    ),
    show_skipped: bool = typer.Option(
        False,
        "--skipped",
        help="List modules that were not admitted.",
    ),
) -> None:
    """Claim admissible modules for WORKER."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        runtime.engine.resume(runtime.context)
        result = runtime.engine.claim(
            runtime.context,
            ClaimRequest(worker_id=worker, limit=limit, instance_filter=only or None),
        )
    except SnapshotNotFoundError as exc:
        abort(console, str(exc), "Start a run first with: lattice start")
    except LatticeError as exc:
        abort(console, str(exc))

    if not result.claims:
        console.print("[dim]Nothing to claim.[/dim]")
    for claim in result.claims:
        console.print(f"{claim.instance_id}  {claim.module_id}", highlight=False, soft_wrap=True)

    if show_skipped and result.skipped:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Module", style="cyan")
        table.add_column("Reason")
        table.add_column("Detail", style="dim")
        for instance_id, skip in result.skipped.items():
            reason = skip.reason.value
            if skip.reason is SkipReason.CONCURRENCY:
                reason = f"[yellow]{reason}[/yellow]"
            table.add_row(instance_id, reason, skip.detail)
        console.print(table)
