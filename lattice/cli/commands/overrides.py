"""``lattice overrides`` -- adjust scheduling for the current run.

Changes apply to later claims only; claims already granted stay intact
even if the new budget is smaller.
"""

from __future__ import annotations

import typer
from rich.console import Console

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError, SnapshotNotFoundError
from lattice.models.engine import RuntimeOverrides

console = Console()


def overrides_cmd(
    ctx: typer.Context,
    max_parallel: int = typer.Option(
        None, "--max-parallel", "-p", min=0, help="Slot budget (0 = unlimited)."
    ),
    max_attempts: int = typer.Option(
        None, "--max-attempts", min=0, help="Failed attempts allowed per module (0 = unlimited)."
    ),
    batch_size: int = typer.Option(
        None, "--batch-size", min=0, help="Default claims per request (0 = no limit)."
    ),
    target: list[str] = typer.Option(
        None, "--target", "-t", help="Only offer these instance ids (repeatable)."
    ),
    clear_targets: bool = typer.Option(False, "--clear-targets", help="Offer every module again."),
    gate: list[str] = typer.Option(
        None, "--gate", help="Hold an instance until it is approved (repeatable)."
    ),
    approve: list[str] = typer.Option(
        None, "--approve", help="Approve a gated instance (repeatable)."
    ),
) -> None:
    """Apply runtime overrides to the current run."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        current = runtime.engine.resume(runtime.context)
        gates: dict[str, bool] | None = None
        if gate or approve:
            gates = dict(current.runtime.manual_gates)
            gates.update({instance_id: False for instance_id in gate or []})
            gates.update({instance_id: True for instance_id in approve or []})
        targets = [] if clear_targets else (list(target) if target else None)
        snapshot = runtime.engine.overrides(
            runtime.context,
            RuntimeOverrides(
                max_parallel=max_parallel,
                max_attempts=max_attempts,
                batch_size=batch_size,
                targets=targets,
                manual_gates=gates,
            ),
        )
    except SnapshotNotFoundError as exc:
        abort(console, str(exc), "Start a run first with: lattice start")
    except LatticeError as exc:
        abort(console, str(exc))

    effective = snapshot.runtime
    console.print("[bold green]Overrides applied.[/bold green]")
    console.print(f"  max_parallel: {snapshot.max_parallel or 'unlimited'}", highlight=False)
    console.print(f"  max_attempts: {snapshot.max_attempts or 'unlimited'}", highlight=False)
    console.print(f"  batch_size:   {effective.batch_size or 'unlimited'}", highlight=False)
    if effective.targets:
        console.print(f"  targets:      {', '.join(effective.targets)}", highlight=False)
    for instance_id, approved in sorted(effective.manual_gates.items()):
        state = "approved" if approved else "gated"
        console.print(f"  gate:         {instance_id} ({state})", highlight=False)
