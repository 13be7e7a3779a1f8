"""``lattice update`` -- report the outcome of a claimed module.

``needs-input`` keeps the claim (the module is waiting on work it started);
every other status releases it.
"""

from __future__ import annotations

import typer
from rich.console import Console

from lattice.cli.common import abort, build_runtime, state_of
from lattice.errors import LatticeError, SnapshotNotFoundError
from lattice.models.engine import ModuleStatusUpdate, UpdateRequest
from lattice.models.modules import ModuleStatus

console = Console()


def update_cmd(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id of the claimed module."),
    status: ModuleStatus = typer.Argument(..., help="Outcome to report."),
    worker: str = typer.Option(..., "--worker", "-w", help="Worker id that holds the claim."),
    message: str = typer.Option("", "--message", "-m", help="Human-readable outcome."),
    error: str = typer.Option("", "--error", "-e", help="Error text for failed runs."),
) -> None:
    """Report STATUS for INSTANCE_ID on behalf of WORKER."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        runtime.engine.resume(runtime.context)
        snapshot = runtime.engine.update(
            runtime.context,
            UpdateRequest(
                worker_id=worker,
                results=[
                    ModuleStatusUpdate(
                        instance_id=instance_id, status=status, message=message, error=error
                    )
                ],
            ),
        )
    except SnapshotNotFoundError as exc:
        abort(console, str(exc), "Start a run first with: lattice start")
    except LatticeError as exc:
        abort(console, str(exc))

    node = snapshot.node(instance_id)
    node_status = node.status.value if node else "unknown"
    console.print(
        f"[green]Recorded[/green] {instance_id}: {status.value} "
        f"(node {node_status}, engine {snapshot.status.value})",
        soft_wrap=True,
    )
