"""``lattice work`` -- run modules in this process until the run is idle.

Claims what the scheduler admits, runs each module, and keeps polling
modules that launched an agent session until their outputs are ready.
"""

from __future__ import annotations

import typer
from rich.console import Console

from lattice.cli.common import abort, build_runtime, state_of
from lattice.core.worker import Worker
from lattice.errors import LatticeError, SnapshotNotFoundError
from lattice.monitor.renderer import SnapshotRenderer

console = Console()


def work_cmd(
    ctx: typer.Context,
    worker: str = typer.Option("local", "--worker", "-w", help="Worker id for claims."),
    limit: int = typer.Option(0, "--limit", "-n", min=0, help="Claims per round (0 = no limit)."),
    once: bool = typer.Option(False, "--once", help="Run a single claim round and exit."),
    max_rounds: int = typer.Option(
        0, "--max-rounds", min=0, help="Stop after this many rounds (0 = until idle)."
    ),
    poll_interval: float = typer.Option(
        None, "--poll-interval", min=0.0, help="Seconds between completion checks."
    ),
    wait_timeout: float = typer.Option(
        None, "--wait-timeout", min=0.0, help="Seconds to wait on a module (0 = forever)."
    ),
) -> None:
    """Claim and run modules as WORKER until nothing is left to do."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        runtime.engine.resume(runtime.context)
        runner = Worker(
            runtime.engine,
            runtime.context,
            worker,
            limit=limit,
            poll_interval=poll_interval,
            wait_timeout=wait_timeout,
        )
        if once:
            runner.adopt(runtime.engine.snapshot())
            updates = runner.run_once()
            snapshot = runtime.engine.snapshot()
        else:
            snapshot = runner.run_until_idle(max_rounds=max_rounds)
            updates = []
    except SnapshotNotFoundError as exc:
        abort(console, str(exc), "Start a run first with: lattice start")
    except LatticeError as exc:
        abort(console, str(exc))

    for update in updates:
        console.print(f"{update.instance_id}: {update.status.value}", highlight=False)
    SnapshotRenderer(console=console).print_snapshot(snapshot)
    if runner.waiting:
        console.print(
            f"[yellow]Still waiting on:[/yellow] {', '.join(runner.waiting)}", soft_wrap=True
        )
