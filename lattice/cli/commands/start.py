"""``lattice start`` -- begin a new run of a workflow.

Loads a workflow file (or a bundled workflow by name), validates it
against the registered modules, and persists a fresh engine snapshot.
Any previous snapshot for the project is replaced.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from lattice.cli.common import abort, build_runtime, state_of
from lattice.core.definition import bundled_workflow, load_workflow
from lattice.errors import LatticeError
from lattice.models.engine import RuntimeOverrides
from lattice.monitor.renderer import SnapshotRenderer

console = Console()


def start_cmd(
    ctx: typer.Context,
    workflow: Path = typer.Option(
        None,
        "--workflow",
        "-w",
        help="Workflow YAML file.  Defaults to the bundled workflow.",
    ),
    bundled: str = typer.Option(
        "commission-work",
        "--bundled",
        "-b",
        help="Bundled workflow to use when --workflow is not given.",
    ),
    max_parallel: int = typer.Option(
        None,
        "--max-parallel",
        "-p",
        min=0,
        help="Slot budget for this run (0 = unlimited).",
    ),
    max_attempts: int = typer.Option(
        None,
        "--max-attempts",
        min=0,
        help="Failed attempts per module before it is no longer offered (0 = unlimited).",
    ),
) -> None:
    """Start a new workflow run and print its run id."""
    settings = state_of(ctx).settings()
    try:
        runtime = build_runtime(settings)
        definition = load_workflow(workflow) if workflow else bundled_workflow(bundled)
        overrides = RuntimeOverrides(max_parallel=max_parallel, max_attempts=max_attempts)
        snapshot = runtime.engine.start(runtime.context, definition, overrides)
    except LatticeError as exc:
        abort(console, str(exc))

    SnapshotRenderer(console=console).print_snapshot(snapshot)
    # Plain run id for scripting
    console.print(snapshot.run_id, soft_wrap=True)
