"""``lattice init`` -- create the ``.lattice/`` tree for a project.

Creates the workflow, state, modules, skills and logs directories and
materializes every bundled skill.  Safe to run more than once.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel

from lattice.cli.common import abort, state_of
from lattice.core.filesystem import LocalFileSystem
from lattice.core.layout import WorkflowLayout
from lattice.errors import LatticeError
from lattice.plugins.skills import materialize_all

console = Console()


def init_cmd(ctx: typer.Context) -> None:
    """Create the ``.lattice/`` directory tree and bundled skills."""
    settings = state_of(ctx).settings()
    layout = WorkflowLayout.for_project(settings.project_dir)
    fs = LocalFileSystem()
    try:
        layout.initialize(fs)
        skill_paths = materialize_all(fs, layout.skills_dir)
    except (LatticeError, OSError) as exc:
        abort(console, str(exc))

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Lattice project initialized.[/bold green]",
                "",
                f"[bold]Project:[/bold]   {layout.project_dir}",
                f"[bold]Workflow:[/bold]  {layout.workflow_dir}",
                f"[bold]Modules:[/bold]   {layout.modules_dir}",
                f"[bold]Skills:[/bold]    {len(skill_paths)} installed",
                "",
                "[dim]Start a run with: lattice start[/dim]",
            ]),
            title="[bold]Lattice[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
