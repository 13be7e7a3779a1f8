"""Main Typer application: global options and command registration.

Entry point: ``lattice`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

from pathlib import Path

import typer

from lattice.cli.commands.claim import claim_cmd
from lattice.cli.commands.init import init_cmd
from lattice.cli.commands.modules import modules_cmd
from lattice.cli.commands.overrides import overrides_cmd
from lattice.cli.commands.plugins import plugins_cmd
from lattice.cli.commands.start import start_cmd
from lattice.cli.commands.status import status_cmd
from lattice.cli.commands.update import update_cmd
from lattice.cli.commands.work import work_cmd
from lattice.cli.common import CliState
from lattice.logs import configure_logging

app = typer.Typer(
    name="lattice",
    help="Lattice: artifact-driven workflow engine for agent sessions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    project_dir: Path = typer.Option(
        None,
        "--project",
        "-C",
        help="Project directory (defaults to LATTICE_PROJECT_DIR or the cwd).",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    state = CliState(project_dir=project_dir, log_level=log_level)
    ctx.obj = state
    configure_logging(state.settings().log_level)


# Register subcommands
app.command(name="init", help="Create the .lattice directory layout.")(init_cmd)
app.command(name="start", help="Start a new workflow run.")(start_cmd)
app.command(name="status", help="Show the current run.")(status_cmd)
app.command(name="claim", help="Claim runnable modules for a worker.")(claim_cmd)
app.command(name="update", help="Report the outcome of a claimed module.")(update_cmd)
app.command(name="overrides", help="Adjust scheduling for the current run.")(overrides_cmd)
app.command(name="work", help="Run modules in this process until idle.")(work_cmd)
app.command(name="modules", help="List registered modules.")(modules_cmd)
app.command(name="plugins", help="List plugin module definitions.")(plugins_cmd)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
