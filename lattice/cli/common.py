"""Shared wiring for CLI commands.

:func:`build_runtime` assembles settings, layout, store, registry (built-in
modules plus ``.lattice/modules`` plugins) and the engine for one project.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from lattice.config import LatticeSettings, get_settings
from lattice.core.artifact_store import ArtifactStore
from lattice.core.engine import Engine
from lattice.core.filesystem import LocalFileSystem
from lattice.core.layout import WorkflowLayout
from lattice.core.module import ModuleContext
from lattice.core.registry import ModuleRegistry
from lattice.core.repository import SnapshotRepository
from lattice.plugins.builtin import register_builtins
from lattice.plugins.loader import PluginLoader
from lattice.plugins.skill_module import TerminalFactory
from lattice.plugins.terminal import TmuxTerminal


@dataclass
class CliState:
    """Options given before the subcommand."""

    project_dir: Path | None = None
    log_level: str | None = None

    def settings(self) -> LatticeSettings:
        if self.project_dir is None and self.log_level is None:
            return get_settings()
        overrides: dict[str, object] = {}
        if self.project_dir is not None:
            overrides["project_dir"] = self.project_dir
        if self.log_level is not None:
            overrides["log_level"] = self.log_level
        return LatticeSettings(**overrides)


@dataclass
class Runtime:
    settings: LatticeSettings
    layout: WorkflowLayout
    store: ArtifactStore
    registry: ModuleRegistry
    loader: PluginLoader
    engine: Engine
    context: ModuleContext


def terminal_factory(settings: LatticeSettings) -> TerminalFactory:
    """Factory for the terminal skill modules launch agents through."""
    return lambda: TmuxTerminal(binary=settings.tmux_binary, agent_command=settings.agent_command)


def build_runtime(settings: LatticeSettings, *, load_plugins: bool = True) -> Runtime:
    fs = LocalFileSystem()
    layout = WorkflowLayout.for_project(settings.project_dir)
    store = ArtifactStore(layout, fs)
    registry = ModuleRegistry()
    terminals = terminal_factory(settings)
    register_builtins(registry, terminals)
    loader = PluginLoader(layout.modules_dir, allow_interpreted=settings.allow_interpreted_plugins)
    if load_plugins:
        loader.load_into(registry, terminals)
    repository = SnapshotRepository(
        layout.snapshot_path, fs, lock_timeout=settings.lock_timeout_seconds
    )
    engine = Engine(registry, repository, settings=settings)
    context = ModuleContext(layout, store, settings)
    return Runtime(
        settings=settings,
        layout=layout,
        store=store,
        registry=registry,
        loader=loader,
        engine=engine,
        context=context,
    )


def state_of(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def abort(console: Console, message: str, hint: str = "") -> NoReturn:
    """Print an error (and optional hint) and exit with status 1."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    if hint:
        console.print(f"[dim]{hint}[/dim]")
    raise typer.Exit(code=1)
