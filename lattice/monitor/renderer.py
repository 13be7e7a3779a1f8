"""Rich terminal renderer for engine snapshots.

Turns :class:`EngineSnapshot` into Rich renderables, with color-coded node
states and an optional continuous ``Rich.Live`` mode.

Color scheme
------------
- green     : COMPLETE
- yellow    : RUNNING
- cyan      : NEEDS_INPUT, READY
- red       : FAILED, ERROR
- dim       : PENDING, BLOCKED
"""

from __future__ import annotations

import time
from collections.abc import Callable

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lattice.models.engine import EngineSnapshot, EngineStatus, NodeSnapshot, NodeStatus

# ---------------------------------------------------------------------------
# Status -> Rich style mapping
# ---------------------------------------------------------------------------

_NODE_STYLES: dict[NodeStatus, str] = {
    NodeStatus.COMPLETE: "bold green",
    NodeStatus.RUNNING: "bold yellow",
    NodeStatus.NEEDS_INPUT: "cyan",
    NodeStatus.READY: "cyan",
    NodeStatus.FAILED: "bold red",
    NodeStatus.ERROR: "bold red",
    NodeStatus.PENDING: "dim",
    NodeStatus.BLOCKED: "dim",
}

_NODE_ICONS: dict[NodeStatus, str] = {
    NodeStatus.COMPLETE: "[green]COMPLETE[/green]",
    NodeStatus.RUNNING: "[yellow]RUNNING[/yellow]",
    NodeStatus.NEEDS_INPUT: "[cyan]WAITING[/cyan]",
    NodeStatus.READY: "[cyan]READY[/cyan]",
    NodeStatus.FAILED: "[bold red]FAILED[/bold red]",
    NodeStatus.ERROR: "[bold red]ERROR[/bold red]",
    NodeStatus.PENDING: "[dim]PENDING[/dim]",
    NodeStatus.BLOCKED: "[dim]BLOCKED[/dim]",
}

_ENGINE_BORDERS: dict[EngineStatus, str] = {
    EngineStatus.COMPLETE: "green",
    EngineStatus.RUNNING: "blue",
    EngineStatus.BLOCKED: "yellow",
    EngineStatus.ERROR: "red",
}


class SnapshotRenderer:
    """Renders :class:`EngineSnapshot` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Single snapshot render
    # ------------------------------------------------------------------

    def render_snapshot(self, snapshot: EngineSnapshot) -> Panel:
        """Render a snapshot as a Panel holding the node table and a summary."""
        table = self._build_node_table(snapshot)
        complete = sum(1 for node in snapshot.nodes if node.status is NodeStatus.COMPLETE)
        budget = str(snapshot.max_parallel) if snapshot.max_parallel else "unlimited"

        summary_parts: list[str] = [
            f"[bold]Run:[/bold] {snapshot.run_id}",
            f"[bold]Status:[/bold] {snapshot.status.value}",
            f"[bold]Progress:[/bold] {complete}/{len(snapshot.nodes)}",
            f"[bold]Slots:[/bold] {snapshot.slots_in_use}/{budget}",
        ]
        if snapshot.runnable:
            summary_parts.append(f"[cyan][bold]Runnable:[/bold] {', '.join(snapshot.runnable)}[/cyan]")
        if snapshot.status_reason:
            summary_parts.append(f"[yellow]{snapshot.status_reason}[/yellow]")
        summary = "  |  ".join(summary_parts)

        return Panel(
            Group(table, Text(""), Text.from_markup(summary)),
            title=f"[bold]Lattice: {snapshot.definition.name or snapshot.workflow_id}[/bold]",
            subtitle=f"Last updated: {snapshot.updated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style=_ENGINE_BORDERS.get(snapshot.status, "blue"),
            padding=(1, 2),
        )

    def _build_node_table(self, snapshot: EngineSnapshot) -> Table:
        table = Table(
            show_header=True,
            header_style="bold cyan",
            expand=True,
            show_lines=False,
            pad_edge=True,
        )
        table.add_column("#", style="dim", width=4, justify="right")
        table.add_column("Module", min_width=22)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Details", min_width=20)
        table.add_column("Outputs", justify="right", width=9)

        for index, node in enumerate(snapshot.nodes):
            style = _NODE_STYLES.get(node.status, "")
            ready = sum(1 for output in node.outputs if output.state.value == "ready")
            table.add_row(
                str(index),
                f"[{style}]{node.name or node.instance_id}[/{style}]",
                _NODE_ICONS.get(node.status, node.status.value),
                self._details(snapshot, node),
                f"{ready}/{len(node.outputs)}",
            )
        return table

    @staticmethod
    def _details(snapshot: EngineSnapshot, node: NodeSnapshot) -> str:
        parts: list[str] = []
        claim = snapshot.claim_for(node.instance_id)
        if claim is not None:
            parts.append(f"[yellow]{claim.worker_id}[/yellow]")
        if node.error:
            parts.append(f"[red]{node.error}[/red]")
        elif node.blocked_by and node.status is NodeStatus.BLOCKED:
            parts.append(f"[dim]waiting on {', '.join(node.blocked_by)}[/dim]")
        if node.last_run is not None and node.last_run.message:
            parts.append(f"[dim]{node.last_run.message}[/dim]")
        if node.attempts:
            parts.append(f"[red]attempts: {node.attempts}[/red]")
        return " | ".join(parts) if parts else "[dim]-[/dim]"

    # ------------------------------------------------------------------
    # Continuous live rendering
    # ------------------------------------------------------------------

    def render_live(
        self,
        load: Callable[[], EngineSnapshot],
        *,
        refresh_hz: float = 1.0,
    ) -> None:
        """Re-render ``load()`` until interrupted with Ctrl+C."""
        interval = 1.0 / max(refresh_hz, 0.1)
        with Live(console=self.console, refresh_per_second=refresh_hz, transient=False) as live:
            try:
                while True:
                    live.update(self.render_snapshot(load()))
                    time.sleep(interval)
            except KeyboardInterrupt:
                live.update(self.render_snapshot(load()))

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.console.print(self.render_snapshot(snapshot))
