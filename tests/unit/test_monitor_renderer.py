"""Unit tests for the SnapshotRenderer.

Tests Rich panel output, node state styling, claim details and the
engine summary line.
"""

from __future__ import annotations

from datetime import datetime, timezone
from io import StringIO

import pytest
from rich.console import Console
from rich.panel import Panel

from lattice.models.artifacts import ArtifactState, ArtifactStatus
from lattice.models.engine import (
    EngineSnapshot,
    EngineStatus,
    ModuleRun,
    NodeSnapshot,
    NodeStatus,
    OutputReport,
    WorkClaim,
)
from lattice.models.modules import ModuleStatus
from lattice.models.workflow import WorkflowDefinition
from lattice.monitor.renderer import _NODE_ICONS, _NODE_STYLES, SnapshotRenderer

UPDATED = datetime(2026, 2, 27, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_snapshot(
    status: EngineStatus = EngineStatus.RUNNING,
    nodes: list[NodeSnapshot] | None = None,
    claims: list[WorkClaim] | None = None,
    reason: str = "",
) -> EngineSnapshot:
    """Create a minimal EngineSnapshot for testing."""
    default_nodes = nodes or [
        NodeSnapshot(
            instance_id="anchor-docs",
            module_id="anchor-docs",
            name="Anchor documents",
            status=NodeStatus.COMPLETE,
            outputs=[
                OutputReport(
                    artifact_id="commission-doc",
                    state=ArtifactState.READY,
                    status=ArtifactStatus.READY,
                )
            ],
        ),
        NodeSnapshot(
            instance_id="action-plan",
            module_id="action-plan",
            status=NodeStatus.RUNNING,
        ),
        NodeSnapshot(
            instance_id="staff-review",
            module_id="staff-review",
            status=NodeStatus.BLOCKED,
            blocked_by=["action-plan"],
        ),
    ]
    definition = WorkflowDefinition.model_validate(
        {
            "id": "commission-work",
            "name": "Commission work",
            "modules": [{"module_id": node.instance_id} for node in default_nodes],
        }
    )
    return EngineSnapshot(
        run_id="commission-work-1",
        workflow_id="commission-work",
        definition=definition,
        status=status,
        status_reason=reason,
        max_parallel=2,
        nodes=default_nodes,
        claims=claims
        if claims is not None
        else [WorkClaim(worker_id="w1", instance_id="action-plan", claimed_at=UPDATED)],
        updated_at=UPDATED,
    )


def _render_text(snapshot: EngineSnapshot) -> str:
    buffer = StringIO()
    console = Console(file=buffer, width=140, color_system=None)
    SnapshotRenderer(console=console).print_snapshot(snapshot)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Test: State mappings
# ---------------------------------------------------------------------------


class TestStateMappings:
    """Every node status has a style and an icon."""

    @pytest.mark.parametrize("status", list(NodeStatus))
    def test_every_status_mapped(self, status: NodeStatus):
        assert status in _NODE_STYLES
        assert status in _NODE_ICONS

    def test_complete_is_green(self):
        assert "green" in _NODE_STYLES[NodeStatus.COMPLETE]

    def test_failures_are_red(self):
        assert "red" in _NODE_STYLES[NodeStatus.FAILED]
        assert "red" in _NODE_STYLES[NodeStatus.ERROR]


# ---------------------------------------------------------------------------
# Test: Rendering
# ---------------------------------------------------------------------------


class TestRenderSnapshot:
    def test_returns_panel(self):
        assert isinstance(SnapshotRenderer().render_snapshot(_make_snapshot()), Panel)

    def test_border_follows_engine_status(self):
        renderer = SnapshotRenderer()
        assert renderer.render_snapshot(_make_snapshot(EngineStatus.ERROR)).border_style == "red"
        assert (
            renderer.render_snapshot(_make_snapshot(EngineStatus.COMPLETE)).border_style == "green"
        )

    def test_summary_and_rows(self):
        text = _render_text(_make_snapshot())
        assert "Lattice: Commission work" in text
        assert "commission-work-1" in text
        assert "Progress:" in text and "1/3" in text
        assert "Slots:" in text and "1/2" in text
        assert "Anchor documents" in text
        assert "RUNNING" in text
        assert "w1" in text
        assert "waiting on action-plan" in text

    def test_unlimited_budget(self):
        snapshot = _make_snapshot().model_copy(update={"max_parallel": 0})
        assert "1/unlimited" in _render_text(snapshot)

    def test_status_reason_shown(self):
        text = _render_text(_make_snapshot(EngineStatus.BLOCKED, claims=[], reason="waiting on b"))
        assert "waiting on b" in text

    def test_error_and_attempts(self):
        node = NodeSnapshot(
            instance_id="hiring",
            module_id="hiring",
            status=NodeStatus.FAILED,
            attempts=2,
            last_run=ModuleRun(status=ModuleStatus.FAILED, message="hiring failed"),
        )
        text = _render_text(_make_snapshot(EngineStatus.ERROR, nodes=[node], claims=[]))
        assert "FAILED" in text
        assert "attempts: 2" in text
        assert "hiring failed" in text
