"""Workflow handle: path helpers for everything under ``.lattice/``.

Layout::

    <project>/.lattice/
        workflow/           artifacts (plan, action, team, work, audit, release)
        state/              engine snapshot
        modules/            plugin definitions
        skills/             materialized skill payloads
        agents/ worktree/ logs/   owned by external collaborators
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from lattice.core.filesystem import FileSystem

LATTICE_DIRNAME = ".lattice"
SNAPSHOT_FILENAME = "engine.json"


class WorkflowLayout(BaseModel):
    """Immutable set of path helpers rooted at a project directory.

    Examples
    --------
    >>> layout = WorkflowLayout.for_project("/work/app")
    >>> str(layout.plan_dir)
    '/work/app/.lattice/workflow/plan'
    """

    model_config = ConfigDict(frozen=True)

    project_dir: Path
    workflow_id: str = ""

    @classmethod
    def for_project(cls, project_dir: str | Path, workflow_id: str = "") -> WorkflowLayout:
        return cls(project_dir=Path(os.path.abspath(project_dir)), workflow_id=workflow_id)

    def with_workflow(self, workflow_id: str) -> WorkflowLayout:
        return self.model_copy(update={"workflow_id": workflow_id})

    # ------------------------------------------------------------------
    # Roots
    # ------------------------------------------------------------------

    @property
    def lattice_dir(self) -> Path:
        return self.project_dir / LATTICE_DIRNAME

    @property
    def workflow_dir(self) -> Path:
        """Root every artifact path must live under."""
        return self.lattice_dir / "workflow"

    @property
    def state_dir(self) -> Path:
        return self.lattice_dir / "state"

    @property
    def modules_dir(self) -> Path:
        return self.lattice_dir / "modules"

    @property
    def skills_dir(self) -> Path:
        return self.lattice_dir / "skills"

    @property
    def agents_dir(self) -> Path:
        return self.lattice_dir / "agents"

    @property
    def worktree_dir(self) -> Path:
        return self.lattice_dir / "worktree"

    @property
    def logs_dir(self) -> Path:
        return self.lattice_dir / "logs"

    # ------------------------------------------------------------------
    # Artifact sub-directories
    # ------------------------------------------------------------------

    @property
    def plan_dir(self) -> Path:
        return self.workflow_dir / "plan"

    @property
    def action_dir(self) -> Path:
        return self.workflow_dir / "action"

    @property
    def team_dir(self) -> Path:
        return self.workflow_dir / "team"

    @property
    def work_dir(self) -> Path:
        return self.workflow_dir / "work"

    @property
    def audit_dir(self) -> Path:
        return self.workflow_dir / "audit"

    @property
    def release_dir(self) -> Path:
        return self.workflow_dir / "release"

    @property
    def snapshot_path(self) -> Path:
        return self.state_dir / SNAPSHOT_FILENAME

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def contains(self, path: Path) -> bool:
        """Whether ``path`` (already cleaned) lies inside the workflow root."""
        root = os.path.normpath(self.workflow_dir)
        candidate = os.path.normpath(path)
        return candidate == root or candidate.startswith(root + os.sep)

    def directories(self) -> list[Path]:
        """Directories created by :meth:`initialize`."""
        return [
            self.workflow_dir,
            self.plan_dir,
            self.action_dir,
            self.team_dir,
            self.work_dir,
            self.release_dir,
            self.state_dir,
            self.modules_dir,
            self.skills_dir,
            self.logs_dir,
        ]

    def initialize(self, fs: FileSystem) -> None:
        """Create the standard directory tree (idempotent)."""
        for directory in self.directories():
            fs.make_dirs(directory)
