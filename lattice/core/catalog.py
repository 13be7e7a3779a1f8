"""Artifact catalog: every artifact the pipeline knows about.

Each entry has a stable id, a kind, and a resolver from a
:class:`WorkflowLayout` to a path under ``.lattice/workflow/``.  The
table is built once at import time; registering the same id or the same
path twice is a programming error and fails immediately.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

from lattice.core.layout import WorkflowLayout
from lattice.errors import DefinitionError
from lattice.models.artifacts import ArtifactKind, ArtifactRef

_CATALOG: dict[str, ArtifactRef] = {}


def _under(directory: str, *parts: str) -> Callable[[WorkflowLayout], Path]:
    def resolver(layout: WorkflowLayout) -> Path:
        return getattr(layout, directory).joinpath(*parts)

    return resolver


def _register(
    artifact_id: str,
    kind: ArtifactKind,
    resolver: Callable[[WorkflowLayout], Path],
    name: str,
    description: str = "",
) -> ArtifactRef:
    if artifact_id in _CATALOG:
        raise DefinitionError(f"artifact {artifact_id!r} registered twice")
    ref = ArtifactRef(
        id=artifact_id, kind=kind, resolver=resolver, name=name, description=description
    )
    scratch = WorkflowLayout.for_project(os.sep)
    path = ref.resolve(scratch)
    for existing in _CATALOG.values():
        if existing.resolve(scratch) == path:
            raise DefinitionError(
                f"artifacts {existing.id!r} and {artifact_id!r} resolve to the same path"
            )
    _CATALOG[artifact_id] = ref
    return ref


_DOC = ArtifactKind.DOCUMENT
_JSON = ArtifactKind.JSON
_MARKER = ArtifactKind.MARKER
_DIR = ArtifactKind.DIRECTORY

# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

COMMISSION_DOC = _register(
    "commission-doc", _DOC, _under("plan_dir", "COMMISSION.md"), "Commission",
    "What the project is asked to deliver.",
)
ARCHITECTURE_DOC = _register(
    "architecture-doc", _DOC, _under("plan_dir", "ARCHITECTURE.md"), "Architecture"
)
CONVENTIONS_DOC = _register(
    "conventions-doc", _DOC, _under("plan_dir", "CONVENTIONS.md"), "Conventions"
)
MODULES_DOC = _register("modules-doc", _DOC, _under("action_dir", "MODULES.md"), "Modules")
ACTION_PLAN = _register(
    "action-plan", _DOC, _under("action_dir", "PLAN.md"), "Action plan"
)
STAFF_REVIEW = _register(
    "staff-review", _DOC, _under("action_dir", "STAFF_REVIEW.md"), "Staff review"
)
REVIEW_PRAGMATIST = _register(
    "review-pragmatist", _DOC, _under("action_dir", "reviews", "PRAGMATIST.md"),
    "Pragmatist review",
)
REVIEW_SIMPLIFIER = _register(
    "review-simplifier", _DOC, _under("action_dir", "reviews", "SIMPLIFIER.md"),
    "Simplifier review",
)
REVIEW_ADVOCATE = _register(
    "review-advocate", _DOC, _under("action_dir", "reviews", "ADVOCATE.md"),
    "User advocate review",
)
REVIEW_SKEPTIC = _register(
    "review-skeptic", _DOC, _under("action_dir", "reviews", "SKEPTIC.md"),
    "Skeptic review",
)

# ---------------------------------------------------------------------------
# Team and work
# ---------------------------------------------------------------------------

ORCHESTRATOR_STATE = _register(
    "orchestrator-state", _JSON, _under("team_dir", "orchestrator.json"), "Orchestrator"
)
WORKERS_JSON = _register("workers-json", _JSON, _under("team_dir", "workers.json"), "Workers")
WORK_LOG = _register("work-log", _DOC, _under("work_dir", "WORK_LOG.md"), "Work log")
WORK_TASKS = _register("work-tasks", _DOC, _under("work_dir", "TASKS.md"), "Work tasks")

# ---------------------------------------------------------------------------
# Refinement and release
# ---------------------------------------------------------------------------

STAKEHOLDERS_JSON = _register(
    "stakeholders-json", _JSON, _under("workflow_dir", "stakeholders.json"), "Stakeholders"
)
AUDIT_DIR = _register("audit-dir", _DIR, _under("audit_dir"), "Audit reports")
AUDIT_SYNTHESIS = _register(
    "audit-synthesis", _DOC, _under("audit_dir", "SYNTHESIS.md"), "Audit synthesis"
)
RELEASE_NOTES = _register(
    "release-notes", _DOC, _under("release_dir", "RELEASE_NOTES.md"), "Release notes"
)
RELEASE_PACKAGES = _register(
    "release-packages", _DIR, _under("release_dir", "packages"), "Release packages"
)

# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------

WORK_IN_PROGRESS = _register(
    "work-in-progress", _MARKER, _under("workflow_dir", ".in-progress"), "Work in progress"
)
WORK_COMPLETE = _register(
    "work-complete", _MARKER, _under("workflow_dir", ".complete"), "Work complete"
)
REFINEMENT_NEEDED = _register(
    "refinement-needed", _MARKER, _under("workflow_dir", ".refinement-needed"),
    "Refinement needed",
)
REVIEWS_APPLIED = _register(
    "reviews-applied", _MARKER, _under("action_dir", ".reviews-applied"), "Reviews applied"
)
STAFF_FEEDBACK_APPLIED = _register(
    "staff-feedback-applied", _MARKER, _under("action_dir", ".staff-feedback-applied"),
    "Staff feedback applied",
)
BEADS_CREATED = _register(
    "beads-created", _MARKER, _under("workflow_dir", ".beads-created"), "Beads created"
)
AGENTS_RELEASED = _register(
    "agents-released", _MARKER, _under("release_dir", ".agents-released"), "Agents released"
)
CLEANUP_DONE = _register(
    "cleanup-done", _MARKER, _under("release_dir", ".cleanup-done"), "Cleanup done"
)
ORCHESTRATOR_RELEASED = _register(
    "orchestrator-released", _MARKER, _under("release_dir", ".orchestrator-released"),
    "Orchestrator released",
)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def lookup(artifact_id: str) -> ArtifactRef | None:
    """Return the catalog ref for ``artifact_id``, or ``None``."""
    return _CATALOG.get(artifact_id.strip())


def require(artifact_id: str) -> ArtifactRef:
    """Return the catalog ref for ``artifact_id`` or raise ``DefinitionError``."""
    ref = lookup(artifact_id)
    if ref is None:
        raise DefinitionError(f"unknown artifact {artifact_id!r}")
    return ref


def all_refs() -> list[ArtifactRef]:
    """All catalog refs sorted by id."""
    return [_CATALOG[key] for key in sorted(_CATALOG)]
