"""Built-in module definitions for the commission-work pipeline.

Each stage is a skill-backed module with disjoint outputs, chained by the
bundled ``commission-work`` workflow::

    anchor-docs -> action-plan -> staff-review -> staff-incorporate
      -> parallel-reviews -> consolidation -> bead-creation
      -> orchestrator-selection -> hiring -> work-process
      -> refinement -> release
"""

from __future__ import annotations

import logging

from lattice.core.registry import ModuleRegistry
from lattice.models.modules import Concurrency
from lattice.models.plugins import ArtifactBinding, ModuleDefinition, SkillSpec
from lattice.plugins.loader import validate_definition
from lattice.plugins.skill_module import TerminalFactory, skill_factory

logger = logging.getLogger(__name__)

BUILTIN_VERSION = "1.0.0"

_READ_AND_WRITE = (
    "Follow the skill in {skill_path}. Read {inputs}. "
    "Write {outputs}. Work only inside {project_dir}."
)


def _definition(
    module_id: str,
    name: str,
    slug: str,
    inputs: list[str],
    outputs: list[str],
    prompt: str = _READ_AND_WRITE,
    *,
    description: str = "",
    slots: int = 1,
    exclusive: bool = False,
) -> ModuleDefinition:
    return ModuleDefinition(
        id=module_id,
        version=BUILTIN_VERSION,
        name=name,
        description=description,
        skill=SkillSpec(slug=slug, prompt=prompt, window_name=module_id),
        inputs=[ArtifactBinding(artifact=artifact) for artifact in inputs],
        outputs=[ArtifactBinding(artifact=artifact) for artifact in outputs],
        concurrency=Concurrency(slots=slots, exclusive=exclusive),
    )


BUILTIN_DEFINITIONS: tuple[ModuleDefinition, ...] = (
    _definition(
        "anchor-docs",
        "Anchor documents",
        "lattice-planning",
        [],
        ["commission-doc", "architecture-doc", "conventions-doc"],
        "Follow the skill in {skill_path}. Interview the commissioner and "
        "write {outputs}. Work only inside {project_dir}.",
        description="Commission, architecture and conventions documents.",
    ),
    _definition(
        "action-plan",
        "Action plan",
        "lattice-planning",
        ["commission-doc", "architecture-doc", "conventions-doc"],
        ["modules-doc", "action-plan"],
        description="Module breakdown and ordered plan.",
    ),
    _definition(
        "staff-review",
        "Staff review",
        "lattice-review",
        ["modules-doc", "action-plan"],
        ["staff-review"],
    ),
    _definition(
        "staff-incorporate",
        "Incorporate staff review",
        "lattice-incorporate",
        ["staff-review"],
        ["staff-feedback-applied"],
    ),
    _definition(
        "parallel-reviews",
        "Parallel reviews",
        "lattice-review",
        ["modules-doc", "action-plan", "staff-feedback-applied"],
        ["review-pragmatist", "review-simplifier", "review-advocate", "review-skeptic"],
        description="Four reviewer perspectives written side by side.",
        slots=2,
    ),
    _definition(
        "consolidation",
        "Consolidate reviews",
        "lattice-incorporate",
        ["review-pragmatist", "review-simplifier", "review-advocate", "review-skeptic"],
        ["reviews-applied"],
    ),
    _definition(
        "bead-creation",
        "Create beads",
        "lattice-planning",
        ["reviews-applied", "action-plan"],
        ["beads-created"],
        description="Turn the reviewed plan into tracked work items.",
    ),
    _definition(
        "orchestrator-selection",
        "Select orchestrator",
        "lattice-staffing",
        ["beads-created"],
        ["orchestrator-state"],
    ),
    _definition(
        "hiring",
        "Hire workers",
        "lattice-staffing",
        ["orchestrator-state"],
        ["workers-json"],
    ),
    _definition(
        "work-process",
        "Work cycle",
        "lattice-work-cycle",
        ["workers-json"],
        ["work-log", "refinement-needed"],
    ),
    _definition(
        "refinement",
        "Refinement",
        "lattice-work-cycle",
        ["refinement-needed"],
        ["stakeholders-json", "audit-dir", "audit-synthesis", "work-complete"],
        description="Stakeholder audit of the finished work.",
        exclusive=True,
    ),
    _definition(
        "release",
        "Release",
        "lattice-release",
        ["audit-synthesis"],
        [
            "release-notes",
            "release-packages",
            "agents-released",
            "cleanup-done",
            "orchestrator-released",
        ],
        exclusive=True,
    ),
)


def builtin_ids() -> list[str]:
    return [definition.id for definition in BUILTIN_DEFINITIONS]


def register_builtins(registry: ModuleRegistry, terminal_factory: TerminalFactory) -> None:
    """Register every built-in definition as a skill module."""
    for definition in BUILTIN_DEFINITIONS:
        definition = validate_definition(definition, f"builtin:{definition.id}")
        registry.register(definition.id, skill_factory(definition, terminal_factory))
    logger.debug("Registered %d built-in modules", len(BUILTIN_DEFINITIONS))
