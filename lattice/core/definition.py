"""Workflow definition loading and validation.

A workflow file looks like::

    id: commission-work
    name: Commission work
    runtime:
      max_parallel: 2
    modules:
      - module_id: anchor-docs
      - module_id: action-plan
        depends_on: [anchor-docs]
      - instance_id: second-review
        module_id: staff-review
        depends_on: [action-plan]
        config: {depth: 2}

Extra edges may also be given in a top-level ``graph`` mapping; they are
merged into each node's ``depends_on``.
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

import pydantic
import yaml

from lattice.core.graph import DependencyGraph
from lattice.errors import DefinitionError
from lattice.models.workflow import ModuleRef, WorkflowDefinition

logger = logging.getLogger(__name__)

BUNDLED_WORKFLOWS_PACKAGE = "lattice.workflows"


def normalize_definition(definition: WorkflowDefinition) -> WorkflowDefinition:
    """Validate ``definition`` and return a copy with ``graph`` folded into ``depends_on``.

    Raises ``DefinitionError`` (or ``CyclicDependencyError``) on any problem.
    """
    wid = definition.id.strip()
    if not wid:
        raise DefinitionError("workflow: id is required")
    if not definition.modules:
        raise DefinitionError(f"workflow {wid}: at least one module is required")

    seen: set[str] = set()
    for index, ref in enumerate(definition.modules):
        if not ref.module_id.strip():
            raise DefinitionError(f"workflow {wid} module[{index}]: module_id is required")
        if ref.instance_id in seen:
            raise DefinitionError(f"workflow {wid}: duplicate module instance id {ref.instance_id}")
        seen.add(ref.instance_id)
        if len(set(ref.depends_on)) != len(ref.depends_on):
            raise DefinitionError(
                f"workflow {wid}: {ref.instance_id} lists a dependency more than once"
            )

    for key, deps in definition.graph.items():
        if key not in seen:
            raise DefinitionError(f"workflow {wid}: graph references unknown module {key}")
        for dep in deps:
            if dep not in seen:
                raise DefinitionError(
                    f"workflow {wid}: graph dependency {key} -> {dep} references unknown module"
                )

    runtime = definition.runtime
    if runtime.max_parallel is not None and runtime.max_parallel < 0:
        raise DefinitionError(f"workflow {wid} runtime: max_parallel must be >= 0")
    if runtime.max_attempts is not None and runtime.max_attempts < 0:
        raise DefinitionError(f"workflow {wid} runtime: max_attempts must be >= 0")

    modules: list[ModuleRef] = []
    for ref in definition.modules:
        deps = list(ref.depends_on)
        for dep in definition.graph.get(ref.instance_id, []):
            if dep not in deps:
                deps.append(dep)
        for dep in deps:
            if dep == ref.instance_id:
                raise DefinitionError(f"workflow {wid}: {dep} depends on itself")
            if dep not in seen:
                raise DefinitionError(
                    f"workflow {wid}: {ref.instance_id} depends on unknown module {dep}"
                )
        modules.append(ref.model_copy(update={"depends_on": deps}))

    # Raises CyclicDependencyError
    DependencyGraph(
        [ref.instance_id for ref in modules],
        {ref.instance_id: ref.depends_on for ref in modules},
    )
    return definition.model_copy(update={"id": wid, "modules": modules, "graph": {}})


def parse_workflow(text: str, source: str = "<string>") -> WorkflowDefinition:
    """Parse and validate workflow YAML."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DefinitionError(f"{source}: invalid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise DefinitionError(f"{source}: workflow must be a mapping")
    try:
        definition = WorkflowDefinition.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise DefinitionError(f"{source}: {exc}") from exc
    try:
        return normalize_definition(definition)
    except DefinitionError as exc:
        raise type(exc)(f"{source}: {exc}") from exc


def load_workflow(path: str | Path) -> WorkflowDefinition:
    """Load a workflow definition from a YAML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DefinitionError(f"cannot read workflow {path}: {exc}") from exc
    definition = parse_workflow(text, str(path))
    logger.info("Loaded workflow %s from %s", definition.id, path)
    return definition


def bundled_workflow_names() -> list[str]:
    """Names of workflows shipped with the package."""
    root = resources.files(BUNDLED_WORKFLOWS_PACKAGE)
    return sorted(
        entry.name.rsplit(".", 1)[0]
        for entry in root.iterdir()
        if entry.name.endswith((".yaml", ".yml"))
    )


def bundled_workflow(name: str = "commission-work") -> WorkflowDefinition:
    """Load a workflow shipped with the package by name."""
    root = resources.files(BUNDLED_WORKFLOWS_PACKAGE)
    for suffix in (".yaml", ".yml"):
        entry = root.joinpath(name + suffix)
        if entry.is_file():
            return parse_workflow(entry.read_text(encoding="utf-8"), f"bundled:{name}")
    raise DefinitionError(f"no bundled workflow named {name!r}")
