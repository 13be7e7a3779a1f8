"""Skill module: runs a declared skill in an agent session.

Every plugin-declared module is a :class:`SkillModule`.  ``run`` opens a
terminal window, sends the rendered prompt, and reports ``NEEDS_INPUT``;
the agent then writes the outputs on its own.  ``is_complete`` stamps
provenance on outputs written by the agent and closes the window once all
of them are ready.

Prompt bindings (Python format syntax)::

    {skill_path}   {project_dir}  {workflow_dir}  {skills_dir}
    {module_id}    {module_name}
    {inputs}       {inputs[0].path}   {inputs[0].id}
    {outputs}      {outputs[1].path}
    {config[key]}  {variables[name]}

``{inputs}`` and ``{outputs}`` render as comma-separated paths.
"""

from __future__ import annotations

import logging
import re
import string
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from lattice.core import catalog
from lattice.core.filesystem import PathKind
from lattice.core.module import BaseModule, ModuleContext, ModuleFactory
from lattice.core.runtime import ensure_artifact, with_inputs
from lattice.errors import (
    ArtifactIOError,
    DefinitionError,
    LatticeError,
    ModuleRunFailure,
)
from lattice.models.artifacts import ArtifactKind, ArtifactRef, ArtifactState
from lattice.models.modules import ModuleInfo, ModuleResult
from lattice.models.plugins import ArtifactBinding, ModuleDefinition
from lattice.plugins import skills
from lattice.plugins.terminal import Terminal

logger = logging.getLogger(__name__)

TerminalFactory = Callable[[], Terminal]

_WINDOW_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")
_FIELD_PARTS = re.compile(r"[.\[\]]")


def sanitize_window_name(name: str) -> str:
    """Collapse characters tmux dislikes to ``-``.

    Examples
    --------
    >>> sanitize_window_name("  staff review #2 ")
    'staff-review-2'
    """
    clean = _WINDOW_UNSAFE.sub("-", name.strip()).strip("-")
    return clean or "skill-module"


def resolve_bindings(bindings: Sequence[ArtifactBinding]) -> list[ArtifactRef]:
    """Catalog refs for ``bindings``; the binding may override ``optional``."""
    refs: list[ArtifactRef] = []
    for binding in bindings:
        ref = catalog.require(binding.artifact)
        if binding.optional is not None:
            ref = ref.with_optional(binding.optional)
        refs.append(ref)
    return refs


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any] | None) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for source in (base, override or {}):
        for key, value in source.items():
            if str(key).strip():
                merged[str(key).strip()] = value
    return merged


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------


class PromptArtifact(BaseModel):
    """Artifact as seen by prompt templates; formats as its path."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: ArtifactKind
    path: str
    optional: bool = False

    def __str__(self) -> str:
        return self.path


class PromptArtifacts(list):
    """List of :class:`PromptArtifact` that formats as ``path, path``."""

    def __str__(self) -> str:
        return ", ".join(item.path for item in self)


class _PromptFormatter(string.Formatter):
    """``str.format`` that refuses private attribute or key access."""

    def get_field(self, field_name: str, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        if any(part.startswith("_") for part in _FIELD_PARTS.split(field_name) if part):
            raise ModuleRunFailure(f"prompt field {field_name!r} is not allowed")
        return super().get_field(field_name, args, kwargs)


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


class SkillModule(BaseModule):
    """Module backed by a skill prompt and an agent session.

    Parameters
    ----------
    definition:
        Validated plugin or built-in definition.
    terminal:
        Session control used to launch the agent.
    config:
        Workflow-level config, merged over ``definition.config``.
    """

    def __init__(
        self,
        definition: ModuleDefinition,
        terminal: Terminal,
        config: Mapping[str, Any] | None = None,
    ) -> None:
        info = ModuleInfo(
            id=definition.id,
            name=definition.name or definition.id,
            version=definition.version,
            description=definition.description,
            concurrency=definition.concurrency,
        )
        super().__init__(
            info,
            inputs=resolve_bindings(definition.inputs),
            outputs=resolve_bindings(definition.outputs),
            config=merge_config(definition.config, config),
        )
        self._definition = definition
        self._terminal = terminal
        self._window = ""

    @property
    def definition(self) -> ModuleDefinition:
        return self._definition

    @property
    def window(self) -> str:
        """Name of the in-flight session window, or ``""``."""
        return self._window

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def execute(self, ctx: ModuleContext) -> ModuleResult:
        module_id = self._info.id
        if self._window:
            return ModuleResult.needs_input(f"{module_id} running in {self._window}")

        skill_path = self.resolve_skill_path(ctx)
        prompt = self.render_prompt(ctx, skill_path)
        window = self.window_name(ctx)
        try:
            self._terminal.create_window(window, str(ctx.layout.project_dir))
        except Exception as exc:
            raise ModuleRunFailure(f"{module_id}: create window {window}: {exc}") from exc
        try:
            self._terminal.send_prompt(window, prompt, dict(self._definition.skill.env))
        except Exception as exc:
            self._terminal.kill_window(window)
            raise ModuleRunFailure(f"{module_id}: launch agent in {window}: {exc}") from exc

        self._window = window
        logger.info("%s dispatched to window %s", module_id, window)
        return ModuleResult.needs_input(f"{module_id} running in {window}")

    def is_complete(self, ctx: ModuleContext) -> bool:
        ctx.validate()
        info = self._info
        stamp = with_inputs(*self._inputs)
        ready = True
        for ref in self._outputs:
            if ref.optional and ctx.store.check(ref).state is ArtifactState.MISSING:
                continue
            ready = ensure_artifact(ctx, info.id, info.version, ref, stamp) and ready
        if not ready:
            return False
        self.stop_session()
        return True

    def stop_session(self) -> None:
        if not self._window:
            return
        self._terminal.kill_window(self._window)
        logger.info("%s closed window %s", self._info.id, self._window)
        self._window = ""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_skill_path(self, ctx: ModuleContext) -> Path:
        skill = self._definition.skill
        if skill.path.strip():
            resolved = Path(skill.path.strip())
            if not resolved.is_absolute():
                resolved = ctx.layout.project_dir / resolved
            kind = ctx.store.fs.kind(resolved)
            if kind is None:
                raise ModuleRunFailure(f"{self._info.id}: skill file {resolved} not found")
            if kind is PathKind.DIRECTORY:
                raise ModuleRunFailure(f"{self._info.id}: skill path {resolved} is a directory")
            return resolved
        if skill.slug.strip():
            try:
                return skills.materialize(ctx.store.fs, ctx.layout.skills_dir, skill.slug)
            except (DefinitionError, ArtifactIOError) as exc:
                raise ModuleRunFailure(f"{self._info.id}: {exc}") from exc
        raise ModuleRunFailure(f"{self._info.id}: skill slug or path is required")

    def bindings(self, ctx: ModuleContext, skill_path: Path) -> dict[str, Any]:
        def artifacts(refs: Sequence[ArtifactRef]) -> PromptArtifacts:
            return PromptArtifacts(
                PromptArtifact(
                    id=ref.id,
                    name=ref.name,
                    kind=ref.kind,
                    path=str(ref.resolve(ctx.layout)),
                    optional=ref.optional,
                )
                for ref in refs
            )

        return {
            "skill_path": str(skill_path),
            "inputs": artifacts(self._inputs),
            "outputs": artifacts(self._outputs),
            "config": dict(self._config),
            "variables": dict(self._definition.skill.variables),
            "project_dir": str(ctx.layout.project_dir),
            "workflow_dir": str(ctx.layout.workflow_dir),
            "skills_dir": str(ctx.layout.skills_dir),
            "module_id": self._info.id,
            "module_name": self._info.name,
        }

    def render_prompt(self, ctx: ModuleContext, skill_path: Path) -> str:
        try:
            rendered = _PromptFormatter().vformat(
                self._definition.skill.prompt, (), self.bindings(ctx, skill_path)
            )
        except LatticeError:
            raise
        except (KeyError, IndexError, AttributeError, ValueError) as exc:
            raise ModuleRunFailure(f"{self._info.id}: render prompt: {exc!r}") from exc
        return rendered.strip()

    def window_name(self, ctx: ModuleContext) -> str:
        name = self._definition.skill.window_name
        if name.strip():
            return sanitize_window_name(name)
        return f"{sanitize_window_name(self._info.id)}-{int(ctx.now().timestamp())}"


def skill_factory(definition: ModuleDefinition, terminal_factory: TerminalFactory) -> ModuleFactory:
    """Registry factory building a fresh :class:`SkillModule` per resolve."""

    def factory(config: Mapping[str, Any]) -> SkillModule:
        return SkillModule(definition, terminal_factory(), config)

    return factory
