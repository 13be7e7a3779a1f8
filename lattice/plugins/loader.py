"""Plugin loader: module definitions from ``.lattice/modules/``.

Two kinds of source are read, in sorted path order:

- ``*.yaml`` / ``*.yml`` -- one definition per file (see
  :mod:`lattice.models.plugins` for the schema)
- ``*.py`` -- interpreted files declaring ``ModuleDefinitions()``, run in
  :mod:`lattice.plugins.sandbox`; entry ``n`` is reported as ``path#n``

Every definition is validated, then registered as a
:class:`~lattice.plugins.skill_module.SkillModule`.  Loading is
all-or-nothing: if any file or registration fails, the registry is left
as it was.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import pydantic
import yaml

from lattice.core import catalog
from lattice.core.registry import ModuleRegistry
from lattice.errors import DuplicateModuleError, PluginDefinitionError
from lattice.models.plugins import ArtifactBinding, LoadedDefinition, ModuleDefinition, SkillSpec
from lattice.plugins import sandbox, skills
from lattice.plugins.skill_module import TerminalFactory, skill_factory

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")
INTERPRETED_SUFFIX = ".py"


# ---------------------------------------------------------------------------
# Normalization and validation
# ---------------------------------------------------------------------------


def _clean_map(values: dict[str, str]) -> dict[str, str]:
    return {key.strip(): str(value).strip() for key, value in values.items() if key.strip()}


def _normalized(definition: ModuleDefinition) -> ModuleDefinition:
    skill = definition.skill
    return definition.model_copy(
        update={
            "id": definition.id.strip(),
            "version": definition.version.strip(),
            "name": definition.name.strip(),
            "description": definition.description.strip(),
            "skill": SkillSpec(
                slug=skill.slug.strip(),
                path=skill.path.strip(),
                prompt=skill.prompt.strip(),
                window_name=skill.window_name.strip(),
                env=_clean_map(skill.env),
                variables=_clean_map(skill.variables),
            ),
            "inputs": [
                binding.model_copy(update={"artifact": binding.artifact.strip()})
                for binding in definition.inputs
            ],
            "outputs": [
                binding.model_copy(update={"artifact": binding.artifact.strip()})
                for binding in definition.outputs
            ],
            "config": {str(k).strip(): v for k, v in definition.config.items() if str(k).strip()},
        }
    )


def _check_bindings(owner: str, label: str, bindings: list[ArtifactBinding], source: str) -> None:
    seen: set[str] = set()
    for index, binding in enumerate(bindings):
        if not binding.artifact:
            raise PluginDefinitionError(f"{owner}: {label}[{index}]: artifact id is required", source)
        if catalog.lookup(binding.artifact) is None:
            raise PluginDefinitionError(
                f"{owner}: {label}[{index}]: artifact {binding.artifact!r} is not registered", source
            )
        if binding.artifact in seen:
            raise PluginDefinitionError(
                f"{owner}: {label}[{index}]: duplicate artifact {binding.artifact!r}", source
            )
        seen.add(binding.artifact)


def validate_definition(definition: ModuleDefinition, source: str = "") -> ModuleDefinition:
    """Normalize and validate ``definition``; returns the normalized copy."""
    definition = _normalized(definition)
    if not definition.id:
        raise PluginDefinitionError("id is required", source)
    label = f"module {definition.id!r}"
    if not definition.version:
        raise PluginDefinitionError(f"{label}: version is required", source)

    skill = definition.skill
    if not skill.prompt:
        raise PluginDefinitionError(f"{label}: skill prompt is required", source)
    if bool(skill.slug) == bool(skill.path):
        raise PluginDefinitionError(f"{label}: skill needs exactly one of slug or path", source)
    if skill.slug:
        if os.sep in skill.slug or "/" in skill.slug:
            raise PluginDefinitionError(
                f"{label}: skill slug {skill.slug!r} contains a path separator", source
            )
        if not skills.is_bundled(skill.slug):
            raise PluginDefinitionError(f"{label}: skill {skill.slug!r} is not bundled", source)

    _check_bindings(label, "inputs", definition.inputs, source)
    _check_bindings(label, "outputs", definition.outputs, source)
    if not definition.outputs:
        raise PluginDefinitionError(f"{label}: at least one output is required", source)
    return definition


def parse_definition(data: Any, source: str = "") -> ModuleDefinition:
    """Build and validate a :class:`ModuleDefinition` from decoded data."""
    if not isinstance(data, dict):
        raise PluginDefinitionError("definition must be a mapping", source)
    try:
        definition = ModuleDefinition.model_validate(data)
    except pydantic.ValidationError as exc:
        raise PluginDefinitionError(f"invalid definition: {exc}", source) from exc
    return validate_definition(definition, source)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class PluginLoader:
    """Discovers and registers plugin module definitions.

    Parameters
    ----------
    modules_dir:
        Directory holding definition files (usually ``.lattice/modules``).
        A missing directory yields no definitions.
    allow_interpreted:
        When ``False``, ``*.py`` files are skipped with a warning.

    Examples
    --------
    >>> loader = PluginLoader(Path("/nonexistent/.lattice/modules"))
    >>> loader.discover()
    []
    """

    def __init__(self, modules_dir: Path, *, allow_interpreted: bool = True) -> None:
        self._modules_dir = Path(modules_dir)
        self._allow_interpreted = allow_interpreted

    @property
    def modules_dir(self) -> Path:
        return self._modules_dir

    def sources(self) -> list[Path]:
        """Definition files in load order."""
        if not self._modules_dir.is_dir():
            return []
        suffixes = (*YAML_SUFFIXES, INTERPRETED_SUFFIX)
        return sorted(
            path
            for path in self._modules_dir.iterdir()
            if path.is_file() and path.suffix.lower() in suffixes
        )

    def discover(self) -> list[LoadedDefinition]:
        """Read and validate every definition; raises on the first problem."""
        loaded: list[LoadedDefinition] = []
        seen: dict[str, str] = {}
        for path in self.sources():
            if path.suffix.lower() == INTERPRETED_SUFFIX:
                if not self._allow_interpreted:
                    logger.warning("Skipping interpreted plugin %s (disabled by settings)", path)
                    continue
                batch = self._load_interpreted(path)
            else:
                batch = [self._load_yaml(path)]
            for item in batch:
                definition_id = item.definition.id
                if definition_id in seen:
                    raise PluginDefinitionError(
                        f"duplicate module id {definition_id!r} "
                        f"({seen[definition_id]} and {item.source})",
                        item.source,
                    )
                seen[definition_id] = item.source
                loaded.append(item)
        return loaded

    def load_into(
        self,
        registry: ModuleRegistry,
        terminal_factory: TerminalFactory,
    ) -> list[LoadedDefinition]:
        """Register every discovered definition, or none of them."""
        loaded = self.discover()
        for item in loaded:
            if item.definition.id in registry:
                raise DuplicateModuleError(
                    f"{item.source}: module {item.definition.id!r} is already registered"
                )

        registered: list[str] = []
        try:
            for item in loaded:
                registry.register(item.definition.id, skill_factory(item.definition, terminal_factory))
                registered.append(item.definition.id)
        except Exception:
            for module_id in registered:
                registry.unregister(module_id)
            raise

        for item in loaded:
            logger.info("Registered plugin module %s from %s", item.definition.id, item.source)
        return loaded

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PluginDefinitionError(f"cannot read: {exc}", str(path)) from exc

    def _load_yaml(self, path: Path) -> LoadedDefinition:
        source = str(path)
        text = self._read(path)
        if not text.strip():
            raise PluginDefinitionError("definition file is empty", source)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise PluginDefinitionError(f"invalid YAML: {exc}", source) from exc
        return LoadedDefinition(definition=parse_definition(data, source), source=source)

    def _load_interpreted(self, path: Path) -> list[LoadedDefinition]:
        entries = sandbox.evaluate(self._read(path), str(path))
        loaded: list[LoadedDefinition] = []
        for index, entry in enumerate(entries):
            source = f"{path}#{index}"
            loaded.append(LoadedDefinition(definition=parse_definition(entry, source), source=source))
        return loaded
