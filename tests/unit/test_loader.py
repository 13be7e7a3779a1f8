"""Tests for plugin definition parsing and the PluginLoader."""

from __future__ import annotations

from pathlib import Path

import pytest

from lattice.core.registry import ModuleRegistry
from lattice.errors import DuplicateModuleError, PluginDefinitionError
from lattice.plugins.loader import PluginLoader, parse_definition
from lattice.plugins.skill_module import SkillModule

API_REVIEW = """\
id: api-review
version: 1.0.0
name: API review
skill:
  slug: lattice-review
  prompt: "Follow {skill_path}. Read {inputs}. Write {outputs}."
inputs:
  - modules-doc
outputs:
  - artifact: review-skeptic
"""

INTERPRETED = """\
def ModuleDefinitions():
    base = {"version": "1.0.0", "skill": {"slug": "lattice-review", "prompt": "Write {outputs}"}}
    first = dict(base, id="lint-review", outputs=["review-pragmatist"])
    second = dict(base, id="docs-review", outputs=["review-advocate"])
    return [first, second]
"""


def definition(**overrides):
    data = {
        "id": "api-review",
        "version": "1.0.0",
        "skill": {"slug": "lattice-review", "prompt": "Write {outputs}"},
        "outputs": ["review-skeptic"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def modules_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".lattice" / "modules"
    path.mkdir(parents=True)
    return path


class TestParseDefinition:
    def test_valid(self):
        parsed = parse_definition(definition(name="  API review  "), "a.yaml")
        assert parsed.id == "api-review"
        assert parsed.name == "API review"
        assert [b.artifact for b in parsed.outputs] == ["review-skeptic"]

    def test_whitespace_trimmed(self):
        parsed = parse_definition(
            definition(id=" api-review ", outputs=[" review-skeptic "]), "a.yaml"
        )
        assert parsed.id == "api-review"
        assert parsed.outputs[0].artifact == "review-skeptic"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"id": " "}, "id is required"),
            ({"version": ""}, "version is required"),
            ({"skill": {"slug": "lattice-review"}}, "prompt is required"),
            (
                {"skill": {"slug": "lattice-review", "path": "s.md", "prompt": "p"}},
                "exactly one of slug or path",
            ),
            ({"skill": {"prompt": "p"}}, "exactly one of slug or path"),
            ({"skill": {"slug": "a/b", "prompt": "p"}}, "path separator"),
            ({"skill": {"slug": "ghost", "prompt": "p"}}, "not bundled"),
            ({"outputs": []}, "at least one output"),
            ({"outputs": ["review-skeptic", "review-skeptic"]}, "duplicate artifact"),
            ({"inputs": ["no-such-artifact"]}, "no-such-artifact"),
            ({"surprise": True}, "invalid definition"),
        ],
    )
    def test_invalid(self, overrides, message):
        with pytest.raises(PluginDefinitionError, match=message):
            parse_definition(definition(**overrides), "a.yaml")

    def test_not_a_mapping(self):
        with pytest.raises(PluginDefinitionError, match="mapping"):
            parse_definition(["id", "x"], "a.yaml")

    def test_optional_override(self, make_terminal):
        parsed = parse_definition(
            definition(outputs=[{"artifact": "review-skeptic", "optional": True}]), "a.yaml"
        )
        module = SkillModule(parsed, make_terminal())
        assert module.outputs()[0].optional is True


class TestDiscover:
    def test_missing_directory(self, tmp_path: Path):
        assert PluginLoader(tmp_path / "absent").discover() == []

    def test_yaml_and_interpreted(self, modules_dir: Path):
        (modules_dir / "api-review.yaml").write_text(API_REVIEW, encoding="utf-8")
        (modules_dir / "reviews.py").write_text(INTERPRETED, encoding="utf-8")
        (modules_dir / "notes.txt").write_text("ignored", encoding="utf-8")
        loaded = PluginLoader(modules_dir).discover()
        assert [item.definition.id for item in loaded] == ["api-review", "lint-review", "docs-review"]
        assert loaded[1].source.endswith("reviews.py#0")
        assert loaded[2].source.endswith("reviews.py#1")

    def test_interpreted_disabled(self, modules_dir: Path):
        (modules_dir / "reviews.py").write_text(INTERPRETED, encoding="utf-8")
        assert PluginLoader(modules_dir, allow_interpreted=False).discover() == []

    def test_duplicate_ids_name_both_sources(self, modules_dir: Path):
        (modules_dir / "a.yaml").write_text(API_REVIEW, encoding="utf-8")
        (modules_dir / "b.yml").write_text(API_REVIEW, encoding="utf-8")
        with pytest.raises(PluginDefinitionError, match="duplicate module id") as info:
            PluginLoader(modules_dir).discover()
        assert "a.yaml" in str(info.value)
        assert "b.yml" in str(info.value)

    def test_empty_file(self, modules_dir: Path):
        (modules_dir / "a.yaml").write_text("  \n", encoding="utf-8")
        with pytest.raises(PluginDefinitionError, match="empty"):
            PluginLoader(modules_dir).discover()

    def test_invalid_yaml(self, modules_dir: Path):
        (modules_dir / "a.yaml").write_text("id: [unclosed\n", encoding="utf-8")
        with pytest.raises(PluginDefinitionError, match="invalid YAML"):
            PluginLoader(modules_dir).discover()

    def test_forbidden_import(self, modules_dir: Path):
        (modules_dir / "evil.py").write_text(
            "import os\n\ndef ModuleDefinitions():\n    return []\n", encoding="utf-8"
        )
        with pytest.raises(PluginDefinitionError, match="'os'"):
            PluginLoader(modules_dir).discover()


class TestLoadInto:
    def test_registers_skill_modules(
        self, modules_dir: Path, registry: ModuleRegistry, make_terminal
    ):
        (modules_dir / "api-review.yaml").write_text(API_REVIEW, encoding="utf-8")
        PluginLoader(modules_dir).load_into(registry, make_terminal)
        module = registry.resolve("api-review")
        assert isinstance(module, SkillModule)
        assert [ref.id for ref in module.inputs()] == ["modules-doc"]
        assert module.info().name == "API review"

    def test_unknown_artifact_leaves_registry_unchanged(
        self, modules_dir: Path, registry: ModuleRegistry, make_stub, make_terminal
    ):
        registry.register("anchor-docs", make_stub("anchor-docs", outputs=["commission-doc"]))
        (modules_dir / "a.yaml").write_text(API_REVIEW, encoding="utf-8")
        (modules_dir / "b.yaml").write_text(
            API_REVIEW.replace("api-review", "bad-review").replace(
                "review-skeptic", "review-nonexistent"
            ),
            encoding="utf-8",
        )
        with pytest.raises(PluginDefinitionError, match="review-nonexistent"):
            PluginLoader(modules_dir).load_into(registry, make_terminal)
        assert registry.ids() == ["anchor-docs"]

    def test_collision_with_registered_module(
        self, modules_dir: Path, registry: ModuleRegistry, make_stub, make_terminal
    ):
        registry.register("api-review", make_stub("api-review"))
        (modules_dir / "api-review.yaml").write_text(API_REVIEW, encoding="utf-8")
        with pytest.raises(DuplicateModuleError, match="api-review"):
            PluginLoader(modules_dir).load_into(registry, make_terminal)
        assert registry.ids() == ["api-review"]

    def test_rollback_on_registration_failure(
        self,
        modules_dir: Path,
        registry: ModuleRegistry,
        make_terminal,
        monkeypatch: pytest.MonkeyPatch,
    ):
        (modules_dir / "reviews.py").write_text(INTERPRETED, encoding="utf-8")
        real_register = registry.register

        def flaky(module_id, factory):
            if module_id == "docs-review":
                raise RuntimeError("registry unavailable")
            real_register(module_id, factory)

        monkeypatch.setattr(registry, "register", flaky)
        with pytest.raises(RuntimeError):
            PluginLoader(modules_dir).load_into(registry, make_terminal)
        assert registry.ids() == []
