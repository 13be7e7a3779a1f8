"""Tests for bundled skills, the tmux terminal and the built-in modules."""

from __future__ import annotations

import subprocess

import pytest

from lattice.core.definition import bundled_workflow
from lattice.core.filesystem import MemoryFileSystem
from lattice.core.registry import ModuleRegistry
from lattice.core.resolver import Resolver
from lattice.errors import DefinitionError, ModuleRunFailure
from lattice.models.engine import NodeStatus
from lattice.plugins import skills
from lattice.plugins.builtin import BUILTIN_DEFINITIONS, builtin_ids, register_builtins
from lattice.plugins.skill_module import SkillModule
from lattice.plugins.terminal import Terminal, TmuxTerminal, format_env_prefix


class TestBundledSkills:
    def test_slugs(self):
        assert skills.bundled_skills() == [
            "lattice-incorporate",
            "lattice-planning",
            "lattice-release",
            "lattice-review",
            "lattice-staffing",
            "lattice-work-cycle",
        ]
        assert skills.is_bundled(" lattice-review ")
        assert not skills.is_bundled("lattice")

    def test_read_unknown(self):
        with pytest.raises(DefinitionError):
            skills.read_skill("ghost")

    def test_materialize(self, layout, memory_fs: MemoryFileSystem):
        path = skills.materialize(memory_fs, layout.skills_dir, "lattice-planning")
        assert path == layout.skills_dir / "lattice-planning" / "SKILL.md"
        assert memory_fs.read_bytes(path) == skills.read_skill("lattice-planning")

    def test_materialize_all(self, layout, memory_fs: MemoryFileSystem):
        paths = skills.materialize_all(memory_fs, layout.skills_dir)
        assert len(paths) == len(skills.bundled_skills())


class TestTmuxTerminal:
    def test_satisfies_protocol(self):
        assert isinstance(TmuxTerminal(), Terminal)

    def test_command_line(self):
        terminal = TmuxTerminal(agent_command="opencode --prompt")
        line = terminal.command_line("Read  the\nskill", {"B": "two words", "A": "1"})
        assert line == "A=1 B='two words' opencode --prompt 'Read the skill'"

    def test_command_line_without_env(self):
        assert TmuxTerminal(agent_command="agent").command_line("go", {}) == "agent go"

    def test_env_prefix_skips_blank_keys(self):
        assert format_env_prefix({" ": "x", "K": "v"}) == "K=v"

    def test_failed_command_raises(self, monkeypatch: pytest.MonkeyPatch):
        calls: list[list[str]] = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="no server running")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(ModuleRunFailure, match="no server running"):
            TmuxTerminal(binary="tmux").create_window("review", "/work/app")
        assert calls == [["tmux", "new-window", "-n", "review", "-c", "/work/app"]]

    def test_send_prompt(self, monkeypatch: pytest.MonkeyPatch):
        calls: list[list[str]] = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        TmuxTerminal(agent_command="agent").send_prompt("review", "do it", {})
        assert calls == [["tmux", "send-keys", "-t", "review", "agent 'do it'", "Enter"]]

    def test_kill_window_tolerates_errors(self, monkeypatch: pytest.MonkeyPatch):
        def fake_run(args, **kwargs):
            raise FileNotFoundError("tmux")

        monkeypatch.setattr(subprocess, "run", fake_run)
        TmuxTerminal().kill_window("review")


class TestBuiltins:
    def test_ids(self):
        assert builtin_ids() == [
            "anchor-docs",
            "action-plan",
            "staff-review",
            "staff-incorporate",
            "parallel-reviews",
            "consolidation",
            "bead-creation",
            "orchestrator-selection",
            "hiring",
            "work-process",
            "refinement",
            "release",
        ]

    def test_outputs_disjoint(self):
        seen: set[str] = set()
        for definition in BUILTIN_DEFINITIONS:
            for binding in definition.outputs:
                assert binding.artifact not in seen
                seen.add(binding.artifact)

    def test_register(self, registry: ModuleRegistry, make_terminal):
        register_builtins(registry, make_terminal)
        assert registry.ids() == sorted(builtin_ids())
        assert isinstance(registry.resolve("release"), SkillModule)
        assert registry.resolve("release").info().concurrency.exclusive

    def test_bundled_workflow_resolves(self, registry: ModuleRegistry, make_terminal, ctx):
        register_builtins(registry, make_terminal)
        resolution = Resolver(bundled_workflow(), registry).resolve(ctx)
        statuses = resolution.status_map()
        assert statuses["anchor-docs"] is NodeStatus.READY
        assert all(
            status is NodeStatus.BLOCKED
            for instance_id, status in statuses.items()
            if instance_id != "anchor-docs"
        )
