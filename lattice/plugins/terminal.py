"""Terminal seam: how skill modules open agent sessions.

The only integration point with the agent-orchestration collaborator.
:class:`TmuxTerminal` opens a tmux window per session and types the agent
command into it; tests inject a recording terminal instead.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from lattice.errors import ModuleRunFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class Terminal(Protocol):
    """Window-oriented session control used by :class:`SkillModule`."""

    def create_window(self, name: str, directory: str) -> None: ...

    def send_prompt(self, window: str, prompt: str, env: Mapping[str, str]) -> None: ...

    def kill_window(self, name: str) -> None: ...


def format_env_prefix(env: Mapping[str, str]) -> str:
    """``KEY='value'`` pairs sorted by key, shell-quoted."""
    parts = [
        f"{key.strip()}={shlex.quote(value)}"
        for key, value in env.items()
        if key.strip()
    ]
    return " ".join(sorted(parts))


class TmuxTerminal:
    """Terminal backed by ``tmux`` windows in the current session.

    Parameters
    ----------
    binary:
        tmux executable.
    agent_command:
        Command typed into the window, followed by the quoted prompt.

    Examples
    --------
    >>> terminal = TmuxTerminal(agent_command="opencode --prompt")
    >>> terminal.command_line("Read SKILL.md", {"DEPTH": "2"})
    "DEPTH=2 opencode --prompt 'Read SKILL.md'"
    """

    def __init__(self, binary: str = "tmux", agent_command: str = "opencode --prompt") -> None:
        self._binary = binary
        self._agent_command = agent_command

    def command_line(self, prompt: str, env: Mapping[str, str]) -> str:
        flat = " ".join(prompt.split())
        command = f"{self._agent_command} {shlex.quote(flat)}"
        prefix = format_env_prefix(env)
        return f"{prefix} {command}" if prefix else command

    def create_window(self, name: str, directory: str) -> None:
        args = [self._binary, "new-window", "-n", name]
        if directory.strip():
            args += ["-c", directory]
        self._run(args, f"create tmux window {name}")

    def send_prompt(self, window: str, prompt: str, env: Mapping[str, str]) -> None:
        if not window.strip():
            raise ModuleRunFailure("tmux window is required")
        self._run(
            [self._binary, "send-keys", "-t", window, self.command_line(prompt, env), "Enter"],
            f"launch agent in {window}",
        )

    def kill_window(self, name: str) -> None:
        if not name.strip():
            return
        try:
            subprocess.run(
                [self._binary, "kill-window", "-t", name],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.SubprocessError, OSError):
            logger.warning("Could not close tmux window %s", name)

    def _run(self, args: list[str], action: str) -> None:
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=10)
        except (subprocess.SubprocessError, OSError) as exc:
            raise ModuleRunFailure(f"{action}: {exc}") from exc
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise ModuleRunFailure(f"{action}: {detail}")
