"""Lattice plugins -- skill-backed modules declared in YAML or sandboxed Python.

Definitions in ``.lattice/modules/`` are validated by :class:`PluginLoader`
and registered as :class:`SkillModule` instances, which launch agents
through a :class:`Terminal`.
"""

from lattice.plugins.loader import PluginLoader
from lattice.plugins.skill_module import SkillModule
from lattice.plugins.terminal import Terminal, TmuxTerminal

__all__ = ["PluginLoader", "SkillModule", "Terminal", "TmuxTerminal"]
