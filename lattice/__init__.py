"""Lattice: a file-backed workflow engine for agent-driven pipelines.

Modules declare the artifacts they read and write under
``.lattice/workflow/``; the engine derives readiness from what is on disk,
hands out claims under slot and exclusivity budgets, and persists its
snapshot so several workers can cooperate.
"""

__version__ = "0.1.0"

from lattice.core.engine import Engine
from lattice.core.layout import WorkflowLayout
from lattice.core.registry import ModuleRegistry
from lattice.core.worker import Worker

__all__ = ["Engine", "ModuleRegistry", "Worker", "WorkflowLayout", "__version__"]
