"""Dependency DAG over workflow instance ids.

Built from each node's ``depends_on`` list.  Construction fails with
``CyclicDependencyError`` when the edges do not form a DAG.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence

from lattice.errors import CyclicDependencyError, DefinitionError


class DependencyGraph:
    """Directed acyclic graph of instance dependencies.

    Parameters
    ----------
    order:
        Instance ids in declared workflow order.
    dependencies:
        ``instance_id -> [instance ids it depends on]``.
    """

    def __init__(self, order: Sequence[str], dependencies: Mapping[str, Sequence[str]]) -> None:
        self._order = list(order)
        self._position = {node: i for i, node in enumerate(self._order)}
        # Forward edges: node -> its dependencies
        self._dependencies: dict[str, list[str]] = {
            node: list(dependencies.get(node, [])) for node in self._order
        }
        # Reverse edges: node -> nodes depending on it
        self._dependents: dict[str, list[str]] = {node: [] for node in self._order}
        for node, deps in self._dependencies.items():
            for dep in deps:
                if dep not in self._dependents:
                    raise DefinitionError(f"{node} depends on unknown instance {dep!r}")
                self._dependents[dep].append(node)

        self._validate_no_cycles()

    def _validate_no_cycles(self) -> None:
        """Verify the graph is a DAG using Kahn's algorithm."""
        in_degree = {node: len(deps) for node, deps in self._dependencies.items()}
        queue = deque(node for node in self._order if in_degree[node] == 0)
        visited = 0

        while queue:
            node = queue.popleft()
            visited += 1
            for dependent in self._dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if visited != len(self._order):
            stuck = sorted(node for node, deg in in_degree.items() if deg > 0)
            raise CyclicDependencyError(
                f"workflow graph has a cycle through: {', '.join(stuck)}"
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def order(self) -> list[str]:
        """Instance ids in declared order."""
        return list(self._order)

    def dependencies(self, node: str) -> list[str]:
        return list(self._dependencies.get(node, []))

    def dependents(self, node: str) -> list[str]:
        """All transitive dependents of ``node`` (BFS)."""
        result: list[str] = []
        queue = deque(self._dependents.get(node, []))
        visited: set[str] = set()
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            result.append(current)
            queue.extend(self._dependents.get(current, []))
        return result

    def topological_order(self) -> list[str]:
        """Instance ids with dependencies first; ties broken by declared order."""
        in_degree = {node: len(deps) for node, deps in self._dependencies.items()}
        queue = deque(node for node in self._order if in_degree[node] == 0)
        result: list[str] = []
        while queue:
            node = queue.popleft()
            result.append(node)
            for dependent in sorted(self._dependents[node], key=self._position.__getitem__):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
        return result
