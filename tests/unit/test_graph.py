"""Tests for the DependencyGraph -- DAG validation, ordering, dependents."""

from __future__ import annotations

import pytest

from lattice.core.graph import DependencyGraph
from lattice.errors import CyclicDependencyError, DefinitionError


@pytest.fixture
def graph() -> DependencyGraph:
    """Diamond: plan -> (review, staff) -> merge, plus an independent node."""
    return DependencyGraph(
        ["merge", "review", "staff", "plan", "solo"],
        {
            "review": ["plan"],
            "staff": ["plan"],
            "merge": ["review", "staff"],
        },
    )


class TestDependencyGraph:
    def test_declared_order_kept(self, graph: DependencyGraph):
        assert graph.order == ["merge", "review", "staff", "plan", "solo"]

    def test_dependencies(self, graph: DependencyGraph):
        assert graph.dependencies("merge") == ["review", "staff"]
        assert graph.dependencies("plan") == []
        assert graph.dependencies("ghost") == []

    def test_transitive_dependents(self, graph: DependencyGraph):
        assert graph.dependents("plan") == ["review", "staff", "merge"]
        assert graph.dependents("merge") == []

    def test_topological_order(self, graph: DependencyGraph):
        order = graph.topological_order()
        assert order.index("plan") < order.index("review") < order.index("merge")
        assert order.index("staff") < order.index("merge")
        assert sorted(order) == sorted(graph.order)

    def test_ties_follow_declared_order(self):
        graph = DependencyGraph(["c", "b", "a"], {})
        assert graph.topological_order() == ["c", "b", "a"]


class TestValidation:
    def test_cycle_rejected(self):
        with pytest.raises(CyclicDependencyError, match="a, b"):
            DependencyGraph(["a", "b", "c"], {"a": ["b"], "b": ["a"]})

    def test_self_loop_rejected(self):
        with pytest.raises(CyclicDependencyError):
            DependencyGraph(["a"], {"a": ["a"]})

    def test_unknown_dependency(self):
        with pytest.raises(DefinitionError, match="unknown instance 'ghost'"):
            DependencyGraph(["a"], {"a": ["ghost"]})

    def test_cycle_is_definition_error(self):
        assert issubclass(CyclicDependencyError, DefinitionError)
