"""Tests for DependencyGraph."""

import pytest

from seed_intel.constraints.graph import DependencyGraph
from seed_intel.exceptions import CircularDependencyError
from seed_intel.models import TableDependency


def edge(from_table: str, to_table: str, relationship: str = "required") -> TableDependency:
    return TableDependency(from_table, to_table, relationship, f"{from_table}_trigger")


class TestDependencyGraphOrder:
    """Tests for creation order."""

    def test_simple_chain(self) -> None:
        """Test dependencies come before dependents."""
        graph = DependencyGraph.from_dependencies(
            [edge("invitations", "accounts_memberships"), edge("accounts_memberships", "accounts")]
        )

        assert graph.topological_sort() == ["accounts", "accounts_memberships", "invitations"]
        assert graph.cycles == []

    def test_isolated_tables_included(self) -> None:
        """Test tables without edges are still ordered."""
        graph = DependencyGraph.from_dependencies(
            [edge("posts", "users")], tables=("tags", "posts", "users")
        )

        order = graph.topological_sort()

        assert set(order) == {"posts", "tags", "users"}
        assert order.index("users") < order.index("posts")

    def test_deterministic(self) -> None:
        """Test order does not depend on edge insertion order."""
        edges = [edge("b", "a"), edge("c", "a"), edge("d", "c")]

        first = DependencyGraph.from_dependencies(edges).topological_sort()
        second = DependencyGraph.from_dependencies(list(reversed(edges))).topological_sort()

        assert first == second

    def test_long_chain(self) -> None:
        """Test a chain deeper than the interpreter recursion limit is ordered."""
        tables = [f"t{i:05d}" for i in range(5000)]
        edges = [edge(table, dependency) for table, dependency in zip(tables, tables[1:])]

        graph = DependencyGraph.from_dependencies(edges)

        assert graph.topological_sort() == list(reversed(tables))
        assert graph.cycles == []

    def test_self_reference_ignored(self) -> None:
        """Test self references never create an edge."""
        graph = DependencyGraph.from_dependencies([edge("accounts", "accounts")])

        assert graph.edges == []
        assert graph.cycles == []

    def test_duplicate_pair_keeps_stronger_edge(self) -> None:
        """Test the higher priority edge wins for the same pair."""
        graph = DependencyGraph.from_dependencies(
            [edge("b", "a", "conditional"), edge("b", "a", "required")]
        )

        assert [e.relationship for e in graph.edges] == ["required"]


class TestDependencyGraphQueries:
    """Tests for dependency lookups."""

    def test_direct_and_transitive(self) -> None:
        """Test direct and transitive dependencies."""
        graph = DependencyGraph.from_dependencies([edge("c", "b"), edge("b", "a")])

        assert graph.get_dependencies("c") == ["b"]
        assert graph.get_dependents("a") == ["b"]
        assert graph.dependencies_of("c") == ["a", "b"]
        assert graph.get_dependencies("unknown") == []

    def test_incremental_add(self) -> None:
        """Test edges added after construction are resolved lazily."""
        graph = DependencyGraph()
        graph.add_dependency(edge("posts", "users"))

        assert graph.topological_sort() == ["users", "posts"]


class TestDependencyGraphCycles:
    """Tests for cycle breaking."""

    def test_breaks_weakest_edge(self) -> None:
        """Test the conditional edge of a cycle is dropped."""
        graph = DependencyGraph.from_dependencies(
            [
                edge("accounts", "accounts_memberships", "conditional"),
                edge("accounts_memberships", "accounts", "required"),
            ]
        )

        assert len(graph.cycles) == 1
        assert set(graph.cycles[0]) == {"accounts", "accounts_memberships"}
        assert [(e.from_table, e.to_table) for e in graph.broken_edges] == [
            ("accounts", "accounts_memberships")
        ]
        assert graph.topological_sort() == ["accounts", "accounts_memberships"]

    def test_three_table_cycle(self) -> None:
        """Test every table still appears once after breaking a longer cycle."""
        graph = DependencyGraph.from_dependencies(
            [edge("a", "b"), edge("b", "c", "optional"), edge("c", "a")]
        )

        order = graph.topological_sort()

        assert sorted(order) == ["a", "b", "c"]
        assert graph.broken_edges[0].relationship == "optional"
        assert order.index("a") < order.index("c")
        assert order.index("b") < order.index("a")

    def test_long_cycle(self) -> None:
        """Test a cycle through thousands of tables is found and broken."""
        tables = [f"t{i:05d}" for i in range(5000)]
        edges = [edge(table, dependency) for table, dependency in zip(tables, tables[1:])]
        edges.append(edge(tables[-1], tables[0], "conditional"))

        graph = DependencyGraph.from_dependencies(edges)

        assert len(graph.cycles) == 1
        assert len(graph.cycles[0]) == 5000
        assert [(e.from_table, e.to_table) for e in graph.broken_edges] == [
            (tables[-1], tables[0])
        ]
        assert graph.topological_sort() == list(reversed(tables))

    def test_strict_raises(self) -> None:
        """Test strict ordering refuses graphs that had cycles."""
        graph = DependencyGraph.from_dependencies([edge("a", "b"), edge("b", "a")])

        with pytest.raises(CircularDependencyError, match="a, b"):
            graph.topological_sort(strict=True)

    def test_strict_without_cycles(self) -> None:
        """Test strict ordering succeeds on acyclic graphs."""
        graph = DependencyGraph.from_dependencies([edge("b", "a")])

        assert graph.topological_sort(strict=True) == ["a", "b"]
