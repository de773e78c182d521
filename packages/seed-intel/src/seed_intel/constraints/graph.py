"""Table dependency graph built from discovered business rules."""

import logging
from dataclasses import dataclass, field

from seed_intel.exceptions import CircularDependencyError
from seed_intel.models import TableDependency

logger = logging.getLogger(__name__)

# Lower priority edges are dropped first when breaking cycles
EDGE_PRIORITY = {"conditional": 0, "optional": 1, "required": 2}


@dataclass
class GraphNode:
    """
    One table of the dependency graph.

    Attributes:
        table: Table name
        dependencies: Tables that must be populated before this one
        dependents: Tables that need this one
    """

    table: str
    dependencies: set[str] = field(default_factory=set)
    dependents: set[str] = field(default_factory=set)


def _edge_key(edge: TableDependency) -> tuple[int, str, str]:
    return (EDGE_PRIORITY[edge.relationship], edge.from_table, edge.to_table)


class DependencyGraph:
    """
    Directed graph of "table needs table" edges.

    Cycles are reported in `cycles` and broken by dropping the lowest
    priority edge of each cycle (conditional < optional < required, ties by
    table names). The dropped edges are kept in `broken_edges`.

    Example:
        >>> graph = DependencyGraph.from_dependencies([
        ...     TableDependency("memberships", "accounts", "required", "check_account"),
        ... ])
        >>> graph.creation_order
        ['accounts', 'memberships']
    """

    def __init__(self) -> None:
        self.nodes: dict[str, GraphNode] = {}
        self._edges: dict[tuple[str, str], TableDependency] = {}
        self.cycles: list[list[str]] = []
        self.broken_edges: list[TableDependency] = []
        self.creation_order: list[str] = []
        self._resolved = True

    @classmethod
    def from_dependencies(
        cls, dependencies: list[TableDependency], tables: tuple[str, ...] | list[str] = ()
    ) -> "DependencyGraph":
        """
        Build and resolve a graph.

        Args:
            dependencies: Dependency edges
            tables: Extra tables to include even without edges

        Returns:
            Resolved DependencyGraph
        """
        graph = cls()
        for table in tables:
            graph.add_table(table)
        for dependency in dependencies:
            graph.add_dependency(dependency)
        graph.resolve()
        return graph

    @property
    def edges(self) -> list[TableDependency]:
        """Active edges (after cycle breaking), sorted by (from, to)."""
        self._ensure_resolved()
        return [self._edges[key] for key in sorted(self._edges)]

    def add_table(self, table: str) -> None:
        """Add a table to the graph."""
        if table not in self.nodes:
            self.nodes[table] = GraphNode(table=table)
            self._resolved = False

    def add_dependency(self, dependency: TableDependency) -> None:
        """
        Add an edge: dependency.from_table depends on dependency.to_table.

        Self references are ignored. When the same pair is added twice the
        higher priority edge is kept.
        """
        if dependency.from_table == dependency.to_table:
            return
        self.add_table(dependency.from_table)
        self.add_table(dependency.to_table)

        key = (dependency.from_table, dependency.to_table)
        existing = self._edges.get(key)
        if existing is None or _edge_key(dependency) > _edge_key(existing):
            self._edges[key] = dependency
        self.nodes[dependency.from_table].dependencies.add(dependency.to_table)
        self.nodes[dependency.to_table].dependents.add(dependency.from_table)
        self._resolved = False

    def get_dependencies(self, table: str) -> list[str]:
        """Get direct dependencies of a table (sorted)."""
        self._ensure_resolved()
        node = self.nodes.get(table)
        return sorted(node.dependencies) if node else []

    def get_dependents(self, table: str) -> list[str]:
        """Get tables directly depending on a table (sorted)."""
        self._ensure_resolved()
        node = self.nodes.get(table)
        return sorted(node.dependents) if node else []

    def dependencies_of(self, table: str) -> list[str]:
        """
        Get all transitive dependencies of a table.

        Returns:
            Tables in creation order, excluding table itself
        """
        self._ensure_resolved()
        seen: set[str] = set()
        pending = list(self.get_dependencies(table))
        while pending:
            current = pending.pop()
            if current in seen or current == table:
                continue
            seen.add(current)
            pending.extend(self.get_dependencies(current))
        return [t for t in self.creation_order if t in seen]

    def topological_sort(self, strict: bool = False) -> list[str]:
        """
        Get tables in creation order (dependencies before dependents).

        Args:
            strict: Raise instead of returning an order with broken cycles

        Returns:
            Table names

        Raises:
            CircularDependencyError: If strict and the graph had cycles
        """
        self._ensure_resolved()
        if strict and self.cycles:
            raise CircularDependencyError({t for cycle in self.cycles for t in cycle})
        return list(self.creation_order)

    def resolve(self) -> None:
        """Break cycles and compute the creation order."""
        while True:
            cycle = self._find_cycle()
            if cycle is None:
                break
            self.cycles.append(cycle)
            pairs = zip(cycle, cycle[1:] + cycle[:1])
            weakest = min((self._edges[pair] for pair in pairs), key=_edge_key)
            self._drop_edge(weakest)
            logger.warning(
                f"Circular dependency {' -> '.join(cycle + cycle[:1])}, "
                f"dropping {weakest.relationship} edge "
                f"{weakest.from_table} -> {weakest.to_table}"
            )

        # Iterative post-order DFS: dependencies before dependents
        order: list[str] = []
        visited: set[str] = set()
        for root in sorted(self.nodes):
            if root in visited:
                continue
            visited.add(root)
            stack = [(root, iter(sorted(self.nodes[root].dependencies)))]
            while stack:
                table, pending = stack[-1]
                dependency = next((d for d in pending if d not in visited), None)
                if dependency is None:
                    stack.pop()
                    order.append(table)
                    continue
                visited.add(dependency)
                stack.append((dependency, iter(sorted(self.nodes[dependency].dependencies))))

        self.creation_order = order
        self._resolved = True

    def _ensure_resolved(self) -> None:
        if not self._resolved:
            self.resolve()

    def _drop_edge(self, edge: TableDependency) -> None:
        del self._edges[(edge.from_table, edge.to_table)]
        self.nodes[edge.from_table].dependencies.discard(edge.to_table)
        self.nodes[edge.to_table].dependents.discard(edge.from_table)
        self.broken_edges.append(edge)

    def _find_cycle(self) -> list[str] | None:
        """Find one cycle with an iterative visited/visiting DFS (sorted, so deterministic)."""
        done: set[str] = set()

        for root in sorted(self.nodes):
            if root in done:
                continue
            path = [root]
            position = {root: 0}
            stack = [iter(sorted(self.nodes[root].dependencies))]
            while stack:
                dependency = next(stack[-1], None)
                if dependency is None:
                    stack.pop()
                    table = path.pop()
                    del position[table]
                    done.add(table)
                elif dependency in position:
                    return path[position[dependency] :]
                elif dependency not in done:
                    position[dependency] = len(path)
                    path.append(dependency)
                    stack.append(iter(sorted(self.nodes[dependency].dependencies)))
        return None
