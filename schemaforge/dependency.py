"""Foreign-key dependency graph between tables."""

from collections import defaultdict, deque

from schemaforge.models import TableSchema


class DependencyGraph:
    """Directed graph for table dependencies."""

    def __init__(self):
        self._graph: dict[str, set[str]] = defaultdict(set)
        self._tables: set[str] = set()

    @classmethod
    def from_tables(cls, tables: list[TableSchema]) -> "DependencyGraph":
        """Build a graph from the foreign keys of compiled tables."""
        graph = cls()
        for table in tables:
            graph.add_table(table.name)
            for fk in table.foreign_keys:
                # Self references do not constrain ordering
                if fk.referenced_table != table.name:
                    graph.add_dependency(table.name, fk.referenced_table)
        return graph

    def add_table(self, table: str) -> None:
        """Add a table to the graph."""
        self._tables.add(table)
        if table not in self._graph:
            self._graph[table] = set()

    def add_dependency(self, table: str, depends_on: str) -> None:
        """Add a dependency: table depends on depends_on."""
        self._tables.add(table)
        self._tables.add(depends_on)
        self._graph[table].add(depends_on)

    def get_dependents(self, table: str) -> list[str]:
        """Get every table that directly or transitively depends on this table."""
        found: set[str] = set()
        queue = deque([table])
        while queue:
            current = queue.popleft()
            for other in self._tables:
                if current in self._graph[other] and other not in found:
                    found.add(other)
                    queue.append(other)
        found.discard(table)
        return sorted(found)
