"""Dependency graph between cells and named references.

Nodes are string ids: `Sheet1!A1` for cells and `@name` for named
references. Edges run from a precedent (the cell being read) to its
dependents (the formulas reading it).
"""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

NAME_PREFIX = "@"


def name_node(name: str) -> str:
    return f"{NAME_PREFIX}{name}"


def is_name_node(node: str) -> bool:
    return node.startswith(NAME_PREFIX)


class DependencyGraph:
    """Adjacency sets in both directions, keyed by node id."""

    def __init__(self):
        self.precedents: Dict[str, Set[str]] = {}
        self.dependents: Dict[str, Set[str]] = {}

    def __contains__(self, node: str) -> bool:
        return node in self.precedents or node in self.dependents

    def __len__(self) -> int:
        return len(set(self.precedents) | set(self.dependents))

    @property
    def edge_count(self) -> int:
        return sum(len(sources) for sources in self.precedents.values())

    def set_precedents(self, node: str, sources: Iterable[str]) -> None:
        """Replace every edge into node with edges from sources."""
        self.remove(node)
        sources = set(sources)
        if not sources:
            return
        self.precedents[node] = sources
        for source in sources:
            self.dependents.setdefault(source, set()).add(node)

    def remove(self, node: str) -> None:
        """Drop node's own references; cells that read node keep their edges."""
        for source in self.precedents.pop(node, set()):
            readers = self.dependents.get(source)
            if readers is None:
                continue
            readers.discard(node)
            if not readers:
                del self.dependents[source]

    def clear(self) -> None:
        self.precedents.clear()
        self.dependents.clear()

    def precedents_of(self, node: str) -> Set[str]:
        return set(self.precedents.get(node, ()))

    def dependents_of(self, node: str) -> Set[str]:
        return set(self.dependents.get(node, ()))

    def dependents_closure(self, roots: Iterable[str]) -> Set[str]:
        """Roots plus every node that transitively reads one of them."""
        seen: Set[str] = set()
        stack = list(roots)
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self.dependents.get(node, ()))
        return seen

    def topological_order(self, nodes: Iterable[str]) -> Tuple[List[str], Set[str]]:
        """Kahn's algorithm restricted to the given node set.

        Returns the evaluation order and the nodes that could not be
        ordered because they sit on, or downstream of, a cycle.
        """
        nodes = set(nodes)
        in_degree: Dict[str, int] = {
            node: len(self.precedents.get(node, set()) & nodes) for node in nodes
        }
        queue = deque(sorted(node for node, degree in in_degree.items() if degree == 0))
        order: List[str] = []

        while queue:
            node = queue.popleft()
            order.append(node)
            for neighbor in sorted(self.dependents.get(node, ())):
                if neighbor not in in_degree:
                    continue
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        leftover = nodes - set(order)
        return order, leftover

    def cycle_members(self, nodes: Iterable[str]) -> Set[str]:
        """Nodes that can reach themselves through edges inside nodes."""
        nodes = set(nodes)
        members: Set[str] = set()
        for start in nodes:
            if start in members:
                continue
            seen: Set[str] = set()
            stack = [n for n in self.dependents.get(start, ()) if n in nodes]
            while stack:
                node = stack.pop()
                if node == start:
                    members.add(start)
                    break
                if node in seen:
                    continue
                seen.add(node)
                stack.extend(n for n in self.dependents.get(node, ()) if n in nodes)
        return members
