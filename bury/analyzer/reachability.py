"""Reachability traversal over a frozen CallGraph.

Phase one is a breadth-first walk over resolved edges. Phase two treats each
unresolved reference of a visited node as a possible use of every Definition
with the same name and keeps walking from those, tagging everything it
reaches as speculative.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .graph_builder import CallGraph, ResolvedReference


@dataclass
class Reachability:
    """Traversal outcome. order preserves discovery order."""
    order: List[str] = field(default_factory=list)
    visited: Set[str] = field(default_factory=set)
    speculative: Dict[str, ResolvedReference] = field(default_factory=dict)
    dead: List[str] = field(default_factory=list)

    def is_reachable(self, node: str) -> bool:
        return node in self.visited


class ReachabilityAnalyzer:
    """Partition the graph's Definitions into reachable and dead."""

    def __init__(self, graph: CallGraph, follow_unresolved: bool = True):
        self.graph = graph
        self.follow_unresolved = follow_unresolved

    def analyze(self, roots: Iterable[str]) -> Reachability:
        """Traverse from roots.

        Args:
            roots: Root node identifiers; unknown identifiers are ignored

        Returns:
            Reachability with the visited nodes, speculative reaches (node ->
            triggering unresolved reference) and sorted dead Definitions
        """
        result = Reachability()
        seeds = sorted(r for r in set(roots) if r in self.graph)
        for seed in seeds:
            self._mark(result, seed, None)
        self._walk(result, seeds, None)

        if self.follow_unresolved:
            index = 0
            # order keeps growing; every visited node has its unresolved references scanned once
            while index < len(result.order):
                node = result.order[index]
                index += 1
                for resolution in self.graph.unresolved_from(node):
                    for target in self.graph.definitions_named(resolution.reference.name):
                        if target not in result.visited:
                            self._mark(result, target, resolution)
                            self._walk(result, [target], resolution)

        result.dead = sorted(i for i in self.graph.definitions if i not in result.visited)
        return result

    @staticmethod
    def _mark(result: Reachability, node: str, trigger: Optional[ResolvedReference]):
        result.visited.add(node)
        result.order.append(node)
        if trigger is not None:
            result.speculative[node] = trigger

    def _walk(self, result: Reachability, start: List[str], trigger: Optional[ResolvedReference]):
        frontier = deque(start)
        while frontier:
            node = frontier.popleft()
            for successor in self.graph.successors(node):
                if successor not in result.visited:
                    self._mark(result, successor, trigger)
                    frontier.append(successor)


def reachable_from(graph: CallGraph, roots: Iterable[str], follow_unresolved: bool = True) -> Set[str]:
    """Set of nodes reachable from roots."""
    return ReachabilityAnalyzer(graph, follow_unresolved).analyze(roots).visited
