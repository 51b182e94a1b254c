"""Class hierarchy lookups for member resolution.

Lookup order is the class itself, then its bases in declaration order,
depth-first, first match wins. The walk is bounded and cycle-safe.
"""
from typing import Dict, List, Optional, Set, Tuple

MAX_INHERITANCE_DEPTH = 32


class InheritanceMap:
    """Tracks resolved class inheritance relationships.

    Bases that could not be resolved to a project class (third-party or
    unresolvable expressions) are kept as None so lookups can report that
    the hierarchy is incomplete.
    """

    def __init__(self, bases: Dict[str, List[Optional[str]]], members: Dict[str, Dict[str, List[str]]]):
        """Build the bidirectional hierarchy.

        Args:
            bases: class identifier -> resolved base identifiers in declaration order
            members: class identifier -> member name -> member identifiers
        """
        self.bases = bases
        self.members = members
        self.children: Dict[str, List[str]] = {}
        for class_id in sorted(bases):
            for base in bases[class_id]:
                if base is not None and base != class_id:
                    self.children.setdefault(base, []).append(class_id)

    def lookup(self, class_id: str, name: str, skip_self: bool = False) -> Tuple[List[str], bool]:
        """Find the member a name denotes on instances of class_id.

        Args:
            class_id: Class to start from
            name: Member name
            skip_self: Start at the bases (super() calls)

        Returns:
            (member identifiers, incomplete) where incomplete is True when an
            unresolved base was passed over before a match was found
        """
        visited: Set[str] = set()
        incomplete = False

        def visit(current: str, depth: int) -> Optional[List[str]]:
            nonlocal incomplete
            if depth > MAX_INHERITANCE_DEPTH or current in visited:
                return None
            visited.add(current)
            if not (skip_self and depth == 0):
                found = self.members.get(current, {}).get(name)
                if found:
                    return found
            for base in self.bases.get(current, []):
                if base is None:
                    incomplete = True
                    continue
                found = visit(base, depth + 1)
                if found:
                    return found
            return None

        return list(visit(class_id, 0) or []), incomplete

    def overrides(self, class_id: str, name: str) -> List[str]:
        """Members named name declared by subclasses of class_id."""
        found: List[str] = []
        visited = {class_id}
        frontier = [(child, 1) for child in self.children.get(class_id, [])]
        while frontier:
            current, depth = frontier.pop(0)
            if current in visited or depth > MAX_INHERITANCE_DEPTH:
                continue
            visited.add(current)
            found.extend(self.members.get(current, {}).get(name, []))
            frontier.extend((child, depth + 1) for child in self.children.get(current, []))
        return sorted(set(found))

    def participates(self, class_id: str) -> bool:
        """True if the class has declared bases or known subclasses."""
        return bool(self.bases.get(class_id)) or bool(self.children.get(class_id))
