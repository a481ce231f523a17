"""Stable topological ordering of tables over foreign-key edges."""
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from schemaport.errors import ConversionError

Edge = Tuple[str, str]  # (child, parent)


def _reaches(parents: Dict[str, Set[str]], start: str, goal: str) -> bool:
    """True when *goal* is reachable from *start* by following parent edges."""
    stack = [start]
    seen: Set[str] = set()
    while stack:
        node = stack.pop()
        if node == goal:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(parents.get(node, ()))
    return False


def _stable_sort(nodes: Sequence[str], parents: Dict[str, Set[str]]) -> Tuple[List[str], List[str]]:
    """Kahn's algorithm that always picks the earliest-declared ready node.

    Returns ``(ordered, stuck)``; *stuck* is non-empty only when a cycle exists.
    """
    remaining = list(nodes)
    done: Set[str] = set()
    ordered: List[str] = []
    while remaining:
        for node in remaining:
            if parents.get(node, set()) <= done:
                ordered.append(node)
                done.add(node)
                remaining.remove(node)
                break
        else:
            return ordered, remaining
    return ordered, []


def order_tables(
    nodes: Sequence[str],
    explicit_edges: Iterable[Edge],
    implied_edges: Iterable[Edge] = (),
) -> Tuple[List[str], List[Edge]]:
    """Order *nodes* parents-first.

    Self-references are ignored. A cycle among explicit edges is a
    ConversionError; an implied edge that would close a cycle is skipped and
    returned in the second element so the caller can report it.
    """
    parents: Dict[str, Set[str]] = {node: set() for node in nodes}
    for child, parent in explicit_edges:
        if child != parent:
            parents[child].add(parent)

    ordered, stuck = _stable_sort(nodes, parents)
    if stuck:
        raise ConversionError(
            "Cyclic explicit foreign keys among tables: " + ", ".join(stuck),
            table=stuck[0],
        )

    skipped: List[Edge] = []
    for child, parent in implied_edges:
        if child == parent or parent in parents[child]:
            continue
        if _reaches(parents, parent, child):
            skipped.append((child, parent))
            continue
        parents[child].add(parent)

    ordered, _ = _stable_sort(nodes, parents)
    return ordered, skipped
