"""Project a resolver graph onto a deduplicated, level-consistent dependency tree.

The resolver hands back a graph in which the same coordinate can be reached
through several branches at different depths. The editor wants a tree, but
must not hide a subtree only because a deeper path happened to be visited
first. The rule implemented here:

    whichever occurrence of a coordinate is shallowest owns the single, fully
    expanded subtree; every other occurrence is rendered as a content-only leaf.

Traversal is depth-first. When a shallower occurrence turns up after the
coordinate was already anchored deeper, the anchored node's children are moved
onto the new node (they were computed for the same coordinate, only the anchor
position changes) and the old node is left as a leaf.

Precondition: the raw graph is acyclic. A cycle recurses without bound.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from maven_assist.indices import EffectiveIndex
from maven_assist.models import DEFAULT_SCOPE, GA, GAV, ProjectedNode, RawDependencyNode


class SizeLookup(Protocol):
    def size_of(self, gav: GAV) -> int: ...


@dataclass
class LevelEntry:
    """Shallowest depth seen so far for a coordinate, and the node anchored there."""

    level: int
    node: ProjectedNode


def _build_node(
    raw: RawDependencyNode,
    gav: GAV,
    index: EffectiveIndex,
    exclusions: Mapping[GA, frozenset[GA]],
    sizes: SizeLookup,
) -> ProjectedNode:
    scope = index.scope_by_coordinate.get(gav) or raw.scope or DEFAULT_SCOPE
    excluded = sorted(exclusions.get(gav.ga, frozenset()), key=GA.sort_key)
    return ProjectedNode(
        gav=gav,
        scope=scope,
        dropped_by_conflict=gav not in index.coordinates,
        size=sizes.size_of(gav),
        exclusions=excluded,
    )


def _visit(
    raw: RawDependencyNode,
    level: int,
    levels: dict[GAV, LevelEntry],
    index: EffectiveIndex,
    exclusions: Mapping[GA, frozenset[GA]],
    sizes: SizeLookup,
) -> ProjectedNode | None:
    gav = raw.artifact

    if gav is None:
        children = _visit_children(raw, level, levels, index, exclusions, sizes)
        return ProjectedNode(children=children) if children else None

    # Never made it onto the classpath: neither it nor anything below it did.
    if gav.ga not in index.gas:
        return None

    entry = levels.get(gav)
    node = _build_node(raw, gav, index, exclusions, sizes)

    if entry is None:
        levels[gav] = LevelEntry(level=level, node=node)
        if not node.dropped_by_conflict:
            node.children = _visit_children(raw, level + 1, levels, index, exclusions, sizes)
        return node

    if level >= entry.level:
        return node

    node.children = entry.node.children
    entry.node.children = []
    entry.level = level
    entry.node = node
    return node


def _visit_children(
    raw: RawDependencyNode,
    level: int,
    levels: dict[GAV, LevelEntry],
    index: EffectiveIndex,
    exclusions: Mapping[GA, frozenset[GA]],
    sizes: SizeLookup,
) -> list[ProjectedNode]:
    out: list[ProjectedNode] = []
    for child in raw.children:
        projected = _visit(child, level, levels, index, exclusions, sizes)
        if projected is not None:
            out.append(projected)
    return out


def project(
    root: RawDependencyNode,
    index: EffectiveIndex,
    exclusions: Mapping[GA, frozenset[GA]],
    sizes: SizeLookup,
) -> ProjectedNode | None:
    """Project `root` onto the canonical annotated tree.

    Args:
        root: Resolver output; usually a synthetic super-root without artifact
            whose children are the direct dependencies (level 0).
        index: Effective classpath lookups.
        exclusions: Declared exclusions keyed by the excluding dependency's GA.
        sizes: Jar size lookup.

    Returns:
        The root of the projected tree, or None when nothing survives.
    """
    levels: dict[GAV, LevelEntry] = {}
    return _visit(root, 0, levels, index, exclusions, sizes)
