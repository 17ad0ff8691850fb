"""Lookup structures derived from the effective classpath and the manifest model."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from maven_assist.models import GA, GAV, EffectiveArtifact, MavenProject


@dataclass(frozen=True)
class EffectiveIndex:
    """What the build actually put on the classpath.

    Attributes:
        coordinates: Every (group, artifact, version) that survived mediation.
        gas: Every (group, artifact) pair present, whatever the version.
        scope_by_coordinate: Effective scope per coordinate.
    """

    coordinates: frozenset[GAV] = frozenset()
    gas: frozenset[GA] = frozenset()
    scope_by_coordinate: Mapping[GAV, str] = field(default_factory=dict)


def build_indices(effective: Iterable[EffectiveArtifact]) -> EffectiveIndex:
    """Aggregate the effective artifact list in a single pass."""
    coordinates: set[GAV] = set()
    gas: set[GA] = set()
    scopes: dict[GAV, str] = {}
    for artifact in effective:
        coordinates.add(artifact.gav)
        gas.add(artifact.gav.ga)
        if artifact.scope:
            scopes[artifact.gav] = artifact.scope
    return EffectiveIndex(coordinates=frozenset(coordinates), gas=frozenset(gas), scope_by_coordinate=scopes)


def build_exclusion_map(model: MavenProject) -> dict[GA, frozenset[GA]]:
    """Collect declared exclusions keyed by the excluding dependency's GA.

    Entries from `<dependencies>` and `<dependencyManagement>` for the same GA
    are merged (union), never overridden.
    """
    merged: dict[GA, set[GA]] = {}
    for dep in [*model.dependencies, *model.managed_dependencies]:
        if not dep.exclusions:
            continue
        merged.setdefault(dep.gav.ga, set()).update(dep.exclusions)
    return {ga: frozenset(excluded) for ga, excluded in merged.items()}
