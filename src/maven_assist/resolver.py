"""Collaborators that feed the projector: model builder, classpath lister, graph resolver.

The default implementations shell out to Maven (`dependency:list` and
`dependency:tree -Dverbose`) and parse its console output. Maven's own tree
already applies the transitive scope rules (test and provided dependencies of
dependencies are never propagated), so its output can be projected as is.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

import networkx as nx

from maven_assist.exceptions import ClasspathError, MavenAssistError, ResolverError
from maven_assist.models import GAV, DependencyRef, EffectiveArtifact, MavenProject, RawDependencyNode
from maven_assist.parser import parse_pom

logger = logging.getLogger(__name__)

_INFO_PREFIX = "[INFO]"
_TREE_LINE_RE = re.compile(r"^(?P<indent>(?:[| ]  )*)[+\\]- (?P<entry>.+)$")
_SUPER_ROOT = "<root>"


class ModelBuilder(Protocol):
    def build(self, pom_path: Path) -> MavenProject: ...


class ClasspathLister(Protocol):
    def list(self, pom_path: Path) -> list[EffectiveArtifact]: ...


class DependencyResolver(Protocol):
    def resolve(self, pom_path: Path) -> RawDependencyNode: ...


class PomModelBuilder:
    """Effective model straight from the pom.xml (and local parents)."""

    def build(self, pom_path: Path) -> MavenProject:
        return parse_pom(pom_path)


def _strip_info(line: str) -> str | None:
    """Drop the `[INFO] ` prefix; None for lines Maven did not log at INFO."""
    line = line.rstrip("\r\n")
    if not line.startswith(_INFO_PREFIX):
        return None
    rest = line[len(_INFO_PREFIX) :]
    return rest[1:] if rest.startswith(" ") else rest


def _split_coords(token: str) -> list[str] | None:
    parts = token.split(":")
    if not all(parts) or any(ch.isspace() for ch in token):
        return None
    return parts


def _gav_and_scope(parts: list[str]) -> tuple[GAV, str | None] | None:
    """Interpret `g:a:type[:classifier]:version[:scope]` console coordinates."""
    if len(parts) == 4:
        return GAV(group_id=parts[0], artifact_id=parts[1], version=parts[3]), None
    if len(parts) == 5:
        return GAV(group_id=parts[0], artifact_id=parts[1], version=parts[3]), parts[4]
    if len(parts) == 6:
        return GAV(group_id=parts[0], artifact_id=parts[1], version=parts[4]), parts[5]
    return None


def parse_dependency_list(lines: Iterable[str]) -> list[EffectiveArtifact]:
    """Parse `mvn dependency:list` output.

    Recognised entries look like
    `[INFO]    org.slf4j:slf4j-api:jar:2.0.12:compile -- module org.slf4j`,
    optionally with a classifier before the version and an `(auto)` marker
    after the module name.
    """
    out: list[EffectiveArtifact] = []
    for raw in lines:
        line = _strip_info(raw)
        if line is None or ":" not in line:
            continue
        entry = line.strip()
        module_name: str | None = None
        if "-- module" in entry:
            entry, _, module = entry.partition("-- module")
            entry = entry.strip()
            module_name = re.split(r"[\s(\[]", module.strip(), maxsplit=1)[0] or None

        tokens = entry.split()
        if not tokens:
            continue
        parts = _split_coords(tokens[0])
        if parts is None or len(parts) not in (5, 6):
            continue
        gav, scope = _gav_and_scope(parts)
        out.append(EffectiveArtifact(gav=gav, scope=scope, module_name=module_name))
    return out


def _tree_entry(entry: str) -> tuple[GAV, str | None] | None:
    text = entry.strip()
    if text.startswith("("):
        # Verbose-mode node, e.g. "(g:a:jar:1.0:compile - omitted for duplicate)".
        text = text[1:]
    token = text.split()[0].rstrip(")") if text.split() else ""
    parts = _split_coords(token)
    if parts is None:
        return None
    return _gav_and_scope(parts)


def parse_dependency_tree(lines: Iterable[str]) -> RawDependencyNode:
    """Parse `mvn dependency:tree` (optionally `-Dverbose`) output.

    The project line is replaced by a synthetic super-root whose children are
    the direct dependencies. Only the first tree is read.

    Raises:
        ResolverError: If no tree is found in the output.
    """
    project: RawDependencyNode | None = None
    stack: list[tuple[int, RawDependencyNode]] = []

    for raw in lines:
        line = _strip_info(raw)
        if line is None:
            continue

        if project is None:
            parts = _split_coords(line.strip())
            parsed = _gav_and_scope(parts) if parts and len(parts) == 4 else None
            if parsed is not None:
                project = RawDependencyNode(artifact=parsed[0])
                stack = [(0, project)]
            continue

        m = _TREE_LINE_RE.match(line)
        if m is None:
            break
        parsed = _tree_entry(m.group("entry"))
        if parsed is None:
            logger.debug("Skipping unrecognised tree entry: %s", line)
            continue

        depth = len(m.group("indent")) // 3 + 1
        node = RawDependencyNode(artifact=parsed[0], scope=parsed[1])
        while stack and stack[-1][0] >= depth:
            stack.pop()
        if not stack:
            raise ResolverError(f"Malformed dependency tree line: {line}")
        stack[-1][1].children.append(node)
        stack.append((depth, node))

    if project is None:
        raise ResolverError("No dependency tree found in Maven output")
    return RawDependencyNode(children=project.children)


def run_maven(mvn_command: str, pom_path: Path, *goal_args: str) -> list[str]:
    """Run Maven in batch mode against `pom_path` and return its output lines.

    Raises:
        MavenAssistError: If Maven cannot be started or exits with an error.
    """
    cmd = [mvn_command, "-B", "-f", str(pom_path), *goal_args]
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=str(pom_path.parent),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise MavenAssistError(f"Cannot run {mvn_command}: {exc}") from exc

    lines = (result.stdout or "").splitlines()
    if result.returncode != 0:
        errors = [ln for ln in lines if ln.startswith("[ERROR]")] or lines[-5:]
        raise MavenAssistError(f"{' '.join(goal_args[:1])} failed: " + " | ".join(errors[:5]))
    return lines


class MavenClasspathLister:
    """Authoritative classpath via `mvn dependency:list`."""

    def __init__(self, mvn_command: str = "mvn") -> None:
        self.mvn_command = mvn_command

    def list(self, pom_path: Path) -> list[EffectiveArtifact]:
        try:
            lines = run_maven(
                self.mvn_command, pom_path, "dependency:list", "-DoutputAbsoluteArtifactFilename=false"
            )
        except MavenAssistError as exc:
            raise ClasspathError(str(exc)) from exc
        return parse_dependency_list(lines)


class MavenTreeResolver:
    """Full (verbose) dependency graph via `mvn dependency:tree -Dverbose`."""

    def __init__(self, mvn_command: str = "mvn") -> None:
        self.mvn_command = mvn_command

    def resolve(self, pom_path: Path) -> RawDependencyNode:
        try:
            lines = run_maven(self.mvn_command, pom_path, "dependency:tree", "-Dverbose")
        except MavenAssistError as exc:
            raise ResolverError(str(exc)) from exc
        return parse_dependency_tree(lines)


def build_digraph(root: RawDependencyNode) -> nx.DiGraph:
    """Collapse the raw graph into a DiGraph keyed by coordinate (A -> B means A depends on B)."""
    g = nx.DiGraph()
    root_id = root.artifact if root.artifact is not None else _SUPER_ROOT
    g.add_node(root_id)
    stack: list[tuple[object, RawDependencyNode]] = [(root_id, root)]
    while stack:
        parent_id, node = stack.pop()
        for child in node.children:
            if child.artifact is None:
                continue
            g.add_edge(parent_id, child.artifact, scope=child.scope)
            stack.append((child.artifact, child))
    return g


def dependency_path(root: RawDependencyNode, target: DependencyRef) -> list[GAV] | None:
    """Shortest chain of coordinates from a direct dependency down to `target`.

    Returns:
        The path (direct dependency first, target last), or None if unreachable.
    """
    g = build_digraph(root)
    root_id = root.artifact if root.artifact is not None else _SUPER_ROOT
    paths = nx.single_source_shortest_path(g, root_id)

    best: list[GAV] | None = None
    for node, path in paths.items():
        if not isinstance(node, GAV):
            continue
        if node.group_id != target.group_id or node.artifact_id != target.artifact_id:
            continue
        if target.version and node.version != target.version:
            continue
        chain = [n for n in path if isinstance(n, GAV)]
        if best is None or len(chain) < len(best):
            best = chain
    return best
