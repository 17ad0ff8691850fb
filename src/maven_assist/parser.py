"""Build an effective Maven model from a pom.xml using lxml."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping

from lxml import etree

from maven_assist.exceptions import MavenAssistError, PomModelError, PomNotFoundError, PomParseError
from maven_assist.models import GA, GAV, Dependency, MavenProject, UNKNOWN_VERSION

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")

# Parent chains deeper than this are almost certainly a relativePath loop.
_MAX_PARENT_DEPTH = 10


def _text_first(node: etree._Element, xpath_expr: str) -> str | None:
    """Get text of the first matching element using namespace-agnostic XPath.

    Args:
        node: Root element to query under.
        xpath_expr: XPath expression (should use local-name()).

    Returns:
        Text content if found and non-empty, otherwise None.
    """
    found = node.xpath(xpath_expr)
    if not found:
        return None
    first = found[0]
    if isinstance(first, etree._Element):
        text = (first.text or "").strip()
        return text or None
    if isinstance(first, str):
        text = first.strip()
        return text or None
    return None


def _bool_text(value: str | None) -> bool | None:
    """Convert Maven boolean-ish text to bool.

    Args:
        value: String like 'true'/'false' or None.

    Returns:
        True/False for recognized values, otherwise None.
    """
    if value is None:
        return None
    v = value.strip().lower()
    if v == "true":
        return True
    if v == "false":
        return False
    return None


def _parse_xml(path: Path) -> etree._Element:
    """Parse an XML file and return its root element.

    Args:
        path: Path to the pom.xml file.

    Raises:
        PomNotFoundError: If the file does not exist.
        PomParseError: If XML cannot be parsed.

    Returns:
        Root XML element.
    """
    if not path.exists():
        raise PomNotFoundError(f"pom.xml not found: {path}")
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=False)
        tree = etree.parse(str(path), parser=parser)
        return tree.getroot()
    except (OSError, etree.XMLSyntaxError) as exc:
        raise PomParseError(f"Failed to parse pom.xml: {path}") from exc


def resolve_placeholders(value: str, props: Mapping[str, str]) -> str:
    """Resolve ${...} placeholders using provided properties.

    Unknown placeholders are preserved as-is.
    """
    current = value
    for _ in range(5):
        changed = False

        def _sub(m: re.Match[str]) -> str:
            nonlocal changed
            key = m.group(1)
            replacement = props.get(key)
            if replacement:
                changed = True
                return replacement
            return m.group(0)

        nxt = _PLACEHOLDER_RE.sub(_sub, current)
        current = nxt
        if not changed:
            break
    return current


def has_placeholder(value: str | None) -> bool:
    return bool(value) and "${" in value


def _normalize_version(value: str | None, props: Mapping[str, str]) -> str | None:
    """Resolve and normalize a Maven version string.

    Rules:
      - Missing version => None (may still be filled from dependencyManagement)
      - If placeholders remain after resolution (e.g. "${x.y}"), treat as unresolved => "Unknown"
    """
    if value is None:
        return None

    resolved = resolve_placeholders(value, props).strip()
    if not resolved:
        return None

    if _PLACEHOLDER_RE.search(resolved):
        return UNKNOWN_VERSION

    return resolved


def _parse_properties(root: etree._Element) -> dict[str, str]:
    props: dict[str, str] = {}
    nodes = root.xpath("/*[local-name()='project']/*[local-name()='properties']/*")
    for n in nodes:
        if not isinstance(n, etree._Element):
            continue
        key = etree.QName(n).localname
        val = (n.text or "").strip()
        if key and val:
            props[key] = val
    return props


def _parse_exclusions(dep: etree._Element, props: Mapping[str, str]) -> list[GA]:
    out: list[GA] = []
    for exc in dep.xpath("./*[local-name()='exclusions']/*[local-name()='exclusion']"):
        group_id = _text_first(exc, "./*[local-name()='groupId']")
        artifact_id = _text_first(exc, "./*[local-name()='artifactId']")
        if group_id is None or artifact_id is None:
            continue
        out.append(
            GA(
                group_id=resolve_placeholders(group_id, props),
                artifact_id=resolve_placeholders(artifact_id, props),
            )
        )
    return out


def _parse_dependency_nodes(
    nodes: list[etree._Element],
    props: Mapping[str, str],
    managed_versions: Mapping[GA, str],
) -> list[Dependency]:
    deps: list[Dependency] = []
    for dep in nodes:
        dep_group_id = _text_first(dep, "./*[local-name()='groupId']")
        dep_artifact_id = _text_first(dep, "./*[local-name()='artifactId']")
        dep_version = _text_first(dep, "./*[local-name()='version']")
        dep_scope = _text_first(dep, "./*[local-name()='scope']")
        dep_optional = _bool_text(_text_first(dep, "./*[local-name()='optional']"))

        if dep_group_id is None or dep_artifact_id is None:
            continue

        group_id = resolve_placeholders(dep_group_id, props)
        artifact_id = resolve_placeholders(dep_artifact_id, props)
        ga = GA(group_id=group_id, artifact_id=artifact_id)
        version = _normalize_version(dep_version, props) or managed_versions.get(ga) or UNKNOWN_VERSION

        deps.append(
            Dependency(
                gav=GAV(group_id=group_id, artifact_id=artifact_id, version=version),
                scope=resolve_placeholders(dep_scope, props) if dep_scope else None,
                optional=dep_optional,
                exclusions=_parse_exclusions(dep, props),
            )
        )
    return deps


def _load_parent(path: Path, root: etree._Element, depth: int) -> MavenProject | None:
    """Load the parent model from the local filesystem when `<relativePath>` points at it.

    Remote parents are not fetched; a missing or mismatching local parent is skipped.
    """
    parent_artifact_id = _text_first(
        root, "/*[local-name()='project']/*[local-name()='parent']/*[local-name()='artifactId']"
    )
    if parent_artifact_id is None or depth >= _MAX_PARENT_DEPTH:
        return None

    relative = _text_first(
        root, "/*[local-name()='project']/*[local-name()='parent']/*[local-name()='relativePath']"
    )
    candidate = path.parent / (relative if relative is not None else "../pom.xml")
    if candidate.is_dir():
        candidate = candidate / "pom.xml"
    if not candidate.is_file():
        return None

    try:
        parent = _build_model(candidate.resolve(), depth + 1)
    except MavenAssistError as exc:
        logger.warning("Ignoring unreadable parent pom %s: %s", candidate, exc)
        return None

    if parent.project.artifact_id != parent_artifact_id:
        logger.debug("Parent pom %s is not %s, skipping", candidate, parent_artifact_id)
        return None
    return parent


def _build_model(pom_path: Path, depth: int) -> MavenProject:
    root = _parse_xml(pom_path)

    raw_group_id = _text_first(root, "/*[local-name()='project']/*[local-name()='groupId']")
    raw_artifact_id = _text_first(root, "/*[local-name()='project']/*[local-name()='artifactId']")
    raw_version = _text_first(root, "/*[local-name()='project']/*[local-name()='version']")

    parent_group_id = _text_first(
        root,
        "/*[local-name()='project']/*[local-name()='parent']/*[local-name()='groupId']",
    )
    parent_artifact_id = _text_first(
        root,
        "/*[local-name()='project']/*[local-name()='parent']/*[local-name()='artifactId']",
    )
    parent_version = _text_first(
        root,
        "/*[local-name()='project']/*[local-name()='parent']/*[local-name()='version']",
    )

    if raw_artifact_id is None:
        raise PomModelError("Missing required <artifactId> in pom.xml")

    raw_group_id = raw_group_id or parent_group_id
    raw_version = raw_version or parent_version

    if raw_group_id is None:
        raise PomModelError("Missing required <groupId> (or parent <groupId>) in pom.xml")

    parent_model = _load_parent(pom_path, root, depth)

    props: dict[str, str] = dict(parent_model.properties) if parent_model else {}
    props.update(_parse_properties(root))
    effective_version = raw_version or UNKNOWN_VERSION
    builtins: dict[str, str] = {
        "project.groupId": raw_group_id,
        "project.artifactId": raw_artifact_id,
        "project.version": effective_version,
        "pom.groupId": raw_group_id,
        "pom.artifactId": raw_artifact_id,
        "pom.version": effective_version,
        "groupId": raw_group_id,
        "artifactId": raw_artifact_id,
        "version": effective_version,
        "project.basedir": str(pom_path.parent),
        "basedir": str(pom_path.parent),
    }
    if parent_group_id:
        builtins["project.parent.groupId"] = parent_group_id
    if parent_version:
        builtins["project.parent.version"] = parent_version
    merged_props = {**props, **builtins}

    group_id = resolve_placeholders(raw_group_id, merged_props)
    version = _normalize_version(effective_version, merged_props) or UNKNOWN_VERSION
    project_gav = GAV(group_id=group_id, artifact_id=raw_artifact_id, version=version)

    parent_gav: GAV | None = None
    if parent_group_id and parent_artifact_id:
        parent_gav = GAV(
            group_id=parent_group_id,
            artifact_id=parent_artifact_id,
            version=_normalize_version(parent_version, merged_props) or UNKNOWN_VERSION,
        )

    managed = _parse_dependency_nodes(
        root.xpath(
            "/*[local-name()='project']"
            "/*[local-name()='dependencyManagement']"
            "/*[local-name()='dependencies']"
            "/*[local-name()='dependency']"
        ),
        merged_props,
        {},
    )
    if parent_model is not None:
        own = {d.gav.ga for d in managed}
        managed.extend(d for d in parent_model.managed_dependencies if d.gav.ga not in own)

    managed_versions = {
        d.gav.ga: d.gav.version for d in managed if d.gav.version != UNKNOWN_VERSION
    }

    deps = _parse_dependency_nodes(
        root.xpath(
            "/*[local-name()='project']"
            "/*[local-name()='dependencies']"
            "/*[local-name()='dependency']"
        ),
        merged_props,
        managed_versions,
    )
    if parent_model is not None:
        own = {d.gav.ga for d in deps}
        deps.extend(d for d in parent_model.dependencies if d.gav.ga not in own)

    return MavenProject(
        project=project_gav,
        parent=parent_gav,
        properties=props,
        dependencies=deps,
        managed_dependencies=managed,
    )


def parse_pom(path: str | Path) -> MavenProject:
    """Parse a Maven pom.xml into an effective model.

    Notes:
        - Namespace handling: uses `local-name()` XPath so it works with or without XML namespaces.
        - Property placeholders like `${...}` are resolved from `<properties>`, project
          built-ins and a local parent pom (via `<relativePath>`, default `../pom.xml`).
          If a version cannot be resolved, it is stored as "Unknown".
        - Version-less dependencies take their version from dependencyManagement.

    Args:
        path: Path to a pom.xml.

    Raises:
        PomNotFoundError: If the file does not exist.
        PomParseError: If the XML is malformed.
        PomModelError: If required fields are missing.

    Returns:
        A `MavenProject` with direct and managed dependencies, including exclusions.
    """
    return _build_model(Path(path).resolve(), 0)


def resolved_versions(model: MavenProject) -> dict[GA, str]:
    """Map each declared dependency's GA to its interpolated version."""
    out: dict[GA, str] = {}
    for dep in [*model.managed_dependencies, *model.dependencies]:
        if dep.gav.version != UNKNOWN_VERSION:
            out[dep.gav.ga] = dep.gav.version
    return out
