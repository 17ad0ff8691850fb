"""Edit dependency exclusions in a pom.xml without disturbing its formatting.

The document is parsed into an lxml tree in which whitespace lives in `.text`
and `.tail`. The tree is only read: it finds the target `<dependency>` and its
indentation. The new markup is rendered from that indentation and spliced
into the file's text at the offset of the enclosing end tag, so every byte
outside the inserted fragment is written back exactly as it was read.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from lxml import etree

from maven_assist.exceptions import (
    DependencyNotFoundError,
    MavenAssistError,
    PomNotFoundError,
    PomParseError,
    PomWriteError,
)
from maven_assist.models import GA, DependencyLocation, DependencyRef, InsertOutcome
from maven_assist.parser import has_placeholder, parse_pom, resolved_versions

logger = logging.getLogger(__name__)

DEFAULT_INDENT_UNIT = "  "

# Markup in document order. Start tags are quote-aware so a ">" inside an
# attribute value does not end them; text never contains a literal "<".
_MARKUP_RE = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<\?.*?\?>"
    r"|<!DOCTYPE[^>\[]*(?:\[.*?\])?\s*>"
    r"|</(?P<close>[^\s>]+)\s*>"
    r"""|<(?P<open>[^\s/>]+)(?:[^>"']|"[^"]*"|'[^']*')*?(?P<empty>/)?>""",
    re.DOTALL,
)
_TRAILING_SPACE_RE = re.compile(r"\s*\Z")


@dataclass(frozen=True)
class IndentProfile:
    """Indentation around a dependency element.

    Attributes:
        element_indent: Newline plus the leading whitespace of the element's line.
        unit_indent: One nesting level (difference between element and parent).
    """

    element_indent: str
    unit_indent: str

    def leveled(self, level: int) -> str:
        return self.element_indent + self.unit_indent * level


@dataclass(frozen=True)
class ElementSpan:
    """Offsets of one element in the source text.

    Attributes:
        name: Qualified tag name as written, prefix included.
        start: Offset of the start tag's "<".
        content_start: Offset just past the start tag.
        content_end: Offset of the end tag's "<" (`end` for an empty element).
        end: Offset just past the end tag.
    """

    name: str
    start: int
    content_start: int
    content_end: int
    end: int

    @property
    def self_closing(self) -> bool:
        return self.content_start == self.end

    @property
    def prefix(self) -> str:
        prefix, colon, _ = self.name.rpartition(":")
        return prefix + colon


@dataclass(frozen=True)
class InsertResult:
    outcome: InsertOutcome
    line: int


def element_spans(text: str) -> list[ElementSpan]:
    """Spans of every element in `text`, in document order.

    Raises:
        PomParseError: If start and end tags do not balance.
    """
    spans: list[ElementSpan | None] = []
    stack: list[tuple[int, str, int, int]] = []
    for m in _MARKUP_RE.finditer(text):
        name = m.group("open")
        if name and m.group("empty"):
            spans.append(ElementSpan(name, m.start(), m.end(), m.end(), m.end()))
        elif name:
            stack.append((len(spans), name, m.start(), m.end()))
            spans.append(None)
        elif m.group("close"):
            if not stack or stack[-1][1] != m.group("close"):
                raise PomParseError(f"Unbalanced end tag </{m.group('close')}> at offset {m.start()}")
            index, open_name, start, content_start = stack.pop()
            spans[index] = ElementSpan(open_name, start, content_start, m.start(), m.end())
    if stack:
        raise PomParseError(f"Unclosed element <{stack[-1][1]}>")
    return [span for span in spans if span is not None]


class PomDocument:
    """A pom.xml loaded for in-place editing.

    `tree` reflects the file as loaded. Edits are applied to `source`, the
    decoded file text, and offsets from `span()` refer to the text as loaded,
    so a document takes a single edit before it is saved.
    """

    def __init__(self, path: Path, tree: etree._ElementTree, *, source: str, encoding: str) -> None:
        self.path = path
        self.tree = tree
        self.source = source
        self.encoding = encoding
        self._elements: list[etree._Element] | None = None
        self._spans: list[ElementSpan] = []

    @property
    def root(self) -> etree._Element:
        return self.tree.getroot()

    @classmethod
    def load(cls, path: str | Path) -> PomDocument:
        """Parse `path`, keeping comments, CDATA and every whitespace text node.

        Raises:
            PomNotFoundError: If the file does not exist.
            PomParseError: If the file cannot be read or is not well-formed XML.
        """
        pom_path = Path(path)
        if not pom_path.is_file():
            raise PomNotFoundError(f"POM file does not exist: {pom_path}")
        try:
            raw = pom_path.read_bytes()
            parser = etree.XMLParser(
                remove_blank_text=False,
                remove_comments=False,
                remove_pis=False,
                strip_cdata=False,
                resolve_entities=False,
                no_network=True,
            )
            tree = etree.parse(BytesIO(raw), parser)
        except (OSError, etree.XMLSyntaxError) as exc:
            raise PomParseError(f"Failed to parse pom.xml: {pom_path}: {exc}") from exc

        encoding = tree.docinfo.encoding or "UTF-8"
        try:
            text = raw.decode(encoding)
        except (LookupError, UnicodeDecodeError) as exc:
            raise PomParseError(f"Failed to decode pom.xml as {encoding}: {pom_path}") from exc
        return cls(pom_path, tree, source=text, encoding=encoding)

    def span(self, element: etree._Element) -> ElementSpan:
        """Source offsets of `element`, matched to the text by document order.

        Raises:
            PomParseError: If the elements of the text and of the tree differ.
        """
        if self._elements is None:
            elements = [el for el in self.root.iter() if isinstance(el.tag, str)]
            spans = element_spans(self.source)
            if len(spans) != len(elements):
                raise PomParseError(
                    f"Cannot map {len(elements)} elements onto {len(spans)} tags in {self.path}"
                )
            self._elements, self._spans = elements, spans
        for candidate, span in zip(self._elements, self._spans):
            if candidate is element:
                return span
        raise ValueError(f"Element {element.tag} is not part of {self.path}")

    def newline_near(self, span: ElementSpan) -> str:
        """Line break used inside `span`, or by the line it starts on."""
        inner = self.source[span.start : span.end]
        if "\n" in inner:
            return "\r\n" if "\r\n" in inner else "\n"
        line_break = self.source.rfind("\n", 0, span.start)
        if line_break > 0 and self.source[line_break - 1] == "\r":
            return "\r\n"
        return "\n"

    def replace(self, start: int, end: int, fragment: str) -> None:
        self.source = self.source[:start] + fragment + self.source[end:]

    def serialize(self) -> str:
        return self.source

    def save(self, path: str | Path | None = None) -> None:
        """Write the document through a temp file in the same directory, then rename it over the target.

        Raises:
            PomWriteError: If the file cannot be written.
        """
        target = Path(path) if path is not None else self.path
        data = self.serialize().encode(self.encoding, errors="xmlcharrefreplace")
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            if target.exists():
                shutil.copymode(target, tmp_name)
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PomWriteError(f"Failed to write pom.xml: {target}: {exc}") from exc


def _local(el: etree._Element) -> str | None:
    # Comments and processing instructions have a non-string tag.
    if not isinstance(el.tag, str):
        return None
    return etree.QName(el).localname


def _children(el: etree._Element, local: str) -> Iterator[etree._Element]:
    return (child for child in el if _local(child) == local)


def _child(el: etree._Element, local: str) -> etree._Element | None:
    return next(_children(el, local), None)


def _child_text(el: etree._Element, local: str) -> str | None:
    child = _child(el, local)
    if child is None:
        return None
    text = (child.text or "").strip()
    return text or None


def iter_dependency_elements(root: etree._Element) -> list[etree._Element]:
    """Every `<dependency>` element, wherever it is declared."""
    return root.xpath("//*[local-name()='dependency']")


def find_dependency_element(
    root: etree._Element,
    target: DependencyRef,
    versions: Mapping[GA, str],
) -> etree._Element | None:
    """Return the first `<dependency>` matching `target`.

    A `${...}` version is replaced by its interpolated value from `versions`
    before comparing. Without a target version any version matches, so callers
    should pass one when a GA is declared more than once.
    """
    for dep in iter_dependency_elements(root):
        group_id = _child_text(dep, "groupId")
        artifact_id = _child_text(dep, "artifactId")
        if group_id is None or artifact_id is None:
            continue
        if group_id != target.group_id or artifact_id != target.artifact_id:
            continue

        version = _child_text(dep, "version")
        if has_placeholder(version):
            version = versions.get(GA(group_id=group_id, artifact_id=artifact_id), version)

        if not target.version or version == target.version:
            return dep
    return None


def _whitespace_before(el: etree._Element) -> str | None:
    prev = el.getprevious()
    if prev is not None:
        return prev.tail
    parent = el.getparent()
    return parent.text if parent is not None else None


def _line_indent(text: str | None) -> str:
    if not text:
        return "\n"
    last_newline = text.rfind("\n")
    return text[last_newline:] if last_newline != -1 else text


def infer_indent(element: etree._Element) -> IndentProfile:
    """Infer the indentation of `element` and the unit step from its parent's."""
    element_indent = _line_indent(_whitespace_before(element))
    parent = element.getparent()
    parent_indent = _line_indent(_whitespace_before(parent)) if parent is not None else "\n"
    if len(element_indent) > len(parent_indent):
        unit = element_indent[len(parent_indent) :]
    else:
        unit = DEFAULT_INDENT_UNIT
    return IndentProfile(element_indent=element_indent, unit_indent=unit)




def find_exclusion(exclusions: etree._Element, ga: GA) -> etree._Element | None:
    for exclusion in _children(exclusions, "exclusion"):
        if _child_text(exclusion, "groupId") == ga.group_id and _child_text(exclusion, "artifactId") == ga.artifact_id:
            return exclusion
    return None


def render_exclusion(ga: GA, indent: IndentProfile, prefix: str = "") -> str:
    """An `<exclusion>` element whose children sit at `leveled(3)`."""
    inner = indent.leveled(3)
    return (
        f"<{prefix}exclusion>"
        f"{inner}<{prefix}groupId>{escape(ga.group_id)}</{prefix}groupId>"
        f"{inner}<{prefix}artifactId>{escape(ga.artifact_id)}</{prefix}artifactId>"
        f"{indent.leveled(2)}</{prefix}exclusion>"
    )


def _fill(
    doc: PomDocument,
    container: ElementSpan,
    content: str,
    indent: IndentProfile,
    *,
    level: int,
    newline: str,
) -> None:
    """Splice `content` as the last child of `container`, at nesting `level`."""
    if container.self_closing:
        opening = doc.source[container.start : container.end - 2].rstrip() + ">"
        fragment = f"{opening}{indent.leveled(level)}{content}{indent.leveled(level - 1)}</{container.name}>"
        start, end = container.start, container.end
    else:
        body = doc.source[container.content_start : container.content_end]
        trailing = _TRAILING_SPACE_RE.search(body).group(0)
        # A line break before the end tag already carries the closing indentation.
        lead = indent.unit_indent if "\n" in trailing else indent.leveled(level)
        fragment = f"{lead}{content}{indent.leveled(level - 1)}"
        start = end = container.content_end

    if newline != "\n":
        fragment = fragment.replace("\n", newline)
    doc.replace(start, end, fragment)


def fill_exclusion(doc: PomDocument, dependency: etree._Element, ga: GA) -> tuple[InsertOutcome, int]:
    """Add `<exclusion>` for `ga` to `dependency` unless it is already there.

    Returns:
        The outcome and the line to highlight: the existing `<exclusion>`, or
        the `<dependency>` that was modified.
    """
    exclusions = _child(dependency, "exclusions")
    if exclusions is not None:
        existing = find_exclusion(exclusions, ga)
        if existing is not None:
            return InsertOutcome.ALREADY_EXISTS, existing.sourceline or dependency.sourceline or 0

    indent = infer_indent(dependency)
    span = doc.span(dependency)
    prefix, newline = span.prefix, doc.newline_near(span)
    if exclusions is not None:
        _fill(doc, doc.span(exclusions), render_exclusion(ga, indent, prefix), indent, level=2, newline=newline)
    else:
        wrapper = (
            f"<{prefix}exclusions>{indent.leveled(2)}{render_exclusion(ga, indent, prefix)}"
            f"{indent.leveled(1)}</{prefix}exclusions>"
        )
        _fill(doc, span, wrapper, indent, level=1, newline=newline)
    return InsertOutcome.INSERTED, dependency.sourceline or 0


def _interpolated_versions(path: Path) -> dict[GA, str]:
    try:
        return resolved_versions(parse_pom(path))
    except MavenAssistError as exc:
        logger.warning("Cannot interpolate versions of %s, comparing literally: %s", path, exc)
        return {}


def insert_exclusion(
    pom_path: str | Path,
    dependency: DependencyRef,
    exclusion: GA,
    *,
    versions: Mapping[GA, str] | None = None,
) -> InsertResult:
    """Insert an `<exclusion>` of `exclusion` into the declaration of `dependency`.

    Running the same request twice leaves the file untouched the second time.

    Args:
        pom_path: The pom.xml to edit in place.
        dependency: The declaration to modify; version optional.
        exclusion: The transitive artifact to exclude.
        versions: Interpolated versions by GA; computed from the pom when omitted.

    Raises:
        PomNotFoundError: If the pom.xml does not exist.
        PomParseError: If it cannot be parsed.
        DependencyNotFoundError: If no declaration matches.
        PomWriteError: If the edited file cannot be written.

    Returns:
        The outcome and the 1-based line to highlight.
    """
    path = Path(pom_path)
    if not path.is_file():
        raise PomNotFoundError(f"POM file does not exist: {path}")
    if versions is None:
        versions = _interpolated_versions(path)

    doc = PomDocument.load(path)
    dep = find_dependency_element(doc.root, dependency, versions)
    if dep is None:
        raise DependencyNotFoundError(f"Root dependency not found: {dependency.compact()}")

    outcome, line = fill_exclusion(doc, dep, exclusion)
    if outcome is InsertOutcome.ALREADY_EXISTS:
        logger.info("Exclusion %s already present on %s", exclusion.compact(), dependency.compact())
        return InsertResult(outcome, line)

    doc.save()
    logger.info("Excluded %s from %s in %s", exclusion.compact(), dependency.compact(), path)
    return InsertResult(outcome, line)


def locate_dependency(pom_path: str | Path, group_id: str, artifact_id: str) -> DependencyLocation:
    """Find the line and column span of a dependency's `<artifactId>` text.

    Raises:
        DependencyNotFoundError: If no `<dependency>` declares `group_id:artifact_id`.
    """
    doc = PomDocument.load(pom_path)
    for dep in iter_dependency_elements(doc.root):
        if _child_text(dep, "groupId") != group_id or _child_text(dep, "artifactId") != artifact_id:
            continue
        element = _child(dep, "artifactId")
        line_number = element.sourceline or 0
        lines = doc.source.split("\n")
        line = lines[line_number - 1] if 0 < line_number <= len(lines) else ""
        tag_at = line.find("artifactId")
        start = line.find(artifact_id, tag_at + len("artifactId>")) if tag_at != -1 else -1
        if start == -1:
            start = 0
        return DependencyLocation(
            pom_path=str(doc.path),
            line_number=line_number,
            artifact_id_start=start,
            artifact_id_end=start + len(artifact_id),
        )
    raise DependencyNotFoundError(f"Target dependency not found: {group_id}:{artifact_id}")
