from __future__ import annotations

from pathlib import Path

import pytest

from maven_assist.exceptions import DependencyNotFoundError, PomNotFoundError, PomParseError
from maven_assist.models import GA, DependencyRef, InsertOutcome
from maven_assist.patcher import PomDocument, element_spans, insert_exclusion, locate_dependency


def _write(tmp_path: Path, content: str, newline: str = "\n", name: str = "pom.xml") -> Path:
    path = tmp_path / name
    path.write_bytes(content.replace("\n", newline).encode("utf-8"))
    return path


def _ref(text: str) -> DependencyRef:
    return DependencyRef.parse(text)


BAZ_QUX = GA(group_id="org.baz", artifact_id="qux")


POM = """<?xml version="1.0" encoding="UTF-8"?>
<!-- Licensed to the Apache Software Foundation -->
<project xmlns="http://maven.apache.org/POM/4.0.0"
         xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
         xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 http://maven.apache.org/xsd/maven-4.0.0.xsd">
  <modelVersion>4.0.0</modelVersion>
  <groupId>com.acme</groupId>
  <artifactId>demo</artifactId>
  <version>1.0.0</version>

  <properties>
    <bar.version>1.0</bar.version>
  </properties>

  <dependencies>
    <!-- logging -->
    <dependency>
      <groupId>org.slf4j</groupId>
      <artifactId>slf4j-api</artifactId>
      <version>2.0.12</version>
    </dependency>

    <dependency>
      <groupId>org.foo</groupId>
      <artifactId>bar</artifactId>
      <version>1.0</version>
    </dependency>
  </dependencies>
</project>
"""

POM_WITH_EXCLUSION = POM.replace(
    """      <artifactId>bar</artifactId>
      <version>1.0</version>
    </dependency>""",
    """      <artifactId>bar</artifactId>
      <version>1.0</version>
      <exclusions>
        <exclusion>
          <groupId>org.baz</groupId>
          <artifactId>qux</artifactId>
        </exclusion>
      </exclusions>
    </dependency>""",
)


def test_insert_creates_exclusions_block(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)

    result = insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)

    assert result.outcome is InsertOutcome.INSERTED
    assert path.read_text(encoding="utf-8") == POM_WITH_EXCLUSION
    # Line of the <dependency> element that was modified.
    assert result.line == POM.splitlines().index("    <dependency>", 20) + 1


def test_insert_is_idempotent(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)

    first = insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)
    after_first = path.read_bytes()
    second = insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)

    assert first.outcome is InsertOutcome.INSERTED
    assert second.outcome is InsertOutcome.ALREADY_EXISTS
    assert path.read_bytes() == after_first
    # Points at the existing <exclusion> element.
    assert second.line == POM_WITH_EXCLUSION.splitlines().index("        <exclusion>") + 1


def test_missing_dependency_reports_not_found_and_leaves_file(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)
    before = path.read_bytes()

    with pytest.raises(DependencyNotFoundError, match="not found"):
        insert_exclusion(path, _ref("org.missing:bar"), BAZ_QUX)

    assert path.read_bytes() == before


def test_version_mismatch_is_not_found(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)

    with pytest.raises(DependencyNotFoundError):
        insert_exclusion(path, _ref("org.foo:bar:2.0"), BAZ_QUX)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(PomNotFoundError):
        insert_exclusion(tmp_path / "pom.xml", _ref("org.foo:bar"), BAZ_QUX)


def test_malformed_file(tmp_path: Path) -> None:
    path = _write(tmp_path, "<project><dependencies></project>")
    with pytest.raises(PomParseError):
        insert_exclusion(path, _ref("org.foo:bar"), BAZ_QUX, versions={})


def test_appends_to_existing_exclusions(tmp_path: Path) -> None:
    path = _write(tmp_path, POM_WITH_EXCLUSION)

    result = insert_exclusion(path, _ref("org.foo:bar"), GA(group_id="org.other", artifact_id="thing"))

    assert result.outcome is InsertOutcome.INSERTED
    expected = POM_WITH_EXCLUSION.replace(
        """          <artifactId>qux</artifactId>
        </exclusion>
      </exclusions>""",
        """          <artifactId>qux</artifactId>
        </exclusion>
        <exclusion>
          <groupId>org.other</groupId>
          <artifactId>thing</artifactId>
        </exclusion>
      </exclusions>""",
    )
    assert path.read_text(encoding="utf-8") == expected


def test_placeholder_version_is_interpolated(tmp_path: Path) -> None:
    pom = POM.replace("<version>1.0</version>\n    </dependency>\n  </dependencies>", "<version>${bar.version}</version>\n    </dependency>\n  </dependencies>")
    assert "${bar.version}" in pom
    path = _write(tmp_path, pom)

    result = insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)

    assert result.outcome is InsertOutcome.INSERTED
    assert "<groupId>org.baz</groupId>" in path.read_text(encoding="utf-8")


def test_first_declaration_wins_without_version(tmp_path: Path) -> None:
    pom = POM.replace(
        "  </dependencies>\n</project>",
        """    <dependency>
      <groupId>org.foo</groupId>
      <artifactId>bar</artifactId>
      <version>2.0</version>
      <classifier>tests</classifier>
    </dependency>
  </dependencies>
</project>""",
    )
    path = _write(tmp_path, pom)

    insert_exclusion(path, _ref("org.foo:bar"), BAZ_QUX)

    text = path.read_text(encoding="utf-8")
    assert text.index("<groupId>org.baz</groupId>") < text.index("<version>2.0</version>")


def test_tab_indentation_and_crlf_are_preserved(tmp_path: Path) -> None:
    pom = (
        "<project>\n"
        "\t<groupId>com.acme</groupId>\n"
        "\t<artifactId>demo</artifactId>\n"
        "\t<version>1</version>\n"
        "\t<dependencies>\n"
        "\t\t<dependency>\n"
        "\t\t\t<groupId>org.foo</groupId>\n"
        "\t\t\t<artifactId>bar</artifactId>\n"
        "\t\t</dependency>\n"
        "\t</dependencies>\n"
        "</project>\n"
    )
    path = _write(tmp_path, pom, newline="\r\n")

    insert_exclusion(path, _ref("org.foo:bar"), BAZ_QUX)

    expected = pom.replace(
        "\t\t\t<artifactId>bar</artifactId>\n",
        "\t\t\t<artifactId>bar</artifactId>\n"
        "\t\t\t<exclusions>\n"
        "\t\t\t\t<exclusion>\n"
        "\t\t\t\t\t<groupId>org.baz</groupId>\n"
        "\t\t\t\t\t<artifactId>qux</artifactId>\n"
        "\t\t\t\t</exclusion>\n"
        "\t\t\t</exclusions>\n",
    ).replace("\n", "\r\n")
    assert path.read_bytes() == expected.encode("utf-8")


def test_unrelated_blocks_and_comments_untouched(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)

    insert_exclusion(path, _ref("org.foo:bar"), BAZ_QUX)

    before = POM.splitlines()
    after = path.read_text(encoding="utf-8").splitlines()
    added = [line for line in after if line not in before]
    assert added == [
        "      <exclusions>",
        "        <exclusion>",
        "          <groupId>org.baz</groupId>",
        "          <artifactId>qux</artifactId>",
        "        </exclusion>",
        "      </exclusions>",
    ]
    assert [line for line in before if line not in after] == []


def test_document_roundtrip_without_edits_is_identical(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)
    assert PomDocument.load(path).serialize() == POM


def test_locate_dependency(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)

    location = locate_dependency(path, "org.foo", "bar")

    line = POM.splitlines()[location.line_number - 1]
    assert line == "      <artifactId>bar</artifactId>"
    assert line[location.artifact_id_start : location.artifact_id_end] == "bar"


def test_locate_missing_dependency(tmp_path: Path) -> None:
    path = _write(tmp_path, POM)
    with pytest.raises(DependencyNotFoundError, match="Target dependency not found: org.nope:x"):
        locate_dependency(path, "org.nope", "x")


def test_unrelated_markup_is_written_back_verbatim(tmp_path: Path) -> None:
    pom = """<?xml version='1.0' encoding='UTF-8'?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <modelVersion>4.0.0</modelVersion>
  <parent>
    <groupId>com.acme</groupId>
    <artifactId>parent</artifactId>
    <version>1</version>
    <relativePath></relativePath>
  </parent>
  <artifactId>demo</artifactId>
  <description>maps a -> b &amp; keeps &apos;quotes&apos;</description>
  <dependencies>
    <dependency>
      <groupId>org.foo</groupId>
      <artifactId>bar</artifactId>
      <version>1.0</version>
      <type attr='x'>jar</type>
      <!-- <exclusions/> -->
    </dependency>
  </dependencies>
</project>
"""
    path = _write(tmp_path, pom)

    insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX, versions={})

    expected = pom.replace(
        "      <!-- <exclusions/> -->\n",
        "      <!-- <exclusions/> -->\n"
        "      <exclusions>\n"
        "        <exclusion>\n"
        "          <groupId>org.baz</groupId>\n"
        "          <artifactId>qux</artifactId>\n"
        "        </exclusion>\n"
        "      </exclusions>\n",
    )
    assert path.read_text(encoding="utf-8") == expected


def test_mixed_line_endings_are_left_alone(tmp_path: Path) -> None:
    pom = POM.replace("?>\n", "?>\r\n", 1)
    path = _write(tmp_path, pom)

    insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)

    written = path.read_bytes()
    assert written.count(b"\r\n") == 1
    assert written == POM_WITH_EXCLUSION.replace("?>\n", "?>\r\n", 1).encode("utf-8")


def test_self_closing_exclusions_is_expanded(tmp_path: Path) -> None:
    pom = POM.replace(
        "      <version>1.0</version>\n    </dependency>",
        "      <version>1.0</version>\n      <exclusions/>\n    </dependency>",
    )
    path = _write(tmp_path, pom)

    result = insert_exclusion(path, _ref("org.foo:bar:1.0"), BAZ_QUX)

    assert result.outcome is InsertOutcome.INSERTED
    assert path.read_text(encoding="utf-8") == POM_WITH_EXCLUSION


def test_prefixed_namespace_is_reused(tmp_path: Path) -> None:
    pom = (
        '<pom:project xmlns:pom="http://maven.apache.org/POM/4.0.0">\n'
        "  <pom:dependencies>\n"
        "    <pom:dependency>\n"
        "      <pom:groupId>org.foo</pom:groupId>\n"
        "      <pom:artifactId>bar</pom:artifactId>\n"
        "    </pom:dependency>\n"
        "  </pom:dependencies>\n"
        "</pom:project>\n"
    )
    path = _write(tmp_path, pom)

    insert_exclusion(path, _ref("org.foo:bar"), BAZ_QUX, versions={})

    expected = pom.replace(
        "      <pom:artifactId>bar</pom:artifactId>\n",
        "      <pom:artifactId>bar</pom:artifactId>\n"
        "      <pom:exclusions>\n"
        "        <pom:exclusion>\n"
        "          <pom:groupId>org.baz</pom:groupId>\n"
        "          <pom:artifactId>qux</pom:artifactId>\n"
        "        </pom:exclusion>\n"
        "      </pom:exclusions>\n",
    )
    assert path.read_text(encoding="utf-8") == expected


def test_element_spans_skip_comments_cdata_and_quoted_brackets() -> None:
    text = '<?xml version="1.0"?>\n<a x="1>2"><!-- <b> --><![CDATA[<c>]]><d/><e></e></a>'

    spans = element_spans(text)

    assert [span.name for span in spans] == ["a", "d", "e"]
    assert spans[1].self_closing
    assert not spans[2].self_closing
    assert text[spans[0].content_end : spans[0].end] == "</a>"
