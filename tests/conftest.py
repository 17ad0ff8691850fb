"""Pytest configuration and fixtures for maven-assist tests."""
from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from maven_assist.config import AssistConfig
from maven_assist.models import GAV, EffectiveArtifact, MavenProject, RawDependencyNode
from maven_assist.parser import parse_pom
from maven_assist.service import DependencyAssistant
from maven_assist.sizes import SizeOracle


def gav(text: str) -> GAV:
    group_id, artifact_id, version = text.split(":")
    return GAV(group_id=group_id, artifact_id=artifact_id, version=version)


def node(text: str, *children: RawDependencyNode, scope: str | None = "compile") -> RawDependencyNode:
    return RawDependencyNode(artifact=gav(text), scope=scope, children=list(children))


def root(*children: RawDependencyNode) -> RawDependencyNode:
    return RawDependencyNode(children=list(children))


class FakeModelBuilder:
    def __init__(self) -> None:
        self.calls = 0

    def build(self, pom_path: Path) -> MavenProject:
        self.calls += 1
        return parse_pom(pom_path)


class FakeResolver:
    def __init__(self, graph: RawDependencyNode) -> None:
        self.graph = graph
        self.calls = 0

    def resolve(self, pom_path: Path) -> RawDependencyNode:
        self.calls += 1
        return self.graph


class FakeLister:
    def __init__(self, artifacts: list[EffectiveArtifact]) -> None:
        self.artifacts = artifacts
        self.calls = 0

    def list(self, pom_path: Path) -> list[EffectiveArtifact]:
        self.calls += 1
        return self.artifacts


class FixedSizes:
    """Size lookup returning the same size for every coordinate."""

    def __init__(self, size: int = 0) -> None:
        self.size = size

    def size_of(self, gav: GAV) -> int:
        return self.size


SIMPLE_POM = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <modelVersion>4.0.0</modelVersion>
  <groupId>com.acme</groupId>
  <artifactId>demo</artifactId>
  <version>1.0.0</version>

  <dependencies>
    <dependency>
      <groupId>org.springframework</groupId>
      <artifactId>spring-core</artifactId>
      <version>6.1.0</version>
      <exclusions>
        <exclusion>
          <groupId>commons-logging</groupId>
          <artifactId>commons-logging</artifactId>
        </exclusion>
      </exclusions>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
      <version>4.13.2</version>
      <scope>test</scope>
    </dependency>
  </dependencies>
</project>
"""


@pytest.fixture
def write_pom(tmp_path: Path) -> Callable[..., Path]:
    def _write(content: str = SIMPLE_POM, name: str = "pom.xml", newline: str = "\n") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.replace("\n", newline).encode("utf-8"))
        return path

    return _write


@pytest.fixture
def simple_graph() -> RawDependencyNode:
    return root(
        node("org.springframework:spring-core:6.1.0", node("org.springframework:spring-jcl:6.1.0")),
        node("junit:junit:4.13.2", node("org.hamcrest:hamcrest-core:1.3", scope="test"), scope="test"),
    )


@pytest.fixture
def simple_classpath() -> list[EffectiveArtifact]:
    return [
        EffectiveArtifact(gav=gav("org.springframework:spring-core:6.1.0"), scope="compile"),
        EffectiveArtifact(gav=gav("org.springframework:spring-jcl:6.1.0"), scope="compile"),
        EffectiveArtifact(gav=gav("junit:junit:4.13.2"), scope="test"),
        EffectiveArtifact(gav=gav("org.hamcrest:hamcrest-core:1.3"), scope="test"),
    ]


@pytest.fixture
def local_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "m2"
    repo.mkdir()
    return repo


@pytest.fixture
def assistant(
    local_repo: Path, simple_graph: RawDependencyNode, simple_classpath: list[EffectiveArtifact]
) -> Iterator[DependencyAssistant]:
    config = AssistConfig(local_repo=local_repo, size_workers=2)
    a = DependencyAssistant(
        config,
        model_builder=FakeModelBuilder(),
        lister=FakeLister(simple_classpath),
        resolver=FakeResolver(simple_graph),
        sizes=SizeOracle(local_repo, workers=2),
    )
    yield a
    a.shutdown()
