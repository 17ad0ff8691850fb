"""Pydantic models for Maven coordinates, dependency graphs and request payloads."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


UNKNOWN_VERSION = "Unknown"
DEFAULT_SCOPE = "compile"


class GA(BaseModel):
    """A (groupId, artifactId) pair: "the same library" across versions."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    group_id: str = Field(..., min_length=1, alias="groupId")
    artifact_id: str = Field(..., min_length=1, alias="artifactId")

    def compact(self) -> str:
        """Return `groupId:artifactId`."""
        return f"{self.group_id}:{self.artifact_id}"

    def sort_key(self) -> tuple[str, str]:
        return self.group_id, self.artifact_id

    @classmethod
    def parse(cls, text: str) -> GA:
        """Parse `groupId:artifactId`.

        Raises:
            ValueError: If the text is not made of exactly two non-empty parts.
        """
        parts = (text or "").strip().split(":")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Expected groupId:artifactId, got {text!r}")
        return cls(group_id=parts[0], artifact_id=parts[1])


class GAV(BaseModel):
    """Maven coordinates (GroupId, ArtifactId, Version).

    Instances are immutable and hash structurally, so they are used directly
    as dictionary keys instead of `group:artifact:version` strings.
    """

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., min_length=1)
    artifact_id: str = Field(..., min_length=1)
    version: str = Field(default=UNKNOWN_VERSION, min_length=1)

    @property
    def ga(self) -> GA:
        return GA(group_id=self.group_id, artifact_id=self.artifact_id)

    def compact(self) -> str:
        """Return a compact string representation.

        Returns:
            A string like `groupId:artifactId:version`.
        """
        return f"{self.group_id}:{self.artifact_id}:{self.version}"


class Dependency(BaseModel):
    """A dependency entry declared in a pom.xml (or its dependencyManagement)."""

    gav: GAV
    scope: str | None = None
    optional: bool | None = None
    exclusions: list[GA] = Field(default_factory=list)


class MavenProject(BaseModel):
    """An effective (interpolated) Maven project model."""

    project: GAV
    parent: GAV | None = None
    properties: dict[str, str] = Field(default_factory=dict)
    dependencies: list[Dependency] = Field(default_factory=list)
    managed_dependencies: list[Dependency] = Field(default_factory=list)


class EffectiveArtifact(BaseModel):
    """One artifact actually placed on the build classpath."""

    gav: GAV
    scope: str | None = None
    module_name: str | None = None

    def label(self) -> str:
        text = f"{self.gav.compact()}:{self.scope or DEFAULT_SCOPE}"
        if self.module_name:
            text += f" -- module {self.module_name}"
        return text


class RawDependencyNode(BaseModel):
    """A node of the resolver's dependency graph.

    `artifact` is None only for the synthetic super-root whose children are
    the project's direct dependencies. The same coordinate may appear under
    several branches at different depths.
    """

    artifact: GAV | None = None
    scope: str | None = None
    children: list[RawDependencyNode] = Field(default_factory=list)


class ProjectedNode(BaseModel):
    """A node of the deduplicated dependency tree rendered by the editor."""

    gav: GAV | None = None
    scope: str = DEFAULT_SCOPE
    dropped_by_conflict: bool = False
    size: int = 0
    exclusions: list[GA] = Field(default_factory=list)
    children: list[ProjectedNode] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Convert to the JSON shape consumed by the editor.

        Empty `exclusions` / `children` are omitted rather than null. The root
        wrapper (no coordinate) only carries `children`.
        """
        payload: dict[str, Any] = {}
        if self.gav is not None:
            payload["groupId"] = self.gav.group_id
            payload["artifactId"] = self.gav.artifact_id
            payload["version"] = self.gav.version
            payload["scope"] = self.scope
            payload["droppedByConflict"] = self.dropped_by_conflict
            payload["size"] = self.size
        if self.exclusions:
            payload["exclusions"] = [
                {"groupId": ga.group_id, "artifactId": ga.artifact_id} for ga in self.exclusions
            ]
        if self.children:
            payload["children"] = [child.to_payload() for child in self.children]
        return payload


class DependencyRef(BaseModel):
    """A dependency named in a request; the version is optional."""

    model_config = ConfigDict(populate_by_name=True)

    group_id: str = Field(..., min_length=1, alias="groupId")
    artifact_id: str = Field(..., min_length=1, alias="artifactId")
    version: str | None = None

    def compact(self) -> str:
        text = f"{self.group_id}:{self.artifact_id}"
        return f"{text}:{self.version}" if self.version else text

    @classmethod
    def parse(cls, text: str) -> DependencyRef:
        """Parse `groupId:artifactId[:version]`."""
        parts = (text or "").strip().split(":")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(f"Expected groupId:artifactId[:version], got {text!r}")
        return cls(group_id=parts[0], artifact_id=parts[1], version=parts[2] if len(parts) == 3 else None)


class ExclusionRequest(BaseModel):
    """Insert `exclusion` into the declaration of `dependency` in `pom_path`.

    Accepts the editor's wire names (`rootDependency` / `targetDependency`)
    as well as `dependency` / `exclusion`.
    """

    model_config = ConfigDict(populate_by_name=True)

    pom_path: str = Field(default="pom.xml", alias="pomPath")
    dependency: DependencyRef = Field(validation_alias=AliasChoices("rootDependency", "dependency"))
    exclusion: GA = Field(validation_alias=AliasChoices("targetDependency", "exclusion"))


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


class DependencyLocation(BaseModel):
    """Where a dependency's `<artifactId>` sits inside a pom.xml (1-based line)."""

    pom_path: str
    line_number: int
    artifact_id_start: int
    artifact_id_end: int


class DependencyPathInfo(BaseModel):
    """The artifact that pulls in a target dependency, and where it declares it."""

    path: list[GAV]
    parent: GAV
    parent_pom_path: str
    location: DependencyLocation | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "path": [gav.compact() for gav in self.path],
            "parentPomPath": self.parent_pom_path,
            "parentGroupId": self.parent.group_id,
            "parentArtifactId": self.parent.artifact_id,
            "parentVersion": self.parent.version,
        }
        if self.location is not None:
            payload["lineNumber"] = self.location.line_number
            payload["artifactIdStart"] = self.location.artifact_id_start
            payload["artifactIdEnd"] = self.location.artifact_id_end
        if self.error:
            payload["error"] = self.error
        return payload
