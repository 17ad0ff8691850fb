"""Request-level operations shared by the CLI and the web app.

Every operation returns a JSON-ready dict. Failures are reported inside the
payload (`error` / `success: false`) instead of being raised, so a caller
never has to guess which exceptions a collaborator may throw.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from maven_assist import patcher
from maven_assist.cache import ResultCache
from maven_assist.config import AssistConfig
from maven_assist.exceptions import DependencyNotFoundError, MavenAssistError
from maven_assist.indices import build_exclusion_map, build_indices
from maven_assist.models import DependencyPathInfo, DependencyRef, ExclusionRequest, InsertOutcome
from maven_assist.projector import project
from maven_assist.resolver import (
    ClasspathLister,
    DependencyResolver,
    MavenClasspathLister,
    MavenTreeResolver,
    ModelBuilder,
    PomModelBuilder,
    dependency_path,
)
from maven_assist.sizes import SizeOracle, artifact_path, collect_sized_artifacts

logger = logging.getLogger(__name__)

_MESSAGES = {
    InsertOutcome.INSERTED: "Exclusion added successfully",
    InsertOutcome.ALREADY_EXISTS: "Exclusion already exists",
}


def _missing_pom(path: Path) -> str:
    return f"POM file does not exist: {path}"


class DependencyAssistant:
    """Analyze, annotate and patch a Maven project's dependencies.

    One instance is meant to live for the whole process: the size oracle and
    the result cache are shared by every request it serves.
    """

    def __init__(
        self,
        config: AssistConfig | None = None,
        *,
        model_builder: ModelBuilder | None = None,
        lister: ClasspathLister | None = None,
        resolver: DependencyResolver | None = None,
        sizes: SizeOracle | None = None,
        cache: ResultCache | None = None,
    ) -> None:
        self.config = config or AssistConfig.from_env()
        self.model_builder = model_builder or PomModelBuilder()
        self.lister = lister or MavenClasspathLister(self.config.mvn_command)
        self.resolver = resolver or MavenTreeResolver(self.config.mvn_command)
        self.sizes = sizes or SizeOracle(
            self.config.local_repo,
            workers=self.config.size_workers,
            timeout=self.config.size_timeout,
        )
        self.cache = cache or ResultCache(self.config.cache_ttl)

    def analyze_dependencies(self, pom_path: str | Path) -> dict[str, Any]:
        """Projected, annotated dependency tree of `pom_path`.

        Results are cached per path until the TTL elapses or the file's
        modification time changes. Failed analyses are not cached.
        """
        path = Path(pom_path).resolve()
        if not path.is_file():
            return {"error": _missing_pom(path)}

        key = str(path)
        mtime = path.stat().st_mtime_ns
        cached = self.cache.get(key, mtime)
        if cached is not None:
            logger.debug("Serving cached analysis for %s", key)
            return json.loads(cached)

        swept = self.cache.cleanup_expired()
        if swept:
            logger.debug("Dropped %d expired analysis result(s)", swept)

        try:
            model = self.model_builder.build(path)
            graph = self.resolver.resolve(path)
            index = build_indices(self.lister.list(path))
            exclusions = build_exclusion_map(model)
            self.sizes.preload_parallel(collect_sized_artifacts(graph, index.gas))
            root = project(graph, index, exclusions, self.sizes)
        except Exception as exc:
            logger.exception("Dependency analysis failed for %s", key)
            return {"error": f"Dependency analysis exception: {exc}"}

        payload = root.to_payload() if root is not None else {}
        self.cache.put(key, mtime, json.dumps(payload))
        return payload

    def insert_exclusion(self, request: ExclusionRequest | Mapping[str, Any]) -> dict[str, Any]:
        """Add an `<exclusion>` to a declared dependency, at most once."""
        try:
            req = request if isinstance(request, ExclusionRequest) else ExclusionRequest.model_validate(request)
        except ValidationError as exc:
            return {"success": False, "error": f"Missing dependency parameters: {exc.error_count()} invalid field(s)"}

        try:
            result = patcher.insert_exclusion(req.pom_path, req.dependency, req.exclusion)
        except DependencyNotFoundError as exc:
            return {"success": False, "error": str(exc)}
        except MavenAssistError as exc:
            logger.warning("Cannot insert exclusion into %s: %s", req.pom_path, exc)
            return {"success": False, "error": f"Failed to insert exclusion: {exc}"}

        if result.outcome is InsertOutcome.INSERTED:
            self.cache.invalidate(str(Path(req.pom_path).resolve()))
        return {"success": True, "message": _MESSAGES[result.outcome], "highlightLine": result.line}

    def dependency_path(self, pom_path: str | Path, target: DependencyRef) -> dict[str, Any]:
        """Chain leading to `target`, plus where its direct parent declares it.

        For a direct dependency the parent is the project itself and the
        location points into `pom_path`. Otherwise the parent's pom is looked
        up in the local repository; a missing pom leaves the location out and
        explains why in `error`.
        """
        path = Path(pom_path).resolve()
        if not path.is_file():
            return {"success": False, "error": _missing_pom(path)}

        try:
            model = self.model_builder.build(path)
            chain = dependency_path(self.resolver.resolve(path), target)
        except MavenAssistError as exc:
            return {"success": False, "error": f"Failed to resolve dependency path: {exc}"}
        if not chain:
            return {"success": False, "error": f"Target dependency not found: {target.compact()}"}

        if len(chain) == 1:
            parent, parent_pom = model.project, path
        else:
            parent = chain[-2]
            parent_pom = artifact_path(self.config.local_repo, parent, "pom")

        info = DependencyPathInfo(path=chain, parent=parent, parent_pom_path=str(parent_pom))
        if not parent_pom.is_file():
            info.error = f"Parent POM not found in local repository: {parent_pom}"
            return info.to_payload()

        try:
            info.location = patcher.locate_dependency(parent_pom, target.group_id, target.artifact_id)
        except MavenAssistError as exc:
            info.error = str(exc)
        return info.to_payload()

    def locate(self, pom_path: str | Path, group_id: str, artifact_id: str) -> dict[str, Any]:
        """Line and column span of a dependency's `<artifactId>` in `pom_path`."""
        path = Path(pom_path)
        if not path.is_file():
            return {"success": False, "error": _missing_pom(path)}
        try:
            location = patcher.locate_dependency(path, group_id, artifact_id)
        except MavenAssistError as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "pomPath": location.pom_path,
            "lineNumber": location.line_number,
            "artifactIdStart": location.artifact_id_start,
            "artifactIdEnd": location.artifact_id_end,
        }

    def cache_stats(self) -> dict[str, int]:
        return {"results": len(self.cache), "sizes": len(self.sizes)}

    def shutdown(self) -> None:
        """Stop the size worker pool and drop every cached value."""
        self.sizes.shutdown(wait=False)
        self.sizes.clear()
        self.cache.clear()
