from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from maven_assist.config import AssistConfig
from maven_assist.exceptions import ConfigurationError
from maven_assist.models import DependencyRef, ExclusionRequest
from maven_assist.service import DependencyAssistant

app = FastAPI(title="Maven Assist")

_assistant: DependencyAssistant | None = None


def get_assistant() -> DependencyAssistant:
    """Process-wide assistant; created on first use so tests can swap it first.

    Raises:
        ConfigurationError: If a `MAVEN_ASSIST_*` variable holds an invalid value.
    """
    global _assistant
    if _assistant is None:
        try:
            config = AssistConfig.from_env()
            config.validate()
        except ValueError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
        logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        _assistant = DependencyAssistant(config)
    return _assistant


@app.exception_handler(ConfigurationError)
def _configuration_error(_request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.on_event("shutdown")
def _shutdown() -> None:
    global _assistant
    if _assistant is not None:
        _assistant.shutdown()
        _assistant = None


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pom_path: str = Field(default="pom.xml", alias="pomPath")


class AnalyzeRequest(_Request):
    pass


class CoordinateRequest(_Request):
    group_id: str = Field(..., min_length=1, alias="groupId")
    artifact_id: str = Field(..., min_length=1, alias="artifactId")
    version: str | None = None


@app.post("/api/dependencies/analyze", response_class=JSONResponse)
def analyze_dependencies(req: AnalyzeRequest) -> dict[str, Any]:
    """Deduplicated, annotated dependency tree of a pom.xml.

    Failures come back as `{"error": ...}` with status 200.
    """
    return get_assistant().analyze_dependencies(req.pom_path)


@app.post("/api/exclusions", response_class=JSONResponse)
def insert_exclusion(req: ExclusionRequest) -> dict[str, Any]:
    return get_assistant().insert_exclusion(req)


@app.post("/api/dependencies/path", response_class=JSONResponse)
def dependency_path(req: CoordinateRequest) -> dict[str, Any]:
    """Which dependency pulls the target in, and where it declares it."""
    target = DependencyRef(group_id=req.group_id, artifact_id=req.artifact_id, version=req.version)
    return get_assistant().dependency_path(req.pom_path, target)


@app.post("/api/dependencies/locate", response_class=JSONResponse)
def locate_dependency(req: CoordinateRequest) -> dict[str, Any]:
    return get_assistant().locate(req.pom_path, req.group_id, req.artifact_id)


@app.get("/api/cache", response_class=JSONResponse)
def cache_stats() -> dict[str, int]:
    return get_assistant().cache_stats()
