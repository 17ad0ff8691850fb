from __future__ import annotations

import importlib
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import main
from maven_assist.service import DependencyAssistant


@pytest.fixture
def client(assistant: DependencyAssistant) -> Iterator[TestClient]:
    main._assistant = assistant
    try:
        yield TestClient(main.app)
    finally:
        main._assistant = None


def test_analyze_endpoint(client: TestClient, write_pom) -> None:
    pom = write_pom()

    res = client.post("/api/dependencies/analyze", json={"pomPath": str(pom)})

    assert res.status_code == 200
    body = res.json()
    assert [c["artifactId"] for c in body["children"]] == ["spring-core", "junit"]


def test_analyze_endpoint_reports_missing_pom(client: TestClient, tmp_path) -> None:
    res = client.post("/api/dependencies/analyze", json={"pomPath": str(tmp_path / "missing.xml")})

    assert res.status_code == 200
    assert "POM file does not exist" in res.json()["error"]


def test_exclusion_endpoint(client: TestClient, write_pom) -> None:
    pom = write_pom()
    body = {
        "pomPath": str(pom),
        "rootDependency": {"groupId": "junit", "artifactId": "junit"},
        "targetDependency": {"groupId": "org.hamcrest", "artifactId": "hamcrest-core"},
    }

    res = client.post("/api/exclusions", json=body)

    assert res.status_code == 200
    assert res.json()["message"] == "Exclusion added successfully"
    assert "<artifactId>hamcrest-core</artifactId>" in pom.read_text(encoding="utf-8")


def test_exclusion_endpoint_validates_request(client: TestClient) -> None:
    res = client.post("/api/exclusions", json={"pomPath": "pom.xml"})
    assert res.status_code == 422


def test_path_and_locate_endpoints(client: TestClient, write_pom) -> None:
    pom = write_pom()
    coords = {"pomPath": str(pom), "groupId": "junit", "artifactId": "junit"}

    path = client.post("/api/dependencies/path", json=coords).json()
    located = client.post("/api/dependencies/locate", json=coords).json()

    assert path["path"] == ["junit:junit:4.13.2"]
    assert located["success"] is True
    assert located["lineNumber"] == path["lineNumber"]


def test_cache_endpoint(client: TestClient, write_pom) -> None:
    client.post("/api/dependencies/analyze", json={"pomPath": str(write_pom())})

    res = client.get("/api/cache")

    assert res.json()["results"] == 1


def test_shutdown_hook_releases_assistant(assistant: DependencyAssistant, write_pom) -> None:
    main._assistant = assistant
    with TestClient(main.app) as client:
        client.post("/api/dependencies/analyze", json={"pomPath": str(write_pom())})
    assert main._assistant is None
    assert len(assistant.cache) == 0


def test_invalid_environment_is_reported_in_the_response(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MAVEN_ASSIST_CACHE_TTL", "abc")
    module = importlib.reload(main)
    assert module._assistant is None

    res = TestClient(module.app).post("/api/dependencies/analyze", json={"pomPath": str(tmp_path / "pom.xml")})

    assert res.status_code == 500
    assert res.json()["error"].startswith("Invalid configuration:")
    assert module._assistant is None
