"""Typer CLI entry point for Maven Assist."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from maven_assist.config import AssistConfig
from maven_assist.models import GA, DependencyRef, ExclusionRequest
from maven_assist.service import DependencyAssistant
from maven_assist.visualize import build_projection_tree

app = typer.Typer(add_completion=False, help="Inspect and patch Maven pom.xml dependencies.")
console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _assistant(verbose: bool) -> DependencyAssistant:
    config = AssistConfig.from_env()
    config.validate()
    _setup_logging("DEBUG" if verbose else config.log_level)
    return DependencyAssistant(config)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(code=1)


VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")]


@app.command()
def tree(
    pom: Annotated[Path, typer.Argument(help="Path to a Maven pom.xml file.")],
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw analysis payload.")] = False,
    verbose: VerboseOption = False,
) -> None:
    """Resolve a pom.xml and print its deduplicated dependency tree."""
    try:
        assistant = _assistant(verbose)
    except ValueError as exc:
        _fail(str(exc))
    try:
        payload = assistant.analyze_dependencies(pom)
    finally:
        assistant.shutdown()

    if "error" in payload:
        _fail(payload["error"])
    if as_json:
        console.print_json(json.dumps(payload))
        return
    console.print(build_projection_tree(payload, str(pom)))


@app.command()
def exclude(
    pom: Annotated[Path, typer.Argument(help="Path to a Maven pom.xml file.")],
    dependency: Annotated[str, typer.Argument(help="Declared dependency: groupId:artifactId[:version]")],
    exclusion: Annotated[str, typer.Argument(help="Artifact to exclude: groupId:artifactId")],
    verbose: VerboseOption = False,
) -> None:
    """Add an <exclusion> to a dependency declared in POM."""
    try:
        request = ExclusionRequest(
            pom_path=str(pom),
            dependency=DependencyRef.parse(dependency),
            exclusion=GA.parse(exclusion),
        )
        assistant = _assistant(verbose)
    except ValueError as exc:
        _fail(str(exc))

    result = assistant.insert_exclusion(request)
    if not result["success"]:
        _fail(result["error"])
    console.print(f"[green]{result['message']}[/green] (line {result['highlightLine']})")


@app.command()
def path(
    pom: Annotated[Path, typer.Argument(help="Path to a Maven pom.xml file.")],
    target: Annotated[str, typer.Argument(help="Transitive dependency: groupId:artifactId[:version]")],
    verbose: VerboseOption = False,
) -> None:
    """Show which chain of dependencies pulls TARGET in, and where it is declared."""
    try:
        ref = DependencyRef.parse(target)
        assistant = _assistant(verbose)
    except ValueError as exc:
        _fail(str(exc))

    result = assistant.dependency_path(pom, ref)
    if not result["success"]:
        _fail(result["error"])

    console.print(" [dim]->[/dim] ".join(result["path"]), soft_wrap=True)
    console.print(f"Declared by [bold]{result['parentGroupId']}:{result['parentArtifactId']}:{result['parentVersion']}[/bold]")
    if "lineNumber" in result:
        console.print(f"[dim]{result['parentPomPath']}:{result['lineNumber']}:{result['artifactIdStart'] + 1}[/dim]", soft_wrap=True)
    elif result.get("error"):
        console.print(f"[yellow]{escape(result['error'])}[/yellow]")


@app.command()
def locate(
    pom: Annotated[Path, typer.Argument(help="Path to a Maven pom.xml file.")],
    ga: Annotated[str, typer.Argument(help="Dependency to find: groupId:artifactId")],
    verbose: VerboseOption = False,
) -> None:
    """Print where a dependency's <artifactId> is declared in POM."""
    try:
        coords = GA.parse(ga)
        assistant = _assistant(verbose)
    except ValueError as exc:
        _fail(str(exc))

    result = assistant.locate(pom, coords.group_id, coords.artifact_id)
    if not result["success"]:
        _fail(result["error"])
    console.print(f"{result['pomPath']}:{result['lineNumber']}:{result['artifactIdStart'] + 1}", soft_wrap=True, highlight=False)


def main() -> None:
    """Console-script entry point."""
    app()
