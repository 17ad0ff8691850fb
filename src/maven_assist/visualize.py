"""Rich rendering utilities for the projected dependency tree."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rich.markup import escape
from rich.tree import Tree


def format_size(size: int) -> str:
    """Human-readable jar size (`0 B` when unknown)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def node_label(node: Mapping[str, Any]) -> str:
    """Label for one projected node payload.

    Conflict losers are dimmed and struck through, as the editor shows them.
    """
    gav = f"{node['groupId']}:{node['artifactId']}:{node['version']}"
    text = f"{escape(gav)} [cyan]({escape(str(node.get('scope', '')))})[/cyan]"
    if node.get("size"):
        text += f" [dim]{format_size(int(node['size']))}[/dim]"
    if node.get("droppedByConflict"):
        text = f"[dim strike]{text}[/dim strike] [yellow]omitted for conflict[/yellow]"
    excluded = node.get("exclusions") or []
    if excluded:
        names = ", ".join(f"{e['groupId']}:{e['artifactId']}" for e in excluded)
        text += f" [magenta]excludes {escape(names)}[/magenta]"
    return text


def _add_children(branch: Tree, node: Mapping[str, Any]) -> None:
    for child in node.get("children") or []:
        _add_children(branch.add(node_label(child)), child)


def build_projection_tree(payload: Mapping[str, Any], title: str) -> Tree:
    """Build a Rich Tree from an analysis payload.

    Args:
        payload: Root wrapper returned by the dependency analysis.
        title: Root label, usually the pom path.

    Returns:
        A Rich Tree object for rendering.
    """
    root = Tree(f"[bold]{escape(title)}[/bold]")
    if not payload.get("children"):
        root.add("[dim]No dependencies found[/dim]")
        return root
    _add_children(root, payload)
    return root
