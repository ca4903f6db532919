"""
Graphviz DOT diagram generator for compiled rule graphs.

Converts a LevelGraph into Graphviz DOT format so sheet authors can see
the routing they wrote.

Supports two modes:
    - SIMPLE: Node flow with option labels on edges
    - DETAILED: Adds conditions, guards and set_vars to edge labels

Edge styles:
    solid   route `next`
    dashed  guard `next`
    dotted  node fallback
    bold    reset_to
"""

from enum import Enum
from typing import List

from sheetflow.compare import to_comparable_string
from sheetflow.model import END, FAIL, LevelGraph, Route


class DotMode(Enum):
    """Visualization modes for DOT output."""
    SIMPLE = "simple"
    DETAILED = "detailed"


def _escape_dot_string(s: str) -> str:
    """Escape special characters for DOT labels."""
    if not s:
        return '""'
    s = s.replace('\\', '\\\\')
    s = s.replace('"', '\\"')
    s = s.replace('\n', '\\n')
    return f'"{s}"'


def _escape_dot_id(identifier: str) -> str:
    """Quote an identifier unless it is a plain DOT id."""
    if not identifier or identifier[0].isdigit() or not identifier.replace('_', '').isalnum():
        return _escape_dot_string(identifier)
    return identifier


def _route_label(route: Route, mode: DotMode) -> str:
    label = route.option_label or to_comparable_string(route.when.value)
    if mode != DotMode.DETAILED:
        return label
    parts = [f"{route.when.field} {route.when.op} {to_comparable_string(route.when.value)}"]
    if route.set_vars:
        assignments = ";".join(
            f"{k}={to_comparable_string(v)}" for k, v in route.set_vars.items()
        )
        parts.append(f"set {assignments}")
    if route.reason:
        parts.append(f"reason {route.reason}")
    return "\n".join(parts)


def generate_dot(graph: LevelGraph, mode: DotMode = DotMode.SIMPLE) -> str:
    """
    Generate Graphviz DOT for one level.

    Args:
        graph: LevelGraph to visualize
        mode: SIMPLE or DETAILED

    Returns:
        String containing DOT graph definition
    """
    lines: List[str] = []

    lines.append(f"digraph {_escape_dot_id('level_' + graph.level)} {{")
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=filled, fillcolor=lightblue];")

    # Sentinels
    lines.append(f'  {FAIL} [shape=doublecircle, fillcolor=salmon, label="{FAIL}"];')
    lines.append(f'  {END} [shape=doublecircle, fillcolor=lightgreen, label="{END}"];')

    for node in graph.nodes:
        label = node.id if node.field == node.id else f"{node.id}\n{node.field}"
        if mode == DotMode.DETAILED:
            label = f"{label}\n({node.input_type})"
        attrs = f"label={_escape_dot_string(label)}"
        if node.id == graph.entry_node:
            attrs += ", penwidth=2"
        lines.append(f"  {_escape_dot_id(node.id)} [{attrs}];")

    for node in graph.nodes:
        src = _escape_dot_id(node.id)
        for route in node.routes:
            label = _route_label(route, mode)
            if route.goto_node:
                lines.append(f"  {src} -> {_escape_dot_id(route.goto_node)} [label={_escape_dot_string(label)}];")
            elif route.reset_to:
                lines.append(
                    f"  {src} -> {_escape_dot_id(route.reset_to)} "
                    f"[label={_escape_dot_string(label)}, style=bold];"
                )
            guard = route.guard
            if guard is not None and guard.next:
                guard_label = f"{label} & {guard.field} {guard.op} {guard.value}"
                if mode == DotMode.DETAILED and guard.reason:
                    guard_label += f"\n{guard.reason}"
                lines.append(
                    f"  {src} -> {_escape_dot_id(guard.next)} "
                    f"[label={_escape_dot_string(guard_label)}, style=dashed];"
                )
        if node.fallback_node:
            lines.append(
                f"  {src} -> {_escape_dot_id(node.fallback_node)} "
                '[label="otherwise", style=dotted];'
            )

    lines.append("}")
    return "\n".join(lines)


def save_dot_file(graph: LevelGraph, filename: str, mode: DotMode = DotMode.SIMPLE) -> None:
    """
    Generate DOT and save to file.

    Args:
        graph: LevelGraph to visualize
        filename: Output file path (.dot extension recommended)
        mode: Visualization mode
    """
    dot = generate_dot(graph, mode=mode)
    with open(filename, 'w') as f:
        f.write(dot)


__all__ = ["DotMode", "generate_dot", "save_dot_file"]
