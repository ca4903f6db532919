"""
Graph Analyzer: early diagnostics for compiled rule graphs.

This module provides lightweight analysis of LevelGraph objects:
    - Dangling references (targets that are neither nodes nor sentinels)
    - Reachability from the entry node
    - Cycles
    - Unknown comparison operators
    - Dead-end nodes (no routes and no fallback)

IMPORTANT: This is read-only. Replay stays lenient and never raises on
any of these; the report is how sheet authors find their mistakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from sheetflow.compare import OPERATORS
from sheetflow.model import SENTINELS, LevelGraph, Node


def _targets(node: Node) -> Iterator[Tuple[str, str]]:
    """Yield (kind, target) for every reference a node makes."""
    for route in node.routes:
        if route.goto_node:
            yield "next", route.goto_node
        if route.reset_to:
            yield "reset_to", route.reset_to
        if route.guard is not None and route.guard.next:
            yield "guard_next", route.guard.next
    if node.fallback_node:
        yield "fallback", node.fallback_node


def _find_cycles_dfs(graph: Dict[str, List[str]], start: str, visited: Set[str],
                     rec_stack: Set[str], path: List[str]) -> Optional[List[str]]:
    """DFS to find a cycle starting from a node."""
    visited.add(start)
    rec_stack.add(start)
    path.append(start)

    for neighbor in graph.get(start, []):
        if neighbor not in visited:
            cycle = _find_cycles_dfs(graph, neighbor, visited, rec_stack, path[:])
            if cycle:
                return cycle
        elif neighbor in rec_stack:
            cycle_start_idx = path.index(neighbor)
            return path[cycle_start_idx:] + [neighbor]

    rec_stack.remove(start)
    return None


@dataclass
class GraphReport:
    """Analysis report for one level graph."""

    level: str
    total_nodes: int = 0
    total_routes: int = 0
    guarded_routes: int = 0

    dangling_references: List[Tuple[str, str, str]] = field(default_factory=list)  # (node, kind, target)
    unreachable_nodes: Set[str] = field(default_factory=set)
    dead_end_nodes: List[str] = field(default_factory=list)
    unknown_operators: List[Tuple[str, str]] = field(default_factory=list)  # (node, op)
    has_cycles: bool = False
    cycle_example: Optional[List[str]] = None

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        if msg not in self.warnings:
            self.warnings.append(msg)


def analyze_graph(graph: LevelGraph) -> GraphReport:
    """
    Analyze one level graph.

    Returns a GraphReport with counts and warnings.
    """
    report = GraphReport(level=graph.level)
    report.total_nodes = len(graph.nodes)
    node_ids = set(graph.node_ids)

    outgoing: Dict[str, List[str]] = {n.id: [] for n in graph.nodes}

    for node in graph.nodes:
        report.total_routes += len(node.routes)
        if not node.routes and not node.fallback_node:
            report.dead_end_nodes.append(node.id)

        for route in node.routes:
            if route.when.op not in OPERATORS:
                report.unknown_operators.append((node.id, route.when.op))
            if route.guard is not None:
                report.guarded_routes += 1
                if route.guard.op not in OPERATORS:
                    report.unknown_operators.append((node.id, route.guard.op))

        for kind, target in _targets(node):
            if target in SENTINELS:
                continue
            if target not in node_ids:
                report.dangling_references.append((node.id, kind, target))
                continue
            if target not in outgoing[node.id]:
                outgoing[node.id].append(target)

    # Reachability from the entry node
    reachable: Set[str] = set()
    stack = [graph.entry_node] if graph.entry_node else []
    while stack:
        current = stack.pop()
        if current in reachable:
            continue
        reachable.add(current)
        stack.extend(t for t in outgoing.get(current, []) if t not in reachable)
    report.unreachable_nodes = node_ids - reachable

    visited: Set[str] = set()
    for node_id in outgoing:
        if node_id not in visited:
            cycle = _find_cycles_dfs(outgoing, node_id, visited, set(), [])
            if cycle:
                report.has_cycles = True
                report.cycle_example = cycle
                break

    for node_id, kind, target in report.dangling_references:
        report.add_warning(f"{node_id}: {kind} points at unknown node {target}")
    if report.unreachable_nodes:
        report.add_warning(
            f"Unreachable nodes: {', '.join(sorted(report.unreachable_nodes))}"
        )
    if report.has_cycles:
        report.add_warning(f"Cycle detected: {' -> '.join(report.cycle_example)}")
    for node_id, op in report.unknown_operators:
        report.add_warning(f"{node_id}: unknown operator {op!r}")
    if report.dead_end_nodes:
        report.add_warning(
            f"Nodes without routes or fallback: {', '.join(report.dead_end_nodes)}"
        )

    return report


def analyze_graphs(graphs: Dict[str, LevelGraph]) -> Dict[str, GraphReport]:
    return {level: analyze_graph(g) for level, g in graphs.items()}
