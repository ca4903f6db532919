"""
Serialization helpers for compiled rule graphs.

Provides lossless JSON/YAML round-trip via intermediate dict representation.
This module intentionally keeps serialization structure stable and explicit.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping

import yaml

from sheetflow.model import (
    Condition,
    Guard,
    LevelGraph,
    Node,
    Route,
    freeze_mapping,
)


def condition_to_dict(c: Condition) -> Dict[str, Any]:
    return {"field": c.field, "op": c.op, "value": c.value}


def condition_from_dict(d: Dict[str, Any]) -> Condition:
    return Condition(field=d["field"], op=d["op"], value=d.get("value"))


def guard_to_dict(g: Guard | None) -> Dict[str, Any] | None:
    if g is None:
        return None
    return {"field": g.field, "op": g.op, "value": g.value, "next": g.next, "reason": g.reason}


def guard_from_dict(d: Dict[str, Any] | None) -> Guard | None:
    if d is None:
        return None
    return Guard(
        field=d["field"],
        op=d["op"],
        value=d.get("value"),
        next=d.get("next", ""),
        reason=d.get("reason", ""),
    )


def route_to_dict(r: Route) -> Dict[str, Any]:
    return {
        "when": condition_to_dict(r.when),
        "goto_node": r.goto_node,
        "reason": r.reason,
        "print": r.print,
        "set": dict(r.set_vars),
        "guard": guard_to_dict(r.guard),
        "reset_to": r.reset_to,
        "option_label": r.option_label,
        "option_value": r.option_value,
    }


def route_from_dict(d: Dict[str, Any]) -> Route:
    return Route(
        when=condition_from_dict(d["when"]),
        goto_node=d.get("goto_node"),
        reason=d.get("reason"),
        print=d.get("print"),
        set_vars=freeze_mapping(d.get("set")),
        guard=guard_from_dict(d.get("guard")),
        reset_to=d.get("reset_to"),
        option_label=d.get("option_label", ""),
        option_value=d.get("option_value", ""),
    )


def node_to_dict(n: Node) -> Dict[str, Any]:
    return {
        "id": n.id,
        "field": n.field,
        "input_type": n.input_type,
        "routes": [route_to_dict(r) for r in n.routes],
        "fallback_node": n.fallback_node,
    }


def node_from_dict(d: Dict[str, Any]) -> Node:
    return Node(
        id=d["id"],
        field=d.get("field", d["id"]),
        input_type=d.get("input_type", "bool"),
        routes=tuple(route_from_dict(r) for r in d.get("routes", [])),
        fallback_node=d.get("fallback_node"),
    )


def graph_to_dict(g: LevelGraph) -> Dict[str, Any]:
    return {
        "level": g.level,
        "entry_node": g.entry_node,
        "fallback_node": g.fallback_node,
        "nodes": [node_to_dict(n) for n in g.nodes],
    }


def graph_from_dict(d: Dict[str, Any]) -> LevelGraph:
    return LevelGraph(
        level=str(d["level"]),
        entry_node=d.get("entry_node"),
        fallback_node=d.get("fallback_node"),
        nodes=tuple(node_from_dict(n) for n in d.get("nodes", [])),
    )


def graphs_to_dict(graphs: Mapping[str, LevelGraph]) -> Dict[str, Any]:
    return {level: graph_to_dict(g) for level, g in graphs.items()}


def graphs_from_dict(d: Mapping[str, Any]) -> Dict[str, LevelGraph]:
    return {str(level): graph_from_dict(g) for level, g in d.items()}


def graphs_to_json(graphs: Mapping[str, LevelGraph]) -> str:
    return json.dumps(graphs_to_dict(graphs), sort_keys=True)


def graphs_from_json(s: str) -> Dict[str, LevelGraph]:
    return graphs_from_dict(json.loads(s))


def graphs_to_yaml(graphs: Mapping[str, LevelGraph]) -> str:
    return yaml.safe_dump(graphs_to_dict(graphs), sort_keys=False)


def graphs_from_yaml(s: str) -> Dict[str, LevelGraph]:
    return graphs_from_dict(yaml.safe_load(s) or {})
