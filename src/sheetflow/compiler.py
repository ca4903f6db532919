"""
Graph Compiler (Layer 2: Table -> per-level LevelGraph).

Folds flat rule rows (one row per option-route) into one LevelGraph per
questionnaire level.

Rule sheet columns (case-insensitive):
    level, qId, input_type, field, option_label, option_value, next,
    fail_reason, set_vars, phrase, guard_if_var, guard_op, guard_value,
    guard_next, guard_reason, fallback, reset_to (optional)

Folding rules:
    - Rows without level or qId are skipped
    - The first row of a (level, qId) creates the node; later rows only
      append routes, in row order
    - The first node created for a level is its entry node
    - fail_reason with an empty or FAIL `next` forces the route to FAIL
    - fallback: first non-empty cell for a node wins

The sheet is edited by hand, so anomalies degrade to skips rather than
errors. The only loud failure is asking for a level with no nodes
(see get_level_graph).
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from sheetflow.compare import OPERATORS, parse_number
from sheetflow.errors import MissingLevelError
from sheetflow.model import (
    BOOL,
    FAIL,
    OPTIONS3,
    Condition,
    Guard,
    LevelGraph,
    Node,
    Route,
    Value,
    freeze_mapping,
)
from sheetflow.table import Table, parse_table

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "level", "qId", "input_type", "field", "option_label", "option_value",
    "next", "fail_reason", "set_vars", "phrase", "guard_if_var", "guard_op",
    "guard_value", "guard_next", "guard_reason", "fallback",
)


def coerce_value(raw: str) -> Value:
    """`true`/`false` -> bool, numeric text -> number, anything else stays text."""
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw != "":
        number = parse_number(raw)
        if number is not None:
            return number
    return raw


def parse_set_vars(text: str) -> Dict[str, Value]:
    """
    Parse a `set_vars` cell.

    Syntax:
        key1=val1;key2=val2

    Blank pairs and pairs without a key are ignored. A pair without `=`
    assigns an empty string.
    """
    assignments: Dict[str, Value] = {}
    if not text:
        return assignments
    for pair in text.split(";"):
        if not pair.strip():
            continue
        key, _, raw = pair.partition("=")
        key = key.strip()
        if not key:
            continue
        assignments[key] = coerce_value(raw.strip())
    return assignments


def normalize_input_type(raw: str) -> str:
    if raw in ("options", OPTIONS3):
        return OPTIONS3
    return raw or BOOL


@dataclass
class _NodeBuilder:
    """Mutable accumulator for one node while rows are folded."""
    id: str
    field: str
    input_type: str
    routes: List[Route] = field(default_factory=list)
    fallback_node: Optional[str] = None

    def freeze(self) -> Node:
        return Node(
            id=self.id,
            field=self.field,
            input_type=self.input_type,
            routes=tuple(self.routes),
            fallback_node=self.fallback_node,
        )


@dataclass
class _LevelBuilder:
    level: str
    entry_node: Optional[str] = None
    nodes: Dict[str, _NodeBuilder] = field(default_factory=dict)

    def freeze(self) -> LevelGraph:
        return LevelGraph(
            level=self.level,
            entry_node=self.entry_node,
            nodes=tuple(n.freeze() for n in self.nodes.values()),
        )


def _build_route(table: Table, row, node: _NodeBuilder) -> Route:
    opt_label = table.cell(row, "option_label")
    opt_value = table.cell(row, "option_value")
    next_node = table.cell(row, "next")
    fail_reason = table.cell(row, "fail_reason")
    phrase = table.cell(row, "phrase")
    reset_to = table.cell(row, "reset_to")

    if node.input_type == BOOL:
        stable_value: Value = opt_value.lower() == "true"
    else:
        stable_value = opt_value or opt_label

    goto_node = next_node or None
    reason = None
    if fail_reason and (not next_node or next_node == FAIL):
        goto_node = FAIL
        reason = fail_reason

    guard = None
    guard_var = table.cell(row, "guard_if_var")
    guard_op = table.cell(row, "guard_op")
    if guard_var and guard_op:
        if guard_op not in OPERATORS:
            warnings.warn(
                f"Unknown guard operator {guard_op!r} on {node.id}; the guard never matches",
                UserWarning,
            )
        guard = Guard(
            field=guard_var,
            op=guard_op,
            value=table.cell(row, "guard_value"),
            next=table.cell(row, "guard_next"),
            reason=table.cell(row, "guard_reason"),
        )

    return Route(
        when=Condition(field=node.field, op="==", value=stable_value),
        goto_node=goto_node,
        reason=reason,
        print=phrase or None,
        set_vars=freeze_mapping(parse_set_vars(table.cell(row, "set_vars"))),
        guard=guard,
        reset_to=reset_to or None,
        option_label=opt_label,
        option_value=opt_value or opt_label,
    )


def compile_rules(table: Table) -> Dict[str, LevelGraph]:
    """
    Compile a parsed rule sheet into one graph per level.

    Args:
        table: Parsed rule sheet

    Returns:
        Mapping of level identifier (as written in the sheet) to LevelGraph,
        in order of first appearance
    """
    levels: Dict[str, _LevelBuilder] = {}

    for row_num, row in enumerate(table.rows, start=2):  # header is line 1
        level = table.cell(row, "level")
        q_id = table.cell(row, "qId")
        if not level or not q_id:
            logger.debug("Skipping rule row %d: missing level or qId", row_num)
            continue

        lvl = levels.setdefault(level, _LevelBuilder(level=level))
        node = lvl.nodes.get(q_id)
        if node is None:
            node = _NodeBuilder(
                id=q_id,
                field=table.cell(row, "field") or q_id,
                input_type=normalize_input_type(table.cell(row, "input_type")),
            )
            lvl.nodes[q_id] = node
            if lvl.entry_node is None:
                lvl.entry_node = q_id

        fallback = table.cell(row, "fallback")
        if fallback and node.fallback_node is None:
            node.fallback_node = fallback

        node.routes.append(_build_route(table, row, node))

    graphs = {level: builder.freeze() for level, builder in levels.items()}
    logger.debug(
        "Compiled %d level(s): %s",
        len(graphs),
        ", ".join(f"{k}={len(g.nodes)} nodes" for k, g in graphs.items()),
    )
    return graphs


def compile_rules_text(text: str) -> Dict[str, LevelGraph]:
    """Parse and compile rule-sheet text in one call."""
    return compile_rules(parse_table(text))


def get_level_graph(graphs: Mapping[str, LevelGraph], level) -> LevelGraph:
    """
    Rules for one level.

    Raises:
        MissingLevelError: If the level compiled to no nodes
    """
    graph = graphs.get(str(level))
    if graph is None or not graph.nodes:
        raise MissingLevelError(str(level))
    return graph


__all__ = [
    "RULE_COLUMNS",
    "compile_rules",
    "compile_rules_text",
    "get_level_graph",
    "parse_set_vars",
    "coerce_value",
]
