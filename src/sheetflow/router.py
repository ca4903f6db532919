"""
Step Router.

`step(graph, node_id, answer, vars)` is the reducer of the replay loop:

    (graph, vars, node_id, answer) -> StepOutcome(vars', kind, ...)

It never mutates the vars it is given; every outcome carries a fresh
snapshot.

Route selection (first match wins, in rule-sheet order):
    1. The answer is recorded under the node's field
    2. The first route whose `when` matches is examined:
         - guard matches      -> guard.next decides the outcome
         - guard does not     -> route skipped, scanning continues
         - no guard           -> set_vars applied, goto_node decides
    3. No route matched      -> node fallback decides
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sheetflow.compare import compare
from sheetflow.model import (
    BOOL,
    END,
    FAIL,
    GENERIC_REASON,
    LevelGraph,
    Node,
    Route,
    Value,
)

_TRUE_WORDS = ("yes", "true")
_FALSE_WORDS = ("no", "false")


class StepKind(Enum):
    """How a single step ended."""
    HALT = "halt"          # answer accepted, no further routing rule
    ADVANCE = "advance"    # move to next_node
    FAIL = "fail"          # respondent not eligible
    COMPLETE = "complete"  # level finished


@dataclass(frozen=True)
class StepOutcome:
    """
    Result of routing one answer.

    Properties:
        kind: StepKind
        vars: Vars snapshot after this step
        next_node: Target node id (ADVANCE only)
        reset: True when the advance came from a route's reset_to
        reason: Failure reason (FAIL only)
        print: Phrase key of the route that produced the outcome
        guard_reason: Reason of the guard that produced the outcome
    """

    kind: StepKind
    vars: Dict[str, Value] = field(default_factory=dict)
    next_node: Optional[str] = None
    reset: bool = False
    reason: Optional[str] = None
    print: Optional[str] = None
    guard_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is not StepKind.FAIL

    @property
    def complete(self) -> bool:
        return self.kind is StepKind.COMPLETE


def normalize_answer(node: Node, answer: Any) -> Any:
    """Bool nodes accept yes/no/true/false in any case; other answers pass through."""
    if node.input_type != BOOL or isinstance(answer, bool):
        return answer
    text = str(answer).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return answer


def _follow_guard(route: Route, vars: Dict[str, Value]) -> StepOutcome:
    guard = route.guard
    reason = guard.reason or None
    if guard.next == END:
        return StepOutcome(StepKind.COMPLETE, vars, print=route.print, guard_reason=reason)
    if guard.next and guard.next != FAIL:
        return StepOutcome(
            StepKind.ADVANCE, vars, next_node=guard.next,
            print=route.print, guard_reason=reason,
        )
    return StepOutcome(
        StepKind.FAIL, vars, reason=guard.reason or GENERIC_REASON,
        print=route.print,
    )


def _follow_route(route: Route, vars: Dict[str, Value]) -> StepOutcome:
    vars.update(route.set_vars)
    target = route.goto_node
    if target == END:
        return StepOutcome(StepKind.COMPLETE, vars, print=route.print)
    if route.reset_to and not target:
        return StepOutcome(
            StepKind.ADVANCE, vars, next_node=route.reset_to, reset=True,
            print=route.print,
        )
    if target == FAIL:
        return StepOutcome(
            StepKind.FAIL, vars, reason=route.reason or GENERIC_REASON,
            print=route.print,
        )
    if target:
        return StepOutcome(StepKind.ADVANCE, vars, next_node=target, print=route.print)
    return StepOutcome(StepKind.HALT, vars, print=route.print)


def _follow_fallback(node: Node, vars: Dict[str, Value]) -> StepOutcome:
    target = node.fallback_node
    if target == FAIL:
        return StepOutcome(StepKind.FAIL, vars, reason=GENERIC_REASON)
    if target == END:
        return StepOutcome(StepKind.COMPLETE, vars)
    if target:
        return StepOutcome(StepKind.ADVANCE, vars, next_node=target)
    return StepOutcome(StepKind.HALT, vars)


def step(
    graph: Optional[LevelGraph],
    node_id: str,
    answer: Any,
    vars: Optional[Mapping[str, Value]] = None,
) -> StepOutcome:
    """
    Route one answer through one node.

    Args:
        graph: Level graph (None behaves like an empty graph)
        node_id: Node answered
        answer: Raw answer as submitted by the respondent
        vars: Vars accumulated so far (not modified)

    Returns:
        StepOutcome. An unknown node yields HALT with the vars unchanged,
        so sheets may reference nodes that are not written yet.
    """
    out_vars: Dict[str, Value] = dict(vars or {})
    node = graph.get_node(node_id) if graph is not None else None
    if node is None:
        return StepOutcome(StepKind.HALT, out_vars)

    out_vars[node.field] = normalize_answer(node, answer)

    for route in node.routes:
        when = route.when
        if not compare(when.op, out_vars.get(when.field), when.value):
            continue
        if route.guard is not None:
            g = route.guard
            if compare(g.op, out_vars.get(g.field), g.value):
                return _follow_guard(route, out_vars)
            continue
        return _follow_route(route, out_vars)

    return _follow_fallback(node, out_vars)


__all__ = ["step", "StepKind", "StepOutcome", "normalize_answer"]
