"""
Replay Engine.

Every new answer triggers a full recomputation of the level from its
entry node; nothing is updated incrementally. Editing an early answer
therefore drops every later answer that is no longer reachable.

Loop (per call):
    index = 0
    while True:
        stop if index was already visited in this call (cycle)
        append index to path
        stop if there is no answer at index (open question)
        outcome = step(...)
        COMPLETE -> ended;  FAIL -> stop info;  HALT -> stop
        ADVANCE  -> index = index of the target node

A cycle truncates the walk silently; `sheetflow.analyzer` reports such
cycles to sheet authors instead.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from sheetflow.model import LevelGraph, Value, index_from_node_id, node_id_for
from sheetflow.router import StepKind, step

DEFAULT_HEALTH_STATE = "GREEN"
DEFAULT_STOP_REASON = "NOT_ELIGIBLE_CONTINUE"


def default_vars(health_state: Optional[str] = None) -> Dict[str, Value]:
    """Seed vars every replay starts from."""
    return {
        "NIYABAT": False,
        "GIFT": False,
        "HEALTH_STATE": health_state or DEFAULT_HEALTH_STATE,
        "END_PHRASE": None,
    }


@dataclass(frozen=True)
class StopInfo:
    """Where and why a level failed."""
    q_index: int
    reason: str


@dataclass(frozen=True)
class ReplayResult:
    """
    Full state of a level reconstructed from its answers.

    Properties:
        path: Visited question indices, in visiting order
        vars: Vars after the last step
        stop: StopInfo when the respondent failed, else None
        ended: True when a route or fallback reached END
        pruned_answers: Answers restricted to indices on `path`
        print: Phrase key of the last route that carried one
        guard_reason: Reason of the last guard that redirected a route
    """

    path: List[int] = field(default_factory=list)
    vars: Dict[str, Value] = field(default_factory=dict)
    stop: Optional[StopInfo] = None
    ended: bool = False
    pruned_answers: Dict[int, Any] = field(default_factory=dict)
    print: Optional[str] = None
    guard_reason: Optional[str] = None

    @property
    def open_index(self) -> Optional[int]:
        """Question the respondent should answer next, if any."""
        if self.stop is not None or self.ended or not self.path:
            return None
        last = self.path[-1]
        return None if last in self.pruned_answers else last


def replay(
    graph: Optional[LevelGraph],
    level,
    answers: Mapping[int, Any],
    seed_vars: Optional[Mapping[str, Value]] = None,
    max_questions: Optional[int] = None,
) -> ReplayResult:
    """
    Walk a level from its entry node using the given answers.

    Args:
        graph: Level graph
        level: Level identifier used to build node ids
        answers: Question index -> submitted answer (not modified)
        seed_vars: Starting vars; default_vars() when None
        max_questions: Indices at or beyond this bound end the walk

    Returns:
        ReplayResult
    """
    vars: Dict[str, Value] = dict(seed_vars if seed_vars is not None else default_vars())
    path: List[int] = []
    visited: Set[int] = set()
    stop = None
    ended = False
    print_key = None
    guard_reason = None

    index: Optional[int] = 0
    while index is not None:
        if max_questions is not None and index >= max_questions:
            break
        if index in visited:
            break
        visited.add(index)
        path.append(index)

        answer = answers.get(index)
        if answer is None:
            break

        outcome = step(graph, node_id_for(level, index), answer, vars)
        vars = outcome.vars
        if outcome.print:
            print_key = outcome.print
        if outcome.guard_reason:
            guard_reason = outcome.guard_reason

        if outcome.kind is StepKind.COMPLETE:
            ended = True
            break
        if outcome.kind is StepKind.FAIL:
            stop = StopInfo(q_index=index, reason=outcome.reason or DEFAULT_STOP_REASON)
            break
        if outcome.kind is StepKind.ADVANCE:
            index = index_from_node_id(outcome.next_node)
            continue
        break

    pruned = {i: answers[i] for i in path if answers.get(i) is not None}
    return ReplayResult(
        path=path,
        vars=vars,
        stop=stop,
        ended=ended,
        pruned_answers=pruned,
        print=print_key,
        guard_reason=guard_reason,
    )


__all__ = ["replay", "default_vars", "ReplayResult", "StopInfo"]
