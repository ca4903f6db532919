"""
Level sessions and result derivation.

A LevelSession owns the AnswersMap of one level and replays the whole
level on every answer. The helpers below turn replay results into the
statuses shown on the level overview.
"""

from typing import Any, Dict, Mapping, Optional

from sheetflow.model import LevelGraph
from sheetflow.replay import ReplayResult, default_vars, replay

FAILED = "failed"
COMPLETED = "completed"
IDLE = "idle"

HEALTH_LEVEL = 2

# level -> level that must be completed first
LEVEL_PREREQUISITES = {3: HEALTH_LEVEL}


class LevelSession:
    """
    Answers of one level plus the latest replay of them.

    Example:
        session = LevelSession(graph, level="1")
        result = session.answer(0, "Yes")
        result.path        # [0, 1]
        session.status     # "idle" until the level fails or completes
    """

    def __init__(
        self,
        graph: LevelGraph,
        level,
        health_state: Optional[str] = None,
        max_questions: Optional[int] = None,
    ):
        self.graph = graph
        self.level = level
        self.health_state = health_state
        self.max_questions = max_questions
        self.answers: Dict[int, Any] = {}
        self.result: ReplayResult = self._replay()

    def _replay(self) -> ReplayResult:
        return replay(
            self.graph,
            self.level,
            self.answers,
            seed_vars=default_vars(self.health_state),
            max_questions=self.max_questions,
        )

    def answer(self, index: int, value: Any) -> ReplayResult:
        """Record an answer and recompute the level; unreachable answers are dropped."""
        candidate = dict(self.answers)
        candidate[index] = value
        self.answers = candidate
        self.result = self._replay()
        self.answers = dict(self.result.pruned_answers)
        return self.result

    def reset(self) -> ReplayResult:
        self.answers = {}
        self.result = self._replay()
        return self.result

    @property
    def status(self) -> str:
        return level_status(self.result)


def is_soft_complete(result: ReplayResult) -> bool:
    """No failure, and every visited question has an answer."""
    return result.stop is None and all(
        result.pruned_answers.get(i) not in (None, "") for i in result.path
    )


def level_status(result: ReplayResult) -> str:
    if result.stop is not None:
        return FAILED
    if result.ended or is_soft_complete(result):
        return COMPLETED
    return IDLE


def overall_result(statuses: Mapping[Any, str], level_count: int) -> Optional[str]:
    """
    Combine per-level statuses.

    Any failed level fails the whole questionnaire; it completes only when
    every one of `level_count` levels has a completed status.
    """
    if any(s == FAILED for s in statuses.values()):
        return FAILED
    if statuses and len(statuses) == level_count and all(
        s == COMPLETED for s in statuses.values()
    ):
        return COMPLETED
    return None


def derive_health_state(statuses: Mapping[Any, str]) -> str:
    """HEALTH_STATE inherited by later levels: RED once the health level failed."""
    status = statuses.get(HEALTH_LEVEL, statuses.get(str(HEALTH_LEVEL)))
    return "RED" if status == FAILED else "GREEN"


def can_start(level, statuses: Mapping[Any, str]) -> bool:
    """
    Whether a level may be opened.

    A gated level stays locked until the level it depends on is completed
    (the financial level needs a completed health level).
    """
    try:
        level_id = int(level)
    except (TypeError, ValueError):
        return True
    required = LEVEL_PREREQUISITES.get(level_id)
    if required is None:
        return True
    return statuses.get(required, statuses.get(str(required))) == COMPLETED


def result_phrase_key(result: ReplayResult) -> Optional[str]:
    """Phrase key for the completion banner: guard reason first, then END_PHRASE."""
    if result.guard_reason:
        return result.guard_reason
    return result.vars.get("END_PHRASE")


__all__ = [
    "LevelSession",
    "level_status",
    "overall_result",
    "derive_health_state",
    "can_start",
    "result_phrase_key",
    "is_soft_complete",
    "FAILED",
    "COMPLETED",
    "IDLE",
]
