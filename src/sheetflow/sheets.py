"""
Question and phrase sheets.

The rule sheet decides routing; two companion sheets carry the words:

    questions:  level, qId, question_text, help_text, label1..label5
    phrases:    key, text

Phrases are looked up by key only. There are no hardcoded fallback
texts: a key missing from the phrase sheet resolves to "".
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sheetflow.errors import SheetError
from sheetflow.model import OPTIONS3, LevelGraph, index_from_node_id, node_id_for
from sheetflow.table import BOM, Table

LABEL_COLUMNS = ("label1", "label2", "label3", "label4", "label5")

LEVEL_TITLES = {
    1: "Personal",
    2: "Health",
    3: "Financial",
    4: "Travel",
    5: "Time",
    6: "Miscellaneous",
}

BOOL_LABELS = ("Yes", "No")
OPTIONS3_LABELS = ("full package", "partial package", "other")


@dataclass(frozen=True)
class QuestionText:
    prompt: str = ""
    help: str = ""
    labels: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LevelInfo:
    """
    One questionnaire level as presented to the respondent.

    Properties:
        id: Numeric level id
        title: Display title
        questions: Prompts in question-index order
    """

    id: int
    title: str
    questions: List[str] = field(default_factory=list)


def level_key(level) -> str:
    return f"L{level}"


def load_question_texts(table: Table) -> Dict[str, Dict[str, QuestionText]]:
    """
    Index the question sheet.

    Returns:
        {"L1": {"L1Q1": QuestionText(...), ...}, ...}
    """
    texts: Dict[str, Dict[str, QuestionText]] = {}
    for row in table.rows:
        level = table.cell(row, "level")
        q_id = table.cell(row, "qId")
        if not level or not q_id:
            continue
        labels = [table.cell(row, c) for c in LABEL_COLUMNS if table.cell(row, c)]
        texts.setdefault(level_key(level), {})[q_id] = QuestionText(
            prompt=table.cell(row, "question_text"),
            help=table.cell(row, "help_text"),
            labels=labels,
        )
    return texts


def load_phrases(table: Table) -> Dict[str, str]:
    phrases: Dict[str, str] = {}
    for row in table.rows:
        key = table.cell(row, "key")
        if key:
            phrases[key] = table.cell(row, "text")
    return phrases


def is_json_document(text: str) -> bool:
    """A published sheet may come back as a JSON object instead of CSV."""
    return text.lstrip(BOM + " \t\r\n").startswith("{")


def _parse_json_object(text: str, sheet: str) -> Dict[str, Any]:
    try:
        data = json.loads(text.lstrip(BOM))
    except ValueError as e:
        raise SheetError(f"{sheet} sheet is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise SheetError(f"{sheet} sheet JSON must be an object")
    return data


def question_texts_from_json(text: str) -> Dict[str, Dict[str, QuestionText]]:
    """
    Read question texts already keyed by level.

    Expected shape:
        {"L1": {"L1Q1": {"prompt": "...", "help": "...", "labels": [...]}}}

    Raises:
        SheetError: If the document is not an object of that shape
    """
    texts: Dict[str, Dict[str, QuestionText]] = {}
    for lvl, entries in _parse_json_object(text, "Questions").items():
        if not isinstance(entries, dict):
            raise SheetError(f"Questions sheet JSON: level {lvl!r} must map question ids")
        level_texts = texts.setdefault(str(lvl), {})
        for q_id, entry in entries.items():
            if not isinstance(entry, dict):
                raise SheetError(f"Questions sheet JSON: {q_id!r} must be an object")
            level_texts[str(q_id)] = QuestionText(
                prompt=str(entry.get("prompt") or ""),
                help=str(entry.get("help") or ""),
                labels=[str(label) for label in entry.get("labels") or [] if label],
            )
    return texts


def phrases_from_json(text: str) -> Dict[str, str]:
    return {
        str(key): "" if value is None else str(value)
        for key, value in _parse_json_object(text, "Phrases").items()
        if key
    }


def _question_number(q_id: str) -> int:
    index = index_from_node_id(q_id)
    return -1 if index is None else index


def build_levels(texts: Optional[Mapping[str, Mapping[str, QuestionText]]]) -> List[LevelInfo]:
    """
    Build the level catalog from question texts.

    Levels are sorted numerically; questions by their `Q{n}` number.

    Raises:
        SheetError: If no texts are loaded or no `L{n}` level exists
    """
    if not texts:
        raise SheetError("Questions sheet not loaded.")

    level_ids = sorted(
        int(k[1:]) for k in texts if k.startswith("L") and k[1:].isdigit()
    )
    if not level_ids:
        raise SheetError("Questions sheet is empty.")

    levels = []
    for level_id in level_ids:
        entries = texts[level_key(level_id)]
        q_ids = sorted(entries, key=_question_number)
        levels.append(LevelInfo(
            id=level_id,
            title=LEVEL_TITLES.get(level_id, f"Level {level_id}"),
            questions=[entries[q].prompt or q for q in q_ids],
        ))
    return levels


def resolve_phrase(phrases: Optional[Mapping[str, str]], raw) -> str:
    """
    Resolve a phrase key.

    Tries the key as written, then with spaces collapsed to underscores
    ("you are eligible" -> "you_are_eligible").
    """
    if not raw:
        return ""
    key = str(raw).strip()
    for candidate in (key, "_".join(key.split())):
        if phrases and phrases.get(candidate):
            return phrases[candidate]
    return ""


def question_text(texts, level, index: int) -> Optional[QuestionText]:
    return (texts or {}).get(level_key(level), {}).get(node_id_for(level, index))


def labels_for(texts, graph: Optional[LevelGraph], level, index: int) -> List[str]:
    """
    Answer labels to offer for a question.

    Sheet labels win; otherwise options3 nodes get the three package
    labels and everything else gets Yes / No.
    """
    entry = question_text(texts, level, index)
    if entry is not None and entry.labels:
        return list(entry.labels)
    node = graph.get_node(node_id_for(level, index)) if graph is not None else None
    if node is not None and node.input_type == OPTIONS3:
        return list(OPTIONS3_LABELS)
    return list(BOOL_LABELS)


def option_value_for(graph: Optional[LevelGraph], level, index: int, label):
    """
    Map a visible option label to the stable value the routes compare with.

    Unknown labels, and nodes without such an option, return `label` unchanged.
    """
    node = graph.get_node(node_id_for(level, index)) if graph is not None else None
    if node is None or not isinstance(label, str):
        return label
    wanted = label.strip().lower()
    for route in node.routes:
        if route.option_label and route.option_label.lower() == wanted:
            return route.option_value
    return label


__all__ = [
    "QuestionText",
    "LevelInfo",
    "load_question_texts",
    "load_phrases",
    "build_levels",
    "resolve_phrase",
    "question_text",
    "labels_for",
    "is_json_document",
    "question_texts_from_json",
    "phrases_from_json",
    "option_value_for",
    "LEVEL_TITLES",
]
