"""
Core Rule Model Objects

Defines the immutable structures the Graph Compiler produces and the
Step Router / Replay Engine consume:
    - Condition (the `when` of a route)
    - Guard (secondary predicate that can redirect or block a route)
    - Route (one option row of the rule sheet)
    - Node (one question)
    - LevelGraph (all questions of one questionnaire level)

ARCHITECTURAL RULE:
    These objects:
        - Are frozen once compiled
        - Know nothing about CSV cells or column positions
        - Represent structure, not behavior
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union

Value = Union[bool, int, float, str, None]

FAIL = "FAIL"
END = "END"
SENTINELS = frozenset({FAIL, END})

BOOL = "bool"
OPTIONS3 = "options3"

# Reason used when a failing route or fallback names none.
GENERIC_REASON = "L"

_NODE_INDEX_RE = re.compile(r"Q(\d+)")


def node_id_for(level: Union[int, str], index: int) -> str:
    """Map a 0-based question index of a level to its node id (`L{level}Q{index+1}`)."""
    return f"L{level}Q{index + 1}"


def index_from_node_id(node_id: str) -> Optional[int]:
    """
    Map a node id back to its 0-based question index.

    Only the `Q{n}` part is read; the level prefix is ignored because
    graphs never jump across levels.

    Returns:
        The index, or None if the id carries no usable question number.
    """
    match = _NODE_INDEX_RE.search(str(node_id))
    if match is None:
        return None
    number = int(match.group(1))
    if number < 1:
        return None
    return number - 1


def freeze_mapping(values: Optional[Mapping[str, Value]] = None) -> Mapping[str, Value]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class Condition:
    """
    A single comparison `vars[field] <op> value`.

    Properties:
        field: Vars key read as the left operand
        op: One of ==, !=, <, <=, >, >=
        value: Right operand (bool, number or string)
    """

    field: str
    op: str
    value: Value


@dataclass(frozen=True)
class Guard:
    """
    Secondary condition attached to a route.

    When the route's `when` matches, the guard must ALSO match for the
    route to apply; if it matches, `next` decides the outcome instead of
    the route's own destination.

    Properties:
        field, op, value: The guard condition
        next: FAIL, END, a node id, or "" (fail with `reason`)
        reason: Reason / phrase key reported with the guard's outcome
    """

    field: str
    op: str
    value: Value
    next: str = ""
    reason: str = ""

    @property
    def condition(self) -> Condition:
        return Condition(field=self.field, op=self.op, value=self.value)


@dataclass(frozen=True)
class Route:
    """
    One conditional outgoing edge of a node (one rule-sheet row).

    Properties:
        when: Condition on the node's answer that selects this route
        goto_node: FAIL, END, a node id, or None (halt without advancing)
        reason: Failure reason when goto_node is FAIL
        print: Phrase key to show when this route is taken
        set_vars: Vars assigned when the route is taken
        guard: Optional Guard
        reset_to: Node to jump back to (only honoured when goto_node is absent)
        option_label: Visible label of the option in the sheet
        option_value: Stable code of the option (label when no code given)
    """

    when: Condition
    goto_node: Optional[str] = None
    reason: Optional[str] = None
    print: Optional[str] = None
    set_vars: Mapping[str, Value] = field(default_factory=freeze_mapping)
    guard: Optional[Guard] = None
    reset_to: Optional[str] = None
    option_label: str = ""
    option_value: str = ""


@dataclass(frozen=True)
class Node:
    """
    One question of a level.

    Routes keep rule-sheet row order: the first matching route wins.
    """

    id: str
    field: str
    input_type: str = BOOL
    routes: Tuple[Route, ...] = ()
    fallback_node: Optional[str] = None


@dataclass(frozen=True)
class LevelGraph:
    """
    Decision graph of one questionnaire level.

    INVARIANTS:
        - Node ids are unique
        - entry_node is the first node declared for the level
        - Route / guard / fallback targets name a node id, FAIL, END or nothing
    """

    level: str
    entry_node: str
    nodes: Tuple[Node, ...] = ()
    fallback_node: Optional[str] = None
    _index: Dict[str, Node] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {n.id: n for n in self.nodes})

    def get_node(self, node_id: str) -> Optional[Node]:
        """
        Retrieve a node by id.

        Returns:
            Node object or None if not found
        """
        return self._index.get(node_id)

    @property
    def node_ids(self) -> Tuple[str, ...]:
        return tuple(n.id for n in self.nodes)
