"""
Sheetflow: Sheet-Driven Eligibility Questionnaire Engine

Question flow, branching and pass/fail outcomes of a multi-level
questionnaire live in a rule sheet (CSV rows), not in code.

Layers:
    - table:     raw CSV text -> header-indexed Table
    - compiler:  Table -> per-level LevelGraph
    - compare:   the single comparison primitive
    - router:    one node + one answer -> StepOutcome
    - replay:    full answer history -> ReplayResult

ARCHITECTURAL GUARANTEE:
------------------------
The core (table, compiler, compare, router, replay) performs ZERO I/O.
Fetching, caching and rendering belong to the outer layers
(loader, session, backends, cli).
"""

from sheetflow.table import Table, parse_table
from sheetflow.compiler import compile_rules, get_level_graph
from sheetflow.router import step
from sheetflow.replay import replay, default_vars

__version__ = "0.1.0"

__all__ = [
    "Table",
    "parse_table",
    "compile_rules",
    "get_level_graph",
    "step",
    "replay",
    "default_vars",
]
