"""
Command line interface.

    sheetflow check rules.csv [--strict]
    sheetflow replay rules.csv --level 1 --answer 0=Yes --answer 1=No
    sheetflow export rules.csv --format yaml --out graphs.yaml
    sheetflow dot rules.csv --level 1 --detailed --out level1.dot
    sheetflow fetch --config sheetflow.yaml
    sheetflow sync --config sheetflow.yaml [--once] [--interval 600]
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import yaml

from sheetflow import __version__
from sheetflow.analyzer import analyze_graphs
from sheetflow.backends import DotMode, generate_dot, save_dot_file
from sheetflow.compiler import compile_rules_text, get_level_graph
from sheetflow.config import load_config
from sheetflow.errors import SheetflowError
from sheetflow.loader import SheetLoader
from sheetflow.replay import ReplayResult, default_vars, replay
from sheetflow.serialization import graphs_to_dict, graphs_to_json, graphs_to_yaml
from sheetflow.session import level_status
from sheetflow.sheets import option_value_for
from sheetflow.sync import SheetSync, SyncOutcome

logger = logging.getLogger(__name__)


def _read_rules(path: str):
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError:
        raise SheetflowError(f"Rule sheet not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        raise SheetflowError(f"Cannot read rule sheet {path}: {e}")
    return compile_rules_text(text)


def _parse_answers(pairs: List[str]) -> Dict[int, str]:
    answers: Dict[int, str] = {}
    for pair in pairs or []:
        index, sep, value = pair.partition("=")
        if not sep or not index.strip().isdigit():
            raise SheetflowError(f"Answers look like INDEX=VALUE, got {pair!r}")
        answers[int(index)] = value.strip()
    return answers


def result_to_dict(result: ReplayResult) -> Dict[str, Any]:
    return {
        "path": list(result.path),
        "vars": dict(result.vars),
        "stop": None if result.stop is None else {
            "q_index": result.stop.q_index,
            "reason": result.stop.reason,
        },
        "ended": result.ended,
        "answers": dict(result.pruned_answers),
        "print": result.print,
        "guard_reason": result.guard_reason,
        "status": level_status(result),
    }


def cmd_check(args) -> int:
    graphs = _read_rules(args.rules)
    reports = analyze_graphs(graphs)
    warned = False
    for level, report in reports.items():
        print(f"Level {level}: {report.total_nodes} nodes, {report.total_routes} routes")
        for warning in report.warnings:
            warned = True
            print(f"  - {warning}")
    if not graphs:
        print("No levels found.")
        warned = True
    return 1 if (warned and args.strict) else 0


def cmd_replay(args) -> int:
    graphs = _read_rules(args.rules)
    graph = get_level_graph(graphs, args.level)
    answers = {
        index: option_value_for(graph, args.level, index, value)
        for index, value in _parse_answers(args.answer).items()
    }
    result = replay(graph, args.level, answers, seed_vars=default_vars(args.health_state))
    data = result_to_dict(result)
    if args.json:
        print(json.dumps(data, sort_keys=True))
    else:
        print(yaml.safe_dump(data, sort_keys=False), end="")
    return 0


def cmd_export(args) -> int:
    graphs = _read_rules(args.rules)
    text = graphs_to_json(graphs) if args.format == "json" else graphs_to_yaml(graphs)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(text)
        print(args.out)
    else:
        print(text)
    return 0


def cmd_dot(args) -> int:
    graph = get_level_graph(_read_rules(args.rules), args.level)
    mode = DotMode.DETAILED if args.detailed else DotMode.SIMPLE
    if args.out:
        save_dot_file(graph, args.out, mode=mode)
        print(args.out)
    else:
        print(generate_dot(graph, mode=mode))
    return 0


def cmd_fetch(args) -> int:
    config = load_config(args.config)
    with SheetLoader(config) as loader:
        sheets = loader.load_all().require_all()
    summary = {
        "levels": {k: len(g.nodes) for k, g in sheets.graphs.items()},
        "questions": sum(len(v) for v in sheets.texts.values()),
        "phrases": len(sheets.phrases),
    }
    if args.export:
        with open(args.export, "w", encoding="utf-8") as f:
            yaml.safe_dump(graphs_to_dict(sheets.graphs), f, sort_keys=False)
    print(yaml.safe_dump(summary, sort_keys=False), end="")
    return 0


def cmd_sync(args) -> int:
    config = load_config(args.config)
    if args.interval is not None and args.interval <= 0:
        raise SheetflowError("--interval must be a positive number of seconds")

    def report(outcomes):
        print(" ".join(f"{name}={outcome.value}" for name, outcome in outcomes.items()), flush=True)

    with SheetSync(config) as sync:
        try:
            outcomes = sync.run(once=args.once, interval=args.interval, on_round=report)
        except KeyboardInterrupt:
            return 0
    failed = [name for name, outcome in outcomes.items() if outcome is SyncOutcome.FAILED]
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetflow",
        description="Compile and replay sheet-driven eligibility questionnaires",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("check", help="Compile a rule sheet and report problems")
    p.add_argument("rules", help="Path to the rule sheet CSV")
    p.add_argument("--strict", action="store_true", help="Exit 1 when there are warnings")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("replay", help="Replay answers through one level")
    p.add_argument("rules", help="Path to the rule sheet CSV")
    p.add_argument("--level", required=True, help="Level identifier")
    p.add_argument("--answer", action="append", default=[], metavar="INDEX=VALUE",
                   help="Answer for a 0-based question index (repeatable)")
    p.add_argument("--health-state", default=None, help="Inherited HEALTH_STATE")
    p.add_argument("--json", action="store_true", help="Print JSON instead of YAML")
    p.set_defaults(func=cmd_replay)

    p = sub.add_parser("export", help="Export compiled graphs")
    p.add_argument("rules", help="Path to the rule sheet CSV")
    p.add_argument("--format", choices=["json", "yaml"], default="yaml")
    p.add_argument("--out", help="Output file (stdout when omitted)")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("dot", help="Render one level as Graphviz DOT")
    p.add_argument("rules", help="Path to the rule sheet CSV")
    p.add_argument("--level", required=True, help="Level identifier")
    p.add_argument("--detailed", action="store_true", help="Show conditions and effects")
    p.add_argument("--out", help="Output .dot file (stdout when omitted)")
    p.set_defaults(func=cmd_dot)

    p = sub.add_parser("fetch", help="Load all sheets through the configured loader")
    p.add_argument("--config", help="YAML config file")
    p.add_argument("--export", help="Also write the compiled graphs as YAML here")
    p.set_defaults(func=cmd_fetch)

    p = sub.add_parser("sync", help="Mirror the remote sheets into local_dir")
    p.add_argument("--config", help="YAML config file")
    p.add_argument("--once", action="store_true", help="Run one round and exit")
    p.add_argument("--interval", type=float, default=None,
                   help="Seconds between rounds (config sync.interval by default)")
    p.set_defaults(func=cmd_sync)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args)
    except SheetflowError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
