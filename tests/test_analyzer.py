"""
Tests for graph diagnostics.
"""

from sheetflow.analyzer import analyze_graph, analyze_graphs
from sheetflow.examples import build_example_graphs
from sheetflow.model import Condition, Guard, LevelGraph, Node, Route


def route(value, **kwargs) -> Route:
    return Route(when=Condition(field="f", op="==", value=value), **kwargs)


def graph(*nodes: Node) -> LevelGraph:
    return LevelGraph(level="1", entry_node=nodes[0].id, nodes=tuple(nodes))


class TestCleanGraphs:

    def test_examples_have_no_warnings(self):
        for report in analyze_graphs(build_example_graphs()).values():
            assert report.warnings == []
            assert not report.has_cycles

    def test_counts(self):
        report = analyze_graphs(build_example_graphs())["2"]
        assert report.total_nodes == 2
        assert report.total_routes == 4
        assert report.guarded_routes == 1


class TestProblems:

    def test_dangling_reference(self):
        report = analyze_graph(graph(
            Node(id="L1Q1", field="f", routes=(route(True, goto_node="L1Q7"),), fallback_node="FAIL"),
        ))
        assert report.dangling_references == [("L1Q1", "next", "L1Q7")]
        assert "L1Q1: next points at unknown node L1Q7" in report.warnings

    def test_dangling_guard_and_reset(self):
        report = analyze_graph(graph(
            Node(
                id="L1Q1",
                field="f",
                routes=(route(True, reset_to="L1Q0", guard=Guard(field="H", op="==", value="X", next="L1Q5")),),
                fallback_node="END",
            ),
        ))
        kinds = {kind for _, kind, _ in report.dangling_references}
        assert kinds == {"reset_to", "guard_next"}

    def test_unreachable(self):
        report = analyze_graph(graph(
            Node(id="L1Q1", field="f", routes=(route(True, goto_node="END"),), fallback_node="FAIL"),
            Node(id="L1Q2", field="g", fallback_node="FAIL"),
        ))
        assert report.unreachable_nodes == {"L1Q2"}
        assert "Unreachable nodes: L1Q2" in report.warnings

    def test_cycle(self):
        report = analyze_graph(graph(
            Node(id="L1Q1", field="f", routes=(route(True, goto_node="L1Q2"),)),
            Node(id="L1Q2", field="g", routes=(route(True, goto_node="L1Q1"),)),
        ))
        assert report.has_cycles
        assert report.cycle_example == ["L1Q1", "L1Q2", "L1Q1"]
        assert "Cycle detected: L1Q1 -> L1Q2 -> L1Q1" in report.warnings

    def test_unknown_operator(self):
        bad = Route(when=Condition(field="f", op="~=", value=1), goto_node="END")
        report = analyze_graph(graph(Node(id="L1Q1", field="f", routes=(bad,), fallback_node="FAIL")))
        assert report.unknown_operators == [("L1Q1", "~=")]
        assert "L1Q1: unknown operator '~='" in report.warnings

    def test_dead_end(self):
        report = analyze_graph(graph(
            Node(id="L1Q1", field="f", routes=(route(True, goto_node="L1Q2"),), fallback_node="FAIL"),
            Node(id="L1Q2", field="g"),
        ))
        assert report.dead_end_nodes == ["L1Q2"]
        assert "Nodes without routes or fallback: L1Q2" in report.warnings
