#!/usr/bin/env python3
"""
Complete Pipeline Demo: sheets → graphs → analysis → a respondent's walk

Shows the full workflow:
1. Compile the example rule sheet
2. Analyze every level
3. Answer level 1 and level 2 question by question
4. Combine the level statuses into an overall result
"""

from sheetflow.analyzer import analyze_graphs
from sheetflow.backends import DotMode, generate_dot
from sheetflow.examples import build_example_graphs, build_example_phrases, build_example_texts
from sheetflow.session import LevelSession, derive_health_state, overall_result, result_phrase_key
from sheetflow.sheets import build_levels, labels_for, option_value_for, question_text, resolve_phrase


def walk(session, texts, phrases, labels):
    """Answer one level with the given option labels, printing each step."""
    graph, level = session.graph, session.level
    for index, label in enumerate(labels):
        if index not in session.result.path:
            break
        text = question_text(texts, level, index)
        options = labels_for(texts, graph, level, index)
        print(f"   Q{index + 1}: {text.prompt if text else '?'}  {options}")
        print(f"       -> {label}")
        session.answer(index, option_value_for(graph, level, index, label))

    result = session.result
    print(f"   Status: {session.status}")
    if result.stop is not None:
        print(f"   Stopped at Q{result.stop.q_index + 1}: {resolve_phrase(phrases, result.stop.reason)}")
    else:
        key = result_phrase_key(result)
        if key:
            print(f"   {resolve_phrase(phrases, key)}")


def main():
    print("=" * 80)
    print("COMPLETE PIPELINE DEMO: Sheets → Graphs → Analysis → Replay")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Compile
    # =========================================================================
    print("\n1. COMPILING SHEETS...")
    graphs = build_example_graphs()
    texts = build_example_texts()
    phrases = build_example_phrases()
    levels = build_levels(texts)
    for info in levels:
        print(f"   ✓ Level {info.id} ({info.title}): {len(graphs[str(info.id)].nodes)} questions")

    # =========================================================================
    # STEP 2: Analyze
    # =========================================================================
    print("\n2. ANALYZING GRAPHS...")
    for level, report in analyze_graphs(graphs).items():
        print(f"   ✓ Level {level}: {report.total_routes} routes, "
              f"{report.guarded_routes} guarded, cycles={report.has_cycles}")
        for warning in report.warnings:
            print(f"      - {warning}")

    # =========================================================================
    # STEP 3: Respondent
    # =========================================================================
    statuses = {}

    print("\n3. LEVEL 1...")
    personal = LevelSession(graphs["1"], 1)
    walk(personal, texts, phrases, ["Yes", "Yes", "Yes", "partial package"])
    statuses[1] = personal.status

    print("\n   Changing Q2 to 'No' prunes the answers after it:")
    personal.answer(1, option_value_for(graphs["1"], 1, 1, "No"))
    print(f"   Kept answers: {personal.answers}  status: {personal.status}")
    personal.answer(1, option_value_for(graphs["1"], 1, 1, "Yes"))
    walk(personal, texts, phrases, ["Yes", "Yes", "Yes", "partial package"])
    statuses[1] = personal.status

    print("\n4. LEVEL 2...")
    health = LevelSession(graphs["2"], 2, health_state=derive_health_state(statuses))
    walk(health, texts, phrases, ["No", "Yes"])
    statuses[2] = health.status

    # =========================================================================
    # STEP 4: Overall
    # =========================================================================
    print("\n5. OVERALL RESULT:")
    print("-" * 80)
    print(f"   Statuses: {statuses}")
    print(f"   Result: {overall_result(statuses, len(levels))}")
    print(f"   HEALTH_STATE for later levels: {derive_health_state(statuses)}")

    print("\n6. LEVEL 2 AS DOT:")
    print("-" * 80)
    for line in generate_dot(graphs["2"], mode=DotMode.SIMPLE).split("\n"):
        print(f"   {line}")

    print("\n" + "=" * 80)
    print("PIPELINE COMPLETE!")
    print("=" * 80)


if __name__ == "__main__":
    main()
