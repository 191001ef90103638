from __future__ import annotations

import pytest

from tatekumi.config import ProcessingLimits
from tatekumi.errors import ProcessingTimeoutError, RecursionDepthError, RewriteBudgetExceededError
from tatekumi.nodes import GroupedNode, TextNode, merge_text_nodes, nodes_text
from tatekumi.patterns import parse_pattern_definition
from tatekumi.registry import PatternRegistry
from tatekumi.scanner import ProcessedRange, ProcessingContext, Scanner


def _definition(name: str, source: str, output: str = "text", steps: list | None = None):
    return parse_pattern_definition(
        {
            "name": name,
            "pattern": {"source": source, "flags": "g"},
            "transform": {"type": output, "steps": steps or []},
        }
    )


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_text_without_matches_is_returned_verbatim() -> None:
    registry = PatternRegistry()
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    scanner = Scanner(registry)
    assert scanner.scan("ひらがなだけ") == [TextNode("ひらがなだけ")]
    assert scanner.scan("") == []


def test_matches_keep_source_order() -> None:
    registry = PatternRegistry()
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    registry.register(_definition("bang", "!", "text", [{"action": "convertWidth", "target": "symbols"}]), 4, 0)
    nodes = Scanner(registry).scan("a1b!c22")
    assert nodes == [
        TextNode("a"),
        GroupedNode("1"),
        TextNode("b"),
        TextNode("！"),
        TextNode("c"),
        GroupedNode("22"),
    ]


def test_lower_priority_value_wins_at_same_position() -> None:
    registry = PatternRegistry()
    registry.register(_definition("wide", "[0-9]+", "text", [{"action": "convertWidth"}]), 3, 0)
    registry.register(_definition("kanji", "[0-9]+", "text", [{"action": "numeralToKanji"}]), 2, 0)
    assert nodes_text(Scanner(registry).scan("x12")) == "x一二"


def test_equal_priority_resolves_by_registration_order() -> None:
    registry = PatternRegistry()
    registry.register(_definition("first", "[0-9]+", "tcy"), 3, 0)
    registry.register(_definition("second", "[0-9]+", "text", [{"action": "numeralToKanji"}]), 3, 0)
    assert Scanner(registry).scan("7") == [GroupedNode("7")]


def test_earlier_start_beats_higher_priority_later_match() -> None:
    registry = PatternRegistry()
    registry.register(_definition("pair", "ab", "tcy"), 5, 0)
    registry.register(_definition("b", "b", "text", [{"action": "wrap", "prefix": "<", "suffix": ">"}]), 1, 0)
    assert Scanner(registry).scan("abb") == [GroupedNode("ab"), TextNode("<b>")]


def test_spans_never_overlap() -> None:
    registry = PatternRegistry()
    registry.register(_definition("long", "[0-9]{3}", "tcy"), 3, 0)
    registry.register(_definition("short", "[0-9]{2}", "tcy"), 3, 1)
    context = Scanner(registry).new_context()
    nodes = Scanner(registry).scan("12345", context)
    assert nodes == [GroupedNode("123"), GroupedNode("45")]
    spans = [(r.start, r.end) for r in context.processed_ranges]
    assert spans == [(0, 3), (3, 5)]


def test_processed_range_is_skipped_without_reemitting() -> None:
    registry = PatternRegistry()
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    scanner = Scanner(registry)
    context = scanner.new_context()
    context.processed_ranges.append(ProcessedRange(0, 2, "earlier"))
    # "12" is already consumed; scanning resumes at "3".
    assert scanner.scan("1234", context) == [GroupedNode("34")]


def test_processed_range_mid_text_keeps_preceding_literal() -> None:
    registry = PatternRegistry()
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    scanner = Scanner(registry)
    context = scanner.new_context()
    context.processed_ranges.append(ProcessedRange(1, 3, "earlier"))
    assert scanner.scan("a12b3", context) == [TextNode("a"), TextNode("b"), GroupedNode("3")]


def test_group_reprocessing_nests_rules() -> None:
    registry = PatternRegistry()
    registry.register(
        _definition(
            "quotes",
            '"([^"]+)"',
            "text",
            [{"action": "processGroup", "group": 1}, {"action": "wrap", "prefix": "「", "suffix": "」"}],
        ),
        1,
        0,
    )
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    nodes = merge_text_nodes(Scanner(registry).scan('彼は"第3話"と言った'))
    assert nodes == [TextNode("彼は「第"), GroupedNode("3"), TextNode("話」と言った")]


def test_self_recursive_rule_hits_depth_limit() -> None:
    registry = PatternRegistry(ProcessingLimits(max_recursion_depth=3))
    registry.register(_definition("loop", "(.+)", "text", [{"action": "processGroup", "group": 1}]), 1, 0)
    scanner = Scanner(registry)
    with pytest.raises(RecursionDepthError, match="loop > loop"):
        scanner.scan("abc")


def test_timeout_uses_context_clock() -> None:
    clock = _FakeClock()
    registry = PatternRegistry(ProcessingLimits(pattern_timeout=5))
    registry.register(_definition("digits", "[0-9]+", "tcy"), 3, 0)
    scanner = Scanner(registry, clock=clock)
    context = scanner.new_context()
    clock.now += 6
    with pytest.raises(ProcessingTimeoutError):
        scanner.scan("12", context)


def test_budget_exceeded_aborts_scan() -> None:
    registry = PatternRegistry(ProcessingLimits(max_pattern_iterations=2))
    registry.register(_definition("digit", "[0-9]", "tcy"), 3, 0)
    scanner = Scanner(registry)
    with pytest.raises(RewriteBudgetExceededError):
        scanner.scan("1a2b3", scanner.new_context(registry.new_budget()))


def test_budget_is_shared_across_text_nodes_of_one_context() -> None:
    registry = PatternRegistry(ProcessingLimits(max_pattern_iterations=3))
    registry.register(_definition("digit", "[0-9]", "tcy"), 3, 0)
    scanner = Scanner(registry)
    context = scanner.new_context(registry.new_budget())
    scanner.scan("12", context.for_text())
    with pytest.raises(RewriteBudgetExceededError):
        scanner.scan("34", context.for_text())


def test_context_helpers() -> None:
    context = ProcessingContext(start_time=1.0)
    context.processed_ranges.append(ProcessedRange(0, 1, "a"))
    child = context.child("rule")
    assert child.depth == 1
    assert child.rule_chain == ["rule"]
    assert child.processed_ranges is context.processed_ranges

    fresh = child.for_text()
    assert fresh.depth == 1
    assert fresh.start_time == 1.0
    assert fresh.processed_ranges == []
