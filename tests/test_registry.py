from __future__ import annotations

import pytest

from tatekumi.config import ProcessingLimits
from tatekumi.errors import PatternValidationError, RewriteBudgetExceededError
from tatekumi.patterns import PatternGroup, parse_pattern_definition
from tatekumi.registry import ORDER_EPSILON, PatternRegistry, RewriteBudget, RuleMatcher, calculate_priority


def _definition(name: str, source: str = "[0-9]+", flags: str = "g", **extra):
    entry = {
        "name": name,
        "pattern": {"source": source, "flags": flags},
        "transform": {"type": "text", "steps": []},
    }
    entry.update(extra)
    return parse_pattern_definition(entry)


def test_priority_is_base_plus_order() -> None:
    assert calculate_priority(3, 0) == 3
    assert calculate_priority(3, 2) == pytest.approx(3 + 2 * ORDER_EPSILON)


def test_get_all_sorts_by_priority_then_registration() -> None:
    registry = PatternRegistry()
    registry.register(_definition("late"), 5, 0)
    registry.register(_definition("tie-first"), 2, 0)
    registry.register(_definition("tie-second"), 2, 0)
    registry.register(_definition("early-order"), 2, 1)
    registry.register(_definition("first"), 1, 3)

    assert [rule.name for rule in registry.get_all()] == [
        "first",
        "tie-first",
        "tie-second",
        "early-order",
        "late",
    ]


def test_sorted_view_is_cached_until_mutation() -> None:
    registry = PatternRegistry()
    registry.register(_definition("a"), 1, 0)
    first = registry.get_all()
    assert registry.get_all() is first

    registry.register(_definition("b"), 0, 0)
    second = registry.get_all()
    assert second is not first
    assert [rule.name for rule in second] == ["b", "a"]


def test_set_enabled_hides_and_restores_rule() -> None:
    registry = PatternRegistry()
    registry.register(_definition("a"), 1, 0)
    registry.register(_definition("b"), 1, 1)

    registry.set_enabled("a", False)
    assert [rule.name for rule in registry.get_all()] == ["b"]
    assert registry.get("a") is not None
    assert [rule.name for rule in registry.all_rules()] == ["a", "b"]

    registry.set_enabled("a", True)
    assert [rule.name for rule in registry.get_all()] == ["a", "b"]

    with pytest.raises(KeyError):
        registry.set_enabled("missing", True)


def test_register_rejects_duplicates_and_bad_expressions() -> None:
    registry = PatternRegistry()
    registry.register(_definition("a"), 1, 0)
    with pytest.raises(PatternValidationError):
        registry.register(_definition("a"), 2, 0)
    with pytest.raises(PatternValidationError):
        registry.register(_definition("bad", source="[0-9"), 1, 0)
    with pytest.raises(PatternValidationError):
        registry.register(_definition("one-shot", flags="i"), 1, 0)
    assert len(registry) == 1


def test_unregister_clear_and_membership() -> None:
    registry = PatternRegistry()
    registry.register(_definition("a"), 1, 0)
    registry.register(_definition("b"), 1, 1)
    assert "a" in registry

    assert registry.unregister("a") is True
    assert registry.unregister("a") is False
    assert "a" not in registry
    assert [rule.name for rule in registry.get_all()] == ["b"]

    registry.clear()
    assert len(registry) == 0
    assert registry.get_all() == []


def test_disabled_group_and_rule_register_as_disabled() -> None:
    groups = [
        PatternGroup("off", 1, [_definition("in-off-group")], disabled=True),
        PatternGroup("on", 2, [_definition("kept"), _definition("rule-off", disabled=True)]),
    ]
    registry = PatternRegistry.from_groups(groups)
    assert len(registry) == 3
    assert [rule.name for rule in registry.get_all()] == ["kept"]


def test_matcher_only_matches_at_position_and_skips_empty_matches() -> None:
    registry = PatternRegistry()
    rule = registry.register(_definition("digits", source="[0-9]*"), 1, 0)
    matcher = rule.new_matcher()
    assert matcher.match_at("ab12", 0) is None
    match = matcher.match_at("ab12", 2)
    assert match is not None and match.group(0) == "12"
    assert isinstance(matcher, RuleMatcher)


def test_rule_process_runs_transform_steps() -> None:
    registry = PatternRegistry()
    rule = registry.register(
        parse_pattern_definition(
            {
                "name": "wide",
                "pattern": {"source": "[0-9]+"},
                "transform": {"type": "text", "steps": [{"action": "convertWidth"}]},
            }
        ),
        1,
        0,
    )
    match = rule.pattern.match("42")
    assert [node.text for node in rule.process(match)] == ["４２"]


def test_rewrite_budget_ceiling() -> None:
    budget = RewriteBudget(2)
    budget.charge("a")
    budget.charge("a")
    with pytest.raises(RewriteBudgetExceededError, match="a"):
        budget.charge("a")
    budget.reset()
    budget.charge()
    assert budget.count == 1


def test_registry_budget_helpers() -> None:
    registry = PatternRegistry(ProcessingLimits(max_pattern_iterations=3))
    registry.budget.charge("x")
    assert registry.iteration_count == 1
    registry.reset_budget()
    assert registry.iteration_count == 0

    fresh = registry.new_budget()
    assert fresh is not registry.budget
    assert fresh.ceiling == 3
