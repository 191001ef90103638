from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .config import ProcessingLimits, debug_log
from .errors import PatternValidationError, RewriteBudgetExceededError
from .nodes import InlineNode
from .patterns import PatternDefinition, PatternGroup, compile_match_expression, load_default_pattern_groups
from .steps import Reprocess, apply_steps, check_step_kinds

__all__ = [
    "ORDER_EPSILON",
    "RuleMatcher",
    "RewriteBudget",
    "CompiledRule",
    "PatternRegistry",
    "calculate_priority",
]

ORDER_EPSILON = 0.001

ProcessFn = Callable[..., list[InlineNode]]


def calculate_priority(base_priority: float, order_index: int) -> float:
    return base_priority + order_index * ORDER_EPSILON


class RuleMatcher:
    """Anchored matcher for one rule; zero-length matches never count."""

    def __init__(self, pattern: re.Pattern[str]) -> None:
        self.pattern = pattern

    def match_at(self, text: str, position: int) -> re.Match[str] | None:
        # Matching from ``position`` in the full text keeps lookbehinds working.
        match = self.pattern.match(text, position)
        if match is None or match.end() == match.start():
            return None
        return match


class RewriteBudget:
    """Counts rule applications and fails once ``ceiling`` is reached."""

    def __init__(self, ceiling: int) -> None:
        self.ceiling = ceiling
        self.count = 0
        self._lock = threading.Lock()

    def charge(self, name: str | None = None) -> None:
        with self._lock:
            if self.count >= self.ceiling:
                suffix = f" while applying {name}" if name else ""
                raise RewriteBudgetExceededError(f"Maximum pattern iterations exceeded ({self.ceiling}){suffix}")
            self.count += 1

    def reset(self) -> None:
        with self._lock:
            self.count = 0


@dataclass
class CompiledRule:
    name: str
    priority: float
    sequence: int
    pattern: re.Pattern[str]
    definition: PatternDefinition
    process: ProcessFn
    enabled: bool = True
    description: str = field(default="")

    def new_matcher(self) -> RuleMatcher:
        return RuleMatcher(self.pattern)

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.priority, self.sequence)


class PatternRegistry:
    """
    Compiled rules keyed by name, plus the shared rewrite budget.

    ``get_all`` returns enabled rules in evaluation order (lowest priority
    value first); the sorted view is cached until the next mutation.
    """

    def __init__(self, limits: ProcessingLimits | None = None) -> None:
        self.limits = limits or ProcessingLimits()
        self._rules: dict[str, CompiledRule] = {}
        self._sorted_cache: list[CompiledRule] | None = None
        self._sequence = 0
        self._lock = threading.Lock()
        self.budget = RewriteBudget(self.limits.max_pattern_iterations)

    @classmethod
    def from_groups(
        cls,
        groups: Iterable[PatternGroup],
        limits: ProcessingLimits | None = None,
    ) -> "PatternRegistry":
        registry = cls(limits)
        registry.register_groups(groups)
        return registry

    @classmethod
    def with_defaults(cls, limits: ProcessingLimits | None = None) -> "PatternRegistry":
        return cls.from_groups(load_default_pattern_groups(), limits)

    # ---------- registration ----------

    def register(
        self,
        definition: PatternDefinition,
        base_priority: float,
        order_index: int,
        *,
        enabled: bool | None = None,
    ) -> CompiledRule:
        name = definition.name
        if not name:
            raise PatternValidationError("Pattern name is required")
        if name in self._rules:
            raise PatternValidationError(f"Duplicate pattern name: {name}", name)
        compiled = compile_match_expression(definition.match, name)
        check_step_kinds(definition.transform.steps, compiled.groups, name)

        transform = definition.transform

        def _process(match: re.Match[str], reprocess: Reprocess | None = None) -> list[InlineNode]:
            return apply_steps(
                transform.steps,
                match,
                transform.output_kind,
                reprocess,
                pattern_name=name,
            )

        with self._lock:
            rule = CompiledRule(
                name=name,
                priority=calculate_priority(base_priority, order_index),
                sequence=self._sequence,
                pattern=compiled,
                definition=definition,
                process=_process,
                enabled=(not definition.disabled) if enabled is None else enabled,
                description=definition.description,
            )
            self._sequence += 1
            self._rules[name] = rule
            self._sorted_cache = None
        debug_log(f"registered {name} priority={rule.priority:.3f} enabled={rule.enabled}")
        return rule

    def register_group(self, group: PatternGroup) -> list[CompiledRule]:
        rules: list[CompiledRule] = []
        for order_index, definition in enumerate(group.patterns):
            enabled = not (group.disabled or definition.disabled)
            rules.append(self.register(definition, group.base_priority, order_index, enabled=enabled))
        return rules

    def register_groups(self, groups: Iterable[PatternGroup]) -> None:
        for group in groups:
            self.register_group(group)

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._rules.pop(name, None)
            self._sorted_cache = None
        return removed is not None

    def clear(self) -> None:
        with self._lock:
            self._rules.clear()
            self._sorted_cache = None
        self.budget.reset()

    # ---------- lookup ----------

    def get(self, name: str) -> CompiledRule | None:
        return self._rules.get(name)

    def get_all(self) -> list[CompiledRule]:
        cached = self._sorted_cache
        if cached is not None:
            return cached
        with self._lock:
            if self._sorted_cache is None:
                enabled = [rule for rule in self._rules.values() if rule.enabled]
                self._sorted_cache = sorted(enabled, key=lambda rule: rule.sort_key)
            return self._sorted_cache

    def all_rules(self) -> list[CompiledRule]:
        """Every registered rule, disabled ones included, in evaluation order."""
        return sorted(self._rules.values(), key=lambda rule: rule.sort_key)

    def set_enabled(self, name: str, enabled: bool) -> None:
        with self._lock:
            rule = self._rules.get(name)
            if rule is None:
                raise KeyError(f"Unknown pattern: {name}")
            rule.enabled = enabled
            self._sorted_cache = None

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    # ---------- rewrite budget ----------

    @property
    def iteration_count(self) -> int:
        return self.budget.count

    def reset_budget(self) -> None:
        self.budget.reset()

    def new_budget(self) -> RewriteBudget:
        """Independent budget with this registry's ceiling, for one conversion."""
        return RewriteBudget(self.limits.max_pattern_iterations)
