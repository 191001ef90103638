from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from .config import ProcessingLimits, debug_log
from .errors import ProcessingTimeoutError, RecursionDepthError
from .nodes import InlineNode, TextNode
from .registry import CompiledRule, PatternRegistry, RewriteBudget, RuleMatcher

__all__ = ["ProcessedRange", "ProcessingContext", "Scanner"]


@dataclass
class ProcessedRange:
    """Half-open span ``[start, end)`` of a text node already consumed by a rule."""

    start: int
    end: int
    pattern_name: str

    def contains(self, position: int) -> bool:
        return self.start <= position < self.end


@dataclass
class ProcessingContext:
    depth: int = 0
    start_time: float = field(default_factory=time.monotonic)
    rule_chain: list[str] = field(default_factory=list)
    processed_ranges: list[ProcessedRange] = field(default_factory=list)
    budget: RewriteBudget | None = None

    def for_text(self) -> "ProcessingContext":
        """Context for a new text node: same budget clock, no ranges yet."""
        return ProcessingContext(
            depth=self.depth,
            start_time=self.start_time,
            rule_chain=list(self.rule_chain),
            budget=self.budget,
        )

    def child(self, rule_name: str) -> "ProcessingContext":
        # The range list is shared so nested scans see what ancestors consumed.
        return ProcessingContext(
            depth=self.depth + 1,
            start_time=self.start_time,
            rule_chain=[*self.rule_chain, rule_name],
            processed_ranges=self.processed_ranges,
            budget=self.budget,
        )


def _blocking_range(
    ranges: list[ProcessedRange],
    position: int,
    frame_start: int,
    frame_end: int,
) -> ProcessedRange | None:
    for span in ranges:
        if not span.contains(position):
            continue
        # A range covering the whole frame is the ancestor match being rescanned.
        if span.start <= frame_start and span.end >= frame_end:
            continue
        return span
    return None


class Scanner:
    """
    Left-to-right rule matcher over a single text string.

    At every cursor position the enabled rules are tried in priority order;
    the first one whose non-empty match starts exactly at the cursor wins.
    Text between wins is emitted as-is. Rules may rescan one of their capture
    groups through the ``reprocess`` callback, which nests a scan one level
    deeper under the same context.
    """

    def __init__(
        self,
        registry: PatternRegistry,
        limits: ProcessingLimits | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.limits = limits or registry.limits
        self._clock = clock

    def new_context(self, budget: RewriteBudget | None = None) -> ProcessingContext:
        return ProcessingContext(start_time=self._clock(), budget=budget or self.registry.budget)

    def validate_context(self, context: ProcessingContext) -> None:
        elapsed = self._clock() - context.start_time
        if elapsed > self.limits.pattern_timeout:
            raise ProcessingTimeoutError(
                f"Processing timed out after {elapsed:.2f}s (limit {self.limits.pattern_timeout}s)"
            )
        if context.depth > self.limits.max_recursion_depth:
            chain = " > ".join(context.rule_chain) or "(root)"
            raise RecursionDepthError(
                f"Recursion depth {context.depth} exceeds {self.limits.max_recursion_depth}: {chain}"
            )

    def scan(self, text: str, context: ProcessingContext | None = None) -> list[InlineNode]:
        if context is None:
            context = self.new_context()
        return self._scan(text, context, 0)

    def _scan(self, text: str, context: ProcessingContext, offset: int) -> list[InlineNode]:
        self.validate_context(context)
        matchers: list[tuple[CompiledRule, RuleMatcher]] = [
            (rule, rule.new_matcher()) for rule in self.registry.get_all()
        ]
        frame_start = offset
        frame_end = offset + len(text)
        output: list[InlineNode] = []
        position = 0
        last_index = 0

        while position < len(text):
            self.validate_context(context)

            blocking = _blocking_range(context.processed_ranges, offset + position, frame_start, frame_end)
            if blocking is not None:
                # Text owned by an earlier match is neither rescanned nor emitted again.
                consumed_start = max(blocking.start - offset, last_index)
                if consumed_start > last_index:
                    output.append(TextNode(text[last_index:consumed_start]))
                position = min(blocking.end - offset, len(text))
                last_index = position
                continue

            winner: CompiledRule | None = None
            match = None
            for rule, matcher in matchers:
                match = matcher.match_at(text, position)
                if match is not None:
                    winner = rule
                    break
            if winner is None or match is None:
                position += 1
                continue

            start, end = match.span()
            if start > last_index:
                output.append(TextNode(text[last_index:start]))
            context.processed_ranges.append(ProcessedRange(offset + start, offset + end, winner.name))
            child = context.child(winner.name)

            def _reprocess(segment: str, segment_offset: int, child: ProcessingContext = child) -> list[InlineNode]:
                return self._scan(segment, child, offset + segment_offset)

            debug_log(f"{winner.name} matched {match.group(0)!r} at {offset + start} depth={context.depth}")
            (context.budget or self.registry.budget).charge(winner.name)
            output.extend(winner.process(match, _reprocess))
            position = end
            last_index = end

        if last_index < len(text):
            output.append(TextNode(text[last_index:]))
        return output
