from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence, Union

from .errors import PatternValidationError, TatekumiError, TransformError
from .nodes import GroupedNode, InlineNode, TextNode
from .width import WIDTH_DIRECTIONS, WIDTH_TARGETS, convert_width, numeral_to_kanji

__all__ = [
    "ConvertWidth",
    "ConvertEach",
    "ConvertGroups",
    "GroupRule",
    "Join",
    "Wrap",
    "Replace",
    "SplitBy",
    "ReprocessGroup",
    "TransformStep",
    "Reprocess",
    "OUTPUT_KINDS",
    "parse_step",
    "check_step_kinds",
    "apply_steps",
]

OUTPUT_KINDS = ("text", "tcy")

# Kinds of the intermediate value threaded through a pipeline.
STRING = "string"
STRINGS = "strings"
NODES = "nodes"

CONVERSION_RULES = ("toKanji", "toFullwidth")

# Called with the text of a capture group and its offset in the scanned text.
Reprocess = Callable[[str, int], list[InlineNode]]


@dataclass(frozen=True)
class ConvertWidth:
    target: str = "numbers"
    direction: str = "fullwidth"
    action = "convertWidth"


@dataclass(frozen=True)
class ConvertEach:
    rules: tuple[str, ...] = ("toKanji",)
    action = "convertEach"


@dataclass(frozen=True)
class GroupRule:
    group: int
    type: str


@dataclass(frozen=True)
class ConvertGroups:
    rules: tuple[GroupRule, ...]
    action = "convertGroups"


@dataclass(frozen=True)
class Join:
    template: str | None = None
    separator: str = ""
    action = "join"


@dataclass(frozen=True)
class Wrap:
    prefix: str = ""
    suffix: str = ""
    action = "wrap"


@dataclass(frozen=True)
class Replace:
    pattern: re.Pattern[str]
    replacement: str = ""
    action = "replace"


@dataclass(frozen=True)
class SplitBy:
    separators: tuple[str, ...]
    action = "splitBy"


@dataclass(frozen=True)
class ReprocessGroup:
    group: int
    action = "processGroup"


TransformStep = Union[ConvertWidth, ConvertEach, ConvertGroups, Join, Wrap, Replace, SplitBy, ReprocessGroup]

_ACCEPTS: dict[type, tuple[str, ...]] = {
    ConvertWidth: (STRING, STRINGS),
    ConvertEach: (STRING, STRINGS),
    ConvertGroups: (STRING,),
    Join: (STRING, STRINGS),
    Wrap: (STRING, NODES),
    Replace: (STRING,),
    SplitBy: (STRING,),
    ReprocessGroup: (STRING, STRINGS, NODES),
}


def _output_kind(step: TransformStep, kind: str) -> str:
    if isinstance(step, (ConvertWidth, ConvertEach, Wrap)):
        return kind
    if isinstance(step, (ConvertGroups, Join, Replace)):
        return STRING
    if isinstance(step, SplitBy):
        return STRINGS
    if isinstance(step, ReprocessGroup):
        return NODES
    raise TypeError(f"Unsupported transform step: {step!r}")


# ---------- parsing ----------


def _require_str(entry: Mapping[str, object], key: str, default: str | None = None) -> str | None:
    value = entry.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _require_group(entry: Mapping[str, object], key: str = "group") -> int:
    value = entry.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{key}' must be a positive capture group number")
    return value


def _parse_rules(entry: Mapping[str, object]) -> tuple[str, ...]:
    raw = entry.get("rules")
    if raw is None:
        return ("toKanji",)
    if not isinstance(raw, list):
        raise ValueError("'rules' must be an array")
    rules: list[str] = []
    for item in raw:
        rule_type = item.get("type") if isinstance(item, Mapping) else item
        if rule_type != "toKanji":
            raise ValueError(f"Unknown conversion rule: {rule_type}")
        rules.append(rule_type)
    return tuple(rules)


def _parse_group_rules(entry: Mapping[str, object]) -> tuple[GroupRule, ...]:
    raw = entry.get("rules")
    if not isinstance(raw, list) or not raw:
        raise ValueError("'rules' must be a non-empty array of {group, type}")
    rules: list[GroupRule] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise ValueError("each group rule must be an object")
        rule_type = item.get("type")
        if rule_type not in CONVERSION_RULES:
            raise ValueError(f"Unknown conversion rule: {rule_type}")
        rules.append(GroupRule(group=_require_group(item), type=rule_type))
    return tuple(rules)


def _translate_replacement(template: str) -> Callable[[re.Match[str]], str]:
    # `$1` references follow the rule files' regex dialect.
    def _expand(match: re.Match[str]) -> str:
        def _group(ref: re.Match[str]) -> str:
            index = int(ref.group(1))
            if index > (match.re.groups or 0):
                return ref.group(0)
            return match.group(index) or ""

        return re.sub(r"\$(\d+)", _group, template)

    return _expand


def parse_step(entry: object) -> TransformStep:
    """Build a step from its configuration mapping (``{"action": ...}``)."""
    if not isinstance(entry, Mapping):
        raise ValueError("transform step must be an object")
    action = entry.get("action")
    if action == "convertWidth":
        target = _require_str(entry, "target", "numbers")
        direction = _require_str(entry, "direction", "fullwidth")
        if target not in WIDTH_TARGETS:
            raise ValueError(f"Unknown width target: {target}")
        if direction not in WIDTH_DIRECTIONS:
            raise ValueError(f"Unknown width direction: {direction}")
        return ConvertWidth(target=target, direction=direction)  # type: ignore[arg-type]
    if action == "convertEach":
        return ConvertEach(rules=_parse_rules(entry))
    if action == "numeralToKanji":
        return ConvertEach(rules=("toKanji",))
    if action == "convertGroups":
        return ConvertGroups(rules=_parse_group_rules(entry))
    if action == "join":
        template = _require_str(entry, "template")
        separator = _require_str(entry, "with", "") or ""
        return Join(template=template or None, separator=separator)
    if action == "wrap":
        return Wrap(
            prefix=_require_str(entry, "prefix", "") or "",
            suffix=_require_str(entry, "suffix", "") or "",
        )
    if action == "replace":
        source = _require_str(entry, "from")
        if not source:
            raise ValueError("'from' is required for replace")
        try:
            compiled = re.compile(source)
        except re.error as exc:
            raise ValueError(f"Invalid replace expression {source!r}: {exc}") from exc
        return Replace(pattern=compiled, replacement=_require_str(entry, "to", "") or "")
    if action in {"splitBy", "splitBySeparator"}:
        raw = entry.get("separator")
        if isinstance(raw, str):
            separators: tuple[str, ...] = (raw,)
        elif isinstance(raw, list) and raw and all(isinstance(sep, str) for sep in raw):
            separators = tuple(raw)
        else:
            raise ValueError("'separator' must be a string or an array of strings")
        if any(not sep for sep in separators):
            raise ValueError("separators must not be empty")
        return SplitBy(separators=separators)
    if action in {"processGroup", "reprocessGroup"}:
        return ReprocessGroup(group=_require_group(entry))
    raise ValueError(f"Unknown transform action: {action}")


def check_step_kinds(steps: Sequence[TransformStep], group_count: int, pattern_name: str | None = None) -> None:
    """
    Resolve the value kind through ``steps`` without running them.

    Raises PatternValidationError when a step can never receive a value it
    accepts, or references a capture group the match expression lacks.
    """
    kind = STRING
    for index, step in enumerate(steps):
        accepted = _ACCEPTS.get(type(step))
        if accepted is None:
            raise PatternValidationError(f"Unsupported transform step {step!r}", pattern_name)
        if kind not in accepted:
            raise PatternValidationError(
                f"Step {index} ({step.action}) cannot take a {kind} value",
                pattern_name,
            )
        groups: list[int] = []
        if isinstance(step, ReprocessGroup):
            groups.append(step.group)
        elif isinstance(step, ConvertGroups):
            groups.extend(rule.group for rule in step.rules)
        for group in groups:
            if group > group_count:
                raise PatternValidationError(
                    f"Step {index} ({step.action}) references group {group} but the expression has {group_count}",
                    pattern_name,
                )
        kind = _output_kind(step, kind)


# ---------- execution ----------


def _apply_rules(text: str, rules: Sequence[str]) -> str:
    for rule in rules:
        if rule == "toKanji":
            text = numeral_to_kanji(text)
        elif rule == "toFullwidth":
            text = convert_width(text, "numbers", "fullwidth")
        else:
            raise ValueError(f"Unknown conversion rule: {rule}")
    return text


def _join(parts: Sequence[str], template: str | None, separator: str) -> str:
    if template:
        def _fill(ref: re.Match[str]) -> str:
            index = int(ref.group(1)) - 1
            return parts[index] if 0 <= index < len(parts) else ""

        return re.sub(r"\{(\d+)\}", _fill, template)
    return separator.join(parts)


def _split(text: str, separators: Sequence[str]) -> list[str]:
    parts = [text]
    for sep in separators:
        parts = [piece.strip() for part in parts for piece in part.split(sep)]
        parts = [piece for piece in parts if piece]
    return parts


def _run_step(
    step: TransformStep,
    current: object,
    match: re.Match[str],
    reprocess: Reprocess | None,
) -> object:
    if isinstance(step, ConvertWidth):
        if isinstance(current, list):
            return [convert_width(item, step.target, step.direction) for item in current]
        return convert_width(current, step.target, step.direction)  # type: ignore[arg-type]
    if isinstance(step, ConvertEach):
        if isinstance(current, list):
            return [_apply_rules(item, step.rules) for item in current]
        return _apply_rules(current, step.rules)  # type: ignore[arg-type]
    if isinstance(step, ConvertGroups):
        converted: list[str] = []
        for rule in step.rules:
            content = match.group(rule.group)
            if content is None:
                raise ValueError(f"Group {rule.group} did not participate in the match")
            converted.append(_apply_rules(content, (rule.type,)))
        return "".join(converted)
    if isinstance(step, Join):
        parts = current if isinstance(current, list) else [current]
        return _join(parts, step.template, step.separator)  # type: ignore[arg-type]
    if isinstance(step, Wrap):
        if isinstance(current, list):
            wrapped: list[InlineNode] = []
            if step.prefix:
                wrapped.append(TextNode(step.prefix))
            wrapped.extend(current)
            if step.suffix:
                wrapped.append(TextNode(step.suffix))
            return wrapped
        return f"{step.prefix}{current}{step.suffix}"
    if isinstance(step, Replace):
        return step.pattern.sub(_translate_replacement(step.replacement), current)  # type: ignore[arg-type]
    if isinstance(step, SplitBy):
        return _split(current, step.separators)  # type: ignore[arg-type]
    if isinstance(step, ReprocessGroup):
        if reprocess is None:
            raise ValueError("processGroup needs a reprocess callback from the scanner")
        content = match.group(step.group)
        if content is None:
            raise ValueError(f"Group {step.group} did not participate in the match")
        return reprocess(content, match.start(step.group))
    raise TypeError(f"Unsupported transform step: {step!r}")


def _finalize(value: object, kind: str, output_kind: str) -> list[InlineNode]:
    if kind == NODES:
        return list(value)  # type: ignore[arg-type]
    text = "".join(value) if kind == STRINGS else value  # type: ignore[arg-type]
    if output_kind == "tcy":
        if not text:
            raise ValueError("Grouped output needs text content")
        return [GroupedNode(text)]  # type: ignore[arg-type]
    if not text:
        return []
    return [TextNode(text)]  # type: ignore[arg-type]


def apply_steps(
    steps: Sequence[TransformStep],
    match: re.Match[str],
    output_kind: str = "text",
    reprocess: Reprocess | None = None,
    *,
    pattern_name: str | None = None,
) -> list[InlineNode]:
    """
    Run ``steps`` over ``match`` in order and return the replacement nodes.

    The value starts as the whole matched text and may become a list of
    strings (``splitBy``) or a list of nodes (``processGroup``). A step that
    receives a kind it does not accept raises TransformError.
    """
    current: object = match.group(0)
    kind = STRING
    for index, step in enumerate(steps):
        try:
            accepted = _ACCEPTS.get(type(step), ())
            if kind not in accepted:
                raise ValueError(f"Cannot apply {step.action} to a {kind} value")
            current = _run_step(step, current, match, reprocess)
            kind = _output_kind(step, kind)
        except TatekumiError:
            raise
        except (ValueError, TypeError, IndexError, re.error) as exc:
            raise TransformError(
                str(exc),
                pattern_name=pattern_name,
                step_index=index,
                action=getattr(step, "action", None),
            ) from exc
    try:
        return _finalize(current, kind, output_kind)
    except ValueError as exc:
        raise TransformError(str(exc), pattern_name=pattern_name) from exc
