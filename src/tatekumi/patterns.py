from __future__ import annotations

import json
import re
import warnings
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Iterable, Mapping

from .config import debug_log
from .errors import PatternValidationError
from .steps import OUTPUT_KINDS, TransformStep, check_step_kinds, parse_step

__all__ = [
    "MatchExpression",
    "TransformSpec",
    "PatternDefinition",
    "PatternGroup",
    "parse_pattern_definition",
    "parse_pattern_group",
    "load_pattern_groups",
    "load_default_pattern_groups",
    "compile_match_expression",
]

RESUMABLE_FLAGS = {"g", "y"}
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,
}


@dataclass(frozen=True)
class MatchExpression:
    source: str
    flags: str = "g"
    lookbehind: str | None = None
    lookahead: str | None = None

    def full_source(self) -> str:
        return "".join(part for part in (self.lookbehind, self.source, self.lookahead) if part)


@dataclass(frozen=True)
class TransformSpec:
    output_kind: str
    steps: tuple[TransformStep, ...] = ()


@dataclass(frozen=True)
class PatternDefinition:
    name: str
    match: MatchExpression
    transform: TransformSpec
    description: str = ""
    disabled: bool = False


@dataclass
class PatternGroup:
    name: str
    base_priority: float
    patterns: list[PatternDefinition] = field(default_factory=list)
    description: str = ""
    disabled: bool = False


def compile_match_expression(expression: MatchExpression, pattern_name: str | None = None) -> re.Pattern[str]:
    """
    Compile ``expression`` into a regex usable for position-resumable scans.

    Flags use the single-letter notation of the rule files. ``g`` or ``y``
    must be present: a rule is matched repeatedly at arbitrary cursor
    positions, which a one-shot expression does not support.
    """
    flags = expression.flags or ""
    if not RESUMABLE_FLAGS.intersection(flags):
        raise PatternValidationError(
            f"Pattern {pattern_name} must scan globally (add the 'g' flag)",
            pattern_name,
        )
    re_flags = 0
    for flag in flags:
        if flag in RESUMABLE_FLAGS:
            continue
        if flag not in _FLAG_MAP:
            raise PatternValidationError(f"Unsupported regex flag {flag!r} in {pattern_name}", pattern_name)
        re_flags |= _FLAG_MAP[flag]
    try:
        return re.compile(expression.full_source(), re_flags)
    except re.error as exc:
        raise PatternValidationError(f"Invalid regular expression in {pattern_name}: {exc}", pattern_name) from exc


def _optional_str(value: object, label: str, pattern_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise PatternValidationError(f"Invalid {label} in {pattern_name}", pattern_name)
    return value


def parse_pattern_definition(entry: object, source: str | None = None) -> PatternDefinition:
    if not isinstance(entry, Mapping):
        raise PatternValidationError("Invalid pattern structure", source=source)
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise PatternValidationError("Pattern name is required and must be a string", source=source)

    raw_pattern = entry.get("pattern")
    if not isinstance(raw_pattern, Mapping):
        raise PatternValidationError(f"Pattern definition missing in {name}", name, source)
    pattern_source = raw_pattern.get("source")
    if not isinstance(pattern_source, str) or not pattern_source:
        raise PatternValidationError(f"Invalid regexp source in {name}", name, source)
    flags = _optional_str(raw_pattern.get("flags"), "regexp flags", name)
    expression = MatchExpression(
        source=pattern_source,
        flags="g" if flags is None else flags,
        lookbehind=_optional_str(raw_pattern.get("lookbehind"), "lookbehind", name),
        lookahead=_optional_str(raw_pattern.get("lookahead"), "lookahead", name),
    )

    raw_transform = entry.get("transform")
    if not isinstance(raw_transform, Mapping):
        raise PatternValidationError(f"Transform definition missing in {name}", name, source)
    output_kind = raw_transform.get("type")
    if output_kind not in OUTPUT_KINDS:
        raise PatternValidationError(f"Invalid transform type in {name}", name, source)
    raw_steps = raw_transform.get("steps", [])
    if not isinstance(raw_steps, list):
        raise PatternValidationError(f"Transform steps must be an array in {name}", name, source)
    steps: list[TransformStep] = []
    for index, raw_step in enumerate(raw_steps):
        try:
            steps.append(parse_step(raw_step))
        except ValueError as exc:
            raise PatternValidationError(f"Invalid step {index} in {name}: {exc}", name, source) from exc

    description = entry.get("description")
    return PatternDefinition(
        name=name,
        match=expression,
        transform=TransformSpec(output_kind=output_kind, steps=tuple(steps)),
        description=description if isinstance(description, str) else "",
        disabled=bool(entry.get("disabled", False)),
    )


def parse_pattern_group(data: object, name: str, *, skip_invalid: bool = False) -> PatternGroup:
    """
    Validate one rule group.

    A malformed rule fails the whole group unless ``skip_invalid`` is set, in
    which case the rule is dropped with a warning.
    """
    if not isinstance(data, Mapping):
        raise PatternValidationError("Invalid pattern config structure", source=name)
    base_priority = data.get("basePriority")
    if isinstance(base_priority, bool) or not isinstance(base_priority, (int, float)):
        raise PatternValidationError("basePriority must be a number", source=name)
    raw_patterns = data.get("patterns")
    if not isinstance(raw_patterns, list):
        raise PatternValidationError("patterns must be an array", source=name)

    patterns: list[PatternDefinition] = []
    for entry in raw_patterns:
        try:
            definition = parse_pattern_definition(entry, source=name)
            compiled = compile_match_expression(definition.match, definition.name)
            check_step_kinds(definition.transform.steps, compiled.groups, definition.name)
        except PatternValidationError as exc:
            if not skip_invalid:
                exc.source = exc.source or name
                raise
            warnings.warn(f"Skipping invalid pattern in {name}: {exc}", stacklevel=2)
            continue
        patterns.append(definition)

    options = data.get("options")
    disabled = bool(options.get("disabled", False)) if isinstance(options, Mapping) else False
    description = data.get("description")
    return PatternGroup(
        name=name,
        base_priority=float(base_priority),
        patterns=patterns,
        description=description if isinstance(description, str) else "",
        disabled=disabled,
    )


def _load_group_file(path, name: str, skip_invalid: bool) -> PatternGroup:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PatternValidationError(f"Failed to parse pattern file {name}: {exc}", source=name) from exc
    group = parse_pattern_group(data, name, skip_invalid=skip_invalid)
    debug_log(f"loaded pattern group {name} ({len(group.patterns)} patterns)")
    return group


def load_pattern_groups(directory: Path, *, skip_invalid: bool = False) -> list[PatternGroup]:
    directory = Path(directory)
    if not directory.is_dir():
        raise PatternValidationError(f"Patterns directory not found: {directory}", source=str(directory))
    files = sorted(directory.glob("*.json"))
    if not files:
        raise PatternValidationError(f"No JSON pattern files found in {directory}", source=str(directory))
    return [_load_group_file(path, path.stem, skip_invalid) for path in files]


def load_default_pattern_groups() -> list[PatternGroup]:
    """Load the rule groups bundled with the package."""
    root = resources.files("tatekumi").joinpath("data").joinpath("patterns")
    entries: Iterable = sorted(
        (entry for entry in root.iterdir() if entry.name.endswith(".json")),
        key=lambda entry: entry.name,
    )
    return [_load_group_file(entry, entry.name[: -len(".json")], False) for entry in entries]
