from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Mapping

from .errors import ValidationError

DEFAULT_MAX_RECURSION_DEPTH = 10
DEFAULT_MAX_PATTERN_ITERATIONS = 1000
DEFAULT_PATTERN_TIMEOUT = 10.0

ALLOWED_TAGS = ("p", "br", "ruby", "rt", "rp", "span", "div", "h1")
ALLOWED_ATTRIBUTES = {"*": ["class"]}

STYLESHEET_NAME = "style.css"
TCY_CLASS = "tcy"
IDEOGRAPHIC_SPACE = "　"
DOCUMENT_LANGUAGE = "ja"
PARAGRAPH_TAGS = {"p"}

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[tatekumi debug] {message}", file=sys.stderr)


@dataclass
class ProcessingLimits:
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH
    max_pattern_iterations: int = DEFAULT_MAX_PATTERN_ITERATIONS
    pattern_timeout: float = DEFAULT_PATTERN_TIMEOUT

    def __post_init__(self) -> None:
        if not isinstance(self.max_recursion_depth, int) or self.max_recursion_depth < 1:
            raise ValidationError("max_recursion_depth must be a positive integer.")
        if not isinstance(self.max_pattern_iterations, int) or self.max_pattern_iterations < 1:
            raise ValidationError("max_pattern_iterations must be a positive integer.")
        if not isinstance(self.pattern_timeout, (int, float)) or self.pattern_timeout <= 0:
            raise ValidationError("pattern_timeout must be a positive number of seconds.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "ProcessingLimits":
        """Build limits from a config mapping; unknown keys are ignored."""
        kwargs: dict[str, object] = {}
        depth = data.get("max_recursion_depth")
        if depth is not None:
            kwargs["max_recursion_depth"] = depth
        iterations = data.get("max_pattern_iterations")
        if iterations is not None:
            kwargs["max_pattern_iterations"] = iterations
        timeout = data.get("pattern_timeout")
        if timeout is not None:
            kwargs["pattern_timeout"] = timeout
        return cls(**kwargs)  # type: ignore[arg-type]
