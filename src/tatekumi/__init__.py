from .builder import ChapterConverter, ChapterResult, OutputBuilder, convert, sanitize_html
from .config import ProcessingLimits, set_debug_logging
from .errors import (
    GenerationError,
    PatternValidationError,
    ProcessingTimeoutError,
    RecursionDepthError,
    ResourceExhaustedError,
    RewriteBudgetExceededError,
    TatekumiError,
    TransformError,
    ValidationError,
)
from .nodes import GroupedNode, TextNode
from .patterns import PatternDefinition, PatternGroup, load_default_pattern_groups, load_pattern_groups
from .registry import PatternRegistry
from .scanner import ProcessingContext, Scanner
from .stylesheet import default_stylesheet
from .width import convert_width, numeral_to_kanji

__all__ = [
    "ChapterConverter",
    "ChapterResult",
    "OutputBuilder",
    "convert",
    "sanitize_html",
    "ProcessingLimits",
    "set_debug_logging",
    "TatekumiError",
    "ValidationError",
    "PatternValidationError",
    "TransformError",
    "ResourceExhaustedError",
    "RecursionDepthError",
    "ProcessingTimeoutError",
    "RewriteBudgetExceededError",
    "GenerationError",
    "TextNode",
    "GroupedNode",
    "PatternDefinition",
    "PatternGroup",
    "load_pattern_groups",
    "load_default_pattern_groups",
    "PatternRegistry",
    "Scanner",
    "ProcessingContext",
    "default_stylesheet",
    "convert_width",
    "numeral_to_kanji",
]
