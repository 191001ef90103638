from __future__ import annotations

__all__ = [
    "TatekumiError",
    "ValidationError",
    "PatternValidationError",
    "TransformError",
    "ResourceExhaustedError",
    "RecursionDepthError",
    "ProcessingTimeoutError",
    "RewriteBudgetExceededError",
    "GenerationError",
]


class TatekumiError(RuntimeError):
    """Base class for every error raised by the typesetting engine."""


class ValidationError(TatekumiError):
    """Raised for empty input, bad limits or malformed configuration."""


class PatternValidationError(ValidationError):
    """Raised when a rule definition or rule group cannot be compiled."""

    def __init__(self, message: str, pattern_name: str | None = None, source: str | None = None) -> None:
        super().__init__(message)
        self.pattern_name = pattern_name
        self.source = source


class TransformError(TatekumiError):
    """
    Raised when a transform step fails mid-pipeline.

    ``pattern_name``, ``step_index`` and ``action`` identify the failing step
    so a broken rule can be located from the traceback alone.
    """

    def __init__(
        self,
        message: str,
        *,
        pattern_name: str | None = None,
        step_index: int | None = None,
        action: str | None = None,
    ) -> None:
        super().__init__(message)
        self.pattern_name = pattern_name
        self.step_index = step_index
        self.action = action

    def __str__(self) -> str:
        message = super().__str__()
        where: list[str] = []
        if self.pattern_name:
            where.append(f"pattern {self.pattern_name}")
        if self.step_index is not None:
            label = f"step {self.step_index}"
            if self.action:
                label += f" ({self.action})"
            where.append(label)
        if not where:
            return message
        return f"{message} [{', '.join(where)}]"


class ResourceExhaustedError(TatekumiError):
    """Raised when a conversion runs out of depth, time or rewrite budget."""


class RecursionDepthError(ResourceExhaustedError):
    """Raised when group reprocessing nests deeper than allowed."""


class ProcessingTimeoutError(ResourceExhaustedError):
    """Raised when a conversion exceeds its wall-clock budget."""


class RewriteBudgetExceededError(ResourceExhaustedError):
    """Raised when rules fire more often than the registry allows."""


class GenerationError(TatekumiError):
    """Raised when the serialized chapter document is not well-formed."""
