"""
Error taxonomy for the preprocessing pipeline.

Every fatal error raised while building, fitting or applying a pipeline
derives from PreprocessingError. The concrete classes also inherit from the
closest builtin exception so callers that catch ValueError/KeyError keep
working.

RangeWarning is the only non-fatal condition: it is issued with
warnings.warn when apply-time values fall outside the range observed at fit
time, and apply still completes.
"""


class PreprocessingError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PreprocessingError, ValueError):
    """Invalid step specification or unresolvable column selector."""


class FitError(PreprocessingError, ValueError):
    """Reference data is not valid input for a step."""


class DegenerateColumnError(FitError):
    """A column has zero (or undefined) standard deviation."""


class DomainError(PreprocessingError, ValueError):
    """Values fall outside the mathematical domain of a transform."""


class SchemaMismatchError(PreprocessingError, KeyError):
    """Input dataset lacks a column a fitted step expects."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable
        return str(self.args[0]) if self.args else ""


class IllegalStateError(PreprocessingError, RuntimeError):
    """A step or pipeline was applied before being fit."""


class RangeWarning(UserWarning):
    """Apply-time values lie outside the range seen at fit time."""


__all__ = [
    "PreprocessingError",
    "ConfigurationError",
    "FitError",
    "DegenerateColumnError",
    "DomainError",
    "SchemaMismatchError",
    "IllegalStateError",
    "RangeWarning",
]
