from __future__ import annotations

from typing import Optional


class MappingEngineError(ValueError):
    """Base class for everything the mapping engine raises on purpose."""


class ConfigurationError(MappingEngineError):
    """A mapping configuration cannot be accepted.

    Raised at mapping-edit time: override registered for a required field,
    unsupported path/predicate syntax, malformed formula, bad config document.
    """


class FormulaError(MappingEngineError):
    """Evaluation of one field failed for one row."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ValidationError(MappingEngineError):
    """Row-level, recoverable problem with a resolved value."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
