"""
Resolve one input row/payload into a ResolvedRecord.

For every target field with an effective mapping (schema order), the
stored expression is evaluated through FormulaEvaluator and the result is
cast to the field's value kind. Failures are collected per field instead of
aborting the row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .errors import FormulaError, ValidationError
from .formula import FormulaEvaluator
from .resolver import MappingResolver
from .types import CanonicalFieldSpec, Platform
from .values import coerce

log = logging.getLogger("bookmap.records")

PLATFORM_FIELD = "platform"

_KIND_NOUN = {"number": "a number", "date": "a date", "text": "text"}


@dataclass
class BuiltRecord:
    record: Dict[str, Any]
    platform: Platform = Platform.ALL
    errors: List[ValidationError] = field(default_factory=list)

    def failed(self, target: str) -> bool:
        return any(e.field == target for e in self.errors)


class RecordBuilder:
    def __init__(self, fields: Sequence[CanonicalFieldSpec], resolver: MappingResolver):
        self.fields = list(fields)
        self.resolver = resolver

    def detect_platform(self, row: Any) -> Platform:
        """Platform named by the row's own (BASE-mapped) platform field, else ALL."""
        expr = self.resolver.resolve(PLATFORM_FIELD, Platform.ALL)
        if not expr:
            return Platform.ALL
        try:
            raw = FormulaEvaluator(row, self.resolver, Platform.ALL).evaluate(expr, target=PLATFORM_FIELD)
        except FormulaError:
            return Platform.ALL
        return Platform.parse(raw, default=Platform.ALL)

    def build(self, row: Any, platform: Optional[Platform] = None, ordinal: Optional[int] = None) -> BuiltRecord:
        if platform is None or platform.is_base:
            platform = self.detect_platform(row)
        evaluator = FormulaEvaluator(row, self.resolver, platform)
        out = BuiltRecord(record={}, platform=platform)

        for spec in self.fields:
            target = spec.target_field
            expr = self.resolver.resolve(target, platform)
            if not expr:
                continue
            try:
                raw = evaluator.evaluate(expr, out.record, target)
            except FormulaError as e:
                log.debug("row %s: %s failed: %s", ordinal, target, e)
                out.record[target] = None
                out.errors.append(ValidationError(f"{spec.label}: {e}", field=target))
                continue
            try:
                out.record[target] = coerce(spec.value_kind, raw)
            except (TypeError, ValueError):
                out.record[target] = None
                out.errors.append(
                    ValidationError(
                        f"{spec.label} must be {_KIND_NOUN[spec.value_kind]}, got {raw!r}",
                        field=target,
                    )
                )
        return out
