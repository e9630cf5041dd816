from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from email_validator import EmailNotValidError, validate_email

from bookmap.schemas.models import FieldPreview, MappingReport

from .errors import ConfigurationError, FormulaError
from .formula import FormulaEvaluator
from .records import BuiltRecord, RecordBuilder
from .resolver import MappingResolver
from .types import CanonicalFieldSpec, Platform, PreviewRow
from .values import coerce, is_blank

log = logging.getLogger("bookmap.validate")

PREVIEW_LENGTH = 50


def dedupe_key(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value).strip().lower()


class RecordValidator:
    """
    Classify resolved records as valid, duplicate or invalid.

    Duplicate detection runs on one normalized key per record (the email
    field unless another is named). The running key set starts from the
    keys already stored for the user; every record's key is added after it
    is checked, so the first new occurrence in a batch is kept and later
    ones are flagged.
    """

    def __init__(self, fields: Sequence[CanonicalFieldSpec], dedupe_field: Optional[str] = None):
        self.fields = list(fields)
        specs = {f.target_field: f for f in self.fields}
        if dedupe_field is None:
            dedupe_field = next((f.target_field for f in self.fields if f.is_email), None)
        elif dedupe_field not in specs:
            raise ConfigurationError(f"Unknown dedupe field '{dedupe_field}'")
        self.dedupe_field = dedupe_field
        self._specs = specs

    def record_errors(self, built: BuiltRecord) -> List[str]:
        """Hard errors for one record: evaluation failures, missing required values, bad emails."""
        errors = [str(e) for e in built.errors]
        for spec in self.fields:
            target = spec.target_field
            if built.failed(target):
                continue
            value = built.record.get(target)
            if spec.required and is_blank(value):
                errors.append(f"{spec.label} is required")
            elif spec.is_email and not is_blank(value):
                try:
                    validate_email(str(value), check_deliverability=False)
                except EmailNotValidError:
                    errors.append(f"{spec.label} is not a valid email address")
        return errors

    def validate_batch(
        self,
        rows: Iterable[Any],
        resolver: MappingResolver,
        existing_keys: Iterable[str] = (),
        platform: Optional[Platform] = None,
    ) -> List[PreviewRow]:
        builder = RecordBuilder(self.fields, resolver)
        existing: Set[str] = {k for k in (dedupe_key(v) for v in existing_keys) if k}
        seen: Set[str] = set(existing)
        label = self._specs[self.dedupe_field].label if self.dedupe_field else ""

        out: List[PreviewRow] = []
        for i, row in enumerate(rows):
            ordinal = i + 1
            built = builder.build(row, platform, ordinal=ordinal)
            errors = self.record_errors(built)
            is_valid = not errors

            is_duplicate = False
            key = dedupe_key(built.record.get(self.dedupe_field)) if self.dedupe_field else None
            if key is not None:
                if key in existing:
                    is_duplicate = True
                    errors.append(f"{label} already exists")
                elif key in seen:
                    is_duplicate = True
                    errors.append(f"{label} is duplicated in this import")
                seen.add(key)

            out.append(
                PreviewRow(
                    ordinal=ordinal,
                    record=built.record,
                    is_valid=is_valid,
                    is_duplicate=is_duplicate,
                    errors=tuple(errors),
                    platform=built.platform,
                )
            )
        return out


# ---------------------------------------------------------------------------
# Mapping preview / check against one sample
# ---------------------------------------------------------------------------

def _display(value: Any, max_length: int) -> str:
    if value is None:
        return "No value"
    text = str(value)
    return f"{text[:max_length]}..." if len(text) > max_length else text


def preview_mapping(
    row: Any,
    resolver: MappingResolver,
    platform: Platform = Platform.ALL,
    max_length: int = PREVIEW_LENGTH,
) -> Dict[str, FieldPreview]:
    """Per configured target: expression, coerced value and a display string."""
    evaluator = FormulaEvaluator(row, resolver, platform)
    record: Dict[str, Any] = {}
    out: Dict[str, FieldPreview] = {}
    for target in resolver.configured_fields(platform):
        spec = resolver.fields[target]
        expr = resolver.resolve(target, platform)
        try:
            value = coerce(spec.value_kind, evaluator.evaluate(expr, record, target))
        except (FormulaError, TypeError, ValueError) as e:
            out[target] = FieldPreview(expression=expr, error=str(e))
            continue
        record[target] = value
        out[target] = FieldPreview(expression=expr, value=value, preview=_display(value, max_length))
    return out


def check_mappings(
    row: Any,
    resolver: MappingResolver,
    pipeline: str,
    platform: Platform = Platform.ALL,
) -> MappingReport:
    """
    Missing required mappings, plus required mappings that yield nothing
    (or fail) on the sample.
    """
    preview = preview_mapping(row, resolver, platform)
    missing = resolver.missing_required()
    errors: List[str] = []
    for spec in resolver.fields.values():
        if not spec.required or spec.target_field in missing:
            continue
        p = preview.get(spec.target_field)
        if p is None:
            continue
        if p.error:
            errors.append(f'Field "{spec.target_field}" mapping "{p.expression}" is invalid: {p.error}')
        elif is_blank(p.value):
            errors.append(f'Field "{spec.target_field}" mapping "{p.expression}" produces no value')
    return MappingReport(
        pipeline=pipeline,
        is_valid=not missing and not errors,
        base_complete=resolver.is_base_complete(),
        missing_fields=missing,
        errors=errors,
        preview=preview,
    )
