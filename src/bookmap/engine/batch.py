from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import ImportOptions
from .paths import NestedDocument, NestedExtractor, TabularExtractor, TabularRow
from .resolver import MappingResolver
from .types import BatchResult, BatchSummary, CanonicalFieldSpec, Platform, TabularSource
from .validate import RecordValidator

log = logging.getLogger("bookmap.batch")


def to_payload(record: Dict[str, Any]) -> Dict[str, Any]:
    """Flat booking-creation payload: the record without unresolved fields."""
    return {k: v for k, v in record.items() if v is not None}


def bind_rows(raw_source: Any, envelope: Optional[str] = None) -> List[Any]:
    """
    Wrap each input row/payload so expressions can be extracted from it.

    A TabularSource yields one TabularRow per row; a JSON list yields one
    NestedDocument per element; any other JSON value is a single payload.
    """
    if isinstance(raw_source, TabularSource):
        extractor = TabularExtractor(raw_source.headers)
        return [TabularRow(extractor, row) for row in raw_source.rows]
    extractor = NestedExtractor(envelope)
    docs = raw_source if isinstance(raw_source, list) else [raw_source]
    return [NestedDocument(extractor, doc) for doc in docs]


class ImportBatchProcessor:
    """Resolve, validate and classify one whole import. No I/O."""

    def __init__(self, fields: Sequence[CanonicalFieldSpec], options: Optional[ImportOptions] = None):
        self.fields = list(fields)
        self.options = options or ImportOptions()
        self.validator = RecordValidator(self.fields, self.options.dedupe_field)

    def run(
        self,
        raw_source: Any,
        resolver: MappingResolver,
        existing: Iterable[str] = (),
        platform: Any = None,
    ) -> BatchResult:
        rows = bind_rows(raw_source, self.options.envelope)
        forced = Platform.parse(platform) if platform is not None else None
        preview = self.validator.validate_batch(rows, resolver, existing, forced)
        committable = [to_payload(r.record) for r in preview if r.is_committable]
        summary = BatchSummary.from_rows(preview)
        log.info(
            "batch: %d rows, %d valid, %d duplicate, %d invalid",
            summary.total, summary.valid, summary.duplicate, summary.invalid,
        )
        return BatchResult(committable=committable, preview=preview, summary=summary)
