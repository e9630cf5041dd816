from __future__ import annotations

import csv as _csv
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from .types import PreviewRow


def row_status(row: PreviewRow) -> str:
    if not row.is_valid:
        return "invalid"
    if row.is_duplicate:
        return "duplicate"
    return "valid"


def write_payloads_jsonl(payloads: Iterable[Dict[str, Any]], path: Path) -> int:
    """One booking-creation payload per line. Returns the number written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("w", encoding="utf-8") as f:
        for p in payloads:
            f.write(json.dumps(p, sort_keys=False, default=str) + "\n")
            n += 1
    return n


def write_error_csv(preview: Sequence[PreviewRow], path: Path) -> int:
    """
    Rows that will not be committed: ordinal, status, errors joined by "; ",
    then the resolved record's fields. Returns the number of rows written.
    """
    rejected = [r for r in preview if not r.is_committable]
    columns: List[str] = []
    for r in rejected:
        for k in r.record:
            if k not in columns:
                columns.append(k)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = _csv.writer(f)
        writer.writerow(["row", "status", "errors", *columns])
        for r in rejected:
            cells = ["" if r.record.get(c) is None else r.record.get(c) for c in columns]
            writer.writerow([r.ordinal, row_status(r), "; ".join(r.errors), *cells])
    return len(rejected)
