from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd

from .types import TabularSource

log = logging.getLogger("bookmap.loader")

TABULAR_SUFFIXES = (".csv", ".tsv", ".txt", ".xlsx", ".xls")


def _read_frame(path: Path, sheet_name: Optional[str] = None) -> pd.DataFrame:
    # header=None keeps the header row verbatim (pandas would rename repeated names)
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(path, sheet_name=sheet_name or 0, header=None, dtype=str).fillna("")
    sep = "\t" if suffix == ".tsv" else ","
    return pd.read_csv(path, sep=sep, header=None, dtype=str, keep_default_na=False, skip_blank_lines=True)


def frame_to_source(frame: pd.DataFrame) -> TabularSource:
    """First row is the header row; wholly blank rows are dropped."""
    if frame.empty:
        return TabularSource(headers=[], rows=[])
    values = frame.astype(str).values.tolist()
    header, body = values[0], values[1:]
    rows: List[List[str]] = [r for r in body if any(str(c).strip() for c in r)]
    return TabularSource.from_table(header, rows)


def load_tabular(path: Path, sheet_name: Optional[str] = None) -> TabularSource:
    path = Path(path)
    if path.suffix.lower() not in TABULAR_SUFFIXES:
        raise ValueError(f"Unsupported tabular file type '{path.suffix}' (expected one of {TABULAR_SUFFIXES})")
    source = frame_to_source(_read_frame(path, sheet_name))
    log.debug("loaded %s: %d columns, %d rows", path, len(source.headers), source.total_rows)
    return source


def load_webhook(path: Path) -> Any:
    """A JSON document: one payload, or a list of payloads."""
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def is_tabular_path(path: Path) -> bool:
    return Path(path).suffix.lower() in TABULAR_SUFFIXES
