from __future__ import annotations

import math
import re
from typing import Any, Optional

import pandas as pd

_CURRENCY_PREFIX_RE = re.compile(r"^[$€£¥]\s*")


def is_blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and v.strip() == "")


def to_number(raw: Any) -> float:
    """
    Parse a spreadsheet/JSON amount into a float.

    Accepts ints/floats and strings such as "125", "1,250.50", "$99",
    "-$12.50". Raises ValueError on anything non-numeric, including
    booleans, NaN and infinities.
    """
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"not a number: {raw!r}")
    if isinstance(raw, (int, float)):
        v = float(raw)
    else:
        s = str(raw).strip()
        negative = s.startswith("-")
        if negative:
            s = s[1:].lstrip()
        s = _CURRENCY_PREFIX_RE.sub("", s).replace(",", "")
        if not s or s[0] in "+-":
            raise ValueError(f"not a number: {raw!r}")
        v = float(s)
        if negative:
            v = -v
    if not math.isfinite(v):
        raise ValueError(f"not a finite number: {raw!r}")
    return v


def to_date(raw: Any) -> str:
    """Normalize a date-ish value to YYYY-MM-DD; ValueError if unparseable."""
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"not a date: {raw!r}")
    if isinstance(raw, (int, float)):
        raise ValueError(f"not a date: {raw!r}")
    ts = pd.to_datetime(str(raw).strip(), errors="coerce")
    if ts is None or pd.isna(ts):
        raise ValueError(f"not a date: {raw!r}")
    return ts.strftime("%Y-%m-%d")


def to_text(raw: Any) -> str:
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()


def coerce(kind: str, raw: Any) -> Optional[Any]:
    """Cast a resolved value to the field's value kind; blank stays None."""
    if is_blank(raw):
        return None
    if kind == "number":
        return to_number(raw)
    if kind == "date":
        return to_date(raw)
    if kind == "text":
        return to_text(raw)
    return raw
