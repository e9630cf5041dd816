from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import ConfigurationError

VALUE_KINDS = ("text", "date", "number")

_MISSING = object()


def _norm_key(value: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value).lower())


class Platform(str, Enum):
    """Closed set of booking sources a mapping can be specialised for."""

    ALL = "ALL"
    BASE = "ALL"                # alias: the platform-independent scope
    AIRBNB = "airbnb"
    BOOKING = "booking"
    GOOGLE = "google"
    DIRECT = "direct"
    WECHALET = "wechalet"
    MONSIEURCHALETS = "monsieurchalets"
    DIRECT_ETRANSFER = "direct-etransfer"
    VRBO = "vrbo"
    HOSTAWAY = "hostaway"

    @property
    def is_base(self) -> bool:
        return self is Platform.ALL

    @classmethod
    def parse(cls, value: Any, default: Any = _MISSING) -> "Platform":
        """
        Map a config key or a channel name as it appears in source data
        ("Airbnb", "airbnbOfficial", "Booking.com", "BASE") to a Platform.

        Unknown values raise ConfigurationError unless `default` is given.
        """
        if isinstance(value, Platform):
            return value
        key = _norm_key(value) if value is not None else ""
        if key:
            for p in cls:
                if key in (_norm_key(p.value), _norm_key(p.name)):
                    return p
            alias = PLATFORM_ALIASES.get(key)
            if alias is not None:
                return cls(alias)
        if default is not _MISSING:
            return default
        raise ConfigurationError(
            f"Unknown platform '{value}'. Choose one of {[p.value for p in cls]}"
        )


# normalized spelling -> Platform value
PLATFORM_ALIASES: Dict[str, str] = {
    "base": "ALL",
    "allplatforms": "ALL",
    "airbnbofficial": "airbnb",
    "airbnbcom": "airbnb",
    "bookingcom": "booking",
    "googlevacationrentals": "google",
    "directbooking": "direct",
    "website": "direct",
    "etransfer": "direct-etransfer",
    "homeaway": "vrbo",
    "vrbocom": "vrbo",
}


@dataclass(frozen=True)
class SourceField:
    name: str
    index: int
    sample_value: Optional[str] = None


@dataclass
class TabularSource:
    """Parsed spreadsheet: headers plus rows aligned to them by index."""

    headers: List[SourceField]
    rows: List[List[str]] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for h in self.headers:
            if h.name in seen:
                raise ConfigurationError(f"Duplicate source column name: '{h.name}'")
            seen.add(h.name)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @classmethod
    def from_table(cls, header_names: Sequence[str], rows: Sequence[Sequence[Any]]) -> "TabularSource":
        names = [str(h).strip() for h in header_names]
        first = list(rows[0]) if rows else []
        headers = [
            SourceField(
                name=n,
                index=i,
                sample_value=(str(first[i]).strip() if i < len(first) else None),
            )
            for i, n in enumerate(names)
        ]
        body = [["" if v is None else str(v) for v in r] for r in rows]
        return cls(headers=headers, rows=body)

    @classmethod
    def from_records(cls, records: Sequence[Dict[str, Any]]) -> "TabularSource":
        """Lay resolved records out as a table whose columns are the record keys."""
        names: List[str] = []
        for rec in records:
            for k in rec:
                if k not in names:
                    names.append(k)
        rows = [[_cell_text(rec.get(k)) for k in names] for rec in records]
        return cls.from_table(names, rows)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class CanonicalFieldSpec:
    target_field: str
    label: str
    required: bool = False
    value_kind: str = "text"        # text|date|number
    category: Optional[str] = None
    aliases: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.value_kind not in VALUE_KINDS:
            raise ValueError(f"value_kind must be one of {VALUE_KINDS}, got '{self.value_kind}'")

    @property
    def is_email(self) -> bool:
        return self.value_kind == "text" and "email" in self.target_field.lower()


@dataclass(frozen=True)
class FieldMapping:
    target_field: str
    expression: str
    scope: Platform = Platform.ALL
    is_override: bool = False


@dataclass(frozen=True)
class PreviewRow:
    """
    One classified, not-yet-committed result for one input row/payload.

    Created once during validation and never modified afterwards.
    """

    ordinal: int
    record: Dict[str, Any]
    is_valid: bool
    is_duplicate: bool = False
    errors: Tuple[str, ...] = ()
    platform: Platform = Platform.ALL

    @property
    def is_committable(self) -> bool:
        return self.is_valid and not self.is_duplicate


@dataclass(frozen=True)
class BatchSummary:
    total: int = 0
    valid: int = 0
    duplicate: int = 0
    invalid: int = 0

    @classmethod
    def from_rows(cls, rows: Sequence[PreviewRow]) -> "BatchSummary":
        invalid = sum(1 for r in rows if not r.is_valid)
        duplicate = sum(1 for r in rows if r.is_valid and r.is_duplicate)
        return cls(
            total=len(rows),
            valid=len(rows) - invalid - duplicate,
            duplicate=duplicate,
            invalid=invalid,
        )


@dataclass
class BatchResult:
    committable: List[Dict[str, Any]]
    preview: List[PreviewRow]
    summary: BatchSummary
