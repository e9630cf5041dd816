"""
Best-effort initial mappings.

Names are compared after normalization (NFKC, lowercase, punctuation and
whitespace removed). A source name matches a target when it equals one of
the target's candidate names (label, field name, aliases) or when either
contains the other. Exact matches are assigned before containment matches;
within a pass the first source name in source order wins. Targets with no
match are left unmapped.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import ConfigurationError
from .paths import DEFAULT_ENVELOPE, NestedExtractor, compile_path, iter_collections, iter_leaves
from .types import CanonicalFieldSpec, SourceField

log = logging.getLogger("bookmap.suggest")

MIN_CONTAINMENT = 3

DISCRIMINATOR_KEYS = ("name", "type", "key")
VALUE_KEYS = ("total", "value", "amount")


def normalize(text: Any) -> str:
    s = unicodedata.normalize("NFKC", str(text)).lower()
    return re.sub(r"[^0-9a-z]", "", s)


def _candidates(spec: CanonicalFieldSpec) -> List[str]:
    out: List[str] = []
    for name in (spec.label, spec.target_field, *spec.aliases):
        key = normalize(name)
        if key and key not in out:
            out.append(key)
    return out


def _matches(key: str, candidates: Sequence[str], exact: bool) -> bool:
    if not key:
        return False
    if exact:
        return key in candidates
    if len(key) < MIN_CONTAINMENT:
        return False
    return any(len(c) >= MIN_CONTAINMENT and (key in c or c in key) for c in candidates)


def _assign(
    fields: Sequence[CanonicalFieldSpec],
    options: Sequence[Tuple[str, str]],
    accept=None,
) -> Dict[str, str]:
    """options: (expression, name-to-match) pairs in source order."""
    found: Dict[str, str] = {}
    used: Set[str] = set()
    for exact in (True, False):
        for spec in fields:
            if spec.target_field in found:
                continue
            cands = _candidates(spec)
            for expression, name in options:
                if expression in used or not _matches(normalize(name), cands, exact):
                    continue
                if accept is not None and not accept(expression):
                    continue
                found[spec.target_field] = expression
                used.add(expression)
                break
    return {f.target_field: found[f.target_field] for f in fields if f.target_field in found}


def suggest_base_mapping(
    source_fields: Sequence[SourceField],
    fields: Sequence[CanonicalFieldSpec],
) -> Dict[str, str]:
    """Target field -> header name for a tabular source."""
    options = [(sf.name, sf.name) for sf in sorted(source_fields, key=lambda s: s.index)]
    out = _assign(fields, options)
    log.debug("suggested %d/%d tabular mappings", len(out), len(fields))
    return out


def _find_options(payload: Any) -> Iterator[Tuple[str, str]]:
    """
    Candidate find() paths for lists of {name|type|key: "...", total|value|amount: ...}
    objects, matched on the discriminator value.
    """
    for path, items in iter_collections(payload):
        for item in items:
            if not isinstance(item, dict):
                continue
            disc = next((k for k in DISCRIMINATOR_KEYS if isinstance(item.get(k), str)), None)
            value_key = next((k for k in VALUE_KEYS if item.get(k) is not None), None)
            if disc is None or value_key is None:
                continue
            literal = item[disc]
            if not literal or '"' in literal:
                continue
            expr = f'{path}.find(f => f.{disc} === "{literal}").{value_key}'
            try:
                compile_path(expr)
            except ConfigurationError:
                continue
            yield expr, literal


def suggest_webhook_mapping(
    payload: Any,
    fields: Sequence[CanonicalFieldSpec],
    envelope: Optional[str] = DEFAULT_ENVELOPE,
) -> Dict[str, str]:
    """
    Target field -> JSON path for a sample webhook payload.

    Plain leaves are matched on their trailing key, find() candidates on
    their discriminator value. A path is kept only if extracting it from the
    same payload yields a value.
    """
    extractor = NestedExtractor(envelope)
    options = [(path, key) for path, key, _ in iter_leaves(payload)]
    options.extend(_find_options(payload))
    out = _assign(fields, options, accept=lambda p: extractor.extract(payload, p) is not None)
    log.debug("suggested %d/%d webhook mappings", len(out), len(fields))
    return out
