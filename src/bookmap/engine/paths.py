"""
Leaf access into the two kinds of booking source.

* tabular: a source-field (header) name, looked up in the header index
* nested:  a dot/bracket path into a JSON document (``data.guest.name``,
  ``data.items[0].price``) or the single supported find form::

      financeField.find(f => f.name === "baseRate").total

Extraction never raises: anything that cannot be found is ``None``.
Unsupported syntax is reported by ``compile_path`` (used when a mapping is
configured), not at extraction time.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError
from .types import SourceField

log = logging.getLogger("bookmap.paths")

MAX_DEPTH = 10
DEFAULT_ENVELOPE = "data"

Token = Union[str, int]

_FIND_RE = re.compile(
    r"""^(?P<collection>.+?)\.find\(\s*
        (?P<var>[A-Za-z_$][\w$]*)\s*=>\s*
        (?P=var)\.(?P<key>[A-Za-z_$][\w$]*)\s*
        ===\s*(?P<quote>["'])(?P<literal>.*?)(?P=quote)\s*
        \)\.(?P<field>[A-Za-z_$][\w$]*)$""",
    re.VERBOSE,
)
_INDEX_RE = re.compile(r"\[(\d+)\]")
_FORBIDDEN_KEY_CHARS = set("()[]")


@dataclass(frozen=True)
class FindClause:
    key: str
    literal: str
    field: str


@dataclass(frozen=True)
class CompiledPath:
    expression: str
    tokens: Tuple[Token, ...]
    find: Optional[FindClause] = None

    @property
    def depth(self) -> int:
        return len(self.tokens) + (1 if self.find else 0)


# ---------------------------------------------------------------------------
# Path compilation
# ---------------------------------------------------------------------------

def _split_path(p: str, expression: str) -> List[Token]:
    p = p.strip()
    if p.startswith("$."):
        p = p[2:]
    elif p.startswith("$"):
        p = p[1:]
    toks: List[Token] = []
    i = 0
    cur = ""
    while i < len(p):
        c = p[i]
        if c == ".":
            if not cur and (not toks or p[i - 1] != "]"):
                raise ConfigurationError(f"Empty path segment in '{expression}'")
            if cur:
                toks.append(cur)
                cur = ""
            i += 1
            continue
        if c == "[":
            if cur:
                toks.append(cur)
                cur = ""
            j = p.find("]", i)
            if j == -1:
                raise ConfigurationError(f"Unclosed '[' in path '{expression}'")
            m = _INDEX_RE.fullmatch(p[i : j + 1])
            if not m:
                raise ConfigurationError(
                    f"Array index must be a non-negative integer in '{expression}', got {p[i : j + 1]}"
                )
            toks.append(int(m.group(1)))
            i = j + 1
            continue
        if c in _FORBIDDEN_KEY_CHARS:
            raise ConfigurationError(f"Unsupported path syntax '{c}' in '{expression}'")
        cur += c
        i += 1
    if cur:
        toks.append(cur)
    elif p.endswith("."):
        raise ConfigurationError(f"Path '{expression}' ends with '.'")
    if not toks:
        raise ConfigurationError("Path expression is empty")
    return toks


@lru_cache(maxsize=1024)
def compile_path(expression: str) -> CompiledPath:
    """Parse a nested path expression; raise ConfigurationError if unsupported."""
    s = (expression or "").strip()
    if not s:
        raise ConfigurationError("Path expression is empty")

    n_find = s.count(".find(")
    if n_find > 1 or (n_find == 0 and "find(" in s):
        raise ConfigurationError(f"Chained or nested find() is not supported: '{s}'")

    find = None
    if n_find == 1:
        m = _FIND_RE.match(s)
        if not m:
            raise ConfigurationError(
                f"Unsupported find() form in '{s}'. "
                f'Only collection.find(x => x.key === "literal").field is accepted'
            )
        tokens = _split_path(m.group("collection"), s)
        find = FindClause(key=m.group("key"), literal=m.group("literal"), field=m.group("field"))
    else:
        tokens = _split_path(s, s)

    compiled = CompiledPath(expression=s, tokens=tuple(tokens), find=find)
    if compiled.depth > MAX_DEPTH:
        raise ConfigurationError(f"Path '{s}' is deeper than {MAX_DEPTH} levels")
    return compiled


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def _step(cur: Any, token: Token) -> Any:
    if isinstance(token, int):
        if isinstance(cur, list) and 0 <= token < len(cur):
            return cur[token]
        return None
    if isinstance(cur, dict):
        return cur.get(token)
    if isinstance(cur, list) and token.isdigit():
        idx = int(token)
        return cur[idx] if idx < len(cur) else None
    return None


def _walk(node: Any, tokens: Sequence[Token]) -> Any:
    cur = node
    for t in tokens[:MAX_DEPTH]:
        cur = _step(cur, t)
        if cur is None:
            return None
    return cur


def _resolve_tokens(doc: Any, tokens: Sequence[Token], envelope: Optional[str]) -> Any:
    value = _walk(doc, tokens)
    if value is not None or not envelope or not isinstance(doc, dict):
        return value
    # Payloads that wrap the reservation in an envelope object ({"data": {...}})
    # are addressed relative to it when the root has no such key.
    inner = doc.get(envelope)
    first = tokens[0] if tokens else None
    if isinstance(inner, dict) and first != envelope and first not in doc:
        return _walk(inner, tokens)
    return None


def get_compiled(doc: Any, compiled: CompiledPath, envelope: Optional[str] = DEFAULT_ENVELOPE) -> Any:
    target = _resolve_tokens(doc, compiled.tokens, envelope)
    if compiled.find is None:
        return target
    if not isinstance(target, list):
        return None
    clause = compiled.find
    for item in target:
        if not isinstance(item, dict):
            continue
        probe = item.get(clause.key)
        if isinstance(probe, str) and probe == clause.literal:
            return item.get(clause.field)
    return None


def _as_scalar(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return None
    return value


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

class TabularExtractor:
    """Header-name → column-index lookup for one tabular source."""

    def __init__(self, headers: Sequence[SourceField]):
        self._index: Dict[str, int] = {h.name: h.index for h in headers}

    @property
    def columns(self) -> List[str]:
        return list(self._index)

    def has_column(self, name: str) -> bool:
        return name in self._index

    def extract(self, row: Sequence[Any], expression: str) -> Optional[str]:
        idx = self._index.get(expression)
        if idx is None or idx >= len(row):
            return None
        cell = row[idx]
        return "" if cell is None else str(cell).strip()


class NestedExtractor:
    """Path lookup into JSON documents (webhook payloads)."""

    def __init__(self, envelope: Optional[str] = DEFAULT_ENVELOPE):
        self.envelope = envelope

    def extract(self, doc: Any, expression: str) -> Any:
        if doc is None or not expression:
            return None
        try:
            compiled = compile_path(expression)
        except ConfigurationError as e:
            log.debug("unextractable path %r: %s", expression, e)
            return None
        return _as_scalar(get_compiled(doc, compiled, self.envelope))

    def check(self, expression: str) -> None:
        compile_path(expression)


@dataclass(frozen=True)
class TabularRow:
    """One spreadsheet row bound to its header index."""

    extractor: TabularExtractor
    cells: Sequence[Any]

    def get(self, expression: str) -> Optional[str]:
        return self.extractor.extract(self.cells, expression)

    def is_reference(self, expression: str) -> bool:
        return self.extractor.has_column(expression)


@dataclass(frozen=True)
class NestedDocument:
    """One JSON document bound to a nested extractor."""

    extractor: NestedExtractor
    doc: Any

    def get(self, expression: str) -> Any:
        return self.extractor.extract(self.doc, expression)

    def is_reference(self, expression: str) -> bool:
        return False


def extract(source: Any, expression: str) -> Any:
    """Extract one scalar from a bound row or a raw JSON document."""
    if isinstance(source, (TabularRow, NestedDocument)):
        return source.get(expression)
    return NestedExtractor().extract(source, expression)


# ---------------------------------------------------------------------------
# Leaf enumeration
# ---------------------------------------------------------------------------

def _addressable_key(key: Any) -> bool:
    return isinstance(key, str) and key != "" and not (set(key) & (_FORBIDDEN_KEY_CHARS | {"."}))


def iter_leaves(doc: Any, max_depth: int = MAX_DEPTH) -> Iterator[Tuple[str, str, Any]]:
    """
    Depth-first walk yielding (path, trailing_key, value) for non-null
    scalar leaves. Keys that a path cannot address are skipped; nodes deeper
    than `max_depth` are not visited.
    """

    def _walk_node(node: Any, prefix: str, key: str, depth: int):
        if depth > max_depth:
            return
        if isinstance(node, dict):
            for k, v in node.items():
                if not _addressable_key(k):
                    continue
                yield from _walk_node(v, f"{prefix}.{k}" if prefix else k, k, depth + 1)
        elif isinstance(node, list):
            for i, v in enumerate(node):
                yield from _walk_node(v, f"{prefix}[{i}]", key, depth + 1)
        elif node is not None and prefix:
            yield prefix, key, node

    yield from _walk_node(doc, "", "", 0)


def iter_collections(doc: Any, max_depth: int = MAX_DEPTH) -> Iterator[Tuple[str, List[Any]]]:
    """Depth-first walk yielding (path, list) for every list of objects."""

    def _walk_node(node: Any, prefix: str, depth: int):
        if depth >= max_depth:
            return
        if isinstance(node, dict):
            for k, v in node.items():
                if _addressable_key(k):
                    yield from _walk_node(v, f"{prefix}.{k}" if prefix else k, depth + 1)
        elif isinstance(node, list):
            if prefix and any(isinstance(v, dict) for v in node):
                yield prefix, node
            for i, v in enumerate(node):
                yield from _walk_node(v, f"{prefix}[{i}]", depth + 1)

    yield from _walk_node(doc, "", 0)
