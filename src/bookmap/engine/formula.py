"""
Arithmetic formulas over mapped fields.

Grammar (``*``/``/`` bind tighter than ``+``/``-``, left associative)::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("-" | "+") unary | primary
    primary := NUMBER | "[" FieldName "]" | "(" expr ")"

A stored expression is either a formula or a plain source reference (a
header name, or a JSON path); the two are told apart by shape only.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ConfigurationError, FormulaError
from .types import Platform
from .values import is_blank, to_number

log = logging.getLogger("bookmap.formula")

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<ref>\[[^\[\]]*\])
       |(?P<num>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)
       |(?P<op>[-+*/()])
    )""",
    re.VERBOSE,
)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class FieldRef:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, FieldRef, BinaryOp]


# ---------------------------------------------------------------------------
# Tokenizer / parser
# ---------------------------------------------------------------------------

def _tokenize(text: str) -> List[Tuple[str, str]]:
    toks: List[Tuple[str, str]] = []
    pos = 0
    n = len(text)
    while pos < n:
        if text[pos:].strip() == "":
            break
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise ConfigurationError(
                f"Unexpected text {text[pos:].strip()[:20]!r} in formula '{text}'"
            )
        kind = m.lastgroup
        toks.append((kind, m.group(kind)))
        pos = m.end()
    return toks


_INDEX_RE = re.compile(r"\[\d+\]")


def is_formula(expression: str) -> bool:
    """
    True when the expression has formula shape: the whole string tokenizes,
    or it carries a bracket that is not a path index such as ``items[0]``.
    A formula-shaped expression that does not parse is a malformed formula,
    never a column name.
    """
    s = (expression or "").strip()
    if not s:
        return False
    unindexed = _INDEX_RE.sub("", s)
    if "[" in unindexed or "]" in unindexed:
        return True
    try:
        return bool(_tokenize(s))
    except ConfigurationError:
        return False


def field_refs(node: "Node") -> List[str]:
    """Names of every [FieldRef] in `node`, left to right."""
    if isinstance(node, FieldRef):
        return [node.name]
    if isinstance(node, BinaryOp):
        return field_refs(node.left) + field_refs(node.right)
    return []


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.toks = _tokenize(text)
        self.i = 0

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.toks[self.i] if self.i < len(self.toks) else None

    def _next(self) -> Tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise ConfigurationError(f"Formula '{self.text}' ends unexpectedly")
        self.i += 1
        return tok

    def parse(self) -> Node:
        if not self.toks:
            raise ConfigurationError("Formula is empty")
        node = self._expr()
        if self._peek() is not None:
            raise ConfigurationError(
                f"Unexpected {self._peek()[1]!r} in formula '{self.text}'"
            )
        return node

    def _expr(self) -> Node:
        node = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            op = self._next()[1]
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._peek() in (("op", "*"), ("op", "/")):
            op = self._next()[1]
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._peek() == ("op", "-"):
            self._next()
            return BinaryOp("-", Literal(0.0), self._unary())
        if self._peek() == ("op", "+"):
            self._next()
            return self._unary()
        return self._primary()

    def _primary(self) -> Node:
        kind, text = self._next()
        if kind == "num":
            return Literal(float(text))
        if kind == "ref":
            name = text[1:-1].strip()
            if not name:
                raise ConfigurationError(f"Empty field reference [] in formula '{self.text}'")
            return FieldRef(name)
        if text == "(":
            node = self._expr()
            if self._next() != ("op", ")"):
                raise ConfigurationError(f"Missing ')' in formula '{self.text}'")
            return node
        raise ConfigurationError(f"Unexpected {text!r} in formula '{self.text}'")


@lru_cache(maxsize=1024)
def parse_formula(text: str) -> Node:
    """Parse once per distinct expression string; the AST is immutable."""
    return _Parser(text.strip()).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _apply(op: str, left: float, right: float, field: Optional[str]) -> float:
    if op == "+":
        result = left + right
    elif op == "-":
        result = left - right
    elif op == "*":
        result = left * right
    else:
        if right == 0:
            raise FormulaError("Division by zero", field=field)
        result = left / right
    if not math.isfinite(result):
        raise FormulaError("Result is not a finite number", field=field)
    return result


class FormulaEvaluator:
    """
    Evaluate stored expressions against one row/payload.

    Fields referenced as ``[Name]`` are looked up, in order, in the record
    built so far, as another target field's own mapping (through the
    resolver, for this evaluator's platform), and finally as a source leaf.
    """

    def __init__(self, row: Any = None, resolver: Any = None, platform: Platform = Platform.ALL):
        self.row = row
        self.resolver = resolver
        self.platform = platform

    def is_plain_reference(self, expression: str) -> bool:
        expr = expression.strip()
        if self.row is not None and self.row.is_reference(expr):
            return True
        return not is_formula(expr)

    def evaluate(
        self,
        expression: str,
        record_so_far: Optional[Dict[str, Any]] = None,
        target: Optional[str] = None,
    ) -> Any:
        """
        Evaluate `expression`; formulas yield a float, plain references
        yield the extracted value (None when absent).
        """
        record = record_so_far if record_so_far is not None else {}
        chain = (target,) if target else ()
        return self._expression(expression, record, chain)

    # ------------------------------------------------------------------
    def _expression(self, expression: str, record: Dict[str, Any], chain: Tuple[str, ...]) -> Any:
        target = chain[-1] if chain else None
        expr = (expression or "").strip()
        if not expr:
            return None
        if self.is_plain_reference(expr):
            return self.row.get(expr) if self.row is not None else None
        try:
            node = parse_formula(expr)
        except ConfigurationError as e:
            raise FormulaError(str(e), field=target) from e
        return self._eval(node, record, chain)

    def _eval(self, node: Node, record: Dict[str, Any], chain: Tuple[str, ...]) -> float:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, FieldRef):
            return self._operand(node.name, record, chain)
        left = self._eval(node.left, record, chain)
        right = self._eval(node.right, record, chain)
        return _apply(node.op, left, right, chain[-1] if chain else None)

    def _operand(self, name: str, record: Dict[str, Any], chain: Tuple[str, ...]) -> float:
        target = chain[-1] if chain else None

        if record.get(name) is not None:
            return self._number(record[name], name, target)

        expression = None
        if self.resolver is not None and name != target:
            expression = self.resolver.resolve(name, self.platform)
        if expression:
            if name in chain:
                cycle = " -> ".join(chain[chain.index(name):] + (name,))
                raise FormulaError(f"Circular field reference: {cycle}", field=target)
            value = self._expression(expression, record, chain + (name,))
        elif self.row is not None:
            value = self.row.get(name)
        else:
            value = None

        if is_blank(value):
            raise FormulaError(f"Unresolved field reference [{name}]", field=target)
        return self._number(value, name, target)

    @staticmethod
    def _number(value: Any, name: str, target: Optional[str]) -> float:
        try:
            return to_number(value)
        except (TypeError, ValueError):
            raise FormulaError(f"[{name}] is not a number: {value!r}", field=target) from None
