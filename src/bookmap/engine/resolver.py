from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .errors import ConfigurationError
from .formula import field_refs, is_formula, parse_formula
from .types import CanonicalFieldSpec, FieldMapping, Platform

log = logging.getLogger("bookmap.resolver")


class MappingResolver:
    """
    Layered mapping configuration: one BASE expression per target field plus
    per-platform overrides for optional fields.

    Resolution order for (target, platform):
      1. the platform override, when platform is not BASE and the target is optional
      2. the BASE expression
      3. None
    """

    def __init__(
        self,
        fields: Sequence[CanonicalFieldSpec],
        check_reference: Optional[Callable[[str], None]] = None,
        columns: Iterable[str] = (),
    ):
        self.fields: Dict[str, CanonicalFieldSpec] = {f.target_field: f for f in fields}
        self._check_reference = check_reference
        # known source headers; an exact match is a reference whatever its shape
        self._columns = set(columns)
        self._base: Dict[str, str] = {}
        self._overrides: Dict[Platform, Dict[str, str]] = {}

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def set_mapping(self, target_field: str, platform: Any, expression: Optional[str]) -> None:
        """
        Register (or replace) the expression for (target_field, platform).
        A blank expression unsets it.
        """
        spec = self.fields.get(target_field)
        if spec is None:
            raise ConfigurationError(f"Unknown target field '{target_field}'")
        platform = Platform.parse(platform)
        expr = (expression or "").strip()

        if not platform.is_base:
            if spec.required:
                raise ConfigurationError(
                    f"'{target_field}' is required and can only be mapped on the base (ALL) platform"
                )
            if expr and not self.is_base_complete():
                raise ConfigurationError(
                    "Platform overrides are locked until every required field has a base mapping; "
                    f"missing: {self.missing_required()}"
                )

        layer = self._base if platform.is_base else self._overrides.setdefault(platform, {})
        if not expr:
            layer.pop(target_field, None)
            if not platform.is_base and not layer:
                self._overrides.pop(platform, None)
            return

        self.check_expression(expr)
        layer[target_field] = expr
        log.debug("mapped %s[%s] = %r", target_field, platform.value, expr)

    def check_expression(self, expression: str) -> None:
        """Raise ConfigurationError if `expression` can never be evaluated."""
        if expression in self._columns:
            return
        if not is_formula(expression):
            if self._check_reference is not None:
                self._check_reference(expression)
            return
        node = parse_formula(expression)
        if self._check_reference is None:
            return
        for name in field_refs(node):
            if name not in self.fields and name not in self._columns:
                self._check_reference(name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def resolve(self, target_field: str, platform: Any = Platform.ALL) -> Optional[str]:
        platform = Platform.parse(platform, default=Platform.ALL)
        spec = self.fields.get(target_field)
        if spec is None:
            return None
        if not platform.is_base and not spec.required:
            expr = self._overrides.get(platform, {}).get(target_field)
            if expr:
                return expr
        return self._base.get(target_field)

    def is_override(self, target_field: str, platform: Any) -> bool:
        platform = Platform.parse(platform, default=Platform.ALL)
        return not platform.is_base and target_field in self._overrides.get(platform, {})

    def configured_fields(self, platform: Any = Platform.ALL) -> List[str]:
        """Target fields with an effective expression, in schema order."""
        return [t for t in self.fields if self.resolve(t, platform)]

    def missing_required(self) -> List[str]:
        return [
            t for t, spec in self.fields.items()
            if spec.required and not self._base.get(t, "").strip()
        ]

    def is_base_complete(self) -> bool:
        return not self.missing_required()

    @property
    def platforms(self) -> List[Platform]:
        return [p for p in Platform if p in self._overrides]

    def base_mapping(self) -> Dict[str, str]:
        return dict(self._base)

    def overrides_for(self, platform: Any) -> Dict[str, str]:
        return dict(self._overrides.get(Platform.parse(platform), {}))

    def mappings(self) -> List[FieldMapping]:
        """Flatten to FieldMapping records: BASE first, then overrides by platform."""
        out = [FieldMapping(t, e, Platform.ALL, False) for t, e in self._base.items()]
        for p in self.platforms:
            out.extend(FieldMapping(t, e, p, True) for t, e in self._overrides[p].items())
        return out

    # ------------------------------------------------------------------
    # Bulk construction
    # ------------------------------------------------------------------
    def update(self, mapping: Dict[str, Optional[str]], platform: Any = Platform.ALL) -> None:
        for target, expr in mapping.items():
            self.set_mapping(target, platform, expr)

    def load(self, mappings: Iterable[FieldMapping]) -> None:
        """Apply FieldMapping records, BASE before overrides."""
        ordered = sorted(mappings, key=lambda m: 0 if Platform.parse(m.scope).is_base else 1)
        for m in ordered:
            self.set_mapping(m.target_field, m.scope, m.expression)
