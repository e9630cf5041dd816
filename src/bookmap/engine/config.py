from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import jsonschema
import yaml

from .errors import ConfigurationError
from .fields import SCHEMAS, schema_for
from .paths import DEFAULT_ENVELOPE, NestedExtractor
from .resolver import MappingResolver
from .types import CanonicalFieldSpec, Platform

log = logging.getLogger("bookmap.config")

CONFIG_VERSION = "1"

_MAPPING = {
    "type": "object",
    "additionalProperties": {"type": ["string", "null"]},
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["pipeline"],
    "additionalProperties": False,
    "properties": {
        "version": {"type": ["string", "integer"]},
        "pipeline": {"enum": sorted(SCHEMAS)},
        "base": _MAPPING,
        "overrides": {"type": "object", "additionalProperties": _MAPPING},
        "options": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "dedupe_field": {"type": ["string", "null"]},
                "preview_limit": {"type": "integer", "minimum": 0},
                "envelope": {"type": ["string", "null"]},
            },
        },
    },
}

DEFAULT_OPTIONS: Dict[str, Any] = {
    "dedupe_field": None,
    "preview_limit": 20,
    "envelope": DEFAULT_ENVELOPE,
}


@dataclass
class ImportOptions:
    """
    Per-import knobs.

    Fields:
      dedupe_field: target field used as the duplicate key (default: the email field)
      preview_limit: rows shown by the CLI preview
      envelope: wrapper key retried for webhook paths that miss at the root
    """

    dedupe_field: Optional[str] = None
    preview_limit: int = 20
    envelope: Optional[str] = DEFAULT_ENVELOPE

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None) -> "ImportOptions":
        if cfg is None:
            return cls()
        unknown = set(cfg) - set(DEFAULT_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown import option(s): {sorted(unknown)}")
        merged = {**DEFAULT_OPTIONS, **cfg}
        return cls(
            dedupe_field=merged["dedupe_field"],
            preview_limit=int(merged["preview_limit"]),
            envelope=merged["envelope"],
        )

    def to_config(self) -> Dict[str, Any]:
        return {
            "dedupe_field": self.dedupe_field,
            "preview_limit": self.preview_limit,
            "envelope": self.envelope,
        }


def make_resolver(
    pipeline: str,
    fields: Optional[Sequence[CanonicalFieldSpec]] = None,
    envelope: Optional[str] = DEFAULT_ENVELOPE,
    columns: Iterable[str] = (),
) -> MappingResolver:
    """
    Empty resolver whose reference check matches the pipeline's source kind.
    `columns` are the headers of a known tabular source.
    """
    fields = fields if fields is not None else schema_for(pipeline)
    check = NestedExtractor(envelope).check if pipeline == "webhook" else None
    return MappingResolver(fields, check_reference=check, columns=columns)


def validate_config(doc: Any) -> None:
    try:
        jsonschema.validate(instance=doc, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid mapping config at {where}: {e.message}") from None


@dataclass
class MappingConfig:
    pipeline: str
    base: Dict[str, str] = field(default_factory=dict)
    overrides: Dict[str, Dict[str, str]] = field(default_factory=dict)
    options: ImportOptions = field(default_factory=ImportOptions)
    version: str = CONFIG_VERSION

    @property
    def fields(self) -> List[CanonicalFieldSpec]:
        return schema_for(self.pipeline)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "MappingConfig":
        validate_config(cfg)
        overrides: Dict[str, Dict[str, str]] = {}
        for key, mapping in (cfg.get("overrides") or {}).items():
            platform = Platform.parse(key)
            if platform.is_base:
                raise ConfigurationError("Base mappings belong under 'base', not 'overrides'")
            overrides[platform.value] = {t: e for t, e in (mapping or {}).items() if e}
        return cls(
            pipeline=cfg["pipeline"],
            base={t: e for t, e in (cfg.get("base") or {}).items() if e},
            overrides=overrides,
            options=ImportOptions.from_config(cfg.get("options")),
            version=str(cfg.get("version", CONFIG_VERSION)),
        )

    @classmethod
    def from_resolver(
        cls, resolver: MappingResolver, pipeline: str, options: Optional[ImportOptions] = None
    ) -> "MappingConfig":
        return cls(
            pipeline=pipeline,
            base=resolver.base_mapping(),
            overrides={p.value: resolver.overrides_for(p) for p in resolver.platforms},
            options=options or ImportOptions(),
        )

    def to_config(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "version": self.version,
            "pipeline": self.pipeline,
            "base": dict(self.base),
        }
        if self.overrides:
            doc["overrides"] = {p: dict(m) for p, m in self.overrides.items()}
        doc["options"] = self.options.to_config()
        return doc

    def build_resolver(self, columns: Iterable[str] = ()) -> MappingResolver:
        """BASE first, so the override lock sees the finished base layer."""
        resolver = make_resolver(self.pipeline, self.fields, self.options.envelope, columns)
        resolver.update(self.base, Platform.ALL)
        for key, mapping in self.overrides.items():
            resolver.update(mapping, key)
        return resolver


def load_config(path: Path, check: bool = True) -> MappingConfig:
    """
    Read and validate a mapping config. With `check`, the mappings are also
    built into a resolver so bad expressions fail here; pass False when the
    source headers are not known yet and call build_resolver(columns) later.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}
    try:
        cfg = MappingConfig.from_config(doc)
        if check:
            cfg.build_resolver()
    except ConfigurationError as e:
        log.warning("rejected mapping config %s: %s", path, e)
        raise
    return cfg


def save_config(cfg: MappingConfig, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(cfg.to_config(), f, sort_keys=False)
    return path
