from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Set

import typer
import yaml

from bookmap.engine.batch import ImportBatchProcessor, bind_rows
from bookmap.engine.config import MappingConfig, load_config, save_config
from bookmap.engine.emit import row_status, write_error_csv, write_payloads_jsonl
from bookmap.engine.errors import MappingEngineError
from bookmap.engine.fields import PLATFORM_LABELS, required_fields, schema_for
from bookmap.engine.loader import is_tabular_path, load_tabular, load_webhook
from bookmap.engine.resolver import MappingResolver
from bookmap.engine.store import JsonlBookingStore, commit_batch
from bookmap.engine.suggest import suggest_base_mapping, suggest_webhook_mapping
from bookmap.engine.types import Platform, TabularSource
from bookmap.engine.validate import check_mappings
from bookmap.schemas.models import ImportReport, RowReport

app = typer.Typer(help="bookmap: map booking exports and webhook payloads onto booking records")


def _setup_logging(verbose: bool) -> None:
    logger = logging.getLogger("bookmap")
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("[bookmap] %(message)s"))
        logger.addHandler(h)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    _setup_logging(verbose)


# ---- helpers ----

def _pipeline_for(source: Path, pipeline: Optional[str]) -> str:
    if pipeline:
        try:
            schema_for(pipeline)
        except ValueError as e:
            raise typer.BadParameter(str(e))
        return pipeline
    return "tabular" if is_tabular_path(source) else "webhook"


def _load_source(source: Path, pipeline: str) -> Any:
    if not source.exists():
        raise typer.BadParameter(f"{source} not found")
    try:
        if pipeline == "tabular":
            return load_tabular(source)
        return load_webhook(source)
    except (ValueError, MappingEngineError) as e:
        raise typer.BadParameter(f"Cannot read {source}: {e}")


def _load_config(path: Path) -> MappingConfig:
    if not path.exists():
        raise typer.BadParameter(f"{path} not found")
    try:
        return load_config(path, check=False)
    except (MappingEngineError, yaml.YAMLError) as e:
        raise typer.BadParameter(f"{path}: {e}")


def _resolver(cfg: MappingConfig, raw: Any, path: Path) -> MappingResolver:
    # a tabular source's headers are references even when they look like formulas
    columns = [h.name for h in raw.headers] if isinstance(raw, TabularSource) else ()
    try:
        return cfg.build_resolver(columns)
    except MappingEngineError as e:
        raise typer.BadParameter(f"{path}: {e}")


def _platform(value: Optional[str]) -> Optional[Platform]:
    if value is None:
        return None
    try:
        return Platform.parse(value)
    except MappingEngineError as e:
        raise typer.BadParameter(str(e))


def _existing_keys(existing: Optional[Path], store: Optional[JsonlBookingStore]) -> Set[str]:
    keys: Set[str] = set()
    if existing is not None:
        keys.update(line.strip() for line in existing.read_text(encoding="utf-8").splitlines() if line.strip())
    if store is not None:
        keys.update(store.find_existing_keys(store.user_id))
    return keys


def _first_payload(raw: Any) -> Any:
    if isinstance(raw, list):
        return raw[0] if raw else None
    return raw


# ---- commands ----

@app.command()
def suggest(
    source: Path = typer.Argument(..., help="Sample export (.csv/.tsv/.xlsx) or webhook payload (.json)"),
    pipeline: Optional[str] = typer.Option(None, "--pipeline", "-p", help="tabular | webhook (default: by file type)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the suggested mapping config here"),
):
    """Propose a base mapping from a sample source."""
    pipe = _pipeline_for(source, pipeline)
    raw = _load_source(source, pipe)
    fields = schema_for(pipe)
    if pipe == "tabular":
        base = suggest_base_mapping(raw.headers, fields)
    else:
        base = suggest_webhook_mapping(_first_payload(raw), fields)

    cfg = MappingConfig(pipeline=pipe, base=base)
    missing = [f.target_field for f in required_fields(fields) if f.target_field not in base]
    if out is not None:
        save_config(cfg, out)
        typer.secho(f"Wrote {out} ({len(base)} field(s) mapped)", fg=typer.colors.GREEN)
    else:
        typer.echo(yaml.safe_dump(cfg.to_config(), sort_keys=False))
    if missing:
        typer.secho(f"Unmapped required fields: {', '.join(missing)}", fg=typer.colors.YELLOW)


@app.command()
def check(
    config: Path = typer.Argument(..., help="Mapping config (YAML)"),
    source: Path = typer.Argument(..., help="Sample export or webhook payload"),
    platform: Optional[str] = typer.Option(None, "--platform", help="Preview with this platform's overrides"),
):
    """Check a mapping against the first row/payload of a sample."""
    cfg = _load_config(config)
    raw = _load_source(source, cfg.pipeline)
    resolver = _resolver(cfg, raw, config)
    rows = bind_rows(raw, cfg.options.envelope)
    if not rows:
        raise typer.BadParameter(f"{source} has no rows")
    report = check_mappings(rows[0], resolver, cfg.pipeline, _platform(platform) or Platform.ALL)
    typer.echo(report.model_dump_json(indent=2))
    if not report.is_valid:
        typer.secho("Mapping is incomplete", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def preview(
    config: Path = typer.Argument(..., help="Mapping config (YAML)"),
    source: Path = typer.Argument(..., help="Export file or webhook payload(s)"),
    platform: Optional[str] = typer.Option(None, "--platform", help="Force a platform (default: per row)"),
    existing: Optional[Path] = typer.Option(None, "--existing", exists=True, help="Known dedupe keys, one per line"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Rows to show (default: config preview_limit)"),
):
    """Resolve and classify every row without committing anything."""
    cfg = _load_config(config)
    raw = _load_source(source, cfg.pipeline)
    result = ImportBatchProcessor(cfg.fields, cfg.options).run(
        raw, _resolver(cfg, raw, config), _existing_keys(existing, None), _platform(platform)
    )
    n = cfg.options.preview_limit if limit is None else limit
    for row in result.preview[:n]:
        status = row_status(row)
        color = {"valid": typer.colors.GREEN, "duplicate": typer.colors.YELLOW}.get(status, typer.colors.RED)
        typer.secho(f"#{row.ordinal} [{PLATFORM_LABELS[row.platform]}] {status}", fg=color)
        typer.echo(f"  {json.dumps(row.record, default=str)}")
        for err in row.errors:
            typer.echo(f"  - {err}")
    s = result.summary
    typer.echo(f"total={s.total} valid={s.valid} duplicate={s.duplicate} invalid={s.invalid}")


@app.command("import")
def import_(
    config: Path = typer.Argument(..., help="Mapping config (YAML)"),
    source: Path = typer.Argument(..., help="Export file or webhook payload(s)"),
    store_path: Path = typer.Option(..., "--store", help="Booking store (JSONL)"),
    user: str = typer.Option(..., "--user", help="Owner of the imported bookings"),
    platform: Optional[str] = typer.Option(None, "--platform", help="Force a platform (default: per row)"),
    existing: Optional[Path] = typer.Option(None, "--existing", exists=True, help="Extra known dedupe keys, one per line"),
    errors_csv: Optional[Path] = typer.Option(None, "--errors-csv", help="Write rejected rows here"),
    out_jsonl: Optional[Path] = typer.Option(None, "--out-jsonl", help="Also write committable payloads here"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON import report here"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Classify only, commit nothing"),
):
    """Resolve, validate and commit the valid, non-duplicate rows."""
    cfg = _load_config(config)
    raw = _load_source(source, cfg.pipeline)
    store = JsonlBookingStore(store_path, user, key_field=cfg.options.dedupe_field or _email_field(cfg))
    result = ImportBatchProcessor(cfg.fields, cfg.options).run(
        raw, _resolver(cfg, raw, config), _existing_keys(existing, store), _platform(platform)
    )

    if errors_csv is not None:
        n = write_error_csv(result.preview, errors_csv)
        typer.echo(f"Wrote {n} rejected row(s) to {errors_csv}")
    if out_jsonl is not None:
        write_payloads_jsonl(result.committable, out_jsonl)

    committed = failed = 0
    if not dry_run:
        outcome = commit_batch(result, store)
        if outcome.rejected:
            for err in outcome.errors:
                typer.secho(err, fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        committed, failed = outcome.created, outcome.failed
        for err in outcome.errors:
            typer.secho(err, fg=typer.colors.RED, err=True)

    s = result.summary
    if report is not None:
        rep = ImportReport(
            source=str(source),
            pipeline=cfg.pipeline,
            total=s.total,
            valid=s.valid,
            duplicate=s.duplicate,
            invalid=s.invalid,
            committed=committed,
            failed=failed,
            rows=[
                RowReport(
                    ordinal=r.ordinal,
                    platform=r.platform.value,
                    status=row_status(r),
                    errors=list(r.errors),
                    record=r.record,
                )
                for r in result.preview
            ],
        )
        report.parent.mkdir(parents=True, exist_ok=True)
        report.write_text(rep.model_dump_json(indent=2), encoding="utf-8")

    typer.secho(
        f"Imported {committed} booking(s) "
        f"(total={s.total} valid={s.valid} duplicate={s.duplicate} invalid={s.invalid})",
        fg=typer.colors.GREEN,
    )


def _email_field(cfg: MappingConfig) -> Optional[str]:
    return next((f.target_field for f in cfg.fields if f.is_email), None)


if __name__ == "__main__":
    app()
