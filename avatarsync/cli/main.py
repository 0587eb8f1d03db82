from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from avatarsync.core.cancel import CancelToken
from avatarsync.core.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from avatarsync.core.logging_setup import make_log_func, setup_logging
from avatarsync.migration.orchestrator import BulkFetchOrchestrator, MigrationOrchestrator
from avatarsync.migration.outcomes import RunSummary
from avatarsync.migration.pointer import PointerSynchronizer
from avatarsync.migration.transfer import TransferEngine
from avatarsync.providers.db import describe_owner_table
from avatarsync.providers.s3_store import S3ObjectStore

app = typer.Typer(add_completion=False)
console = Console()

EXIT_CODES = {"success": 0, "partial": 1, "failed": 2, "cancelled": 3}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mask(value: str) -> str:
    if not value:
        return "(unset)"
    return value[:4] + "****" if len(value) > 8 else "****"


def _run_history_path(cfg: AppConfig) -> Path:
    return Path(cfg.logging.file).parent / "run_history.jsonl"


def _append_run_history(cfg: AppConfig, summary: dict) -> None:
    path = _run_history_path(cfg)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(summary, ensure_ascii=False))
        f.write("\n")


def _fail(error: str):
    print(json.dumps({"ok": False, "error": error}, ensure_ascii=False, indent=2))
    raise typer.Exit(2)


def _load_or_exit(config: Path) -> AppConfig:
    try:
        return load_config(config)
    except Exception as e:
        _fail(f"load_config_failed: {e}")


def _build_store(cfg: AppConfig):
    return S3ObjectStore.from_config(cfg.storage)


def _store_or_exit(cfg: AppConfig):
    try:
        return _build_store(cfg)
    except Exception as e:
        _fail(f"storage_client_failed: {e}")


def _require_storage(cfg: AppConfig):
    if not cfg.storage.bucket:
        _fail("storage_bucket_missing")


def _finish_run(cfg: AppConfig, summary: RunSummary, verbose: bool):
    _append_run_history(cfg, summary.to_dict(include_outcomes=False))
    print(json.dumps(summary.to_dict(include_outcomes=verbose), ensure_ascii=False, indent=2))
    code = EXIT_CODES.get(summary.status, 2)
    if code:
        raise typer.Exit(code)


@app.command("config-show")
def config_show(config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config.yaml.")):
    """Show the effective config (secrets masked)."""
    cfg = load_config(config)
    data = cfg.model_dump()
    data["storage"]["access_key_id"] = _mask(cfg.storage.access_key_id)
    data["storage"]["secret_access_key"] = _mask(cfg.storage.secret_access_key)
    print(json.dumps(data, ensure_ascii=False, indent=2))


@app.command("config-validate")
def config_validate(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config.yaml."),
    strict: bool = typer.Option(False, "--strict", help="Return non-zero when validation fails."),
):
    """Validate config and local prerequisites for migrate/fetch."""
    out: dict[str, Any] = {
        "ok": True,
        "checked_at": _now_iso(),
        "config_path": str(config),
        "checks": {
            "config_exists": config.exists(),
            "bucket_configured": False,
            "endpoint_configured": False,
            "credentials_configured": False,
            "owners_root_exists": False,
            "database_exists": False,
            "owner_table_exists": False,
            "url_column_exists": False,
            "id_column_exists": False,
        },
        "warnings": [],
        "errors": [],
    }

    try:
        cfg = load_config(config)
    except Exception as e:
        out["ok"] = False
        out["errors"].append(f"load_config_failed: {e}")
        print(json.dumps(out, ensure_ascii=False, indent=2))
        if strict:
            raise typer.Exit(2)
        return

    checks = out["checks"]
    checks["bucket_configured"] = bool(cfg.storage.bucket)
    if not checks["bucket_configured"]:
        out["errors"].append("storage_bucket_missing")

    checks["endpoint_configured"] = bool(cfg.storage.endpoint)
    if not checks["endpoint_configured"]:
        out["warnings"].append("storage_endpoint_unset: using AWS default endpoint")

    checks["credentials_configured"] = bool(cfg.storage.access_key_id and cfg.storage.secret_access_key)
    if not checks["credentials_configured"]:
        out["warnings"].append("storage_credentials_unset: falling back to the default AWS credential chain")

    owners_root = cfg.migration.owners_root
    checks["owners_root_exists"] = owners_root.is_dir()
    if not checks["owners_root_exists"]:
        out["warnings"].append(f"owners_root_missing: {owners_root} (migrate will fail)")

    try:
        table = describe_owner_table(
            cfg.database.path,
            cfg.database.owner_table,
            cfg.database.url_column,
            cfg.database.id_column,
        )
    except Exception as e:
        out["errors"].append(f"owner_table_probe_failed: {e}")
    else:
        checks["database_exists"] = table["database_exists"]
        checks["owner_table_exists"] = table["table_exists"]
        checks["url_column_exists"] = table["url_column_exists"]
        checks["id_column_exists"] = table["id_column_exists"]
        if not table["database_exists"]:
            out["errors"].append(f"database_missing: {cfg.database.path}")
        elif not table["table_exists"]:
            out["errors"].append(f"owner_table_missing: {cfg.database.owner_table}")
        else:
            if not table["url_column_exists"]:
                out["errors"].append(f"url_column_missing: {cfg.database.url_column}")
            if not table["id_column_exists"]:
                out["errors"].append(f"id_column_missing: {cfg.database.id_column}")

    out["ok"] = len(out["errors"]) == 0
    print(json.dumps(out, ensure_ascii=False, indent=2))
    if strict and not out["ok"]:
        raise typer.Exit(2)


@app.command()
def status(config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config.yaml.")):
    """Show the effective settings for migrate/fetch."""
    cfg = load_config(config)
    owners_root = cfg.migration.owners_root

    table = Table(title="avatarsync status")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("config", str(config))
    table.add_row("endpoint", cfg.storage.endpoint or "(aws default)")
    table.add_row("bucket", cfg.storage.bucket or "(unset)")
    table.add_row("region", cfg.storage.region)
    table.add_row("access_key_id", _mask(cfg.storage.access_key_id))
    table.add_row("base_dir", cfg.migration.base_dir)
    table.add_row("owners_root", str(owners_root))
    table.add_row("owners_root_exists", "yes" if owners_root.is_dir() else "no")
    table.add_row("assets_dir", cfg.migration.assets_dir)
    table.add_row("download_dir", cfg.migration.download_dir)
    table.add_row("db", cfg.database.path)
    table.add_row(
        "pointer",
        f"{cfg.database.owner_table}.{cfg.database.url_column} by {cfg.database.id_column}",
    )
    table.add_row("log", cfg.logging.file)
    console.print(table)


@app.command()
def migrate(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config.yaml."),
    timeout: Optional[int] = typer.Option(None, "--timeout", min=1, help="Cancel the run after this many seconds."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Include per-file outcomes in the output."),
):
    """Upload every owner's avatars and update their avatar URL."""
    cfg = _load_or_exit(config)
    setup_logging(cfg.logging.level, cfg.logging.file)
    _require_storage(cfg)

    store = _store_or_exit(cfg)
    try:
        pointer = PointerSynchronizer(
            cfg.database.path,
            table=cfg.database.owner_table,
            url_column=cfg.database.url_column,
            id_column=cfg.database.id_column,
        )
    except ValueError as e:
        _fail(f"pointer_config_invalid: {e}")
    orchestrator = MigrationOrchestrator(
        base_dir=cfg.migration.base_dir,
        bucket=cfg.storage.bucket,
        engine=TransferEngine(store, chunk_size=cfg.migration.chunk_size),
        pointer=pointer,
        owners_dir=cfg.migration.owners_dir,
        assets_dir=cfg.migration.assets_dir,
        log_func=make_log_func(),
    )
    summary = orchestrator.run(cancel=CancelToken(timeout_sec=timeout))
    _finish_run(cfg, summary, verbose)


@app.command()
def fetch(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config.yaml."),
    timeout: Optional[int] = typer.Option(None, "--timeout", min=1, help="Cancel the run after this many seconds."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Include per-object outcomes in the output."),
):
    """Download every object in the bucket into the download directory."""
    cfg = _load_or_exit(config)
    setup_logging(cfg.logging.level, cfg.logging.file)
    _require_storage(cfg)

    store = _store_or_exit(cfg)
    orchestrator = BulkFetchOrchestrator(
        download_dir=cfg.migration.download_dir,
        bucket=cfg.storage.bucket,
        engine=TransferEngine(store, chunk_size=cfg.migration.chunk_size),
        store=store,
        owners_dir=cfg.migration.owners_dir,
        log_func=make_log_func(),
    )
    summary = orchestrator.run(cancel=CancelToken(timeout_sec=timeout))
    _finish_run(cfg, summary, verbose)


def main():
    app()


if __name__ == "__main__":
    main()
