from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    bucket: str = ""
    region: str = "us-east-1"
    connect_timeout_sec: int = Field(default=10, ge=1, le=600)
    read_timeout_sec: int = Field(default=60, ge=1, le=3600)


class MigrationConfig(BaseModel):
    # Keys are derived relative to base_dir, so files land at
    # <owners_dir>/<owner_id>/<assets_dir>/... in the bucket.
    base_dir: str = "uploads"
    owners_dir: str = "users"
    assets_dir: str = "avatars"
    # Fetch writes every listed key under this directory.
    download_dir: str = "uploads"
    chunk_size: int = Field(default=64 * 1024, ge=1024, le=64 * 1024 * 1024)

    @property
    def owners_root(self) -> Path:
        return Path(self.base_dir) / self.owners_dir


class DatabaseConfig(BaseModel):
    path: str = "runtime/app.db"
    owner_table: str = "users"
    url_column: str = "avatar_url"
    id_column: str = "id"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = "runtime/avatarsync.log"


class AppConfig(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG_PATH = Path(os.environ.get("AVATARSYNC_CONFIG", "config.yaml"))
DEFAULT_CONFIG_TEMPLATE_PATH = Path("config.yaml.example")

# Non-empty environment values win over the YAML file.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "S3_ENDPOINT": ("storage", "endpoint"),
    "S3_ACCESS_KEY_ID": ("storage", "access_key_id"),
    "S3_SECRET_ACCESS_KEY": ("storage", "secret_access_key"),
    "S3_BUCKET": ("storage", "bucket"),
    "DATABASE_PATH": ("database", "path"),
}


def apply_env_overrides(cfg: AppConfig, environ: Mapping[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    applied: list[str] = []
    for var, (section, field) in ENV_OVERRIDES.items():
        value = (env.get(var) or "").strip()
        if not value:
            continue
        setattr(getattr(cfg, section), field, value)
        applied.append(var)
    return applied


def ensure_runtime_dirs(cfg: AppConfig):
    Path(cfg.logging.file).parent.mkdir(parents=True, exist_ok=True)


def _dump_yaml(cfg: AppConfig) -> str:
    import yaml

    return yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False)


def load_config(path: Path = DEFAULT_CONFIG_PATH, environ: Mapping[str, str] | None = None) -> AppConfig:
    import yaml

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        if DEFAULT_CONFIG_TEMPLATE_PATH.exists():
            try:
                template_text = DEFAULT_CONFIG_TEMPLATE_PATH.read_text(encoding="utf-8")
                data = yaml.safe_load(template_text) or {}
                cfg = AppConfig.model_validate(data)
                path.write_text(template_text, encoding="utf-8")
            except Exception:
                cfg = AppConfig()
                path.write_text(_dump_yaml(cfg), encoding="utf-8")
        else:
            cfg = AppConfig()
            path.write_text(_dump_yaml(cfg), encoding="utf-8")
    else:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        cfg = AppConfig.model_validate(data)

    apply_env_overrides(cfg, environ)
    ensure_runtime_dirs(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path = DEFAULT_CONFIG_PATH):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_dump_yaml(cfg), encoding="utf-8")
