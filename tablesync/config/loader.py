from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from tablesync.models.config_models import (
    DEFAULT_MAX_UPLOAD_BYTES,
    DatabaseConfig,
    ServerConfig,
    SyncConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/tablesync.yml``)
- Validate against the bundled JSON schema (additionalProperties: false)
- Apply defaults; the file itself is optional when no path is given
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/tablesync.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not valid JSON, or data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def config_from_dict(data: dict[str, Any]) -> SyncConfig:
    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    server_raw = data.get("server") or {}
    server = ServerConfig(
        host=server_raw.get("host", "127.0.0.1"),
        port=server_raw.get("port", 8000),
    )
    return SyncConfig(
        database=db,
        schema=data.get("schema", "public"),
        max_upload_bytes=data.get("max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES),
        temp_root=data.get("temp_root"),
        error_cap=data.get("error_cap", 200),
        error_log_dir=data.get("error_log_dir"),
        server=server,
    )


def load_config(path: Path) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return config_from_dict(data)


def resolve_config(path: Path | None = None) -> SyncConfig:
    """Load an explicit config file, else the default one if present, else defaults."""
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return SyncConfig()
