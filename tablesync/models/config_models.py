from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses.

Built by tablesync.config.loader from the YAML file (or defaults) and passed
explicitly into the archive orchestrator, the HTTP surface and the CLI.
"""

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(frozen=True)
class SyncConfig:
    """Root configuration object."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    schema: str = "public"  # catalog namespace all tables live in
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    temp_root: str | None = None  # None -> system temp dir
    error_cap: int = 200  # max row errors reported per table
    error_log_dir: str | None = None  # None -> JSON Lines error log disabled
    server: ServerConfig = field(default_factory=ServerConfig)
