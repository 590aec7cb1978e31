"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``CHAININDEXER_``, nested via ``__``)
2. YAML config file (``config_path`` or ``CHAININDEXER_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class LogLevel(enum.StrEnum):
    """Root log level for the CLI entry point."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./chain_indexer.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class RPCConfig(BaseSettings):
    """Blockchain node JSON-RPC settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_RPC__",
        case_sensitive=False,
    )

    url: str = "http://127.0.0.1:8332"
    user: str = ""
    password: str = ""
    timeout: float = 30.0


class SyncConfig(BaseSettings):
    """Block synchronization settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_SYNC__",
        case_sensitive=False,
    )

    reorg_window: int = Field(
        default=5,
        ge=1,
        description="Heights closer than this to the resume point are rolled back before re-sync",
    )
    max_in_flight: int = Field(
        default=1,
        ge=1,
        description="Heights processed concurrently; 1 keeps strict height ordering",
    )
    start_height: int = Field(default=0, ge=0)
    poll_interval: float = 30.0  # seconds


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True
    port: int = 9090


class TaskConfig(BaseSettings):
    """Background task settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_TASK__",
        case_sensitive=False,
    )

    enabled: bool = False


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``CHAININDEXER_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAININDEXER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    config_path: str = ""

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
