"""
Centralized configuration for credstore.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from credstore.config import get_config
    cfg = get_config()
    print(cfg.workspace)     # "default" or $CREDSTORE_WORKSPACE
    print(cfg.db.dict)       # {"dbname": "credstore", "port": 5432, ...}
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "credstore"
    user: str = "credstore"
    password: str = ""

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class Config:
    """Top-level credstore configuration."""

    # Engagement scope every query and insert is bound to
    workspace: str = "default"

    # Import label recorded as the origin of `creds add` credentials
    origin_label: str = "credstore"

    # Where RHOSTS values are persisted, if anywhere
    rhosts_file: Path | None = None

    log_level: str = "WARNING"

    db: DatabaseConfig = field(default_factory=DatabaseConfig)

    def with_workspace(self, workspace: str) -> Config:
        return replace(self, workspace=workspace)


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("CREDSTORE_DB_HOST", ""),
        port=int(os.environ.get("CREDSTORE_DB_PORT", "5432")),
        name=os.environ.get("CREDSTORE_DB_NAME", "credstore"),
        user=os.environ.get("CREDSTORE_DB_USER", os.environ.get("USER", "credstore")),
        password=os.environ.get("CREDSTORE_DB_PASSWORD", ""),
    )

    rhosts_file = os.environ.get("CREDSTORE_RHOSTS_FILE")

    return Config(
        workspace=os.environ.get("CREDSTORE_WORKSPACE", "default"),
        origin_label=os.environ.get("CREDSTORE_ORIGIN_LABEL", "credstore"),
        rhosts_file=Path(rhosts_file).expanduser() if rhosts_file else None,
        log_level=os.environ.get("CREDSTORE_LOG_LEVEL", "WARNING").upper(),
        db=db,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
