"""
Schema migrations for the credential store.

Migrations are the ``NNN_name.sql`` files shipped in ``credstore/migrations``.
Each applied file is recorded in ``cred_schema_migrations`` with its SHA-256
checksum, so an edited file shows up as DRIFT instead of being re-run.

Usage:
    credstore migrate                 # status
    credstore migrate apply           # every pending file, in version order
    credstore migrate apply 002 --dry-run
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from psycopg2.extras import RealDictCursor

from credstore.db.connection import get_connection
from credstore.errors import RepositoryError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"

# 001_init.sql, 002b_sessions.sql
_FILENAME_RE = re.compile(r"^(\d+[a-z]?)_.+\.sql$")

_BOOKKEEPING_SQL = """
    CREATE TABLE IF NOT EXISTS cred_schema_migrations (
        version     TEXT PRIMARY KEY,
        filename    TEXT NOT NULL,
        checksum    TEXT NOT NULL,
        applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""


class MigrationError(RepositoryError):
    """A migration file could not be applied."""


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


@dataclass(frozen=True)
class MigrationStatus:
    migration: Migration
    state: str  # applied, pending or DRIFT
    applied_at: datetime | None = None


def discover(migrations_dir: Path | None = None) -> list[Migration]:
    """Migration files in version order; other files are ignored."""
    found = []
    for path in sorted((migrations_dir or MIGRATIONS_DIR).glob("*.sql")):
        m = _FILENAME_RE.match(path.name)
        if m:
            found.append(Migration(m.group(1), path))
    return found


def _applied(conn) -> dict[str, dict]:
    cur = conn.cursor(cursor_factory=RealDictCursor)
    cur.execute(_BOOKKEEPING_SQL)
    cur.execute("SELECT version, checksum, applied_at FROM cred_schema_migrations")
    return {r["version"]: dict(r) for r in cur.fetchall()}


def status(migrations_dir: Path | None = None) -> list[MigrationStatus]:
    migrations = discover(migrations_dir)
    with get_connection() as conn:
        applied = _applied(conn)

    result = []
    for migration in migrations:
        record = applied.get(migration.version)
        if record is None:
            result.append(MigrationStatus(migration, "pending"))
        elif record["checksum"] != migration.checksum:
            result.append(MigrationStatus(migration, "DRIFT", record["applied_at"]))
        else:
            result.append(MigrationStatus(migration, "applied", record["applied_at"]))
    return result


def apply(
    version: str | None = None,
    dry_run: bool = False,
    migrations_dir: Path | None = None,
    out: Callable[[str], None] = print,
) -> list[str]:
    """Apply pending migrations (or just ``version``). Returns the versions applied.

    Each file runs in its own transaction; the first failure stops the run.
    """
    migrations = discover(migrations_dir)
    if version is not None and version not in {m.version for m in migrations}:
        raise MigrationError(f"No migration with version {version}")

    with get_connection() as conn:
        applied = _applied(conn)
        conn.commit()

        pending = [
            m
            for m in migrations
            if m.version not in applied and (version is None or m.version == version)
        ]
        if not pending:
            out("Nothing to apply.")
            return []

        done: list[str] = []
        for migration in pending:
            if dry_run:
                out(f"[dry-run] Would apply {migration.filename} (version {migration.version})")
                done.append(migration.version)
                continue

            cur = conn.cursor()
            try:
                cur.execute(migration.path.read_text())
                cur.execute(
                    "INSERT INTO cred_schema_migrations (version, filename, checksum) "
                    "VALUES (%s, %s, %s)",
                    (migration.version, migration.filename, migration.checksum),
                )
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error("Migration %s failed: %s", migration.filename, e)
                raise MigrationError(f"Migration {migration.filename} failed: {e}") from e
            logger.info("Applied migration %s", migration.filename)
            out(f"Applied {migration.filename} (version {migration.version})")
            done.append(migration.version)

        return done
