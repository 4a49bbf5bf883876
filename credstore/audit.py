"""
credstore audit log — structured records of credential mutations.

Event types:
  - creds.create — a credential was added
  - creds.delete — a credential was destroyed

Usage:
    from credstore.audit import log_credential_mutation
    log_credential_mutation("delete", 42, workspace="acme", conn=conn)

Events are written inside the caller's transaction (under a savepoint) so
they commit or roll back with the mutation. Failures are logged as warnings
and never raised.
"""

from __future__ import annotations

import logging
import os

from psycopg2.extras import Json

logger = logging.getLogger(__name__)

_INSERT_SQL = """
    INSERT INTO cred_audit_log
        (event_type, actor, action, workspace, target, details, status)
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    RETURNING id, timestamp
"""


def _default_actor() -> str:
    return os.environ.get("USER", "credstore")


def log_event(
    event_type: str,
    action: str,
    *,
    conn,
    actor: str | None = None,
    workspace: str | None = None,
    target: str | None = None,
    details: dict | None = None,
    status: str = "ok",
) -> dict | None:
    """Log a structured audit event on the caller's connection.

    Returns {"id": int, "timestamp": str} on success, None on failure.
    """
    params = (
        event_type,
        actor or _default_actor(),
        action,
        workspace,
        target,
        Json(details) if details else None,
        status,
    )
    try:
        cur = conn.cursor()
        cur.execute("SAVEPOINT cred_audit")
        try:
            cur.execute(_INSERT_SQL, params)
            row = cur.fetchone()
        except Exception:
            cur.execute("ROLLBACK TO SAVEPOINT cred_audit")
            raise
        cur.execute("RELEASE SAVEPOINT cred_audit")
        return {"id": row[0], "timestamp": row[1].isoformat()}
    except Exception as e:
        logger.warning("Audit log_event failed: %s", e)
        return None


def log_credential_mutation(
    operation: str,
    core_id: int | None,
    *,
    conn,
    workspace: str | None = None,
    details: dict | None = None,
    status: str = "ok",
) -> dict | None:
    """Convenience wrapper for credential mutations.

    operation: create, delete
    """
    target = f"core:{core_id}" if core_id is not None else "core"
    action = f"{operation} credential"
    if core_id is not None:
        action += f" {core_id}"
    return log_event(
        f"creds.{operation}",
        action,
        conn=conn,
        workspace=workspace,
        target=target,
        details=details,
        status=status,
    )
