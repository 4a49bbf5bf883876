"""
Credential Data Access Layer — PostgreSQL repository for stored credentials.

One CredentialRepository wraps one checked-out connection. Queries join every
credential part in a single statement and fold the joined rows back into
Cores, so projection never goes back to the database. Mutations are
audit-logged in the same transaction.

Usage:
    from credstore.dal import open_repository

    with open_repository(snapshot=True) as repo:
        cores = repo.query(CoreQuery(workspace="default"))
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from credstore.adder import AddRequest
from credstore.audit import log_credential_mutation
from credstore.db.connection import REPEATABLE_READ, get_connection
from credstore.errors import CredentialValidationError, RepositoryError
from credstore.models import (
    Core,
    ImportOrigin,
    Login,
    Origin,
    Private,
    PrivateType,
    Public,
    Realm,
    Service,
    ServiceOrigin,
    SessionOrigin,
)
from credstore.query import CoreQuery

logger = logging.getLogger(__name__)

_SELECT_SQL = """
    SELECT c.id AS core_id, c.workspace,
           c.origin_type, c.origin_filename, c.origin_session_id,
           pub.id AS public_id, pub.username,
           prv.id AS private_id, prv.type AS private_type, prv.data AS private_data,
           r.id AS realm_id, r.key AS realm_key, r.value AS realm_value,
           oh.address AS origin_service_address, os.port AS origin_service_port,
           os.proto AS origin_service_proto, os.name AS origin_service_name,
           sh.address AS origin_session_address,
           l.id AS login_id, l.status AS login_status,
           h.address AS host_address, s.port, s.proto, s.name AS service_name
    FROM cred_cores c
    LEFT JOIN cred_publics pub ON pub.id = c.public_id
    LEFT JOIN cred_privates prv ON prv.id = c.private_id
    LEFT JOIN cred_realms r ON r.id = c.realm_id
    LEFT JOIN cred_services os ON os.id = c.origin_service_id
    LEFT JOIN cred_hosts oh ON oh.id = os.host_id
    LEFT JOIN cred_sessions ss ON ss.id = c.origin_session_id
    LEFT JOIN cred_hosts sh ON sh.id = ss.host_id
    LEFT JOIN cred_logins l ON l.core_id = c.id
    LEFT JOIN cred_services s ON s.id = l.service_id
    LEFT JOIN cred_hosts h ON h.id = s.host_id
"""


def compile_query(query: CoreQuery) -> tuple[str, list[Any]]:
    """Compile a CoreQuery into a WHERE clause and its parameters."""
    clauses = ["c.workspace = %s"]
    params: list[Any] = [query.workspace]

    if query.private_types is not None:
        clauses.append("prv.type = ANY(%s)")
        params.append(sorted(str(t) for t in query.private_types))

    if query.service_names:
        clauses.append("s.name = ANY(%s)")
        params.append(sorted(query.service_names))

    spans = [span for r in query.port_ranges for span in r.spans]
    if spans:
        clauses.append("(" + " OR ".join("s.port BETWEEN %s AND %s" for _ in spans) + ")")
        for lo, hi in spans:
            params.extend((lo, hi))

    if query.user_pattern:
        clauses.append("pub.username ~* %s")
        params.append(query.user_pattern)

    if query.password_pattern:
        clauses.append("prv.data ~* %s")
        params.append(query.password_pattern)

    if query.require_logins:
        # Only Cores with Logins can satisfy a host, port or service filter
        clauses.append("l.id IS NOT NULL")

    return " AND ".join(clauses), params


def _origin_from_row(row: dict) -> Origin:
    match row.get("origin_type"):
        case "import":
            return ImportOrigin(filename=row.get("origin_filename") or "")
        case "service" if row.get("origin_service_address"):
            return ServiceOrigin(
                service=Service(
                    address=row["origin_service_address"],
                    port=row["origin_service_port"],
                    proto=row.get("origin_service_proto") or "tcp",
                    name=row.get("origin_service_name"),
                )
            )
        case "session" if row.get("origin_session_address"):
            return SessionOrigin(
                session_id=row["origin_session_id"],
                address=row["origin_session_address"],
            )
        case _:
            return None


def rows_to_cores(rows: Iterable[dict]) -> list[Core]:
    """Fold joined (core, login) rows, ordered by core id, into Cores."""
    cores: list[Core] = []
    current: dict | None = None
    logins: list[Login] = []

    def flush() -> None:
        if current is None:
            return
        cores.append(
            Core(
                id=current["core_id"],
                workspace=current["workspace"],
                public=Public(current["username"]) if current.get("public_id") is not None else None,
                private=Private(PrivateType(current["private_type"]), current["private_data"])
                if current.get("private_id") is not None
                else None,
                realm=Realm(current["realm_key"], current["realm_value"])
                if current.get("realm_id") is not None
                else None,
                origin=_origin_from_row(current),
                logins=tuple(logins),
            )
        )

    for row in rows:
        if current is None or row["core_id"] != current["core_id"]:
            flush()
            current = row
            logins = []
        if row.get("login_id") is not None:
            logins.append(
                Login(
                    id=row["login_id"],
                    service=Service(
                        address=row["host_address"],
                        port=row["port"],
                        proto=row.get("proto") or "tcp",
                        name=row.get("service_name"),
                    ),
                    status=row.get("login_status") or "untried",
                )
            )
    flush()
    return cores


class CredentialRepository:
    """Credential store over one PostgreSQL connection."""

    def __init__(self, conn) -> None:
        self._conn = conn
        self._destroyed: set[int] = set()

    def query(self, query: CoreQuery) -> list[Core]:
        where, params = compile_query(query)
        cur = self._conn.cursor(cursor_factory=RealDictCursor)
        cur.execute(f"{_SELECT_SQL} WHERE {where} ORDER BY c.id, l.id", params)
        return rows_to_cores(cur.fetchall())

    def create(self, request: AddRequest) -> Core:
        """Insert one credential. Raises CredentialValidationError if it exists."""
        cur = self._conn.cursor()
        try:
            public_id = None
            if request.username is not None:
                cur.execute(
                    "INSERT INTO cred_publics (username) VALUES (%s) "
                    "ON CONFLICT (username) DO UPDATE SET username = EXCLUDED.username "
                    "RETURNING id",
                    (request.username,),
                )
                public_id = cur.fetchone()[0]

            cur.execute(
                "INSERT INTO cred_privates (type, data) VALUES (%s, %s) "
                "ON CONFLICT (type, data) DO UPDATE SET data = EXCLUDED.data "
                "RETURNING id",
                (str(request.private_type), request.private_data),
            )
            private_id = cur.fetchone()[0]

            realm_id = None
            if request.realm_value is not None:
                cur.execute(
                    "INSERT INTO cred_realms (key, value) VALUES (%s, %s) "
                    "ON CONFLICT (key, value) DO UPDATE SET value = EXCLUDED.value "
                    "RETURNING id",
                    (request.realm_key, request.realm_value),
                )
                realm_id = cur.fetchone()[0]

            cur.execute(
                """
                SELECT id FROM cred_cores
                WHERE workspace = %s
                  AND public_id IS NOT DISTINCT FROM %s
                  AND private_id IS NOT DISTINCT FROM %s
                  AND realm_id IS NOT DISTINCT FROM %s
                """,
                (request.workspace, public_id, private_id, realm_id),
            )
            if cur.fetchone():
                raise CredentialValidationError(
                    f"Failed to add {request.private_type}: credential already exists "
                    f"in workspace {request.workspace}"
                )

            cur.execute(
                """
                INSERT INTO cred_cores
                    (workspace, public_id, private_id, realm_id, origin_type, origin_filename)
                VALUES (%s, %s, %s, %s, 'import', %s)
                RETURNING id
                """,
                (request.workspace, public_id, private_id, realm_id, request.origin_filename),
            )
            core_id = cur.fetchone()[0]

            logins: tuple[Login, ...] = ()
            if request.login is not None:
                logins = (self._create_login(cur, core_id, request),)
        except (psycopg2.IntegrityError, psycopg2.DataError) as e:
            raise CredentialValidationError(f"Failed to add {request.private_type}: {e}") from e

        log_credential_mutation(
            "create",
            core_id,
            workspace=request.workspace,
            conn=self._conn,
            details={
                "private_type": str(request.private_type),
                "username": request.username,
                "realm": request.realm_value,
            },
        )
        return Core(
            id=core_id,
            workspace=request.workspace,
            public=Public(request.username) if request.username is not None else None,
            private=Private(request.private_type, request.private_data),
            realm=Realm(request.realm_key, request.realm_value)
            if request.realm_value is not None and request.realm_key is not None
            else None,
            origin=ImportOrigin(request.origin_filename),
            logins=logins,
        )

    def _create_login(self, cur, core_id: int, request: AddRequest) -> Login:
        target = request.login
        cur.execute(
            "INSERT INTO cred_hosts (workspace, address) VALUES (%s, %s) "
            "ON CONFLICT (workspace, address) DO UPDATE SET address = EXCLUDED.address "
            "RETURNING id",
            (request.workspace, target.address),
        )
        host_id = cur.fetchone()[0]
        cur.execute(
            "INSERT INTO cred_services (host_id, port, proto) VALUES (%s, %s, %s) "
            "ON CONFLICT (host_id, port, proto) DO UPDATE SET proto = EXCLUDED.proto "
            "RETURNING id, name",
            (host_id, target.port, target.proto),
        )
        service_id, service_name = cur.fetchone()
        cur.execute(
            "INSERT INTO cred_logins (core_id, service_id) VALUES (%s, %s) RETURNING id",
            (core_id, service_id),
        )
        login_id = cur.fetchone()[0]
        return Login(
            id=login_id,
            service=Service(target.address, target.port, target.proto, service_name),
        )

    def destroy(self, core: Core) -> bool:
        """Delete a Core and its Logins. Each Core is destroyed at most once."""
        if core.id in self._destroyed:
            return False
        self._destroyed.add(core.id)
        cur = self._conn.cursor()
        cur.execute(
            "DELETE FROM cred_cores WHERE id = %s AND workspace = %s",
            (core.id, core.workspace),
        )
        deleted: bool = cur.rowcount > 0
        if deleted:
            log_credential_mutation(
                "delete",
                core.id,
                workspace=core.workspace,
                conn=self._conn,
                details={"logins": len(core.logins)},
            )
        else:
            logger.debug("Credential %s already gone", core.id)
        return deleted


@contextmanager
def open_repository(*, snapshot: bool = False) -> Generator[CredentialRepository, None, None]:
    """Check out one connection for the duration of a command.

    Commits when the block succeeds, rolls back otherwise. With ``snapshot``
    every statement in the block sees the same database snapshot.
    """
    try:
        with get_connection(isolation=REPEATABLE_READ if snapshot else None) as conn:
            yield CredentialRepository(conn)
    except psycopg2.Error as e:
        raise RepositoryError(f"Credential store error: {e}") from e
