"""
Root-level shared test fixtures.

Provides an in-memory credential repository that answers CoreQuery the way
the PostgreSQL repository does, so engine, reporter and CLI tests run
without a database.
"""

from __future__ import annotations

import itertools

import pytest

from credstore.adder import AddRequest
from credstore.errors import CredentialValidationError
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
)
from credstore.query import CoreQuery


class FakeRepository:
    """In-memory stand-in for credstore.dal.CredentialRepository."""

    def __init__(self, workspace: str = "default"):
        self.workspace = workspace
        self.cores: dict[int, Core] = {}
        self.queries: list[CoreQuery] = []
        self.destroyed: list[int] = []
        self._core_ids = itertools.count(1)
        self._login_ids = itertools.count(1)

    def add_core(
        self,
        username: str | None = None,
        secret: str | None = None,
        private_type: PrivateType = PrivateType.PASSWORD,
        realm: Realm | None = None,
        origin: Origin = None,
        services: tuple[Service, ...] | list[Service] = (),
        workspace: str | None = None,
    ) -> Core:
        core = Core(
            id=next(self._core_ids),
            workspace=workspace or self.workspace,
            public=Public(username) if username is not None else None,
            private=Private(private_type, secret) if secret is not None else None,
            realm=realm,
            origin=origin,
            logins=tuple(Login(id=next(self._login_ids), service=s) for s in services),
        )
        self.cores[core.id] = core
        return core

    def query(self, query: CoreQuery) -> list[Core]:
        self.queries.append(query)
        return [query.narrow(c) for _, c in sorted(self.cores.items()) if query.matches(c)]

    def create(self, request: AddRequest) -> Core:
        for core in self.cores.values():
            if (
                core.workspace == request.workspace
                and (core.public.username if core.public else None) == request.username
                and core.private == Private(request.private_type, request.private_data)
                and (core.realm.value if core.realm else None) == request.realm_value
            ):
                raise CredentialValidationError("credential already exists")
        services = ()
        if request.login is not None:
            services = (Service(request.login.address, request.login.port, request.login.proto),)
        return self.add_core(
            username=request.username,
            secret=request.private_data,
            private_type=request.private_type,
            realm=Realm(request.realm_key, request.realm_value)
            if request.realm_value is not None
            else None,
            origin=ImportOrigin(request.origin_filename),
            services=services,
            workspace=request.workspace,
        )

    def destroy(self, core: Core) -> bool:
        if core.id not in self.cores:
            return False
        del self.cores[core.id]
        self.destroyed.append(core.id)
        return True


@pytest.fixture
def repo():
    """Empty in-memory repository for the "default" workspace."""
    return FakeRepository()


@pytest.fixture
def scenario_repo():
    """Core A: admin without logins. Core B: guest with an ssh login on 10.0.0.5."""
    r = FakeRepository()
    r.add_core(username="admin", secret="hunter2")
    r.add_core(username="guest", secret="guest", services=[Service("10.0.0.5", 22, "tcp", "ssh")])
    return r


@pytest.fixture
def clean_env(monkeypatch):
    """Remove credstore env vars that leak between tests."""
    for key in [
        "CREDSTORE_DB_HOST",
        "CREDSTORE_DB_PORT",
        "CREDSTORE_DB_NAME",
        "CREDSTORE_DB_USER",
        "CREDSTORE_DB_PASSWORD",
        "CREDSTORE_WORKSPACE",
        "CREDSTORE_ORIGIN_LABEL",
        "CREDSTORE_RHOSTS_FILE",
        "CREDSTORE_LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)
