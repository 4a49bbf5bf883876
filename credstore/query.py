"""
Filter & query engine — FilterSpec to repository constraints.

A CoreQuery holds the constraints the repository applies when fetching
candidates. Each constraint only narrows the result: a Core must satisfy
all of them, so turning any filter on can never add Cores.

The same CoreQuery is evaluable in-process (`matches`, `login_matches`) for
repositories that hold records in memory; the PostgreSQL repository compiles
it to SQL instead (see credstore.dal).

Host and origin ranges are not part of the query. They, and the exact-blank
user/password rules, are applied per row by credstore.projection.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from credstore.filters import FilterSpec
from credstore.models import Core, Login, PrivateType
from credstore.ranges import PortRangeSet

if TYPE_CHECKING:
    from credstore.adder import AddRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoreQuery:
    """Workspace-scoped credential constraints.

    ``matches`` evaluates the patterns with Python ``re`` (case-insensitive);
    the PostgreSQL repository compiles them to ``~*``. Both agree on anchors,
    classes, alternation and quantifiers, not on engine-specific syntax.
    """

    workspace: str
    private_types: frozenset[PrivateType] | None = None
    service_names: frozenset[str] = frozenset()
    port_ranges: tuple[PortRangeSet, ...] = ()
    user_pattern: str | None = None
    password_pattern: str | None = None
    require_logins: bool = False

    @property
    def filters_logins(self) -> bool:
        return bool(self.service_names or self.port_ranges)

    def login_matches(self, login: Login) -> bool:
        """Whether a Login satisfies the service-name and port constraints."""
        service = login.service
        if self.service_names and service.name not in self.service_names:
            return False
        if self.port_ranges and not any(r.contains(service.port) for r in self.port_ranges):
            return False
        return True

    def matches(self, core: Core) -> bool:
        """Whether a Core (with all of its Logins) belongs in the candidate set."""
        if core.workspace != self.workspace:
            return False
        if self.private_types is not None:
            if core.private is None or core.private.type not in self.private_types:
                return False
        if self.user_pattern:
            if core.public is None or not re.search(
                self.user_pattern, core.public.username, re.IGNORECASE
            ):
                return False
        if self.password_pattern:
            if core.private is None or not re.search(
                self.password_pattern, core.private.data, re.IGNORECASE
            ):
                return False
        logins = [login for login in core.logins if self.login_matches(login)]
        if (self.filters_logins or self.require_logins) and not logins:
            return False
        return True

    def narrow(self, core: Core) -> Core:
        """Return the Core carrying only the Logins that satisfy this query."""
        if not self.filters_logins:
            return core
        logins = tuple(login for login in core.logins if self.login_matches(login))
        return Core(
            id=core.id,
            workspace=core.workspace,
            public=core.public,
            private=core.private,
            realm=core.realm,
            origin=core.origin,
            logins=logins,
        )


class Repository(Protocol):
    """Credential store capability consumed by the engine, adder and reporter."""

    def query(self, query: CoreQuery) -> list[Core]: ...

    def create(self, request: AddRequest) -> Core: ...

    def destroy(self, core: Core) -> bool: ...


def build_query(spec: FilterSpec, workspace: str) -> CoreQuery:
    """Translate a FilterSpec into repository constraints.

    Empty user/password patterns are not pushed down: an empty pattern means
    "blank only" and is enforced by the projector.
    """
    return CoreQuery(
        workspace=workspace,
        private_types=spec.private_types,
        service_names=spec.service_names,
        port_ranges=spec.port_ranges,
        user_pattern=spec.user_regex or None,
        password_pattern=spec.password_regex or None,
        require_logins=spec.locates_hosts,
    )


def fetch_candidates(repo: Repository, spec: FilterSpec, workspace: str) -> list[Core]:
    """Fetch the ordered, de-duplicated candidate Cores for a listing."""
    query = build_query(spec, workspace)
    logger.debug("Querying credentials: %s", query)
    candidates: list[Core] = []
    seen: set[int] = set()
    for core in repo.query(query):
        if core.id in seen:
            continue
        seen.add(core.id)
        candidates.append(core)
    logger.debug("Fetched %d candidate credential(s)", len(candidates))
    return candidates
