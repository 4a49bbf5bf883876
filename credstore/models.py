"""
Data models for stored credentials.

All models are plain frozen dataclasses; the repository owns them and the
filtering engine only reads them. Private secrets and origins are tagged
unions: every site that interprets one matches on all of its variants.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from enum import StrEnum


class PrivateType(StrEnum):
    PASSWORD = "password"
    NTLM_HASH = "ntlm_hash"
    SSH_KEY = "ssh_key"
    NONREPLAYABLE_HASH = "nonreplayable_hash"

    @property
    def label(self) -> str:
        return _PRIVATE_LABELS[self]


_PRIVATE_LABELS: dict[PrivateType, str] = {
    PrivateType.PASSWORD: "Password",
    PrivateType.NTLM_HASH: "NTLM hash",
    PrivateType.SSH_KEY: "SSH key",
    PrivateType.NONREPLAYABLE_HASH: "Nonreplayable hash",
}


# ─── Realms ──────────────────────────────────────────────────────────────

ACTIVE_DIRECTORY_DOMAIN = "Active Directory Domain"

REALM_SHORT_NAMES: dict[str, str] = {
    "domain": ACTIVE_DIRECTORY_DOMAIN,
    "db2db": "DB2 Database",
    "sid": "Oracle System Identifier",
    "pgdb": "PostgreSQL Database",
    "rsync": "RSYNC Module",
    "wildcard": "*",
}


# ─── Credential components ───────────────────────────────────────────────


@dataclass(frozen=True)
class Public:
    """The username half of a credential."""

    username: str

    @property
    def is_blank(self) -> bool:
        return not self.username.strip()

    def __str__(self) -> str:
        return self.username


@dataclass(frozen=True)
class Private:
    """The secret half of a credential, tagged by type."""

    type: PrivateType
    data: str

    @property
    def is_blank(self) -> bool:
        return not self.data.strip()

    def __str__(self) -> str:
        match self.type:
            case PrivateType.SSH_KEY:
                return _ssh_key_summary(self.data)
            case PrivateType.PASSWORD | PrivateType.NTLM_HASH | PrivateType.NONREPLAYABLE_HASH:
                return self.data


def _ssh_key_summary(data: str) -> str:
    """Describe a key by its type and MD5 fingerprint instead of dumping it."""
    lines = [line.strip() for line in data.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    first = lines[0]
    if first.startswith("-----BEGIN ") and first.endswith("-----"):
        key_type = first[len("-----BEGIN ") : -len("-----")].strip()
        body = "".join(line for line in lines[1:] if not line.startswith("-----"))
    else:
        # OpenSSH public key line: "<type> <base64> [comment]"
        parts = first.split()
        key_type = parts[0]
        body = parts[1] if len(parts) > 1 else ""
    try:
        raw = base64.b64decode(body, validate=False)
    except ValueError:
        raw = data.encode()
    digest = hashlib.md5(raw).hexdigest()
    fingerprint = ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))
    return f"{key_type} {fingerprint}"


@dataclass(frozen=True)
class Realm:
    """Authentication domain a credential is scoped to."""

    key: str
    value: str

    def __str__(self) -> str:
        return self.value


# ─── Network locations ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Service:
    address: str
    port: int
    proto: str = "tcp"
    name: str | None = None

    @property
    def display(self) -> str:
        if self.name:
            return f"{self.port}/{self.proto} ({self.name})"
        return f"{self.port}/{self.proto}"


@dataclass(frozen=True)
class Login:
    """Evidence that a credential was seen or used against a service."""

    id: int
    service: Service
    status: str = "untried"


# ─── Origins ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ImportOrigin:
    filename: str


@dataclass(frozen=True)
class ServiceOrigin:
    service: Service


@dataclass(frozen=True)
class SessionOrigin:
    session_id: int
    address: str


Origin = ImportOrigin | ServiceOrigin | SessionOrigin | None


def origin_address(origin: Origin) -> str:
    """Host address a credential was obtained from, or '' if not host-bound."""
    match origin:
        case ServiceOrigin(service=service):
            return service.address
        case SessionOrigin(address=address):
            return address
        case ImportOrigin() | None:
            return ""


# ─── Core ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Core:
    """A stored credential: optional public, private and realm plus its logins."""

    id: int
    workspace: str
    public: Public | None = None
    private: Private | None = None
    realm: Realm | None = None
    origin: Origin = None
    logins: tuple[Login, ...] = ()

    @property
    def type_label(self) -> str:
        return self.private.type.label if self.private else ""
