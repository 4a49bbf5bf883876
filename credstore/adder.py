"""
`creds add` — key:value tokens to a validated credential creation request.

Parsing happens in two passes: tokens are split into ordered (key, value)
pairs on their first colon, then the pairs are validated together. Nothing is
created unless the whole request is valid.

Usage:
    from credstore.adder import add_credential, parse_add_args

    request = parse_add_args(["user:admin", "password:notpassword"], workspace="default")
    core = add_credential(repo, request)
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from credstore.errors import ArgumentError, ArtifactIOError
from credstore.models import ACTIVE_DIRECTORY_DOMAIN, REALM_SHORT_NAMES, Core, PrivateType

if TYPE_CHECKING:
    from credstore.query import Repository

logger = logging.getLogger(__name__)

ADD_KEYS: tuple[str, ...] = (
    "user",
    "password",
    "realm",
    "realm-type",
    "ntlm",
    "ssh-key",
    "hash",
    "host",
    "port",
)

PRIVATE_KEYS: dict[str, PrivateType] = {
    "password": PrivateType.PASSWORD,
    "ntlm": PrivateType.NTLM_HASH,
    "ssh-key": PrivateType.SSH_KEY,
    "hash": PrivateType.NONREPLAYABLE_HASH,
}

ADD_KEY_HELP: dict[str, str] = {
    "user": "Public, usually a username",
    "password": "Private, private_type Password.",
    "ntlm": "Private, private_type NTLM Hash.",
    "ssh-key": "Private, private_type SSH key, must be a file path.",
    "hash": "Private, private_type Nonreplayable hash",
    "realm": "Realm, ",
    "realm-type": f"Realm, realm_type ({' '.join(REALM_SHORT_NAMES)}), defaults to domain.",
    "host": "Login, address of the service the credential works on (needs port)",
    "port": "Login, TCP port of that service (needs host)",
}


class LoginTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    port: int = Field(ge=1, le=65535)
    proto: str = "tcp"

    @field_validator("address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return str(ipaddress.ip_address(v.strip()))


class AddRequest(BaseModel):
    """A validated request to create one credential."""

    model_config = ConfigDict(frozen=True)

    workspace: str
    username: str | None = None
    realm_key: str | None = None
    realm_value: str | None = None
    private_type: PrivateType
    private_data: str
    origin_filename: str
    login: LoginTarget | None = None


def tokenize_add_args(args: Sequence[str]) -> list[tuple[str, str]]:
    """Split tokens into (key, value) pairs on the first colon only."""
    pairs: list[tuple[str, str]] = []
    for token in args:
        key, sep, value = token.partition(":")
        if not sep:
            raise ArgumentError(f"Expected key:value, got {token!r}")
        pairs.append((key, value))
    return pairs


def _read_key_file(path: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ArtifactIOError(f"Failed to add ssh key: {e}") from e


def parse_add_args(
    args: Sequence[str],
    *,
    workspace: str,
    origin_label: str = "credstore",
) -> AddRequest:
    """Validate `creds add` tokens into an AddRequest. Raises ArgumentError."""
    params: dict[str, str] = {}
    for key, value in tokenize_add_args(args):
        if key not in ADD_KEYS:
            raise ArgumentError(
                f"Unknown key: {key!r}. Valid keys are: {', '.join(repr(k) for k in ADD_KEYS)}"
            )
        if key in params:
            raise ArgumentError(f"Key given more than once: {key!r}")
        params[key] = value

    private_keys = [k for k in params if k in PRIVATE_KEYS]
    if len(private_keys) > 1:
        raise ArgumentError(
            "You can only specify a single Private type. "
            f"Private types given: {', '.join(private_keys)}"
        )
    if not private_keys:
        raise ArgumentError(f"A Private is required, one of: {', '.join(PRIVATE_KEYS)}")

    realm_key: str | None = None
    if "realm" in params:
        if "realm-type" in params:
            realm_type = params["realm-type"]
            if realm_type not in REALM_SHORT_NAMES:
                valid = ", ".join(f"'{n}'" for n in REALM_SHORT_NAMES)
                raise ArgumentError(f"Invalid realm type: {realm_type}. Valid Values: {valid}")
            realm_key = REALM_SHORT_NAMES[realm_type]
        else:
            realm_key = ACTIVE_DIRECTORY_DOMAIN
    elif "realm-type" in params:
        raise ArgumentError("realm-type given without realm")

    if ("host" in params) != ("port" in params):
        raise ArgumentError("host and port must be given together")

    private_key = private_keys[0]
    private_type = PRIVATE_KEYS[private_key]
    match private_type:
        case PrivateType.SSH_KEY:
            private_data = _read_key_file(params[private_key])
        case PrivateType.PASSWORD | PrivateType.NTLM_HASH | PrivateType.NONREPLAYABLE_HASH:
            private_data = params[private_key]

    try:
        login = (
            LoginTarget(address=params["host"], port=params["port"]) if "host" in params else None
        )
        return AddRequest(
            workspace=workspace,
            username=params.get("user"),
            realm_key=realm_key,
            realm_value=params.get("realm"),
            private_type=private_type,
            private_data=private_data,
            origin_filename=origin_label,
            login=login,
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
        )
        raise ArgumentError(f"Invalid credential: {problems}") from None


def add_credential(repo: Repository, request: AddRequest) -> Core:
    """Submit a validated request. Nothing is created if the repository rejects it."""
    core = repo.create(request)
    logger.info(
        "Added %s credential %s to workspace %s",
        request.private_type,
        core.id,
        request.workspace,
    )
    return core
