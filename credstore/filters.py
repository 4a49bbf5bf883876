"""
FilterSpec — the parsed constraint set for `creds` listing.

Tokens are consumed in order. Flags that take an argument consume the next
token; anything that is not a flag is a host range. The first malformed token
raises ArgumentError and nothing built so far is used.

Usage:
    from credstore.filters import parse_filter_args

    spec = parse_filter_args(["-s", "ssh,smb", "-u", "^adm", "10.0.0.0/24"])
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from credstore.errors import ArgumentError
from credstore.models import PrivateType
from credstore.ranges import HostRangeSet, PortRangeSet, parse_host_range, parse_port_range

# `-t` argument -> private types it selects. "hash" covers every password hash.
CRED_TYPES: dict[str, frozenset[PrivateType]] = {
    "password": frozenset({PrivateType.PASSWORD}),
    "hash": frozenset({PrivateType.NTLM_HASH, PrivateType.NONREPLAYABLE_HASH}),
    "ntlm": frozenset({PrivateType.NTLM_HASH}),
}

_SERVICE_SPLIT_RE = re.compile(r"\s*,\s*")


@dataclass(frozen=True)
class FilterSpec:
    host_ranges: tuple[HostRangeSet, ...] = ()
    port_ranges: tuple[PortRangeSet, ...] = ()
    service_names: frozenset[str] = frozenset()
    cred_type: str | None = None
    user_regex: str | None = None
    password_regex: str | None = None
    origin_ranges: tuple[HostRangeSet, ...] = ()
    delete: bool = False
    rhosts: bool = False
    output_path: Path | None = None

    @property
    def private_types(self) -> frozenset[PrivateType] | None:
        return CRED_TYPES[self.cred_type] if self.cred_type else None

    @property
    def locates_hosts(self) -> bool:
        """True when a host, port or service constraint requires a Login."""
        return bool(self.host_ranges or self.port_ranges or self.service_names)


def _take(tokens: list[str], flag: str) -> str:
    if not tokens:
        raise ArgumentError(f"Argument required for {flag}")
    return tokens.pop(0)


def _compile(pattern: str, flag: str) -> str:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ArgumentError(f"Invalid regular expression for {flag}: {e}") from None
    return pattern


def parse_filter_args(args: Sequence[str]) -> FilterSpec:
    """Build a FilterSpec from command tokens. Raises ArgumentError."""
    tokens = list(args)
    host_ranges: list[HostRangeSet] = []
    port_ranges: list[PortRangeSet] = []
    origin_ranges: list[HostRangeSet] = []
    services: list[str] = []
    cred_type: str | None = None
    user: str | None = None
    password: str | None = None
    delete = False
    rhosts = False
    output_path: Path | None = None

    while tokens:
        arg = tokens.pop(0)
        if arg == "-o":
            if not tokens or not tokens[0]:
                raise ArgumentError("Invalid output filename")
            output_path = Path(tokens.pop(0)).expanduser().resolve()
        elif arg in ("-p", "--port"):
            port_ranges.append(parse_port_range(_take(tokens, arg)))
        elif arg in ("-t", "--type"):
            cred_type = _take(tokens, arg)
            if cred_type not in CRED_TYPES:
                raise ArgumentError(
                    f"Unrecognized credential type {cred_type} -- "
                    f"must be one of {','.join(CRED_TYPES)}"
                )
        elif arg in ("-s", "--service"):
            services.extend(s for s in _SERVICE_SPLIT_RE.split(_take(tokens, arg).strip()) if s)
        elif arg in ("-P", "--password"):
            password = _compile(_take(tokens, arg), arg)
        elif arg in ("-u", "--user"):
            user = _compile(_take(tokens, arg), arg)
        elif arg == "-d":
            delete = True
        elif arg in ("-R", "--rhosts"):
            rhosts = True
        elif arg in ("-O", "--origins"):
            origin_ranges.append(parse_host_range(_take(tokens, arg)))
        else:
            host_ranges.append(parse_host_range(arg))

    return FilterSpec(
        host_ranges=tuple(host_ranges),
        port_ranges=tuple(port_ranges),
        service_names=frozenset(services),
        cred_type=cred_type,
        user_regex=user,
        password_regex=password,
        origin_ranges=tuple(origin_ranges),
        delete=delete,
        rhosts=rhosts,
        output_path=output_path,
    )
