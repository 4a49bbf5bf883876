"""
Host and port range expressions.

Ranges are parsed once into immutable sets that only answer membership.

Host expressions (comma or whitespace separated parts):
    10.0.0.5                 single address (IPv4 or IPv6)
    10.0.0.0/24              CIDR block
    10.0.0.5-10.0.0.20       inclusive address span
    10.0.1-3.1-254           nmap-style per-octet ranges ("*" = 0-255)

Port expressions:
    22-25,445                comma separated ports and inclusive spans

Usage:
    from credstore.ranges import parse_host_range, parse_port_range

    hosts = parse_host_range("192.168.1.0/24")
    hosts.contains("192.168.1.7")   # True
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass

from credstore.errors import ArgumentError

_SPLIT_RE = re.compile(r"[\s,]+")
_OCTET_RE = re.compile(r"^(\d{1,3})(?:-(\d{1,3}))?$")

Address = ipaddress.IPv4Address | ipaddress.IPv6Address


class RangeParseError(ArgumentError):
    pass


@dataclass(frozen=True)
class HostRangeSet:
    """Membership test over an address space."""

    expression: str
    spans: tuple[tuple[int, Address, Address], ...] = ()
    octets: tuple[tuple[tuple[int, int], ...], ...] = ()

    def contains(self, value: str) -> bool:
        try:
            addr = ipaddress.ip_address(value.strip())
        except ValueError:
            return False
        for version, lo, hi in self.spans:
            if addr.version == version and lo <= addr <= hi:
                return True
        if addr.version == 4 and self.octets:
            parts = [int(p) for p in str(addr).split(".")]
            for pattern in self.octets:
                if all(lo <= part <= hi for part, (lo, hi) in zip(parts, pattern)):
                    return True
        return False

    __contains__ = contains


@dataclass(frozen=True)
class PortRangeSet:
    """Membership test over TCP/UDP port numbers."""

    expression: str
    spans: tuple[tuple[int, int], ...] = ()

    def contains(self, value: int | str) -> bool:
        try:
            port = int(value)
        except (TypeError, ValueError):
            return False
        return any(lo <= port <= hi for lo, hi in self.spans)

    __contains__ = contains


def parse_host_range(expression: str | None) -> HostRangeSet:
    """Parse a host range expression. Raises RangeParseError if malformed."""
    if expression is None or not expression.strip():
        raise RangeParseError("Missing required host argument")

    spans: list[tuple[int, Address, Address]] = []
    octets: list[tuple[tuple[int, int], ...]] = []
    for part in _SPLIT_RE.split(expression.strip()):
        if not part:
            continue
        span = _parse_host_part(part)
        if span is not None:
            spans.append(span)
            continue
        pattern = _parse_octet_pattern(part)
        if pattern is None:
            raise RangeParseError(f"Invalid host parameter, {expression}.")
        octets.append(pattern)

    if not spans and not octets:
        raise RangeParseError(f"Invalid host parameter, {expression}.")
    return HostRangeSet(expression=expression, spans=tuple(spans), octets=tuple(octets))


def _parse_host_part(part: str) -> tuple[int, Address, Address] | None:
    if "/" in part:
        try:
            net = ipaddress.ip_network(part, strict=False)
        except ValueError:
            return None
        return net.version, net.network_address, net.broadcast_address

    try:
        addr = ipaddress.ip_address(part)
        return addr.version, addr, addr
    except ValueError:
        pass

    if "-" in part:
        start, _, end = part.partition("-")
        try:
            lo = ipaddress.ip_address(start)
            hi = ipaddress.ip_address(end)
        except ValueError:
            return None
        if lo.version != hi.version or lo > hi:
            return None
        return lo.version, lo, hi
    return None


def _parse_octet_pattern(part: str) -> tuple[tuple[int, int], ...] | None:
    """Parse nmap-style '10.0.1-3.*' into four inclusive (lo, hi) octet bounds."""
    pieces = part.split(".")
    if len(pieces) != 4:
        return None
    bounds: list[tuple[int, int]] = []
    for piece in pieces:
        if piece == "*":
            bounds.append((0, 255))
            continue
        m = _OCTET_RE.match(piece)
        if not m:
            return None
        lo = int(m.group(1))
        hi = int(m.group(2)) if m.group(2) is not None else lo
        if lo > hi or hi > 255:
            return None
        bounds.append((lo, hi))
    return tuple(bounds)


def parse_port_range(expression: str | None) -> PortRangeSet:
    """Parse a port range expression. Raises RangeParseError if malformed."""
    if expression is None or not expression.strip():
        raise RangeParseError("Missing required port argument")

    spans: list[tuple[int, int]] = []
    for part in _SPLIT_RE.split(expression.strip()):
        if not part:
            continue
        start, sep, end = part.partition("-")
        try:
            lo = int(start)
            hi = int(end) if sep else lo
        except ValueError:
            raise RangeParseError(f"Invalid port parameter, {expression}.") from None
        if not (1 <= lo <= hi <= 65535):
            raise RangeParseError(f"Invalid port parameter, {expression}.")
        spans.append((lo, hi))

    if not spans:
        raise RangeParseError(f"Invalid port parameter, {expression}.")
    return PortRangeSet(expression=expression, spans=tuple(spans))
