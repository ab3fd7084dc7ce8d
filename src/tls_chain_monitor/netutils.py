from __future__ import annotations

import asyncio
import ipaddress
import itertools
import socket

from .errors import (
    HostExpansionError,
    HostnameResolutionError,
    OctetIndexError,
    UnrecognizedIPAddressError,
    UnrecognizedIPRangeError,
)
from .logger import get_logger
from .models import HostPattern, PortCheckResult

log = get_logger(__name__)

_RANGE_CHARS = set("0123456789.-")


def cidr_hosts(cidr: str) -> list[str]:
    """
    Host addresses of ``cidr``.

    The network and broadcast addresses are dropped for networks with more
    than two addresses; a /31 keeps both and a /32 yields the one address.
    """
    network = ipaddress.ip_network(cidr, strict=False)
    return [str(ip) for ip in network.hosts()]


def _is_range_candidate(value: str) -> bool:
    return "." in value and "-" in value and set(value) <= _RANGE_CHARS


def _octet_value(octet: str, part: str, pattern: str) -> int:
    if not part.isdigit():
        raise UnrecognizedIPRangeError(
            detail=f'octet "{octet}" of IP pattern "{pattern}" invalid; non-numeric values present'
        )
    num = int(part)
    if not 0 <= num <= 255:
        raise UnrecognizedIPRangeError(
            detail=f'octet "{octet}" of IP pattern "{pattern}" outside lower (0), upper (255) bounds'
        )
    return num


def _expand_octet(octet: str, idx: int, total: int, pattern: str) -> list[int]:
    halves = octet.split("-")
    if len(halves) == 1:
        return [_octet_value(octet, halves[0], pattern)]

    if len(halves) == 2:
        start = _octet_value(octet, halves[0], pattern)
        end = _octet_value(octet, halves[1], pattern)
        if start > end:
            raise UnrecognizedIPRangeError(
                detail=f'"{octet}" is invalid octet range; given start value {start} greater than end value {end}'
            )
        if start == end:
            raise UnrecognizedIPRangeError(
                detail=f'"{octet}" is invalid octet range; given start value {start} equal to end value {end}'
            )
        return list(range(start, end + 1))

    raise OctetIndexError(
        detail=f'{octet.count("-")} dash separators in octet "{octet}" ({idx + 1} of {total}); expected one'
    )


def expand_ip_range(pattern: str) -> list[str]:
    """
    Expand a dash-partial IPv4 range such as ``192.168.1.10-12`` or
    ``10.0-1.0.1-254`` into individual addresses.
    """
    octets = pattern.split(".")
    if len(octets) != 4:
        raise UnrecognizedIPRangeError(
            detail=f'"{pattern}" ({len(octets)} octets) not IPv4 Address; does not contain 4 octets'
        )

    values = [_expand_octet(o, i, len(octets), pattern) for i, o in enumerate(octets)]
    return [".".join(str(n) for n in combo) for combo in itertools.product(*values)]


def resolve_host(name: str) -> list[str]:
    try:
        infos = socket.getaddrinfo(name, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        raise HostnameResolutionError(
            f'"{name}" invalid', detail=f"{HostExpansionError.default_message}: {e}"
        ) from e

    addrs: list[str] = []
    for info in infos:
        addr = info[4][0]
        if addr not in addrs:
            addrs.append(addr)
    return addrs


def expand_host(pattern: str) -> HostPattern:
    """
    Expand one host pattern: a CIDR network, a single IP address, a
    dash-partial IPv4 range or a resolvable hostname.
    """
    value = pattern.strip()
    if not value:
        raise UnrecognizedIPAddressError(detail="empty host pattern")

    if "/" in value:
        try:
            hosts = cidr_hosts(value)
        except ValueError as e:
            raise UnrecognizedIPRangeError(
                detail=f'"{value}" contains slash, but fails CIDR parsing'
            ) from e
        return HostPattern(given=pattern, expanded=hosts, range=True)

    try:
        ipaddress.ip_address(value)
    except ValueError:
        pass
    else:
        return HostPattern(given=pattern, expanded=[value])

    if _is_range_candidate(value):
        return HostPattern(given=pattern, expanded=expand_ip_range(value), range=True)

    if set(value) <= _RANGE_CHARS:
        # digits and dots only, but not a valid address
        raise UnrecognizedIPAddressError(detail=f'"{value}" is not a valid IP Address')

    addrs = resolve_host(value)
    log.debug("resolved %s to %s", value, ", ".join(addrs))
    return HostPattern(given=pattern, expanded=addrs, resolved=True)


def expand_hosts(patterns: list[str]) -> list[HostPattern]:
    return [expand_host(p) for p in patterns]


def dedupe_hosts(patterns: list[HostPattern]) -> list[HostPattern]:
    """
    Drop repeated host patterns by their given value, keeping first
    occurrences. Expanded addresses are left alone.
    """
    seen: set[str] = set()
    out: list[HostPattern] = []
    for hp in patterns:
        if hp.given in seen:
            continue
        seen.add(hp.given)
        out.append(hp)
    return out


def _disable_keepalive(sock: socket.socket) -> None:
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 0)


def check_port(host: str, ip_address: str, port: int, timeout: float) -> PortCheckResult:
    """
    TCP connect to ``ip_address``:``port``; the port counts as open when the
    connection succeeds.
    """
    try:
        sock = socket.create_connection((ip_address, port), timeout=timeout)
    except OSError as e:
        return PortCheckResult(host, ip_address, port, False, OSError(f"error connecting to port: {e}"))

    err: Exception | None = None
    try:
        _disable_keepalive(sock)
    except OSError as e:
        err = OSError(f"error disabling keep-alive: {e}")
    try:
        sock.close()
    except OSError as e:
        err = err or OSError(f"error closing connection: {e}")
    return PortCheckResult(host, ip_address, port, True, err)


async def async_check_port(host: str, ip_address: str, port: int, timeout: float) -> PortCheckResult:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(ip_address, port), timeout=timeout)
    except asyncio.TimeoutError:
        return PortCheckResult(
            host, ip_address, port, False, OSError(f"error connecting to port: timeout after {timeout}s")
        )
    except OSError as e:
        return PortCheckResult(host, ip_address, port, False, OSError(f"error connecting to port: {e}"))

    err: Exception | None = None
    sock = writer.get_extra_info("socket")
    if sock is not None:
        try:
            _disable_keepalive(sock)
        except OSError as e:
            err = OSError(f"error disabling keep-alive: {e}")

    writer.close()
    try:
        await writer.wait_closed()
    except OSError as e:
        err = err or OSError(f"error closing connection: {e}")
    return PortCheckResult(host, ip_address, port, True, err)
