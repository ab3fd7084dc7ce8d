import asyncio
import socket

import pytest

from tls_chain_monitor import netutils
from tls_chain_monitor.errors import (
    HostnameResolutionError,
    OctetIndexError,
    UnrecognizedIPAddressError,
    UnrecognizedIPRangeError,
)
from tls_chain_monitor.models import HostPattern


def test_cidr_drops_network_and_broadcast():
    hp = netutils.expand_host("10.0.0.0/30")
    assert hp.expanded == ["10.0.0.1", "10.0.0.2"]
    assert hp.range
    assert not hp.resolved


@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("10.0.0.0/31", ["10.0.0.0", "10.0.0.1"]),
        ("10.0.0.7/32", ["10.0.0.7"]),
        ("10.0.0.5/30", ["10.0.0.5", "10.0.0.6"]),
        ("2001:db8::/126", ["2001:db8::1", "2001:db8::2", "2001:db8::3"]),
    ],
)
def test_cidr_hosts(cidr, expected):
    assert netutils.cidr_hosts(cidr) == expected


def test_dash_range():
    hp = netutils.expand_host("192.168.1.10-12")
    assert hp.expanded == ["192.168.1.10", "192.168.1.11", "192.168.1.12"]
    assert hp.range


def test_multi_octet_range():
    assert netutils.expand_ip_range("10.0-1.0.1-2") == [
        "10.0.0.1",
        "10.0.0.2",
        "10.1.0.1",
        "10.1.0.2",
    ]


@pytest.mark.parametrize(
    "pattern, exc, text",
    [
        ("192.168.1.10-5", UnrecognizedIPRangeError, "greater than end value"),
        ("192.168.1.10-10", UnrecognizedIPRangeError, "equal to end value"),
        ("192.168.1.10-256", UnrecognizedIPRangeError, "outside lower (0), upper (255) bounds"),
        ("192.168.1-5", UnrecognizedIPRangeError, "does not contain 4 octets"),
        ("192.168.1.1-2-3", OctetIndexError, "expected one"),
        ("10.0.0.0/33", UnrecognizedIPRangeError, "fails CIDR parsing"),
    ],
)
def test_range_errors(pattern, exc, text):
    with pytest.raises(exc) as info:
        netutils.expand_host(pattern)
    assert text in str(info.value)
    assert isinstance(info.value, UnrecognizedIPRangeError)


def test_single_addresses():
    assert netutils.expand_host("192.0.2.1") == HostPattern(given="192.0.2.1", expanded=["192.0.2.1"])
    assert netutils.expand_host("2001:db8::1").expanded == ["2001:db8::1"]


@pytest.mark.parametrize("pattern", ["300.1.1.1", "1.2.3", ""])
def test_invalid_addresses(pattern):
    with pytest.raises(UnrecognizedIPAddressError):
        netutils.expand_host(pattern)


def test_hostname_resolution(monkeypatch):
    def fake_getaddrinfo(name, port, proto=0):
        assert name == "www.example.test"
        return [
            (socket.AF_INET, socket.SOCK_STREAM, proto, "", ("192.0.2.5", 0)),
            (socket.AF_INET, socket.SOCK_STREAM, proto, "", ("192.0.2.5", 0)),
            (socket.AF_INET6, socket.SOCK_STREAM, proto, "", ("2001:db8::5", 0, 0, 0)),
        ]

    monkeypatch.setattr(netutils.socket, "getaddrinfo", fake_getaddrinfo)
    hp = netutils.expand_host("www.example.test")

    assert hp.resolved
    assert not hp.range
    assert hp.expanded == ["192.0.2.5", "2001:db8::5"]


def test_hostname_resolution_failure(monkeypatch):
    def fake_getaddrinfo(name, port, proto=0):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(netutils.socket, "getaddrinfo", fake_getaddrinfo)
    with pytest.raises(HostnameResolutionError, match="hostname failed to resolve"):
        netutils.expand_host("missing.example.test")


def test_dedupe_keeps_first_occurrence():
    patterns = netutils.expand_hosts(["192.0.2.1", "10.0.0.0/30", "192.0.2.1", "10.0.0.1"])
    deduped = netutils.dedupe_hosts(patterns)

    assert [hp.given for hp in deduped] == ["192.0.2.1", "10.0.0.0/30", "10.0.0.1"]
    # overlapping addresses across patterns are kept
    assert sum(len(hp.expanded) for hp in deduped) == 4


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_check_port_open(listener):
    result = netutils.check_port("localhost", "127.0.0.1", listener, 2)

    assert result.open
    assert result.err is None
    assert result.summary() == f"{listener}: true"


def test_check_port_closed(closed_port):
    result = netutils.check_port("", "127.0.0.1", closed_port, 2)

    assert not result.open
    assert "error connecting to port" in str(result.err)
    assert result.summary() == f"{closed_port}: false"


def test_async_check_port(listener, closed_port):
    async def run():
        return await asyncio.gather(
            netutils.async_check_port("", "127.0.0.1", listener, 2),
            netutils.async_check_port("", "127.0.0.1", closed_port, 2),
        )

    open_result, closed_result = asyncio.run(run())
    assert open_result.open
    assert not closed_result.open
