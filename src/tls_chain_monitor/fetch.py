from __future__ import annotations

import asyncio
import socket
import ssl
from typing import Any

from cryptography import x509

from .errors import CertFetchError, MissingValueError
from .logger import get_logger

log = get_logger(__name__)


def _client_context() -> ssl.SSLContext:
    # Retrieval only; validation happens on the parsed chain afterwards.
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _presented_chain_ders(sslobj: Any) -> list[bytes]:
    """
    DER blobs for every certificate the server presented, leaf first.

    The unverified chain accessor is public from Python 3.13 and only reachable
    through the internal ``_sslobj`` before that. When neither exists, only
    the leaf is available.
    """
    if hasattr(sslobj, "get_unverified_chain"):
        chain = sslobj.get_unverified_chain() or []
        return [c if isinstance(c, bytes) else c.public_bytes(ssl._ssl.ENCODING_DER) for c in chain]

    inner = getattr(sslobj, "_sslobj", None)
    if inner is not None and hasattr(inner, "get_unverified_chain"):
        chain = inner.get_unverified_chain() or []
        return [c.public_bytes(ssl._ssl.ENCODING_DER) for c in chain]

    leaf = sslobj.getpeercert(binary_form=True)
    return [leaf] if leaf else []


def _load_chain(ders: list[bytes]) -> list[x509.Certificate]:
    try:
        return [x509.load_der_x509_certificate(d) for d in ders]
    except ValueError as e:
        raise CertFetchError(detail=f"failed to parse presented certificate: {e}") from e


def _server_name(host_val: str) -> str | None:
    # None disables SNI; IP literals are not valid server names.
    host_val = host_val.strip()
    if not host_val:
        return None
    try:
        socket.inet_pton(socket.AF_INET6 if ":" in host_val else socket.AF_INET, host_val)
    except OSError:
        return host_val
    return None


def get_certs(host_val: str, ip_addr: str, port: int, timeout: float) -> list[x509.Certificate]:
    """
    Connect to ``ip_addr``:``port`` and return the presented certificate chain.

    ``host_val`` is sent as the SNI value when given so the server can pick
    the matching certificate. No certificate verification is performed.
    """
    if not ip_addr:
        raise MissingValueError("IP Address not provided")

    log.debug("connecting to %s:%d (server name %r, timeout %.1fs)", ip_addr, port, host_val, timeout)
    ctx = _client_context()

    try:
        with socket.create_connection((ip_addr, port), timeout=timeout) as sock:
            with ctx.wrap_socket(sock, server_hostname=_server_name(host_val)) as ssock:
                log.debug("negotiated %s with %s:%d", ssock.version(), ip_addr, port)
                ders = _presented_chain_ders(ssock)
    except (OSError, ssl.SSLError) as e:
        raise CertFetchError(f"{ip_addr}:{port}", detail=str(e)) from e

    chain = _load_chain(ders)
    log.debug("retrieved %d certs from %s:%d", len(chain), ip_addr, port)
    return chain


async def async_get_certs(host_val: str, ip_addr: str, port: int, timeout: float) -> list[x509.Certificate]:
    """
    asyncio counterpart of ``get_certs``; the whole handshake is bounded by
    ``timeout``.
    """
    if not ip_addr:
        raise MissingValueError("IP Address not provided")

    ctx = _client_context()
    server_name = _server_name(host_val)
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(
                ip_addr,
                port,
                ssl=ctx,
                server_hostname=server_name or "",
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise CertFetchError(f"{ip_addr}:{port}", detail=f"timeout after {timeout}s") from e
    except (OSError, ssl.SSLError) as e:
        raise CertFetchError(f"{ip_addr}:{port}", detail=str(e)) from e

    sslobj = writer.get_extra_info("ssl_object")
    if sslobj is None:
        writer.close()
        raise CertFetchError(f"{ip_addr}:{port}", detail="no TLS session established")
    try:
        ders = _presented_chain_ders(sslobj)
    except (OSError, ssl.SSLError) as e:
        writer.close()
        raise CertFetchError(f"{ip_addr}:{port}", detail=str(e)) from e

    await _close(writer, ip_addr, port)
    return _load_chain(ders)


async def _close(writer: asyncio.StreamWriter, ip_addr: str, port: int) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (OSError, ssl.SSLError) as e:
        raise CertFetchError(f"{ip_addr}:{port}", detail=f"error closing connection: {e}") from e
