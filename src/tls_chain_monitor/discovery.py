"""
Concurrent discovery of certificate chains across expanded hosts and ports.

Ports are checked first; every open port is handed to a chain fetcher. Host,
port and chain work are each capped by their own semaphore. A watchdog
cancels the whole run when no port or chain result has been seen for
``app_timeout`` seconds; whatever was collected up to then is kept.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from cryptography import x509

from .errors import CertCheckError
from .fetch import async_get_certs
from .logger import get_logger
from .models import DiscoveredChain, HostPattern, PortCheckResult
from .netutils import async_check_port

log = get_logger(__name__)

FetchFunc = Callable[[str, str, int, float], Awaitable[list[x509.Certificate]]]
PortCheckFunc = Callable[[str, str, int, float], Awaitable[PortCheckResult]]
PortResultCallback = Callable[[PortCheckResult], None]

DEFAULT_RATE_LIMIT = 100

_DONE = None


@dataclass
class DiscoveryResult:
    chains: list[DiscoveredChain] = field(default_factory=list)
    port_results: dict[str, list[PortCheckResult]] = field(default_factory=dict)
    timed_out: bool = False
    elapsed: float = 0.0

    def open_ports(self) -> list[PortCheckResult]:
        return [r for results in self.port_results.values() for r in results if r.open]

    def hosts_with_open_ports(self) -> list[str]:
        return [ip for ip, results in self.port_results.items() if any(r.open for r in results)]


class DiscoveryPipeline:
    """
    One discovery run. Build it, then ``await pipeline.run()``.
    """

    def __init__(
        self,
        hosts: list[HostPattern],
        ports: list[int],
        *,
        port_timeout: float,
        cert_timeout: float,
        app_timeout: float,
        host_limit: int = DEFAULT_RATE_LIMIT,
        port_limit: int = DEFAULT_RATE_LIMIT,
        cert_limit: int = DEFAULT_RATE_LIMIT,
        fetch: FetchFunc = async_get_certs,
        check_port: PortCheckFunc = async_check_port,
        on_port_result: PortResultCallback | None = None,
    ) -> None:
        self.hosts = hosts
        self.ports = ports
        self.port_timeout = port_timeout
        self.cert_timeout = cert_timeout
        self.app_timeout = app_timeout
        self.host_limit = host_limit
        self.port_limit = port_limit
        self.cert_limit = cert_limit
        self.fetch = fetch
        self.check_port = check_port
        self.on_port_result = on_port_result

        self.result = DiscoveryResult()

    async def run(self) -> DiscoveryResult:
        # Queues and semaphores bind to the running loop.
        self._host_slots = asyncio.Semaphore(self.host_limit)
        self._port_slots = asyncio.Semaphore(self.port_limit)
        self._cert_slots = asyncio.Semaphore(self.cert_limit)
        self._port_results: asyncio.Queue[PortCheckResult | None] = asyncio.Queue()
        self._cert_results: asyncio.Queue[DiscoveredChain | None] = asyncio.Queue()
        self._heartbeat: asyncio.Queue[None] = asyncio.Queue()

        start = time.monotonic()
        pipeline = asyncio.ensure_future(self._pipeline())
        watchdog = asyncio.ensure_future(self._watchdog(pipeline))
        try:
            await pipeline
        except asyncio.CancelledError:
            if not self.result.timed_out:
                raise
        finally:
            watchdog.cancel()
            await asyncio.gather(watchdog, return_exceptions=True)
            self.result.elapsed = time.monotonic() - start

        return self.result

    async def _watchdog(self, target: asyncio.Future) -> None:
        while True:
            try:
                await asyncio.wait_for(self._heartbeat.get(), timeout=self.app_timeout)
            except asyncio.TimeoutError:
                log.warning("inactivity timer (%.1fs) triggered, shutting down", self.app_timeout)
                self.result.timed_out = True
                target.cancel()
                return

    def _beat(self) -> None:
        self._heartbeat.put_nowait(None)

    async def _pipeline(self) -> None:
        tasks = [
            asyncio.ensure_future(self._port_scanner()),
            asyncio.ensure_future(self._port_collector()),
            asyncio.ensure_future(self._cert_collector()),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _port_scanner(self) -> None:
        targets = [(hp, ip) for hp in self.hosts for ip in hp.expanded]
        log.debug("port scan of %d hosts using ports %s", len(targets), self.ports)
        host_tasks: list[asyncio.Future] = []
        try:
            for hp, ip in targets:
                # reserve before spawning so at most host_limit hosts are live
                await self._host_slots.acquire()
                task = asyncio.ensure_future(self._scan_host(hp, ip))
                host_tasks.append(task)
            await asyncio.gather(*host_tasks)
        finally:
            for t in host_tasks:
                t.cancel()
            self._port_results.put_nowait(_DONE)

    async def _scan_host(self, hp: HostPattern, ip: str) -> None:
        try:
            await asyncio.gather(*(self._scan_port(hp, ip, port) for port in self.ports))
        finally:
            self._host_slots.release()

    async def _scan_port(self, hp: HostPattern, ip: str, port: int) -> None:
        name = hp.given if hp.resolved else ""
        async with self._port_slots:
            result = await self.check_port(name, ip, port, self.port_timeout)
        if result.err is not None:
            log.debug("port check %s:%d: %s", ip, port, result.err)
        await self._port_results.put(result)

    async def _port_collector(self) -> None:
        cert_tasks: list[asyncio.Future] = []
        try:
            while True:
                result = await self._port_results.get()
                if result is _DONE:
                    break

                self._beat()
                self.result.port_results.setdefault(result.ip_address, []).append(result)
                if self.on_port_result is not None:
                    self.on_port_result(result)
                if result.open:
                    await self._cert_slots.acquire()
                    cert_tasks.append(asyncio.ensure_future(self._fetch_chain(result)))

            await asyncio.gather(*cert_tasks)
        finally:
            for t in cert_tasks:
                t.cancel()
            self._cert_results.put_nowait(_DONE)

    async def _fetch_chain(self, port_result: PortCheckResult) -> None:
        host_val = port_result.host or port_result.ip_address
        try:
            chain = await self.fetch(host_val, port_result.ip_address, port_result.port, self.cert_timeout)
        except (CertCheckError, OSError) as e:
            log.debug(
                "error retrieving chain from %s:%d: %s",
                port_result.ip_address,
                port_result.port,
                e,
            )
            return
        finally:
            self._cert_slots.release()

        await self._cert_results.put(
            DiscoveredChain(
                name=port_result.host,
                ip_address=port_result.ip_address,
                port=port_result.port,
                certs=chain,
            )
        )

    async def _cert_collector(self) -> None:
        # sole writer of result.chains
        while True:
            discovered = await self._cert_results.get()
            if discovered is _DONE:
                return
            self._beat()
            self.result.chains.append(discovered)


async def discover(hosts: list[HostPattern], ports: list[int], **kwargs) -> DiscoveryResult:
    return await DiscoveryPipeline(hosts, ports, **kwargs).run()


def run_discovery(hosts: list[HostPattern], ports: list[int], **kwargs) -> DiscoveryResult:
    return asyncio.run(discover(hosts, ports, **kwargs))
