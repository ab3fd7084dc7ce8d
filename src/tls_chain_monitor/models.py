from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from cryptography import x509


ChainPositionLabel = Literal[
    "leaf",
    "leaf; self-signed",
    "intermediate",
    "root",
    "UNKNOWN cert chain position; please submit a bug report",
]

CHAIN_POSITION_LEAF: ChainPositionLabel = "leaf"
CHAIN_POSITION_LEAF_SELF_SIGNED: ChainPositionLabel = "leaf; self-signed"
CHAIN_POSITION_INTERMEDIATE: ChainPositionLabel = "intermediate"
CHAIN_POSITION_ROOT: ChainPositionLabel = "root"
CHAIN_POSITION_UNKNOWN: ChainPositionLabel = "UNKNOWN cert chain position; please submit a bug report"


@dataclass(frozen=True)
class ServiceState:
    """
    Monitoring plugin state: label plus process exit code.
    """
    label: str
    exit_code: int


STATE_OK = ServiceState("OK", 0)
STATE_WARNING = ServiceState("WARNING", 1)
STATE_CRITICAL = ServiceState("CRITICAL", 2)
STATE_UNKNOWN = ServiceState("UNKNOWN", 3)


@dataclass(frozen=True)
class ValidationOptions:
    """
    Switches shared by the validators. Everything defaults to "do not ignore".
    """
    ignore_hostname_verification_if_empty_sans: bool = False
    ignore_validation_result_expiration: bool = False
    ignore_validation_result_hostname: bool = False
    ignore_validation_result_sans: bool = False
    ignore_validation_result_chain_order: bool = False
    ignore_validation_result_root: bool = False
    ignore_expiring_intermediate_certs: bool = False
    ignore_expiring_root_certs: bool = False
    ignore_expired_intermediate_certs: bool = False
    ignore_expired_root_certs: bool = False


@dataclass(frozen=True)
class HostPattern:
    """
    One user-supplied host value and the IP addresses it expanded to.
    """
    given: str
    expanded: list[str] = field(default_factory=list)
    resolved: bool = False
    range: bool = False


@dataclass(frozen=True)
class PortCheckResult:
    host: str
    ip_address: str
    port: int
    open: bool
    err: Exception | None = None

    def summary(self) -> str:
        return f"{self.port}: {str(self.open).lower()}"


def port_results_summary(results: list[PortCheckResult]) -> str:
    return ", ".join(r.summary() for r in results)


@dataclass(frozen=True)
class DiscoveredChain:
    """
    A chain retrieved from an open port by the discovery pipeline.
    """
    name: str
    ip_address: str
    port: int
    certs: list[x509.Certificate]


@dataclass(frozen=True)
class PerformanceData:
    """
    One Nagios performance data metric, rendered as
    ``label=value[unit];warn;crit;min;max``.
    """
    label: str
    value: int
    unit: str = ""
    warn: str = ""
    crit: str = ""

    def __str__(self) -> str:
        return f"{self.label}={self.value}{self.unit};{self.warn};{self.crit};;"


def format_perfdata(metrics: list[PerformanceData]) -> str:
    return " ".join(str(m) for m in metrics)
