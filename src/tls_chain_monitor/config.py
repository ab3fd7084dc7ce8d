"""
Configuration for the command-line tools.

Values come from command-line flags, with an optional TOML file supplying
defaults. The file is taken from ``--config`` or the first of
.tls-chain-monitor.toml, tls-chain-monitor.toml or pyproject.toml
([tool.tls-chain-monitor]) found in the working directory.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from typing import Any

import toml

from . import __version__
from .errors import ConfigError
from .logger import LOG_LEVELS
from .models import ValidationOptions
from .utils import in_list, lower_case, split_csv

APP_TYPE_PLUGIN = "plugin"
APP_TYPE_INSPECTOR = "inspector"
APP_TYPE_SCANNER = "scanner"
APP_TYPE_COPIER = "copier"

_APP_PROGS = {
    APP_TYPE_PLUGIN: "check-cert",
    APP_TYPE_INSPECTOR: "lscert",
    APP_TYPE_SCANNER: "certsum",
    APP_TYPE_COPIER: "copycert",
}

_CONFIG_FILES = [
    ".tls-chain-monitor.toml",
    "tls-chain-monitor.toml",
    "pyproject.toml",
]
_PYPROJECT_TABLE = "tls-chain-monitor"

SKIP_SANS_CHECK_KEYWORD = "SKIPSANSCHECKS"

VALIDATION_KEYWORD_EXPIRATION = "expiration"
VALIDATION_KEYWORD_HOSTNAME = "hostname"
VALIDATION_KEYWORD_SANS = "sans"
VALIDATION_KEYWORD_ROOT = "root"
VALIDATION_KEYWORD_CHAIN_ORDER = "chain-order"
VALIDATION_KEYWORDS = [
    VALIDATION_KEYWORD_EXPIRATION,
    VALIDATION_KEYWORD_HOSTNAME,
    VALIDATION_KEYWORD_SANS,
    VALIDATION_KEYWORD_ROOT,
    VALIDATION_KEYWORD_CHAIN_ORDER,
]

CERT_TYPE_ALL = "all"
CERT_TYPE_LEAF = "leaf"
CERT_TYPE_INTERMEDIATE = "intermediate"
CERT_TYPE_ROOT = "root"
CERT_TYPES = [CERT_TYPE_ALL, CERT_TYPE_LEAF, CERT_TYPE_INTERMEDIATE, CERT_TYPE_ROOT]

DEFAULT_PORT = 443
DEFAULT_AGE_WARNING = 30
DEFAULT_AGE_CRITICAL = 15
DEFAULT_TIMEOUT = 10
DEFAULT_PORT_SCAN_TIMEOUT = 200
DEFAULT_APP_TIMEOUT = 30
DEFAULT_SCAN_RATE_LIMIT = 100
DEFAULT_LOG_LEVEL = "info"

_MIN_APP_TIMEOUT = 2
_MAX_SCAN_RATE_LIMIT = 9999


@dataclass
class Config:
    app: str
    server: str = ""
    dns_name: str = ""
    port: int = DEFAULT_PORT
    filename: str = ""
    output_filename: str = ""
    sans_entries: list[str] = field(default_factory=list)
    age_warning: int = DEFAULT_AGE_WARNING
    age_critical: int = DEFAULT_AGE_CRITICAL
    timeout: int = DEFAULT_TIMEOUT
    emit_cert_text: bool = False
    verbose: bool = False
    omit_sans_entries: bool = False
    list_ignored_errors: bool = False
    cert_types_to_keep: list[str] = field(default_factory=lambda: [CERT_TYPE_ALL])
    log_level: str = DEFAULT_LOG_LEVEL

    ignore_hostname_verification_if_empty_sans: bool = False
    ignore_expired_intermediate_certs: bool = False
    ignore_expired_root_certs: bool = False
    ignore_expiring_intermediate_certs: bool = False
    ignore_expiring_root_certs: bool = False
    ignore_validation_result: list[str] = field(default_factory=list)
    apply_validation_result: list[str] = field(default_factory=list)

    # certsum
    hosts: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=lambda: [DEFAULT_PORT])
    timeout_port_scan: int = DEFAULT_PORT_SCAN_TIMEOUT
    timeout_app: int = DEFAULT_APP_TIMEOUT
    scan_rate_limit: int = DEFAULT_SCAN_RATE_LIMIT
    host_rate_limit: int = DEFAULT_SCAN_RATE_LIMIT
    cert_scan_rate_limit: int = 0
    show_overview: bool = False
    show_valid_certs: bool = False
    show_hosts_with_valid_certs: bool = False
    show_hosts_with_closed_ports: bool = False
    show_port_scan_results: bool = False

    config_file: str = ""

    @classmethod
    def from_args(cls, app: str, argv: list[str] | None = None) -> "Config":
        """
        Parse ``argv`` for the given tool and return a validated config.
        """
        ns = parse_args(app, argv)
        cfg = cls(
            app=app,
            server=ns.server or "",
            dns_name=ns.dns_name or "",
            port=ns.port,
            filename=ns.filename or "",
            output_filename=getattr(ns, "output_filename", "") or "",
            sans_entries=split_csv(ns.sans_entries),
            age_warning=ns.age_warning,
            age_critical=ns.age_critical,
            timeout=ns.timeout,
            emit_cert_text=ns.emit_cert_text,
            verbose=ns.verbose,
            omit_sans_entries=ns.omit_sans_entries,
            list_ignored_errors=ns.list_ignored_errors,
            cert_types_to_keep=split_csv(ns.cert_types_to_keep) or [CERT_TYPE_ALL],
            log_level=ns.log_level,
            ignore_hostname_verification_if_empty_sans=ns.ignore_hostname_verification_if_empty_sans,
            ignore_expired_intermediate_certs=ns.ignore_expired_intermediate_certs,
            ignore_expired_root_certs=ns.ignore_expired_root_certs,
            ignore_expiring_intermediate_certs=ns.ignore_expiring_intermediate_certs,
            ignore_expiring_root_certs=ns.ignore_expiring_root_certs,
            ignore_validation_result=lower_case(split_csv(ns.ignore_validation_result)),
            apply_validation_result=lower_case(split_csv(ns.apply_validation_result)),
            config_file=ns.config or "",
        )
        if app == APP_TYPE_SCANNER:
            cfg.hosts = split_csv(ns.hosts)
            cfg.ports = _parse_ports(ns.ports)
            cfg.timeout_port_scan = ns.timeout_port_scan
            cfg.timeout_app = ns.timeout_app
            cfg.scan_rate_limit = ns.scan_rate_limit
            cfg.host_rate_limit = ns.host_rate_limit
            cfg.cert_scan_rate_limit = ns.cert_scan_rate_limit
            cfg.show_overview = ns.show_overview
            cfg.show_valid_certs = ns.show_valid_certs
            cfg.show_hosts_with_valid_certs = ns.show_hosts_with_valid_certs
            cfg.show_hosts_with_closed_ports = ns.show_hosts_with_closed_ports
            cfg.show_port_scan_results = ns.show_port_scan_results

        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.app not in _APP_PROGS:
            raise ConfigError(detail=f"unknown app type {self.app!r}")

        if self.app in (APP_TYPE_PLUGIN, APP_TYPE_INSPECTOR, APP_TYPE_COPIER):
            if bool(self.server) == bool(self.filename):
                raise ConfigError(detail="one of server or input filename must be specified")
        if self.app == APP_TYPE_COPIER and not self.output_filename:
            raise ConfigError(detail="output filename must be specified")

        if self.app == APP_TYPE_SCANNER:
            if not self.hosts:
                raise ConfigError(detail="one or more hosts must be specified")
            if not self.ports:
                raise ConfigError(detail="one or more ports must be specified")
            for p in self.ports:
                if not 1 <= p <= 65535:
                    raise ConfigError(detail=f"invalid port {p} specified; expected 1-65535")
            if self.timeout_port_scan < 1:
                raise ConfigError(detail="port scan timeout must be at least 1ms")
            if self.timeout_app < _MIN_APP_TIMEOUT:
                raise ConfigError(detail=f"app timeout must be at least {_MIN_APP_TIMEOUT}s")
            for name, limit in (
                ("scan rate limit", self.scan_rate_limit),
                ("host rate limit", self.host_rate_limit),
            ):
                if not 1 <= limit <= _MAX_SCAN_RATE_LIMIT:
                    raise ConfigError(detail=f"{name} {limit} outside 1-{_MAX_SCAN_RATE_LIMIT}")
            if self.cert_scan_rate_limit and not 1 <= self.cert_scan_rate_limit <= _MAX_SCAN_RATE_LIMIT:
                raise ConfigError(
                    detail=f"cert scan rate limit {self.cert_scan_rate_limit} outside 1-{_MAX_SCAN_RATE_LIMIT}"
                )

        if not 1 <= self.port <= 65535:
            raise ConfigError(detail=f"invalid port {self.port} specified; expected 1-65535")
        if self.timeout < 1:
            raise ConfigError(detail="timeout must be at least 1s")
        if self.age_warning < 0 or self.age_critical < 0:
            raise ConfigError(detail="certificate age thresholds must not be negative")
        if self.age_critical > self.age_warning:
            raise ConfigError(
                detail=f"critical age ({self.age_critical}) greater than warning age ({self.age_warning})"
            )

        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(detail=f"invalid log level {self.log_level!r}")

        for t in self.cert_types_to_keep:
            if t not in CERT_TYPES:
                raise ConfigError(detail=f"invalid cert type {t!r}; expected one of {', '.join(CERT_TYPES)}")
        if CERT_TYPE_ALL in self.cert_types_to_keep and len(self.cert_types_to_keep) > 1:
            raise ConfigError(detail=f"cert type {CERT_TYPE_ALL!r} cannot be combined with other types")

        for kw in self.ignore_validation_result + self.apply_validation_result:
            if kw not in VALIDATION_KEYWORDS:
                raise ConfigError(
                    detail=f"invalid validation keyword {kw!r}; expected one of {', '.join(VALIDATION_KEYWORDS)}"
                )
        both = set(self.ignore_validation_result) & set(self.apply_validation_result)
        if both:
            raise ConfigError(
                detail=f"validation keywords both ignored and applied: {', '.join(sorted(both))}"
            )

    # which checks count towards the final state

    def _applied(self, keyword: str, default: bool = True) -> bool:
        if keyword in self.ignore_validation_result:
            return False
        if keyword in self.apply_validation_result:
            return True
        return default

    def skip_sans_checks(self) -> bool:
        return in_list(SKIP_SANS_CHECK_KEYWORD, self.sans_entries)

    def apply_expiration(self) -> bool:
        return self._applied(VALIDATION_KEYWORD_EXPIRATION)

    def apply_hostname(self) -> bool:
        return bool(self.server or self.dns_name) and self._applied(VALIDATION_KEYWORD_HOSTNAME)

    def apply_sans(self) -> bool:
        if not self.sans_entries or self.skip_sans_checks():
            return False
        return self._applied(VALIDATION_KEYWORD_SANS)

    def apply_root(self) -> bool:
        return self._applied(VALIDATION_KEYWORD_ROOT)

    def apply_chain_order(self) -> bool:
        return self._applied(VALIDATION_KEYWORD_CHAIN_ORDER)

    def validation_options(self) -> ValidationOptions:
        return ValidationOptions(
            ignore_hostname_verification_if_empty_sans=self.ignore_hostname_verification_if_empty_sans,
            ignore_validation_result_expiration=not self.apply_expiration(),
            ignore_validation_result_hostname=not self.apply_hostname(),
            ignore_validation_result_sans=not self.apply_sans(),
            ignore_validation_result_chain_order=not self.apply_chain_order(),
            ignore_validation_result_root=not self.apply_root(),
            ignore_expiring_intermediate_certs=self.ignore_expiring_intermediate_certs,
            ignore_expiring_root_certs=self.ignore_expiring_root_certs,
            ignore_expired_intermediate_certs=self.ignore_expired_intermediate_certs,
            ignore_expired_root_certs=self.ignore_expired_root_certs,
        )

    def cert_scan_limit(self) -> int:
        return self.cert_scan_rate_limit or self.scan_rate_limit


def _parse_ports(values: list[str] | str | None) -> list[int]:
    ports: list[int] = []
    for v in split_csv(values):
        try:
            ports.append(int(v))
        except ValueError as e:
            raise ConfigError(detail=f"invalid port {v!r} specified") from e
    return ports or [DEFAULT_PORT]


def find_config_file(start_dir: str) -> str:
    for fname in _CONFIG_FILES:
        candidate = os.path.join(start_dir, fname)
        if not os.path.isfile(candidate):
            continue
        if fname == "pyproject.toml":
            raw = toml.load(candidate)
            if _PYPROJECT_TABLE not in raw.get("tool", {}):
                continue
        return candidate
    return ""


def load_file_defaults(path: str | None) -> dict[str, Any]:
    """
    Flag defaults from a TOML file, keyed by argparse destination.
    """
    cfg_path = path or find_config_file(os.getcwd())
    if not cfg_path:
        return {}
    try:
        raw = toml.load(cfg_path)
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigError(f"failed to load {cfg_path}", detail=str(e)) from e

    table = raw.get("tool", {}).get(_PYPROJECT_TABLE, raw)
    return {str(k).replace("-", "_").lower(): v for k, v in table.items()}


def _build_parser(app: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog=_APP_PROGS[app],
        description="Inspect TLS certificate chains served by TLS endpoints or stored in files.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", help="TOML file with default flag values")
    p.add_argument(
        "--log-level", "-ll",
        default=DEFAULT_LOG_LEVEL,
        help=f"Logging level ({', '.join(LOG_LEVELS)}; default: {DEFAULT_LOG_LEVEL})",
    )
    p.add_argument("--verbose", "-v", action="store_true", help="Include additional certificate details")
    p.add_argument(
        "--age-warning", "-w", type=int, default=DEFAULT_AGE_WARNING,
        help=f"WARNING threshold in days before expiration (default: {DEFAULT_AGE_WARNING})",
    )
    p.add_argument(
        "--age-critical", "-c", type=int, default=DEFAULT_AGE_CRITICAL,
        help=f"CRITICAL threshold in days before expiration (default: {DEFAULT_AGE_CRITICAL})",
    )
    p.add_argument(
        "--timeout", "-t", type=int, default=DEFAULT_TIMEOUT,
        help=f"Timeout in seconds for retrieving a certificate chain (default: {DEFAULT_TIMEOUT})",
    )

    # chain source; certsum supplies its own hosts and ports
    p.add_argument("--server", "-s", default="", help="Server FQDN or IP Address")
    p.add_argument("--dns-name", "-dn", default="", help="Value used for SNI and hostname verification")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"TCP port (default: {DEFAULT_PORT})")
    p.add_argument("--input-filename", "--filename", dest="filename", default="", help="PEM or DER certificate file")

    p.add_argument("--emit-cert-text", "--text", dest="emit_cert_text", action="store_true",
                   help="Also print the certificate chain in PEM form")
    p.add_argument("--omit-sans-entries", action="store_true", help="Omit SANs entries from the chain report")
    p.add_argument("--list-ignored-errors", action="store_true", help="List errors of ignored validation checks")
    p.add_argument(
        "--sans-entries", "-se",
        help=f"Comma-separated names required in the leaf SANs list; {SKIP_SANS_CHECK_KEYWORD} disables the check",
    )
    p.add_argument(
        "--cert-types-to-keep",
        help=f"Comma-separated certificate types to keep ({', '.join(CERT_TYPES)}; default: {CERT_TYPE_ALL})",
    )
    p.add_argument(
        "--ignore-validation-result",
        help=f"Comma-separated validation checks to ignore ({', '.join(VALIDATION_KEYWORDS)})",
    )
    p.add_argument(
        "--apply-validation-result",
        help=f"Comma-separated validation checks to apply ({', '.join(VALIDATION_KEYWORDS)})",
    )
    p.add_argument("--ignore-hostname-verification-if-empty-sans", action="store_true",
                   help="Ignore hostname verification failures when the leaf SANs list is empty")
    p.add_argument("--ignore-expired-intermediate-certs", action="store_true",
                   help="Ignore expired intermediate certificates")
    p.add_argument("--ignore-expired-root-certs", action="store_true", help="Ignore expired root certificates")
    p.add_argument("--ignore-expiring-intermediate-certs", action="store_true",
                   help="Ignore expiring intermediate certificates")
    p.add_argument("--ignore-expiring-root-certs", action="store_true", help="Ignore expiring root certificates")

    if app == APP_TYPE_COPIER:
        p.add_argument("--output-filename", "-o", default="", help="Destination PEM file")

    if app == APP_TYPE_SCANNER:
        p.add_argument("--hosts", "--ips", action="append",
                       help="Hosts, IP Addresses, CIDR or dash ranges (comma-separated or repeated)")
        p.add_argument("--cert-ports", "--ports", dest="ports", action="append",
                       help=f"TCP ports to check (default: {DEFAULT_PORT})")
        p.add_argument("--timeout-port-scan", "--scan-timeout", dest="timeout_port_scan", type=int,
                       default=DEFAULT_PORT_SCAN_TIMEOUT,
                       help=f"Port check timeout in milliseconds (default: {DEFAULT_PORT_SCAN_TIMEOUT})")
        p.add_argument("--app-timeout", dest="timeout_app", type=int, default=DEFAULT_APP_TIMEOUT,
                       help=f"Inactivity timeout in seconds (default: {DEFAULT_APP_TIMEOUT})")
        p.add_argument("--port-scan-rate-limit", "--scan-rate-limit", dest="scan_rate_limit", type=int,
                       default=DEFAULT_SCAN_RATE_LIMIT,
                       help=f"Concurrent port checks (default: {DEFAULT_SCAN_RATE_LIMIT})")
        p.add_argument("--host-rate-limit", type=int, default=DEFAULT_SCAN_RATE_LIMIT,
                       help=f"Concurrent hosts (default: {DEFAULT_SCAN_RATE_LIMIT})")
        p.add_argument("--cert-scan-rate-limit", type=int, default=0,
                       help="Concurrent chain retrievals (default: port scan rate limit)")
        p.add_argument("--show-overview", action="store_true", help="One row per chain instead of per cert")
        p.add_argument("--show-valid-certs", action="store_true", help="Include valid certificates")
        p.add_argument("--show-hosts-with-valid-certs", action="store_true", help="Include hosts with valid chains")
        p.add_argument("--show-hosts-with-closed-ports", "--show-closed-ports",
                       dest="show_hosts_with_closed_ports", action="store_true",
                       help="Include hosts without open ports in the port scan output")
        p.add_argument("--show-port-scan-results", action="store_true",
                       help="Print each port check result instead of progress dots")

    return p


def parse_args(app: str, argv: list[str] | None = None) -> argparse.Namespace:
    if app not in _APP_PROGS:
        raise ConfigError(detail=f"unknown app type {app!r}")

    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config")
    known, _ = pre.parse_known_args(argv)

    parser = _build_parser(app)
    file_defaults = load_file_defaults(known.config)
    dests = set(vars(parser.parse_args([])))
    unknown = sorted(set(file_defaults) - dests)
    if unknown:
        raise ConfigError(detail=f"unknown configuration keys: {', '.join(unknown)}")
    parser.set_defaults(**file_defaults)

    return parser.parse_args(argv)
