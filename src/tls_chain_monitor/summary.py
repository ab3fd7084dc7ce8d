from __future__ import annotations

from datetime import datetime

from cryptography import x509

from . import certs
from . import chain as chainutil
from .models import DiscoveredChain, PortCheckResult, port_results_summary
from .results import ValidationResults

ICON_PROBLEM = "⛔"
ICON_OK = "✅"

_COLUMN_PADDING = 2


def format_table(rows: list[list[str]]) -> str:
    """
    Left-aligned columns separated by at least two spaces.
    """
    if not rows:
        return ""
    widths = [0] * max(len(r) for r in rows)
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i] + _COLUMN_PADDING) for i, cell in enumerate(row[:-1])]
        cells.append(row[-1])
        lines.append("".join(cells).rstrip())
    return "\n".join(lines) + "\n"


def _subject_or_sans(cert: x509.Certificate) -> str:
    return certs.common_name(cert) or ", ".join(certs.dns_names(cert))


def _has_host_names(discovered: list[DiscoveredChain]) -> bool:
    return any(d.name for d in discovered)


def _header(discovered: list[DiscoveredChain], status_col: str, summary_col: str) -> list[list[str]]:
    if _has_host_names(discovered):
        cols = ["Host (Name/FQDN)", "IP Addr", "Port", "Subject or SANs", status_col, summary_col, "Serial"]
    else:
        cols = ["Host", "Port", "Subject or SANs", status_col, summary_col, "Serial"]
    return [cols, ["---"] * len(cols)]


def _host_cells(discovered: list[DiscoveredChain], d: DiscoveredChain) -> list[str]:
    if _has_host_names(discovered):
        return [d.name, d.ip_address, str(d.port)]
    return [d.ip_address, str(d.port)]


def _preamble(
    discovered: list[DiscoveredChain],
    show_all: bool,
    age_critical: datetime,
    age_warning: datetime,
) -> tuple[str, bool]:
    issues = chainutil.num_discovered_chain_problems(discovered, age_critical, age_warning)
    out = f"{len(discovered)} certificate chains ({issues} issues) found.\n"
    if issues == 0 and not show_all:
        return out + "\nResults: No certificate issues found!\n", False
    description = "all" if show_all else "issues only"
    return out + f"\nResults ({description}):\n\n", True


def summarize_high_level(
    discovered: list[DiscoveredChain],
    age_critical_days: int,
    age_warning_days: int,
    *,
    show_all_hosts: bool = False,
    now: datetime | None = None,
) -> str:
    """
    One row per discovered chain, described by its first certificate.
    """
    crit, warn = chainutil.expiration_thresholds(age_critical_days, age_warning_days, now)
    out, show_table = _preamble(discovered, show_all_hosts, crit, warn)
    if not show_table:
        return out

    rows = _header(discovered, "Status", "Chain Summary")
    for d in discovered:
        if not d.certs:
            continue
        problems = chainutil.chain_has_problems(d.certs, crit, warn)
        if not problems and not show_all_hosts:
            continue
        first = d.certs[0]
        rows.append(
            _host_cells(discovered, d)
            + [
                _subject_or_sans(first),
                f"{ICON_PROBLEM} (!!)" if problems else f"{ICON_OK} (OK)",
                chainutil.chain_summary(d.certs, crit, warn),
                chainutil.format_cert_serial(first.serial_number),
            ]
        )
    return out + format_table(rows)


def summarize_detailed(
    discovered: list[DiscoveredChain],
    age_critical_days: int,
    age_warning_days: int,
    *,
    show_all_certs: bool = False,
    now: datetime | None = None,
) -> str:
    """
    One row per certificate of every discovered chain.
    """
    crit, warn = chainutil.expiration_thresholds(age_critical_days, age_warning_days, now)
    out, show_table = _preamble(discovered, show_all_certs, crit, warn)
    if not show_table:
        return out

    rows = _header(discovered, "Status (Type)", "Summary")
    for d in discovered:
        for cert in d.certs:
            problem = chainutil.is_expired(cert) or chainutil.is_expiring(cert, crit, warn)
            if not problem and not show_all_certs:
                continue
            icon = ICON_PROBLEM if problem else ICON_OK
            rows.append(
                _host_cells(discovered, d)
                + [
                    _subject_or_sans(cert),
                    f"{icon} ({chainutil.chain_position(cert, d.certs)})",
                    chainutil.expiration_status(cert, crit, warn),
                    chainutil.format_cert_serial(cert.serial_number),
                ]
            )
    return out + format_table(rows)


def port_scan_line(ip_address: str, results: list[PortCheckResult]) -> str:
    """
    ``name (ip): [443: true, 8443: false]`` style line for one host.
    """
    name = next((r.host for r in results if r.host), "")
    label = f"{name} ({ip_address})" if name else ip_address
    return f"{label}: [{port_results_summary(results)}]"


def validation_checks_section(results: ValidationResults) -> str:
    lines = ["VALIDATION CHECKS", ""]
    results.sort()
    for r in results:
        if r.is_ignored():
            bullet = "[--]"
        elif r.is_ok_state():
            bullet = "[OK]"
        else:
            bullet = "[!!]"
        lines.append(f"{bullet} {r}")
    return "\n".join(lines) + "\n"
