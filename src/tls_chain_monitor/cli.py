from __future__ import annotations

import sys
from dataclasses import dataclass

from cryptography import x509

from . import certs
from . import chain as chainutil
from .config import (
    APP_TYPE_COPIER,
    APP_TYPE_INSPECTOR,
    APP_TYPE_PLUGIN,
    APP_TYPE_SCANNER,
    CERT_TYPE_ALL,
    CERT_TYPE_INTERMEDIATE,
    CERT_TYPE_LEAF,
    CERT_TYPE_ROOT,
    Config,
)
from .discovery import run_discovery
from .errors import CertCheckError, CertParseError, ConfigError, HostExpansionError
from .fetch import get_certs
from .logger import get_logger, set_level
from .models import STATE_CRITICAL, STATE_OK, STATE_UNKNOWN, STATE_WARNING, PortCheckResult, format_perfdata
from .netutils import dedupe_hosts, expand_host
from .results import ValidationResults
from .summary import port_scan_line, summarize_detailed, summarize_high_level, validation_checks_section
from .validators import (
    validate_chain_order,
    validate_expiration,
    validate_hostname,
    validate_root,
    validate_sans_list,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class ChainSource:
    """
    A retrieved chain and a description of where it came from.
    """
    chain: list[x509.Certificate]
    description: str
    leftovers: bytes = b""
    from_file: bool = False


def _load_config(app: str, argv: list[str] | None) -> Config:
    cfg = Config.from_args(app, sys.argv[1:] if argv is None else argv)
    set_level(cfg.log_level)
    return cfg


def resolve_server(cfg: Config) -> tuple[str, str, str]:
    """
    Return ``(host value, ip address, service description)`` for the
    configured server.

    The host value is what gets sent as SNI and checked by hostname
    validation: the DNS name when given, else the server name when it
    resolved, else nothing.
    """
    hp = expand_host(cfg.server)
    if hp.range:
        raise ConfigError(detail=f"IP range or CIDR values ({cfg.server!r}) are not supported for server")
    if not hp.expanded:
        raise HostExpansionError(detail=f"no IP Addresses found for {cfg.server!r}")
    if len(hp.expanded) > 1:
        log.debug("%s resolved to %d addresses, using %s", cfg.server, len(hp.expanded), hp.expanded[0])

    ip = hp.expanded[0]
    if hp.resolved and cfg.dns_name:
        return cfg.dns_name, ip, (
            f'service running on {cfg.server} ({ip}) at port {cfg.port} using host value "{cfg.dns_name}"'
        )
    if cfg.dns_name:
        return cfg.dns_name, ip, (
            f'service running on {ip} at port {cfg.port} using host value "{cfg.dns_name}"'
        )
    if hp.resolved:
        return cfg.server, ip, (
            f'service running on {cfg.server} ({ip}) at port {cfg.port} using host value "{cfg.server}"'
        )
    return "", ip, f"service running on {ip} at port {cfg.port}"


def load_chain(cfg: Config) -> ChainSource:
    """
    Read the chain from the configured file or server.

    Raises CertParseError or OSError for file problems and CertCheckError
    subclasses for network problems.
    """
    if cfg.filename:
        chain, leftovers = certs.parse_cert_file(cfg.filename)
        return ChainSource(chain, cfg.filename, leftovers, from_file=True)

    host_val, ip, description = resolve_server(cfg)
    chain = get_certs(host_val, ip, cfg.port, cfg.timeout)
    return ChainSource(chain, description)


def run_validations(chain: list[x509.Certificate], cfg: Config) -> ValidationResults:
    options = cfg.validation_options()
    results = ValidationResults()
    results.add(
        validate_expiration(
            chain,
            cfg.age_critical,
            cfg.age_warning,
            verbose=cfg.verbose,
            omit_sans_entries=cfg.omit_sans_entries,
            options=options,
        ),
        validate_hostname(chain, cfg.server, cfg.dns_name, options),
    )
    if cfg.sans_entries:
        required = [] if cfg.skip_sans_checks() else cfg.sans_entries
        results.add(validate_sans_list(chain, required, options))
    results.add(
        validate_chain_order(chain, verbose=cfg.verbose, options=options),
        validate_root(chain, verbose=cfg.verbose, options=options),
    )
    results.sort()
    return results


def _print_leftovers(leftovers: bytes) -> None:
    print("\nCERTIFICATES | UNKNOWN data in cert file\n")
    print(leftovers.decode("utf-8", errors="replace").strip())


def _plugin_errors(results: ValidationResults, cfg: Config) -> str:
    errs = results.errs(include_ignored=cfg.list_ignored_errors)
    if not errs:
        return ""
    return "\n**ERRORS**\n\n" + "".join(f"* {e}\n" for e in errs)


def check_cert_main(argv: list[str] | None = None) -> int:
    try:
        cfg = _load_config(APP_TYPE_PLUGIN, argv)
    except ConfigError as e:
        print(f"{STATE_UNKNOWN.label}: Error initializing application: {e}")
        return STATE_UNKNOWN.exit_code

    try:
        source = load_chain(cfg)
    except (CertParseError, OSError) as e:
        log.error("failed to read certificates: %s", e)
        print(f"{STATE_UNKNOWN.label}: Error parsing certificates file: {e}")
        return STATE_UNKNOWN.exit_code
    except ConfigError as e:
        print(f"{STATE_UNKNOWN.label}: Error initializing application: {e}")
        return STATE_UNKNOWN.exit_code
    except CertCheckError as e:
        log.error("failed to retrieve certificates: %s", e)
        print(f"{STATE_CRITICAL.label}: Error retrieving certificates from {cfg.server}: {e}")
        return STATE_CRITICAL.exit_code

    if not source.chain:
        print(f"{STATE_CRITICAL.label}: 0 certificates found for {source.description}")
        return STATE_CRITICAL.exit_code

    results = run_validations(source.chain, cfg)
    state = results.service_state()
    summary = results.one_line_summary()

    if source.leftovers and state.exit_code < STATE_WARNING.exit_code:
        state = STATE_WARNING
        summary = (
            f"{STATE_WARNING.label}: Unknown data encountered while parsing certificates file "
            f"{results.overview()}"
        )

    metrics = chainutil.perfdata(source.chain, cfg.age_critical, cfg.age_warning)
    print(f"{summary} | {format_perfdata(metrics)}")
    print(_plugin_errors(results, cfg), end="")
    print("\n**DETAILED INFO**" + results.report())
    if source.leftovers:
        _print_leftovers(source.leftovers)
    if cfg.emit_cert_text:
        print(certs.to_pem(source.chain).decode("ascii"))

    return state.exit_code


def lscert_main(argv: list[str] | None = None) -> int:
    try:
        cfg = _load_config(APP_TYPE_INSPECTOR, argv)
    except ConfigError as e:
        print(f"Error initializing application: {e}", file=sys.stderr)
        return 1

    try:
        source = load_chain(cfg)
    except (CertCheckError, OSError) as e:
        log.error("failed to load certificates: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if source.from_file:
        print(f"{STATE_OK.label}: {len(source.chain)} certs found in {source.description}")
    else:
        print(f"{STATE_OK.label}: {len(source.chain)} certs retrieved for {source.description}")

    crit, warn = chainutil.expiration_thresholds(cfg.age_critical, cfg.age_warning)
    options = cfg.validation_options()
    print("\n\nCERTIFICATES | AGE THRESHOLDS: "
          f"WARNING: {cfg.age_warning}d, CRITICAL: {cfg.age_critical}d\n")
    print(chainutil.generate_cert_chain_report(
        source.chain,
        crit,
        warn,
        verbose=cfg.verbose,
        options=options,
        omit_sans_entries=cfg.omit_sans_entries,
    ))

    if source.leftovers:
        _print_leftovers(source.leftovers)

    print("\n")
    print(validation_checks_section(run_validations(source.chain, cfg)))

    if cfg.emit_cert_text:
        print(certs.to_pem(source.chain).decode("ascii"))
    return 0


def filter_chain(chain: list[x509.Certificate], keep: list[str]) -> list[x509.Certificate]:
    if not keep or CERT_TYPE_ALL in keep:
        return list(chain)

    checks = {
        CERT_TYPE_LEAF: chainutil.is_leaf_cert,
        CERT_TYPE_INTERMEDIATE: chainutil.is_intermediate_cert,
        CERT_TYPE_ROOT: chainutil.is_root_cert,
    }
    return [c for c in chain if any(checks[t](c, chain) for t in keep)]


def copycert_main(argv: list[str] | None = None) -> int:
    try:
        cfg = _load_config(APP_TYPE_COPIER, argv)
    except ConfigError as e:
        print(f"Error initializing application: {e}", file=sys.stderr)
        return 1

    try:
        source = load_chain(cfg)
    except (CertCheckError, OSError) as e:
        log.error("failed to load certificates: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    crit, warn = chainutil.expiration_thresholds(cfg.age_critical, cfg.age_warning)
    print(chainutil.generate_cert_chain_report(
        source.chain, crit, warn, verbose=cfg.verbose, omit_sans_entries=cfg.omit_sans_entries,
    ))
    print()

    filtered = filter_chain(source.chain, cfg.cert_types_to_keep)
    if not filtered:
        print("Error: all certificates in input chain excluded", file=sys.stderr)
        return 1

    if CERT_TYPE_ALL in cfg.cert_types_to_keep:
        print("OK: Retaining input certificate chain as-is:")
    else:
        print("OK: Input certificate chain filtered as requested.")
    print(chainutil.summarize_chain_order(filtered))

    try:
        certs.write_pem_file(cfg.output_filename, filtered)
    except OSError as e:
        print(f"Error writing {cfg.output_filename}: {e}", file=sys.stderr)
        return 1

    print(f"OK: Wrote {len(filtered)} certs to {cfg.output_filename}")
    return 0


def _port_result_printer(cfg: Config):
    def on_port_result(result: PortCheckResult) -> None:
        if not cfg.show_port_scan_results:
            print(".", end="", flush=True)
            return
        if result.open or cfg.show_hosts_with_closed_ports:
            print(port_scan_line(result.ip_address, [result]), flush=True)

    return on_port_result


def certsum_main(argv: list[str] | None = None) -> int:
    try:
        cfg = _load_config(APP_TYPE_SCANNER, argv)
    except ConfigError as e:
        print(f"Error initializing application: {e}", file=sys.stderr)
        return 1

    try:
        patterns = dedupe_hosts([expand_host(h) for h in cfg.hosts])
    except HostExpansionError as e:
        print(f"Error expanding host patterns: {e}", file=sys.stderr)
        return 1

    num_ips = sum(len(hp.expanded) for hp in patterns)
    print(
        f"Beginning cert scan against {num_ips} IPs expanded from {len(patterns)} "
        f"unique host patterns using ports: {cfg.ports}"
    )

    result = run_discovery(
        patterns,
        cfg.ports,
        port_timeout=cfg.timeout_port_scan / 1000,
        cert_timeout=cfg.timeout,
        app_timeout=cfg.timeout_app,
        host_limit=cfg.host_rate_limit,
        port_limit=cfg.scan_rate_limit,
        cert_limit=cfg.cert_scan_limit(),
        on_port_result=_port_result_printer(cfg),
    )
    print()

    if result.timed_out:
        print(f"Certificates scan aborted after {result.elapsed:.3f}s due to application timeout.")
    else:
        print(f"Completed certificates scan in {result.elapsed:.3f}s")
    print()

    chains = sorted(result.chains, key=lambda d: (d.name, d.ip_address, d.port))
    if cfg.show_overview:
        print(summarize_high_level(
            chains, cfg.age_critical, cfg.age_warning, show_all_hosts=cfg.show_hosts_with_valid_certs,
        ), end="")
    else:
        print(summarize_detailed(
            chains, cfg.age_critical, cfg.age_warning, show_all_certs=cfg.show_valid_certs,
        ), end="")

    return 1 if result.timed_out else 0


def main(argv: list[str] | None = None) -> int:
    return check_cert_main(argv)


if __name__ == "__main__":
    raise SystemExit(main())
