from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime

from cryptography import x509

from . import certs
from . import chain as chainutil
from .errors import (
    ExpiredCertsError,
    ExpiringCertsError,
    HostnameVerificationError,
    IncompleteChainError,
    LegacyCommonNameError,
    MisorderedChainError,
    MissingAndUnexpectedSANsError,
    MissingSANsError,
    MissingValueError,
    NoCertsFoundError,
    RootCertsFoundError,
    UnexpectedSANsError,
)
from .logger import get_logger
from .models import CHAIN_POSITION_LEAF, CHAIN_POSITION_LEAF_SELF_SIGNED, ValidationOptions
from .results import (
    BASELINE_PRIORITY_CHAIN_ORDER,
    BASELINE_PRIORITY_EXPIRATION,
    BASELINE_PRIORITY_HOSTNAME,
    BASELINE_PRIORITY_ROOT,
    BASELINE_PRIORITY_SANS,
    PRIORITY_MODIFIER_BASELINE,
    PRIORITY_MODIFIER_MAXIMUM,
    PRIORITY_MODIFIER_MEDIUM,
    PRIORITY_MODIFIER_MINIMUM,
    VALIDATION_STATUS_FAILED,
    VALIDATION_STATUS_IGNORED,
    VALIDATION_STATUS_SUCCESSFUL,
    CheckResult,
)
from .utils import failed_matches, format_validity_date, lower_case

log = get_logger(__name__)

CHECK_NAME_EXPIRATION = "Expiration"
CHECK_NAME_HOSTNAME = "Hostname"
CHECK_NAME_SANS = "SANs List"
CHECK_NAME_CHAIN_ORDER = "Chain Order"
CHECK_NAME_ROOT = "Root"

IGNORE_HOSTNAME_IF_EMPTY_SANS_FLAG = "ignore-hostname-verification-if-empty-sans"

EXPIRATION_SUMMARY_EXPIRES_NEXT = '{} validation {}: {} cert "{}" expires next with {} (until {})'
EXPIRATION_SUMMARY_EXPIRED = '{} validation {}: {} cert "{}" expired {} (on {})'

_CN_REFERENCES = """See these resources for additional information:

 - https://chromestatus.com/feature/4981025180483584
 - https://bugzilla.mozilla.org/show_bug.cgi?id=1245280"""

ROOT_CERT_FOUND_ADVICE = """
Best practice is for a served certificate chain to contain the leaf
certificate and any intermediates, but not the root. Clients already carry
trusted roots in their own trust stores, so a root sent by the server is
ignored at best and adds overhead to every handshake.

Consider removing the root certificate from the chain configured for this
service.
"""


def _leaf_position(chain: list[x509.Certificate]) -> str:
    if not chain:
        return CHAIN_POSITION_LEAF
    return chainutil.chain_position(chain[0], chain)


def _unexpected_error_detail(check_name: str, err: Exception) -> str:
    return (
        f"An unexpected error occurred while performing {check_name.lower()} validation!\n"
        "Please report the following error and provide a copy of your certificate chain "
        "for evaluation (e.g., see the copycert tool in this project).\n\n"
        f'Error: "{err}"\n'
    )


def _match_dns_name(pattern: str, host: str) -> bool:
    pattern = pattern.lower().rstrip(".")
    host = host.lower().rstrip(".")
    if not pattern or not host:
        return False
    if pattern == host:
        return True

    # Wildcards only cover the left-most label.
    p_labels = pattern.split(".")
    h_labels = host.split(".")
    if p_labels[0] != "*" or len(p_labels) != len(h_labels) or len(p_labels) < 3:
        return False
    return p_labels[1:] == h_labels[1:]


def verify_hostname(cert: x509.Certificate, hostname: str) -> None:
    """
    Check ``hostname`` against the SANs entries of ``cert``.

    The legacy CommonName fallback is not supported.
    """
    host = hostname.strip()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None

    if ip is not None:
        ips = certs.ip_addresses(cert)
        if any(ipaddress.ip_address(v) == ip for v in ips):
            return
        if not ips:
            raise HostnameVerificationError(
                detail=f"cannot validate certificate for {host} because it doesn't contain any IP SANs"
            )
        raise HostnameVerificationError(
            detail=f"certificate is valid for {', '.join(ips)}, not {host}"
        )

    names = certs.dns_names(cert)
    if not names:
        raise LegacyCommonNameError()
    if any(_match_dns_name(name, host) for name in names):
        return
    raise HostnameVerificationError(detail=f"certificate is valid for {', '.join(names)}, not {host}")


@dataclass(frozen=True)
class HostnameValidationResult(CheckResult):
    check_name = CHECK_NAME_HOSTNAME
    baseline_priority = BASELINE_PRIORITY_HOSTNAME

    hostname_value: str = ""
    ignore_if_sans_empty: bool = False

    def _leaf_has_sans(self) -> bool:
        return bool(self.chain) and bool(certs.dns_names(self.chain[0]))

    def status(self) -> str:
        position = _leaf_position(self.chain)
        prefix = f'{self.check_name} validation using value "{self.hostname_value}"'

        if self.ignored:
            status = f"{prefix} ignored for {position} cert"
            if self.ignore_if_sans_empty and not self._leaf_has_sans():
                status += " as requested for empty SANs list"
            return status
        if isinstance(self.err, LegacyCommonNameError):
            return f"{prefix} failed for first cert in chain"
        if self.err is not None:
            return f"{prefix} failed for {position} certificate"
        return f"{prefix} successful for {position} certificate"

    def status_detail(self) -> str:
        if self.ignored:
            if not self.ignore_if_sans_empty:
                return ""
            return (
                "NOTE: The option to ignore hostname verification when certificate Subject "
                f"Alternate Names (SANs) list is empty has been specified (--{IGNORE_HOSTNAME_IF_EMPTY_SANS_FLAG})."
                "\n\n"
                "While viable as a short-term workaround for certificates missing SANs list "
                "entries, this is not recommended as a long-term fix. Instead, certificates "
                "missing SANs entries should be replaced in order to avoid hostname "
                "verification errors. For example, web browsers have deprecated using the "
                "CommonName field of certificates missing SANs entries for hostname verification."
                "\n\n" + _CN_REFERENCES
            )
        if isinstance(self.err, LegacyCommonNameError):
            return (
                "This certificate does not contain Subject Alternate Names (SANs) and should be replaced."
                "\n\n"
                f"As a temporary workaround you can specify the '--{IGNORE_HOSTNAME_IF_EMPTY_SANS_FLAG}' "
                "flag to skip hostname verification if the SANs list is found to be empty."
                "\n\n" + _CN_REFERENCES
            )
        if self.err is not None:
            return (
                "Consider updating the service check or command definition to specify the "
                "website FQDN instead of the host FQDN using the DNS Name or server flags. "
                "E.g., use 'www.example.org' instead of 'host7.example.com' in order to allow "
                "the remote server to select the correct certificate instead of using the "
                "default certificate."
            )
        return ""


def validate_hostname(
    chain: list[x509.Certificate],
    server: str,
    dns_name: str,
    options: ValidationOptions | None = None,
) -> HostnameValidationResult:
    """
    Verify the leaf certificate against ``dns_name`` (or ``server`` when no
    DNS name is given).
    """
    options = options or ValidationOptions()
    hostname_value = dns_name or server
    ignored = options.ignore_validation_result_hostname
    ignore_if_sans_empty = options.ignore_hostname_verification_if_empty_sans

    def result(**kwargs) -> HostnameValidationResult:
        kwargs.setdefault("ignored", ignored)
        return HostnameValidationResult(
            chain=chain,
            options=options,
            hostname_value=hostname_value,
            ignore_if_sans_empty=ignore_if_sans_empty,
            **kwargs,
        )

    if not server.strip() and not dns_name.strip():
        return result(
            err=MissingValueError("server or dns name values are required for hostname verification"),
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )
    if not chain:
        return result(
            err=MissingValueError("required certificate chain is empty"),
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )

    leaf = chain[0]
    try:
        verify_hostname(leaf, hostname_value)
    except HostnameVerificationError as e:
        verify_err: HostnameVerificationError | None = e
    else:
        verify_err = None

    leaf_has_sans = bool(certs.dns_names(leaf))

    if verify_err is not None and not leaf_has_sans and ignore_if_sans_empty:
        return result(
            err=verify_err,
            ignored=True,
            priority_modifier=PRIORITY_MODIFIER_MINIMUM,
        )
    if verify_err is not None and (isinstance(verify_err, LegacyCommonNameError) or not leaf_has_sans):
        return result(
            err=LegacyCommonNameError(),
            priority_modifier=PRIORITY_MODIFIER_MEDIUM,
        )
    if verify_err is not None:
        return result(err=verify_err, priority_modifier=PRIORITY_MODIFIER_MINIMUM)
    return result()


@dataclass(frozen=True)
class SANsListValidationResult(CheckResult):
    check_name = CHECK_NAME_SANS
    baseline_priority = BASELINE_PRIORITY_SANS

    required_entries: list[str] = field(default_factory=list)
    missing_entries: list[str] = field(default_factory=list)
    unexpected_entries: list[str] = field(default_factory=list)

    @property
    def num_expected(self) -> int:
        return len(self.required_entries)

    @property
    def num_present(self) -> int:
        return len(certs.dns_names(self.chain[0])) if self.chain else 0

    @property
    def num_matched(self) -> int:
        return max(self.num_expected - self.num_mismatched, 0)

    @property
    def num_mismatched(self) -> int:
        return len(self.missing_entries) + len(self.unexpected_entries)

    def overview(self) -> str:
        return (
            f"[{self.num_expected} EXPECTED, {len(self.missing_entries)} MISSING, "
            f"{len(self.unexpected_entries)} UNEXPECTED]"
        )

    def status(self) -> str:
        position = _leaf_position(self.chain)
        if self.ignored:
            return (
                f"{self.check_name} validation ignored: {self.num_expected} SANs entries specified, "
                f"{self.num_present} SANs entries on {position} cert"
            )
        if isinstance(self.err, (MissingSANsError, UnexpectedSANsError, MissingAndUnexpectedSANsError)):
            return f'{self.check_name} validation failed: "{position}" {self.err}'
        if self.err is not None:
            return f"Error encountered validating {self.num_expected} expected SANs entries: {self.err}"
        return (
            f"{self.check_name} validation successful: expected and confirmed ({self.num_present}) "
            f"SANs entries present for {position} certificate"
        )

    def status_detail(self) -> str:
        if not self.missing_entries and not self.unexpected_entries:
            return ""
        missing = ", ".join(self.missing_entries) or "N/A"
        unexpected = ", ".join(self.unexpected_entries) or "N/A"
        return f"missing: [{missing}], unexpected: [{unexpected}]"

    def report(self) -> str:
        detail = self.status_detail()
        if not detail:
            return f"{self.status()} {self.overview()}"
        return f"{self.status()} {self.overview()}; {detail}"

    def __str__(self) -> str:
        return self.report()


def validate_sans_list(
    chain: list[x509.Certificate],
    required_entries: list[str],
    options: ValidationOptions | None = None,
) -> SANsListValidationResult:
    """
    Compare the leaf certificate's SANs entries against ``required_entries``
    (case-insensitive) in both directions.
    """
    options = options or ValidationOptions()
    ignored = options.ignore_validation_result_sans

    if not chain:
        return SANsListValidationResult(
            chain=chain,
            options=options,
            err=MissingValueError("required certificate chain is empty"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )
    if not required_entries:
        return SANsListValidationResult(
            chain=chain,
            options=options,
            err=MissingValueError("required SANs entries list is empty"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )

    required = lower_case(required_entries)
    present = lower_case(certs.dns_names(chain[0]))
    missing = failed_matches(required, present)
    unexpected = failed_matches(present, required)

    if missing and unexpected:
        err: Exception | None = MissingAndUnexpectedSANsError()
        modifier = PRIORITY_MODIFIER_MAXIMUM
    elif missing:
        err = MissingSANsError()
        modifier = PRIORITY_MODIFIER_MAXIMUM
    elif unexpected:
        err = UnexpectedSANsError()
        modifier = PRIORITY_MODIFIER_MINIMUM
    else:
        err = None
        modifier = PRIORITY_MODIFIER_BASELINE

    return SANsListValidationResult(
        chain=chain,
        options=options,
        err=err,
        ignored=ignored,
        priority_modifier=modifier,
        required_entries=required,
        missing_entries=missing,
        unexpected_entries=unexpected,
    )


@dataclass(frozen=True)
class ExpirationValidationResult(CheckResult):
    check_name = CHECK_NAME_EXPIRATION
    baseline_priority = BASELINE_PRIORITY_EXPIRATION

    age_critical: datetime | None = None
    age_warning: datetime | None = None
    verbose: bool = False
    omit_sans_entries: bool = False
    num_expired_certs: int = 0
    num_expiring_certs: int = 0

    @property
    def has_expired_certs(self) -> bool:
        return self.num_expired_certs > 0

    @property
    def has_expiring_certs(self) -> bool:
        return self.num_expiring_certs > 0

    @property
    def num_valid_certs(self) -> int:
        return self.total_certs - self.num_expired_certs - self.num_expiring_certs

    def _evaluated(self) -> bool:
        return bool(self.chain) and self.age_critical is not None and self.age_warning is not None

    def filtered_chain(self) -> list[x509.Certificate]:
        """
        The chain as far as this check is concerned.

        An expired or expiring leaf is returned on its own. Otherwise
        intermediates and roots the options say to ignore are dropped.
        """
        if not self._evaluated():
            return list(self.chain)

        crit, warn = self.age_critical, self.age_warning
        opts = self.options
        filtered: list[x509.Certificate] = []
        for cert in self.chain:
            expired = chainutil.is_expired(cert)
            expiring = chainutil.is_expiring(cert, crit, warn)

            if chainutil.is_leaf_cert(cert, self.chain) and (expired or expiring):
                return [cert]

            if chainutil.is_intermediate_cert(cert, self.chain):
                if expired and opts.ignore_expired_intermediate_certs:
                    continue
                if expiring and opts.ignore_expiring_intermediate_certs:
                    continue

            if chainutil.is_root_cert(cert, self.chain):
                if expired and opts.ignore_expired_root_certs:
                    continue
                if expiring and opts.ignore_expiring_root_certs:
                    continue

            filtered.append(cert)
        return filtered

    def is_warning_state(self) -> bool:
        if self.ignored or not self._evaluated():
            return False
        return any(
            chainutil.is_expiring(c, self.age_critical, self.age_warning)
            for c in self.filtered_chain()
        )

    def is_critical_state(self) -> bool:
        if self.ignored:
            return False
        if not self._evaluated():
            return self.err is not None
        return any(
            chainutil.is_expired(c) or certs.not_after(c) < self.age_critical
            for c in self.filtered_chain()
        )

    def overview(self) -> str:
        return (
            f"[EXPIRED: {self.num_expired_certs}, EXPIRING: {self.num_expiring_certs}, "
            f"OK: {self.num_valid_certs}]"
        )

    def expiration_validation_status(self, chain: list[x509.Certificate] | None = None) -> str:
        chain = chain or self.chain
        if chainutil.has_expired_cert(chain):
            return VALIDATION_STATUS_FAILED
        if self._evaluated() and chainutil.has_expiring_cert(chain, self.age_critical, self.age_warning):
            return VALIDATION_STATUS_FAILED
        if self.ignored:
            return VALIDATION_STATUS_IGNORED
        return VALIDATION_STATUS_SUCCESSFUL

    def status(self) -> str:
        if not self._evaluated():
            return f"{self.check_name} validation {self.validation_status()}: {self.err}"

        filtered = self.filtered_chain()
        nxt = chainutil.next_to_expire(filtered or self.chain)
        template = (
            EXPIRATION_SUMMARY_EXPIRED if chainutil.has_expired_cert(filtered)
            else EXPIRATION_SUMMARY_EXPIRES_NEXT
        )
        expires = certs.not_after(nxt)
        return template.format(
            self.check_name,
            self.expiration_validation_status(filtered),
            chainutil.chain_position(nxt, self.chain),
            certs.display_name(nxt),
            chainutil.formatted_expiration(expires),
            format_validity_date(expires),
        )

    def status_detail(self) -> str:
        if not self._evaluated():
            return ""
        return chainutil.generate_cert_chain_report(
            self.chain,
            self.age_critical,
            self.age_warning,
            verbose=self.verbose,
            options=self.options,
            omit_sans_entries=self.omit_sans_entries,
        )

    def report(self) -> str:
        if not self._evaluated():
            return self.status()
        if self.ignored:
            summary = (
                f"{self.num_expired_certs} expired certificates, "
                f"{self.num_expiring_certs} expiring certificates"
            )
            return (
                f"{self.check_name} validation "
                f"{self.expiration_validation_status(self.filtered_chain())}: {summary}"
                f"\n\n{self.status_detail()}"
            )
        return f"{self.status()}\n\n{self.status_detail()}"

    def __str__(self) -> str:
        return f"{self.status()} {self.overview()}"


def validate_expiration(
    chain: list[x509.Certificate],
    age_critical_days: int,
    age_warning_days: int,
    *,
    verbose: bool = False,
    omit_sans_entries: bool = False,
    options: ValidationOptions | None = None,
    now: datetime | None = None,
) -> ExpirationValidationResult:
    options = options or ValidationOptions()
    ignored = options.ignore_validation_result_expiration

    def failed(reason: str) -> ExpirationValidationResult:
        return ExpirationValidationResult(
            chain=chain,
            options=options,
            err=MissingValueError(reason),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )

    if not chain:
        return failed("required certificate chain is empty")
    if not age_critical_days:
        return failed("required CRITICAL certificate age threshold (in days) is required for expiration validation")
    if not age_warning_days:
        return failed("required WARNING certificate age threshold (in days) is required for expiration validation")

    crit, warn = chainutil.expiration_thresholds(age_critical_days, age_warning_days, now)

    leaves = chainutil.leaf_certs(chain)
    intermediates = chainutil.intermediate_certs(chain)
    roots = chainutil.root_certs(chain)

    expired_leaf = chainutil.has_expired_cert(leaves)
    expiring_leaf = chainutil.has_expiring_cert(leaves, crit, warn)
    expired_intermediate = chainutil.has_expired_cert(intermediates)
    expiring_intermediate = chainutil.has_expiring_cert(intermediates, crit, warn)
    expired_root = chainutil.has_expired_cert(roots)
    expiring_root = chainutil.has_expiring_cert(roots, crit, warn)

    def modifier(level: int) -> int:
        return PRIORITY_MODIFIER_BASELINE if ignored else level

    context = "expiration validation failed"
    err: Exception | None = None
    priority_modifier = PRIORITY_MODIFIER_BASELINE

    # Leaf conditions come first and cannot be ignored by the per-role options.
    if expired_leaf:
        err, priority_modifier = ExpiredCertsError(context), modifier(PRIORITY_MODIFIER_MAXIMUM)
    elif expiring_leaf:
        err, priority_modifier = ExpiringCertsError(context), modifier(PRIORITY_MODIFIER_MINIMUM)
    elif expiring_intermediate and not options.ignore_expiring_intermediate_certs:
        err, priority_modifier = ExpiringCertsError(context), modifier(PRIORITY_MODIFIER_MINIMUM)
    elif expiring_root and not options.ignore_expiring_root_certs:
        err, priority_modifier = ExpiringCertsError(context), modifier(PRIORITY_MODIFIER_MINIMUM)
    elif expired_intermediate and not options.ignore_expired_intermediate_certs:
        err, priority_modifier = ExpiredCertsError(context), modifier(PRIORITY_MODIFIER_MAXIMUM)
    elif expired_root and not options.ignore_expired_root_certs:
        err, priority_modifier = ExpiredCertsError(context), modifier(PRIORITY_MODIFIER_MAXIMUM)
    elif expired_intermediate or expired_root:
        err, ignored = ExpiredCertsError(context), True
    elif expiring_intermediate or expiring_root:
        err, ignored = ExpiringCertsError(context), True

    result = ExpirationValidationResult(
        chain=chain,
        options=options,
        err=err,
        ignored=ignored,
        priority_modifier=priority_modifier,
        age_critical=crit,
        age_warning=warn,
        verbose=verbose,
        omit_sans_entries=omit_sans_entries,
        num_expired_certs=chainutil.num_expired_certs(chain),
        num_expiring_certs=chainutil.num_expiring_certs(chain, crit, warn),
    )
    log.debug(
        "%s validation: %d total, %d expired, %d expiring certificates",
        result.check_name,
        result.total_certs,
        result.num_expired_certs,
        result.num_expiring_certs,
    )
    return result


def _incomplete_chain_advice(chain: list[x509.Certificate]) -> str:
    if not chain:
        return ""
    advice = [
        "This issue often occurs with Windows Servers when (newer) intermediates "
        "are missing from the certificate stores.\n"
    ]
    first_position = chainutil.chain_position(chain[0], chain)
    if first_position == CHAIN_POSITION_LEAF_SELF_SIGNED:
        advice.append(
            f"It is recommended that you replace the {CHAIN_POSITION_LEAF_SELF_SIGNED} "
            "certificate with a valid certificate chain.\n"
        )
    elif not chainutil.has_intermediate_cert(chain):
        name = certs.display_name(chain[0])
        ref = f" for {name} " if name else " "
        advice.append(
            f"It is recommended that you configure the service{ref}to include the missing intermediates.\n"
        )
        advice.append(_no_leaf_note(chain))
    return "".join(advice)


def _no_leaf_note(chain: list[x509.Certificate]) -> str:
    if chainutil.has_leaf_cert(chain):
        return ""
    return (
        "NOTE: No leaf certs detected in given certificate chain; "
        "is this an intermediates bundle that is being monitored?"
    )


def _reorder_chain_advice(chain: list[x509.Certificate]) -> str:
    if not chain:
        return ""
    return (
        "This issue is often caused by using the incorrect intermediates bundle (with reversed entries).\n"
        "It is recommended that you reorder the certificate chain to resolve this issue.\n\n"
        f"Current chain order:\n\n{chainutil.summarize_chain_order(chain)}\n"
        f"Recommended chain order:\n\n{chainutil.summarize_chain_order(chainutil.order_cert_chain(chain))}\n"
        + _no_leaf_note(chain)
    )


@dataclass(frozen=True)
class ChainOrderValidationResult(CheckResult):
    check_name = CHECK_NAME_CHAIN_ORDER
    baseline_priority = BASELINE_PRIORITY_CHAIN_ORDER

    verbose: bool = False

    @property
    def num_ordered_certs(self) -> int:
        return chainutil.num_ordered_certs(self.chain)

    @property
    def num_misordered_certs(self) -> int:
        return chainutil.num_misordered_certs(self.chain)

    def is_warning_state(self) -> bool:
        return not self.ignored and isinstance(self.err, MisorderedChainError)

    def is_critical_state(self) -> bool:
        return not self.ignored and isinstance(self.err, (NoCertsFoundError, IncompleteChainError))

    def overview(self) -> str:
        return (
            f"[ORDERED: {self.num_ordered_certs}, MISORDERED: {self.num_misordered_certs}, "
            f"TOTAL: {self.total_certs}]"
        )

    def status(self) -> str:
        prefix = f"{self.check_name} validation {self.validation_status()}"
        if isinstance(self.err, MisorderedChainError):
            return f"{prefix}: {self.num_misordered_certs} certs misordered"
        if isinstance(self.err, IncompleteChainError):
            return f"{prefix}: {self.err}"
        if self.err is not None:
            return (
                f"{prefix}: unexpected error encountered while validating "
                f"{self.total_certs} certs: {self.err}"
            )
        return f"{prefix}: {self.total_certs} certs present, {self.num_misordered_certs} certs misordered"

    def status_detail(self) -> str:
        if isinstance(self.err, MisorderedChainError):
            return "A misordered certificate chain was found!\n" + _reorder_chain_advice(self.chain)
        if isinstance(self.err, IncompleteChainError):
            return (
                f"An incomplete certificate chain was found ({self.total_certs} certs total).\n\n"
                + _incomplete_chain_advice(self.chain)
            )
        if self.err is not None:
            return _unexpected_error_detail(self.check_name, self.err)
        return ""

    def report(self) -> str:
        if self.err is not None:
            return f"{self.status()}\n\n{self.status_detail()}"
        return (
            f"{self.check_name} validation {self.validation_status()}: "
            f"{self.num_ordered_certs} ordered certificates, "
            f"{self.num_misordered_certs} misordered certificates"
        )


def validate_chain_order(
    chain: list[x509.Certificate],
    *,
    verbose: bool = False,
    options: ValidationOptions | None = None,
) -> ChainOrderValidationResult:
    options = options or ValidationOptions()
    ignored = options.ignore_validation_result_chain_order

    if not chain:
        return ChainOrderValidationResult(
            chain=chain,
            options=options,
            err=NoCertsFoundError("required certificate chain is empty"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )
    if len(chain) == 1:
        position = chainutil.chain_position(chain[0], chain)
        return ChainOrderValidationResult(
            chain=chain,
            options=options,
            err=IncompleteChainError(f"certificate chain contains only {position} cert"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MEDIUM,
            verbose=verbose,
        )
    if chainutil.has_misordered_certs(chain):
        return ChainOrderValidationResult(
            chain=chain,
            options=options,
            err=MisorderedChainError(f"{CHECK_NAME_CHAIN_ORDER.lower()} validation failed"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MEDIUM,
            verbose=verbose,
        )
    return ChainOrderValidationResult(chain=chain, options=options, ignored=ignored, verbose=verbose)


@dataclass(frozen=True)
class RootValidationResult(CheckResult):
    check_name = CHECK_NAME_ROOT
    baseline_priority = BASELINE_PRIORITY_ROOT

    verbose: bool = False

    @property
    def num_root_certs(self) -> int:
        return chainutil.num_root_certs(self.chain)

    def is_warning_state(self) -> bool:
        return not self.ignored and isinstance(self.err, RootCertsFoundError)

    def is_critical_state(self) -> bool:
        return not self.ignored and isinstance(self.err, NoCertsFoundError)

    def overview(self) -> str:
        return f"[ROOT CERTS: {self.num_root_certs}, TOTAL: {self.total_certs}]"

    def status(self) -> str:
        prefix = f"{self.check_name} validation {self.validation_status()}"
        if isinstance(self.err, RootCertsFoundError):
            return f"{prefix}: {self.num_root_certs} root certs present"
        if self.err is not None:
            return (
                f"{prefix}: unexpected error encountered while validating "
                f"{self.total_certs} certs: {self.err}"
            )
        return f"{prefix}: {self.total_certs} certs present, {self.num_root_certs} root certs"

    def status_detail(self) -> str:
        if isinstance(self.err, RootCertsFoundError):
            return f"A root certificate in the chain was found!\n\n{ROOT_CERT_FOUND_ADVICE.strip()}\n"
        if self.err is not None:
            return _unexpected_error_detail(self.check_name, self.err)
        return ""

    def report(self) -> str:
        if self.err is not None:
            return f"{self.status()}\n\n{self.status_detail()}"
        return (
            f"{self.check_name} validation {self.validation_status()}: "
            f"{self.total_certs} total certificates, {self.num_root_certs} root certificates"
        )


def validate_root(
    chain: list[x509.Certificate],
    *,
    verbose: bool = False,
    options: ValidationOptions | None = None,
) -> RootValidationResult:
    options = options or ValidationOptions()
    ignored = options.ignore_validation_result_root

    if not chain:
        return RootValidationResult(
            chain=chain,
            options=options,
            err=NoCertsFoundError("required certificate chain is empty"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MAXIMUM,
        )
    if chainutil.has_root_cert(chain):
        return RootValidationResult(
            chain=chain,
            options=options,
            err=RootCertsFoundError(f"{CHECK_NAME_ROOT.lower()} validation failed"),
            ignored=ignored,
            priority_modifier=PRIORITY_MODIFIER_MEDIUM,
            verbose=verbose,
        )
    return RootValidationResult(chain=chain, options=options, ignored=ignored, verbose=verbose)
