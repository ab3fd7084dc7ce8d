from __future__ import annotations

import math
from datetime import datetime, timedelta
from functools import lru_cache

from cryptography import x509
from cryptography.x509.oid import SignatureAlgorithmOID

from . import certs
from .errors import MissingValueError, SignatureVerificationError
from .models import (
    CHAIN_POSITION_INTERMEDIATE,
    CHAIN_POSITION_LEAF,
    CHAIN_POSITION_LEAF_SELF_SIGNED,
    CHAIN_POSITION_ROOT,
    CHAIN_POSITION_UNKNOWN,
    ChainPositionLabel,
    DiscoveredChain,
    PerformanceData,
    ValidationOptions,
)
from .signature import verify_signature
from .utils import bytes_to_delimited_hex, fingerprint, format_validity_date, insert_delimiter, utc_now

Chain = list[x509.Certificate]

_WEAK_SIGNATURE_ALGORITHMS = {
    certs.MD2_WITH_RSA_OID,
    SignatureAlgorithmOID.RSA_WITH_MD5,
    SignatureAlgorithmOID.RSA_WITH_SHA1,
    x509.ObjectIdentifier("1.3.14.3.2.29"),
    SignatureAlgorithmOID.DSA_WITH_SHA1,
    SignatureAlgorithmOID.ECDSA_WITH_SHA1,
}


@lru_cache(maxsize=1024)
def is_self_signed(cert: x509.Certificate) -> bool:
    if certs.issuer(cert) != certs.subject(cert):
        return False
    try:
        verify_signature(cert, cert)
    except SignatureVerificationError:
        return False
    return True


def _position_v1(cert: x509.Certificate, chain: Chain) -> ChainPositionLabel:
    first = bool(chain) and cert == chain[0]
    self_signed = is_self_signed(cert)
    if self_signed and first:
        return CHAIN_POSITION_LEAF_SELF_SIGNED
    if self_signed:
        return CHAIN_POSITION_ROOT
    if first:
        return CHAIN_POSITION_LEAF
    return CHAIN_POSITION_INTERMEDIATE


def _position_v3(cert: x509.Certificate) -> ChainPositionLabel:
    self_signed = is_self_signed(cert)
    ca = certs.is_ca(cert)

    if self_signed and ca:
        return CHAIN_POSITION_ROOT
    if ca:
        return CHAIN_POSITION_INTERMEDIATE
    if certs.has_ext_key_usage(cert):
        return CHAIN_POSITION_LEAF_SELF_SIGNED if self_signed else CHAIN_POSITION_LEAF

    ku = certs.key_usage(cert)
    if ku is not None and ku.key_cert_sign:
        return CHAIN_POSITION_ROOT if self_signed else CHAIN_POSITION_INTERMEDIATE
    return CHAIN_POSITION_LEAF_SELF_SIGNED if self_signed else CHAIN_POSITION_LEAF


def chain_position(cert: x509.Certificate, chain: Chain | None) -> ChainPositionLabel:
    """
    Label ``cert`` as leaf, self-signed leaf, intermediate or root.

    v1/v2 certificates carry no extensions, so their position in ``chain``
    decides. v3 certificates are judged on their extensions alone.
    """
    if chain is None:
        return CHAIN_POSITION_UNKNOWN
    if certs.version(cert) == 3:
        return _position_v3(cert)
    return _position_v1(cert, chain)


def is_leaf_cert(cert: x509.Certificate, chain: Chain) -> bool:
    return chain_position(cert, chain) in (CHAIN_POSITION_LEAF, CHAIN_POSITION_LEAF_SELF_SIGNED)


def is_intermediate_cert(cert: x509.Certificate, chain: Chain) -> bool:
    return chain_position(cert, chain) == CHAIN_POSITION_INTERMEDIATE


def is_root_cert(cert: x509.Certificate, chain: Chain) -> bool:
    return chain_position(cert, chain) == CHAIN_POSITION_ROOT


def leaf_certs(chain: Chain) -> Chain:
    return [c for c in chain if is_leaf_cert(c, chain)]


def intermediate_certs(chain: Chain) -> Chain:
    return [c for c in chain if is_intermediate_cert(c, chain)]


def root_certs(chain: Chain) -> Chain:
    return [c for c in chain if is_root_cert(c, chain)]


def non_root_certs(chain: Chain) -> Chain:
    return [c for c in chain if not is_root_cert(c, chain)]


def num_leaf_certs(chain: Chain) -> int:
    return len(leaf_certs(chain))


def num_intermediate_certs(chain: Chain) -> int:
    return len(intermediate_certs(chain))


def num_root_certs(chain: Chain) -> int:
    return len(root_certs(chain))


def num_unknown_certs(chain: Chain) -> int:
    return sum(1 for c in chain if chain_position(c, chain) == CHAIN_POSITION_UNKNOWN)


def has_leaf_cert(chain: Chain) -> bool:
    return any(is_leaf_cert(c, chain) for c in chain)


def has_intermediate_cert(chain: Chain) -> bool:
    return any(is_intermediate_cert(c, chain) for c in chain)


def has_root_cert(chain: Chain) -> bool:
    return any(is_root_cert(c, chain) for c in chain)


def expiration_thresholds(
    age_critical_days: int,
    age_warning_days: int,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """
    Return ``(critical, warning)`` cut-off datetimes.
    """
    now = now or utc_now()
    return now + timedelta(days=age_critical_days), now + timedelta(days=age_warning_days)


def is_expired(cert: x509.Certificate, now: datetime | None = None) -> bool:
    return (now or utc_now()) > certs.not_after(cert)


def is_expiring(cert: x509.Certificate, age_critical: datetime, age_warning: datetime) -> bool:
    if is_expired(cert):
        return False
    expires = certs.not_after(cert)
    return expires < age_critical or expires < age_warning


def has_expired_cert(chain: Chain) -> bool:
    return any(is_expired(c) for c in chain)


def has_expiring_cert(chain: Chain, age_critical: datetime, age_warning: datetime) -> bool:
    return any(is_expiring(c, age_critical, age_warning) for c in chain)


def num_expired_certs(chain: Chain) -> int:
    return sum(1 for c in chain if is_expired(c))


def num_expiring_certs(chain: Chain, age_critical: datetime, age_warning: datetime) -> int:
    return sum(1 for c in chain if is_expiring(c, age_critical, age_warning))


def next_to_expire(chain: Chain, exclude_expired: bool = False) -> x509.Certificate | None:
    """
    Certificate with the earliest notAfter.

    With ``exclude_expired`` the earliest non-expired certificate is returned
    instead, falling back to the earliest expired one when every certificate
    has already expired.
    """
    if not chain:
        return None
    ordered = sorted(chain, key=certs.not_after)
    if exclude_expired:
        for cert in ordered:
            if not is_expired(cert):
                return cert
    return ordered[0]


def oldest_leaf_cert(chain: Chain) -> x509.Certificate | None:
    return next_to_expire(leaf_certs(chain))


def oldest_intermediate_cert(chain: Chain) -> x509.Certificate | None:
    return next_to_expire(intermediate_certs(chain))


def oldest_root_cert(chain: Chain) -> x509.Certificate | None:
    return next_to_expire(root_certs(chain))


def expires_in_hours(cert: x509.Certificate) -> float:
    return (certs.not_after(cert) - utc_now()).total_seconds() / 3600


def expires_in_days(cert: x509.Certificate) -> int:
    return math.trunc(expires_in_hours(cert) / 24)


def max_lifespan(cert: x509.Certificate) -> timedelta:
    return certs.not_after(cert) - certs.not_before(cert)


def max_lifespan_in_days(cert: x509.Certificate) -> int:
    # Truncated, never rounded up.
    return math.trunc(max_lifespan(cert).total_seconds() / 3600 / 24)


def life_remaining_percentage(cert: x509.Certificate) -> float:
    if is_expired(cert):
        return 0.0
    lifespan = max_lifespan_in_days(cert)
    if lifespan <= 0:
        return 0.0
    return expires_in_days(cert) / lifespan * 100


def life_remaining_percentage_truncated(cert: x509.Certificate) -> int:
    return math.trunc(life_remaining_percentage(cert))


def perfdata(chain: Chain, age_critical: int, age_warning: int) -> list[PerformanceData]:
    """
    Performance data metrics for a chain, given the age thresholds in days.

    Missing leaf or intermediate certificates report 0 for their expiration
    and life remaining metrics; the ``certs_present_*`` metrics show why.
    """
    if not chain:
        raise MissingValueError("unable to generate metrics")

    def _expires(cert: x509.Certificate | None) -> int:
        return expires_in_days(cert) if cert is not None else 0

    def _life_remaining(cert: x509.Certificate | None) -> int:
        return life_remaining_percentage_truncated(cert) if cert is not None else 0

    leaf = oldest_leaf_cert(chain)
    intermediate = oldest_intermediate_cert(chain)
    warn, crit = str(age_warning), str(age_critical)

    return [
        PerformanceData("expires_leaf", _expires(leaf), "d", warn, crit),
        PerformanceData("expires_intermediate", _expires(intermediate), "d", warn, crit),
        PerformanceData("certs_present_leaf", num_leaf_certs(chain)),
        PerformanceData("certs_present_intermediate", num_intermediate_certs(chain)),
        PerformanceData("certs_present_root", num_root_certs(chain)),
        PerformanceData("certs_present_unknown", num_unknown_certs(chain)),
        PerformanceData("life_remaining_leaf", _life_remaining(leaf), "%"),
        PerformanceData("life_remaining_intermediate", _life_remaining(intermediate), "%"),
    ]


def formatted_expiration(expires: datetime, now: datetime | None = None) -> str:
    hours = (expires - (now or utc_now())).total_seconds() / 3600
    expired = hours < 0
    hours = abs(hours)

    days = math.trunc(hours / 24)
    remaining_hours = math.trunc(hours - days * 24)

    text = f"{remaining_hours}h"
    if days > 0:
        text = f"{days}d {text}"
    return f"{text} {'ago' if expired else 'remaining'}"


def format_cert_serial(serial: int | bytes) -> str:
    """
    Uppercase hex with a colon between each byte, e.g. "0A:1B:FF".

    Formats the byte representation so that a leading zero nibble survives.
    Raw bytes are formatted as given; a negative integer keeps its sign.
    """
    negative = False
    if isinstance(serial, (bytes, bytearray)):
        raw = bytes(serial)
    else:
        negative = serial < 0
        n = abs(serial)
        raw = n.to_bytes((n.bit_length() + 7) // 8, "big")

    formatted = insert_delimiter(raw.hex().upper(), ":", 2)
    return f"-{formatted}" if negative else formatted


def expiration_status(
    cert: x509.Certificate,
    age_critical: datetime,
    age_warning: datetime,
    ignore_expiration: bool = False,
) -> str:
    expires = certs.not_after(cert)
    remaining = f" ({life_remaining_percentage_truncated(cert)}%)"
    when = formatted_expiration(expires)
    now = utc_now()

    if expires < now:
        tag = "EXPIRED, IGNORED" if ignore_expiration else "EXPIRED"
    elif expires < age_critical:
        tag = "EXPIRING, IGNORED" if ignore_expiration else "CRITICAL"
    elif expires < age_warning:
        tag = "EXPIRING, IGNORED" if ignore_expiration else "WARNING"
    else:
        tag = "OK"
    return f"[{tag}] {when}{remaining}"


def should_cert_expiration_be_ignored(
    cert: x509.Certificate,
    chain: Chain,
    options: ValidationOptions,
    age_critical: datetime,
    age_warning: datetime,
) -> bool:
    if options.ignore_validation_result_expiration:
        return True

    expired = is_expired(cert)
    expiring = is_expiring(cert, age_critical, age_warning)

    if is_root_cert(cert, chain):
        if expired and options.ignore_expired_root_certs:
            return True
        if expiring and options.ignore_expiring_root_certs:
            return True

    if is_intermediate_cert(cert, chain):
        if expired and options.ignore_expired_intermediate_certs:
            return True
        if expiring and options.ignore_expiring_intermediate_certs:
            return True

    return False


def chain_summary(chain: Chain, age_critical: datetime, age_warning: datetime) -> str:
    expired = num_expired_certs(chain)
    expiring = num_expiring_certs(chain, age_critical, age_warning)
    return f"[EXPIRED: {expired}, EXPIRING: {expiring}, OK: {len(chain) - expired - expiring}]"


def chain_has_problems(chain: Chain, age_critical: datetime, age_warning: datetime) -> bool:
    return has_expired_cert(chain) or has_expiring_cert(chain, age_critical, age_warning)


def discovered_chains_have_problems(
    discovered: list[DiscoveredChain],
    age_critical: datetime,
    age_warning: datetime,
) -> bool:
    return any(chain_has_problems(d.certs, age_critical, age_warning) for d in discovered)


def num_discovered_chain_problems(
    discovered: list[DiscoveredChain],
    age_critical: datetime,
    age_warning: datetime,
) -> int:
    return sum(1 for d in discovered if chain_has_problems(d.certs, age_critical, age_warning))


def has_weak_signature_algorithm(cert: x509.Certificate, chain: Chain, eval_root: bool = False) -> bool:
    if not eval_root and is_root_cert(cert, chain):
        return False
    return cert.signature_algorithm_oid in _WEAK_SIGNATURE_ALGORITHMS


def has_cert_with_weak_signature_algorithm(chain: Chain, eval_root: bool = False) -> bool:
    return any(has_weak_signature_algorithm(c, chain, eval_root) for c in chain)


def weak_signature_algorithm_status(cert: x509.Certificate, chain: Chain) -> str:
    name = certs.signature_algorithm_name(cert)
    root = is_root_cert(cert, chain)
    if has_weak_signature_algorithm(cert, chain, eval_root=True):
        return f"[WEAK, IGNORED] {name}" if root else f"[WEAK] {name}"
    return f"[IGNORED] {name}" if root else f"[OK] {name}"


def _is_ordered_pair(cert: x509.Certificate, next_cert: x509.Certificate) -> bool:
    return certs.issuer(cert) == certs.subject(next_cert)


def _is_missing_intermediate_pair(cert: x509.Certificate, next_cert: x509.Certificate, chain: Chain) -> bool:
    # A leaf directly followed by a root is an incomplete chain, not a misordered one.
    return is_leaf_cert(cert, chain) and is_root_cert(next_cert, chain)


def num_misordered_certs(chain: Chain) -> int:
    misordered = 0
    for cert, next_cert in zip(chain, chain[1:]):
        if _is_ordered_pair(cert, next_cert):
            continue
        if _is_missing_intermediate_pair(cert, next_cert, chain):
            continue
        misordered += 1
    return misordered


def num_ordered_certs(chain: Chain) -> int:
    return len(chain) - num_misordered_certs(chain)


def has_misordered_certs(chain: Chain) -> bool:
    return num_misordered_certs(chain) > 0


def order_cert_chain(chain: Chain) -> Chain:
    """
    Reorder ``chain`` as leaf, then each issuer in turn.

    Certificates that cannot be placed follow in their original order. If
    there is no single leaf, or an issuer is ambiguous or loops back, the
    original order is returned.
    """
    leaf_idx = [i for i, c in enumerate(chain) if is_leaf_cert(c, chain)]
    if len(leaf_idx) != 1:
        return list(chain)

    placed = [leaf_idx[0]]
    remaining = [i for i in range(len(chain)) if i != leaf_idx[0]]
    seen_subjects = {certs.subject(chain[leaf_idx[0]])}

    while remaining:
        prev = chain[placed[-1]]
        wanted = certs.issuer(prev)
        if wanted == certs.subject(prev):
            break
        candidates = [i for i in remaining if certs.subject(chain[i]) == wanted]
        if not candidates:
            break
        if len(candidates) > 1 or wanted in seen_subjects:
            return list(chain)
        placed.append(candidates[0])
        remaining.remove(candidates[0])
        seen_subjects.add(wanted)

    return [chain[i] for i in placed + remaining]


def sans_entries_line(cert: x509.Certificate, omit_sans_entries: bool = False) -> str:
    names = certs.dns_names(cert)
    if names and omit_sans_entries:
        return f"SANs entries ({len(names)}): Omitted by request"
    if names:
        return f"SANs entries ({len(names)}): [{', '.join(names)}]"
    return "SANs entries: None"


def generate_cert_chain_report(
    chain: Chain,
    age_critical: datetime,
    age_warning: datetime,
    *,
    verbose: bool = False,
    options: ValidationOptions | None = None,
    omit_sans_entries: bool = False,
) -> str:
    options = options or ValidationOptions()
    total = len(chain)
    blocks: list[str] = []

    for idx, cert in enumerate(chain, start=1):
        ignored = should_cert_expiration_be_ignored(cert, chain, options, age_critical, age_warning)
        lines = [
            f"Certificate {idx} of {total} ({chain_position(cert, chain)}):",
            f"\tName: {certs.subject(cert)}",
            f"\t{sans_entries_line(cert, omit_sans_entries)}",
        ]
        if verbose:
            lines.append(f"\tKeyID: {bytes_to_delimited_hex(certs.subject_key_id(cert))}")
        lines.append(f"\tIssuer: {certs.issuer(cert)}")
        if verbose:
            raw = certs.der(cert)
            lines += [
                f"\tIssuerKeyID: {bytes_to_delimited_hex(certs.authority_key_id(cert))}",
                f"\tFingerprint (SHA-1): {fingerprint(raw, 'sha1')}",
                f"\tFingerprint (SHA-256): {fingerprint(raw, 'sha256')}",
                f"\tFingerprint (SHA-512): {fingerprint(raw, 'sha512')}",
            ]
        lines += [
            f"\tSerial: {format_cert_serial(cert.serial_number)}",
            f"\tIssued On: {format_validity_date(certs.not_before(cert))}",
            f"\tExpiration: {format_validity_date(certs.not_after(cert))}",
            f"\tSignature Algorithm: {weak_signature_algorithm_status(cert, chain)}",
            f"\tStatus: {expiration_status(cert, age_critical, age_warning, ignored)}",
        ]
        blocks.append("\n".join(lines))

    return "\n\n".join(blocks).strip()


def summarize_chain_order(chain: Chain) -> str:
    lines = []
    for idx, cert in enumerate(chain):
        name = certs.display_name(cert) or "unknown cert"
        lines.append(f"({idx}) {name} [{chain_position(cert, chain)}]")
    return "\n".join(lines) + ("\n" if lines else "")
