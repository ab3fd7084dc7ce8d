from __future__ import annotations


class CertCheckError(Exception):
    """
    Base class for every error raised or recorded by this package.

    Subclasses carry a fixed ``default_message``. An optional ``context`` is
    prefixed and an optional ``detail`` is appended, so that
    ``ExpiredCertsError("expiration validation failed")`` reads as
    "expiration validation failed: expired certificates found".
    """

    default_message = "certificate check failed"

    def __init__(self, context: str | None = None, *, detail: str | None = None) -> None:
        self.context = context
        self.detail = detail
        msg = self.default_message
        if context:
            msg = f"{context}: {msg}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ConfigError(CertCheckError):
    default_message = "invalid configuration"


class MissingValueError(CertCheckError):
    default_message = "missing expected value"


class NoCertsFoundError(CertCheckError):
    default_message = "no certificates found"


class IncompleteChainError(CertCheckError):
    default_message = "certificate chain incomplete"


class ExpiredCertsError(CertCheckError):
    default_message = "expired certificates found"


class ExpiringCertsError(CertCheckError):
    default_message = "expiring certificates found"


class HostnameVerificationError(CertCheckError):
    default_message = "hostname verification failed"


class LegacyCommonNameError(HostnameVerificationError):
    default_message = "x509: certificate relies on legacy Common Name field, use SANs instead"


class SANsListError(CertCheckError):
    default_message = "SANs list validation failed"


class MissingSANsError(SANsListError):
    default_message = "certificate is missing requested SANs entries"


class UnexpectedSANsError(SANsListError):
    default_message = "certificate has unexpected SANs entries"


class MissingAndUnexpectedSANsError(SANsListError):
    default_message = "certificate is missing requested SANs entries, has unexpected SANs entries"


class MisorderedChainError(CertCheckError):
    default_message = "certificate chain misordered"


class RootCertsFoundError(CertCheckError):
    default_message = "root certificates found in chain"


class SignatureVerificationError(CertCheckError):
    default_message = "signature verification failed"


class NoValidationResultsError(CertCheckError):
    default_message = "certificate validation results collection is empty"


# file parsing

class CertParseError(CertCheckError):
    default_message = "failed to parse certificates"


class UnsupportedFileFormatError(CertParseError):
    default_message = "unsupported file format"


class EmptyCertFileError(CertParseError):
    default_message = "potentially empty certificate file"


class MalformedCertError(CertParseError):
    default_message = "potentially malformed certificate"


class EmptyCertBlockError(CertParseError):
    default_message = "potentially empty certificate block"


# network

class CertFetchError(CertCheckError):
    default_message = "error retrieving certificate chain"


class HostExpansionError(CertCheckError):
    default_message = "unrecognized FQDN, single IP Address or range"


class UnrecognizedIPAddressError(HostExpansionError):
    default_message = "unrecognized IP address"


class UnrecognizedIPRangeError(HostExpansionError):
    default_message = "unrecognized IP range"


class OctetIndexError(UnrecognizedIPRangeError):
    default_message = "octet index invalid"


class HostnameResolutionError(HostExpansionError):
    default_message = "hostname failed to resolve"


class ValidationSummaryError(CertCheckError):
    default_message = "validation checks failed"

    def __init__(self, failed: int, total: int) -> None:
        super().__init__()
        self.failed = failed
        self.total = total
        self.args = (f"summary: {failed} of {total} validation checks failed",)
