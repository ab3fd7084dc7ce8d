from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from .errors import (
    EmptyCertBlockError,
    EmptyCertFileError,
    MalformedCertError,
    UnsupportedFileFormatError,
)
from .logger import get_logger
from .utils import as_utc

log = get_logger(__name__)

PEM_BLOCK_CERTIFICATE = "CERTIFICATE"

# PEM block types recognised in input files, with the label reported when the
# block type is not something we can evaluate.
PEM_BLOCK_LABELS: dict[str, str] = {
    "CERTIFICATE": "certificate",
    "X509 CRL": "certificate revocation list",
    "CERTIFICATE REQUEST": "certificate signing request",
    "NEW CERTIFICATE REQUEST": "certificate signing request",
    "PUBLIC KEY": "public key",
    "RSA PUBLIC KEY": "RSA public key",
    "RSA PRIVATE KEY": "RSA private key",
    "DSA PRIVATE KEY": "DSA private key",
    "EC PRIVATE KEY": "EC private key",
    "ENCRYPTED PRIVATE KEY": "encrypted private key",
    "PRIVATE KEY": "private key",
    "PKCS7": "PKCS#7",
    "PGP PRIVATE KEY BLOCK": "PGP private key",
    "PGP PUBLIC KEY BLOCK": "PGP public key",
}

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<type>[A-Z0-9 #]+)-----\n(?P<body>.*?)-----END (?P=type)-----\n?",
    re.DOTALL,
)

# Not exposed by cryptography; needed to recognise MD2 signed certificates.
MD2_WITH_RSA_OID = x509.ObjectIdentifier("1.2.840.113549.1.1.2")

_SIGNATURE_ALGORITHM_NAMES: dict[x509.ObjectIdentifier, str] = {
    MD2_WITH_RSA_OID: "MD2-RSA",
    SignatureAlgorithmOID.RSA_WITH_MD5: "MD5-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "SHA1-RSA",
    x509.ObjectIdentifier("1.3.14.3.2.29"): "SHA1-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "SHA224-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "SHA256-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "SHA384-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "SHA512-RSA",
    SignatureAlgorithmOID.RSASSA_PSS: "RSA-PSS",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "DSA-SHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA224: "DSA-SHA224",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "DSA-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ECDSA-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ECDSA-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ECDSA-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ECDSA-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ECDSA-SHA512",
    SignatureAlgorithmOID.ED25519: "Ed25519",
    SignatureAlgorithmOID.ED448: "Ed448",
}


def name_to_str(name: x509.Name) -> str:
    # RFC4514
    return name.rfc4514_string()


def subject(cert: x509.Certificate) -> str:
    return name_to_str(cert.subject)


def issuer(cert: x509.Certificate) -> str:
    return name_to_str(cert.issuer)


def common_name(cert: x509.Certificate) -> str:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return ""
    return str(attrs[0].value)


def issuer_common_name(cert: x509.Certificate) -> str:
    attrs = cert.issuer.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return ""
    return str(attrs[0].value)


def _san(cert: x509.Certificate) -> x509.SubjectAlternativeName | None:
    try:
        return cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return None


def dns_names(cert: x509.Certificate) -> list[str]:
    san = _san(cert)
    if san is None:
        return []
    return list(san.get_values_for_type(x509.DNSName))


def ip_addresses(cert: x509.Certificate) -> list[str]:
    san = _san(cert)
    if san is None:
        return []
    return [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]


def subject_key_id(cert: x509.Certificate) -> bytes | None:
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        return None
    return ext.value.digest


def authority_key_id(cert: x509.Certificate) -> bytes | None:
    try:
        ext = cert.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier)
    except x509.ExtensionNotFound:
        return None
    return ext.value.key_identifier


def is_ca(cert: x509.Certificate) -> bool:
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return bool(bc.ca)


def key_usage(cert: x509.Certificate) -> x509.KeyUsage | None:
    try:
        return cert.extensions.get_extension_for_class(x509.KeyUsage).value
    except x509.ExtensionNotFound:
        return None


def has_ext_key_usage(cert: x509.Certificate) -> bool:
    try:
        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return False
    return len(list(eku)) > 0


def version(cert: x509.Certificate) -> int:
    return 3 if cert.version == x509.Version.v3 else 1


def not_before(cert: x509.Certificate) -> datetime:
    return as_utc(cert.not_valid_before_utc)


def not_after(cert: x509.Certificate) -> datetime:
    return as_utc(cert.not_valid_after_utc)


def der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def signature_algorithm_name(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    name = _SIGNATURE_ALGORITHM_NAMES.get(oid)
    if name:
        return name
    return oid.dotted_string


def display_name(cert: x509.Certificate) -> str:
    """
    Common name when set, else the first SANs entry.
    """
    cn = common_name(cert)
    if cn:
        return cn
    names = dns_names(cert)
    return names[0] if names else ""


def strip_blank_lines(data: bytes) -> bytes:
    data = data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
    return b"\n".join(line for line in data.split(b"\n") if line.strip()) + b"\n"


def _begin_marker(block_type: str) -> bytes:
    return f"-----BEGIN {block_type}-----".encode("ascii")


def parse_pem_certificates(pem_data: bytes) -> tuple[list[x509.Certificate], bytes]:
    """
    Decode successive CERTIFICATE blocks, skipping any leading non-PEM text.

    Returns the parsed chain and whatever trailing data could not be decoded.
    """
    pem_data = pem_data.replace(b"\r\n", b"\n")

    chain: list[x509.Certificate] = []
    rest = pem_data
    while True:
        m = _PEM_BLOCK_RE.search(rest)
        if m is None or m.group("type").decode("ascii") != PEM_BLOCK_CERTIFICATE:
            if not chain:
                raise MalformedCertError("failed to decode PEM block")
            break

        try:
            body = base64.b64decode(b"".join(m.group("body").split()), validate=True)
        except binascii.Error as e:
            raise MalformedCertError("failed to decode PEM block", detail=str(e)) from e
        if not body:
            raise EmptyCertBlockError()

        try:
            chain.append(x509.load_der_x509_certificate(body))
        except ValueError as e:
            raise MalformedCertError("failed to parse certificate", detail=str(e)) from e

        rest = rest[m.end():]
        if not rest.strip():
            rest = b""
            break

    return chain, rest


def _split_der(data: bytes) -> list[bytes]:
    """
    Split concatenated DER encoded certificates on their outer SEQUENCE.
    """
    out: list[bytes] = []
    pos = 0
    while pos < len(data):
        if data[pos] != 0x30 or pos + 2 > len(data):
            raise MalformedCertError("unexpected data in ASN.1 DER input")
        length = data[pos + 1]
        header = 2
        if length & 0x80:
            num = length & 0x7F
            if num == 0 or pos + 2 + num > len(data):
                raise MalformedCertError("invalid ASN.1 length")
            length = int.from_bytes(data[pos + 2:pos + 2 + num], "big")
            header += num
        end = pos + header + length
        if end > len(data):
            raise MalformedCertError("truncated ASN.1 DER input")
        out.append(data[pos:end])
        pos = end
    return out


def parse_der_certificates(data: bytes) -> list[x509.Certificate]:
    chain: list[x509.Certificate] = []
    for block in _split_der(data):
        try:
            chain.append(x509.load_der_x509_certificate(block))
        except ValueError as e:
            raise MalformedCertError("failed to parse ASN.1 DER certificate", detail=str(e)) from e
    return chain


def parse_cert_bytes(data: bytes, *, source: str = "input") -> tuple[list[x509.Certificate], bytes]:
    if not data:
        raise EmptyCertFileError(f"failed to decode {source} as certificate file")

    stripped = strip_blank_lines(data)
    if _begin_marker(PEM_BLOCK_CERTIFICATE) in stripped:
        log.debug("Parsing %s as PEM formatted certificates", source)
        return parse_pem_certificates(stripped)

    for block_type, label in PEM_BLOCK_LABELS.items():
        if block_type == PEM_BLOCK_CERTIFICATE:
            continue
        if _begin_marker(block_type) in stripped:
            raise UnsupportedFileFormatError(
                f"failed to decode {source} ({label} format) as certificate file"
            )

    log.debug("Parsing %s as ASN.1 DER formatted certificates", source)
    return parse_der_certificates(data), b""


def parse_cert_file(filename: str | Path) -> tuple[list[x509.Certificate], bytes]:
    """
    Read a certificate file (PEM or DER) and return ``(chain, leftovers)``.

    Raises a ``CertParseError`` subclass when the content cannot be used and
    ``OSError`` when the file cannot be read.
    """
    path = Path(filename)
    return parse_cert_bytes(path.read_bytes(), source=str(path))


def to_pem(chain: list[x509.Certificate]) -> bytes:
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in chain)


def write_pem_file(filename: str | Path, chain: list[x509.Certificate]) -> None:
    Path(filename).write_bytes(to_pem(chain))
