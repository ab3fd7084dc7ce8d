"""
Signature verification between an issued certificate and its issuer.

Modern algorithms go through cryptography's own issuer check. MD5/SHA1 with
RSA and ECDSA with SHA1 are verified explicitly so that certificates signed
with them can still be classified. This is identification only and must not
be treated as a trust decision.
"""

from __future__ import annotations

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.x509.oid import SignatureAlgorithmOID

from . import certs
from .errors import SignatureVerificationError

_LEGACY_RSA_HASHES: dict[x509.ObjectIdentifier, type[hashes.HashAlgorithm]] = {
    SignatureAlgorithmOID.RSA_WITH_MD5: hashes.MD5,
    SignatureAlgorithmOID.RSA_WITH_SHA1: hashes.SHA1,
    x509.ObjectIdentifier("1.3.14.3.2.29"): hashes.SHA1,
}

# Rejected outright; there is no verifier for these.
_UNSUPPORTED = {
    certs.MD2_WITH_RSA_OID,
    SignatureAlgorithmOID.DSA_WITH_SHA1,
}


def _verify_legacy_rsa(issued: x509.Certificate, issuer: x509.Certificate, algorithm: hashes.HashAlgorithm) -> None:
    key = issuer.public_key()
    if not isinstance(key, rsa.RSAPublicKey):
        raise SignatureVerificationError(
            detail=f"issuer public key is {type(key).__name__}, not RSA"
        )
    try:
        key.verify(issued.signature, issued.tbs_certificate_bytes, padding.PKCS1v15(), algorithm)
    except InvalidSignature as e:
        raise SignatureVerificationError(
            detail=f"{algorithm.name.upper()}-RSA signature mismatch"
        ) from e


def _verify_ecdsa_sha1(issued: x509.Certificate, issuer: x509.Certificate) -> None:
    key = issuer.public_key()
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise SignatureVerificationError(
            detail=f"issuer public key is {type(key).__name__}, not ECDSA"
        )
    try:
        key.verify(issued.signature, issued.tbs_certificate_bytes, ec.ECDSA(hashes.SHA1()))
    except InvalidSignature as e:
        raise SignatureVerificationError(detail="ECDSA-SHA1 signature mismatch") from e


def verify_signature(issued: x509.Certificate, issuer: x509.Certificate) -> None:
    """
    Verify that ``issuer`` signed ``issued``.

    Returns None on success and raises ``SignatureVerificationError``
    otherwise. The issued certificate's issuer DN must match the issuer's
    subject DN before any signature work is attempted.
    """
    if certs.issuer(issued) != certs.subject(issuer):
        raise SignatureVerificationError(
            detail="issuer and subject X.509 distinguished name mismatch"
        )

    oid = issued.signature_algorithm_oid

    if oid in _LEGACY_RSA_HASHES:
        _verify_legacy_rsa(issued, issuer, _LEGACY_RSA_HASHES[oid]())
        return
    if oid == SignatureAlgorithmOID.ECDSA_WITH_SHA1:
        _verify_ecdsa_sha1(issued, issuer)
        return
    if oid in _UNSUPPORTED:
        raise SignatureVerificationError(
            detail=f"unsupported algorithm {certs.signature_algorithm_name(issued)}"
        )

    try:
        issued.verify_directly_issued_by(issuer)
    except InvalidSignature as e:
        raise SignatureVerificationError(detail="signature mismatch") from e
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SignatureVerificationError(detail=str(e)) from e
