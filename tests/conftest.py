import datetime as dt
import ipaddress
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

DATA_DIR = Path(__file__).parent / "data"


class Issued:
    """A generated certificate and the key that signs on its behalf."""

    def __init__(self, cert, key):
        self.cert = cert
        self.key = key


def _now():
    return dt.datetime.now(dt.timezone.utc)


def make_cert(
    cn,
    *,
    issuer=None,
    key=None,
    not_before=None,
    not_after=None,
    days=365,
    dns_names=None,
    ip_addresses=None,
    ca=False,
    key_cert_sign=None,
    server_auth=None,
    serial=None,
):
    key = key or ec.generate_private_key(ec.SECP256R1())
    now = _now()
    if not_before is None:
        not_before = not_after - dt.timedelta(days=days) if not_after else now - dt.timedelta(days=1)
    not_after = not_after or now + dt.timedelta(days=days)

    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)]) if cn else x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "No CN Org"),
    ])
    issuer_name = issuer.cert.subject if issuer else name
    signing_key = issuer.key if issuer else key

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(serial or x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )

    if key_cert_sign is None:
        key_cert_sign = ca
    builder = builder.add_extension(
        x509.KeyUsage(
            digital_signature=True,
            content_commitment=False,
            key_encipherment=not ca,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=key_cert_sign,
            crl_sign=key_cert_sign,
            encipher_only=False,
            decipher_only=False,
        ),
        critical=True,
    )

    if server_auth is None:
        server_auth = not ca
    if server_auth:
        builder = builder.add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )

    sans = [x509.DNSName(n) for n in dns_names or []]
    sans += [x509.IPAddress(ipaddress.ip_address(a)) for a in ip_addresses or []]
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)

    cert = builder.sign(signing_key, hashes.SHA256())
    return Issued(cert, key)


def make_chain(
    *,
    leaf_days=120,
    intermediate_days=1000,
    root_days=3650,
    leaf_not_after=None,
    intermediate_not_after=None,
    root_not_after=None,
    leaf_cn="www.example.test",
    dns_names=("www.example.test", "example.test"),
):
    """Return (leaf, intermediate, root) Issued objects."""
    root = make_cert("Test Root CA", ca=True, days=root_days, not_after=root_not_after)
    intermediate = make_cert(
        "Test Intermediate CA",
        issuer=root,
        ca=True,
        days=intermediate_days,
        not_after=intermediate_not_after,
    )
    leaf = make_cert(
        leaf_cn,
        issuer=intermediate,
        days=leaf_days,
        not_after=leaf_not_after,
        dns_names=list(dns_names),
    )
    return leaf, intermediate, root


@pytest.fixture
def cert_factory():
    return make_cert


@pytest.fixture
def chain_factory():
    def build(**kwargs):
        leaf, intermediate, root = make_chain(**kwargs)
        return [leaf.cert, intermediate.cert, root.cert]

    return build


@pytest.fixture
def issued_chain():
    return make_chain()


@pytest.fixture
def chain(issued_chain):
    leaf, intermediate, root = issued_chain
    return [leaf.cert, intermediate.cert, root.cert]


@pytest.fixture
def now():
    return _now()


@pytest.fixture
def data_cert():
    """Load a checked-in PEM certificate from tests/data."""

    def load(name):
        return x509.load_pem_x509_certificate((DATA_DIR / name).read_bytes())

    return load
