from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


# Ensure `wallet_server` (under ./src) is importable when running `pytest` from apps/server.
_ROOT = Path(__file__).resolve().parents[1]
_SRC = _ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec, rsa  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

TEMPLATE_DIR = _ROOT / "wallet" / "template"


def _name(cn: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Legacy Wallet Tests"),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )


def _key_usage(*, ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=not ca,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def make_cert(
    subject_cn: str,
    subject_key,
    issuer_cn: str,
    issuer_key,
    *,
    ca: bool,
) -> x509.Certificate:
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject_cn))
        .issuer_name(_name(issuer_cn))
        .public_key(subject_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(_key_usage(ca=ca), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(subject_key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
    )
    return builder.sign(issuer_key, hashes.SHA256())


def cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def key_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass(frozen=True)
class WalletPKI:
    root_key: rsa.RSAPrivateKey
    root_cert: x509.Certificate
    intermediate_cert: x509.Certificate
    signer_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
    signer_cert: x509.Certificate

    @property
    def signer_cert_pem(self) -> bytes:
        return cert_pem(self.signer_cert)

    @property
    def signer_key_pem(self) -> bytes:
        return key_pem(self.signer_key)

    @property
    def chain_pem(self) -> bytes:
        # intermediate + root, concatenated
        return cert_pem(self.intermediate_cert) + cert_pem(self.root_cert)

    @property
    def root_pem(self) -> bytes:
        return cert_pem(self.root_cert)

    def write_certs(self, certs_dir: Path) -> Path:
        certs_dir.mkdir(parents=True, exist_ok=True)
        (certs_dir / "signerCert.pem").write_bytes(self.signer_cert_pem)
        (certs_dir / "signerKey.pem").write_bytes(self.signer_key_pem)
        (certs_dir / "wwdr.pem").write_bytes(self.chain_pem)
        return certs_dir

    def set_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WALLET_SIGNER_CERT_PEM", self.signer_cert_pem.decode("ascii"))
        monkeypatch.setenv("WALLET_SIGNER_KEY_PEM", self.signer_key_pem.decode("ascii"))
        monkeypatch.setenv("WALLET_CHAIN_PEM", self.chain_pem.decode("ascii"))


def _build_pki(signer_key) -> WalletPKI:
    root_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    inter_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    root_cert = make_cert("Test Root CA", root_key, "Test Root CA", root_key, ca=True)
    inter_cert = make_cert("Test WWDR Intermediate", inter_key, "Test Root CA", root_key, ca=True)
    signer_cert = make_cert("Pass Type ID: pass.test.legacy", signer_key, "Test WWDR Intermediate", inter_key, ca=False)

    return WalletPKI(
        root_key=root_key,
        root_cert=root_cert,
        intermediate_cert=inter_cert,
        signer_key=signer_key,
        signer_cert=signer_cert,
    )


@pytest.fixture(scope="session")
def pki() -> WalletPKI:
    return _build_pki(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="session")
def other_pki() -> WalletPKI:
    return _build_pki(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="session")
def ec_pki() -> WalletPKI:
    return _build_pki(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(autouse=True)
def _isolated_wallet_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("WALLET_SIGNER_CERT_PEM", "WALLET_SIGNER_KEY_PEM", "WALLET_CHAIN_PEM"):
        monkeypatch.delenv(var, raising=False)
    for var in ("WALLET_TEMPLATE_DIR", "WALLET_CERTS_DIR", "WALLET_STAGING_DIR", "WALLET_APP_DIR"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("WALLET_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("WALLET_TEMP_DIR", str(tmp_path / "tmp"))


@pytest.fixture()
def template_dir(tmp_path: Path) -> Path:
    """A private copy of the shipped pass template + images."""
    dst = tmp_path / "template"
    shutil.copytree(TEMPLATE_DIR, dst)
    return dst


@pytest.fixture()
def staging_root(tmp_path: Path) -> Path:
    return tmp_path / "staging"


@pytest.fixture()
def scenario_request() -> dict[str, str]:
    return {
        "serialNumber": "ABC123",
        "legacyAmountDisplay": "$50,000",
        "legacyType": "Perpetual",
        "withdrawalRateDisplay": "4.0%",
        "successProbabilityDisplay": "92%",
        "explanationText": "Your portfolio can sustain this legacy indefinitely.",
        "barcodeMessage": "ABC123",
    }
