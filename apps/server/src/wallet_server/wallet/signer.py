from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs7

from .credentials import Credentials
from .errors import KeyCertificateMismatch, MalformedCredential, SigningFailed, UnsupportedKeyAlgorithm

logger = logging.getLogger(__name__)

# Digest used inside the PKCS#7 SignerInfo. Manifest entries stay SHA-1
# (see manifest.sha1_file); PKCS7SignatureBuilder only offers SHA-2 here.
SIGNATURE_HASH = hashes.SHA256

SIGN_OPTIONS = (
    pkcs7.PKCS7Options.DetachedSignature,
    pkcs7.PKCS7Options.Binary,
    pkcs7.PKCS7Options.NoAttributes,
)


def _spki(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def check_key_matches_certificate(credentials: Credentials) -> None:
    key = credentials.private_key
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise UnsupportedKeyAlgorithm(
            f"Signer key type {type(key).__name__} is not supported; use an RSA or EC key"
        )
    if _spki(key.public_key()) != _spki(credentials.certificate.public_key()):
        raise KeyCertificateMismatch("Signer private key does not belong to the signer certificate")


def sign_manifest(manifest: bytes, credentials: Credentials) -> bytes:
    """
    Produce a DER-encoded PKCS#7 detached signature over `manifest`.

    - content is not embedded (detached)
    - data is signed byte-for-byte (no MIME canonicalization)
    - no authenticated attributes
    - signer certificate and every chain certificate are embedded
    """
    if not manifest:
        raise SigningFailed("Refusing to sign an empty manifest")

    check_key_matches_certificate(credentials)

    builder = (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(manifest)
        .add_signer(credentials.certificate, credentials.private_key, SIGNATURE_HASH())
    )
    # add_certificate must come after add_signer: the builder does not carry
    # extra certificates across add_signer.
    for cert in credentials.chain:
        if cert == credentials.certificate:
            continue
        builder = builder.add_certificate(cert)

    try:
        signature = builder.sign(serialization.Encoding.DER, list(SIGN_OPTIONS))
    except (ValueError, TypeError) as e:
        raise SigningFailed(f"PKCS#7 signing failed: {e}") from e

    if not signature:
        raise SigningFailed("PKCS#7 signing produced an empty signature")

    logger.debug("manifest signed: %d bytes, %d chain certs", len(signature), len(credentials.chain))
    return signature


def signature_certificates(signature: bytes) -> list[x509.Certificate]:
    """Certificates embedded in a DER PKCS#7 signature."""
    try:
        return pkcs7.load_der_pkcs7_certificates(signature)
    except ValueError as e:
        raise MalformedCredential(f"Signature is not a DER PKCS#7 structure: {e}") from e


def openssl_available() -> bool:
    return shutil.which("openssl") is not None


def verify_with_openssl(manifest: bytes, signature: bytes, ca_file: Path) -> bool:
    """
    Verify a detached signature with `openssl smime -verify`.

    The chain is taken from the certificates embedded in the signature and
    anchored at `ca_file`.
    """
    if not openssl_available():
        raise RuntimeError("openssl executable not found on PATH")

    with tempfile.TemporaryDirectory(prefix="pass-verify-") as td:
        manifest_path = Path(td) / "manifest.json"
        sig_path = Path(td) / "signature"
        manifest_path.write_bytes(manifest)
        sig_path.write_bytes(signature)
        cp = subprocess.run(
            [
                "openssl", "smime", "-verify",
                "-binary",
                "-inform", "DER",
                "-in", str(sig_path),
                "-content", str(manifest_path),
                "-CAfile", str(ca_file),
                "-purpose", "any",
                "-out", os.devnull,
            ],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    if cp.returncode != 0:
        logger.info("openssl verify failed: %s", (cp.stderr or "").strip()[:500])
    return cp.returncode == 0
