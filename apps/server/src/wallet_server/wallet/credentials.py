from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from .errors import CredentialUnavailable, MalformedCredential, UnsupportedKeyAlgorithm

logger = logging.getLogger(__name__)

ENV_SIGNER_CERT = "WALLET_SIGNER_CERT_PEM"
ENV_SIGNER_KEY = "WALLET_SIGNER_KEY_PEM"
ENV_CHAIN = "WALLET_CHAIN_PEM"

SIGNER_CERT_FILE = "signerCert.pem"
SIGNER_KEY_FILE = "signerKey.pem"
CHAIN_FILE = "wwdr.pem"


@dataclass(frozen=True)
class CredentialMaterial:
    """Raw PEM bytes as found in one source, before parsing."""

    source: str
    certificate_pem: bytes
    private_key_pem: bytes
    chain_pem: bytes


@dataclass(frozen=True)
class Credentials:
    source: str
    certificate: x509.Certificate
    private_key: PrivateKeyTypes
    chain: tuple[x509.Certificate, ...]


class CredentialSource(Protocol):
    name: str

    def missing(self) -> list[str]:
        """Names of the materials this source lacks; empty when fully populated."""
        ...

    def load(self) -> CredentialMaterial:
        ...


def _pem_from_env(value: str) -> bytes:
    # Single-line env values often carry escaped newlines.
    if "\\n" in value and "\n" not in value:
        value = value.replace("\\n", "\n")
    return value.strip().encode("ascii") + b"\n"


class EnvironmentCredentialSource:
    name = "environment"

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        cert_var: str = ENV_SIGNER_CERT,
        key_var: str = ENV_SIGNER_KEY,
        chain_var: str = ENV_CHAIN,
    ) -> None:
        self._environ = environ
        self._vars = (cert_var, key_var, chain_var)

    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def missing(self) -> list[str]:
        env = self._env()
        return [v for v in self._vars if not (env.get(v) or "").strip()]

    def load(self) -> CredentialMaterial:
        env = self._env()
        cert_var, key_var, chain_var = self._vars
        try:
            return CredentialMaterial(
                source=self.name,
                certificate_pem=_pem_from_env(env[cert_var]),
                private_key_pem=_pem_from_env(env[key_var]),
                chain_pem=_pem_from_env(env[chain_var]),
            )
        except UnicodeEncodeError as e:
            raise MalformedCredential(f"Credential environment value is not PEM text: {e}") from e


class DirectoryCredentialSource:
    name = "files"

    def __init__(
        self,
        certs_dir: Path,
        *,
        cert_file: str = SIGNER_CERT_FILE,
        key_file: str = SIGNER_KEY_FILE,
        chain_file: str = CHAIN_FILE,
    ) -> None:
        self.certs_dir = certs_dir
        self._files = (cert_file, key_file, chain_file)

    def missing(self) -> list[str]:
        return [str(self.certs_dir / f) for f in self._files if not (self.certs_dir / f).is_file()]

    def load(self) -> CredentialMaterial:
        cert_file, key_file, chain_file = self._files
        return CredentialMaterial(
            source=self.name,
            certificate_pem=(self.certs_dir / cert_file).read_bytes(),
            private_key_pem=(self.certs_dir / key_file).read_bytes(),
            chain_pem=(self.certs_dir / chain_file).read_bytes(),
        )


def default_sources(certs_dir: Path) -> list[CredentialSource]:
    """Environment first, then the on-disk certs directory."""
    return [EnvironmentCredentialSource(), DirectoryCredentialSource(certs_dir)]


def parse_credentials(material: CredentialMaterial) -> Credentials:
    try:
        cert = x509.load_pem_x509_certificate(material.certificate_pem)
    except ValueError as e:
        raise MalformedCredential(f"Signer certificate from {material.source} is not a valid PEM certificate: {e}") from e

    try:
        key = serialization.load_pem_private_key(material.private_key_pem, password=None)
    except UnsupportedAlgorithm as e:
        raise UnsupportedKeyAlgorithm(f"Signer key from {material.source} uses an unsupported algorithm: {e}") from e
    except (ValueError, TypeError) as e:
        # TypeError: key is password protected
        raise MalformedCredential(f"Signer key from {material.source} is not an unencrypted PEM key: {e}") from e

    try:
        chain = x509.load_pem_x509_certificates(material.chain_pem)
    except ValueError as e:
        raise MalformedCredential(f"Trust chain from {material.source} is not valid PEM: {e}") from e

    return Credentials(source=material.source, certificate=cert, private_key=key, chain=tuple(chain))


def resolve_credentials(sources: Sequence[CredentialSource]) -> Credentials:
    """
    Try `sources` in order; the first fully populated one wins.

    A source never contributes partially: a source missing any material is
    skipped as a whole. Raises CredentialUnavailable naming what each source
    lacked.
    """
    missing_by_source: dict[str, list[str]] = {}
    for src in sources:
        missing = src.missing()
        if missing:
            if len(missing) < 3:
                logger.warning("credential source %s is partially configured; missing %s", src.name, ", ".join(missing))
            missing_by_source[src.name] = missing
            continue
        try:
            material = src.load()
        except FileNotFoundError as e:
            missing_by_source[src.name] = [str(e.filename)]
            continue
        except OSError as e:
            raise CredentialUnavailable({src.name: [f"unreadable ({e})"]}) from e
        logger.info("signing credentials resolved from %s", src.name)
        return parse_credentials(material)

    raise CredentialUnavailable(missing_by_source)
