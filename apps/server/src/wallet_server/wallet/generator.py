from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .archive import build_archive
from .config import WalletSettings
from .credentials import CredentialSource, default_sources, resolve_credentials
from .errors import PassGenerationError, StagingIOFailure, TemplateMissing
from .manifest import RESERVED_NAMES, SIGNATURE_NAME, build_manifest, write_manifest
from .schemas import PassRequest, parse_pass_request
from .signer import sign_manifest
from .template import load_template, render_pass_json

logger = logging.getLogger(__name__)

PASS_JSON_NAME = "pass.json"
REQUIRED_ASSETS = ("icon.png", "icon@2x.png", "logo.png")
OPTIONAL_ASSETS = ("logo@2x.png", "background.png")

CONTENT_TYPE = "application/vnd.apple.pkpass"


class PassState(str, Enum):
    VALIDATING = "validating"
    STAGING = "staging"
    SUBSTITUTING = "substituting"
    HASHING = "hashing"
    SIGNING = "signing"
    PACKING = "packing"
    DONE = "done"
    FAILED = "failed"


def suggested_filename(serial_number: str) -> str:
    return f"LegacyCard-{serial_number}.pkpass"


@dataclass(frozen=True)
class PassAssets:
    """
    Process-wide, read-only pass resources: the pass.json template and the
    static image files copied verbatim into every pass.
    """

    template: str
    files: Mapping[str, bytes]

    @classmethod
    def load(
        cls,
        template_dir: Path,
        *,
        required: Sequence[str] = REQUIRED_ASSETS,
        optional: Sequence[str] = OPTIONAL_ASSETS,
    ) -> "PassAssets":
        template = load_template(template_dir / PASS_JSON_NAME)

        files: dict[str, bytes] = {}
        for name in required:
            try:
                files[name] = (template_dir / name).read_bytes()
            except OSError as e:
                raise TemplateMissing(f"Required pass asset {name} cannot be read from {template_dir}: {e}") from e
        for name in optional:
            p = template_dir / name
            if not p.is_file():
                logger.info("optional pass asset %s not present; skipping", name)
                continue
            try:
                files[name] = p.read_bytes()
            except OSError as e:
                raise TemplateMissing(f"Optional pass asset {name} exists but cannot be read: {e}") from e

        clash = (set(files) & RESERVED_NAMES) | ({PASS_JSON_NAME} & set(files))
        if clash:
            raise TemplateMissing(f"Asset names collide with reserved pass files: {sorted(clash)}")

        return cls(template=template, files=MappingProxyType(files))


def _remove_tree(path: Path, *, strict: bool) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        if strict:
            raise StagingIOFailure(f"Cannot remove staging area {path}: {e}") from e
        logger.error("staging area cleanup failed for %s: %s", path, e)


@contextmanager
def staging_area(root: Path, serial_number: str) -> Iterator[Path]:
    """
    Exclusively owned working directory for one generation call.

    The directory name carries a random suffix, so concurrent calls with the
    same serial never share it. It is removed on every exit path; a removal
    error only surfaces when the body itself succeeded.
    """
    try:
        root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=f"pass-{serial_number}-", dir=root))
    except OSError as e:
        raise StagingIOFailure(f"Cannot create staging area under {root}: {e}") from e

    try:
        yield path
    except BaseException:
        _remove_tree(path, strict=False)
        raise
    _remove_tree(path, strict=True)


def _write_file(path: Path, data: bytes) -> None:
    try:
        path.write_bytes(data)
    except OSError as e:
        raise StagingIOFailure(f"Cannot write {path.name} into staging area: {e}") from e


class PassGenerator:
    """
    Builds signed .pkpass archives.

    Holds only read-only state (assets, staging root, credential source
    locations); safe to share between threads. Credentials are resolved on
    every call.
    """

    def __init__(
        self,
        assets: PassAssets,
        staging_dir: Path,
        credential_sources: Sequence[CredentialSource],
    ) -> None:
        self.assets = assets
        self.staging_dir = staging_dir
        self.credential_sources = tuple(credential_sources)

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "PassGenerator":
        return cls(
            assets=PassAssets.load(settings.template_dir),
            staging_dir=settings.staging_dir,
            credential_sources=default_sources(settings.certs_dir),
        )

    def _stage_contents(self, area: Path, req: PassRequest) -> None:
        pass_json = render_pass_json(self.assets.template, req.template_values())
        _write_file(area / PASS_JSON_NAME, pass_json.encode("utf-8"))
        for name, data in self.assets.files.items():
            _write_file(area / name, data)

    def generate(self, request: PassRequest | dict[str, Any]) -> bytes:
        """
        Run validating -> staging -> substituting -> hashing -> signing ->
        packing and return the archive bytes.

        Any PassGenerationError raised carries the `state` it failed in. The
        staging area never outlives the call.
        """
        state = PassState.VALIDATING
        serial = None
        try:
            req = parse_pass_request(request)
            serial = req.serial_number

            state = PassState.STAGING
            with staging_area(self.staging_dir, serial) as area:
                state = PassState.SUBSTITUTING
                self._stage_contents(area, req)

                state = PassState.HASHING
                manifest = build_manifest(area)
                manifest_data = write_manifest(area, manifest)

                state = PassState.SIGNING
                credentials = resolve_credentials(self.credential_sources)
                signature = sign_manifest(manifest_data, credentials)
                _write_file(area / SIGNATURE_NAME, signature)

                state = PassState.PACKING
                archive = build_archive(area)
            state = PassState.DONE
        except PassGenerationError as e:
            if e.state is None:
                e.state = state
            logger.info("pass generation failed at %s for serial=%s: %s", e.state.value, serial, e.kind)
            raise

        logger.info(
            "pass generation %s for serial=%s (%d bytes, %d manifest entries)",
            state.value,
            serial,
            len(archive),
            len(manifest),
        )
        return archive
