from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..paths import get_paths


@dataclass(frozen=True)
class WalletSettings:
    template_dir: Path   # pass.json + images (read-only)
    certs_dir: Path      # signerCert.pem / signerKey.pem / wwdr.pem
    staging_dir: Path    # per-request staging areas are created under here
    audit_log: Path


def _env_path(name: str) -> Path | None:
    v = (os.environ.get(name) or "").strip()
    return Path(v).expanduser().resolve() if v else None


def get_wallet_settings() -> WalletSettings:
    """
    Wallet settings from app paths + env overrides:
    WALLET_TEMPLATE_DIR, WALLET_CERTS_DIR, WALLET_STAGING_DIR.
    """
    paths = get_paths()

    template_dir = _env_path("WALLET_TEMPLATE_DIR") or (paths.app_dir / "wallet" / "template")
    certs_dir = _env_path("WALLET_CERTS_DIR") or (template_dir.parent / "certs")
    staging_dir = _env_path("WALLET_STAGING_DIR") or (paths.temp_dir / "passes")

    return WalletSettings(
        template_dir=template_dir,
        certs_dir=certs_dir,
        staging_dir=staging_dir,
        audit_log=paths.data_dir / "audit_log.jsonl",
    )
