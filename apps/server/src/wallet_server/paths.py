from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from platformdirs import PlatformDirs

# ---------------------------------------------------------------------
# App identifiers
# ---------------------------------------------------------------------

# Slug used for directories, temp and platformdirs (no spaces)
APP_SLUG = "legacy-wallet"


# ---------------------------------------------------------------------
# Dataclass
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class AppPaths:
    """
    OS-agnostic paths used by the app.

    Environment overrides (optional):
    - WALLET_APP_DIR
    - WALLET_DATA_DIR
    - WALLET_TEMP_DIR
    """

    app_dir: Path     # runtime root (read-only, holds wallet/template)
    data_dir: Path    # mutable app data (audit log)
    temp_dir: Path    # staging areas live under here


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _default_app_dir() -> Path:
    """
    Resolve application runtime directory.

    Priority:
    1. WALLET_APP_DIR env override
    2. Frozen app (PyInstaller, etc.) → directory of executable
    3. Dev mode → current working directory
    """
    env = os.environ.get("WALLET_APP_DIR")
    if env:
        return Path(env).expanduser().resolve()

    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent

    return Path.cwd().resolve()


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def get_paths() -> AppPaths:
    """
    Compute all filesystem paths used by the app.
    """
    app_dir = _default_app_dir()

    data_env = os.environ.get("WALLET_DATA_DIR")
    temp_env = os.environ.get("WALLET_TEMP_DIR")

    dirs = PlatformDirs(appname=APP_SLUG, appauthor=False)

    data_dir = (
        Path(data_env).expanduser().resolve()
        if data_env
        else Path(dirs.user_data_dir).resolve()
    )

    temp_dir = (
        Path(temp_env).expanduser().resolve()
        if temp_env
        else (Path(tempfile.gettempdir()).resolve() / APP_SLUG)
    )

    return AppPaths(
        app_dir=app_dir,
        data_dir=data_dir,
        temp_dir=temp_dir,
    )


def ensure_dirs(paths: AppPaths) -> None:
    """
    Ensure mutable directories exist.

    app_dir is treated as read-only and is NOT created here
    (installer or dev environment is responsible for it).
    """
    paths.data_dir.mkdir(parents=True, exist_ok=True)
    paths.temp_dir.mkdir(parents=True, exist_ok=True)
